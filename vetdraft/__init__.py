"""
Form autosave service for veterinary documentation.

This package keeps in-progress form drafts and their attached media in a
persistent store and a blob store, with a FastAPI app for restoring
autosaved files on the server side.
"""
