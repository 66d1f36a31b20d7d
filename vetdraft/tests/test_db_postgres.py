import unittest

from vetdraft.db import PostgresDraftStore
from vetdraft.models import DraftIdentity, DraftRecord


class PostgresDraftStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres store logic.
    """

    def setUp(self):
        self.db = PostgresDraftStore("sqlite+pysqlite:///:memory:")

    def _record(self, data, patient_id="p1"):
        return DraftRecord(
            form_id="intake", user_id="u1", patient_id=patient_id, data=data
        )

    def test_get_missing_draft_returns_none(self):
        self.assertIsNone(self.db.get_draft(DraftIdentity("intake", "u1", "p1")))

    def test_upsert_replaces_existing_record(self):
        self.db.upsert_draft(self._record({"name": "Rex"}))
        self.db.upsert_draft(self._record({"name": "Fido", "weight": 12}))

        self.assertEqual(self.db.count_drafts(), 1)
        loaded = self.db.get_draft(DraftIdentity("intake", "u1", "p1"))
        self.assertEqual(loaded.data, {"name": "Fido", "weight": 12})

    def test_patients_are_separate_drafts(self):
        self.db.upsert_draft(self._record({"name": "Rex"}, patient_id="p1"))
        self.db.upsert_draft(self._record({"name": "Tom"}, patient_id="p2"))

        self.assertEqual(self.db.count_drafts(), 2)
        self.assertEqual(
            self.db.get_draft(DraftIdentity("intake", "u1", "p2")).data["name"], "Tom"
        )

    def test_delete_draft(self):
        identity = DraftIdentity("intake", "u1", "p1")
        self.db.upsert_draft(self._record({"name": "Rex"}))

        self.assertTrue(self.db.delete_draft(identity))
        self.assertIsNone(self.db.get_draft(identity))
        self.assertFalse(self.db.delete_draft(identity))


if __name__ == "__main__":
    unittest.main()
