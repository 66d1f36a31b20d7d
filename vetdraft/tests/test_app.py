import unittest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from vetdraft.app import create_app
from vetdraft.config import Settings, get_settings
from vetdraft.db import InMemoryDraftStore
from vetdraft.errors import StorageError
from vetdraft.dependencies import get_autosave_store, get_storage_client
from vetdraft.autosave import AutosaveStore
from vetdraft.models import DraftRecord, MediaReference
from vetdraft.storage import InMemoryStorageClient


def _xray_ref() -> MediaReference:
    return MediaReference(
        id="1760000000000",
        storage_path="intake_u1_p1_1760000000000.png",
        original_name="rex's x-ray (1).png",
        size=4,
        content_type="image/png",
    )


class AutosaveRestoreApiTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDraftStore()
        self.storage = InMemoryStorageClient()
        self.app = app = create_app()
        app.dependency_overrides[get_autosave_store] = lambda: AutosaveStore(self.db)
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.client = TestClient(app)

    def _seed_draft(self, refs):
        self.db.upsert_draft(
            DraftRecord(
                form_id="intake",
                user_id="u1",
                patient_id="p1",
                data={
                    "name": "Rex",
                    "_autosave_media_files": [ref.as_dict() for ref in refs],
                },
            )
        )

    def _restore(self, **overrides):
        body = {
            "fileId": "1760000000000",
            "userId": "u1",
            "formId": "intake",
            "patientId": "p1",
        }
        body.update(overrides)
        return self.client.post("/api/autosave-restore", json=body)

    def test_restore_streams_file_with_headers(self):
        ref = _xray_ref()
        self._seed_draft([ref])
        self.storage.upload_bytes(ref.storage_path, b"\x89PNG", "image/png")

        response = self._restore()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"\x89PNG")
        self.assertEqual(response.headers["content-type"], "image/png")
        self.assertEqual(
            response.headers["content-disposition"],
            "inline; filename*=UTF-8''rex%27s%20x-ray%20%281%29.png",
        )
        self.assertEqual(response.headers["content-length"], "4")

    def test_missing_file_id_or_user_id_is_bad_request(self):
        self.assertEqual(self._restore(fileId=None).status_code, 400)
        self.assertEqual(self._restore(userId="").status_code, 400)

    def test_missing_draft_is_not_found(self):
        response = self._restore()
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "Autosave data not found")

    def test_unknown_file_id_is_not_found(self):
        self._seed_draft([_xray_ref()])
        response = self._restore(fileId="999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "File not found in autosave data")

    def test_missing_blob_is_not_found(self):
        self._seed_draft([_xray_ref()])
        response = self._restore()
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "File not found in storage")

    def test_storage_failure_is_internal_error(self):
        self._seed_draft([_xray_ref()])
        self.storage.get_bytes = MagicMock(side_effect=RuntimeError("connection reset"))
        response = self._restore()
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "Internal server error")

    def test_sign_url_uses_storage_client(self):
        response = self.client.get(
            "/api/autosave-media/sign-url",
            params={"path": "intake_u1_p1_1.png", "expires_in": 120},
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("intake_u1_p1_1.png", response.json()["url"])
        self.assertIn("expires=120", response.json()["url"])

    def test_sign_url_defaults_to_configured_ttl(self):
        self.app.dependency_overrides[get_settings] = lambda: Settings(
            autosave_signed_url_ttl=900
        )
        response = self.client.get(
            "/api/autosave-media/sign-url", params={"path": "intake_u1_p1_1.png"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("expires=900", response.json()["url"])

    def test_sign_url_storage_failure_is_internal_error(self):
        self.storage.presign_get = MagicMock(side_effect=StorageError("no credentials"))
        with self.assertLogs("vetdraft.routes", level="ERROR"):
            response = self.client.get(
                "/api/autosave-media/sign-url", params={"path": "intake_u1_p1_1.png"}
            )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "Internal server error")


if __name__ == "__main__":
    unittest.main()
