import io
import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from PIL import Image

from gallery.app import create_app
from gallery.config import Settings, get_settings
from gallery.dependencies import get_gallery_service, get_storage_client, reset_dependencies
from gallery.errors import StorageUnavailableError
from gallery.storage import S3MediaStorageClient


def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 3)).save(buffer, format="PNG")
    return buffer.getvalue()


class GalleryApiTests(unittest.TestCase):
    def setUp(self):
        env = patch.dict(os.environ, {"GALLERY_USE_IN_MEMORY_BACKENDS": "true"})
        env.start()
        self.addCleanup(env.stop)
        get_settings.cache_clear()
        reset_dependencies()
        self.addCleanup(get_settings.cache_clear)
        self.addCleanup(reset_dependencies)

        self.client = TestClient(create_app())
        self.service = get_gallery_service()

    def _upload(self, names=("a.png",), **form):
        files = [("files", (name, png_bytes(), "image/png")) for name in names]
        return self.client.post("/api/upload", files=files, data=form)

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "storage": "reachable"})

    def test_empty_catalog(self):
        response = self.client.get("/api/images")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"josh": [], "family": [], "friends": []})

    def test_upload_then_read_category(self):
        response = self._upload(category="family", captions="hello")
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["count"], 1)
        self.assertEqual(payload["errors"], [])
        created = payload["images"][0]
        self.assertEqual(created["category"], "family")
        self.assertIn("publicId", created)
        self.assertIn("uploadedAt", created)

        family = self.client.get("/api/images/family").json()
        self.assertEqual([item["id"] for item in family], [created["id"]])
        self.assertEqual(family[0]["caption"], "hello")
        self.assertEqual(family[0]["resourceType"], "image")

    def test_single_file_field(self):
        response = self.client.post(
            "/api/upload",
            files=[("file", ("one.png", png_bytes(), "image/png"))],
            data={"category": "josh", "caption": "single"},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["images"][0]["caption"], "single")

    def test_batch_partial_failure(self):
        self.service.storage.failing_uploads.add("b.png")
        response = self._upload(
            names=("a.png", "b.png", "c.png"), category="friends", captions='["x", "y", "z"]'
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["count"], 2)
        self.assertEqual([error["filename"] for error in payload["errors"]], ["b.png"])
        self.assertEqual(len(self.client.get("/api/images/friends").json()), 2)

    def test_upload_invalid_category(self):
        response = self._upload(category="cousins")
        self.assertEqual(response.status_code, 400)
        self.assertIn("Invalid category", response.json()["detail"])

    def test_upload_without_files(self):
        response = self.client.post("/api/upload", data={"category": "josh"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "No files uploaded")

    def test_upload_with_storage_down(self):
        self.service.storage.unavailable = True
        response = self._upload(category="josh")
        self.assertEqual(response.status_code, 503)

    def test_delete_then_delete_again(self):
        created = self._upload(category="josh").json()["images"][0]

        response = self.client.delete(f"/api/upload/{created['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["id"], created["id"])
        self.assertEqual(self.client.get("/api/images/josh").json(), [])

        again = self.client.delete(f"/api/upload/{created['id']}")
        self.assertEqual(again.status_code, 404)

    def test_unknown_category_is_empty(self):
        response = self.client.get("/api/images/cousins")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])


class StorageConfigurationTests(unittest.TestCase):
    def setUp(self):
        reset_dependencies()
        self.addCleanup(reset_dependencies)

    def _settings(self, **overrides):
        values = {
            "use_in_memory_backends": False,
            "cos_endpoint": None,
            "cos_region": None,
            "cos_bucket": None,
            "aws_access_key_id": None,
            "aws_secret_access_key": None,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    @patch("gallery.dependencies.get_settings")
    def test_missing_credentials_fail_fast(self, mock_settings):
        mock_settings.return_value = self._settings(cos_bucket="gallery", cos_region="ap-test")
        with self.assertRaises(StorageUnavailableError) as ctx:
            get_storage_client()
        message = str(ctx.exception)
        self.assertIn("COS_ENDPOINT", message)
        self.assertIn("AWS_SECRET_ACCESS_KEY", message)
        self.assertNotIn("COS_BUCKET", message)

    @patch("gallery.dependencies.get_settings")
    def test_complete_credentials_build_s3_client(self, mock_settings):
        mock_settings.return_value = self._settings(
            cos_endpoint="https://cos.example.com",
            cos_region="ap-test",
            cos_bucket="gallery",
            aws_access_key_id="key",
            aws_secret_access_key="secret",
        )
        client = get_storage_client()
        self.assertIsInstance(client, S3MediaStorageClient)
        self.assertIs(get_storage_client(), client)

    @patch("gallery.dependencies.get_settings")
    def test_misconfigured_storage_returns_503(self, mock_settings):
        mock_settings.return_value = self._settings()
        client = TestClient(create_app())
        response = client.get("/api/images")
        self.assertEqual(response.status_code, 503)
        self.assertIn("not configured", response.json()["detail"])


if __name__ == "__main__":
    unittest.main()
