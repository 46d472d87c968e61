import shutil
import tempfile
import unittest
from unittest.mock import patch

from tattoo_backend.config import Settings
from tattoo_backend.db import InMemoryRecordStore, SqlRecordStore
from tattoo_backend.dependencies import build_blob_store, build_record_store
from tattoo_backend.storage import LocalBlobStore, S3BlobStore


class SettingsTests(unittest.TestCase):
    def setUp(self):
        self.uploads = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.uploads, ignore_errors=True)
        env = patch.dict("os.environ", {}, clear=True)
        env.start()
        self.addCleanup(env.stop)

    def test_defaults(self):
        settings = Settings(_env_file=None)
        self.assertEqual(settings.port, 10000)
        self.assertEqual(settings.max_image_bytes, 5 * 1024 * 1024)
        self.assertEqual(settings.duration_unit, "hours")
        self.assertEqual(settings.duration_field, "timeInHours")
        self.assertFalse(settings.delete_blob_with_record)

    def test_reads_environment(self):
        env = {
            "PORT": "8080",
            "DATABASE_URL": "sqlite:///x.db",
            "DURATION_UNIT": "minutes",
        }
        with patch.dict("os.environ", env):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.port, 8080)
        self.assertEqual(settings.database_url, "sqlite:///x.db")
        self.assertEqual(settings.duration_field, "timeInMinutes")

    def test_missing_configuration_warns(self):
        settings = Settings(_env_file=None, storage_backend="s3", s3_bucket="b")
        warnings = settings.configuration_warnings()
        self.assertEqual(len(warnings), 2)
        self.assertIn("DATABASE_URL", warnings[0])
        self.assertIn("AWS_ACCESS_KEY_ID", warnings[1])
        self.assertIn("AWS_SECRET_ACCESS_KEY", warnings[1])

    def test_complete_configuration_has_no_warnings(self):
        settings = Settings(
            _env_file=None,
            database_url="sqlite:///x.db",
            storage_backend="s3",
            s3_bucket="b",
            aws_access_key_id="k",
            aws_secret_access_key="s",
        )
        self.assertEqual(settings.configuration_warnings(), [])

    def test_record_store_selection(self):
        self.assertIsInstance(build_record_store(Settings(_env_file=None)), InMemoryRecordStore)
        store = build_record_store(Settings(_env_file=None, database_url="sqlite:///:memory:"))
        self.assertIsInstance(store, SqlRecordStore)
        store.engine.dispose()

    def test_blob_store_selection(self):
        local = build_blob_store(Settings(_env_file=None, uploads_dir=self.uploads))
        self.assertIsInstance(local, LocalBlobStore)

        incomplete = Settings(
            _env_file=None, uploads_dir=self.uploads, storage_backend="s3", s3_bucket="b"
        )
        self.assertIsInstance(build_blob_store(incomplete), LocalBlobStore)

        with patch("tattoo_backend.storage.boto3.client"):
            hosted = build_blob_store(
                Settings(
                    _env_file=None,
                    storage_backend="s3",
                    s3_bucket="b",
                    aws_access_key_id="k",
                    aws_secret_access_key="s",
                )
            )
        self.assertIsInstance(hosted, S3BlobStore)


if __name__ == "__main__":
    unittest.main()
