import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from tattoo_backend.errors import StorageError, ValidationError
from tattoo_backend.storage import (
    InMemoryBlobStore,
    LocalBlobStore,
    S3BlobStore,
    blob_name,
    validate_image,
)


class HelperTests(unittest.TestCase):
    def test_blob_name(self):
        self.assertEqual(blob_name("/uploads/123.jpg"), "123.jpg")
        self.assertEqual(
            blob_name("https://cdn.example.com/tattoo-images/abc.png?v=2"), "abc.png"
        )
        self.assertEqual(blob_name("plain.gif"), "plain.gif")

    def test_validate_image_accepts_known_types(self):
        self.assertEqual(validate_image("Photo.JPG", "image/jpeg"), ".jpg")
        self.assertEqual(validate_image("a.png", "image/png"), ".png")
        self.assertEqual(validate_image("a.gif", "image/gif; charset=binary"), ".gif")

    def test_validate_image_rejects_mismatches(self):
        for filename, content_type in (
            ("notes.txt", "text/plain"),
            ("photo.jpg", "application/octet-stream"),
            ("photo.webp", "image/webp"),
            ("photo", "image/jpeg"),
        ):
            with self.subTest(filename=filename):
                with self.assertRaises(ValidationError) as ctx:
                    validate_image(filename, content_type)
                self.assertEqual(ctx.exception.field, "image")


class LocalBlobStoreTests(unittest.TestCase):
    def setUp(self):
        self.root = Path(tempfile.mkdtemp()) / "uploads"
        self.addCleanup(shutil.rmtree, self.root.parent, ignore_errors=True)
        self.store = LocalBlobStore(self.root)

    def test_creates_root(self):
        self.assertTrue(self.root.is_dir())

    def test_save_writes_under_root(self):
        ref = self.store.save(b"data", "photo.JPEG", "image/jpeg")
        self.assertTrue(ref.startswith("/uploads/"))
        self.assertTrue(ref.endswith(".jpeg"))
        self.assertEqual((self.root / blob_name(ref)).read_bytes(), b"data")

    def test_names_do_not_collide(self):
        refs = {self.store.save(b"x", "a.png", "image/png") for _ in range(20)}
        self.assertEqual(len(refs), 20)

    def test_rejects_non_images_before_writing(self):
        with self.assertRaises(ValidationError):
            self.store.save(b"x", "notes.txt", "text/plain")
        self.assertEqual(list(self.root.iterdir()), [])

    def test_write_failure_is_storage_error(self):
        with patch.object(Path, "write_bytes", side_effect=PermissionError("read-only")):
            with self.assertRaises(StorageError) as ctx:
                self.store.save(b"x", "a.png", "image/png")
        self.assertIsInstance(ctx.exception.cause, PermissionError)

    def test_list_blobs_skips_dotfiles(self):
        ref = self.store.save(b"abc", "a.png", "image/png")
        (self.root / ".gitkeep").write_bytes(b"")
        (self.root / ".DS_Store").write_bytes(b"")
        (self.root / "nested").mkdir()
        blobs = self.store.list_blobs()
        self.assertEqual([b.name for b in blobs], [blob_name(ref)])
        self.assertEqual(blobs[0].size, 3)
        self.assertEqual(blobs[0].path, ref)
        self.assertIsNotNone(blobs[0].created)

    def test_delete(self):
        ref = self.store.save(b"abc", "a.png", "image/png")
        self.assertTrue(self.store.delete(ref))
        self.assertFalse(self.store.delete(ref))
        self.assertEqual(self.store.list_blobs(), [])

    def test_location(self):
        self.assertEqual(self.store.location, str(self.root.resolve()))


class InMemoryBlobStoreTests(unittest.TestCase):
    def test_save_list_delete(self):
        store = InMemoryBlobStore()
        ref = store.save(b"abc", "a.gif", "image/gif")
        self.assertEqual([b.name for b in store.list_blobs()], [blob_name(ref)])
        self.assertTrue(store.delete(ref))
        self.assertEqual(store.list_blobs(), [])

    def test_rejects_non_images(self):
        store = InMemoryBlobStore()
        with self.assertRaises(ValidationError):
            store.save(b"x", "a.pdf", "application/pdf")
        self.assertEqual(store.stored_objects, {})


class S3BlobStoreTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("tattoo_backend.storage.boto3.client")
        self.mock_client_factory = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = MagicMock()
        self.mock_client_factory.return_value = self.client

    def make_store(self, **kwargs):
        return S3BlobStore(
            bucket="tattoos",
            access_key_id="key",
            secret_access_key="secret",
            **kwargs,
        )

    def test_save_uploads_under_folder(self):
        store = self.make_store()
        ref = store.save(b"img", "photo.jpg", "image/jpeg")

        kwargs = self.client.put_object.call_args.kwargs
        self.assertEqual(kwargs["Bucket"], "tattoos")
        self.assertTrue(kwargs["Key"].startswith("tattoo-images/"))
        self.assertEqual(kwargs["Body"], b"img")
        self.assertEqual(kwargs["ContentType"], "image/jpeg")
        self.assertEqual(
            ref, f"https://tattoos.s3.us-east-1.amazonaws.com/{kwargs['Key']}"
        )

    def test_public_base_url(self):
        store = self.make_store(public_base_url="https://cdn.example.com/")
        ref = store.save(b"img", "photo.png", "image/png")
        self.assertTrue(ref.startswith("https://cdn.example.com/tattoo-images/"))

    def test_custom_endpoint_url(self):
        store = self.make_store(endpoint="https://storage.example.com")
        ref = store.save(b"img", "photo.png", "image/png")
        self.assertTrue(ref.startswith("https://storage.example.com/tattoos/tattoo-images/"))
        self.assertEqual(
            self.mock_client_factory.call_args.kwargs["endpoint_url"],
            "https://storage.example.com",
        )

    def test_rejects_non_images_before_upload(self):
        store = self.make_store()
        with self.assertRaises(ValidationError):
            store.save(b"x", "notes.txt", "text/plain")
        self.client.put_object.assert_not_called()

    def test_provider_error_is_storage_error(self):
        self.client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        store = self.make_store()
        with self.assertRaises(StorageError) as ctx:
            store.save(b"img", "photo.jpg", "image/jpeg")
        self.assertIn("denied", str(ctx.exception.cause))

    def test_delete_uses_folder_key(self):
        store = self.make_store()
        self.assertTrue(store.delete("https://cdn.example.com/tattoo-images/abc.jpg"))
        self.client.delete_object.assert_called_once_with(
            Bucket="tattoos", Key="tattoo-images/abc.jpg"
        )

    def test_not_enumerable(self):
        store = self.make_store()
        self.assertFalse(store.enumerable)
        self.assertIsNone(store.list_blobs())
        self.assertEqual(store.location, "s3://tattoos/tattoo-images")


if __name__ == "__main__":
    unittest.main()
