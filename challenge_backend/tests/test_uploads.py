import re
import unittest

from challenge_backend.storage import InMemoryStorageClient, StorageError
from challenge_backend.uploads import (
    ObjectStorageGateway,
    build_file_key,
    resolve_content_type,
)

UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


class FailingStorage(InMemoryStorageClient):
    def presign_get(self, path, expires_in=120):
        raise StorageError("InvalidAccessKeyId")

    def presign_put(self, path, expires_in=120, *, metadata=None, content_type=None):
        raise StorageError("InvalidAccessKeyId")

    def delete_object(self, path):
        raise StorageError("AccessDenied")


class FileKeyTests(unittest.TestCase):
    def test_root_path_goes_to_misc_and_strips_whitespace(self):
        self.assertRegex(build_file_key("my file.png", "/"), rf"^misc/{UUID}-myfile\.png$")

    def test_named_folder(self):
        self.assertRegex(build_file_key("a.png", "docs"), rf"^docs/{UUID}-a\.png$")

    def test_empty_path_and_surrounding_slashes(self):
        self.assertRegex(build_file_key("a.png", ""), rf"^misc/{UUID}-a\.png$")
        self.assertRegex(build_file_key("a.png", "/week1/q2/"), rf"^week1/q2/{UUID}-a\.png$")

    def test_keys_are_unique(self):
        self.assertNotEqual(build_file_key("a.png", "docs"), build_file_key("a.png", "docs"))

    def test_content_type(self):
        self.assertEqual(resolve_content_type("png"), "image/png")
        self.assertEqual(resolve_content_type("text/x-python"), "text/x-python")
        self.assertIsNone(resolve_content_type(None))


class GatewayTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()
        self.gateway = ObjectStorageGateway(self.storage)

    def test_upload_url_short_expiry_and_metadata(self):
        result = self.gateway.get_upload_url(
            "solution one.py", "q1", metadata={"question": "q1", "email": "a@b.c"}
        )
        self.assertEqual(result.errors, [])
        self.assertTrue(re.match(rf"^q1/{UUID}-solutionone\.py$", result.file_key))
        self.assertIn(result.file_key, result.signed_url)
        self.assertIn("op=put", result.signed_url)
        self.assertIn("expires=120", result.signed_url)
        self.assertEqual(
            self.storage.object_metadata[result.file_key],
            {"question": "q1", "email": "a@b.c"},
        )

    def test_view_url(self):
        result = self.gateway.get_view_url("q1/abc-a.py")
        self.assertEqual(result.file_key, "q1/abc-a.py")
        self.assertIn("op=get", result.signed_url)
        self.assertIn("expires=120", result.signed_url)

    def test_delete(self):
        self.storage.put_bytes("q1/abc-a.py", b"print(1)")
        messages = self.gateway.delete_object("q1/abc-a.py")
        self.assertTrue(messages.ok)
        self.assertEqual(messages.success[0].field, "Delete File")
        self.assertNotIn("q1/abc-a.py", self.storage.stored_objects)


class GatewayFailureTests(unittest.TestCase):
    def setUp(self):
        self.gateway = ObjectStorageGateway(FailingStorage())

    def test_upload_url_failure_is_structured(self):
        with self.assertLogs("challenge_backend.uploads", level="WARNING"):
            result = self.gateway.get_upload_url("a.py", "/")
        self.assertIsNone(result.signed_url)
        self.assertIsNone(result.file_key)
        self.assertEqual(result.errors[0].field, "signedUrl")
        self.assertIn("InvalidAccessKeyId", result.errors[0].message)

    def test_view_url_failure_is_structured(self):
        with self.assertLogs("challenge_backend.uploads", level="WARNING"):
            result = self.gateway.get_view_url("q1/abc-a.py")
        self.assertEqual(result.errors[0].field, "signedUrl")

    def test_delete_failure_is_reported(self):
        with self.assertLogs("challenge_backend.uploads", level="WARNING"):
            messages = self.gateway.delete_object("q1/abc-a.py")
        self.assertFalse(messages.ok)
        self.assertEqual(messages.errors[0].message, "Delete failed.")


if __name__ == "__main__":
    unittest.main()
