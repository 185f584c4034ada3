import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from famhub.errors import ValidationError
from famhub.storage import (
    InMemoryUploadStorage,
    LocalUploadStorage,
    normalize_folder,
)


class LocalUploadStorageTests(unittest.TestCase):
    def setUp(self):
        self.public_root = tempfile.mkdtemp()
        self.storage = LocalUploadStorage(self.public_root)

    def tearDown(self):
        shutil.rmtree(self.public_root, ignore_errors=True)

    @patch("famhub.storage.time.time", return_value=1700000000.5)
    def test_saves_under_timestamped_name(self, _):
        url = self.storage.save("albums/2024", "photo.png", b"png-bytes")

        self.assertEqual(url, "/uploads/albums/2024/1700000000500.png")
        path = os.path.join(self.public_root, "uploads", "albums", "2024", "1700000000500.png")
        with open(path, "rb") as f:
            self.assertEqual(f.read(), b"png-bytes")

    @patch("famhub.storage.time.time", return_value=1.0)
    def test_file_without_extension(self, _):
        url = self.storage.save("misc", "README", b"x")
        self.assertEqual(url, "/uploads/misc/1000")


class NormalizeFolderTests(unittest.TestCase):
    def test_strips_slashes(self):
        self.assertEqual(normalize_folder("/albums/2024/"), "albums/2024")
        self.assertEqual(normalize_folder("albums\\2024"), "albums/2024")

    def test_keeps_names_starting_with_dots(self):
        self.assertEqual(normalize_folder("..photos"), "..photos")
        self.assertEqual(normalize_folder("..photos/2024"), "..photos/2024")
        self.assertEqual(normalize_folder("albums/..hidden"), "albums/..hidden")

    def test_rejects_escape_and_empty(self):
        for bad in ("", "   ", "..", "../etc", "a/../../b", "."):
            with self.assertRaises(ValidationError):
                normalize_folder(bad)


class InMemoryUploadStorageTests(unittest.TestCase):
    def test_keeps_bytes_by_key(self):
        storage = InMemoryUploadStorage()
        url = storage.save("family/Smith", "clip.mp4", b"video")
        key = url.lstrip("/")
        self.assertEqual(storage.stored_objects[key], b"video")
        self.assertTrue(key.startswith("uploads/family/Smith/"))
        self.assertTrue(key.endswith(".mp4"))


if __name__ == "__main__":
    unittest.main()
