import os
import tempfile
import unittest
from pathlib import Path

from frostdkg.errors import StateNotFound, StorageError
from frostdkg.store import (
    FileStore,
    MemoryStore,
    group_key,
    keygen_key,
    session_key,
)


class KeyTests(unittest.TestCase):
    def test_key_layout(self):
        self.assertEqual(keygen_key("k", 2, "polynomial"), "keygen/k/2/polynomial")
        self.assertEqual(group_key("k"), "keygen/k/group")
        self.assertEqual(session_key("k", "msg1", 3, "nonce"), "signing/k/msg1/3/nonce")

    def test_components_are_quoted(self):
        self.assertEqual(session_key("k", "a/b", 1, "nonce"), "signing/k/a%2Fb/1/nonce")
        self.assertNotEqual(session_key("k", "a/b", 1, "nonce"), session_key("k/a", "b", 1, "nonce"))


class StoreContract:
    """Checks every SessionStore backend must pass."""

    def make_store(self):
        raise NotImplementedError

    def test_read_missing(self):
        store = self.make_store()
        with self.assertRaises(StateNotFound):
            store.read("keygen/k/1/polynomial")
        self.assertFalse(store.exists("keygen/k/1/polynomial"))

    def test_write_read_delete(self):
        store = self.make_store()
        store.write("keygen/k/1/polynomial", b"one")
        store.write("keygen/k/1/polynomial", b"two")
        self.assertEqual(store.read("keygen/k/1/polynomial"), b"two")
        self.assertTrue(store.exists("keygen/k/1/polynomial"))

        store.delete("keygen/k/1/polynomial")
        self.assertFalse(store.exists("keygen/k/1/polynomial"))
        store.delete("keygen/k/1/polynomial")

    def test_json_records(self):
        store = self.make_store()
        store.write_json("keygen/k/group", {"threshold": 2, "n_parties": 3})
        self.assertEqual(store.read_json("keygen/k/group"), {"threshold": 2, "n_parties": 3})

    def test_missing_record_carries_hint(self):
        store = self.make_store()
        with self.assertRaises(StateNotFound) as ctx:
            store.read_json("keygen/k/1/secret_share", hint="run keygen-finalize first")
        self.assertEqual(ctx.exception.key, "keygen/k/1/secret_share")
        self.assertIn("run keygen-finalize first", str(ctx.exception))

    def test_corrupt_record(self):
        store = self.make_store()
        store.write("keygen/k/group", b"{not json")
        with self.assertRaises(StorageError) as ctx:
            store.read_json("keygen/k/group")
        self.assertNotIsInstance(ctx.exception, StateNotFound)

        store.write("keygen/k/group", b"[1, 2]")
        with self.assertRaises(StorageError):
            store.read_json("keygen/k/group")

    def test_read_record(self):
        store = self.make_store()
        store.write_json("keygen/k/group", {"threshold": 2})
        self.assertEqual(store.read_record("keygen/k/group", lambda r: r["threshold"]), 2)

        # Valid JSON with a missing field
        with self.assertRaises(StorageError) as ctx:
            store.read_record("keygen/k/group", lambda r: r["n_parties"])
        self.assertNotIsInstance(ctx.exception, StateNotFound)
        self.assertIn("corrupt", str(ctx.exception))

        with self.assertRaises(StorageError):
            store.read_record("keygen/k/group", lambda r: int("two"))

        with self.assertRaises(StateNotFound):
            store.read_record("keygen/k/absent", lambda r: r)


class MemoryStoreTests(StoreContract, unittest.TestCase):
    def make_store(self):
        return MemoryStore()

    def test_keys(self):
        store = MemoryStore()
        store.write("b", b"")
        store.write("a", b"")
        self.assertEqual(store.keys(), ["a", "b"])


class FileStoreTests(StoreContract, unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def make_store(self):
        return FileStore(Path(self.tmpdir.name) / "state")

    def test_persists_across_instances(self):
        FileStore(self.tmpdir.name).write("signing/k/s/1/nonce", b"data")
        self.assertEqual(FileStore(self.tmpdir.name).read("signing/k/s/1/nonce"), b"data")

    def test_one_flat_file_per_key(self):
        store = FileStore(self.tmpdir.name)
        store.write("signing/k/s/1/nonce", b"data")
        self.assertEqual(os.listdir(self.tmpdir.name), ["signing%2Fk%2Fs%2F1%2Fnonce"])

    def test_unwritable_directory(self):
        blocker = Path(self.tmpdir.name) / "file"
        blocker.write_bytes(b"")
        store = FileStore(blocker / "state")
        with self.assertRaises(StorageError):
            store.write("keygen/k/group", b"{}")


if __name__ == "__main__":
    unittest.main()
