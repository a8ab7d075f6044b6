import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from frostdkg.config import FrostConfig
from frostdkg.errors import ConfigurationError


class Tests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)

    def write_config(self, text):
        path = Path(self.tmpdir.name) / "frost.toml"
        path.write_text(text)
        return path

    def test_defaults(self):
        config = FrostConfig()
        self.assertEqual(config.state_dir, Path(".frost_state"))
        self.assertEqual(config.key_id, "default")
        self.assertIsNone(config.my_index)
        config.validate()

    def test_from_file(self):
        path = self.write_config(
            'state_dir = "/var/lib/frost"\nkey_id = "treasury"\nmy_index = 2\nlog_level = "DEBUG"\n'
        )
        config = FrostConfig.from_file(path)
        self.assertEqual(config.state_dir, Path("/var/lib/frost"))
        self.assertEqual(config.key_id, "treasury")
        self.assertEqual(config.my_index, 2)
        self.assertEqual(config.log_level, "DEBUG")

    def test_from_file_missing(self):
        with self.assertRaises(ConfigurationError):
            FrostConfig.from_file(Path(self.tmpdir.name) / "absent.toml")

    def test_from_file_invalid(self):
        with self.assertRaises(ConfigurationError):
            FrostConfig.from_file(self.write_config("key_id = "))
        with self.assertRaises(ConfigurationError):
            FrostConfig.from_file(self.write_config('my_index = "two"'))

    def test_from_env(self):
        env = {
            "FROST_STATE_DIR": "/tmp/frost",
            "FROST_KEY_ID": "k",
            "FROST_MY_INDEX": "3",
            "LOG_LEVEL": "info",
        }
        with mock.patch.dict(os.environ, env):
            config = FrostConfig.from_env()
        self.assertEqual(config.state_dir, Path("/tmp/frost"))
        self.assertEqual(config.key_id, "k")
        self.assertEqual(config.my_index, 3)
        config.validate()

    def test_from_env_bad_index(self):
        with mock.patch.dict(os.environ, {"FROST_MY_INDEX": "first"}):
            with self.assertRaises(ConfigurationError):
                FrostConfig.from_env()

    def test_validate(self):
        with self.assertRaises(ConfigurationError):
            FrostConfig(key_id="").validate()
        with self.assertRaises(ConfigurationError):
            FrostConfig(my_index=0).validate()
        with self.assertRaises(ConfigurationError):
            FrostConfig(log_level="LOUD").validate()


if __name__ == "__main__":
    unittest.main()
