import os
import pathlib
import tempfile
import unittest
from unittest.mock import patch

import set_env_vars


class TestParseDotenv(unittest.TestCase):
    def test_parse(self):
        pairs = set_env_vars._parse_dotenv(
            "# comment\n"
            "export OPENAI_API_KEY=sk-1\n"
            "MONGO_URI=\"mongodb://localhost\"\n"
            "GEMINI_MODEL='gemini-pro'\n"
            "not a pair\n"
            "=nokey\n"
        )
        self.assertEqual(
            pairs,
            {"OPENAI_API_KEY": "sk-1", "MONGO_URI": "mongodb://localhost", "GEMINI_MODEL": "gemini-pro"},
        )

    def test_missing_file(self):
        self.assertEqual(set_env_vars._load_dotenv_file(pathlib.Path("/nonexistent/.env")), {})


class TestInitializeEnvVars(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.env_file = pathlib.Path(self.tmp.name) / "test.env"

    def _init(self, content, environ, **kwargs):
        self.env_file.write_text(content, encoding="utf-8")
        with patch.dict(os.environ, environ, clear=True):
            status = set_env_vars.initialize_env_vars(dotenv_paths=[str(self.env_file)], **kwargs)
            return status, dict(os.environ)

    def test_known_keys_only(self):
        status, env = self._init("OPENAI_API_KEY=sk-file\nRANDOM_SECRET=x\n", {})
        self.assertEqual(env.get("OPENAI_API_KEY"), "sk-file")
        self.assertNotIn("RANDOM_SECRET", env)
        self.assertTrue(status["openai_api_key_set"])
        self.assertFalse(status["anthropic_api_key_set"])

    def test_existing_values_win_unless_overridden(self):
        _, env = self._init("OPENAI_API_KEY=sk-file\n", {"OPENAI_API_KEY": "sk-shell"})
        self.assertEqual(env["OPENAI_API_KEY"], "sk-shell")
        _, env = self._init("OPENAI_API_KEY=sk-file\n", {"OPENAI_API_KEY": "sk-shell"}, override_existing=True)
        self.assertEqual(env["OPENAI_API_KEY"], "sk-file")

    def test_google_key_feeds_gemini(self):
        status, env = self._init("GOOGLE_API_KEY=g-1\n", {})
        self.assertEqual(env["GEMINI_API_KEY"], "g-1")
        self.assertTrue(status["gemini_api_key_set"])


if __name__ == "__main__":
    unittest.main()
