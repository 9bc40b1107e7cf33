import json
import os
import unittest
from unittest.mock import patch

from pydantic import ValidationError


class RepoBindingTests(unittest.TestCase):
    def test_owner_and_name_split(self):
        from hashi.config import RepoBinding

        b = RepoBinding(workspace="W", project="P", repo=" acme/widgets ", github_user="alice")
        self.assertEqual(b.repo, "acme/widgets")
        self.assertEqual(b.owner, "acme")
        self.assertEqual(b.name, "widgets")

    def test_repo_must_be_owner_slash_name(self):
        from hashi.config import RepoBinding

        for bad in ("acme", "acme/", "/widgets", "a/b/c"):
            with self.assertRaises(ValidationError):
                RepoBinding(workspace="W", project="P", repo=bad, github_user="alice")

    def test_matches_is_case_insensitive_and_requires_assignee(self):
        from hashi.config import RepoBinding

        b = RepoBinding(workspace="W", project="P", repo="acme/widgets", github_user="alice")
        self.assertTrue(b.matches("Acme", "Widgets", "ALICE"))
        self.assertFalse(b.matches("acme", "widgets", None))
        self.assertFalse(b.matches("acme", "widgets", "bob"))
        self.assertFalse(b.matches("acme", "gadgets", "alice"))


class SettingsTests(unittest.TestCase):
    def test_bindings_parsed_from_json_env(self):
        from hashi.config import Settings

        raw = json.dumps(
            [{"workspace": "W", "project": "P", "repo": "acme/widgets", "github_user": "alice"}]
        )
        with patch.dict(os.environ, {"BINDINGS": raw, "POLL_INTERVAL_MINUTES": "5"}):
            s = Settings()

        self.assertEqual(len(s.bindings), 1)
        self.assertEqual(s.bindings[0].owner, "acme")
        self.assertEqual(s.poll_interval_minutes, 5)

    def test_webhook_url_joins_public_url(self):
        from hashi.config import Settings

        s = Settings(public_url="https://hashi.example.com/")
        self.assertEqual(s.webhook_url, "https://hashi.example.com/webhooks/github")


if __name__ == "__main__":
    unittest.main()
