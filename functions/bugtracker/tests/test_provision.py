import unittest
from unittest.mock import patch

from bugtracker.config import Settings
from bugtracker.db import InMemoryDbClient
from bugtracker.security import verify_password
from bugtracker.types import UserRole
from scripts import provision


class ProvisionScriptTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        settings = Settings(seed_username="root-dev", seed_password="bootstrap")
        for target, value in (("get_db_client", self.db), ("get_settings", settings)):
            patcher = patch(f"scripts.provision.{target}", return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_creates_seed_account_by_default(self):
        self.assertEqual(provision.main([]), 0)
        seed = self.db.get_user_by_username("root-dev")
        self.assertIsNotNone(seed)
        self.assertEqual(seed.role, UserRole.DEVELOPER)

    def test_skip_seed(self):
        self.assertEqual(provision.main(["--skip-seed"]), 0)
        self.assertEqual(self.db.list_users(), [])

    def test_creates_user(self):
        code = provision.main(
            [
                "--skip-seed",
                "--username",
                "alice",
                "--name",
                "Alice",
                "--role",
                "developer",
                "--password",
                "pw",
            ]
        )
        self.assertEqual(code, 0)
        user = self.db.get_user_by_username("alice")
        self.assertEqual(user.name, "Alice")
        self.assertEqual(user.role, UserRole.DEVELOPER)
        self.assertTrue(verify_password("pw", user.password_hash))

    def test_duplicate_username_exits_with_error(self):
        args = ["--skip-seed", "--username", "alice", "--password", "pw"]
        self.assertEqual(provision.main(args), 0)
        with self.assertLogs("scripts.provision", level="ERROR"):
            self.assertEqual(provision.main(args), 1)
        self.assertEqual(len(self.db.list_users()), 1)


if __name__ == "__main__":
    unittest.main()
