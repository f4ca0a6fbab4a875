import unittest

from fanmeet.auth import AuthUser, InMemoryAuthClient
from fanmeet.db import InMemoryDbClient, ProfileRecord
from fanmeet.errors import (
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from fanmeet.impersonation import impersonate_user


class ImpersonateUserTests(unittest.TestCase):
    def setUp(self):
        self.auth = InMemoryAuthClient()
        self.db = InMemoryDbClient()
        self.auth.add_user(AuthUser(id="admin-1", email="admin@example.com"), token="admin-token")
        self.auth.add_user(AuthUser(id="fan-1", email="fan@example.com"), token="fan-token")
        self.auth.add_user(AuthUser(id="ghost"))
        self.db.save_profile(ProfileRecord(id="admin-1", role="admin"))
        self.db.save_profile(ProfileRecord(id="fan-1", role="fan"))

    def test_admin_gets_magic_link_for_target(self):
        link = impersonate_user(self.auth, self.db, "admin-token", "fan-1")
        self.assertIn("type=magiclink", link)
        self.assertIn("fan@example.com", link)

    def test_requires_valid_token(self):
        with self.assertRaises(NotAuthenticatedError):
            impersonate_user(self.auth, self.db, None, "fan-1")
        with self.assertRaises(NotAuthenticatedError):
            impersonate_user(self.auth, self.db, "bogus", "fan-1")

    def test_non_admin_is_rejected(self):
        with self.assertRaises(PermissionDeniedError):
            impersonate_user(self.auth, self.db, "fan-token", "admin-1")

    def test_target_checks(self):
        with self.assertRaises(ValidationError):
            impersonate_user(self.auth, self.db, "admin-token", "")
        with self.assertRaises(NotFoundError):
            impersonate_user(self.auth, self.db, "admin-token", "missing")
        with self.assertRaises(ValidationError) as ctx:
            impersonate_user(self.auth, self.db, "admin-token", "ghost")
        self.assertEqual(ctx.exception.message, "Target user has no email")


if __name__ == "__main__":
    unittest.main()
