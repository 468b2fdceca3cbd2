from __future__ import annotations

import unittest
from unittest.mock import patch

from campus_api.errors import ConflictError
from campus_api.models import IdentifierPool, User, UserRole
from campus_api.schemas import UserCreate
from campus_api.services.identifier_pools import initialize_pool, is_available, pool_defaults
from campus_api.services.users import create_user
from helpers import DatabaseTestCase


class CreateUserTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        defaults = pool_defaults(IdentifierPool.STAFF_ID)
        initialize_pool(
            self.db,
            IdentifierPool.STAFF_ID,
            prefix=defaults.prefix,
            start=defaults.start,
            count=defaults.count,
        )

    def _payload(self) -> UserCreate:
        return UserCreate(
            name="Dr. Bello",
            email="bello@campus.test",
            password="long-enough-password",
            role=UserRole.LECTURER,
            staff_id="CMS/STAFF/2025/0000001",
        )

    def test_claims_staff_id(self) -> None:
        user = create_user(self.db, self._payload())

        self.assertEqual(user.staff_id, "CMS/STAFF/2025/0000001")
        self.assertFalse(is_available(self.db, IdentifierPool.STAFF_ID, "CMS/STAFF/2025/0000001"))

    def test_replenish_failure_keeps_created_user(self) -> None:
        with patch(
            "campus_api.services.users.auto_generate",
            side_effect=ConflictError("Generated identifiers collided.", code="POOL_CONFLICT"),
        ):
            with self.assertLogs("campus.users", level="ERROR") as captured:
                user = create_user(self.db, self._payload())

        self.assertTrue(any("pool_replenish_failed" in line for line in captured.output))
        stored = self.db.get(User, user.id)
        self.assertIsNotNone(stored)
        self.assertEqual(stored.staff_id, "CMS/STAFF/2025/0000001")
        self.assertFalse(is_available(self.db, IdentifierPool.STAFF_ID, "CMS/STAFF/2025/0000001"))


if __name__ == "__main__":
    unittest.main()
