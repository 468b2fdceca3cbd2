from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import select

from campus_api.db import get_session_factory
from campus_api.main import app
from campus_api.models import AuditLog, User, UserRole, UserStatus
from campus_api.services.users import record_last_login
from helpers import DEFAULT_PASSWORD, ApiTestCase, add_user, bearer


def _unreachable_database():  # type: ignore[no-untyped-def]
    raise RuntimeError("database went away")


class AuthEndpointTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = add_user(self.db, email="ada@campus.test", role=UserRole.STUDENT, name="Ada")

    def _login(self, password: str = DEFAULT_PASSWORD, email: str = "ada@campus.test"):  # type: ignore[no-untyped-def]
        return self.client.post("/auth/login", json={"email": email, "password": password})

    def test_login_returns_token_and_stamps_last_login(self) -> None:
        response = self._login(email="  ADA@campus.test ")

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["tokenType"], "bearer")
        self.assertEqual(data["expiresIn"], 3600)
        self.assertEqual(data["user"]["email"], "ada@campus.test")
        self.assertEqual(data["user"]["role"], "STUDENT")
        self.assertNotIn("passwordHash", data["user"])

        me = self.client.get("/auth/me", headers={"Authorization": f"Bearer {data['accessToken']}"})
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["data"]["id"], self.user.id)

        with self.fresh_session() as db:
            self.assertIsNotNone(db.get(User, self.user.id).last_login_at)

    def test_wrong_password_is_rejected_and_audited(self) -> None:
        response = self._login(password="not-the-password")

        self.assertEqual(response.status_code, 401)
        body = response.json()
        self.assertEqual(body["errors"][0]["code"], "INVALID_CREDENTIALS")
        self.assertTrue(body["requestId"])

        with self.fresh_session() as db:
            audit = db.scalars(select(AuditLog)).one()
            self.assertEqual(audit.action, "LOGIN_FAIL")
            self.assertFalse(audit.success)
            self.assertEqual(audit.details, {"reason": "INVALID_CREDENTIALS"})

    def test_inactive_account_is_forbidden(self) -> None:
        add_user(self.db, email="gone@campus.test", role=UserRole.STUDENT, status=UserStatus.SUSPENDED)

        response = self._login(email="gone@campus.test")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["errors"][0]["code"], "ACCOUNT_INACTIVE")

    def test_repeated_failures_are_rate_limited(self) -> None:
        for _ in range(10):
            self.assertEqual(self._login(password="wrong-password").status_code, 401)

        response = self._login()

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["errors"][0]["code"], "TOO_MANY_ATTEMPTS")

    def test_protected_route_without_token(self) -> None:
        response = self.client.get("/auth/me")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["errors"][0]["code"], "INVALID_TOKEN")

    def test_tampered_token_is_rejected(self) -> None:
        headers = bearer(self.user.id, UserRole.STUDENT)
        headers["Authorization"] += "x"

        response = self.client.get("/auth/me", headers=headers)

        self.assertEqual(response.status_code, 401)

    def test_request_id_is_echoed(self) -> None:
        response = self.client.get("/auth/me", headers={"X-Request-Id": "req-42"})

        self.assertEqual(response.headers["X-Request-Id"], "req-42")
        self.assertEqual(response.json()["requestId"], "req-42")

    def test_last_login_failure_is_logged_not_raised(self) -> None:
        app.dependency_overrides[get_session_factory] = lambda: _unreachable_database

        with self.assertLogs("campus.auth.last_login", level="ERROR") as captured:
            response = self._login()

        self.assertEqual(response.status_code, 200)
        self.assertTrue(any("last_login_update_failed" in line for line in captured.output))

    def test_record_last_login_ignores_unknown_user(self) -> None:
        with patch("campus_api.services.users.last_login_logger") as fake_logger:
            record_last_login(self.session_factory, "missing-user")

        fake_logger.exception.assert_not_called()


if __name__ == "__main__":
    unittest.main()
