from __future__ import annotations

import unittest

from sqlalchemy import select

from campus_api.models import AuditLog, UserRole
from helpers import ApiTestCase, bearer

ADMIN = bearer("admin-1", UserRole.ADMIN)


class RegistrationNumberEndpointTests(ApiTestCase):
    def test_available_initializes_empty_pool(self) -> None:
        response = self.client.get("/api/registration-numbers/available", headers=ADMIN)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["data"][0], "CMS/2025/0000002")
        self.assertEqual(len(body["data"]), 91)
        self.assertEqual(body["meta"], {"available": 91, "total": 91, "poolInitialized": True})

        again = self.client.get("/api/registration-numbers/available", headers=ADMIN).json()
        self.assertFalse(again["meta"]["poolInitialized"])

    def test_mark_used_twice_is_rejected(self) -> None:
        self.client.post("/api/registration-numbers/initialize", headers=ADMIN)

        first = self.client.post(
            "/api/registration-numbers/mark-used",
            headers=ADMIN,
            json={"registrationNumber": "CMS/2025/0000002"},
        )
        second = self.client.post(
            "/api/registration-numbers/mark-used",
            headers=ADMIN,
            json={"registrationNumber": "CMS/2025/0000002"},
        )

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["data"], {"value": "CMS/2025/0000002", "used": True})
        self.assertEqual(second.status_code, 400)
        self.assertEqual(second.json()["errors"][0]["code"], "POOL_ENTRY_UNAVAILABLE")

        available = self.client.get("/api/registration-numbers/available", headers=ADMIN).json()
        self.assertNotIn("CMS/2025/0000002", available["data"])
        self.assertEqual(available["meta"]["available"], 90)

        with self.fresh_session() as db:
            outcomes = [row.success for row in db.scalars(select(AuditLog).order_by(AuditLog.id)).all()]
        self.assertEqual(outcomes, [True, True, False])

    def test_initialize_is_idempotent(self) -> None:
        first = self.client.post("/api/registration-numbers/initialize", headers=ADMIN).json()["data"]
        second = self.client.post("/api/registration-numbers/initialize", headers=ADMIN).json()["data"]

        self.assertEqual(first, {"initialized": True, "count": 91})
        self.assertEqual(second, {"initialized": False, "count": 91})

    def test_auto_generate_skips_healthy_pool(self) -> None:
        self.client.post("/api/registration-numbers/initialize", headers=ADMIN)

        response = self.client.post("/api/registration-numbers/auto-generate", headers=ADMIN)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"generated": 0, "newCount": 91})

    def test_pool_routes_require_admin(self) -> None:
        student = bearer("student-1", UserRole.STUDENT)

        self.assertEqual(self.client.get("/api/registration-numbers/available", headers=student).status_code, 403)
        self.assertEqual(self.client.get("/api/registration-numbers/available").status_code, 401)


class StaffIdEndpointTests(ApiTestCase):
    def test_staff_pool_is_separate(self) -> None:
        self.client.post("/api/registration-numbers/initialize", headers=ADMIN)

        response = self.client.get("/api/staff-ids/available", headers=ADMIN)

        body = response.json()
        self.assertEqual(body["data"][0], "CMS/STAFF/2025/0000001")
        self.assertTrue(body["meta"]["poolInitialized"])

        used = self.client.post("/api/staff-ids/mark-used", headers=ADMIN, json={"staffId": "CMS/STAFF/2025/0000001"})
        self.assertEqual(used.status_code, 200)

    def test_mark_used_validates_body(self) -> None:
        response = self.client.post("/api/staff-ids/mark-used", headers=ADMIN, json={})

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["errors"][0]["code"], "VALIDATION_ERROR")
        self.assertEqual(body["errors"][0]["details"][0]["field"], "staffId")


if __name__ == "__main__":
    unittest.main()
