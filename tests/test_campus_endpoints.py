from __future__ import annotations

import unittest

from campus_api.models import UserRole
from helpers import ApiTestCase, add_academic_session, add_assigned_course, add_user, bearer

ADMIN = bearer("admin-1", UserRole.ADMIN)


class AdminUserEndpointTests(ApiTestCase):
    def test_create_student_claims_registration_number(self) -> None:
        self.client.post("/api/registration-numbers/initialize", headers=ADMIN)

        response = self.client.post(
            "/api/admin/users",
            headers=ADMIN,
            json={
                "name": "Chidi Okafor",
                "email": "Chidi@Campus.test",
                "password": "long-enough-password",
                "role": "STUDENT",
                "registrationNumber": "CMS/2025/0000002",
            },
        )

        self.assertEqual(response.status_code, 201, response.text)
        user = response.json()["data"]
        self.assertEqual(user["email"], "chidi@campus.test")
        self.assertEqual(user["registrationNumber"], "CMS/2025/0000002")

        available = self.client.get("/api/registration-numbers/available", headers=ADMIN).json()["data"]
        self.assertNotIn("CMS/2025/0000002", available)

        duplicate = self.client.post(
            "/api/admin/users",
            headers=ADMIN,
            json={
                "name": "Someone Else",
                "email": "else@campus.test",
                "password": "long-enough-password",
                "role": "STUDENT",
                "registrationNumber": "CMS/2025/0000002",
            },
        )
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["errors"][0]["code"], "POOL_ENTRY_UNAVAILABLE")

        listed = self.client.get("/api/admin/users", headers=ADMIN, params={"role": "STUDENT"}).json()
        self.assertEqual(listed["meta"], {"total": 1})

    def test_lecturer_cannot_claim_registration_number(self) -> None:
        response = self.client.post(
            "/api/admin/users",
            headers=ADMIN,
            json={
                "name": "Dr. Bello",
                "email": "bello@campus.test",
                "password": "long-enough-password",
                "role": "LECTURER",
                "registrationNumber": "CMS/2025/0000002",
            },
        )

        self.assertEqual(response.status_code, 400)


class AttendanceEndpointTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.lecturer = add_user(self.db, email="lecturer@campus.test", role=UserRole.LECTURER)
        self.course = add_assigned_course(self.db, self.lecturer)
        self.lecturer_headers = bearer(self.lecturer.id, UserRole.LECTURER)
        self.student_headers = bearer("student-1", UserRole.STUDENT)

    def test_lecturer_opens_session_and_student_checks_in(self) -> None:
        opened = self.client.post(
            "/attendance/sessions",
            headers=self.lecturer_headers,
            json={
                "courseId": self.course.id,
                "scheduledAt": "2025-10-01T09:00:00Z",
                "mode": "QR",
                "metadata": {"room": "LT1"},
            },
        )
        self.assertEqual(opened.status_code, 201, opened.text)
        session = opened.json()["data"]
        self.assertEqual(session["metadata"], {"room": "LT1"})
        self.assertEqual(session["status"], "SCHEDULED")

        for _ in range(2):
            checked_in = self.client.post(
                "/attendance/qr-checkin",
                headers=self.student_headers,
                json={"sessionId": session["id"], "token": session["qrToken"]},
            )
            self.assertEqual(checked_in.status_code, 200, checked_in.text)

        records = self.client.get("/attendance/records/me", headers=self.student_headers).json()["data"]
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]["status"], "PRESENT")

        listed = self.client.get("/attendance/sessions", headers=self.lecturer_headers).json()["data"]
        self.assertEqual([item["id"] for item in listed], [session["id"]])

    def test_students_cannot_open_sessions(self) -> None:
        response = self.client.post(
            "/attendance/sessions",
            headers=self.student_headers,
            json={"courseId": self.course.id, "scheduledAt": "2025-10-01T09:00:00Z", "mode": "QR"},
        )

        self.assertEqual(response.status_code, 403)


class ExamEndpointTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.lecturer = add_user(self.db, email="lecturer@campus.test", role=UserRole.LECTURER, name="Dr. Ada")
        add_assigned_course(self.db, self.lecturer, code="CSC201")
        self.lecturer_headers = bearer(self.lecturer.id, UserRole.LECTURER)
        self.student_headers = bearer("student-1", UserRole.STUDENT)

    def _submit_exam(self) -> dict:
        response = self.client.post(
            "/api/exams",
            headers=self.lecturer_headers,
            json={
                "title": "Midterm",
                "courseCode": "CSC201",
                "questions": [{"q": "2+2?", "answer": "4"}],
                "duration": 60,
                "allowedAttempts": 1,
                "startDate": "2025-11-01T09:00:00Z",
                "endDate": "2025-11-01T11:00:00Z",
                "accessCode": "MID-2025",
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]

    def test_review_cycle(self) -> None:
        exam = self._submit_exam()
        self.assertNotIn("accessCode", exam)

        admin_inbox = self.client.get("/api/notifications/me", headers=ADMIN).json()["data"]
        self.assertEqual(admin_inbox[0]["message"], 'New exam "Midterm" submitted by Dr. Ada for review')

        blocked = self.client.post("/api/attempts", headers=self.student_headers, json={"examId": exam["id"]})
        self.assertEqual(blocked.status_code, 409)
        self.assertEqual(blocked.json()["errors"][0]["code"], "EXAM_NOT_APPROVED")

        approved = self.client.put(f"/api/exams/{exam['id']}/status", headers=ADMIN, json={"status": "APPROVED"})
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.json()["data"]["reviewedBy"], "admin-1")

        lecturer_inbox = self.client.get("/api/notifications/me", headers=self.lecturer_headers).json()["data"]
        self.assertEqual(len(lecturer_inbox), 1)
        seen = self.client.put(f"/api/notifications/{lecturer_inbox[0]['id']}/seen", headers=self.lecturer_headers)
        self.assertTrue(seen.json()["data"]["seen"])

        attempt = self.client.post("/api/attempts", headers=self.student_headers, json={"examId": exam["id"]})
        self.assertEqual(attempt.status_code, 201)
        self.assertEqual(attempt.json()["data"]["attemptNumber"], 1)

        again = self.client.post("/api/attempts", headers=self.student_headers, json={"examId": exam["id"]})
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["errors"][0]["code"], "MAX_ATTEMPTS_REACHED")

        mine = self.client.get("/api/attempts/student/student-1", headers=self.student_headers).json()["data"]
        self.assertEqual(len(mine), 1)
        other = self.client.get("/api/attempts/student/student-2", headers=self.student_headers)
        self.assertEqual(other.status_code, 403)

    def test_status_change_requires_admin(self) -> None:
        exam = self._submit_exam()

        response = self.client.put(
            f"/api/exams/{exam['id']}/status",
            headers=self.lecturer_headers,
            json={"status": "APPROVED"},
        )

        self.assertEqual(response.status_code, 403)


class SessionRegistrationEndpointTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.student = add_user(self.db, email="student@campus.test", role=UserRole.STUDENT)
        self.student_headers = bearer(self.student.id, UserRole.STUDENT)

    def test_paid_registration_verified_by_admin(self) -> None:
        session = add_academic_session(self.db, requires_payment=True)

        public = self.client.get("/api/sessions").json()["data"]
        self.assertEqual([item["id"] for item in public], [session.id])

        registered = self.client.post(
            f"/api/students/{self.student.id}/session",
            headers=self.student_headers,
            json={"sessionId": session.id},
        )
        self.assertEqual(registered.status_code, 201, registered.text)
        registration = registered.json()["data"]
        self.assertEqual(registration["status"], "PAYMENT_PENDING")
        self.assertEqual(registration["session"]["id"], session.id)

        current = self.client.get(f"/api/students/{self.student.id}/session", headers=self.student_headers)
        self.assertIsNone(current.json()["data"])

        verified = self.client.post(
            f"/api/admin/session-registrations/{registration['id']}/verify-payment",
            headers=ADMIN,
            json={"notes": "Receipt checked"},
        )
        self.assertEqual(verified.status_code, 200)
        self.assertEqual(verified.json()["data"]["status"], "PAYMENT_VERIFIED")

        current = self.client.get(f"/api/students/{self.student.id}/session", headers=self.student_headers)
        self.assertEqual(current.json()["data"]["id"], registration["id"])

    def test_student_cannot_register_someone_else(self) -> None:
        session = add_academic_session(self.db)

        response = self.client.post(
            "/api/students/another-student/session",
            headers=self.student_headers,
            json={"sessionId": session.id},
        )

        self.assertEqual(response.status_code, 403)

    def test_admin_session_crud(self) -> None:
        created = self.client.post(
            "/api/admin/sessions",
            headers=ADMIN,
            json={"name": "2026/2027", "startDate": "2026-09-01T00:00:00Z", "endDate": "2027-07-01T00:00:00Z"},
        )
        self.assertEqual(created.status_code, 201, created.text)
        session_id = created.json()["data"]["id"]

        empty = self.client.put(f"/api/admin/sessions/{session_id}", headers=ADMIN, json={})
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.json()["errors"][0]["code"], "NO_FIELDS")

        updated = self.client.put(f"/api/admin/sessions/{session_id}", headers=ADMIN, json={"status": "ACTIVE"})
        self.assertEqual(updated.json()["data"]["status"], "ACTIVE")

        deleted = self.client.delete(f"/api/admin/sessions/{session_id}", headers=ADMIN)
        self.assertEqual(deleted.status_code, 204)
        self.assertEqual(self.client.get("/api/admin/sessions", headers=ADMIN).json()["data"], [])


class HealthEndpointTests(ApiTestCase):
    def test_liveness(self) -> None:
        response = self.client.get("/health/live")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
