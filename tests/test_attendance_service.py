from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy import func, select

from campus_api.errors import ForbiddenError, NotFoundError, ValidationFailedError
from campus_api.models import (
    AttendanceMode,
    AttendanceRecord,
    AttendanceSessionStatus,
    AttendanceStatus,
    Course,
    UserRole,
)
from campus_api.schemas import AttendanceSessionCreate
from campus_api.services.attendance import create_session, list_sessions, list_student_records, qr_check_in
from helpers import DatabaseTestCase, add_assigned_course, add_user


class AttendanceServiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.lecturer = add_user(self.db, email="lecturer@campus.test", role=UserRole.LECTURER)
        self.course = add_assigned_course(self.db, self.lecturer)

    def _session_payload(self, course_id: str | None = None) -> AttendanceSessionCreate:
        return AttendanceSessionCreate(
            course_id=course_id or self.course.id,
            scheduled_at=datetime(2025, 10, 1, 9, 0, tzinfo=timezone.utc),
            mode=AttendanceMode.QR,
            metadata={"room": "LT1"},
        )

    def test_create_session_for_assigned_lecturer(self) -> None:
        session = create_session(self.db, self.lecturer.id, self._session_payload())

        self.assertEqual(session.status, AttendanceSessionStatus.SCHEDULED)
        self.assertEqual(session.lecturer_id, self.lecturer.id)
        self.assertEqual(session.session_metadata, {"room": "LT1"})
        self.assertTrue(session.qr_token)
        self.assertEqual([item.id for item in list_sessions(self.db, self.lecturer.id)], [session.id])
        self.assertEqual(list_sessions(self.db, self.lecturer.id, AttendanceSessionStatus.CLOSED), [])

    def test_create_session_rejects_unassigned_lecturer(self) -> None:
        other = add_user(self.db, email="other@campus.test", role=UserRole.LECTURER)

        with self.assertRaises(ForbiddenError) as ctx:
            create_session(self.db, other.id, self._session_payload())
        self.assertEqual(ctx.exception.code, "NOT_ASSIGNED")

    def test_create_session_rejects_course_without_semester(self) -> None:
        course = Course(code="GST101", title="Use of English")
        self.db.add(course)
        self.db.commit()

        with self.assertRaises(ValidationFailedError) as ctx:
            create_session(self.db, self.lecturer.id, self._session_payload(course.id))
        self.assertEqual(ctx.exception.code, "COURSE_INCOMPLETE")

    def test_create_session_unknown_course(self) -> None:
        with self.assertRaises(NotFoundError):
            create_session(self.db, self.lecturer.id, self._session_payload("missing"))

    def test_repeated_check_in_keeps_one_record(self) -> None:
        session = create_session(self.db, self.lecturer.id, self._session_payload())
        first_time = datetime(2025, 10, 1, 9, 5, tzinfo=timezone.utc)
        second_time = datetime(2025, 10, 1, 9, 20, tzinfo=timezone.utc)

        with patch("campus_api.services.attendance.datetime") as clock:
            clock.now.side_effect = [first_time, second_time]
            first = qr_check_in(self.db, session.id, "student-1", "token", location={"lat": 6.5, "lng": 3.4})
            first_id = first.id
            second = qr_check_in(self.db, session.id, "student-1", "token", device={"ua": "phone"})

        count = self.db.scalar(
            select(func.count()).select_from(AttendanceRecord).where(AttendanceRecord.session_id == session.id)
        )
        self.assertEqual(count, 1)
        self.assertEqual(second.id, first_id)
        # SQLite hands datetimes back without tzinfo.
        self.assertEqual(second.checked_in_at.replace(tzinfo=None), second_time.replace(tzinfo=None))
        self.assertEqual(second.status, AttendanceStatus.PRESENT)
        self.assertEqual(second.mode, AttendanceMode.QR)
        self.assertIsNone(second.location)
        self.assertEqual(second.device_info, {"ua": "phone"})
        self.assertEqual([item.id for item in list_student_records(self.db, "student-1")], [first_id])

    def test_check_in_unknown_session(self) -> None:
        with self.assertRaises(NotFoundError):
            qr_check_in(self.db, "missing", "student-1", "token")


if __name__ == "__main__":
    unittest.main()
