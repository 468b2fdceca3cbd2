from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from campus_api.errors import ConflictError, NotFoundError
from campus_api.models import (
    ADMIN_NOTIFICATION_USER_ID,
    ExamAttemptStatus,
    ExamIntegrityStatus,
    UserRole,
)
from campus_api.schemas import AttemptUpdate, ExamCreate, ExamStatusUpdate
from campus_api.services.exam_integrity import (
    create_attempt,
    create_exam,
    list_approved_exams_for_course,
    list_attempts_for_exam,
    list_exams_for_lecturer,
    list_exams_for_review,
    list_notifications_for_user,
    mark_notification_seen,
    status_notification_message,
    update_attempt,
    update_exam_status,
)
from helpers import DatabaseTestCase, add_assigned_course, add_user


class ExamIntegrityServiceTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.lecturer = add_user(self.db, email="lecturer@campus.test", role=UserRole.LECTURER, name="Dr. Ada")
        self.course = add_assigned_course(self.db, self.lecturer, code="CSC201")

    def _create_exam(self, allowed_attempts: int = 2):  # type: ignore[no-untyped-def]
        start = datetime(2025, 11, 1, 9, 0, tzinfo=timezone.utc)
        return create_exam(
            self.db,
            self.lecturer.id,
            ExamCreate(
                title="Midterm",
                course_code="CSC201",
                questions=[{"q": "2+2?", "options": ["3", "4"], "answer": 1}],
                duration=60,
                allowed_attempts=allowed_attempts,
                start_date=start,
                end_date=start + timedelta(hours=2),
                access_code="MID-2025",
            ),
        )

    def test_create_exam_waits_for_review_and_notifies_admins(self) -> None:
        exam = self._create_exam()

        self.assertEqual(exam.status, ExamIntegrityStatus.PENDING_ADMIN_REVIEW)
        self.assertEqual([item.id for item in list_exams_for_review(self.db)], [exam.id])
        self.assertEqual([item.id for item in list_exams_for_lecturer(self.db, self.lecturer.id)], [exam.id])

        admin_notes = list_notifications_for_user(self.db, "admin-1", include_admin=True)
        self.assertEqual(len(admin_notes), 1)
        self.assertEqual(admin_notes[0].user_id, ADMIN_NOTIFICATION_USER_ID)
        self.assertEqual(admin_notes[0].message, 'New exam "Midterm" submitted by Dr. Ada for review')
        self.assertEqual(list_notifications_for_user(self.db, "admin-1"), [])

    def test_create_exam_for_unknown_course(self) -> None:
        start = datetime(2025, 11, 1, tzinfo=timezone.utc)
        with self.assertRaises(NotFoundError):
            create_exam(
                self.db,
                self.lecturer.id,
                ExamCreate(
                    title="Ghost exam",
                    course_code="NOPE999",
                    duration=30,
                    start_date=start,
                    end_date=start,
                    access_code="X",
                ),
            )

    def test_status_change_notifies_lecturer(self) -> None:
        exam = self._create_exam()

        updated = update_exam_status(
            self.db,
            exam.id,
            "admin-1",
            ExamStatusUpdate(status=ExamIntegrityStatus.DECLINED, rejection_reason="Too short"),
        )

        self.assertEqual(updated.status, ExamIntegrityStatus.DECLINED)
        self.assertEqual(updated.rejection_reason, "Too short")
        self.assertEqual(updated.reviewed_by, "admin-1")
        self.assertIsNotNone(updated.reviewed_at)

        notes = list_notifications_for_user(self.db, self.lecturer.id)
        self.assertEqual(len(notes), 1)
        self.assertEqual(notes[0].message, 'Your exam "Midterm" has been declined. Reason: Too short')
        self.assertFalse(notes[0].seen)

        seen = mark_notification_seen(self.db, notes[0].id, self.lecturer.id)
        self.assertTrue(seen.seen)
        with self.assertRaises(NotFoundError):
            mark_notification_seen(self.db, notes[0].id, "someone-else")

    def test_status_messages(self) -> None:
        approved = status_notification_message("Quiz", ExamStatusUpdate(status=ExamIntegrityStatus.APPROVED))
        review = status_notification_message("Quiz", ExamStatusUpdate(status=ExamIntegrityStatus.NEEDS_REVIEW))

        self.assertEqual(approved, 'Your exam "Quiz" has been approved and is now available to students.')
        self.assertEqual(review, 'Your exam "Quiz" has been sent back for review. Notes: Please review and resubmit')

    def test_attempt_requires_approved_exam(self) -> None:
        exam = self._create_exam()

        with self.assertRaises(ConflictError) as ctx:
            create_attempt(self.db, exam.id, "student-1")
        self.assertEqual(ctx.exception.code, "EXAM_NOT_APPROVED")

    def test_attempts_are_numbered_and_capped(self) -> None:
        exam = self._create_exam(allowed_attempts=2)
        update_exam_status(self.db, exam.id, "admin-1", ExamStatusUpdate(status=ExamIntegrityStatus.APPROVED))
        self.assertEqual([item.id for item in list_approved_exams_for_course(self.db, "CSC201")], [exam.id])

        first = create_attempt(self.db, exam.id, "student-1")
        second = create_attempt(self.db, exam.id, "student-1")
        other = create_attempt(self.db, exam.id, "student-2")

        self.assertEqual((first.attempt_number, second.attempt_number), (1, 2))
        self.assertEqual(other.attempt_number, 1)
        self.assertEqual(first.status, ExamAttemptStatus.IN_PROGRESS)

        with self.assertRaises(ConflictError) as ctx:
            create_attempt(self.db, exam.id, "student-1")
        self.assertEqual(ctx.exception.code, "MAX_ATTEMPTS_REACHED")
        self.assertEqual(len(list_attempts_for_exam(self.db, exam.id)), 3)

    def test_update_attempt_records_result(self) -> None:
        exam = self._create_exam(allowed_attempts=1)
        update_exam_status(self.db, exam.id, "admin-1", ExamStatusUpdate(status=ExamIntegrityStatus.APPROVED))
        attempt = create_attempt(self.db, exam.id, "student-1")

        updated = update_attempt(
            self.db,
            attempt.id,
            AttemptUpdate(status=ExamAttemptStatus.SUBMITTED, score=87.5, answers={"0": 1}),
        )

        self.assertEqual(updated.status, ExamAttemptStatus.SUBMITTED)
        self.assertEqual(updated.score, 87.5)
        self.assertEqual(updated.answers, {"0": 1})


if __name__ == "__main__":
    unittest.main()
