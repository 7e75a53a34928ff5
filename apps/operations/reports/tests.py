from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from apps.core.attendance.models import AttendanceSession, SessionPresence
from apps.core.courses.models import Course, Enrollment
from apps.core.fees.models import PaymentAttempt
from apps.core.fees.periods import BillingPeriod

from .services import attendance_history, group_successful_payments, payment_history


class ReportsBaseTestCase(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.student = user_model.objects.create_user(
            username='reports_student',
            password='pass12345',
            role='student',
        )
        self.classmate = user_model.objects.create_user(
            username='reports_classmate',
            password='pass12345',
            role='student',
        )
        self.instructor = user_model.objects.create_user(
            username='reports_instructor',
            password='pass12345',
            role='instructor',
        )
        self.course = Course.objects.create(
            code='CORE-PYTHON-2025',
            name='Core Python',
            course_type=Course.TYPE_CORE,
            fees_monthly=Decimal('2000.00'),
        )
        self.elective = Course.objects.create(
            code='ELEC-AI-2025',
            name='Applied AI',
            course_type=Course.TYPE_ELECTIVE,
            fees_monthly=Decimal('3000.00'),
            fees_total=Decimal('15000.00'),
            duration_months=6,
        )
        for course in (self.course, self.elective):
            Enrollment.objects.create(
                user=self.student,
                course=course,
                approve_date=datetime(2024, 12, 1, tzinfo=dt_timezone.utc),
            )

    def _attempt(self, course, label, year, amount, status, day=5):
        period = BillingPeriod.from_label(label, year)
        created_at = datetime(period.year, period.index + 1, day, 9, 0, tzinfo=dt_timezone.utc)
        return PaymentAttempt.objects.create(
            course=course,
            user=self.student,
            period_label=label,
            period_year=year,
            amount=Decimal(amount),
            transaction_id=f'TXN-{course.pk}-{label}-{year}-{status}-{day}',
            status=status,
            created_at=created_at,
            verified_at=None if status == PaymentAttempt.STATUS_PENDING else created_at,
        )

    def _session(self, class_id, started_at, present=()):
        session = AttendanceSession.objects.create(
            course=self.course,
            class_id=class_id,
            topic='Loops',
            timer_minutes=10,
            started_at=started_at,
            expires_at=started_at + timedelta(minutes=10),
            status=AttendanceSession.STATUS_INACTIVE,
        )
        for user in present:
            SessionPresence.objects.create(session=session, user=user, marked_at=started_at)
        return session


class PaymentHistoryTests(ReportsBaseTestCase):
    def test_groups_success_attempts_newest_period_first(self):
        self._attempt(self.course, 'Dec', 2024, '2000', PaymentAttempt.STATUS_SUCCESS)
        self._attempt(self.course, 'Jan', 2025, '2000', PaymentAttempt.STATUS_SUCCESS)
        self._attempt(self.elective, 'Jan', 2025, '3000', PaymentAttempt.STATUS_SUCCESS, day=7)
        self._attempt(self.course, 'Feb', 2025, '2000', PaymentAttempt.STATUS_FAILED)
        self._attempt(self.course, 'Mar', 2025, '2000', PaymentAttempt.STATUS_PENDING)

        history = payment_history(user=self.student)

        self.assertEqual(
            [group['period'] for group in history],
            [BillingPeriod(2025, 0), BillingPeriod(2024, 11)],
        )
        self.assertEqual(history[0]['total'], Decimal('5000.00'))
        self.assertEqual([attempt.course for attempt in history[0]['attempts']], [self.elective, self.course])

    def test_course_filter_limits_history(self):
        self._attempt(self.course, 'Jan', 2025, '2000', PaymentAttempt.STATUS_SUCCESS)
        self._attempt(self.elective, 'Jan', 2025, '3000', PaymentAttempt.STATUS_SUCCESS)

        history = payment_history(user=self.student, course=self.elective)

        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]['total'], Decimal('3000.00'))

    def test_no_success_attempts_returns_empty_history(self):
        self._attempt(self.course, 'Jan', 2025, '2000', PaymentAttempt.STATUS_FAILED)

        self.assertEqual(payment_history(user=self.student), [])
        self.assertEqual(group_successful_payments([]), [])


class AttendanceHistoryTests(ReportsBaseTestCase):
    def test_only_attended_sessions_are_grouped_by_month(self):
        aug = self._session('PY-101', datetime(2025, 8, 20, 10, 0, tzinfo=dt_timezone.utc), [self.student])
        sept_early = self._session('PY-101', datetime(2025, 9, 2, 10, 0, tzinfo=dt_timezone.utc), [self.classmate])
        sept_late = self._session(
            'PY-101',
            datetime(2025, 9, 9, 10, 0, tzinfo=dt_timezone.utc),
            [self.student, self.classmate],
        )
        self._session('PY-101', datetime(2025, 9, 12, 10, 0, tzinfo=dt_timezone.utc))

        history = attendance_history(class_id='PY-101')

        self.assertEqual([group['period'] for group in history], [BillingPeriod(2025, 8), BillingPeriod(2025, 7)])
        self.assertEqual(history[0]['sessions'], [sept_late, sept_early])
        self.assertEqual(history[1]['sessions'], [aug])

    def test_user_filter_keeps_only_their_sessions(self):
        mine = self._session('PY-101', datetime(2025, 9, 2, 10, 0, tzinfo=dt_timezone.utc), [self.student])
        self._session('PY-101', datetime(2025, 9, 3, 10, 0, tzinfo=dt_timezone.utc), [self.classmate])

        history = attendance_history(user=self.student)

        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]['sessions'], [mine])


class ReportsViewTests(ReportsBaseTestCase):
    def test_student_sees_payment_history(self):
        self._attempt(self.course, 'Jan', 2025, '2000', PaymentAttempt.STATUS_SUCCESS)
        self.client.force_login(self.student)

        response = self.client.get(reverse('payment_history_report'))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['history'][0]['label'], 'Jan')
        self.assertEqual(body['history'][0]['total'], '2000.00')

    def test_unknown_course_filter_returns_not_found(self):
        self.client.force_login(self.student)

        response = self.client.get(reverse('payment_history_report'), {'course': 'NOPE'})

        self.assertEqual(response.status_code, 404)

    def test_instructor_cannot_open_payment_history(self):
        self.client.force_login(self.instructor)

        response = self.client.get(reverse('payment_history_report'))

        self.assertEqual(response.status_code, 403)

    def test_instructor_sees_all_attended_sessions(self):
        self._session('PY-101', datetime(2025, 9, 2, 10, 0, tzinfo=dt_timezone.utc), [self.student])
        self._session('PY-101', datetime(2025, 9, 3, 10, 0, tzinfo=dt_timezone.utc), [self.classmate])
        self.client.force_login(self.instructor)

        response = self.client.get(reverse('attendance_history_report'), {'class_id': 'PY-101'})

        self.assertEqual(response.status_code, 200)
        sessions = response.json()['history'][0]['sessions']
        self.assertEqual(len(sessions), 2)
        self.assertEqual(sessions[0]['present'], ['reports_classmate'])

    def test_student_history_hides_other_attendees(self):
        self._session(
            'PY-101',
            datetime(2025, 9, 2, 10, 0, tzinfo=dt_timezone.utc),
            [self.student, self.classmate],
        )
        self.client.force_login(self.student)

        response = self.client.get(reverse('attendance_history_report'), {'class_id': 'PY-101'})

        self.assertEqual(response.status_code, 200)
        sessions = response.json()['history'][0]['sessions']
        self.assertEqual(len(sessions), 1)
        self.assertNotIn('present', sessions[0])
        self.assertTrue(sessions[0]['marked_present'])
        self.assertNotIn('reports_classmate', response.content.decode())
