from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from apps.core.courses.models import Course, Enrollment
from apps.core.utils.exceptions import Conflict, Expired, NotFound

from .models import AttendanceSession, SessionPresence
from .services import (
    class_attendance_view,
    current_active_session,
    get_session,
    mark_present,
    pick_current_active,
    pick_recently_closed,
    recently_closed_session,
    start_session,
    sweep_expired_sessions,
)


class AttendanceBaseTestCase(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.start = datetime(2025, 9, 15, 10, 0, tzinfo=dt_timezone.utc)

        self.course = Course.objects.create(
            code='CORE-PYTHON-2025',
            name='Core Python',
            course_type=Course.TYPE_CORE,
            fees_monthly=Decimal('2000.00'),
        )
        self.instructor = user_model.objects.create_user(
            username='attendance_instructor',
            password='pass12345',
            role='instructor',
        )
        self.student = user_model.objects.create_user(
            username='attendance_student',
            password='pass12345',
            role='student',
        )
        self.outsider = user_model.objects.create_user(
            username='attendance_outsider',
            password='pass12345',
            role='student',
        )
        Enrollment.objects.create(
            user=self.student,
            course=self.course,
            approve_date=datetime(2025, 1, 1, tzinfo=dt_timezone.utc),
        )

    def _start(self, class_id='PY-101', timer_minutes=10, now=None):
        return start_session(
            course=self.course,
            class_id=class_id,
            timer_minutes=timer_minutes,
            topic='Decorators',
            started_by=self.instructor,
            now=now or self.start,
        )


class AttendanceSelectorTests(SimpleTestCase):
    def _session(self, pk, status, started_at, minutes):
        return AttendanceSession(
            pk=pk,
            class_id='PY-101',
            status=status,
            timer_minutes=minutes,
            started_at=started_at,
            expires_at=started_at + timedelta(minutes=minutes),
        )

    def test_pick_current_active_ignores_expired_and_inactive(self):
        now = datetime(2025, 9, 15, 12, 0, tzinfo=dt_timezone.utc)
        expired = self._session(1, AttendanceSession.STATUS_ACTIVE, now - timedelta(minutes=30), 10)
        inactive = self._session(2, AttendanceSession.STATUS_INACTIVE, now - timedelta(minutes=5), 30)
        open_session = self._session(3, AttendanceSession.STATUS_ACTIVE, now - timedelta(minutes=5), 30)

        self.assertEqual(pick_current_active([expired, inactive, open_session], now), open_session)
        self.assertIsNone(pick_current_active([expired, inactive], now))
        self.assertIsNone(pick_current_active([], now))

    def test_pick_recently_closed_honours_window(self):
        now = datetime(2025, 9, 15, 12, 0, tzinfo=dt_timezone.utc)
        unswept = self._session(1, AttendanceSession.STATUS_ACTIVE, now - timedelta(hours=5), 10)
        recent = self._session(2, AttendanceSession.STATUS_INACTIVE, now - timedelta(minutes=40), 10)
        stale = self._session(3, AttendanceSession.STATUS_INACTIVE, now - timedelta(minutes=80), 10)

        self.assertEqual(pick_recently_closed([recent, stale], now, window=timedelta(hours=1)), recent)
        self.assertIsNone(pick_recently_closed([stale], now, window=timedelta(hours=1)))
        self.assertEqual(pick_recently_closed([unswept], now, window=timedelta(hours=1)), unswept)


class AttendanceServiceTests(AttendanceBaseTestCase):
    def test_start_session_sets_expiry_from_timer(self):
        session = self._start(timer_minutes=10)

        self.assertEqual(session.status, AttendanceSession.STATUS_ACTIVE)
        self.assertEqual(session.expires_at, self.start + timedelta(minutes=10))
        self.assertEqual(session.started_by, self.instructor)

    def test_second_start_before_expiry_conflicts(self):
        self._start()

        with self.assertRaises(Conflict):
            self._start(now=self.start + timedelta(minutes=5))

        self.assertEqual(AttendanceSession.objects.filter(class_id='PY-101').count(), 1)

    def test_start_after_expiry_sweeps_previous_session(self):
        first = self._start()
        second = self._start(now=self.start + timedelta(minutes=15))

        first.refresh_from_db()
        self.assertEqual(first.status, AttendanceSession.STATUS_INACTIVE)
        self.assertEqual(second.status, AttendanceSession.STATUS_ACTIVE)

    def test_other_classes_do_not_conflict(self):
        self._start(class_id='PY-101')
        other = self._start(class_id='PY-102', now=self.start + timedelta(minutes=1))

        self.assertEqual(other.status, AttendanceSession.STATUS_ACTIVE)

    def test_start_rejects_out_of_range_timer(self):
        with self.assertRaises(ValidationError):
            self._start(timer_minutes=0)
        with override_settings(ATTENDANCE_MAX_TIMER_MINUTES=30):
            with self.assertRaises(ValidationError):
                self._start(timer_minutes=45)

    def test_session_lifecycle_through_expiry_and_sweep(self):
        session = self._start(timer_minutes=10)
        later = self.start + timedelta(minutes=11)

        self.assertIsNone(current_active_session(class_id='PY-101', now=later))
        self.assertEqual(recently_closed_session(class_id='PY-101', now=later), session)

        self.assertEqual(sweep_expired_sessions(now=later), 1)
        session.refresh_from_db()
        self.assertEqual(session.status, AttendanceSession.STATUS_INACTIVE)
        self.assertEqual(session.closed_at, later)

        self.assertEqual(recently_closed_session(class_id='PY-101', now=later), session)
        self.assertIsNone(recently_closed_session(class_id='PY-101', now=self.start + timedelta(minutes=70)))

    def test_sweep_is_idempotent(self):
        self._start(timer_minutes=10)
        later = self.start + timedelta(minutes=20)

        self.assertEqual(sweep_expired_sessions(now=later), 1)
        snapshot = list(AttendanceSession.objects.values_list('pk', 'status', 'closed_at'))
        self.assertEqual(sweep_expired_sessions(now=later), 0)
        self.assertEqual(list(AttendanceSession.objects.values_list('pk', 'status', 'closed_at')), snapshot)

    @override_settings(ATTENDANCE_RECENTLY_CLOSED_MINUTES=15)
    def test_recently_closed_window_is_configurable(self):
        self._start(timer_minutes=10)
        sweep_expired_sessions(now=self.start + timedelta(minutes=11))

        self.assertIsNotNone(recently_closed_session(class_id='PY-101', now=self.start + timedelta(minutes=20)))
        self.assertIsNone(recently_closed_session(class_id='PY-101', now=self.start + timedelta(minutes=30)))

    def test_class_attendance_view_reports_active_and_recent(self):
        first = self._start(timer_minutes=10)
        second = self._start(timer_minutes=30, now=self.start + timedelta(minutes=20))

        view = class_attendance_view(class_id='PY-101', now=self.start + timedelta(minutes=25))

        self.assertEqual(view['active'], second)
        self.assertEqual(view['recently_closed'], first)

    def test_mark_present_is_idempotent(self):
        session = self._start()

        presence, created = mark_present(session=session, user=self.student, now=self.start + timedelta(minutes=2))
        again, created_again = mark_present(session=session, user=self.student, now=self.start + timedelta(minutes=3))

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(presence.pk, again.pk)
        self.assertEqual(SessionPresence.objects.filter(session=session).count(), 1)

    def test_mark_present_after_expiry_raises_expired(self):
        session = self._start(timer_minutes=10)

        with self.assertRaises(Expired):
            mark_present(session=session, user=self.student, now=self.start + timedelta(minutes=10))

    def test_mark_present_requires_enrollment(self):
        session = self._start()

        with self.assertRaises(ValidationError):
            mark_present(session=session, user=self.outsider, now=self.start + timedelta(minutes=1))

    def test_get_session_unknown_id_raises_not_found(self):
        with self.assertRaises(NotFound):
            get_session(99999)

    def test_unknown_class_raises_not_found(self):
        with self.assertRaises(NotFound):
            class_attendance_view(class_id='NO-SUCH-CLASS', now=self.start)

    def test_sweep_command_reports_count(self):
        self._start(timer_minutes=10)
        out = StringIO()

        with mock.patch('django.utils.timezone.now', return_value=self.start + timedelta(minutes=12)):
            call_command('sweep_attendance_sessions', stdout=out)

        self.assertIn('Swept 1 expired attendance session(s).', out.getvalue())
        self.assertFalse(AttendanceSession.objects.filter(status=AttendanceSession.STATUS_ACTIVE).exists())


class AttendanceViewTests(AttendanceBaseTestCase):
    def test_instructor_can_start_session(self):
        self.client.force_login(self.instructor)

        response = self.client.post(
            reverse('attendance_session_start'),
            {'course_code': self.course.code, 'class_id': 'PY-201', 'timer_minutes': 15, 'topic': 'Generators'},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['session']['class_id'], 'PY-201')
        self.assertTrue(AttendanceSession.objects.filter(class_id='PY-201', status='active').exists())

    def test_second_start_returns_conflict(self):
        self.client.force_login(self.instructor)
        payload = {'course_code': self.course.code, 'class_id': 'PY-202', 'timer_minutes': 15}

        self.client.post(reverse('attendance_session_start'), payload)
        response = self.client.post(reverse('attendance_session_start'), payload)

        self.assertEqual(response.status_code, 409)

    def test_student_cannot_start_session(self):
        self.client.force_login(self.student)

        response = self.client.post(
            reverse('attendance_session_start'),
            {'course_code': self.course.code, 'class_id': 'PY-203', 'timer_minutes': 15},
        )

        self.assertEqual(response.status_code, 403)

    def test_student_marks_present_on_open_session(self):
        session = start_session(course=self.course, class_id='PY-204', timer_minutes=30)
        self.client.force_login(self.student)

        response = self.client.post(reverse('attendance_mark_present', args=[session.pk]))
        repeat = self.client.post(reverse('attendance_mark_present', args=[session.pk]))

        self.assertEqual(response.status_code, 201)
        self.assertEqual(repeat.status_code, 200)
        self.assertFalse(repeat.json()['created'])

    def test_mark_present_on_expired_session_returns_gone(self):
        session = start_session(
            course=self.course,
            class_id='PY-205',
            timer_minutes=5,
            now=timezone.now() - timedelta(minutes=30),
        )
        self.client.force_login(self.student)

        response = self.client.post(reverse('attendance_mark_present', args=[session.pk]))

        self.assertEqual(response.status_code, 410)

    def test_class_view_shows_active_session(self):
        session = start_session(course=self.course, class_id='PY-206', timer_minutes=30)
        self.client.force_login(self.student)

        response = self.client.get(reverse('class_attendance', args=['PY-206']))

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['active']['id'], session.pk)
        self.assertFalse(body['active']['marked_present'])
        self.assertIsNone(body['recently_closed'])

    def test_unknown_class_returns_not_found(self):
        self.client.force_login(self.student)

        response = self.client.get(reverse('class_attendance', args=['NO-SUCH-CLASS']))

        self.assertEqual(response.status_code, 404)
