from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import TestCase

from apps.core.fees.models import PaymentAttempt
from apps.core.utils.exceptions import NotFound

from .models import Course, Enrollment
from .services import enrollments_for_user, get_course, get_enrollment


class CourseModelTests(TestCase):
    def test_core_course_rejects_lump_sum_configuration(self):
        course = Course(
            code='CORE-PYTHON-2025',
            name='Python Fundamentals',
            course_type=Course.TYPE_CORE,
            fees_monthly=Decimal('2000'),
            fees_total=Decimal('12000'),
            duration_months=6,
        )

        with self.assertRaises(ValidationError):
            course.full_clean()

    def test_elective_lump_sum_needs_total_and_duration(self):
        with_duration = Course(
            code='ELEC-AI-2025',
            name='AI',
            course_type=Course.TYPE_ELECTIVE,
            fees_monthly=Decimal('3000'),
            fees_total=Decimal('15000'),
            duration_months=6,
        )
        without_duration = Course(
            code='ELEC-WEB-2025',
            name='Web',
            course_type=Course.TYPE_ELECTIVE,
            fees_monthly=Decimal('3000'),
            fees_total=Decimal('15000'),
        )

        self.assertTrue(with_duration.offers_lump_sum)
        self.assertFalse(without_duration.offers_lump_sum)

    def test_negative_monthly_fee_is_rejected(self):
        course = Course(code='CORE-X', name='X', fees_monthly=Decimal('-1'))

        with self.assertRaises(ValidationError):
            course.full_clean()


class EnrollmentServiceTests(TestCase):
    def setUp(self):
        self.student = get_user_model().objects.create_user(username='course_student', password='pass12345')
        self.course = Course.objects.create(code='CORE-PYTHON-2025', name='Python', fees_monthly=Decimal('2000'))
        self.retired = Course.objects.create(
            code='CORE-OLD-2024',
            name='Retired',
            fees_monthly=Decimal('1000'),
            is_active=False,
        )
        self.enrollment = Enrollment.objects.create(
            user=self.student,
            course=self.course,
            approve_date=datetime(2025, 1, 15, tzinfo=dt_timezone.utc),
        )
        Enrollment.objects.create(
            user=self.student,
            course=self.retired,
            approve_date=datetime(2024, 1, 15, tzinfo=dt_timezone.utc),
        )

    def test_lookups_raise_not_found(self):
        self.assertEqual(get_course('CORE-PYTHON-2025'), self.course)
        with self.assertRaises(NotFound):
            get_course('MISSING')
        with self.assertRaises(NotFound):
            get_enrollment(user=self.student, course=Course.objects.create(code='NEW', name='New'))

    def test_enrollments_skip_inactive_courses(self):
        self.assertEqual(enrollments_for_user(self.student), [self.enrollment])

    def test_approve_date_cannot_change(self):
        self.enrollment.approve_date = datetime(2025, 2, 1, tzinfo=dt_timezone.utc)

        with self.assertRaises(ValidationError):
            self.enrollment.full_clean()

    def test_status_can_change(self):
        self.enrollment.status = Enrollment.STATUS_PENDING
        self.enrollment.full_clean()
        self.enrollment.save()

        self.enrollment.refresh_from_db()
        self.assertEqual(self.enrollment.status, Enrollment.STATUS_PENDING)


class SeedCommandTests(TestCase):
    def test_seed_builds_demo_ledger(self):
        out = StringIO()

        call_command('seed', students=2, seed=7, stdout=out)
        call_command('seed', students=0, seed=7, stdout=StringIO())

        self.assertIn('Database seeding complete!', out.getvalue())
        self.assertEqual(Course.objects.count(), 3)
        demo = get_user_model().objects.get(username='student')
        self.assertEqual(Enrollment.objects.filter(user=demo).count(), 3)
        self.assertTrue(
            PaymentAttempt.objects.filter(
                user=demo,
                course__code='ELEC-AI-2025',
                amount=Decimal('15000'),
                status=PaymentAttempt.STATUS_SUCCESS,
            ).exists()
        )
        self.assertEqual(
            PaymentAttempt.objects.filter(user=demo, status=PaymentAttempt.STATUS_PENDING).count(),
            1,
        )
