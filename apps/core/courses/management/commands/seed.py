import random
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from faker import Faker

from apps.core.attendance.models import AttendanceSession, SessionPresence
from apps.core.courses.models import Course, Enrollment
from apps.core.fees.models import PaymentAttempt
from apps.core.fees.periods import BillingPeriod, periods_between
from apps.core.users.models import User

DEMO_COURSES = (
    {
        'code': 'CORE-PYTHON-2025',
        'name': 'Python Fundamentals',
        'course_type': Course.TYPE_CORE,
        'fees_monthly': Decimal('2000'),
    },
    {
        'code': 'ELEC-AI-2025',
        'name': 'Advanced AI Workshop',
        'course_type': Course.TYPE_ELECTIVE,
        'fees_monthly': Decimal('3000'),
        'fees_total': Decimal('15000'),
        'duration_months': 6,
    },
    {
        'code': 'ELEC-DATA-2025',
        'name': 'Data Science Bootcamp',
        'course_type': Course.TYPE_ELECTIVE,
        'fees_monthly': Decimal('2500'),
        'fees_total': Decimal('7000'),
        'duration_months': 3,
    },
)


def _at(year, month, day):
    return datetime(year, month, day, 10, 0, tzinfo=dt_timezone.utc)


class Command(BaseCommand):
    help = 'Seeds the database with demo courses, fee ledgers and attendance as of 15 Sept 2025.'

    def add_arguments(self, parser):
        parser.add_argument('--students', type=int, default=10, help='Number of extra random students.')
        parser.add_argument('--seed', type=int, default=None, help='Seed for Faker and random.')

    def _user(self, username, role, **extra):
        user, created = User.objects.get_or_create(username=username, defaults={'role': role, **extra})
        if created:
            user.set_password('password')
            user.save()
            self.stdout.write(self.style.SUCCESS(f'Successfully created {role} user: {username}'))
        return user

    def _attempt(self, course, user, label, year, amount, status, created_at):
        attempt, _ = PaymentAttempt.objects.get_or_create(
            course=course,
            user=user,
            period_label=label,
            period_year=year,
            status=status,
            defaults={
                'amount': Decimal(amount),
                'transaction_id': f'TXN-{course.code}-{user.pk}-{label}{year}',
                'created_at': created_at,
                'verified_at': None if status == PaymentAttempt.STATUS_PENDING else created_at,
            },
        )
        return attempt

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding database...')

        fake = Faker()
        if options['seed'] is not None:
            Faker.seed(options['seed'])
            random.seed(options['seed'])

        if not User.objects.filter(username='admin').exists():
            User.objects.create_superuser('admin', 'admin@example.com', 'password')
            self.stdout.write(self.style.SUCCESS('Successfully created admin user.'))
        instructor = self._user('instructor', User.ROLE_INSTRUCTOR, first_name=fake.first_name())
        student = self._user('student', User.ROLE_STUDENT, first_name=fake.first_name())

        courses = {}
        for row in DEMO_COURSES:
            course, created = Course.objects.get_or_create(code=row['code'], defaults=row)
            courses[course.code] = course
            if created:
                self.stdout.write(self.style.SUCCESS(f'Successfully created course: {course}'))

        core = courses['CORE-PYTHON-2025']
        ai = courses['ELEC-AI-2025']
        data = courses['ELEC-DATA-2025']

        # Demo student: two core months due, AI covered by lump sum, data bootcamp behind.
        Enrollment.objects.get_or_create(
            user=student, course=core,
            defaults={'approve_date': _at(2025, 1, 15), 'status': Enrollment.STATUS_PENDING},
        )
        Enrollment.objects.get_or_create(user=student, course=ai, defaults={'approve_date': _at(2025, 3, 1)})
        Enrollment.objects.get_or_create(
            user=student, course=data,
            defaults={'approve_date': _at(2025, 6, 1), 'status': Enrollment.STATUS_PENDING},
        )
        for month, label in ((1, 'Jan'), (2, 'Feb'), (3, 'Mar'), (6, 'Jun'), (7, 'Jul'), (8, 'Aug')):
            self._attempt(core, student, label, 2025, '2000', PaymentAttempt.STATUS_SUCCESS, _at(2025, month, 15))
        self._attempt(core, student, 'Sept', 2025, '2000', PaymentAttempt.STATUS_PENDING, _at(2025, 9, 10))
        self._attempt(ai, student, 'Mar', 2025, '15000', PaymentAttempt.STATUS_SUCCESS, _at(2025, 3, 1))
        self._attempt(data, student, 'Jun', 2025, '2500', PaymentAttempt.STATUS_SUCCESS, _at(2025, 6, 1))
        self._attempt(data, student, 'Jul', 2025, '2500', PaymentAttempt.STATUS_SUCCESS, _at(2025, 7, 1))

        # Random core students paying most months.
        roster = [student]
        for _ in range(options['students']):
            username = fake.unique.user_name()
            extra = self._user(username, User.ROLE_STUDENT, first_name=fake.first_name(), last_name=fake.last_name())
            roster.append(extra)
            approve_date = _at(2025, random.randint(1, 8), random.randint(1, 28))
            Enrollment.objects.get_or_create(user=extra, course=core, defaults={'approve_date': approve_date})
            for period in periods_between(BillingPeriod.from_date(approve_date), BillingPeriod(2025, 8)):
                if random.random() < 0.8:
                    self._attempt(
                        core, extra, period.label, period.year, '2000',
                        PaymentAttempt.STATUS_SUCCESS, _at(period.year, period.index + 1, 5),
                    )

        # Closed attendance sessions for history, one per week of August.
        for week in range(4):
            started_at = _at(2025, 8, 4 + week * 7)
            session, created = AttendanceSession.objects.get_or_create(
                course=core,
                class_id='PY-101',
                started_at=started_at,
                defaults={
                    'topic': fake.catch_phrase()[:200],
                    'timer_minutes': 15,
                    'expires_at': started_at + timedelta(minutes=15),
                    'status': AttendanceSession.STATUS_INACTIVE,
                    'started_by': instructor,
                    'closed_at': started_at + timedelta(minutes=15),
                },
            )
            if not created:
                continue
            for attendee in random.sample(roster, k=max(1, len(roster) // 2)):
                SessionPresence.objects.get_or_create(
                    session=session,
                    user=attendee,
                    defaults={'marked_at': started_at + timedelta(minutes=random.randint(0, 14))},
                )
            self.stdout.write(self.style.SUCCESS(f'Successfully created attendance session: {session}'))

        self.stdout.write(self.style.SUCCESS('Database seeding complete!'))
