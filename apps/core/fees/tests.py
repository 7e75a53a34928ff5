from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse

from apps.core.courses.models import Course, Enrollment
from apps.core.utils.exceptions import Conflict, InvalidAmount, NotFound

from .models import PaymentAttempt
from .periods import BillingPeriod, current_period, period_index, periods_between
from .services import (
    STATUS_DUE,
    STATUS_PENDING,
    STATUS_SUCCESS,
    course_fee_summary,
    coverage_window,
    derive_period_statuses,
    group_attempts_by_period,
    is_period_covered,
    load_ledger,
    quote_fee,
    restore_cleared_enrollments,
    select_payment_action,
    student_fee_overview,
    submit_payment_attempt,
    verify_payment_attempt,
)

AS_OF = datetime(2025, 9, 15, 10, 0, tzinfo=dt_timezone.utc)


def _at(year, month, day=15):
    return datetime(year, month, day, 10, 0, tzinfo=dt_timezone.utc)


def _period(label, year=2025):
    return BillingPeriod.from_label(label, year)


class BillingPeriodTests(SimpleTestCase):
    def test_labels_follow_calendar_order(self):
        self.assertEqual(_period('Jan').label, 'Jan')
        self.assertEqual(_period('Sept').label, 'Sept')
        self.assertEqual(period_index('Sep'), 8)
        self.assertLess(_period('Apr'), _period('May'))
        self.assertLess(_period('Dec', 2024), _period('Jan', 2025))

    def test_unknown_label_is_rejected(self):
        with self.assertRaises(ValueError):
            period_index('Smarch')

    def test_shift_crosses_year_boundary(self):
        self.assertEqual(_period('Nov', 2024).shift(3), _period('Feb', 2025))
        self.assertEqual(_period('Mar').shift(6), _period('Sept'))
        self.assertEqual(_period('Jan').shift(-1), _period('Dec', 2024))

    def test_periods_between_is_inclusive(self):
        periods = periods_between(_period('Nov', 2024), _period('Feb', 2025))

        self.assertEqual([str(period) for period in periods], ['Nov 2024', 'Dec 2024', 'Jan 2025', 'Feb 2025'])
        self.assertEqual(periods_between(_period('Mar'), _period('Feb')), [])

    def test_current_period_uses_clock(self):
        self.assertEqual(current_period(AS_OF), _period('Sept'))
        self.assertEqual(BillingPeriod.from_date(_at(2025, 3, 1).date()), _period('Mar'))


class FeesBaseTestCase(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.student = user_model.objects.create_user(
            username='fees_student',
            password='pass12345',
            role='student',
        )
        self.admin = user_model.objects.create_user(
            username='fees_admin',
            password='pass12345',
            role='admin',
        )

        self.core = Course.objects.create(
            code='CORE-PYTHON-2025',
            name='Python Fundamentals',
            course_type=Course.TYPE_CORE,
            fees_monthly=Decimal('2000.00'),
        )
        self.ai = Course.objects.create(
            code='ELEC-AI-2025',
            name='Advanced AI Workshop',
            course_type=Course.TYPE_ELECTIVE,
            fees_monthly=Decimal('3000.00'),
            fees_total=Decimal('15000.00'),
            duration_months=6,
        )
        self.data = Course.objects.create(
            code='ELEC-DATA-2025',
            name='Data Science Bootcamp',
            course_type=Course.TYPE_ELECTIVE,
            fees_monthly=Decimal('2500.00'),
            fees_total=Decimal('7000.00'),
            duration_months=3,
        )

        self.core_enrollment = Enrollment.objects.create(
            user=self.student,
            course=self.core,
            approve_date=_at(2025, 1, 15),
            status=Enrollment.STATUS_PENDING,
        )
        self.ai_enrollment = Enrollment.objects.create(
            user=self.student,
            course=self.ai,
            approve_date=_at(2025, 3, 1),
        )
        self.data_enrollment = Enrollment.objects.create(
            user=self.student,
            course=self.data,
            approve_date=_at(2025, 6, 1),
            status=Enrollment.STATUS_PENDING,
        )

    def _attempt(self, course, label, amount, status=PaymentAttempt.STATUS_SUCCESS, year=2025, day=15):
        created_at = _at(year, period_index(label) + 1, day)
        return PaymentAttempt.objects.create(
            course=course,
            user=self.student,
            period_label=label,
            period_year=year,
            amount=Decimal(amount),
            transaction_id=f'TXN-{course.code}-{label}-{year}-{status}-{day}',
            status=status,
            created_at=created_at,
            verified_at=None if status == PaymentAttempt.STATUS_PENDING else created_at,
        )

    def _statuses(self, enrollment):
        ledger = load_ledger(course=enrollment.course, user=self.student)
        return derive_period_statuses(course=enrollment.course, enrollment=enrollment, ledger=ledger, as_of=AS_OF)

    def _seed_core_history(self):
        for label in ('Jan', 'Feb', 'Mar', 'Jun', 'Jul', 'Aug'):
            self._attempt(self.core, label, '2000')
        self._attempt(self.core, 'Sept', '2000', status=PaymentAttempt.STATUS_PENDING, day=10)


class FeeDerivationTests(FeesBaseTestCase):
    def test_core_course_scenario(self):
        self._seed_core_history()

        summary = course_fee_summary(enrollment=self.core_enrollment, as_of=AS_OF)

        self.assertEqual(summary['due_periods'], [_period('Apr'), _period('May')])
        self.assertEqual(summary['pending_periods'], [_period('Sept')])
        self.assertEqual(summary['action'].target_period, _period('Apr'))
        self.assertEqual(summary['action'].label, 'Pay Apr (2 months due)')
        self.assertTrue(summary['action'].enabled)
        self.assertEqual(summary['action'].due_count, 2)
        self.assertEqual(summary['fee'].amount, Decimal('2000.00'))
        self.assertEqual(summary['fee'].label, 'Monthly Fee:')

    def test_lump_sum_covers_window_then_reverts_to_monthly(self):
        self._attempt(self.ai, 'Mar', '15000', day=1)

        statuses = self._statuses(self.ai_enrollment)

        for label in ('Mar', 'Apr', 'May', 'Jun', 'Jul', 'Aug'):
            self.assertEqual(statuses[_period(label)], STATUS_SUCCESS)
        self.assertEqual(statuses[_period('Sept')], STATUS_DUE)

        summary = course_fee_summary(enrollment=self.ai_enrollment, as_of=AS_OF)
        self.assertEqual(summary['action'].label, 'Pay Sept')
        self.assertEqual(summary['fee'].amount, Decimal('3000.00'))
        self.assertEqual(summary['fee'].label, 'Monthly Fee:')

    def test_lump_sum_off_by_one_unit_grants_no_coverage(self):
        self._attempt(self.ai, 'Mar', '14999', day=1)

        statuses = self._statuses(self.ai_enrollment)

        self.assertEqual(statuses[_period('Mar')], STATUS_SUCCESS)
        for label in ('Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sept'):
            self.assertEqual(statuses[_period(label)], STATUS_DUE)

    def _assert_lump_amount_grants_no_coverage(self, amount):
        self._attempt(self.ai, 'Mar', amount, day=1)

        statuses = self._statuses(self.ai_enrollment)

        self.assertEqual(statuses[_period('Mar')], STATUS_SUCCESS)
        for label in ('Apr', 'May', 'Jun', 'Jul', 'Aug', 'Sept'):
            self.assertEqual(statuses[_period(label)], STATUS_DUE)

        action = course_fee_summary(enrollment=self.ai_enrollment, as_of=_at(2025, 5, 10))['action']
        self.assertNotEqual(action.severity, 'covered')
        self.assertFalse(action.label.startswith('Covered'))
        self.assertEqual(action.target_period, _period('Apr'))

    def test_lump_sum_over_payment_by_one_unit_grants_no_coverage(self):
        self._assert_lump_amount_grants_no_coverage('15001')

    def test_lump_sum_over_payment_by_one_paisa_grants_no_coverage(self):
        self._assert_lump_amount_grants_no_coverage('15000.01')

    def test_enrollment_starting_next_month_has_disabled_action(self):
        course = Course.objects.create(
            code='CORE-JS-2025',
            name='JavaScript Essentials',
            course_type=Course.TYPE_CORE,
            fees_monthly=Decimal('1500.00'),
        )
        enrollment = Enrollment.objects.create(user=self.student, course=course, approve_date=_at(2025, 10, 2))

        summary = course_fee_summary(enrollment=enrollment, as_of=AS_OF)

        self.assertEqual(summary['statuses'], {})
        self.assertEqual(summary['due_periods'], [])
        self.assertEqual(summary['action'].label, 'Starts Oct 2025')
        self.assertEqual(summary['action'].target_period, _period('Oct'))
        self.assertEqual(summary['action'].severity, 'upcoming')
        self.assertFalse(summary['action'].enabled)
        self.assertEqual(summary['fee'].amount, Decimal('1500.00'))

        with self.assertRaises(ValidationError):
            submit_payment_attempt(
                user=self.student,
                course=course,
                period=_period('Sept'),
                amount=Decimal('1500'),
                transaction_id='TXN-JS-SEPT',
                now=AS_OF,
            )

    def test_lump_sum_outside_enrollment_period_grants_no_coverage(self):
        self._attempt(self.ai, 'Apr', '15000')

        ledger = load_ledger(course=self.ai, user=self.student)

        self.assertFalse(is_period_covered(
            course=self.ai,
            approve_date=self.ai_enrollment.approve_date,
            period=_period('May'),
            ledger=ledger,
        ))

    def test_core_course_is_never_covered(self):
        self._attempt(self.core, 'Jan', '15000')
        ledger = load_ledger(course=self.core, user=self.student)

        self.assertIsNone(coverage_window(self.core, self.core_enrollment.approve_date))
        self.assertFalse(is_period_covered(
            course=self.core,
            approve_date=self.core_enrollment.approve_date,
            period=_period('Feb'),
            ledger=ledger,
        ))

    def test_monthly_payments_leave_partial_window_due(self):
        self._attempt(self.data, 'Jun', '2500', day=1)
        self._attempt(self.data, 'Jul', '2500', day=1)

        summary = course_fee_summary(enrollment=self.data_enrollment, as_of=AS_OF)

        self.assertEqual(summary['due_periods'], [_period('Aug'), _period('Sept')])
        self.assertEqual(summary['action'].label, 'Pay Aug (2 months due)')
        self.assertEqual(summary['fee'].amount, Decimal('2500.00'))
        self.assertEqual(summary['fee'].label, 'Monthly Fee:')

    def test_no_status_before_enrollment_or_after_current_period(self):
        statuses = self._statuses(self.data_enrollment)

        self.assertEqual(list(statuses), [_period('Jun'), _period('Jul'), _period('Aug'), _period('Sept')])
        self.assertTrue(all(period >= _period('Jun') for period in statuses))

    def test_failed_attempt_counts_as_absent(self):
        self._attempt(self.data, 'Jun', '2500', status=PaymentAttempt.STATUS_FAILED)

        self.assertEqual(self._statuses(self.data_enrollment)[_period('Jun')], STATUS_DUE)

    def test_success_wins_over_pending_for_the_same_period(self):
        self._attempt(self.data, 'Jun', '2500', status=PaymentAttempt.STATUS_SUCCESS, day=2)
        self._attempt(self.data, 'Jun', '2500', status=PaymentAttempt.STATUS_PENDING, day=3)

        self.assertEqual(self._statuses(self.data_enrollment)[_period('Jun')], STATUS_SUCCESS)

    def test_covered_action_while_window_is_open(self):
        self._attempt(self.ai, 'Mar', '15000', day=1)

        summary = course_fee_summary(enrollment=self.ai_enrollment, as_of=_at(2025, 5, 10))

        self.assertEqual(summary['action'].label, 'Covered until Sept 2025')
        self.assertFalse(summary['action'].enabled)
        self.assertEqual(summary['action'].severity, 'covered')

    def test_quote_for_enrollment_and_covered_periods(self):
        self._attempt(self.ai, 'Mar', '15000', day=1)
        ledger = load_ledger(course=self.ai, user=self.student)
        approve_date = self.ai_enrollment.approve_date

        enrollment_quote = quote_fee(course=self.ai, approve_date=approve_date, period=_period('Mar'), ledger=ledger)
        covered_quote = quote_fee(course=self.ai, approve_date=approve_date, period=_period('Jun'), ledger=ledger)

        self.assertEqual(enrollment_quote.amount, Decimal('15000.00'))
        self.assertEqual(enrollment_quote.label, 'Total Fee (6 months):')
        self.assertEqual(covered_quote.amount, Decimal('0.00'))
        self.assertEqual(covered_quote.label, 'Covered by Total Fee:')

    def test_student_overview_lists_each_enrollment(self):
        self._seed_core_history()

        overview = student_fee_overview(user=self.student, as_of=AS_OF)

        self.assertEqual([summary['course'] for summary in overview], [self.core, self.ai, self.data])


class PaymentActionSelectorTests(SimpleTestCase):
    def test_oldest_due_period_is_targeted(self):
        statuses = {
            _period('Apr'): STATUS_DUE,
            _period('May'): STATUS_DUE,
            _period('Jun'): STATUS_SUCCESS,
            _period('Sept'): STATUS_DUE,
        }

        action = select_payment_action(statuses=statuses, current_period=_period('Sept'))

        self.assertEqual(action.target_period, _period('Apr'))
        self.assertEqual(action.label, 'Pay Apr (3 months due)')
        self.assertEqual(action.severity, 'overdue')

    def test_paid_current_period_disables_action(self):
        action = select_payment_action(statuses={_period('Sept'): STATUS_SUCCESS}, current_period=_period('Sept'))

        self.assertEqual(action.label, 'Paid for Sept')
        self.assertFalse(action.enabled)

    def test_pending_current_period_waits_for_verification(self):
        statuses = {_period('Aug'): STATUS_SUCCESS, _period('Sept'): STATUS_PENDING}

        action = select_payment_action(statuses=statuses, current_period=_period('Sept'))

        self.assertEqual(action.label, 'Sept - Waiting for verification')
        self.assertFalse(action.enabled)
        self.assertEqual(action.severity, STATUS_PENDING)

    def test_single_due_period(self):
        action = select_payment_action(statuses={_period('Sept'): STATUS_DUE}, current_period=_period('Sept'))

        self.assertEqual(action.label, 'Pay Sept')
        self.assertEqual(action.due_count, 1)

    def test_due_period_in_previous_year_is_labelled_with_year(self):
        statuses = {_period('Dec', 2024): STATUS_DUE, _period('Jan'): STATUS_DUE}

        action = select_payment_action(statuses=statuses, current_period=_period('Jan'))

        self.assertEqual(action.target_period, _period('Dec', 2024))
        self.assertEqual(action.label, 'Pay Dec 2024 (2 months due)')

    def test_grouping_ignores_other_users(self):
        mine = PaymentAttempt(user_id=1, course_id=1, period_label='Jan', period_year=2025, amount=Decimal('1'))
        theirs = PaymentAttempt(user_id=2, course_id=1, period_label='Jan', period_year=2025, amount=Decimal('1'))

        ledger = group_attempts_by_period([mine, theirs], user_id=1)

        self.assertEqual(ledger, {_period('Jan'): [mine]})


class PaymentAttemptServiceTests(FeesBaseTestCase):
    def test_submit_records_pending_attempt(self):
        attempt = submit_payment_attempt(
            course=self.core,
            user=self.student,
            period=_period('Apr'),
            amount='2000',
            transaction_id=' UPI-123 ',
            now=AS_OF,
        )

        self.assertEqual(attempt.status, PaymentAttempt.STATUS_PENDING)
        self.assertEqual(attempt.transaction_id, 'UPI-123')
        self.assertEqual(self._statuses(self.core_enrollment)[_period('Apr')], STATUS_PENDING)

    def test_second_pending_attempt_conflicts(self):
        submit_payment_attempt(
            course=self.core, user=self.student, period=_period('Apr'),
            amount='2000', transaction_id='UPI-1', now=AS_OF,
        )

        with self.assertRaises(Conflict):
            submit_payment_attempt(
                course=self.core, user=self.student, period=_period('Apr'),
                amount='2000', transaction_id='UPI-2', now=AS_OF,
            )

    def test_submit_rejects_bad_amounts(self):
        for amount in ('0', '-10', 'abc'):
            with self.subTest(amount=amount), self.assertRaises(InvalidAmount):
                submit_payment_attempt(
                    course=self.core, user=self.student, period=_period('Apr'),
                    amount=amount, transaction_id='UPI-1', now=AS_OF,
                )

    def test_submit_rejects_periods_outside_enrollment(self):
        with self.assertRaises(ValidationError):
            submit_payment_attempt(
                course=self.data, user=self.student, period=_period('May'),
                amount='2500', transaction_id='UPI-1', now=AS_OF,
            )
        with self.assertRaises(ValidationError):
            submit_payment_attempt(
                course=self.data, user=self.student, period=_period('Oct'),
                amount='2500', transaction_id='UPI-1', now=AS_OF,
            )

    def test_submit_for_unenrolled_course_raises_not_found(self):
        other = Course.objects.create(code='CORE-JS-2025', name='JavaScript', fees_monthly=Decimal('1500'))

        with self.assertRaises(NotFound):
            submit_payment_attempt(
                course=other, user=self.student, period=_period('Apr'),
                amount='1500', transaction_id='UPI-1', now=AS_OF,
            )

    def test_rejected_attempt_allows_retry(self):
        attempt = submit_payment_attempt(
            course=self.core, user=self.student, period=_period('Apr'),
            amount='2000', transaction_id='UPI-1', now=AS_OF,
        )
        verify_payment_attempt(attempt=attempt, approve=False, verified_by=self.admin, now=AS_OF)

        retry = submit_payment_attempt(
            course=self.core, user=self.student, period=_period('Apr'),
            amount='2000', transaction_id='UPI-2', now=AS_OF,
        )

        self.assertEqual(retry.status, PaymentAttempt.STATUS_PENDING)

    def test_verification_happens_once(self):
        attempt = submit_payment_attempt(
            course=self.core, user=self.student, period=_period('Apr'),
            amount='2000', transaction_id='UPI-1', now=AS_OF,
        )
        result = verify_payment_attempt(attempt=attempt, approve=True, verified_by=self.admin, now=AS_OF)

        self.assertEqual(result['attempt'].status, PaymentAttempt.STATUS_SUCCESS)
        self.assertEqual(result['attempt'].verified_by, self.admin)
        with self.assertRaises(Conflict):
            verify_payment_attempt(attempt=attempt, approve=False, verified_by=self.admin, now=AS_OF)

    def test_clearing_last_due_restores_enrollment(self):
        for label in ('Jun', 'Jul', 'Aug'):
            self._attempt(self.data, label, '2500', day=1)
        attempt = self._attempt(self.data, 'Sept', '2500', status=PaymentAttempt.STATUS_PENDING, day=2)

        result = verify_payment_attempt(attempt=attempt, approve=True, verified_by=self.admin, now=AS_OF)

        self.data_enrollment.refresh_from_db()
        self.assertEqual(result['restored_enrollments'], [self.data_enrollment])
        self.assertEqual(self.data_enrollment.status, Enrollment.STATUS_SUCCESS)
        self.assertEqual(self.data_enrollment.restoration_reason, 'Auto-restored on 2025-09-15: All dues cleared')

    def test_enrollment_with_dues_stays_pending(self):
        self._seed_core_history()

        self.assertEqual(restore_cleared_enrollments(user=self.student, now=AS_OF), [])
        self.core_enrollment.refresh_from_db()
        self.assertEqual(self.core_enrollment.status, Enrollment.STATUS_PENDING)

    def test_payment_attempts_cannot_be_deleted(self):
        attempt = self._attempt(self.core, 'Jan', '2000')

        with self.assertRaises(ValidationError):
            attempt.delete()


class FeeViewTests(FeesBaseTestCase):
    def test_student_sees_fee_overview(self):
        self.client.force_login(self.student)

        response = self.client.get(reverse('fee_overview'))

        self.assertEqual(response.status_code, 200)
        courses = response.json()['courses']
        self.assertEqual([row['course'] for row in courses], [self.core.code, self.ai.code, self.data.code])
        self.assertIn('label', courses[0]['action'])

    def test_admin_cannot_open_student_overview(self):
        self.client.force_login(self.admin)

        response = self.client.get(reverse('fee_overview'))

        self.assertEqual(response.status_code, 403)

    def test_student_submits_attempt(self):
        self.client.force_login(self.student)

        response = self.client.post(
            reverse('payment_attempt_submit', args=[self.core.code]),
            {'period_label': 'Apr', 'period_year': 2025, 'amount': '2000', 'transaction_id': 'UPI-777'},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['attempt']['status'], PaymentAttempt.STATUS_PENDING)

    def test_duplicate_pending_submission_returns_conflict(self):
        self.client.force_login(self.student)
        payload = {'period_label': 'Apr', 'period_year': 2025, 'amount': '2000', 'transaction_id': 'UPI-777'}

        self.client.post(reverse('payment_attempt_submit', args=[self.core.code]), payload)
        response = self.client.post(reverse('payment_attempt_submit', args=[self.core.code]), payload)

        self.assertEqual(response.status_code, 409)

    def test_unknown_course_returns_not_found(self):
        self.client.force_login(self.student)

        response = self.client.post(
            reverse('payment_attempt_submit', args=['NOPE']),
            {'period_label': 'Apr', 'period_year': 2025, 'amount': '2000', 'transaction_id': 'UPI-777'},
        )

        self.assertEqual(response.status_code, 404)

    def test_admin_verifies_attempt_and_audit_is_written(self):
        attempt = self._attempt(self.core, 'Apr', '2000', status=PaymentAttempt.STATUS_PENDING)
        self.client.force_login(self.admin)

        response = self.client.post(reverse('payment_attempt_verify', args=[attempt.pk]), {'decision': 'approve'})

        self.assertEqual(response.status_code, 200)
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, PaymentAttempt.STATUS_SUCCESS)
        self.assertTrue(self.admin.auditlog_set.filter(action='fees.attempt_verify').exists())

    def test_student_cannot_verify_attempt(self):
        attempt = self._attempt(self.core, 'Apr', '2000', status=PaymentAttempt.STATUS_PENDING)
        self.client.force_login(self.student)

        response = self.client.post(reverse('payment_attempt_verify', args=[attempt.pk]), {'decision': 'approve'})

        self.assertEqual(response.status_code, 403)
