from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import NamedTuple

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.courses.models import Course, Enrollment
from apps.core.courses.services import enrollments_for_user, get_enrollment
from apps.core.utils.exceptions import Conflict, InvalidAmount

from .models import PaymentAttempt
from .periods import BillingPeriod, current_period, periods_between

logger = logging.getLogger(__name__)


STATUS_DUE = 'due'
STATUS_PENDING = PaymentAttempt.STATUS_PENDING
STATUS_SUCCESS = PaymentAttempt.STATUS_SUCCESS

SEVERITY_PAID = 'paid'
SEVERITY_COVERED = 'covered'
SEVERITY_PENDING = 'pending'
SEVERITY_DUE = 'due'
SEVERITY_OVERDUE = 'overdue'
SEVERITY_UPCOMING = 'upcoming'


class PaymentAction(NamedTuple):
    label: str
    target_period: BillingPeriod
    enabled: bool
    severity: str
    due_count: int = 0


class FeeQuote(NamedTuple):
    amount: Decimal
    label: str


def _to_decimal(value) -> Decimal:
    return Decimal(str(value or '0'))


def _quantize(value: Decimal) -> Decimal:
    return _to_decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def enrollment_period(approve_date) -> BillingPeriod:
    return BillingPeriod.from_date(approve_date)


# Ledger

def group_attempts_by_period(attempts, *, user_id, course_id=None):
    """Group one user's attempts by billing period, oldest attempt first."""
    ledger = {}
    for attempt in sorted(attempts, key=lambda row: row.created_at):
        if attempt.user_id != user_id:
            continue
        if course_id is not None and attempt.course_id != course_id:
            continue
        ledger.setdefault(attempt.period, []).append(attempt)
    return ledger


def load_ledger(*, course, user):
    attempts = PaymentAttempt.objects.for_course(course).filter(user=user).order_by('created_at', 'id')
    return group_attempts_by_period(attempts, user_id=user.pk, course_id=course.pk)


# Coverage

def coverage_window(course, approve_date):
    """First covered period and the exclusive end period of a lump-sum window."""
    if approve_date is None or not course.offers_lump_sum:
        return None
    first = enrollment_period(approve_date)
    return first, first.shift(course.duration_months)


def _has_lump_payment(course, first_period, ledger) -> bool:
    fees_total = _to_decimal(course.fees_total)
    return any(
        attempt.status == STATUS_SUCCESS and _to_decimal(attempt.amount) == fees_total
        for attempt in ledger.get(first_period, [])
    )


def is_period_covered(*, course, approve_date, period, ledger) -> bool:
    if course.course_type == Course.TYPE_CORE:
        return False

    window = coverage_window(course, approve_date)
    if window is None:
        return False

    first, end = window
    if not (first.key <= period.key < end.key):
        return False

    # Only an exact fees_total payment made for the enrollment period counts.
    return _has_lump_payment(course, first, ledger)


# Status derivation

def classify_period(*, course, approve_date, period, ledger) -> str:
    if is_period_covered(course=course, approve_date=approve_date, period=period, ledger=ledger):
        return STATUS_SUCCESS

    statuses = {attempt.status for attempt in ledger.get(period, [])}
    if STATUS_SUCCESS in statuses:
        return STATUS_SUCCESS
    if STATUS_PENDING in statuses:
        return STATUS_PENDING
    return STATUS_DUE


def derive_period_statuses(*, course, enrollment, ledger, as_of=None):
    statuses = {}
    approve_date = enrollment.approve_date
    if approve_date is None:
        return statuses

    for period in periods_between(enrollment_period(approve_date), current_period(as_of)):
        statuses[period] = classify_period(
            course=course,
            approve_date=approve_date,
            period=period,
            ledger=ledger,
        )

    logger.debug(
        'Derived %s period statuses for course %s, user %s',
        len(statuses),
        course.pk,
        enrollment.user_id,
    )
    return statuses


def periods_with_status(statuses, status):
    return sorted(period for period, value in statuses.items() if value == status)


# Payment action

def _period_text(period: BillingPeriod, reference: BillingPeriod) -> str:
    if period.year == reference.year:
        return period.label
    return str(period)


def select_payment_action(*, statuses, current_period: BillingPeriod) -> PaymentAction:
    current_status = statuses.get(current_period, STATUS_DUE)

    if current_status == STATUS_SUCCESS:
        return PaymentAction(
            label=f'Paid for {current_period.label}',
            target_period=current_period,
            enabled=False,
            severity=SEVERITY_PAID,
        )

    due_periods = periods_with_status(statuses, STATUS_DUE)

    # A pending current month does not hide older debts.
    if current_status == STATUS_PENDING and not due_periods:
        return PaymentAction(
            label=f'{current_period.label} - Waiting for verification',
            target_period=current_period,
            enabled=False,
            severity=SEVERITY_PENDING,
        )

    if not due_periods:
        return PaymentAction(
            label=f'Pay {current_period.label}',
            target_period=current_period,
            enabled=True,
            severity=SEVERITY_DUE,
        )

    # Oldest debt is always cleared first.
    target = due_periods[0]
    target_text = _period_text(target, current_period)
    if len(due_periods) > 1:
        return PaymentAction(
            label=f'Pay {target_text} ({len(due_periods)} months due)',
            target_period=target,
            enabled=True,
            severity=SEVERITY_OVERDUE,
            due_count=len(due_periods),
        )

    return PaymentAction(
        label=f'Pay {target_text}',
        target_period=target,
        enabled=True,
        severity=SEVERITY_DUE,
        due_count=1,
    )


def course_payment_action(*, course, enrollment, statuses, ledger, as_of=None) -> PaymentAction:
    now_period = current_period(as_of)
    if enrollment.approve_date is not None and not statuses:
        start = enrollment_period(enrollment.approve_date)
        return PaymentAction(
            label=f'Starts {start.label} {start.year}',
            target_period=start,
            enabled=False,
            severity=SEVERITY_UPCOMING,
        )

    window = coverage_window(course, enrollment.approve_date)
    if window is not None:
        first, end = window
        if now_period.key < end.key and _has_lump_payment(course, first, ledger):
            return PaymentAction(
                label=f'Covered until {end.label} {end.year}',
                target_period=now_period,
                enabled=False,
                severity=SEVERITY_COVERED,
            )

    return select_payment_action(statuses=statuses, current_period=now_period)


def quote_fee(*, course, approve_date, period, ledger) -> FeeQuote:
    monthly_fee = _quantize(course.fees_monthly)

    if course.course_type == Course.TYPE_CORE:
        return FeeQuote(monthly_fee, 'Monthly Fee:')

    if not course.offers_lump_sum:
        return FeeQuote(_quantize(course.fees_total or course.fees_monthly), 'Total Fee:')

    total_fee = _quantize(course.fees_total)
    if approve_date is None:
        return FeeQuote(total_fee, 'Total Fee:')

    if period == enrollment_period(approve_date):
        return FeeQuote(total_fee, f'Total Fee ({course.duration_months} months):')

    if is_period_covered(course=course, approve_date=approve_date, period=period, ledger=ledger):
        return FeeQuote(Decimal('0.00'), 'Covered by Total Fee:')

    return FeeQuote(monthly_fee, 'Monthly Fee:')


def course_fee_summary(*, enrollment, as_of=None, ledger=None):
    course = enrollment.course
    if ledger is None:
        ledger = load_ledger(course=course, user=enrollment.user)

    statuses = derive_period_statuses(course=course, enrollment=enrollment, ledger=ledger, as_of=as_of)
    action = course_payment_action(
        course=course,
        enrollment=enrollment,
        statuses=statuses,
        ledger=ledger,
        as_of=as_of,
    )
    fee = quote_fee(
        course=course,
        approve_date=enrollment.approve_date,
        period=action.target_period,
        ledger=ledger,
    )
    return {
        'course': course,
        'enrollment': enrollment,
        'statuses': statuses,
        'due_periods': periods_with_status(statuses, STATUS_DUE),
        'pending_periods': periods_with_status(statuses, STATUS_PENDING),
        'action': action,
        'fee': fee,
    }


def student_fee_overview(*, user, as_of=None):
    enrollments = enrollments_for_user(user)
    attempts = list(
        PaymentAttempt.objects.filter(
            user=user,
            course__in=[enrollment.course_id for enrollment in enrollments],
        ).order_by('created_at', 'id')
    )

    summaries = []
    for enrollment in enrollments:
        ledger = group_attempts_by_period(attempts, user_id=user.pk, course_id=enrollment.course_id)
        summaries.append(course_fee_summary(enrollment=enrollment, as_of=as_of, ledger=ledger))
    return summaries


# Recording attempts

def _parse_amount(value) -> Decimal:
    try:
        amount = _quantize(Decimal(str(value)))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount('Payment amount must be a number.') from None
    if amount <= 0:
        raise InvalidAmount('Payment amount must be greater than zero.')
    return amount


@transaction.atomic
def submit_payment_attempt(*, course, user, period: BillingPeriod, amount, transaction_id, now=None):
    now = now or timezone.now()
    enrollment = get_enrollment(user=user, course=course)

    amount = _parse_amount(amount)
    transaction_id = (transaction_id or '').strip()
    if not transaction_id:
        raise ValidationError('Transaction id is required.')

    first = enrollment_period(enrollment.approve_date)
    if period < first:
        raise ValidationError(f'{period} is before the enrollment period {first}.')
    if period > current_period(now):
        raise ValidationError(f'{period} has not started yet.')

    pending_exists = PaymentAttempt.objects.for_course(course).filter(
        user=user,
        period_label=period.label,
        period_year=period.year,
        status=PaymentAttempt.STATUS_PENDING,
    ).exists()
    if pending_exists:
        logger.warning('Rejected attempt for %s %s: a pending attempt already exists', course.code, period)
        raise Conflict(f'A payment for {period} is already waiting for verification.')

    try:
        with transaction.atomic():
            attempt = PaymentAttempt.objects.create(
                course=course,
                user=user,
                period_label=period.label,
                period_year=period.year,
                amount=amount,
                transaction_id=transaction_id[:120],
                status=PaymentAttempt.STATUS_PENDING,
                created_at=now,
            )
    except IntegrityError:
        raise Conflict(f'A payment for {period} is already waiting for verification.') from None

    logger.info('Recorded pending attempt %s for %s %s (%s)', attempt.pk, course.code, period, amount)
    return attempt


@transaction.atomic
def verify_payment_attempt(*, attempt, approve: bool, verified_by=None, now=None):
    now = now or timezone.now()
    locked = PaymentAttempt.objects.select_for_update().select_related('course', 'user').get(pk=attempt.pk)
    if locked.status != PaymentAttempt.STATUS_PENDING:
        raise Conflict('Payment attempt has already been verified.')

    locked.status = PaymentAttempt.STATUS_SUCCESS if approve else PaymentAttempt.STATUS_FAILED
    locked.verified_at = now
    locked.verified_by = verified_by
    locked.full_clean()
    locked.save(update_fields=['status', 'verified_at', 'verified_by'])
    logger.info('Payment attempt %s marked %s', locked.pk, locked.status)

    restored = []
    if approve:
        restored = restore_cleared_enrollments(user=locked.user, now=now)

    return {
        'attempt': locked,
        'restored_enrollments': restored,
    }


@transaction.atomic
def restore_cleared_enrollments(*, user, now=None):
    now = now or timezone.now()
    pending = Enrollment.objects.select_for_update().filter(
        user=user,
        status=Enrollment.STATUS_PENDING,
    ).select_related('course')

    restored = []
    for enrollment in pending:
        ledger = load_ledger(course=enrollment.course, user=user)
        statuses = derive_period_statuses(
            course=enrollment.course,
            enrollment=enrollment,
            ledger=ledger,
            as_of=now,
        )
        if not statuses or any(value != STATUS_SUCCESS for value in statuses.values()):
            continue

        enrollment.status = Enrollment.STATUS_SUCCESS
        enrollment.restored_at = now
        enrollment.restoration_reason = f"Auto-restored on {timezone.localdate(now).isoformat()}: All dues cleared"
        enrollment.save(update_fields=['status', 'restored_at', 'restoration_reason'])
        logger.info('Restored enrollment %s for %s', enrollment.pk, user)
        restored.append(enrollment)

    return restored
