from decimal import Decimal

from django.db.models import Count, Prefetch

from apps.core.attendance.models import AttendanceSession, SessionPresence
from apps.core.fees.models import PaymentAttempt
from apps.core.fees.periods import BillingPeriod


def group_successful_payments(attempts):
    """Successful attempts grouped by billing period, newest period first."""
    groups = {}
    for attempt in attempts:
        if attempt.status != PaymentAttempt.STATUS_SUCCESS:
            continue
        groups.setdefault(attempt.period, []).append(attempt)

    history = []
    for period in sorted(groups, reverse=True):
        rows = sorted(groups[period], key=lambda row: (row.created_at, row.pk or 0), reverse=True)
        history.append({
            'period': period,
            'attempts': rows,
            'total': sum((row.amount for row in rows), Decimal('0.00')),
        })
    return history


def group_attended_sessions(sessions):
    """Sessions with at least one presence, grouped by the month they started in."""
    groups = {}
    for session in sessions:
        if not _presence_count(session):
            continue
        groups.setdefault(BillingPeriod.from_date(session.started_at), []).append(session)

    history = []
    for period in sorted(groups, reverse=True):
        history.append({
            'period': period,
            'sessions': sorted(groups[period], key=lambda row: (row.started_at, row.pk or 0), reverse=True),
        })
    return history


def _presence_count(session):
    count = getattr(session, 'presence_count', None)
    if count is None:
        count = len(session.presences.all())
    return count


def payment_history(*, user, course=None):
    attempts = PaymentAttempt.objects.for_user(user).filter(
        status=PaymentAttempt.STATUS_SUCCESS,
    ).select_related('course')
    if course is not None:
        attempts = attempts.for_course(course)
    return group_successful_payments(attempts)


def attendance_history(*, course=None, class_id=None, user=None):
    sessions = AttendanceSession.objects.select_related('course')
    if course is not None:
        sessions = sessions.for_course(course)
    if class_id:
        sessions = sessions.filter(class_id=class_id)
    if user is not None:
        sessions = sessions.filter(presences__user=user).distinct()

    sessions = sessions.annotate(presence_count=Count('presences', distinct=True)).filter(
        presence_count__gt=0,
    ).prefetch_related(
        Prefetch('presences', queryset=SessionPresence.objects.select_related('user')),
    )
    return group_attended_sessions(sessions)
