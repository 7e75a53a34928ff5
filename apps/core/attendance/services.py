from __future__ import annotations

import logging
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from apps.core.courses.models import Enrollment
from apps.core.utils.exceptions import Conflict, Expired, NotFound

from .models import AttendanceSession, SessionPresence

logger = logging.getLogger(__name__)


def _recently_closed_window() -> timedelta:
    return timedelta(minutes=int(getattr(settings, 'ATTENDANCE_RECENTLY_CLOSED_MINUTES', 60)))


def _max_timer_minutes() -> int:
    return int(getattr(settings, 'ATTENDANCE_MAX_TIMER_MINUTES', 180))


def _latest(sessions, key):
    return max(sessions, key=lambda session: (key(session), session.pk or 0), default=None)


def pick_current_active(sessions, now):
    """The unexpired session still flagged active, if any."""
    open_sessions = [
        session for session in sessions
        if session.status == AttendanceSession.STATUS_ACTIVE and now < session.expires_at
    ]
    return _latest(open_sessions, key=lambda session: session.started_at)


def pick_recently_closed(sessions, now, window=None):
    """
    A session that has expired but is still worth showing: either not yet
    swept, or swept and expired less than `window` ago.
    """
    window = window if window is not None else _recently_closed_window()
    closed = [
        session for session in sessions
        if (session.status == AttendanceSession.STATUS_ACTIVE and now >= session.expires_at)
        or (session.status == AttendanceSession.STATUS_INACTIVE and now - session.expires_at < window)
    ]
    return _latest(closed, key=lambda session: session.expires_at)


def get_session(session_id):
    session = AttendanceSession.objects.select_related('course').filter(pk=session_id).first()
    if not session:
        raise NotFound(f'Unknown attendance session {session_id}.')
    return session


def current_active_session(*, class_id, now=None):
    now = now or timezone.now()
    sessions = AttendanceSession.objects.filter(
        class_id=class_id,
        status=AttendanceSession.STATUS_ACTIVE,
        expires_at__gt=now,
    )
    return pick_current_active(sessions, now)


def recently_closed_session(*, class_id, now=None):
    now = now or timezone.now()
    window = _recently_closed_window()
    sessions = AttendanceSession.objects.filter(class_id=class_id).filter(
        Q(status=AttendanceSession.STATUS_ACTIVE, expires_at__lte=now)
        | Q(status=AttendanceSession.STATUS_INACTIVE, expires_at__gt=now - window)
    )
    return pick_recently_closed(sessions, now, window=window)


def class_attendance_view(*, class_id, now=None):
    now = now or timezone.now()
    if not AttendanceSession.objects.filter(class_id=class_id).exists():
        raise NotFound(f'Unknown class {class_id}.')

    sessions = list(
        AttendanceSession.objects.filter(class_id=class_id).filter(
            Q(status=AttendanceSession.STATUS_ACTIVE)
            | Q(expires_at__gt=now - _recently_closed_window())
        ).select_related('course')
    )
    return {
        'class_id': class_id,
        'active': pick_current_active(sessions, now),
        'recently_closed': pick_recently_closed(sessions, now),
    }


@transaction.atomic
def sweep_expired_sessions(*, now=None, class_id=None) -> int:
    now = now or timezone.now()
    expired = AttendanceSession.objects.filter(
        status=AttendanceSession.STATUS_ACTIVE,
        expires_at__lte=now,
    )
    if class_id:
        expired = expired.filter(class_id=class_id)

    swept = expired.update(status=AttendanceSession.STATUS_INACTIVE, closed_at=now)
    if swept:
        logger.info('Swept %s expired attendance session(s)', swept)
    return swept


@transaction.atomic
def start_session(*, course, class_id, timer_minutes, topic='', started_by=None, now=None):
    now = now or timezone.now()
    class_id = (class_id or '').strip()
    if not class_id:
        raise ValidationError('Class id is required.')

    try:
        timer_minutes = int(timer_minutes)
    except (TypeError, ValueError):
        raise ValidationError('Timer must be a whole number of minutes.') from None
    max_minutes = _max_timer_minutes()
    if timer_minutes < 1 or timer_minutes > max_minutes:
        raise ValidationError(f'Timer must be between 1 and {max_minutes} minutes.')

    sweep_expired_sessions(now=now, class_id=class_id)
    open_session = current_active_session(class_id=class_id, now=now)
    if open_session:
        logger.warning('Rejected start for class %s: session %s is still open', class_id, open_session.pk)
        raise Conflict(f'Class {class_id} already has an active attendance session.')

    try:
        with transaction.atomic():
            session = AttendanceSession.objects.create(
                course=course,
                class_id=class_id,
                topic=(topic or '').strip()[:200],
                timer_minutes=timer_minutes,
                started_at=now,
                expires_at=now + timedelta(minutes=timer_minutes),
                status=AttendanceSession.STATUS_ACTIVE,
                started_by=started_by,
            )
    except IntegrityError:
        raise Conflict(f'Class {class_id} already has an active attendance session.') from None

    logger.info('Started attendance session %s for class %s (%s min)', session.pk, class_id, timer_minutes)
    return session


@transaction.atomic
def mark_present(*, session, user, now=None):
    now = now or timezone.now()
    session = AttendanceSession.objects.select_for_update().get(pk=session.pk)

    if not session.is_open(now):
        raise Expired('Attendance for this session has closed.')

    if not Enrollment.objects.filter(user=user, course_id=session.course_id).exists():
        raise ValidationError('Only students enrolled in the course can mark attendance.')

    presence, created = SessionPresence.objects.get_or_create(
        session=session,
        user=user,
        defaults={'marked_at': now},
    )
    if created:
        logger.debug('Marked %s present in session %s', user, session.pk)
    return presence, created
