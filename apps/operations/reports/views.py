from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET

from apps.core.courses.services import get_course
from apps.core.users.decorators import role_required
from apps.core.utils.http import error_response, period_payload

from .services import attendance_history, payment_history


def _course_filter(request):
    code = request.GET.get('course', '').strip()
    return get_course(code) if code else None


def _roster(session, student):
    if student is not None:
        return {'marked_present': True}
    return {'present': [presence.user.username for presence in session.presences.all()]}


@login_required
@role_required('student')
@require_GET
def payment_history_report(request):
    try:
        course = _course_filter(request)
    except ValidationError as exc:
        return error_response(exc)

    history = payment_history(user=request.user, course=course)
    return JsonResponse({
        'history': [
            {
                **period_payload(group['period']),
                'total': str(group['total']),
                'payments': [
                    {
                        'id': attempt.pk,
                        'course': attempt.course.code,
                        'amount': str(attempt.amount),
                        'transaction_id': attempt.transaction_id,
                        'paid_at': attempt.created_at.isoformat(),
                    }
                    for attempt in group['attempts']
                ],
            }
            for group in history
        ],
    })


@login_required
@role_required(('admin', 'instructor', 'student'))
@require_GET
def attendance_history_report(request):
    try:
        course = _course_filter(request)
    except ValidationError as exc:
        return error_response(exc)

    # Students only see sessions they attended.
    user = request.user if request.user.role == 'student' else None
    history = attendance_history(
        course=course,
        class_id=request.GET.get('class_id', '').strip() or None,
        user=user,
    )
    return JsonResponse({
        'history': [
            {
                **period_payload(group['period']),
                'sessions': [
                    {
                        'id': session.pk,
                        'course': session.course.code,
                        'class_id': session.class_id,
                        'topic': session.topic,
                        'started_at': session.started_at.isoformat(),
                        **_roster(session, user),
                    }
                    for session in group['sessions']
                ],
            }
            for group in history
        ],
    })
