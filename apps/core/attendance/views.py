from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from apps.core.courses.services import get_course
from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required
from apps.core.utils.http import error_response

from .forms import AttendanceSessionStartForm
from .services import class_attendance_view, get_session, mark_present, start_session


def _session_payload(session, user=None):
    if session is None:
        return None
    payload = {
        'id': session.pk,
        'course': session.course.code,
        'class_id': session.class_id,
        'topic': session.topic,
        'timer_minutes': session.timer_minutes,
        'started_at': session.started_at.isoformat(),
        'expires_at': session.expires_at.isoformat(),
        'status': session.status,
    }
    if user is not None:
        payload['marked_present'] = session.presences.filter(user=user).exists()
    return payload


@login_required
@require_GET
def class_attendance(request, class_id):
    try:
        view = class_attendance_view(class_id=class_id)
    except ValidationError as exc:
        return error_response(exc)

    return JsonResponse({
        'class_id': view['class_id'],
        'active': _session_payload(view['active'], request.user),
        'recently_closed': _session_payload(view['recently_closed'], request.user),
    })


@login_required
@role_required(('admin', 'instructor'))
@require_POST
def attendance_session_start(request):
    form = AttendanceSessionStartForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'error': form.errors}, status=400)

    try:
        course = get_course(form.cleaned_data['course_code'])
        session = start_session(
            course=course,
            class_id=form.cleaned_data['class_id'],
            timer_minutes=form.cleaned_data['timer_minutes'],
            topic=form.cleaned_data['topic'],
            started_by=request.user,
        )
    except ValidationError as exc:
        return error_response(exc)

    log_audit_event(
        request=request,
        action='attendance.session_start',
        target=session,
        details=f"Class={session.class_id}, Timer={session.timer_minutes}",
    )
    return JsonResponse({'session': _session_payload(session)}, status=201)


@login_required
@role_required('student')
@require_POST
def attendance_mark_present(request, pk):
    try:
        session = get_session(pk)
        presence, created = mark_present(session=session, user=request.user)
    except ValidationError as exc:
        return error_response(exc)

    if created:
        log_audit_event(
            request=request,
            action='attendance.mark_present',
            target=session,
            details=f"Class={session.class_id}",
        )
    return JsonResponse(
        {
            'session': session.pk,
            'marked_at': presence.marked_at.isoformat(),
            'created': created,
        },
        status=201 if created else 200,
    )
