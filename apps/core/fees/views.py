from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from apps.core.courses.services import get_course
from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required
from apps.core.utils.http import error_response, period_payload

from .forms import PaymentAttemptForm, PaymentVerificationForm
from .models import PaymentAttempt
from .services import student_fee_overview, submit_payment_attempt, verify_payment_attempt


def _summary_payload(summary):
    course = summary['course']
    action = summary['action']
    fee = summary['fee']
    return {
        'course': course.code,
        'name': course.name,
        'course_type': course.course_type,
        'enrollment_status': summary['enrollment'].status,
        'statuses': [
            {**period_payload(period), 'status': status}
            for period, status in summary['statuses'].items()
        ],
        'due_periods': [period_payload(period) for period in summary['due_periods']],
        'pending_periods': [period_payload(period) for period in summary['pending_periods']],
        'action': {
            'label': action.label,
            'target_period': period_payload(action.target_period),
            'enabled': action.enabled,
            'severity': action.severity,
            'due_count': action.due_count,
        },
        'fee': {
            'amount': str(fee.amount),
            'label': fee.label,
        },
    }


def _attempt_payload(attempt):
    return {
        'id': attempt.pk,
        'course': attempt.course.code,
        **period_payload(attempt.period),
        'amount': str(attempt.amount),
        'transaction_id': attempt.transaction_id,
        'status': attempt.status,
        'created_at': attempt.created_at.isoformat(),
    }


@login_required
@role_required('student')
@require_GET
def fee_overview(request):
    summaries = student_fee_overview(user=request.user)
    return JsonResponse({'courses': [_summary_payload(summary) for summary in summaries]})


@login_required
@role_required('student')
@require_POST
def payment_attempt_submit(request, course_code):
    form = PaymentAttemptForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'error': form.errors}, status=400)

    try:
        course = get_course(course_code)
        attempt = submit_payment_attempt(
            course=course,
            user=request.user,
            period=form.period,
            amount=form.cleaned_data['amount'],
            transaction_id=form.cleaned_data['transaction_id'],
        )
    except ValidationError as exc:
        return error_response(exc)

    return JsonResponse({'attempt': _attempt_payload(attempt)}, status=201)


@login_required
@role_required('admin')
@require_POST
def payment_attempt_verify(request, pk):
    attempt = get_object_or_404(PaymentAttempt, pk=pk)
    form = PaymentVerificationForm(request.POST)
    if not form.is_valid():
        return JsonResponse({'error': form.errors}, status=400)

    try:
        result = verify_payment_attempt(attempt=attempt, approve=form.approved, verified_by=request.user)
    except ValidationError as exc:
        return error_response(exc)

    verified = result['attempt']
    log_audit_event(
        request=request,
        action='fees.attempt_verify',
        target=verified,
        details=f"Status={verified.status}",
    )
    return JsonResponse({
        'attempt': _attempt_payload(verified),
        'restored_enrollments': [enrollment.course.code for enrollment in result['restored_enrollments']],
    })
