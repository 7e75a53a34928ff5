from django.core.exceptions import ValidationError
from django.http import JsonResponse

from .exceptions import Conflict, Expired, NotFound


def _messages(exc):
    if hasattr(exc, 'message_dict'):
        return exc.message_dict
    return exc.messages


def error_response(exc: ValidationError) -> JsonResponse:
    if isinstance(exc, NotFound):
        status = 404
    elif isinstance(exc, Conflict):
        status = 409
    elif isinstance(exc, Expired):
        status = 410
    else:
        status = 400
    return JsonResponse({'error': _messages(exc)}, status=status)


def period_payload(period):
    return {
        'label': period.label,
        'year': period.year,
    }
