import logging

from apps.core.users.models import AuditLog

logger = logging.getLogger(__name__)


def _client_ip(request):
    forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def _acting_user(request):
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user
    return None


def _describe(target):
    if target is None:
        return '', ''
    return target.__class__.__name__, str(getattr(target, 'pk', '') or '')


def log_audit_event(request, action, target=None, details=''):
    """Record who did what to which row; failures are logged, never raised."""
    try:
        target_model, target_id = _describe(target)
        AuditLog.objects.create(
            user=_acting_user(request),
            action=action[:100],
            target_model=target_model[:100],
            target_id=target_id[:64],
            details=details,
            method=request.method or '',
            path=request.path[:255],
            ip_address=_client_ip(request),
        )
    except Exception:
        logger.exception('Could not record audit event %s', action)
