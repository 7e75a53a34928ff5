from django.core.exceptions import ValidationError


class Conflict(ValidationError):
    """The requested change clashes with a record that is still open."""


class Expired(ValidationError):
    """The time window for the requested change has already closed."""


class NotFound(ValidationError):
    """An unknown course, enrollment, class or session was referenced."""


class InvalidAmount(ValidationError):
    """A payment amount that cannot be recorded."""
