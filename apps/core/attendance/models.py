from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from apps.core.courses.models import Course
from apps.core.utils.managers import CourseManager


class AttendanceSession(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
    )

    course = models.ForeignKey(
        Course,
        on_delete=models.CASCADE,
        related_name='attendance_sessions',
    )
    objects = CourseManager()

    class_id = models.CharField(max_length=64)
    topic = models.CharField(max_length=200, blank=True)
    timer_minutes = models.PositiveSmallIntegerField()
    started_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    started_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='started_attendance_sessions',
    )
    closed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-started_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['class_id'],
                condition=Q(status='active'),
                name='unique_active_session_per_class',
            ),
            models.CheckConstraint(
                condition=Q(expires_at__gt=F('started_at')),
                name='attendance_session_expires_after_start',
            ),
        ]
        indexes = [
            models.Index(fields=['class_id', 'status'], name='session_class_status_idx'),
            models.Index(fields=['course', 'started_at'], name='session_course_started_idx'),
        ]

    def clean(self):
        super().clean()
        if self.class_id:
            self.class_id = self.class_id.strip()
        if not self.class_id:
            raise ValidationError({'class_id': 'Class id is required.'})

        max_minutes = int(getattr(settings, 'ATTENDANCE_MAX_TIMER_MINUTES', 180))
        if not self.timer_minutes or self.timer_minutes < 1 or self.timer_minutes > max_minutes:
            raise ValidationError({'timer_minutes': f'Timer must be between 1 and {max_minutes} minutes.'})

    def save(self, *args, **kwargs):
        if self.expires_at is None and self.started_at and self.timer_minutes:
            self.expires_at = self.started_at + timedelta(minutes=self.timer_minutes)
        super().save(*args, **kwargs)

    def is_expired(self, now=None):
        return (now or timezone.now()) >= self.expires_at

    def is_open(self, now=None):
        return self.status == self.STATUS_ACTIVE and not self.is_expired(now)

    def __str__(self):
        return f"{self.class_id} {self.topic} ({self.status})"


class SessionPresence(models.Model):
    session = models.ForeignKey(
        AttendanceSession,
        on_delete=models.CASCADE,
        related_name='presences',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='session_presences',
    )
    marked_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['marked_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['session', 'user'],
                name='unique_presence_per_session_user',
            ),
        ]

    def __str__(self):
        return f"{self.user} @ {self.session_id}"
