from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


class Course(models.Model):
    TYPE_CORE = 'core'
    TYPE_ELECTIVE = 'elective'
    TYPE_CHOICES = (
        (TYPE_CORE, 'Core Curriculum'),
        (TYPE_ELECTIVE, 'Elective'),
    )

    code = models.CharField(max_length=40, unique=True)
    name = models.CharField(max_length=200)
    course_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_CORE)
    fees_monthly = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    fees_total = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    duration_months = models.PositiveSmallIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name', 'id']
        constraints = [
            models.CheckConstraint(
                condition=Q(fees_monthly__gte=0),
                name='course_fees_monthly_non_negative',
            ),
        ]
        indexes = [
            models.Index(fields=['course_type', 'is_active'], name='course_type_active_idx'),
        ]

    @property
    def is_elective(self):
        return self.course_type == self.TYPE_ELECTIVE

    @property
    def offers_lump_sum(self):
        return bool(self.is_elective and self.fees_total and self.duration_months)

    def clean(self):
        super().clean()
        if self.code:
            self.code = self.code.strip()
        if not self.code:
            raise ValidationError({'code': 'Course code is required.'})

        if self.fees_monthly is None or self.fees_monthly < 0:
            raise ValidationError({'fees_monthly': 'Monthly fee cannot be negative.'})
        if self.fees_total is not None and self.fees_total <= 0:
            raise ValidationError({'fees_total': 'Total fee must be greater than zero.'})
        if self.duration_months is not None and self.duration_months < 1:
            raise ValidationError({'duration_months': 'Duration must be at least one month.'})

        if self.course_type == self.TYPE_CORE and (self.fees_total is not None or self.duration_months is not None):
            raise ValidationError('Core curriculum courses are billed monthly and take no total fee or duration.')

    def __str__(self):
        return f"{self.name} ({self.code})"


class Enrollment(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_SUCCESS = 'success'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending dues'),
        (STATUS_SUCCESS, 'Active'),
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='enrollments',
    )
    course = models.ForeignKey(
        Course,
        on_delete=models.CASCADE,
        related_name='enrollments',
    )
    approve_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SUCCESS)
    restored_at = models.DateTimeField(null=True, blank=True)
    restoration_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['approve_date', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'course'],
                name='unique_enrollment_per_user_course',
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'status'], name='enrollment_user_status_idx'),
        ]

    def clean(self):
        super().clean()
        if not self.pk:
            return

        previous = Enrollment.objects.filter(pk=self.pk).first()
        if not previous:
            return

        protected_fields = ['user_id', 'course_id', 'approve_date']
        if any(getattr(previous, field) != getattr(self, field) for field in protected_fields):
            raise ValidationError('Only the status of an enrollment can change after approval.')

    def __str__(self):
        return f"{self.user} - {self.course.code} ({self.status})"
