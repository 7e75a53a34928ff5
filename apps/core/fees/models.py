from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.core.courses.models import Course
from apps.core.utils.managers import CourseManager

from .periods import PERIOD_LABELS, BillingPeriod


class FinancialRecordModel(models.Model):
    class Meta:
        abstract = True

    def delete(self, *args, **kwargs):
        raise ValidationError('Payment records cannot be deleted. Mark the attempt as failed instead.')


class PaymentAttempt(FinancialRecordModel):
    STATUS_PENDING = 'pending'
    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending verification'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
    )
    PERIOD_CHOICES = tuple((label, label) for label in PERIOD_LABELS)

    course = models.ForeignKey(
        Course,
        on_delete=models.PROTECT,
        related_name='payment_attempts',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='payment_attempts',
    )
    objects = CourseManager()

    period_label = models.CharField(max_length=4, choices=PERIOD_CHOICES)
    period_year = models.PositiveSmallIntegerField()
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    transaction_id = models.CharField(max_length=120)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    created_at = models.DateTimeField(default=timezone.now)
    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='verified_payment_attempts',
    )

    class Meta:
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['course', 'user', 'period_year', 'period_label'],
                condition=Q(status='pending'),
                name='unique_pending_attempt_per_period',
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='payment_attempt_amount_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['course', 'user', 'period_year', 'period_label'], name='attempt_course_user_period_idx'),
            models.Index(fields=['user', 'status'], name='attempt_user_status_idx'),
        ]

    @property
    def period(self):
        return BillingPeriod.from_label(self.period_label, self.period_year)

    def clean(self):
        super().clean()

        if self.amount is None or self.amount <= 0:
            raise ValidationError({'amount': 'Payment amount must be greater than zero.'})

        if self.transaction_id:
            self.transaction_id = self.transaction_id.strip()
        if not self.transaction_id:
            raise ValidationError({'transaction_id': 'Transaction id is required.'})

        if self.status != self.STATUS_PENDING and not self.verified_at:
            raise ValidationError({'verified_at': 'Verification timestamp is required once an attempt is resolved.'})

        if not self.pk:
            return

        previous = PaymentAttempt.objects.filter(pk=self.pk).first()
        if not previous:
            return

        immutable_fields = [
            'course_id',
            'user_id',
            'period_label',
            'period_year',
            'amount',
            'transaction_id',
            'created_at',
        ]
        if any(getattr(previous, field) != getattr(self, field) for field in immutable_fields):
            raise ValidationError('Payment attempts are immutable apart from their verification status.')

        if previous.status != self.STATUS_PENDING and previous.status != self.status:
            raise ValidationError('A verified payment attempt cannot change status again.')

    def __str__(self):
        return f"{self.course.code} {self.period} {self.amount} ({self.status})"


