from django import forms
from django.utils import timezone

from .models import PaymentAttempt
from .periods import BillingPeriod


class PaymentAttemptForm(forms.Form):
    period_label = forms.ChoiceField(choices=PaymentAttempt.PERIOD_CHOICES)
    period_year = forms.IntegerField(min_value=2000, max_value=2999)
    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    transaction_id = forms.CharField(max_length=120)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['period_year'].initial = timezone.localdate().year

    def clean_transaction_id(self):
        value = self.cleaned_data['transaction_id'].strip()
        if not value:
            raise forms.ValidationError('Transaction id is required.')
        return value

    @property
    def period(self):
        return BillingPeriod.from_label(self.cleaned_data['period_label'], self.cleaned_data['period_year'])


class PaymentVerificationForm(forms.Form):
    DECISION_APPROVE = 'approve'
    DECISION_REJECT = 'reject'
    DECISION_CHOICES = (
        (DECISION_APPROVE, 'Approve'),
        (DECISION_REJECT, 'Reject'),
    )

    decision = forms.ChoiceField(choices=DECISION_CHOICES)

    @property
    def approved(self):
        return self.cleaned_data['decision'] == self.DECISION_APPROVE
