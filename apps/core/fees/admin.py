from django.contrib import admin

from .models import PaymentAttempt


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = ('course', 'user', 'period_label', 'period_year', 'amount', 'status', 'created_at')
    list_filter = ('status', 'period_year', 'course')
    search_fields = ('transaction_id', 'user__username', 'course__code')
    readonly_fields = ('verified_at', 'verified_by')
