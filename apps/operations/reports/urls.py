from django.urls import path

from .views import attendance_history_report, payment_history_report

urlpatterns = [
    path('payments/', payment_history_report, name='payment_history_report'),
    path('attendance/', attendance_history_report, name='attendance_history_report'),
]
