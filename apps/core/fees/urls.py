from django.urls import path

from .views import fee_overview, payment_attempt_submit, payment_attempt_verify

urlpatterns = [
    path('overview/', fee_overview, name='fee_overview'),
    path('courses/<str:course_code>/attempts/', payment_attempt_submit, name='payment_attempt_submit'),
    path('attempts/<int:pk>/verify/', payment_attempt_verify, name='payment_attempt_verify'),
]
