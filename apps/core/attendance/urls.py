from django.urls import path

from .views import attendance_mark_present, attendance_session_start, class_attendance

urlpatterns = [
    path('classes/<str:class_id>/', class_attendance, name='class_attendance'),
    path('sessions/start/', attendance_session_start, name='attendance_session_start'),
    path('sessions/<int:pk>/present/', attendance_mark_present, name='attendance_mark_present'),
]
