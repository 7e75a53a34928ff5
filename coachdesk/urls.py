from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    path('fees/', include('apps.core.fees.urls')),
    path('attendance/', include('apps.core.attendance.urls')),
    path('reports/', include('apps.operations.reports.urls')),
]
