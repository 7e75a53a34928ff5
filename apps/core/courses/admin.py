from django.contrib import admin

from .models import Course, Enrollment


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'course_type', 'fees_monthly', 'fees_total', 'duration_months', 'is_active')
    list_filter = ('course_type', 'is_active')
    search_fields = ('code', 'name')


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ('user', 'course', 'approve_date', 'status', 'restored_at')
    list_filter = ('status', 'course')
    search_fields = ('user__username', 'course__code')
