from django.contrib import admin

from .models import AttendanceSession, SessionPresence


class SessionPresenceInline(admin.TabularInline):
    model = SessionPresence
    extra = 0
    readonly_fields = ('user', 'marked_at')


@admin.register(AttendanceSession)
class AttendanceSessionAdmin(admin.ModelAdmin):
    list_display = (
        'class_id',
        'course',
        'topic',
        'timer_minutes',
        'started_at',
        'expires_at',
        'status',
    )
    list_filter = ('status', 'course')
    search_fields = ('class_id', 'topic', 'course__code')
    inlines = [SessionPresenceInline]


@admin.register(SessionPresence)
class SessionPresenceAdmin(admin.ModelAdmin):
    list_display = ('session', 'user', 'marked_at')
    search_fields = ('user__username', 'session__class_id')
