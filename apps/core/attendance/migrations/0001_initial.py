import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('courses', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AttendanceSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('class_id', models.CharField(max_length=64)),
                ('topic', models.CharField(blank=True, max_length=200)),
                ('timer_minutes', models.PositiveSmallIntegerField()),
                ('started_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('expires_at', models.DateTimeField()),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive')], default='active', max_length=20)),
                ('closed_at', models.DateTimeField(blank=True, null=True)),
                ('course', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attendance_sessions', to='courses.course')),
                ('started_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='started_attendance_sessions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-started_at', '-id'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'active')), fields=('class_id',), name='unique_active_session_per_class'),
                    models.CheckConstraint(condition=models.Q(('expires_at__gt', models.F('started_at'))), name='attendance_session_expires_after_start'),
                ],
                'indexes': [
                    models.Index(fields=['class_id', 'status'], name='session_class_status_idx'),
                    models.Index(fields=['course', 'started_at'], name='session_course_started_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SessionPresence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('marked_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='presences', to='attendance.attendancesession')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='session_presences', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['marked_at', 'id'],
                'constraints': [
                    models.UniqueConstraint(fields=('session', 'user'), name='unique_presence_per_session_user'),
                ],
            },
        ),
    ]
