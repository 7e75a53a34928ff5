import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Course',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=40, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('course_type', models.CharField(choices=[('core', 'Core Curriculum'), ('elective', 'Elective')], default='core', max_length=20)),
                ('fees_monthly', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('fees_total', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('duration_months', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['name', 'id'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('fees_monthly__gte', 0)), name='course_fees_monthly_non_negative'),
                ],
                'indexes': [
                    models.Index(fields=['course_type', 'is_active'], name='course_type_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Enrollment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('approve_date', models.DateTimeField()),
                ('status', models.CharField(choices=[('pending', 'Pending dues'), ('success', 'Active')], default='success', max_length=20)),
                ('restored_at', models.DateTimeField(blank=True, null=True)),
                ('restoration_reason', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('course', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='enrollments', to='courses.course')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='enrollments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['approve_date', 'id'],
                'constraints': [
                    models.UniqueConstraint(fields=('user', 'course'), name='unique_enrollment_per_user_course'),
                ],
                'indexes': [
                    models.Index(fields=['user', 'status'], name='enrollment_user_status_idx'),
                ],
            },
        ),
    ]
