from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.http import JsonResponse
from django.test import RequestFactory, TestCase

from .audit import log_audit_event
from .decorators import role_required
from .models import AuditLog


@role_required(('admin', 'instructor'))
def _staff_only_view(request):
    return JsonResponse({'ok': True})


class RoleAccessTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.factory = RequestFactory()

        self.instructor = self.user_model.objects.create_user(
            username='instructor1',
            password='pass12345',
            role='instructor',
        )
        self.student = self.user_model.objects.create_user(
            username='student1',
            password='pass12345',
        )

    def _get(self, user):
        request = self.factory.get('/staff-only/')
        request.user = user
        return _staff_only_view(request)

    def test_new_users_default_to_student(self):
        self.assertEqual(self.student.role, 'student')

    def test_instructor_passes_role_check(self):
        self.assertEqual(self._get(self.instructor).status_code, 200)

    def test_student_is_forbidden(self):
        self.assertEqual(self._get(self.student).status_code, 403)

    def test_anonymous_user_must_authenticate(self):
        self.assertEqual(self._get(AnonymousUser()).status_code, 401)

    def test_superuser_is_always_admin(self):
        superuser = self.user_model.objects.create_superuser('root', 'root@example.com', 'pass12345')
        self.assertEqual(superuser.role, 'admin')

        superuser.role = 'student'
        superuser.save()
        superuser.refresh_from_db()
        self.assertEqual(superuser.role, 'admin')


class AuditLogTests(TestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.admin = get_user_model().objects.create_user(
            username='audit_admin',
            password='pass12345',
            role='admin',
        )

    def test_event_records_request_context(self):
        request = self.factory.post('/fees/attempts/1/verify/', HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1')
        request.user = self.admin

        log_audit_event(request, 'fees.attempt_verify', target=self.admin, details='Status=success')

        entry = AuditLog.objects.get()
        self.assertEqual(entry.user, self.admin)
        self.assertEqual(entry.method, 'POST')
        self.assertEqual(entry.path, '/fees/attempts/1/verify/')
        self.assertEqual(entry.ip_address, '203.0.113.7')
        self.assertEqual(entry.target_model, 'User')
        self.assertEqual(entry.target_id, str(self.admin.pk))

    def test_anonymous_event_has_no_user(self):
        request = self.factory.get('/attendance/classes/PY-101/')
        request.user = AnonymousUser()

        log_audit_event(request, 'attendance.view')

        self.assertIsNone(AuditLog.objects.get().user)
