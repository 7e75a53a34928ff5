from apps.core.utils.exceptions import NotFound

from .models import Course, Enrollment


def get_course(code):
    course = Course.objects.filter(code=code).first()
    if not course:
        raise NotFound(f'Unknown course {code}.')
    return course


def get_enrollment(*, user, course):
    enrollment = Enrollment.objects.select_related('course').filter(user=user, course=course).first()
    if not enrollment:
        raise NotFound(f'{user} is not enrolled in {course.code}.')
    return enrollment


def enrollments_for_user(user):
    return list(
        Enrollment.objects.filter(
            user=user,
            course__is_active=True,
        ).select_related('course').order_by('approve_date', 'id')
    )
