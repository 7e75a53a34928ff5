from django.db import models

class CourseQuerySet(models.QuerySet):
    def for_course(self, course):
        return self.filter(course=course)

    def for_user(self, user):
        return self.filter(user=user)


class CourseManager(models.Manager):
    def get_queryset(self):
        return CourseQuerySet(self.model, using=self._db)

    def for_course(self, course):
        return self.get_queryset().for_course(course)

    def for_user(self, user):
        return self.get_queryset().for_user(user)
