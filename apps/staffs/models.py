from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.corecode.models import Curriculum, TimeStampedModel
from apps.students.models import ChildProfile


class TeacherProfileQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status=TeacherProfile.Status.ACTIVE)

    def by_subject(self, subject):
        return self.filter(subjects=subject)

    def by_department(self, department):
        return self.filter(department=department)

    def search(self, term):
        return self.filter(
            Q(user__first_name__icontains=term) |
            Q(user__last_name__icontains=term) |
            Q(user__email__icontains=term) |
            Q(employee_id__icontains=term) |
            Q(specialization__icontains=term)
        )

    def with_students(self):
        """Teachers with at least one timetabled subject that has active enrollments"""
        from apps.enrollments.models import ProgramEnrollment
        return self.filter(
            timetable_slots__subject__curriculum__enrollments__status=ProgramEnrollment.Status.ACTIVE
        ).distinct()


class TeacherProfile(TimeStampedModel):
    """Teacher profile"""

    class Status(models.TextChoices):
        ACTIVE = 'active', _('Active')
        INACTIVE = 'inactive', _('Inactive')
        ON_LEAVE = 'on_leave', _('On Leave')

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='teacher_profile'
    )
    bio = models.TextField(blank=True)
    specialization = models.CharField(max_length=200, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    employee_id = models.CharField(
        max_length=50,
        unique=True,
        null=True,
        blank=True,
        verbose_name=_("Employee ID")
    )
    department = models.CharField(max_length=100, blank=True)
    qualification = models.CharField(max_length=200, blank=True)
    experience_years = models.PositiveIntegerField(default=0)
    date_joined = models.DateField(default=timezone.localdate)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE
    )
    subjects = models.ManyToManyField(
        'corecode.Subject',
        related_name='teachers',
        blank=True,
        verbose_name=_("Subjects")
    )

    objects = TeacherProfileQuerySet.as_manager()

    class Meta:
        ordering = ['user__last_name', 'user__first_name']
        verbose_name = _('Teacher Profile')
        verbose_name_plural = _('Teacher Profiles')

    def __str__(self):
        return self.full_name

    @property
    def full_name(self):
        return self.user.get_full_name() or self.user.get_username()

    def teaches_subject(self, subject):
        return self.subjects.filter(pk=subject.pk).exists()

    def _enrolled_students(self, **filters):
        from apps.enrollments.models import ProgramEnrollment
        return ChildProfile.objects.filter(
            program_enrollments__status=ProgramEnrollment.Status.ACTIVE,
            **filters
        ).distinct()

    @property
    def current_students(self):
        """Students actively enrolled this year in a curriculum this teacher timetables"""
        return self._enrolled_students(
            program_enrollments__academic_year__is_current=True,
            program_enrollments__curriculum__subjects__timetable_slots__teacher_profile=self,
        )

    def students_for_subject(self, subject):
        return self._enrolled_students(
            program_enrollments__subject_enrollments__subject=subject,
        )

    def students_for_curriculum(self, curriculum):
        return self._enrolled_students(
            program_enrollments__curriculum=curriculum,
        )

    def teaches_student(self, child):
        return self.current_students.filter(pk=child.pk).exists()

    @property
    def student_parents(self):
        User = get_user_model()
        return User.objects.filter(children__in=self.current_students).distinct()

    @property
    def curricula(self):
        return Curriculum.objects.filter(subjects__teachers=self).distinct()

    @property
    def current_enrollments(self):
        from apps.enrollments.models import ProgramEnrollment
        return ProgramEnrollment.objects.active().filter(
            academic_year__is_current=True,
            curriculum__in=self.curricula,
        )

    @property
    def students_count(self):
        return self.current_students.count()

    @property
    def subjects_count(self):
        return self.subjects.count()
