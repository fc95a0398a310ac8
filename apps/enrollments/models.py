from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.corecode.models import TimeStampedModel

DUPLICATE_ENROLLMENT_MESSAGE = _(
    "This student is already enrolled in this curriculum for the selected academic year."
)


class ProgramEnrollmentQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status=ProgramEnrollment.Status.ACTIVE)

    def for_student(self, child):
        return self.filter(child_profile=child)

    def for_curriculum(self, curriculum):
        return self.filter(curriculum=curriculum)

    def for_academic_year(self, academic_year):
        return self.filter(academic_year=academic_year)


class ProgramEnrollment(TimeStampedModel):
    """A student's registration into a curriculum for an academic year"""

    class Status(models.TextChoices):
        PENDING = 'Pending', _('Pending')
        ACTIVE = 'Active', _('Active')
        COMPLETED = 'Completed', _('Completed')
        CANCELLED = 'Cancelled', _('Cancelled')

    child_profile = models.ForeignKey(
        'students.ChildProfile',
        on_delete=models.CASCADE,
        related_name='program_enrollments',
        verbose_name=_("Student")
    )
    curriculum = models.ForeignKey(
        'corecode.Curriculum',
        on_delete=models.PROTECT,
        related_name='enrollments',
        verbose_name=_("Curriculum")
    )
    academic_year = models.ForeignKey(
        'corecode.AcademicYear',
        on_delete=models.PROTECT,
        related_name='enrollments',
        verbose_name=_("Academic Year")
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        verbose_name=_("Status")
    )
    payment_plan = models.ForeignKey(
        'finance.PaymentPlan',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='enrollments',
        verbose_name=_("Payment Plan")
    )
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    objects = ProgramEnrollmentQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        verbose_name = _('Program Enrollment')
        verbose_name_plural = _('Program Enrollments')
        constraints = [
            models.UniqueConstraint(
                fields=['child_profile', 'curriculum', 'academic_year'],
                name='unique_enrollment_per_student_curriculum_year',
                violation_error_message=DUPLICATE_ENROLLMENT_MESSAGE,
            ),
        ]

    def __str__(self):
        return f"{self.child_profile} - {self.curriculum} ({self.academic_year})"

    @property
    def invoices_count(self):
        return self.invoices.count()

    @property
    def has_invoices(self):
        return self.invoices.exists()

    @property
    def enrolled_subject_ids(self):
        return set(self.subject_enrollments.values_list('subject_id', flat=True))

    @property
    def available_subjects(self):
        """Curriculum subjects not yet enrolled"""
        return self.curriculum.subjects.exclude(pk__in=self.enrolled_subject_ids)


class SubjectEnrollment(TimeStampedModel):
    """A student's registration into one subject of a program enrollment"""

    program_enrollment = models.ForeignKey(
        ProgramEnrollment,
        on_delete=models.CASCADE,
        related_name='subject_enrollments'
    )
    subject = models.ForeignKey(
        'corecode.Subject',
        on_delete=models.CASCADE,
        related_name='subject_enrollments'
    )

    class Meta:
        ordering = ['subject__name']
        constraints = [
            models.UniqueConstraint(
                fields=['program_enrollment', 'subject'],
                name='unique_subject_per_enrollment',
            ),
        ]

    def __str__(self):
        return f"{self.program_enrollment.child_profile} - {self.subject}"

    def clean(self):
        if self.subject_id and self.program_enrollment_id:
            if self.subject.curriculum_id != self.program_enrollment.curriculum_id:
                raise ValidationError({
                    'subject': _("Subject does not belong to the enrollment's curriculum")
                })
