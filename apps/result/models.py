from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from apps.corecode.models import TimeStampedModel
from .utils import grade_for, remark_for


class ExamQuerySet(models.QuerySet):
    def for_teacher(self, teacher_profile):
        return self.filter(teacher_profile=teacher_profile)

    def for_subject(self, subject):
        return self.filter(subject=subject)

    def for_academic_year(self, academic_year):
        return self.filter(academic_year=academic_year)


class Exam(TimeStampedModel):
    class Type(models.TextChoices):
        QUIZ = 'quiz', _('Quiz')
        MIDTERM = 'midterm', _('Midterm')
        FINAL = 'final', _('Final')
        ASSIGNMENT = 'assignment', _('Assignment')
        PROJECT = 'project', _('Project')

    subject = models.ForeignKey(
        'corecode.Subject',
        on_delete=models.CASCADE,
        related_name='exams'
    )
    teacher_profile = models.ForeignKey(
        'staffs.TeacherProfile',
        on_delete=models.CASCADE,
        related_name='exams',
        verbose_name=_("Teacher")
    )
    academic_year = models.ForeignKey(
        'corecode.AcademicYear',
        on_delete=models.PROTECT,
        related_name='exams'
    )
    title = models.CharField(max_length=200)
    exam_date = models.DateField()
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.QUIZ)
    max_score = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=100,
        validators=[MinValueValidator(Decimal('1'))]
    )

    objects = ExamQuerySet.as_manager()

    class Meta:
        ordering = ['-exam_date', 'title']

    def __str__(self):
        return f"{self.title} - {self.subject.name}"

    @property
    def eligible_students(self):
        """Students with a live enrollment in the exam's subject"""
        from apps.enrollments.models import ProgramEnrollment
        from apps.students.models import ChildProfile

        return ChildProfile.objects.filter(
            program_enrollments__academic_year=self.academic_year,
            program_enrollments__subject_enrollments__subject=self.subject,
            program_enrollments__status__in=[
                ProgramEnrollment.Status.PENDING,
                ProgramEnrollment.Status.ACTIVE,
            ],
        ).distinct()

    @property
    def average_percentage(self):
        results = list(self.results.all())
        if not results:
            return None
        return round(sum(result.percentage for result in results) / len(results), 2)


class ExamResult(TimeStampedModel):
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='results')
    child_profile = models.ForeignKey(
        'students.ChildProfile',
        on_delete=models.CASCADE,
        related_name='exam_results',
        verbose_name=_("Student")
    )
    score = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0'))]
    )
    remarks = models.TextField(blank=True)

    class Meta:
        ordering = ['exam', 'child_profile__last_name']
        constraints = [
            models.UniqueConstraint(
                fields=['exam', 'child_profile'], name='unique_result_per_exam'
            ),
        ]

    def __str__(self):
        return f"{self.child_profile} - {self.exam} ({self.score})"

    def clean(self):
        if self.exam_id and self.score is not None and self.score > self.exam.max_score:
            raise ValidationError({
                'score': _('Score cannot exceed the maximum of %(max)s') % {'max': self.exam.max_score}
            })

    @property
    def percentage(self):
        if not self.exam.max_score:
            return Decimal('0')
        return (Decimal(self.score) / Decimal(self.exam.max_score) * 100).quantize(Decimal('0.01'))

    @property
    def grade(self):
        return grade_for(self.percentage)

    @property
    def remark(self):
        return remark_for(self.grade)
