"""
Grading helpers for exam results
"""
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

GRADE_THRESHOLDS = (
    (75, 'A'),
    (65, 'B'),
    (55, 'C'),
    (50, 'D'),
    (45, 'E'),
)

REMARKS = {
    'A': 'Excellent',
    'B': 'Very Good',
    'C': 'Good',
    'D': 'Pass',
    'E': 'Fair',
    'F': 'Fail',
}


def grade_for(percentage):
    """Letter grade for a percentage score"""
    for minimum, grade in GRADE_THRESHOLDS:
        if percentage >= minimum:
            return grade
    return 'F'


def remark_for(grade):
    return REMARKS.get(grade, 'Unknown')


def validate_student_for_exam(exam, child_profile):
    """
    Validate that a student can receive a result for the exam

    Raises: ValidationError if the student is not enrolled in the exam's subject
    """
    if not exam.eligible_students.filter(pk=child_profile.pk).exists():
        raise ValidationError(
            _("%(student)s is not enrolled in %(subject)s for %(year)s") % {
                'student': child_profile.full_name,
                'subject': exam.subject.name,
                'year': exam.academic_year.name,
            }
        )
    return child_profile


def grade_distribution(results):
    """Count results per letter grade"""
    distribution = {grade: 0 for grade in REMARKS}
    for result in results:
        distribution[result.grade] += 1
    return distribution
