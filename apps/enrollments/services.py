"""
Services for program and subject enrollment
"""
import logging

from django.db import IntegrityError, transaction
from django.utils.translation import gettext_lazy as _

from apps.activity.models import ActivityLog
from .models import DUPLICATE_ENROLLMENT_MESSAGE, ProgramEnrollment, SubjectEnrollment

logger = logging.getLogger(__name__)

TRACKED_FIELDS = (
    'child_profile_id',
    'curriculum_id',
    'academic_year_id',
    'payment_plan_id',
    'status',
)


class EnrollmentError(Exception):
    """Custom exception for enrollment errors"""
    pass


class DuplicateEnrollmentError(EnrollmentError):
    """Raised when the (student, curriculum, academic year) triple already exists"""

    def __init__(self, message=DUPLICATE_ENROLLMENT_MESSAGE):
        super().__init__(str(message))


class EnrollmentService:
    """Create, update and delete program enrollments"""

    @classmethod
    def duplicate_exists(cls, child_profile, curriculum, academic_year, exclude_pk=None):
        queryset = ProgramEnrollment.objects.filter(
            child_profile=child_profile,
            curriculum=curriculum,
            academic_year=academic_year,
        )
        if exclude_pk is not None:
            queryset = queryset.exclude(pk=exclude_pk)
        return queryset.exists()

    @classmethod
    def validate_payment_plan(cls, payment_plan, curriculum):
        if payment_plan is None:
            return
        if not payment_plan.is_active:
            raise EnrollmentError(_("The selected payment plan is not active"))
        if not payment_plan.can_be_used_for_curriculum(curriculum):
            raise EnrollmentError(
                _("The selected payment plan cannot be used for this curriculum")
            )

    @classmethod
    def create_enrollment(cls, child_profile, curriculum, academic_year,
                          status=ProgramEnrollment.Status.PENDING, payment_plan=None,
                          notes='', user=None, request=None):
        """
        Create a program enrollment

        The unique constraint on (student, curriculum, academic year) is the
        final arbiter; a concurrent duplicate surfaces as DuplicateEnrollmentError.

        Returns:
            ProgramEnrollment: The created enrollment
        """
        cls.validate_payment_plan(payment_plan, curriculum)

        try:
            with transaction.atomic():
                enrollment = ProgramEnrollment.objects.create(
                    child_profile=child_profile,
                    curriculum=curriculum,
                    academic_year=academic_year,
                    status=status,
                    payment_plan=payment_plan,
                    notes=notes,
                    created_by=user if user is not None and user.is_authenticated else None,
                )
        except IntegrityError:
            logger.warning(
                "Duplicate enrollment rejected: student=%s curriculum=%s year=%s",
                child_profile.pk, curriculum.pk, academic_year.pk,
            )
            raise DuplicateEnrollmentError()

        ActivityLog.log(
            user,
            ActivityLog.Action.CREATE,
            f"Created program enrollment for student: {child_profile.full_name}",
            subject=enrollment,
            activity_type='program_enrollment',
            additional_data={
                'student_name': child_profile.full_name,
                'curriculum_name': curriculum.name,
                'academic_year': academic_year.name,
                'status': enrollment.status,
            },
            request=request,
        )
        logger.info(f"Enrollment created: {enrollment.pk} for {child_profile.full_name}")
        return enrollment

    @classmethod
    def update_enrollment(cls, enrollment, user=None, request=None, **changes):
        """
        Update an enrollment and log old/new values of the tracked fields

        Args:
            enrollment: ProgramEnrollment to change
            changes: any of child_profile, curriculum, academic_year,
                payment_plan, status, notes

        Moving to another curriculum drops the subject enrollments whose
        subject is not part of the new curriculum.
        """
        old_values = {field: getattr(enrollment, field) for field in TRACKED_FIELDS}

        for field, value in changes.items():
            setattr(enrollment, field, value)

        cls.validate_payment_plan(enrollment.payment_plan, enrollment.curriculum)

        removed_subjects = []
        try:
            with transaction.atomic():
                enrollment.save()
                if enrollment.curriculum_id != old_values['curriculum_id']:
                    stale = enrollment.subject_enrollments.exclude(
                        subject__curriculum_id=enrollment.curriculum_id
                    )
                    removed_subjects = list(stale.values_list('subject__name', flat=True))
                    stale.delete()
        except IntegrityError:
            # restore in-memory state so callers can re-render the form
            enrollment.refresh_from_db()
            raise DuplicateEnrollmentError()

        new_values = {field: getattr(enrollment, field) for field in TRACKED_FIELDS}
        changed = ActivityLog.diff(old_values, new_values)

        additional_data = {
            'old_values': old_values,
            'new_values': new_values,
            'changes': changed,
        }
        if removed_subjects:
            additional_data['removed_subjects'] = removed_subjects

        ActivityLog.log(
            user,
            ActivityLog.Action.UPDATE,
            f"Updated program enrollment for student: {enrollment.child_profile.full_name}",
            subject=enrollment,
            activity_type='program_enrollment',
            additional_data=additional_data,
            request=request,
        )
        logger.info(f"Enrollment updated: {enrollment.pk} ({', '.join(changed) or 'no changes'})")
        return enrollment

    @classmethod
    def delete_enrollment(cls, enrollment, user=None, request=None):
        """Delete an enrollment with its subject enrollments; invoices are kept"""
        description = (
            f"Deleted program enrollment for student: {enrollment.child_profile.full_name}"
        )
        details = {
            'student_name': enrollment.child_profile.full_name,
            'curriculum_name': enrollment.curriculum.name,
            'academic_year': enrollment.academic_year.name,
            'subjects': list(enrollment.subject_enrollments.values_list('subject__name', flat=True)),
        }
        child = enrollment.child_profile
        enrollment_id = enrollment.pk

        with transaction.atomic():
            enrollment.delete()

        ActivityLog.log(
            user,
            ActivityLog.Action.DELETE,
            description,
            subject=child,
            activity_type='program_enrollment',
            additional_data={'enrollment_id': enrollment_id, **details},
            request=request,
        )
        logger.info(f"Enrollment deleted: {enrollment_id}")


class SubjectEnrollmentService:
    """Add and remove subjects under a program enrollment"""

    @classmethod
    def add_subjects(cls, enrollment, subjects, user=None, request=None):
        """
        Enroll the student into subjects of the enrollment's curriculum

        Returns:
            list: created SubjectEnrollment rows
        """
        available_ids = set(enrollment.available_subjects.values_list('pk', flat=True))
        subjects = list(subjects)

        rejected = [subject for subject in subjects if subject.pk not in available_ids]
        if rejected:
            raise EnrollmentError(
                _("These subjects are not available for this enrollment: %(subjects)s") % {
                    'subjects': ', '.join(str(subject) for subject in rejected)
                }
            )

        try:
            with transaction.atomic():
                created = [
                    SubjectEnrollment.objects.create(program_enrollment=enrollment, subject=subject)
                    for subject in subjects
                ]
        except IntegrityError:
            raise EnrollmentError(_("One of the subjects is already enrolled"))

        if created:
            ActivityLog.log(
                user,
                ActivityLog.Action.CREATE,
                f"Enrolled {enrollment.child_profile.full_name} in "
                f"{', '.join(subject.name for subject in subjects)}",
                subject=enrollment,
                activity_type='subject_enrollment',
                additional_data={'subject_ids': [subject.pk for subject in subjects]},
                request=request,
            )
        return created

    @classmethod
    def remove_subject(cls, enrollment, subject, user=None, request=None):
        """Remove a single subject; the program enrollment and siblings remain"""
        deleted, _details = SubjectEnrollment.objects.filter(
            program_enrollment=enrollment, subject=subject
        ).delete()

        if not deleted:
            raise EnrollmentError(_("The student is not enrolled in this subject"))

        ActivityLog.log(
            user,
            ActivityLog.Action.DELETE,
            f"Removed {enrollment.child_profile.full_name} from {subject.name}",
            subject=enrollment,
            activity_type='subject_enrollment',
            additional_data={'subject_id': subject.pk, 'subject_name': subject.name},
            request=request,
        )
        return deleted
