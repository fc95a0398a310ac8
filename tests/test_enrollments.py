from decimal import Decimal

import pytest
from django.urls import reverse

from apps.activity.models import ActivityLog
from apps.corecode.models import Curriculum
from apps.enrollments.models import ProgramEnrollment, SubjectEnrollment
from apps.enrollments.services import (
    DuplicateEnrollmentError,
    EnrollmentError,
    EnrollmentService,
    SubjectEnrollmentService,
)
from apps.finance.models import Invoice, PaymentPlan

pytestmark = pytest.mark.django_db


def test_create_enrollment_logs_activity(child, curriculum, academic_year, admin_user):
    enrollment = EnrollmentService.create_enrollment(
        child, curriculum, academic_year, user=admin_user
    )

    assert enrollment.status == ProgramEnrollment.Status.PENDING
    assert enrollment.created_by == admin_user

    entry = ActivityLog.objects.for_object(enrollment).get()
    assert entry.action == ActivityLog.Action.CREATE
    assert entry.activity_type == 'program_enrollment'
    assert entry.additional_data['curriculum_name'] == curriculum.name


def test_duplicate_enrollment_is_rejected(child, curriculum, academic_year):
    EnrollmentService.create_enrollment(child, curriculum, academic_year)

    with pytest.raises(DuplicateEnrollmentError):
        EnrollmentService.create_enrollment(child, curriculum, academic_year)

    assert ProgramEnrollment.objects.filter(child_profile=child).count() == 1


def test_same_student_can_enroll_in_another_curriculum(child, curriculum, academic_year):
    other = Curriculum.objects.create(name='IGCSE', code='IGCSE')

    EnrollmentService.create_enrollment(child, curriculum, academic_year)
    EnrollmentService.create_enrollment(child, other, academic_year)

    assert ProgramEnrollment.objects.filter(child_profile=child).count() == 2


def test_inactive_payment_plan_is_rejected(child, curriculum, academic_year, payment_plan):
    payment_plan.is_active = False
    payment_plan.save()

    with pytest.raises(EnrollmentError):
        EnrollmentService.create_enrollment(
            child, curriculum, academic_year, payment_plan=payment_plan
        )
    assert not ProgramEnrollment.objects.exists()


def test_payment_plan_for_other_curriculum_is_rejected(child, curriculum, academic_year):
    other = Curriculum.objects.create(name='IGCSE', code='IGCSE')
    plan = PaymentPlan.objects.create(name='IGCSE Fees', amount=Decimal('100'), curriculum=other)

    with pytest.raises(EnrollmentError):
        EnrollmentService.create_enrollment(child, curriculum, academic_year, payment_plan=plan)


def test_update_enrollment_records_changed_fields(enrollment, admin_user):
    EnrollmentService.update_enrollment(
        enrollment, user=admin_user, status=ProgramEnrollment.Status.COMPLETED
    )

    enrollment.refresh_from_db()
    assert enrollment.status == ProgramEnrollment.Status.COMPLETED

    entry = ActivityLog.objects.for_object(enrollment).with_action(ActivityLog.Action.UPDATE).get()
    assert entry.additional_data['changes'] == {
        'status': {'old': 'Active', 'new': 'Completed'},
    }


def test_update_into_duplicate_keeps_original_values(child, curriculum, academic_year):
    other = Curriculum.objects.create(name='IGCSE', code='IGCSE')
    EnrollmentService.create_enrollment(child, curriculum, academic_year)
    second = EnrollmentService.create_enrollment(child, other, academic_year)

    with pytest.raises(DuplicateEnrollmentError):
        EnrollmentService.update_enrollment(second, curriculum=curriculum)

    assert second.curriculum == other


def test_curriculum_change_drops_subjects_of_old_curriculum(enrollment, subjects, admin_user):
    other = Curriculum.objects.create(name='IB Primary', code='IB-P')

    EnrollmentService.update_enrollment(enrollment, user=admin_user, curriculum=other)

    enrollment.refresh_from_db()
    assert enrollment.curriculum == other
    assert not enrollment.subject_enrollments.exists()
    assert enrollment.available_subjects.count() == 0

    entry = ActivityLog.objects.for_object(enrollment).with_action(ActivityLog.Action.UPDATE).get()
    assert entry.additional_data['removed_subjects'] == ['Mathematics']


def test_edit_form_reports_duplicate_once(child, curriculum, academic_year):
    from apps.enrollments.forms import ProgramEnrollmentForm
    from apps.enrollments.models import DUPLICATE_ENROLLMENT_MESSAGE

    other = Curriculum.objects.create(name='IGCSE', code='IGCSE')
    EnrollmentService.create_enrollment(child, curriculum, academic_year)
    second = EnrollmentService.create_enrollment(child, other, academic_year)

    form = ProgramEnrollmentForm(
        data={
            'child_profile': child.pk,
            'curriculum': curriculum.pk,
            'academic_year': academic_year.pk,
            'status': ProgramEnrollment.Status.PENDING,
            'notes': '',
        },
        instance=second,
    )

    assert not form.is_valid()
    assert form.non_field_errors() == [str(DUPLICATE_ENROLLMENT_MESSAGE)]


def test_delete_enrollment_keeps_invoices(enrollment, admin_user):
    invoice = Invoice.objects.create(
        child_profile=enrollment.child_profile,
        academic_year=enrollment.academic_year,
        curriculum=enrollment.curriculum,
        program_enrollment=enrollment,
        due_date=enrollment.academic_year.end_date,
    )

    EnrollmentService.delete_enrollment(enrollment, user=admin_user)

    assert not ProgramEnrollment.objects.exists()
    assert not SubjectEnrollment.objects.exists()
    invoice.refresh_from_db()
    assert invoice.program_enrollment is None


def test_add_subjects(enrollment, subjects):
    created = SubjectEnrollmentService.add_subjects(enrollment, subjects[1:])

    assert len(created) == 2
    assert enrollment.enrolled_subject_ids == {subject.pk for subject in subjects}
    assert not enrollment.available_subjects.exists()


def test_add_subject_from_other_curriculum_is_rejected(enrollment):
    other = Curriculum.objects.create(name='IGCSE', code='IGCSE')
    foreign = other.subjects.create(name='History', code='HIST')

    with pytest.raises(EnrollmentError):
        SubjectEnrollmentService.add_subjects(enrollment, [foreign])


def test_add_already_enrolled_subject_is_rejected(enrollment, subjects):
    with pytest.raises(EnrollmentError):
        SubjectEnrollmentService.add_subjects(enrollment, [subjects[0]])

    assert enrollment.subject_enrollments.count() == 1


def test_remove_subject_keeps_siblings(enrollment, subjects):
    SubjectEnrollmentService.add_subjects(enrollment, [subjects[1]])

    SubjectEnrollmentService.remove_subject(enrollment, subjects[0])

    assert ProgramEnrollment.objects.filter(pk=enrollment.pk).exists()
    assert enrollment.enrolled_subject_ids == {subjects[1].pk}


def test_remove_subject_not_enrolled(enrollment, subjects):
    with pytest.raises(EnrollmentError):
        SubjectEnrollmentService.remove_subject(enrollment, subjects[2])


def test_auto_invoicing_plan_generates_invoices_on_commit(
    child, curriculum, academic_year, payment_plan, django_capture_on_commit_callbacks
):
    payment_plan.auto_generate_invoices = True
    payment_plan.save()

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        enrollment = EnrollmentService.create_enrollment(
            child, curriculum, academic_year, payment_plan=payment_plan
        )

    assert len(callbacks) == 1
    assert enrollment.invoices.count() == payment_plan.installments
    assert set(enrollment.invoices.values_list('status', flat=True)) == {Invoice.Status.PENDING}


def test_plan_without_auto_invoicing_queues_nothing(
    child, curriculum, academic_year, payment_plan, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        EnrollmentService.create_enrollment(
            child, curriculum, academic_year, payment_plan=payment_plan
        )

    assert callbacks == []
    assert not Invoice.objects.exists()


def test_enrollment_list_requires_permission(client, parent_user):
    client.force_login(parent_user)

    response = client.get(reverse('enrollments:enrollment_list'))

    assert response.status_code == 403


def test_enrollment_list_filters_by_status(client, admin_user, enrollment):
    client.force_login(admin_user)

    response = client.get(reverse('enrollments:enrollment_list'), {'status': 'Active'})
    assert list(response.context['enrollments']) == [enrollment]

    response = client.get(reverse('enrollments:enrollment_list'), {'status': 'Cancelled'})
    assert list(response.context['enrollments']) == []


def test_payment_plans_for_curriculum_endpoint(client, admin_user, curriculum, payment_plan):
    client.force_login(admin_user)

    response = client.get(
        reverse('enrollments:payment_plans_for_curriculum', args=[curriculum.pk])
    )

    data = response.json()
    assert data['success'] is True
    assert [plan['id'] for plan in data['plans']] == [payment_plan.pk]


def test_remove_subject_view(client, admin_user, enrollment, subjects):
    client.force_login(admin_user)

    response = client.post(
        reverse('enrollments:subject_remove', args=[enrollment.pk, subjects[0].pk])
    )

    assert response.status_code == 302
    assert not enrollment.subject_enrollments.exists()
