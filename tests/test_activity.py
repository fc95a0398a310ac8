import pytest
from django.core.exceptions import ValidationError
from django.urls import reverse

from apps.activity.models import ActivityLog
from apps.corecode.models import AcademicYear
from apps.corecode.utils import (
    ROLE_STUDENT,
    assign_role,
    get_client_ip,
    get_user_role,
)


def test_diff_reports_changed_fields_only():
    changes = ActivityLog.diff(
        {'status': 'Pending', 'curriculum_id': 1, 'notes': ''},
        {'status': 'Active', 'curriculum_id': 1, 'notes': 'Moved'},
    )

    assert changes == {
        'status': {'old': 'Pending', 'new': 'Active'},
        'notes': {'old': '', 'new': 'Moved'},
    }


def test_client_ip_prefers_forwarded_for(rf):
    request = rf.get('/', HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1', REMOTE_ADDR='10.0.0.2')
    assert get_client_ip(request) == '203.0.113.7'

    request = rf.get('/', REMOTE_ADDR='10.0.0.2')
    assert get_client_ip(request) == '10.0.0.2'

    assert get_client_ip(None) is None


@pytest.mark.django_db
def test_log_records_subject_and_ip(rf, admin_user, curriculum):
    request = rf.get('/', REMOTE_ADDR='192.0.2.10')

    entry = ActivityLog.log(
        admin_user,
        ActivityLog.Action.CREATE,
        'Created curriculum',
        subject=curriculum,
        additional_data={'code': curriculum.code},
        request=request,
    )

    entry.refresh_from_db()
    assert entry.subject == curriculum
    assert entry.activity_type == 'curriculum'
    assert entry.ip_address == '192.0.2.10'
    assert entry.additional_data == {'code': 'CAM-P'}
    assert list(ActivityLog.objects.for_object(curriculum)) == [entry]


@pytest.mark.django_db
def test_anonymous_actor_is_stored_as_system(django_user_model):
    from django.contrib.auth.models import AnonymousUser

    entry = ActivityLog.log(AnonymousUser(), ActivityLog.Action.SYSTEM, 'Nightly job')

    assert entry.user is None
    assert str(entry).startswith('system system')


@pytest.mark.django_db
def test_entries_are_append_only(admin_user):
    entry = ActivityLog.log(admin_user, ActivityLog.Action.LOGIN, 'Signed in')

    entry.description = 'Tampered'
    with pytest.raises(ValidationError):
        entry.save()

    entry.refresh_from_db()
    assert entry.description == 'Signed in'


@pytest.mark.django_db
def test_entry_survives_subject_deletion(admin_user, curriculum):
    entry = ActivityLog.log(admin_user, ActivityLog.Action.CREATE, 'Created', subject=curriculum)

    curriculum.delete()

    entry.refresh_from_db()
    assert entry.subject is None


@pytest.mark.django_db
def test_only_one_current_academic_year(academic_year):
    next_year = AcademicYear.objects.create(name='Next', is_current=True)

    academic_year.refresh_from_db()
    assert not academic_year.is_current
    assert AcademicYear.get_current() == next_year


@pytest.mark.django_db
def test_user_roles(admin_user, teacher, teacher_user, parent, parent_user, django_user_model):
    student = django_user_model.objects.create_user('pupil')
    assign_role(student, ROLE_STUDENT)

    assert get_user_role(admin_user) == 'admin'
    assert get_user_role(teacher_user) == 'teacher'
    assert get_user_role(parent_user) == 'parent'
    assert get_user_role(student) == 'student'
    assert get_user_role(None) == 'public'

    with pytest.raises(ValueError):
        assign_role(student, 'Janitors')


@pytest.mark.django_db
def test_activity_list_requires_permission(client, admin_user, parent_user):
    ActivityLog.log(admin_user, ActivityLog.Action.LOGIN, 'Signed in')

    client.force_login(parent_user)
    response = client.get(reverse('activity:activity_list'))
    assert response.status_code == 403

    client.force_login(admin_user)
    response = client.get(reverse('activity:activity_list'), {'action': 'login'})
    assert response.status_code == 200
