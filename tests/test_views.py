import pytest
from django.urls import reverse
from django.utils import timezone

from apps.corecode.models import AcademicYear, Room
from apps.result.models import Exam
from apps.students.models import ChildProfile

pytestmark = pytest.mark.django_db


def test_home_redirects_anonymous_to_login(client):
    response = client.get(reverse('home'))

    assert response.status_code == 302
    assert response.url == reverse('login')


@pytest.mark.parametrize('user_fixture, target', [
    ('teacher_user', 'staffs:teacher_dashboard'),
    ('parent_user', 'students:parent_dashboard'),
])
def test_home_redirects_by_role(request, client, user_fixture, target):
    request.getfixturevalue('teacher')
    request.getfixturevalue('parent')
    client.force_login(request.getfixturevalue(user_fixture))

    response = client.get(reverse('home'))

    assert response.status_code == 302
    assert response.url == reverse(target)


def test_admin_home_shows_stats(client, admin_user, enrollment):
    client.force_login(admin_user)

    response = client.get(reverse('home'))

    assert response.status_code == 200
    assert response.context['stats']['active_enrollments'] == 1


def test_teacher_dashboard(client, teacher, teacher_user):
    client.force_login(teacher_user)

    assert client.get(reverse('staffs:teacher_dashboard')).status_code == 200


def test_parent_portal(client, parent_user, child):
    client.force_login(parent_user)

    assert client.get(reverse('students:parent_dashboard')).status_code == 200


def test_teacher_cannot_open_parent_portal(client, teacher, teacher_user):
    client.force_login(teacher_user)

    response = client.get(reverse('students:parent_dashboard'))

    assert response.status_code == 302
    assert response.url == reverse('home')


@pytest.mark.parametrize('url_name', [
    'corecode:academic_year_list',
    'corecode:curriculum_list',
    'corecode:subject_list',
    'corecode:room_list',
    'students:child_list',
    'students:parent_list',
    'staffs:teacher_list',
    'enrollments:enrollment_list',
    'finance:payment_plan_list',
    'finance:invoice_list',
    'finance:payment_list',
    'finance:financial_report',
    'scheduling:event_list',
    'scheduling:timetable',
    'system:backups',
    'system:logs',
    'system:updates',
])
def test_admin_pages_render(client, admin_user, storage, url_name):
    client.force_login(admin_user)

    assert client.get(reverse(url_name)).status_code == 200


def test_admin_pages_reject_parents(client, parent_user):
    client.force_login(parent_user)

    response = client.get(reverse('corecode:room_list'))

    assert response.status_code == 302
    assert response.url == reverse('home')


def test_delete_unused_room(client, admin_user, room):
    client.force_login(admin_user)

    response = client.post(reverse('corecode:delete', args=['room', room.pk]))

    assert response.status_code == 302
    assert not Room.objects.exists()


def test_academic_year_in_use_is_not_deleted(client, admin_user, academic_year, teacher, subjects):
    Exam.objects.create(
        subject=subjects[0],
        teacher_profile=teacher,
        academic_year=academic_year,
        title='Midterm',
        exam_date=timezone.localdate(),
    )
    client.force_login(admin_user)

    client.post(reverse('corecode:delete', args=['academic-year', academic_year.pk]))

    assert AcademicYear.objects.filter(pk=academic_year.pk).exists()


def test_unknown_reference_kind(client, admin_user):
    client.force_login(admin_user)

    response = client.post(reverse('corecode:delete', args=['galaxy', 1]))

    assert response.status_code == 404


def test_soft_deleted_child_can_be_restored(child):
    child.delete()
    assert not ChildProfile.objects.filter(pk=child.pk).exists()

    child.restore()
    assert ChildProfile.objects.filter(pk=child.pk).exists()


def test_generate_username_avoids_collisions(parent_user):
    from apps.students.utils import generate_username

    assert generate_username('new.parent+fees@school.test') == 'new.parentfees'
    assert generate_username('parent@school.test').startswith('parent_')


def test_create_parent_account():
    from apps.corecode.utils import get_user_role
    from apps.students.utils import create_parent_account

    profile = create_parent_account('Mary', 'Somerville', 'mary@school.test', phone='555-0111')

    assert profile.user.username == 'mary'
    assert not profile.user.has_usable_password()
    assert get_user_role(profile.user) == 'parent'
