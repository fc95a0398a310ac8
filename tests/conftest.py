import datetime
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone

from apps.corecode.models import AcademicYear, Curriculum, Room, Subject
from apps.corecode.utils import ROLE_ADMIN, ROLE_PARENT, ROLE_TEACHER, assign_role
from apps.finance.models import PaymentPlan
from apps.staffs.models import TeacherProfile
from apps.students.models import ChildProfile, ParentProfile

User = get_user_model()


@pytest.fixture(autouse=True)
def eager_celery():
    from celery_app import app

    # config is loaded with the CELERY namespace, so set the prefixed keys
    app.conf.CELERY_TASK_ALWAYS_EAGER = True
    app.conf.CELERY_TASK_EAGER_PROPAGATES = True
    yield
    app.conf.CELERY_TASK_ALWAYS_EAGER = False


@pytest.fixture(autouse=True)
def clear_cache(settings):
    settings.CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'backoffice-tests',
        }
    }
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def storage(settings, tmp_path):
    """Point backups, logs, the maintenance flag and the version file at tmp_path"""
    settings.BACKUP_ROOT = str(tmp_path / 'backups')
    settings.LOG_DIR = str(tmp_path / 'logs')
    settings.MAINTENANCE_FLAG_FILE = str(tmp_path / 'framework' / 'down')
    settings.VERSION_FILE = str(tmp_path / 'version.txt')
    (tmp_path / 'logs').mkdir()
    (tmp_path / 'version.txt').write_text('1.0.0\n')
    return tmp_path


@pytest.fixture
def admin_user(db):
    user = User.objects.create_superuser('admin', 'admin@school.test', 'password')
    assign_role(user, ROLE_ADMIN)
    return user


@pytest.fixture
def academic_year(db):
    today = timezone.localdate()
    return AcademicYear.objects.create(
        name=f"{today.year}/{today.year + 1}",
        start_date=today - datetime.timedelta(days=30),
        end_date=today + datetime.timedelta(days=300),
        is_current=True,
    )


@pytest.fixture
def curriculum(db):
    return Curriculum.objects.create(name='Cambridge Primary', code='CAM-P')


@pytest.fixture
def subjects(curriculum):
    return [
        Subject.objects.create(curriculum=curriculum, name='Mathematics', code='MATH'),
        Subject.objects.create(curriculum=curriculum, name='English', code='ENG'),
        Subject.objects.create(curriculum=curriculum, name='Science', code='SCI'),
    ]


@pytest.fixture
def room(db):
    return Room.objects.create(name='Room 101', capacity=30)


@pytest.fixture
def teacher_user(db):
    user = User.objects.create_user(
        'teacher', 'teacher@school.test', 'password', first_name='Grace', last_name='Hopper'
    )
    assign_role(user, ROLE_TEACHER)
    return user


@pytest.fixture
def teacher(teacher_user, subjects):
    profile = TeacherProfile.objects.create(user=teacher_user, employee_id='T-001')
    profile.subjects.add(subjects[0], subjects[1])
    return profile


@pytest.fixture
def parent_user(db):
    user = User.objects.create_user('parent', 'parent@school.test', 'password')
    assign_role(user, ROLE_PARENT)
    return user


@pytest.fixture
def parent(parent_user):
    return ParentProfile.objects.create(user=parent_user, phone='555-0100')


@pytest.fixture
def child(parent, parent_user):
    return ChildProfile.objects.create(
        first_name='Ada',
        last_name='Lovelace',
        date_of_birth=datetime.date(2015, 12, 10),
        parent=parent_user,
        parent_profile=parent,
    )


@pytest.fixture
def payment_plan(curriculum):
    return PaymentPlan.objects.create(
        name='Termly Fees',
        type=PaymentPlan.Type.QUARTERLY,
        amount=Decimal('250.00'),
        curriculum=curriculum,
    )


@pytest.fixture
def enrollment(child, curriculum, academic_year, subjects):
    from apps.enrollments.models import ProgramEnrollment, SubjectEnrollment

    enrollment = ProgramEnrollment.objects.create(
        child_profile=child,
        curriculum=curriculum,
        academic_year=academic_year,
        status=ProgramEnrollment.Status.ACTIVE,
    )
    SubjectEnrollment.objects.create(program_enrollment=enrollment, subject=subjects[0])
    return enrollment


def in_days(days, hour=10, minute=0):
    """Aware datetime `days` from today at hour:minute"""
    day = timezone.localdate() + datetime.timedelta(days=days)
    return timezone.make_aware(datetime.datetime.combine(day, datetime.time(hour, minute)))
