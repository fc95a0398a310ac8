from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.urls import reverse
from django.utils import timezone

from apps.result.models import Exam, ExamResult
from apps.result.utils import grade_distribution, grade_for, remark_for, validate_student_for_exam
from apps.students.models import ChildProfile


@pytest.mark.parametrize('percentage, grade', [
    (100, 'A'),
    (75, 'A'),
    (74.99, 'B'),
    (65, 'B'),
    (55, 'C'),
    (50, 'D'),
    (45, 'E'),
    (44.99, 'F'),
    (0, 'F'),
])
def test_grade_for(percentage, grade):
    assert grade_for(percentage) == grade


def test_remark_for_unknown_grade():
    assert remark_for('A') == 'Excellent'
    assert remark_for('Z') == 'Unknown'


@pytest.fixture
def exam(teacher, subjects, academic_year):
    return Exam.objects.create(
        subject=subjects[0],
        teacher_profile=teacher,
        academic_year=academic_year,
        title='Fractions quiz',
        exam_date=timezone.localdate(),
        max_score=Decimal('40'),
    )


@pytest.mark.django_db
def test_percentage_and_grade_use_max_score(exam, child):
    result = ExamResult.objects.create(exam=exam, child_profile=child, score=Decimal('30'))

    assert result.percentage == Decimal('75.00')
    assert result.grade == 'A'
    assert result.remark == 'Excellent'


@pytest.mark.django_db
def test_score_above_max_is_invalid(exam, child):
    result = ExamResult(exam=exam, child_profile=child, score=Decimal('41'))

    with pytest.raises(ValidationError) as exc:
        result.full_clean()

    assert 'score' in exc.value.message_dict


@pytest.mark.django_db
def test_only_enrolled_students_are_eligible(exam, enrollment, child):
    outsider = ChildProfile.objects.create(first_name='Charles', last_name='Babbage')

    assert list(exam.eligible_students) == [child]
    assert validate_student_for_exam(exam, child) == child
    with pytest.raises(ValidationError):
        validate_student_for_exam(exam, outsider)


@pytest.mark.django_db
def test_average_and_distribution(exam, enrollment, child):
    other = ChildProfile.objects.create(first_name='Charles', last_name='Babbage')
    results = [
        ExamResult.objects.create(exam=exam, child_profile=child, score=Decimal('40')),
        ExamResult.objects.create(exam=exam, child_profile=other, score=Decimal('10')),
    ]

    assert exam.average_percentage == Decimal('62.50')
    distribution = grade_distribution(results)
    assert distribution['A'] == 1
    assert distribution['F'] == 1
    assert sum(distribution.values()) == 2


@pytest.mark.django_db
def test_exam_without_results_has_no_average(exam):
    assert exam.average_percentage is None


@pytest.mark.django_db
def test_bulk_results_view(client, teacher_user, exam, enrollment, child):
    client.force_login(teacher_user)

    response = client.post(
        reverse('result:bulk_results', args=[exam.pk]),
        {f'score_{child.pk}': '36', f'remarks_{child.pk}': 'Great work'},
    )

    assert response.status_code == 302
    result = ExamResult.objects.get(exam=exam, child_profile=child)
    assert result.score == Decimal('36')
    assert result.remarks == 'Great work'


@pytest.mark.django_db
def test_eligibility_endpoint(client, teacher_user, exam, child):
    client.force_login(teacher_user)

    response = client.get(
        reverse('result:check_eligibility', args=[exam.pk]), {'student_id': child.pk}
    )

    assert response.json()['eligible'] is False


@pytest.mark.django_db
def test_other_teacher_cannot_open_exam(client, exam, django_user_model):
    from apps.staffs.models import TeacherProfile

    user = django_user_model.objects.create_user('turing', 'turing@school.test', 'password')
    TeacherProfile.objects.create(user=user)
    client.force_login(user)

    response = client.get(reverse('result:exam_detail', args=[exam.pk]))

    assert response.status_code == 404
