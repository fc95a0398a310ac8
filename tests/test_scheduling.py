import datetime

import pytest
from django.core.exceptions import PermissionDenied, ValidationError
from django.urls import reverse
from django.utils import timezone

from apps.activity.models import ActivityLog
from apps.corecode.models import Room
from apps.scheduling.models import Attendance, Event, Session, TimetableSlot
from apps.scheduling.services import (
    AttendanceService,
    SchedulingError,
    SchedulingService,
    TimetableService,
)
from apps.staffs.models import TeacherProfile
from tests.conftest import in_days

pytestmark = pytest.mark.django_db


@pytest.fixture
def other_teacher(django_user_model, subjects):
    user = django_user_model.objects.create_user('turing', 'turing@school.test', 'password')
    profile = TeacherProfile.objects.create(user=user, employee_id='T-002')
    profile.subjects.add(subjects[0])
    return profile


def schedule(teacher, subject, start, end, room=None, **kwargs):
    return SchedulingService.schedule_session(teacher, subject, start, end, room=room, **kwargs)


def test_schedule_session(teacher, subjects, room, teacher_user):
    session = schedule(
        teacher, subjects[0], in_days(1, 9), in_days(1, 10), room=room, user=teacher_user
    )

    assert session.duration_minutes == 60
    entry = ActivityLog.objects.for_object(session).get()
    assert entry.activity_type == 'session'
    assert entry.user == teacher_user


def test_subject_not_taught_is_rejected(teacher, subjects):
    with pytest.raises(ValidationError) as exc:
        schedule(teacher, subjects[2], in_days(1, 9), in_days(1, 10))

    assert 'subject' in exc.value.message_dict


def test_start_in_the_past_is_rejected(teacher, subjects):
    with pytest.raises(ValidationError) as exc:
        schedule(teacher, subjects[0], in_days(-1, 9), in_days(-1, 10))

    assert 'start_time' in exc.value.message_dict


def test_end_before_start_is_rejected(teacher, subjects):
    with pytest.raises(ValidationError) as exc:
        schedule(teacher, subjects[0], in_days(1, 10), in_days(1, 9))

    assert 'end_time' in exc.value.message_dict
    assert not Session.objects.exists()


def test_overlapping_room_booking_is_rejected(teacher, other_teacher, subjects, room):
    schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10), room=room)

    with pytest.raises(ValidationError) as exc:
        schedule(other_teacher, subjects[0], in_days(1, 9, 30), in_days(1, 10, 30), room=room)

    assert 'room' in exc.value.message_dict
    assert Session.objects.count() == 1


def test_back_to_back_sessions_share_a_room(teacher, other_teacher, subjects, room):
    schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10), room=room)
    schedule(other_teacher, subjects[0], in_days(1, 10), in_days(1, 11), room=room)

    assert Session.objects.in_room(room).count() == 2


def test_same_time_in_another_room_is_allowed(teacher, subjects, room):
    other_room = Room.objects.create(name='Lab 1', capacity=20)

    schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10), room=room)
    schedule(teacher, subjects[1], in_days(1, 9), in_days(1, 10), room=other_room)

    assert Session.objects.count() == 2


def test_room_available_between_excludes_booked_rooms(teacher, subjects, room):
    free_room = Room.objects.create(name='Lab 1', capacity=20)
    schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10), room=room)

    available = Room.objects.available_between(in_days(1, 9, 30), in_days(1, 9, 45))

    assert list(available) == [free_room]


def test_update_session_moves_it_and_logs_changes(teacher, subjects, room, teacher_user):
    session = schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10), room=room)

    SchedulingService.update_session(
        session, teacher, user=teacher_user, start_time=in_days(2, 9), end_time=in_days(2, 10)
    )

    session.refresh_from_db()
    assert session.start_time == in_days(2, 9)
    entry = ActivityLog.objects.for_object(session).with_action(ActivityLog.Action.UPDATE).get()
    assert list(entry.additional_data['changes']) == ['schedule']


def test_update_session_ignores_its_own_booking(teacher, subjects, room):
    session = schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10), room=room)

    SchedulingService.update_session(session, teacher, end_time=in_days(1, 10, 30))

    session.refresh_from_db()
    assert session.duration_minutes == 90


def test_only_owner_can_update_session(teacher, other_teacher, subjects):
    session = schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10))

    with pytest.raises(PermissionDenied):
        SchedulingService.update_session(session, other_teacher, description='Moved')


def test_past_session_cannot_be_edited(teacher, subjects):
    session = Session.objects.create(
        teacher_profile=teacher,
        subject=subjects[0],
        start_time=in_days(-2, 9),
        end_time=in_days(-2, 10),
    )

    with pytest.raises(SchedulingError):
        SchedulingService.update_session(session, teacher, description='Too late')


def test_update_session_rejects_unknown_fields(teacher, subjects):
    session = schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10))

    with pytest.raises(SchedulingError):
        SchedulingService.update_session(session, teacher, teacher_profile=None)


def test_cancel_session(teacher, subjects, teacher_user):
    session = schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10))

    SchedulingService.cancel_session(session, teacher, user=teacher_user)

    assert not Session.objects.exists()
    entry = ActivityLog.objects.with_action(ActivityLog.Action.DELETE).get()
    assert entry.subject == teacher


def test_weekly_repeating_sessions(teacher, subjects):
    start = in_days(1, 9)
    repeat_until = timezone.localtime(start).date() + datetime.timedelta(days=20)

    sessions = SchedulingService.create_repeating_sessions(
        teacher, subjects[0], start, in_days(1, 10), 'weekly', repeat_until
    )

    assert len(sessions) == 3
    assert [s.start_time for s in sessions] == [
        start,
        start + datetime.timedelta(days=7),
        start + datetime.timedelta(days=14),
    ]


def test_repeating_sessions_roll_back_on_conflict(teacher, other_teacher, subjects, room):
    schedule(other_teacher, subjects[0], in_days(3, 9), in_days(3, 10), room=room)
    start = in_days(1, 9)
    repeat_until = timezone.localtime(start).date() + datetime.timedelta(days=4)

    with pytest.raises(ValidationError) as exc:
        SchedulingService.create_repeating_sessions(
            teacher, subjects[0], start, in_days(1, 10), 'daily', repeat_until, room=room
        )

    assert 'room' in exc.value.message_dict
    assert Session.objects.for_teacher(teacher).count() == 0


def test_unknown_repeat_pattern(teacher, subjects):
    start = in_days(1, 9)

    with pytest.raises(SchedulingError):
        SchedulingService.create_repeating_sessions(
            teacher, subjects[0], start, in_days(1, 10), 'hourly',
            timezone.localtime(start).date(),
        )


def test_monthly_occurrences_clamp_to_month_end():
    start = timezone.make_aware(datetime.datetime(2031, 1, 31, 9, 0))
    end = start + datetime.timedelta(hours=1)

    starts = [
        timezone.localtime(s).date()
        for s, _end in SchedulingService.occurrences(start, end, 'monthly', datetime.date(2031, 3, 31))
    ]

    assert starts == [datetime.date(2031, 1, 31), datetime.date(2031, 2, 28), datetime.date(2031, 3, 31)]


def test_record_attendance_upserts(teacher, subjects, enrollment, child):
    session = schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10))

    AttendanceService.record_attendance(session, {child.pk: {'status': 'late'}})
    AttendanceService.record_attendance(session, {child.pk: {'status': 'present', 'remarks': 'On time'}})

    attendance = Attendance.objects.get(session=session)
    assert attendance.status == Attendance.Status.PRESENT
    assert attendance.remarks == 'On time'


def test_attendance_for_unenrolled_student_is_rejected(teacher, subjects, child):
    session = schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10))

    with pytest.raises(ValidationError):
        AttendanceService.record_attendance(session, {child.pk: {'status': 'present'}})


def test_timetable_teacher_clash(teacher, subjects, room):
    TimetableService.save_slot(TimetableSlot(
        teacher_profile=teacher, subject=subjects[0], room=room,
        day='monday', start_time=datetime.time(9), end_time=datetime.time(10),
    ))

    with pytest.raises(ValidationError) as exc:
        TimetableService.save_slot(TimetableSlot(
            teacher_profile=teacher, subject=subjects[1],
            day='monday', start_time=datetime.time(9, 30), end_time=datetime.time(10, 30),
        ))

    assert 'start_time' in exc.value.message_dict


def test_timetable_room_clash(teacher, other_teacher, subjects, room):
    TimetableService.save_slot(TimetableSlot(
        teacher_profile=teacher, subject=subjects[0], room=room,
        day='monday', start_time=datetime.time(9), end_time=datetime.time(10),
    ))

    with pytest.raises(ValidationError) as exc:
        TimetableService.save_slot(TimetableSlot(
            teacher_profile=other_teacher, subject=subjects[0], room=room,
            day='monday', start_time=datetime.time(9), end_time=datetime.time(10),
        ))

    assert 'room' in exc.value.message_dict


def test_timetable_slot_can_be_edited_in_place(teacher, subjects):
    slot = TimetableService.save_slot(TimetableSlot(
        teacher_profile=teacher, subject=subjects[0],
        day='tuesday', start_time=datetime.time(9), end_time=datetime.time(10),
    ))

    slot.end_time = datetime.time(11)
    TimetableService.save_slot(slot)

    assert TimetableSlot.objects.get().end_time == datetime.time(11)


@pytest.fixture
def event(admin_user):
    return Event.objects.create(
        title='Science Fair',
        start_date=in_days(10, 9),
        end_date=in_days(10, 15),
        registration_required=True,
        max_attendees=1,
        created_by=admin_user,
    )


def test_event_registration(event, parent_user, teacher_user):
    assert event.register_user(parent_user, note='Bringing two guests')
    assert event.is_user_registered(parent_user)
    assert not event.register_user(parent_user)

    # full
    assert not event.register_user(teacher_user)

    assert event.unregister_user(parent_user)
    assert event.attendee_count == 0
    assert not event.unregister_user(parent_user)


def test_event_registration_closed_after_deadline(event, parent_user):
    event.registration_deadline = timezone.now() - datetime.timedelta(hours=1)
    event.save()

    assert not event.is_registration_open
    assert not event.register_user(parent_user)


def test_deleted_events_are_hidden(event):
    event.delete()

    assert not Event.objects.exists()
    assert Event.all_objects.get().is_deleted


def test_event_duration():
    event = Event(start_date=in_days(1, 9), end_date=in_days(1, 11, 30))
    assert event.duration == '02:30'

    event.is_all_day = True
    event.end_date = in_days(3, 9)
    assert event.duration == '3 days'


def test_session_list_for_teacher(client, teacher, teacher_user, subjects):
    schedule(teacher, subjects[0], in_days(1, 9), in_days(1, 10))
    client.force_login(teacher_user)

    response = client.get(reverse('scheduling:session_list'))

    assert response.status_code == 200


def test_parent_cannot_schedule_sessions(client, parent_user):
    client.force_login(parent_user)

    response = client.get(reverse('scheduling:session_create'))

    assert response.status_code == 302
    assert response.url == reverse('home')
