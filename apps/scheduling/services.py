"""
Scheduling services: sessions, attendance and timetable slots
"""
import calendar
import logging
from datetime import timedelta

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.activity.models import ActivityLog
from apps.corecode.models import Room
from .models import Attendance, Session, TimetableSlot

logger = logging.getLogger(__name__)

SESSION_FIELDS = ('subject', 'room', 'start_time', 'end_time', 'type', 'link', 'description')


class SchedulingError(Exception):
    """Custom exception for scheduling errors"""
    pass


def _add_months(value, months):
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class SchedulingService:
    """Validate, create and update teaching sessions"""

    @classmethod
    def validate_session(cls, teacher_profile, subject, start_time, end_time, room=None, exclude=None):
        """
        Raise a field-keyed ValidationError when the session cannot be booked.

        Room conflicts use half-open windows, so a session may start
        exactly when another one ends.
        """
        errors = {}

        if subject is not None and not teacher_profile.teaches_subject(subject):
            errors['subject'] = _("You can only schedule sessions for subjects you teach.")

        if start_time and timezone.localtime(start_time).date() < timezone.localdate():
            errors['start_time'] = _("The start date cannot be in the past.")

        if start_time and end_time and end_time <= start_time:
            errors['end_time'] = _("The end time must be after the start time.")

        if room is not None and 'end_time' not in errors and start_time and end_time:
            clashes = Session.objects.in_room(room).overlapping(start_time, end_time)
            if exclude is not None and exclude.pk:
                clashes = clashes.exclude(pk=exclude.pk)
            if clashes.exists():
                errors['room'] = _("The selected room is already booked during this time.")

        if errors:
            raise ValidationError(errors)

    @classmethod
    def _lock_room(cls, room):
        if room is None:
            return None
        return Room.objects.select_for_update().get(pk=room.pk)

    @classmethod
    def _describe(cls, session):
        start = timezone.localtime(session.start_time)
        end = timezone.localtime(session.end_time)
        return (
            f"{session.get_type_display()} session for {session.subject.name} "
            f"on {start:%Y-%m-%d} from {start:%H:%M} to {end:%H:%M}"
        )

    @classmethod
    def _snapshot(cls, session):
        return {
            'subject': session.subject.name,
            'room': session.room.name if session.room_id else None,
            'schedule': (
                f"{timezone.localtime(session.start_time):%Y-%m-%d %H:%M} - "
                f"{timezone.localtime(session.end_time):%H:%M}"
            ),
            'link': session.link,
            'description': session.description,
            'type': session.type,
        }

    @classmethod
    def schedule_session(cls, teacher_profile, subject, start_time, end_time, room=None,
                         type=Session.Type.LECTURE, link='', description='', user=None, request=None):
        """
        Create a session for a teacher

        Returns:
            Session: The created session
        """
        with transaction.atomic():
            room = cls._lock_room(room)
            cls.validate_session(teacher_profile, subject, start_time, end_time, room=room)
            session = Session.objects.create(
                teacher_profile=teacher_profile,
                subject=subject,
                start_time=start_time,
                end_time=end_time,
                room=room,
                type=type,
                link=link,
                description=description,
            )

        ActivityLog.log(
            user,
            ActivityLog.Action.CREATE,
            f"Scheduled {cls._describe(session)}",
            subject=session,
            activity_type='session',
            additional_data={'session': cls._snapshot(session)},
            request=request,
        )
        logger.info(f"Session scheduled: {session.pk} by teacher {teacher_profile.pk}")
        return session

    @classmethod
    def update_session(cls, session, teacher_profile, user=None, request=None, **changes):
        """Update an upcoming session owned by the teacher and log the changed fields"""
        if session.teacher_profile_id != teacher_profile.pk:
            raise PermissionDenied(_("You can only edit your own sessions."))
        if not session.is_upcoming:
            raise SchedulingError(_("Only upcoming sessions can be edited."))

        unknown = set(changes) - set(SESSION_FIELDS)
        if unknown:
            raise SchedulingError(f"Unknown session fields: {', '.join(sorted(unknown))}")

        old_values = cls._snapshot(session)

        with transaction.atomic():
            for field, value in changes.items():
                setattr(session, field, value)
            session.room = cls._lock_room(session.room)
            cls.validate_session(
                teacher_profile,
                session.subject,
                session.start_time,
                session.end_time,
                room=session.room,
                exclude=session,
            )
            session.save()

        new_values = cls._snapshot(session)
        changed = ActivityLog.diff(old_values, new_values)

        ActivityLog.log(
            user,
            ActivityLog.Action.UPDATE,
            f"Updated {cls._describe(session)}",
            subject=session,
            activity_type='session',
            additional_data={'changes': changed},
            request=request,
        )
        logger.info(f"Session updated: {session.pk} ({', '.join(changed) or 'no changes'})")
        return session

    @classmethod
    def occurrences(cls, start_time, end_time, repeat, repeat_until, weekdays=None):
        """Yield (start, end) pairs for a repeating session, up to repeat_until inclusive"""
        duration = end_time - start_time

        if repeat == 'daily':
            current = start_time
            while timezone.localtime(current).date() <= repeat_until:
                yield current, current + duration
                current += timedelta(days=1)

        elif repeat == 'weekly':
            days = set(weekdays) if weekdays else {timezone.localtime(start_time).weekday()}
            current = start_time
            while timezone.localtime(current).date() <= repeat_until:
                if timezone.localtime(current).weekday() in days:
                    yield current, current + duration
                current += timedelta(days=1)

        elif repeat == 'monthly':
            months = 0
            current = start_time
            while timezone.localtime(current).date() <= repeat_until:
                yield current, current + duration
                months += 1
                current = _add_months(start_time, months)

        else:
            raise SchedulingError(f"Unknown repeat pattern: {repeat}")

    @classmethod
    def create_repeating_sessions(cls, teacher_profile, subject, start_time, end_time, repeat,
                                  repeat_until, weekdays=None, room=None, type=Session.Type.LECTURE,
                                  link='', description='', user=None, request=None):
        """
        Create every occurrence of a repeating session in one transaction.

        A conflict on any occurrence rolls back the whole batch.
        """
        if repeat_until < timezone.localtime(start_time).date():
            raise ValidationError({'repeat_until': _("The repeat end date must be after the start date.")})

        sessions = []
        with transaction.atomic():
            locked_room = cls._lock_room(room)
            for occurrence_start, occurrence_end in cls.occurrences(
                start_time, end_time, repeat, repeat_until, weekdays
            ):
                try:
                    cls.validate_session(
                        teacher_profile, subject, occurrence_start, occurrence_end, room=locked_room
                    )
                except ValidationError as e:
                    day = timezone.localtime(occurrence_start).date()
                    raise ValidationError({
                        field: [f"{day:%Y-%m-%d}: {message}" for message in messages]
                        for field, messages in e.message_dict.items()
                    })
                sessions.append(Session.objects.create(
                    teacher_profile=teacher_profile,
                    subject=subject,
                    start_time=occurrence_start,
                    end_time=occurrence_end,
                    room=locked_room,
                    type=type,
                    link=link,
                    description=description,
                ))

        if sessions:
            ActivityLog.log(
                user,
                ActivityLog.Action.CREATE,
                f"Scheduled {len(sessions)} {repeat} sessions for {subject.name}",
                subject=sessions[0],
                activity_type='session',
                additional_data={
                    'repeat': repeat,
                    'repeat_until': repeat_until,
                    'session_ids': [session.pk for session in sessions],
                },
                request=request,
            )
        logger.info(f"Repeating sessions created: {len(sessions)} for teacher {teacher_profile.pk}")
        return sessions

    @classmethod
    def cancel_session(cls, session, teacher_profile, user=None, request=None):
        if session.teacher_profile_id != teacher_profile.pk:
            raise PermissionDenied(_("You can only cancel your own sessions."))

        description = f"Cancelled {cls._describe(session)}"
        snapshot = cls._snapshot(session)
        session_id = session.pk
        session.delete()

        ActivityLog.log(
            user,
            ActivityLog.Action.DELETE,
            description,
            subject=teacher_profile,
            activity_type='session',
            additional_data={'session_id': session_id, 'session': snapshot},
            request=request,
        )


class AttendanceService:
    @classmethod
    def record_attendance(cls, session, entries, user=None, request=None):
        """
        Upsert attendance rows for a session.

        Args:
            entries: {child_profile_id: {'status': ..., 'remarks': ...}}

        Returns:
            list: Attendance rows written
        """
        expected_ids = set(session.expected_students.values_list('pk', flat=True))
        unexpected = [child_id for child_id in entries if int(child_id) not in expected_ids]
        if unexpected:
            raise ValidationError(_("Attendance can only be recorded for enrolled students."))

        valid_statuses = set(Attendance.Status.values)
        records = []
        with transaction.atomic():
            for child_id, entry in entries.items():
                status = entry.get('status', Attendance.Status.ABSENT)
                if status not in valid_statuses:
                    raise ValidationError({'status': _("Invalid attendance status: %(status)s") % {'status': status}})
                attendance, _created = Attendance.objects.update_or_create(
                    session=session,
                    child_profile_id=int(child_id),
                    defaults={'status': status, 'remarks': entry.get('remarks', '')},
                )
                records.append(attendance)

        summary = {}
        for record in records:
            summary[record.status] = summary.get(record.status, 0) + 1

        ActivityLog.log(
            user,
            ActivityLog.Action.UPDATE,
            f"Recorded attendance for {session.subject.name} on "
            f"{timezone.localtime(session.start_time):%Y-%m-%d}",
            subject=session,
            activity_type='attendance',
            additional_data={'summary': summary},
            request=request,
        )
        return records


class TimetableService:
    """Timetable slot writes with teacher and room clash checks"""

    @classmethod
    def validate_slot(cls, teacher_profile, day, start_time, end_time, room=None, exclude=None):
        errors = {}

        if start_time and end_time and end_time <= start_time:
            errors['end_time'] = _("The end time must be after the start time.")
        else:
            clashes = TimetableSlot.clashing(day, start_time, end_time)
            if exclude is not None and exclude.pk:
                clashes = clashes.exclude(pk=exclude.pk)

            if clashes.filter(teacher_profile=teacher_profile).exists():
                errors['start_time'] = _("Teacher already has a class scheduled during this time.")
            if room is not None and clashes.filter(room=room).exists():
                errors['room'] = _("The selected room is already booked during this time.")

        if errors:
            raise ValidationError(errors)

    @classmethod
    def save_slot(cls, slot, user=None, request=None):
        """Validate and save a new or edited slot"""
        is_new = slot.pk is None

        with transaction.atomic():
            cls.validate_slot(
                slot.teacher_profile,
                slot.day,
                slot.start_time,
                slot.end_time,
                room=slot.room,
                exclude=None if is_new else slot,
            )
            slot.save()

        ActivityLog.log(
            user,
            ActivityLog.Action.CREATE if is_new else ActivityLog.Action.UPDATE,
            f"{'Created' if is_new else 'Updated'} timetable slot: {slot}",
            subject=slot,
            activity_type='timetable_slot',
            request=request,
        )
        return slot
