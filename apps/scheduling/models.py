from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.corecode.models import SoftDeleteModel, TimeStampedModel
from apps.corecode.managers import SoftDeleteManager, SoftDeleteQuerySet


class SessionQuerySet(models.QuerySet):
    def overlapping(self, start, end):
        """Sessions whose [start_time, end_time) window intersects [start, end)"""
        return self.filter(start_time__lt=end, end_time__gt=start)

    def upcoming(self):
        return self.filter(start_time__gte=timezone.now()).order_by('start_time')

    def past(self):
        return self.filter(end_time__lt=timezone.now())

    def for_teacher(self, teacher_profile):
        return self.filter(teacher_profile=teacher_profile)

    def in_room(self, room):
        return self.filter(room=room)

    def on_date(self, day):
        return self.filter(start_time__date=day)


class Session(TimeStampedModel):
    """A scheduled class meeting of a subject"""

    class Type(models.TextChoices):
        LECTURE = 'lecture', _('Lecture')
        PRACTICAL = 'practical', _('Practical')
        TUTORIAL = 'tutorial', _('Tutorial')
        LAB = 'lab', _('Lab')
        SEMINAR = 'seminar', _('Seminar')

    subject = models.ForeignKey(
        'corecode.Subject',
        on_delete=models.CASCADE,
        related_name='sessions',
        verbose_name=_("Subject")
    )
    teacher_profile = models.ForeignKey(
        'staffs.TeacherProfile',
        on_delete=models.CASCADE,
        related_name='sessions',
        verbose_name=_("Teacher")
    )
    room = models.ForeignKey(
        'corecode.Room',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sessions',
        verbose_name=_("Room")
    )
    start_time = models.DateTimeField(verbose_name=_("Start Time"))
    end_time = models.DateTimeField(verbose_name=_("End Time"))
    type = models.CharField(
        max_length=20,
        choices=Type.choices,
        default=Type.LECTURE,
        verbose_name=_("Session Type")
    )
    link = models.URLField(blank=True, verbose_name=_("Meeting Link"))
    description = models.TextField(blank=True)

    objects = SessionQuerySet.as_manager()

    class Meta:
        ordering = ['start_time']
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=F('start_time')),
                name='session_end_after_start',
            ),
        ]
        indexes = [
            models.Index(fields=['room', 'start_time', 'end_time']),
        ]

    def __str__(self):
        return f"{self.subject.name} - {timezone.localtime(self.start_time):%Y-%m-%d %H:%M}"

    @property
    def duration_minutes(self):
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def is_upcoming(self):
        return self.start_time >= timezone.now()

    @property
    def expected_students(self):
        """Students holding a live subject enrollment in this session's subject"""
        from apps.enrollments.models import ProgramEnrollment
        from apps.students.models import ChildProfile

        return ChildProfile.objects.filter(
            program_enrollments__subject_enrollments__subject=self.subject,
            program_enrollments__status__in=[
                ProgramEnrollment.Status.PENDING,
                ProgramEnrollment.Status.ACTIVE,
            ],
        ).distinct()


class Attendance(TimeStampedModel):
    class Status(models.TextChoices):
        PRESENT = 'present', _('Present')
        ABSENT = 'absent', _('Absent')
        LATE = 'late', _('Late')
        EXCUSED = 'excused', _('Excused')

    session = models.ForeignKey(
        Session,
        on_delete=models.CASCADE,
        related_name='attendances'
    )
    child_profile = models.ForeignKey(
        'students.ChildProfile',
        on_delete=models.CASCADE,
        related_name='attendances',
        verbose_name=_("Student")
    )
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ABSENT)
    remarks = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['session__start_time', 'child_profile__last_name']
        constraints = [
            models.UniqueConstraint(
                fields=['session', 'child_profile'], name='unique_attendance_per_session'
            ),
        ]

    def __str__(self):
        return f"{self.child_profile} - {self.session} ({self.get_status_display()})"


class TimetableSlot(TimeStampedModel):
    """Weekly recurring teaching slot"""

    class Day(models.TextChoices):
        MONDAY = 'monday', _('Monday')
        TUESDAY = 'tuesday', _('Tuesday')
        WEDNESDAY = 'wednesday', _('Wednesday')
        THURSDAY = 'thursday', _('Thursday')
        FRIDAY = 'friday', _('Friday')
        SATURDAY = 'saturday', _('Saturday')
        SUNDAY = 'sunday', _('Sunday')

    subject = models.ForeignKey(
        'corecode.Subject',
        on_delete=models.CASCADE,
        related_name='timetable_slots'
    )
    teacher_profile = models.ForeignKey(
        'staffs.TeacherProfile',
        on_delete=models.CASCADE,
        related_name='timetable_slots'
    )
    room = models.ForeignKey(
        'corecode.Room',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='timetable_slots'
    )
    day = models.CharField(max_length=10, choices=Day.choices)
    start_time = models.TimeField()
    end_time = models.TimeField()

    class Meta:
        ordering = ['day', 'start_time']
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=F('start_time')),
                name='timetable_slot_end_after_start',
            ),
        ]

    def __str__(self):
        return f"{self.get_day_display()} {self.start_time:%H:%M}-{self.end_time:%H:%M} {self.subject.name}"

    @classmethod
    def clashing(cls, day, start_time, end_time):
        return cls.objects.filter(day=day, start_time__lt=end_time, end_time__gt=start_time)


class EventQuerySet(SoftDeleteQuerySet):
    def of_type(self, event_type):
        return self.filter(type=event_type)

    def between_dates(self, start, end):
        return self.filter(
            Q(start_date__range=(start, end)) |
            Q(end_date__range=(start, end)) |
            Q(start_date__lte=start, end_date__gte=end)
        )

    def upcoming(self):
        return self.filter(start_date__gte=timezone.now())

    def past(self):
        return self.filter(end_date__lt=timezone.now())

    def today(self):
        today = timezone.localdate()
        return self.filter(start_date__date__lte=today, end_date__date__gte=today)

    def active(self):
        return self.filter(status=Event.Status.ACTIVE)

    def for_academic_year(self, academic_year):
        return self.filter(academic_year=academic_year)


class EventManager(SoftDeleteManager.from_queryset(EventQuerySet)):
    pass


class Event(SoftDeleteModel):
    """School calendar event with optional registration"""

    class Type(models.TextChoices):
        GENERAL = 'general', _('General')
        ACADEMIC = 'academic', _('Academic')
        EXAM = 'exam', _('Exam')
        HOLIDAY = 'holiday', _('Holiday')
        MEETING = 'meeting', _('Meeting')
        EVENT = 'event', _('Event')
        DEADLINE = 'deadline', _('Deadline')

    class Status(models.TextChoices):
        ACTIVE = 'active', _('Active')
        CANCELLED = 'cancelled', _('Cancelled')
        POSTPONED = 'postponed', _('Postponed')

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.GENERAL)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    is_all_day = models.BooleanField(default=False)
    location = models.CharField(max_length=255, blank=True)
    color = models.CharField(max_length=20, default='#3788d8')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_events'
    )
    academic_year = models.ForeignKey(
        'corecode.AcademicYear',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='events'
    )
    recurring = models.BooleanField(default=False)
    recurring_pattern = models.JSONField(null=True, blank=True)
    attendees = models.JSONField(default=list, blank=True)
    max_attendees = models.PositiveIntegerField(null=True, blank=True)
    registration_required = models.BooleanField(default=False)
    registration_deadline = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE)
    notes = models.TextField(blank=True)

    objects = EventManager()
    all_objects = EventManager(alive_only=False)

    class Meta:
        ordering = ['start_date']

    def __str__(self):
        return self.title

    @property
    def duration(self):
        if self.is_all_day:
            days = (self.end_date.date() - self.start_date.date()).days + 1
            return _("All day") if days == 1 else f"{days} days"

        delta = self.end_date - self.start_date
        hours, remainder = divmod(delta.seconds, 3600)
        minutes = remainder // 60
        if delta.days > 0:
            return f"{delta.days} day(s) {hours:02d}:{minutes:02d}"
        return f"{hours:02d}:{minutes:02d}"

    @property
    def is_happening_now(self):
        return self.start_date <= timezone.now() <= self.end_date

    @property
    def is_upcoming(self):
        return self.start_date > timezone.now()

    @property
    def is_past(self):
        return self.end_date < timezone.now()

    @property
    def attendee_count(self):
        return len(self.attendees or [])

    @property
    def is_registration_open(self):
        if not self.registration_required:
            return False
        if self.registration_deadline and timezone.now() > self.registration_deadline:
            return False
        if self.max_attendees and self.attendee_count >= self.max_attendees:
            return False
        return True

    def is_user_registered(self, user):
        if not self.registration_required or not self.attendees:
            return False
        return any(entry.get('user_id') == user.pk for entry in self.attendees)

    def register_user(self, user, note=None):
        """Add the user to attendees; False when closed, full or already registered"""
        if not self.is_registration_open or self.is_user_registered(user):
            return False

        attendees = list(self.attendees or [])
        attendees.append({
            'user_id': user.pk,
            'user_name': user.get_full_name() or user.get_username(),
            'user_email': user.email,
            'registered_at': timezone.now().isoformat(),
            'note': note,
        })
        self.attendees = attendees
        self.save(update_fields=['attendees', 'updated_at'])
        return True

    def unregister_user(self, user):
        if not self.attendees or not self.is_user_registered(user):
            return False

        self.attendees = [entry for entry in self.attendees if entry.get('user_id') != user.pk]
        self.save(update_fields=['attendees', 'updated_at'])
        return True
