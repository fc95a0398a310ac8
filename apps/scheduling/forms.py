from django import forms
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

from apps.corecode.models import Room, Subject
from .models import Attendance, Event, Session, TimetableSlot

DATETIME_WIDGET = forms.DateTimeInput(attrs={'type': 'datetime-local'}, format='%Y-%m-%dT%H:%M')
TIME_WIDGET = forms.TimeInput(attrs={'type': 'time'}, format='%H:%M')


class SessionForm(forms.ModelForm):
    """Session form limited to the teacher's subjects"""

    REPEAT_CHOICES = [
        ('', _('Does not repeat')),
        ('daily', _('Daily')),
        ('weekly', _('Weekly')),
        ('monthly', _('Monthly')),
    ]
    WEEKDAY_CHOICES = [
        (0, _('Monday')),
        (1, _('Tuesday')),
        (2, _('Wednesday')),
        (3, _('Thursday')),
        (4, _('Friday')),
        (5, _('Saturday')),
        (6, _('Sunday')),
    ]

    repeat = forms.ChoiceField(choices=REPEAT_CHOICES, required=False)
    repeat_until = forms.DateField(
        required=False,
        widget=forms.DateInput(attrs={'type': 'date'}),
    )
    weekdays = forms.TypedMultipleChoiceField(
        choices=WEEKDAY_CHOICES,
        coerce=int,
        required=False,
        widget=forms.CheckboxSelectMultiple,
    )

    class Meta:
        model = Session
        fields = ['subject', 'room', 'start_time', 'end_time', 'type', 'link', 'description']
        widgets = {
            'start_time': DATETIME_WIDGET,
            'end_time': DATETIME_WIDGET,
            'description': forms.Textarea(attrs={'rows': 3}),
        }

    def __init__(self, *args, teacher_profile=None, allow_repeat=True, **kwargs):
        super().__init__(*args, **kwargs)
        self.teacher_profile = teacher_profile

        if teacher_profile is not None:
            self.fields['subject'].queryset = teacher_profile.subjects.select_related('curriculum')
        self.fields['room'].queryset = Room.objects.all()
        self.fields['start_time'].input_formats = ['%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M']
        self.fields['end_time'].input_formats = ['%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M']

        if not allow_repeat:
            for name in ('repeat', 'repeat_until', 'weekdays'):
                del self.fields[name]

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get('repeat') and not cleaned_data.get('repeat_until'):
            self.add_error('repeat_until', _("Choose when the sessions stop repeating."))
        return cleaned_data

    def _post_clean(self):
        # booking rules are enforced by SchedulingService
        pass


class AttendanceForm(forms.Form):
    """One status/remarks pair per expected student"""

    def __init__(self, *args, session=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = session
        self.students = list(session.expected_students.order_by('last_name', 'first_name'))

        existing = {
            record.child_profile_id: record
            for record in session.attendances.all()
        }
        for child in self.students:
            record = existing.get(child.pk)
            self.fields[f'status_{child.pk}'] = forms.ChoiceField(
                label=child.full_name,
                choices=Attendance.Status.choices,
                initial=record.status if record else Attendance.Status.PRESENT,
            )
            self.fields[f'remarks_{child.pk}'] = forms.CharField(
                required=False,
                max_length=255,
                initial=record.remarks if record else '',
            )

    def rows(self):
        for child in self.students:
            yield child, self[f'status_{child.pk}'], self[f'remarks_{child.pk}']

    def entries(self):
        return {
            child.pk: {
                'status': self.cleaned_data[f'status_{child.pk}'],
                'remarks': self.cleaned_data.get(f'remarks_{child.pk}', ''),
            }
            for child in self.students
        }


class TimetableSlotForm(forms.ModelForm):
    class Meta:
        model = TimetableSlot
        fields = ['subject', 'teacher_profile', 'day', 'start_time', 'end_time', 'room']
        widgets = {
            'start_time': TIME_WIDGET,
            'end_time': TIME_WIDGET,
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['subject'].queryset = Subject.objects.select_related('curriculum')

    def clean(self):
        cleaned_data = super().clean()
        subject = cleaned_data.get('subject')
        teacher = cleaned_data.get('teacher_profile')
        if subject and teacher and not teacher.teaches_subject(subject):
            self.add_error('teacher_profile', _("This teacher does not teach the selected subject."))
        return cleaned_data


class EventForm(forms.ModelForm):
    class Meta:
        model = Event
        fields = [
            'title', 'description', 'type', 'start_date', 'end_date', 'is_all_day',
            'location', 'color', 'academic_year', 'max_attendees',
            'registration_required', 'registration_deadline', 'status', 'notes',
        ]
        widgets = {
            'start_date': DATETIME_WIDGET,
            'end_date': DATETIME_WIDGET,
            'registration_deadline': DATETIME_WIDGET,
            'description': forms.Textarea(attrs={'rows': 3}),
            'notes': forms.Textarea(attrs={'rows': 2}),
            'color': forms.TextInput(attrs={'type': 'color'}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for name in ('start_date', 'end_date', 'registration_deadline'):
            self.fields[name].input_formats = ['%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M']

    def clean(self):
        cleaned_data = super().clean()
        start = cleaned_data.get('start_date')
        end = cleaned_data.get('end_date')
        if start and end and end < start:
            raise ValidationError({'end_date': _("The end date must be after the start date.")})

        deadline = cleaned_data.get('registration_deadline')
        if deadline and start and deadline > start:
            self.add_error('registration_deadline', _("Registration must close before the event starts."))
        return cleaned_data


class EventRegistrationForm(forms.Form):
    note = forms.CharField(required=False, max_length=255, widget=forms.Textarea(attrs={'rows': 2}))
