from django import forms
from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address
from django.utils.translation import gettext_lazy as _

from .logs import LEVELS
from .maintenance import MAINTENANCE_TASKS


class BackupForm(forms.Form):
    TYPES = [
        ('full', _('Full (database and files)')),
        ('db', _('Database only')),
        ('files', _('Files only')),
    ]

    type = forms.ChoiceField(choices=TYPES, initial='full')
    include_logs = forms.BooleanField(required=False)


class BackupSettingsForm(forms.Form):
    SCHEDULES = [('daily', _('Daily')), ('weekly', _('Weekly')), ('monthly', _('Monthly'))]

    auto_backup_enabled = forms.BooleanField(required=False)
    backup_schedule = forms.ChoiceField(choices=SCHEDULES)
    retention_days = forms.IntegerField(min_value=1, max_value=365)


class LogFilterForm(forms.Form):
    level = forms.ChoiceField(
        choices=[('', _('All levels'))] + [(level, level.title()) for level in LEVELS],
        required=False
    )
    search = forms.CharField(required=False)
    date = forms.DateField(required=False, widget=forms.DateInput(attrs={'type': 'date'}))


class MaintenanceForm(forms.Form):
    message = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'rows': 2}),
        help_text=_("Shown to visitors while the site is down")
    )
    allow = forms.CharField(
        required=False,
        help_text=_("Comma separated IP addresses that can still use the site")
    )
    retry = forms.IntegerField(
        required=False,
        min_value=0,
        help_text=_("Seconds sent in the Retry-After header")
    )

    def clean_allow(self):
        addresses = [ip.strip() for ip in self.cleaned_data['allow'].split(',') if ip.strip()]
        for address in addresses:
            try:
                validate_ipv46_address(address)
            except ValidationError:
                raise ValidationError(_("%(ip)s is not a valid IP address") % {'ip': address})
        return addresses


class ScheduleMaintenanceForm(forms.Form):
    start = forms.DateTimeField(widget=forms.DateTimeInput(attrs={'type': 'datetime-local'}))
    end = forms.DateTimeField(widget=forms.DateTimeInput(attrs={'type': 'datetime-local'}))
    message = forms.CharField(required=False)

    def clean(self):
        cleaned_data = super().clean()
        start = cleaned_data.get('start')
        end = cleaned_data.get('end')
        if start and end and end <= start:
            self.add_error('end', _("The maintenance window must end after it starts"))
        return cleaned_data


class MaintenanceTasksForm(forms.Form):
    tasks = forms.MultipleChoiceField(
        choices=[(task, task.replace('_', ' ').title()) for task in MAINTENANCE_TASKS],
        widget=forms.CheckboxSelectMultiple
    )


class UpdateSettingsForm(forms.Form):
    CHANNELS = [('stable', _('Stable')), ('beta', _('Beta'))]

    auto_update_enabled = forms.BooleanField(required=False)
    update_channel = forms.ChoiceField(choices=CHANNELS)
