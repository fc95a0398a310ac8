from django import forms
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

from .models import AcademicYear, Curriculum, Room, Subject


class AcademicYearForm(forms.ModelForm):
    class Meta:
        model = AcademicYear
        fields = ['name', 'start_date', 'end_date', 'is_current']
        widgets = {
            'start_date': forms.DateInput(attrs={'type': 'date'}),
            'end_date': forms.DateInput(attrs={'type': 'date'}),
        }

    def clean(self):
        cleaned_data = super().clean()
        start_date = cleaned_data.get('start_date')
        end_date = cleaned_data.get('end_date')
        if start_date and end_date and end_date <= start_date:
            raise ValidationError({'end_date': _("End date must be after start date")})
        return cleaned_data


class CurriculumForm(forms.ModelForm):
    class Meta:
        model = Curriculum
        fields = ['name', 'code', 'description', 'is_active']
        widgets = {
            'description': forms.Textarea(attrs={'rows': 3}),
        }

    def clean_code(self):
        return self.cleaned_data['code'].strip().upper()


class SubjectForm(forms.ModelForm):
    class Meta:
        model = Subject
        fields = ['curriculum', 'name', 'code', 'level', 'description']
        widgets = {
            'description': forms.Textarea(attrs={'rows': 3}),
        }


class RoomForm(forms.ModelForm):
    class Meta:
        model = Room
        fields = [
            'name', 'capacity', 'location', 'building', 'floor', 'description',
            'has_projector', 'has_computers', 'is_accessible',
        ]
        widgets = {
            'description': forms.Textarea(attrs={'rows': 3}),
        }
