"""
Forms for exams and results
"""
from django import forms
from django.utils.translation import gettext_lazy as _

from apps.corecode.models import AcademicYear
from .models import Exam, ExamResult


class ExamForm(forms.ModelForm):
    class Meta:
        model = Exam
        fields = ['subject', 'academic_year', 'title', 'exam_date', 'type', 'max_score']
        widgets = {
            'exam_date': forms.DateInput(attrs={'type': 'date'}),
        }

    def __init__(self, *args, teacher_profile=None, **kwargs):
        super().__init__(*args, **kwargs)
        if teacher_profile is not None:
            self.fields['subject'].queryset = teacher_profile.subjects.all()

        current_year = AcademicYear.get_current()
        if current_year and not self.instance.pk:
            self.fields['academic_year'].initial = current_year.pk


class ExamResultForm(forms.ModelForm):
    """Single result entry"""

    class Meta:
        model = ExamResult
        fields = ['child_profile', 'score', 'remarks']
        widgets = {
            'remarks': forms.Textarea(attrs={'rows': 2}),
        }

    def __init__(self, *args, exam=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.exam = exam
        self.instance.exam = exam
        self.fields['child_profile'].queryset = exam.eligible_students
        self.fields['score'].help_text = _('Maximum: %(max)s') % {'max': exam.max_score}


class BulkResultForm(forms.Form):
    """Score and remarks for every eligible student of an exam"""

    def __init__(self, *args, exam=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.exam = exam
        self.students = list(exam.eligible_students.order_by('last_name', 'first_name'))

        existing = {result.child_profile_id: result for result in exam.results.all()}
        for child in self.students:
            result = existing.get(child.pk)
            self.fields[f'score_{child.pk}'] = forms.DecimalField(
                label=child.full_name,
                required=False,
                min_value=0,
                max_value=exam.max_score,
                decimal_places=2,
                initial=result.score if result else None,
            )
            self.fields[f'remarks_{child.pk}'] = forms.CharField(
                required=False,
                initial=result.remarks if result else '',
            )

    def rows(self):
        for child in self.students:
            yield child, self[f'score_{child.pk}'], self[f'remarks_{child.pk}']

    def scores(self):
        """{child: (score, remarks)} for rows with a score"""
        return {
            child: (self.cleaned_data[f'score_{child.pk}'], self.cleaned_data.get(f'remarks_{child.pk}', ''))
            for child in self.students
            if self.cleaned_data.get(f'score_{child.pk}') is not None
        }
