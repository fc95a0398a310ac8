from django import forms
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

from apps.corecode.models import AcademicYear, Curriculum
from apps.finance.models import PaymentPlan
from apps.students.models import ChildProfile
from .models import DUPLICATE_ENROLLMENT_MESSAGE, ProgramEnrollment
from .services import EnrollmentService


def payment_plan_choices(curriculum):
    """Active plans for the curriculum plus general plans"""
    if curriculum is None:
        return PaymentPlan.objects.none()
    return PaymentPlan.objects.active().for_curriculum(curriculum).order_by("name")


# ---------------------------------------------------------------------------
# Enrollment wizard steps
# ---------------------------------------------------------------------------

class EnrollmentStudentForm(forms.Form):
    """Step 1: pick the student"""

    child_profile = forms.ModelChoiceField(
        queryset=ChildProfile.objects.all(),
        label=_("Student"),
    )


class EnrollmentProgramForm(forms.Form):
    """Step 2: curriculum and academic year"""

    curriculum = forms.ModelChoiceField(
        queryset=Curriculum.objects.filter(is_active=True),
        label=_("Curriculum"),
    )
    academic_year = forms.ModelChoiceField(
        queryset=AcademicYear.objects.all(),
        label=_("Academic Year"),
    )

    def __init__(self, *args, child_profile=None, **kwargs):
        self.child_profile = child_profile
        super().__init__(*args, **kwargs)

        current_year = AcademicYear.get_current()
        if current_year and not self.initial.get('academic_year'):
            self.fields['academic_year'].initial = current_year.pk

    def clean(self):
        cleaned_data = super().clean()
        curriculum = cleaned_data.get('curriculum')
        academic_year = cleaned_data.get('academic_year')

        if self.child_profile and curriculum and academic_year:
            if EnrollmentService.duplicate_exists(self.child_profile, curriculum, academic_year):
                raise ValidationError(DUPLICATE_ENROLLMENT_MESSAGE)

        return cleaned_data


class EnrollmentPlanForm(forms.Form):
    """Step 3: payment plan and status"""

    payment_plan = forms.ModelChoiceField(
        queryset=PaymentPlan.objects.none(),
        required=False,
        label=_("Payment Plan"),
        empty_label=_("No payment plan"),
    )
    status = forms.ChoiceField(
        choices=ProgramEnrollment.Status.choices,
        initial=ProgramEnrollment.Status.PENDING,
    )
    notes = forms.CharField(widget=forms.Textarea(attrs={'rows': 3}), required=False)

    def __init__(self, *args, curriculum=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['payment_plan'].queryset = payment_plan_choices(curriculum)

        if curriculum is not None and not self.initial.get('payment_plan'):
            default_plan = PaymentPlan.get_default_for_curriculum(curriculum)
            if default_plan:
                self.fields['payment_plan'].initial = default_plan.pk


# ---------------------------------------------------------------------------
# Edit forms
# ---------------------------------------------------------------------------

class ProgramEnrollmentForm(forms.ModelForm):
    """Enrollment edit form; duplicates are caught by the model's unique constraint"""

    class Meta:
        model = ProgramEnrollment
        fields = ['child_profile', 'curriculum', 'academic_year', 'payment_plan', 'status', 'notes']
        widgets = {
            'notes': forms.Textarea(attrs={'rows': 3}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        curriculum = self.instance.curriculum if self.instance.curriculum_id else None
        curriculum_id = self.data.get(self.add_prefix('curriculum')) if self.is_bound else None
        if curriculum_id:
            curriculum = Curriculum.objects.filter(pk=curriculum_id).first() or curriculum

        self.fields['payment_plan'].queryset = payment_plan_choices(curriculum)

    def clean(self):
        cleaned_data = super().clean()
        curriculum = cleaned_data.get('curriculum')
        payment_plan = cleaned_data.get('payment_plan')

        if payment_plan and curriculum and not payment_plan.can_be_used_for_curriculum(curriculum):
            self.add_error(
                'payment_plan',
                _("The selected payment plan cannot be used for this curriculum")
            )

        return cleaned_data


class SubjectEnrollmentForm(forms.Form):
    subjects = forms.ModelMultipleChoiceField(
        queryset=None,
        widget=forms.CheckboxSelectMultiple,
        label=_("Subjects"),
    )

    def __init__(self, *args, enrollment=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.enrollment = enrollment
        self.fields['subjects'].queryset = enrollment.available_subjects
