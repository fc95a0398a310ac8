from datetime import timedelta

from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.corecode.models import AcademicYear, Curriculum
from apps.students.models import ChildProfile
from .models import PAYMENT_METHODS, Invoice, PaymentPlan


class PaymentPlanForm(forms.ModelForm):
    accepted_payment_methods = forms.MultipleChoiceField(
        choices=PAYMENT_METHODS,
        required=False,
        widget=forms.CheckboxSelectMultiple,
        help_text=_("Leave empty to accept every method")
    )

    class Meta:
        model = PaymentPlan
        fields = [
            'name', 'description', 'type', 'amount', 'currency', 'installments', 'due_day',
            'curriculum', 'is_active', 'is_default', 'auto_generate_invoices', 'setup_fee',
            'discount_percentage', 'discount_amount', 'discount_valid_until',
            'grace_period_days', 'late_fee_amount', 'late_fee_percentage',
            'terms_and_conditions', 'payment_instructions', 'accepted_payment_methods',
            'internal_notes',
        ]
        widgets = {
            'description': forms.Textarea(attrs={'rows': 3}),
            'terms_and_conditions': forms.Textarea(attrs={'rows': 3}),
            'payment_instructions': forms.Textarea(attrs={'rows': 3}),
            'internal_notes': forms.Textarea(attrs={'rows': 2}),
            'discount_valid_until': forms.DateInput(attrs={'type': 'date'}),
        }

    def clean_due_day(self):
        due_day = self.cleaned_data.get('due_day')
        if due_day is not None and not 1 <= due_day <= 31:
            raise ValidationError(_("Due day must be between 1 and 31"))
        return due_day

    def clean(self):
        cleaned_data = super().clean()
        percentage = cleaned_data.get('discount_percentage')
        if percentage is not None and not 0 <= percentage <= 100:
            self.add_error('discount_percentage', _("Discount percentage must be between 0 and 100"))

        if cleaned_data.get('discount_percentage') and cleaned_data.get('discount_amount'):
            self.add_error('discount_amount', _("Use either a discount percentage or a discount amount"))
        return cleaned_data


class InvoiceForm(forms.Form):
    """Invoice header; line items come from InvoiceItemFormSet"""

    child_profile = forms.ModelChoiceField(
        queryset=ChildProfile.objects.all(),
        label=_("Student")
    )
    academic_year = forms.ModelChoiceField(queryset=AcademicYear.objects.all())
    curriculum = forms.ModelChoiceField(queryset=Curriculum.objects.filter(is_active=True))
    due_date = forms.DateField(widget=forms.DateInput(attrs={'type': 'date'}))
    status = forms.ChoiceField(
        choices=[(Invoice.Status.DRAFT, _('Draft')), (Invoice.Status.SENT, _('Sent'))],
        initial=Invoice.Status.DRAFT
    )
    description = forms.CharField(widget=forms.Textarea(attrs={'rows': 3}), required=False)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        current_year = AcademicYear.get_current()
        if current_year:
            self.fields['academic_year'].initial = current_year.pk
        self.fields['due_date'].initial = timezone.localdate() + timedelta(days=30)

    def clean_due_date(self):
        due_date = self.cleaned_data['due_date']
        if due_date < timezone.localdate():
            raise ValidationError(_("Due date cannot be in the past"))
        return due_date


class InvoiceItemForm(forms.Form):
    name = forms.CharField(max_length=200)
    description = forms.CharField(required=False)
    amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    quantity = forms.IntegerField(min_value=1, initial=1)


InvoiceItemFormSet = forms.formset_factory(InvoiceItemForm, extra=3, min_num=1, validate_min=True)


class PaymentForm(forms.Form):
    """Payment against an invoice, capped at the balance"""

    amount = forms.DecimalField(
        max_digits=10,
        decimal_places=2,
        label=_("Amount"),
        help_text=_("Amount to pay")
    )
    payment_method = forms.ChoiceField(choices=PAYMENT_METHODS, label=_("Payment Method"))
    transaction_id = forms.CharField(required=False, max_length=100)
    notes = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'rows': 2}),
        label=_("Notes")
    )

    def __init__(self, *args, invoice=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.invoice = invoice

        if invoice is not None:
            balance = invoice.balance
            self.fields['amount'].initial = balance
            self.fields['amount'].widget.attrs['max'] = balance
            self.fields['amount'].help_text = _("Maximum: %(max)s") % {'max': balance}

            methods = invoice.program_enrollment.payment_plan.accepted_payment_methods if (
                invoice.program_enrollment_id and invoice.program_enrollment.payment_plan_id
            ) else None
            if methods:
                self.fields['payment_method'].choices = [
                    (value, label) for value, label in PAYMENT_METHODS if value in methods
                ]

    def clean_amount(self):
        amount = self.cleaned_data['amount']

        if amount <= 0:
            raise ValidationError(_("Amount must be positive"))

        if self.invoice is not None and amount > self.invoice.balance:
            raise ValidationError(
                _("Amount exceeds invoice balance of %(balance)s") % {
                    'balance': self.invoice.balance
                }
            )
        return amount


class FinancialReportForm(forms.Form):
    start_date = forms.DateField(
        widget=forms.DateInput(attrs={'type': 'date'}),
        label=_("Start Date")
    )
    end_date = forms.DateField(
        widget=forms.DateInput(attrs={'type': 'date'}),
        label=_("End Date")
    )
    curriculum = forms.ModelChoiceField(
        queryset=Curriculum.objects.all(),
        required=False,
        label=_("Curriculum (optional)")
    )
    academic_year = forms.ModelChoiceField(
        queryset=AcademicYear.objects.all(),
        required=False,
        label=_("Academic Year (optional)")
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        # last 30 days
        end_date = timezone.localdate()
        self.fields['start_date'].initial = end_date - timedelta(days=30)
        self.fields['end_date'].initial = end_date

    def clean(self):
        cleaned_data = super().clean()
        start_date = cleaned_data.get('start_date')
        end_date = cleaned_data.get('end_date')

        if start_date and end_date and start_date > end_date:
            raise ValidationError(_("Start date cannot be after end date"))

        return cleaned_data
