import csv

from django.contrib import messages
from django.contrib.auth.decorators import login_required, permission_required
from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.core.exceptions import ValidationError
from django.db.models import Q, Sum
from django.http import HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.utils.translation import gettext_lazy as _
from django.views.generic import DetailView, ListView, TemplateView, View
from django.views.generic.edit import CreateView, UpdateView

from apps.activity.models import ActivityLog
from apps.students.models import ChildProfile
from .forms import (
    FinancialReportForm,
    InvoiceForm,
    InvoiceItemFormSet,
    PaymentForm,
    PaymentPlanForm,
)
from .models import Invoice, Payment, PaymentPlan
from .utils import create_invoice, generate_financial_report, record_payment


# ---------------------------------------------------------------------------
# Payment plans
# ---------------------------------------------------------------------------

class PaymentPlanListView(LoginRequiredMixin, PermissionRequiredMixin, ListView):
    template_name = 'finance/payment_plan_list.html'
    permission_required = 'finance.view_paymentplan'
    context_object_name = 'plans'

    def get_queryset(self):
        queryset = PaymentPlan.objects.select_related('curriculum')

        plan_type = self.request.GET.get('type')
        if plan_type:
            queryset = queryset.by_type(plan_type)

        scope = self.request.GET.get('scope')
        if scope == 'general':
            queryset = queryset.general()
        elif scope == 'curriculum':
            queryset = queryset.curriculum_specific()

        if self.request.GET.get('active') == '1':
            queryset = queryset.active()

        return queryset


class PaymentPlanDetailView(LoginRequiredMixin, PermissionRequiredMixin, DetailView):
    model = PaymentPlan
    template_name = 'finance/payment_plan_detail.html'
    permission_required = 'finance.view_paymentplan'
    context_object_name = 'plan'

    def get_context_data(self, **kwargs):
        from django.utils import timezone

        context = super().get_context_data(**kwargs)
        context['schedule'] = self.object.calculate_payment_schedule(timezone.localdate())
        context['enrollments_count'] = self.object.enrollments.count()
        return context


class PaymentPlanCreateView(LoginRequiredMixin, PermissionRequiredMixin, CreateView):
    model = PaymentPlan
    form_class = PaymentPlanForm
    template_name = 'finance/payment_plan_form.html'
    permission_required = 'finance.add_paymentplan'

    def form_valid(self, form):
        response = super().form_valid(form)
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.CREATE,
            f"Created payment plan: {self.object.name}",
            subject=self.object,
            request=self.request,
        )
        messages.success(self.request, _("Payment plan %(code)s created") % {'code': self.object.code})
        return response

    def get_success_url(self):
        return reverse('finance:payment_plan_detail', kwargs={'pk': self.object.pk})


class PaymentPlanUpdateView(LoginRequiredMixin, PermissionRequiredMixin, UpdateView):
    model = PaymentPlan
    form_class = PaymentPlanForm
    template_name = 'finance/payment_plan_form.html'
    permission_required = 'finance.change_paymentplan'

    def form_valid(self, form):
        response = super().form_valid(form)
        ActivityLog.log(
            self.request.user,
            ActivityLog.Action.UPDATE,
            f"Updated payment plan: {self.object.name}",
            subject=self.object,
            additional_data={'changed_fields': form.changed_data},
            request=self.request,
        )
        messages.success(self.request, _("Payment plan updated"))
        return response

    def get_success_url(self):
        return reverse('finance:payment_plan_detail', kwargs={'pk': self.object.pk})


@login_required
@permission_required('finance.delete_paymentplan', raise_exception=True)
def delete_payment_plan(request, pk):
    plan = get_object_or_404(PaymentPlan, pk=pk)

    if request.method == 'POST':
        plan.delete()
        ActivityLog.log(
            request.user,
            ActivityLog.Action.DELETE,
            f"Deleted payment plan: {plan.name}",
            subject=plan,
            request=request,
        )
        messages.success(request, _("Payment plan deleted"))
        return redirect('finance:payment_plan_list')

    return render(request, 'finance/payment_plan_confirm_delete.html', {'plan': plan})


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

class InvoiceListView(LoginRequiredMixin, PermissionRequiredMixin, ListView):
    """List invoices with filtering"""
    template_name = 'finance/invoice_list.html'
    permission_required = 'finance.view_invoice'
    paginate_by = 50
    context_object_name = 'invoices'

    def get_queryset(self):
        queryset = Invoice.objects.select_related('child_profile', 'curriculum', 'academic_year')

        status = self.request.GET.get('status')
        if status == 'overdue':
            queryset = queryset.overdue()
        elif status:
            queryset = queryset.with_status(status)

        student_id = self.request.GET.get('student')
        if student_id:
            queryset = queryset.filter(child_profile_id=student_id)

        search = self.request.GET.get('search')
        if search:
            queryset = queryset.filter(
                Q(invoice_number__icontains=search) |
                Q(child_profile__first_name__icontains=search) |
                Q(child_profile__last_name__icontains=search)
            )

        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)

        all_invoices = Invoice.objects.all()
        context['total_invoices'] = all_invoices.count()
        context['total_amount'] = all_invoices.aggregate(total=Sum('amount'))['total'] or 0
        context['total_paid'] = Payment.objects.with_status(Payment.Status.COMPLETED).aggregate(
            total=Sum('amount')
        )['total'] or 0
        context['overdue_count'] = all_invoices.overdue().count()
        context['statuses'] = Invoice.Status.choices
        return context


class InvoiceCreateView(LoginRequiredMixin, PermissionRequiredMixin, View):
    """Create an invoice with line items"""
    template_name = 'finance/invoice_form.html'
    permission_required = 'finance.add_invoice'

    def get(self, request):
        initial = {}
        if request.GET.get('student'):
            initial['child_profile'] = request.GET['student']
        return render(request, self.template_name, {
            'form': InvoiceForm(initial=initial),
            'formset': InvoiceItemFormSet(prefix='items'),
        })

    def post(self, request):
        form = InvoiceForm(request.POST)
        formset = InvoiceItemFormSet(request.POST, prefix='items')

        if form.is_valid() and formset.is_valid():
            items = [item for item in formset.cleaned_data if item]
            try:
                invoice = create_invoice(
                    child_profile=form.cleaned_data['child_profile'],
                    academic_year=form.cleaned_data['academic_year'],
                    curriculum=form.cleaned_data['curriculum'],
                    items=items,
                    due_date=form.cleaned_data['due_date'],
                    description=form.cleaned_data['description'],
                    status=form.cleaned_data['status'],
                    user=request.user,
                    request=request,
                )
            except ValidationError as e:
                form.add_error(None, e)
            else:
                messages.success(
                    request,
                    _("Invoice %(number)s created successfully") % {'number': invoice.invoice_number}
                )
                return redirect('finance:invoice_detail', pk=invoice.pk)

        return render(request, self.template_name, {'form': form, 'formset': formset})


class InvoiceDetailView(LoginRequiredMixin, PermissionRequiredMixin, DetailView):
    """View invoice details"""
    template_name = 'finance/invoice_detail.html'
    permission_required = 'finance.view_invoice'
    context_object_name = 'invoice'

    def get_queryset(self):
        return Invoice.objects.select_related('child_profile', 'curriculum', 'academic_year')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['items'] = self.object.items.all()
        context['payments'] = self.object.payments.order_by('-payment_date')
        if self.object.can_be_paid():
            context['payment_form'] = PaymentForm(invoice=self.object)
        return context


@login_required
@permission_required('finance.add_payment', raise_exception=True)
def add_payment(request, invoice_id):
    """Record a (partial) payment against an invoice"""
    invoice = get_object_or_404(Invoice, pk=invoice_id)

    if request.method == 'POST':
        form = PaymentForm(request.POST, invoice=invoice)

        if form.is_valid():
            try:
                payment = record_payment(
                    invoice,
                    amount=form.cleaned_data['amount'],
                    payment_method=form.cleaned_data['payment_method'],
                    transaction_id=form.cleaned_data['transaction_id'],
                    notes=form.cleaned_data['notes'],
                    user=request.user,
                    request=request,
                )
            except ValidationError as e:
                messages.error(request, ' '.join(e.messages))
            else:
                messages.success(
                    request,
                    _("Payment of %(amount)s recorded. Reference: %(reference)s") % {
                        'amount': payment.amount,
                        'reference': payment.reference_number,
                    }
                )
        else:
            for errors in form.errors.values():
                messages.error(request, ' '.join(errors))

    return redirect('finance:invoice_detail', pk=invoice_id)


@login_required
@permission_required('finance.change_invoice', raise_exception=True)
def change_invoice_status(request, pk, action):
    invoice = get_object_or_404(Invoice, pk=pk)

    if request.method == 'POST':
        if action == 'send' and invoice.status == Invoice.Status.DRAFT:
            invoice.mark_as_sent()
            messages.success(request, _("Invoice marked as sent"))
        elif action == 'cancel' and invoice.status != Invoice.Status.PAID:
            invoice.cancel()
            messages.success(request, _("Invoice cancelled"))
        else:
            messages.error(request, _("This action is not allowed for the invoice's status"))
            return redirect('finance:invoice_detail', pk=pk)

        ActivityLog.log(
            request.user,
            ActivityLog.Action.UPDATE,
            f"Invoice {invoice.invoice_number} {invoice.get_status_display().lower()}",
            subject=invoice,
            additional_data={'status': invoice.status},
            request=request,
        )

    return redirect('finance:invoice_detail', pk=pk)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class PaymentListView(LoginRequiredMixin, PermissionRequiredMixin, ListView):
    template_name = 'finance/payment_list.html'
    permission_required = 'finance.view_payment'
    paginate_by = 50
    context_object_name = 'payments'

    def get_queryset(self):
        queryset = Payment.objects.select_related('child_profile', 'invoice')

        status = self.request.GET.get('status')
        if status == 'overdue':
            queryset = queryset.overdue()
        elif status:
            queryset = queryset.with_status(status)

        student_id = self.request.GET.get('student')
        if student_id:
            queryset = queryset.filter(child_profile_id=student_id)

        return queryset


class PaymentDetailView(LoginRequiredMixin, PermissionRequiredMixin, DetailView):
    model = Payment
    template_name = 'finance/payment_detail.html'
    permission_required = 'finance.view_payment'
    context_object_name = 'payment'


@login_required
@permission_required('finance.change_payment', raise_exception=True)
def complete_payment(request, pk):
    payment = get_object_or_404(Payment, pk=pk)

    if request.method == 'POST' and payment.status != Payment.Status.COMPLETED:
        payment.mark_as_completed()
        ActivityLog.log(
            request.user,
            ActivityLog.Action.UPDATE,
            f"Payment {payment.reference_number} marked as completed",
            subject=payment,
            request=request,
        )
        messages.success(request, _("Payment marked as completed"))

    return redirect('finance:payment_detail', pk=pk)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

class FinancialReportView(LoginRequiredMixin, PermissionRequiredMixin, TemplateView):
    """Generate financial reports"""
    template_name = 'finance/financial_report.html'
    permission_required = 'finance.view_invoice'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)

        form = FinancialReportForm(self.request.GET or None)
        context['form'] = form

        if form.is_bound and form.is_valid():
            report = generate_financial_report(
                form.cleaned_data['start_date'],
                form.cleaned_data['end_date'],
                curriculum=form.cleaned_data.get('curriculum'),
                academic_year=form.cleaned_data.get('academic_year'),
            )
            context['filters_applied'] = True
        else:
            report = generate_financial_report(
                form.fields['start_date'].initial,
                form.fields['end_date'].initial,
            )
        context.update(report)
        return context


@login_required
@permission_required('finance.view_invoice', raise_exception=True)
def export_financial_report(request):
    """Export financial report as CSV"""
    form = FinancialReportForm(request.GET)
    if not form.is_valid():
        messages.error(request, _("Please select start and end dates"))
        return redirect('finance:financial_report')

    start_date = form.cleaned_data['start_date']
    end_date = form.cleaned_data['end_date']
    report = generate_financial_report(
        start_date,
        end_date,
        curriculum=form.cleaned_data.get('curriculum'),
        academic_year=form.cleaned_data.get('academic_year'),
    )

    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="financial_report_{start_date}_to_{end_date}.csv"'

    writer = csv.writer(response)

    writer.writerow(['Financial Report', f'{start_date} to {end_date}'])
    writer.writerow([])

    writer.writerow(['Summary'])
    writer.writerow(['Total Invoices', report['invoices']['total']])
    writer.writerow(['Total Amount', f"{report['invoices']['total_amount']:,.2f}"])
    writer.writerow(['Overdue Invoices', report['invoices']['overdue']])
    writer.writerow(['Total Payments', report['payments']['total']])
    writer.writerow(['Payments Amount', f"{report['payments']['total_amount']:,.2f}"])
    writer.writerow(['Outstanding', f"{report['outstanding_amount']:,.2f}"])
    writer.writerow([])

    writer.writerow(['Invoices'])
    writer.writerow(['Invoice Number', 'Student', 'Curriculum', 'Invoice Date', 'Due Date',
                     'Amount', 'Amount Paid', 'Balance', 'Status'])

    for invoice in report['invoices_list']:
        writer.writerow([
            invoice.invoice_number,
            invoice.child_profile.full_name,
            invoice.curriculum.name,
            invoice.invoice_date,
            invoice.due_date,
            f"{invoice.amount:,.2f}",
            f"{invoice.amount_paid:,.2f}",
            f"{invoice.balance:,.2f}",
            invoice.get_status_display(),
        ])

    return response


# AJAX endpoints
@login_required
@permission_required('finance.view_invoice', raise_exception=True)
def student_balance_ajax(request, student_id):
    """Outstanding balance of a student (AJAX)"""
    child = get_object_or_404(ChildProfile, pk=student_id)
    unpaid = Invoice.objects.for_student(child).unpaid()

    return JsonResponse({
        'success': True,
        'student': {'id': child.pk, 'name': child.full_name},
        'unpaid_invoices': unpaid.count(),
        'overdue_invoices': unpaid.overdue().count(),
        'outstanding': str(sum((invoice.balance for invoice in unpaid), 0)),
    })
