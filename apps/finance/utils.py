"""
Finance utilities for invoice generation, payment processing and reporting
"""
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.activity.models import ActivityLog
from .models import Invoice, InvoiceItem, Payment

logger = logging.getLogger(__name__)


def create_invoice(child_profile, academic_year, curriculum, items, due_date,
                   description='', program_enrollment=None, status=Invoice.Status.DRAFT,
                   installment_number=None, user=None, request=None):
    """
    Create an invoice with its line items

    Args:
        items: iterable of dicts with name, amount and optional description/quantity

    Returns: Invoice object
    Raises: ValidationError if there are no items or the due date precedes today
    """
    items = list(items)
    if not items:
        raise ValidationError(_("An invoice needs at least one item"))

    invoice_date = timezone.localdate()
    if due_date < invoice_date:
        raise ValidationError({'due_date': _("The due date cannot be before the invoice date")})

    with transaction.atomic():
        invoice = Invoice.objects.create(
            child_profile=child_profile,
            academic_year=academic_year,
            curriculum=curriculum,
            program_enrollment=program_enrollment,
            installment_number=installment_number,
            invoice_date=invoice_date,
            due_date=due_date,
            description=description,
            status=status,
            created_by=user if user is not None and user.is_authenticated else None,
        )
        for item in items:
            InvoiceItem.objects.create(
                invoice=invoice,
                name=item['name'],
                description=item.get('description', ''),
                amount=item['amount'],
                quantity=item.get('quantity', 1),
            )
        invoice.recalculate_amount()

    ActivityLog.log(
        user,
        ActivityLog.Action.CREATE,
        f"Created invoice {invoice.invoice_number} for {child_profile.full_name}",
        subject=invoice,
        additional_data={'amount': invoice.amount, 'due_date': invoice.due_date},
        request=request,
    )
    logger.info(f"Invoice created: {invoice.invoice_number} ({invoice.amount})")
    return invoice


def generate_plan_invoices(enrollment, start_date=None, user=None):
    """
    Create one invoice per instalment of the enrollment's payment plan

    The schedule starts on the enrollment date, so re-runs on later days bill
    the same instalments. Instalments that already have an invoice, deleted ones
    included, are skipped.

    Returns: list of created invoices
    """
    plan = enrollment.payment_plan
    if plan is None:
        return []

    if start_date is None:
        start_date = timezone.localdate(enrollment.created_at)
    today = timezone.localdate()

    created = []
    with transaction.atomic():
        # serializes concurrent runs for the same enrollment
        type(enrollment).objects.select_for_update().get(pk=enrollment.pk)
        billed = set(
            Invoice.all_objects.filter(
                program_enrollment=enrollment, installment_number__isnull=False
            ).values_list('installment_number', flat=True)
        )

        for installment in plan.calculate_payment_schedule(start_date):
            if installment['installment_number'] in billed:
                continue

            invoice = create_invoice(
                child_profile=enrollment.child_profile,
                academic_year=enrollment.academic_year,
                curriculum=enrollment.curriculum,
                program_enrollment=enrollment,
                items=[{
                    'name': plan.name,
                    'description': installment['description'],
                    'amount': installment['amount'],
                }],
                due_date=max(installment['due_date'], today),
                description=f"{plan.name} - {installment['description']}",
                status=Invoice.Status.PENDING,
                installment_number=installment['installment_number'],
                user=user,
            )
            created.append(invoice)

    logger.info(f"Generated {len(created)} plan invoices for enrollment {enrollment.pk}")
    return created


def record_payment(invoice, amount, payment_method, transaction_id='', notes='',
                   user=None, request=None):
    """
    Record a completed payment against an invoice

    Returns: Payment object
    Raises: ValidationError if the invoice cannot be paid or the amount exceeds the balance
    """
    if amount <= 0:
        raise ValidationError({'amount': _("Amount must be positive")})

    with transaction.atomic():
        # balance is read under the invoice row lock
        invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
        if not invoice.can_be_paid():
            raise ValidationError(_("This invoice cannot accept payments"))

        balance = invoice.balance
        if amount > balance:
            raise ValidationError({
                'amount': _("Amount exceeds invoice balance of %(balance)s") % {'balance': balance}
            })

        payment = Payment.objects.create(
            invoice=invoice,
            amount=amount,
            child_profile=invoice.child_profile,
            academic_year=invoice.academic_year,
            curriculum=invoice.curriculum,
            due_date=invoice.due_date,
            payment_method=payment_method,
            transaction_id=transaction_id,
            notes=notes,
            description=f"Payment for {invoice.invoice_number}",
            created_by=user if user is not None and user.is_authenticated else None,
        )
        payment.mark_as_completed()

    ActivityLog.log(
        user,
        ActivityLog.Action.CREATE,
        f"Recorded payment {payment.reference_number} of {amount} for {invoice.invoice_number}",
        subject=payment,
        additional_data={'invoice': invoice.invoice_number, 'amount': amount},
        request=request,
    )
    logger.info(f"Payment recorded: {payment.reference_number} for {invoice.invoice_number}")
    return payment


def generate_financial_report(start_date, end_date, curriculum=None, academic_year=None):
    """
    Summarise invoices and payments between two dates (inclusive)

    Returns: dict with invoice and payment totals plus the row querysets
    """
    invoices = Invoice.objects.filter(
        invoice_date__range=(start_date, end_date)
    ).select_related('child_profile', 'curriculum')
    payments = Payment.objects.in_date_range(start_date, end_date).select_related(
        'child_profile', 'invoice'
    )

    if curriculum is not None:
        invoices = invoices.filter(curriculum=curriculum)
        payments = payments.for_curriculum(curriculum)
    if academic_year is not None:
        invoices = invoices.for_academic_year(academic_year)
        payments = payments.for_academic_year(academic_year)

    completed = payments.with_status(Payment.Status.COMPLETED)
    invoice_total = invoices.aggregate(total=Sum('amount'))['total'] or Decimal('0')
    paid_total = completed.aggregate(total=Sum('amount'))['total'] or Decimal('0')

    by_status = {
        row['status']: {'count': row['count'], 'amount': row['amount'] or Decimal('0')}
        for row in invoices.values('status').annotate(count=Count('id'), amount=Sum('amount'))
    }

    return {
        'start_date': start_date,
        'end_date': end_date,
        'invoices': {
            'total': invoices.count(),
            'total_amount': invoice_total,
            'overdue': invoices.overdue().count(),
            'by_status': by_status,
        },
        'payments': {
            'total': payments.count(),
            'completed': completed.count(),
            'total_amount': paid_total,
        },
        'outstanding_amount': invoice_total - paid_total,
        'invoices_list': invoices.order_by('invoice_date', 'invoice_number'),
        'payments_list': payments.order_by('payment_date'),
    }
