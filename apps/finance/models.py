import calendar
import logging
import re
from datetime import datetime, time
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, models, transaction
from django.db.models import Q, Sum
from django.db.models.functions import Length
from django.utils import timezone
from django.utils.crypto import get_random_string
from django.utils.translation import gettext_lazy as _

from apps.corecode.managers import SoftDeleteManager, SoftDeleteQuerySet
from apps.corecode.models import SoftDeleteModel, TimeStampedModel

logger = logging.getLogger(__name__)

CODE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
INVOICE_NUMBER_ATTEMPTS = 3

PAYMENT_METHODS = [
    ('bank_transfer', _('Bank Transfer')),
    ('credit_card', _('Credit Card')),
    ('debit_card', _('Debit Card')),
    ('cash', _('Cash')),
    ('check', _('Check')),
    ('online_payment', _('Online Payment')),
    ('mobile_payment', _('Mobile Payment')),
]

CURRENCY_SYMBOLS = {
    'USD': '$',
    'EUR': '€',
    'GBP': '£',
}


def add_months(value, months):
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def format_currency(amount, currency):
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{symbol}{Decimal(amount or 0):,.2f}"


# ---------------------------------------------------------------------------
# Payment plans
# ---------------------------------------------------------------------------

class PaymentPlanQuerySet(SoftDeleteQuerySet):
    def active(self):
        return self.filter(is_active=True)

    def default(self):
        return self.filter(is_default=True)

    def by_type(self, plan_type):
        return self.filter(type=plan_type)

    def by_currency(self, currency):
        return self.filter(currency=currency)

    def for_curriculum(self, curriculum):
        """Plans specific to the curriculum plus general plans"""
        return self.filter(Q(curriculum=curriculum) | Q(curriculum__isnull=True))

    def general(self):
        return self.filter(curriculum__isnull=True)

    def curriculum_specific(self):
        return self.filter(curriculum__isnull=False)

    def with_active_discount(self):
        return self.filter(
            Q(discount_percentage__isnull=False) | Q(discount_amount__isnull=False)
        ).filter(
            Q(discount_valid_until__isnull=True) |
            Q(discount_valid_until__gte=timezone.localdate())
        )


class PaymentPlanManager(SoftDeleteManager.from_queryset(PaymentPlanQuerySet)):
    pass


class PaymentPlan(SoftDeleteModel):
    """Pricing and instalment schedule for a curriculum, or general when curriculum is empty"""

    class Type(models.TextChoices):
        MONTHLY = 'monthly', _('Monthly')
        QUARTERLY = 'quarterly', _('Quarterly')
        SEMI_ANNUAL = 'semi-annual', _('Semi-Annual')
        ANNUAL = 'annual', _('Annual')
        ONE_TIME = 'one-time', _('One-time')

    DEFAULT_INSTALLMENTS = {
        Type.MONTHLY: 12,
        Type.QUARTERLY: 4,
        Type.SEMI_ANNUAL: 2,
        Type.ANNUAL: 1,
        Type.ONE_TIME: 1,
    }

    FREQUENCY_MONTHS = {
        Type.MONTHLY: 1,
        Type.QUARTERLY: 3,
        Type.SEMI_ANNUAL: 6,
        Type.ANNUAL: 12,
    }

    FREQUENCY_TEXT = {
        Type.MONTHLY: _('Every month'),
        Type.QUARTERLY: _('Every 3 months'),
        Type.SEMI_ANNUAL: _('Every 6 months'),
        Type.ANNUAL: _('Once per year'),
        Type.ONE_TIME: _('One-time payment'),
    }

    name = models.CharField(max_length=200)
    code = models.CharField(max_length=50, unique=True, blank=True)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.MONTHLY)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    installments = models.PositiveIntegerField(null=True, blank=True)
    frequency = models.CharField(max_length=20, choices=Type.choices, blank=True)
    due_day = models.PositiveSmallIntegerField(null=True, blank=True)
    curriculum = models.ForeignKey(
        'corecode.Curriculum',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='payment_plans',
        help_text=_("Leave empty for a general plan")
    )
    is_active = models.BooleanField(default=True)
    is_default = models.BooleanField(default=False)
    auto_generate_invoices = models.BooleanField(default=False)
    setup_fee = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    discount_valid_until = models.DateField(null=True, blank=True)
    grace_period_days = models.PositiveIntegerField(default=0)
    late_fee_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    late_fee_percentage = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    terms_and_conditions = models.TextField(blank=True)
    payment_instructions = models.TextField(blank=True)
    accepted_payment_methods = models.JSONField(default=list, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    internal_notes = models.TextField(blank=True)

    objects = PaymentPlanManager()
    all_objects = PaymentPlanManager(alive_only=False)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.formatted_amount})"

    def save(self, *args, **kwargs):
        if self._state.adding:
            if not self.code:
                self.code = self.generate_code(self.name, self.type)
            if not self.installments:
                self.installments = self.DEFAULT_INSTALLMENTS.get(self.type, 1)
            if not self.accepted_payment_methods:
                self.accepted_payment_methods = [method for method, _label in PAYMENT_METHODS]
        if not self.frequency:
            self.frequency = self.type
        super().save(*args, **kwargs)

    @classmethod
    def generate_code(cls, name, plan_type):
        name_code = re.sub(r'[^A-Za-z0-9]', '', name)[:4].upper()
        type_code = plan_type[:2].upper()
        code = original = f"{name_code}{type_code}{get_random_string(3, CODE_ALPHABET)}"

        counter = 1
        while cls.all_objects.filter(code=code).exists():
            code = f"{original}{counter}"
            counter += 1
        return code

    @classmethod
    def get_default_for_curriculum(cls, curriculum):
        """Default active plan for the curriculum, falling back to the general default"""
        plans = cls.objects.active().default()
        if curriculum is not None:
            plan = plans.filter(curriculum=curriculum).first()
            if plan:
                return plan
        return plans.general().first()

    def can_be_used_for_curriculum(self, curriculum):
        if self.curriculum_id is None:
            return True
        curriculum_id = getattr(curriculum, 'pk', curriculum)
        return self.curriculum_id == curriculum_id

    @property
    def total_amount(self):
        return self.amount * (self.installments or 1)

    def has_active_discount(self):
        if not self.discount_percentage and not self.discount_amount:
            return False
        if self.discount_valid_until and self.discount_valid_until < timezone.localdate():
            return False
        return True

    @property
    def current_discount_amount(self):
        if not self.has_active_discount():
            return None
        if self.discount_amount:
            return self.discount_amount
        return (self.amount * self.discount_percentage / 100).quantize(Decimal('0.01'))

    @property
    def discounted_amount(self):
        discount = self.current_discount_amount
        return self.amount - discount if discount else self.amount

    @property
    def formatted_amount(self):
        return format_currency(self.amount, self.currency)

    @property
    def formatted_total_amount(self):
        return format_currency(self.total_amount, self.currency)

    @property
    def frequency_text(self):
        return self.FREQUENCY_TEXT.get(self.frequency, (self.frequency or 'Unknown').capitalize())

    def is_recurring(self):
        return self.type in self.FREQUENCY_MONTHS

    def is_one_time(self):
        return self.type == self.Type.ONE_TIME

    def get_next_payment_date(self, start_date, payment_number=1):
        """Due date of the n-th instalment, None past the single payment of a one-time plan"""
        if self.is_one_time():
            return start_date if payment_number == 1 else None

        months = self.FREQUENCY_MONTHS.get(self.frequency)
        if months is None:
            return None
        return add_months(start_date, months * (payment_number - 1))

    def calculate_payment_schedule(self, start_date):
        schedule = []
        installments = self.installments or 1
        base_amount = self.discounted_amount if self.has_active_discount() else self.amount

        for number in range(1, installments + 1):
            due_date = self.get_next_payment_date(start_date, number)
            if due_date is None:
                break

            if self.due_day and self.due_day <= calendar.monthrange(due_date.year, due_date.month)[1]:
                due_date = due_date.replace(day=self.due_day)

            amount = base_amount
            if number == 1 and self.setup_fee:
                amount += self.setup_fee

            schedule.append({
                'installment_number': number,
                'due_date': due_date,
                'amount': amount,
                'formatted_amount': format_currency(amount, self.currency),
                'description': f"Payment {number} of {installments}",
            })
        return schedule

    def savings_compared_to_monthly(self, monthly_amount=None):
        if not monthly_amount or self.type == self.Type.MONTHLY:
            return {'amount': Decimal('0'), 'percentage': 0}

        total_if_monthly = Decimal(monthly_amount) * 12
        savings = total_if_monthly - self.total_amount
        percentage = (savings / total_if_monthly * 100) if total_if_monthly > 0 else 0
        return {
            'amount': max(Decimal('0'), savings),
            'percentage': max(0, round(float(percentage), 1)),
        }


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

class InvoiceQuerySet(SoftDeleteQuerySet):
    def for_student(self, child):
        return self.filter(child_profile=child)

    def for_academic_year(self, academic_year):
        return self.filter(academic_year=academic_year)

    def with_status(self, status):
        return self.filter(status=status)

    def overdue(self):
        return self.filter(
            Q(status=Invoice.Status.OVERDUE) |
            Q(
                status__in=[
                    Invoice.Status.PENDING,
                    Invoice.Status.SENT,
                    Invoice.Status.PARTIALLY_PAID,
                ],
                due_date__lt=timezone.localdate(),
            )
        )

    def unpaid(self):
        return self.exclude(status__in=[Invoice.Status.PAID, Invoice.Status.CANCELLED])


class InvoiceManager(SoftDeleteManager.from_queryset(InvoiceQuerySet)):
    pass


class Invoice(SoftDeleteModel):
    class Status(models.TextChoices):
        DRAFT = 'draft', _('Draft')
        SENT = 'sent', _('Sent')
        PENDING = 'pending', _('Pending')
        PARTIALLY_PAID = 'partially_paid', _('Partially Paid')
        PAID = 'paid', _('Paid')
        OVERDUE = 'overdue', _('Overdue')
        CANCELLED = 'cancelled', _('Cancelled')

    invoice_number = models.CharField(
        max_length=50,
        unique=True,
        editable=False,
        verbose_name=_("Invoice Number")
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    invoice_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField()
    paid_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    description = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    child_profile = models.ForeignKey(
        'students.ChildProfile',
        on_delete=models.CASCADE,
        related_name='invoices',
        verbose_name=_("Student")
    )
    academic_year = models.ForeignKey(
        'corecode.AcademicYear',
        on_delete=models.PROTECT,
        related_name='invoices'
    )
    curriculum = models.ForeignKey(
        'corecode.Curriculum',
        on_delete=models.PROTECT,
        related_name='invoices'
    )
    program_enrollment = models.ForeignKey(
        'enrollments.ProgramEnrollment',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='invoices'
    )
    installment_number = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text=_("Payment plan instalment this invoice bills")
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    objects = InvoiceManager()
    all_objects = InvoiceManager(alive_only=False)

    class Meta:
        ordering = ['-invoice_date', '-invoice_number']

    def __str__(self):
        return f"{self.invoice_number} - {self.child_profile}"

    @classmethod
    def generate_invoice_number(cls, today=None):
        """
        Next INV-YYYYMM-NNNN number; the sequence restarts every month

        Past 9999 the suffix widens (INV-YYYYMM-10000), so the latest number is
        the longest one, then the greatest.
        """
        today = today or timezone.localdate()
        prefix = f"INV-{today:%Y%m}-"

        last_invoice = cls.all_objects.filter(
            invoice_number__startswith=prefix
        ).order_by(Length('invoice_number').desc(), '-invoice_number').first()

        next_number = 1
        if last_invoice:
            try:
                next_number = int(last_invoice.invoice_number[len(prefix):]) + 1
            except ValueError:
                logger.warning(f"Unparseable invoice number: {last_invoice.invoice_number}")
        return f"{prefix}{next_number:04d}"

    def save(self, *args, **kwargs):
        if self.invoice_number:
            return super().save(*args, **kwargs)

        for attempt in range(1, INVOICE_NUMBER_ATTEMPTS + 1):
            self.invoice_number = self.generate_invoice_number()
            try:
                with transaction.atomic():
                    return super().save(*args, **kwargs)
            except IntegrityError as e:
                if 'invoice_number' not in str(e) or attempt == INVOICE_NUMBER_ATTEMPTS:
                    self.invoice_number = ''
                    raise
                logger.warning(
                    f"Invoice number {self.invoice_number} taken, retrying ({attempt}/{INVOICE_NUMBER_ATTEMPTS})"
                )

    @property
    def amount_paid(self):
        total = self.payments.filter(status=Payment.Status.COMPLETED).aggregate(
            total=Sum('amount')
        )['total']
        return total or Decimal('0')

    @property
    def balance(self):
        return self.amount - self.amount_paid

    @property
    def is_overdue(self):
        if self.status in (self.Status.PAID, self.Status.CANCELLED, self.Status.DRAFT):
            return False
        return self.due_date < timezone.localdate()

    @property
    def days_overdue(self):
        if not self.is_overdue:
            return 0
        return (timezone.localdate() - self.due_date).days

    def can_be_paid(self):
        return self.status not in (self.Status.PAID, self.Status.CANCELLED, self.Status.DRAFT)

    def update_payment_status(self):
        """Mark paid when completed payments cover the amount, else partially paid"""
        paid = self.amount_paid
        if paid >= self.amount:
            self.status = self.Status.PAID
            self.paid_date = timezone.localdate()
        elif paid > 0:
            self.status = self.Status.PARTIALLY_PAID
            self.paid_date = None
        self.save(update_fields=['status', 'paid_date', 'updated_at'])

    def mark_as_sent(self):
        self.status = self.Status.SENT
        self.save(update_fields=['status', 'updated_at'])

    def cancel(self):
        self.status = self.Status.CANCELLED
        self.save(update_fields=['status', 'updated_at'])

    def recalculate_amount(self):
        self.amount = sum((item.total_amount for item in self.items.all()), Decimal('0'))
        self.save(update_fields=['amount', 'updated_at'])
        return self.amount


class InvoiceItem(TimeStampedModel):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.name} x{self.quantity}"

    @property
    def total_amount(self):
        return self.amount * self.quantity


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class PaymentQuerySet(SoftDeleteQuerySet):
    def with_status(self, status):
        return self.filter(status=status)

    def for_academic_year(self, academic_year):
        return self.filter(academic_year=academic_year)

    def for_curriculum(self, curriculum):
        return self.filter(curriculum=curriculum)

    def for_student(self, child):
        return self.filter(child_profile=child)

    def in_date_range(self, start_date, end_date):
        """Payments dated between the start of start_date and the end of end_date"""
        tz = timezone.get_current_timezone()
        start = timezone.make_aware(datetime.combine(start_date, time.min), tz)
        end = timezone.make_aware(datetime.combine(end_date, time.max), tz)
        return self.filter(payment_date__range=(start, end))

    def overdue(self):
        return self.filter(
            Q(status=Payment.Status.OVERDUE) |
            (~Q(status=Payment.Status.COMPLETED) & Q(due_date__lt=timezone.localdate()))
        )


class PaymentManager(SoftDeleteManager.from_queryset(PaymentQuerySet)):
    pass


class Payment(SoftDeleteModel):
    class Status(models.TextChoices):
        PENDING = 'pending', _('Pending')
        COMPLETED = 'completed', _('Completed')
        FAILED = 'failed', _('Failed')
        REFUNDED = 'refunded', _('Refunded')
        OVERDUE = 'overdue', _('Overdue')

    amount = models.DecimalField(max_digits=10, decimal_places=2)
    payment_date = models.DateTimeField(null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    description = models.TextField(blank=True)
    reference_number = models.CharField(max_length=50, unique=True, blank=True)
    child_profile = models.ForeignKey(
        'students.ChildProfile',
        on_delete=models.CASCADE,
        related_name='payments',
        verbose_name=_("Student")
    )
    academic_year = models.ForeignKey(
        'corecode.AcademicYear',
        on_delete=models.PROTECT,
        related_name='payments'
    )
    curriculum = models.ForeignKey(
        'corecode.Curriculum',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments'
    )
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    payment_method = models.CharField(max_length=30, choices=PAYMENT_METHODS, blank=True)
    transaction_id = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)

    objects = PaymentManager()
    all_objects = PaymentManager(alive_only=False)

    class Meta:
        ordering = ['-payment_date', '-created_at']

    def __str__(self):
        return f"{self.reference_number} - {self.amount}"

    @staticmethod
    def generate_reference_number(today=None):
        today = today or timezone.localdate()
        return f"PAY-{today:%Y%m%d}-{get_random_string(6, CODE_ALPHABET)}"

    def save(self, *args, **kwargs):
        if not self.reference_number:
            self.reference_number = self.generate_reference_number()
        super().save(*args, **kwargs)

    @property
    def is_overdue(self):
        if self.status == self.Status.COMPLETED:
            return False
        return self.due_date is not None and self.due_date < timezone.localdate()

    @property
    def days_overdue(self):
        if not self.is_overdue:
            return 0
        return (timezone.localdate() - self.due_date).days

    def mark_as_completed(self):
        self.status = self.Status.COMPLETED
        self.payment_date = timezone.now()
        self.save(update_fields=['status', 'payment_date', 'updated_at'])

        if self.invoice_id:
            self.invoice.update_payment_status()
