import datetime
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.urls import reverse
from django.utils import timezone

from apps.finance.models import Invoice, Payment, PaymentPlan, add_months
from apps.finance.utils import (
    create_invoice,
    generate_financial_report,
    generate_plan_invoices,
    record_payment,
)

pytestmark = pytest.mark.django_db


def make_invoice(child, academic_year, curriculum, amount='300.00', due_in=14, **kwargs):
    kwargs.setdefault('status', Invoice.Status.PENDING)
    return create_invoice(
        child,
        academic_year,
        curriculum,
        items=[{'name': 'Tuition', 'amount': Decimal(amount)}],
        due_date=timezone.localdate() + datetime.timedelta(days=due_in),
        **kwargs,
    )


def test_invoice_numbers_are_sequential_per_month(child, academic_year, curriculum):
    first = make_invoice(child, academic_year, curriculum)
    second = make_invoice(child, academic_year, curriculum)

    prefix = f"INV-{timezone.localdate():%Y%m}-"
    assert first.invoice_number == f"{prefix}0001"
    assert second.invoice_number == f"{prefix}0002"


def test_invoice_numbers_skip_soft_deleted_invoices(child, academic_year, curriculum):
    first = make_invoice(child, academic_year, curriculum)
    first.delete()

    second = make_invoice(child, academic_year, curriculum)

    assert second.invoice_number.endswith('-0002')


def test_invoice_number_sequence_restarts_each_month():
    assert Invoice.generate_invoice_number(datetime.date(2030, 1, 5)) == 'INV-203001-0001'


def test_invoice_amount_is_sum_of_items(child, academic_year, curriculum):
    invoice = create_invoice(
        child,
        academic_year,
        curriculum,
        items=[
            {'name': 'Tuition', 'amount': Decimal('200.00')},
            {'name': 'Books', 'amount': Decimal('15.50'), 'quantity': 2},
        ],
        due_date=timezone.localdate(),
    )

    assert invoice.amount == Decimal('231.00')
    assert invoice.items.count() == 2


def test_invoice_needs_items(child, academic_year, curriculum):
    with pytest.raises(ValidationError):
        create_invoice(child, academic_year, curriculum, items=[], due_date=timezone.localdate())


def test_invoice_due_date_cannot_precede_invoice_date(child, academic_year, curriculum):
    with pytest.raises(ValidationError):
        make_invoice(child, academic_year, curriculum, due_in=-1)


def test_invoice_overdue_is_computed_from_due_date(child, academic_year, curriculum):
    invoice = make_invoice(child, academic_year, curriculum)
    Invoice.objects.filter(pk=invoice.pk).update(
        due_date=timezone.localdate() - datetime.timedelta(days=3)
    )
    invoice.refresh_from_db()

    assert invoice.is_overdue
    assert invoice.days_overdue == 3
    assert list(Invoice.objects.overdue()) == [invoice]

    invoice.cancel()
    assert not invoice.is_overdue
    assert not Invoice.objects.overdue().exists()


def test_partial_then_full_payment(child, academic_year, curriculum, admin_user):
    invoice = make_invoice(child, academic_year, curriculum, amount='300.00')

    record_payment(invoice, Decimal('100.00'), 'cash', user=admin_user)
    invoice.refresh_from_db()
    assert invoice.status == Invoice.Status.PARTIALLY_PAID
    assert invoice.balance == Decimal('200.00')

    record_payment(invoice, Decimal('200.00'), 'bank_transfer', user=admin_user)
    invoice.refresh_from_db()
    assert invoice.status == Invoice.Status.PAID
    assert invoice.paid_date == timezone.localdate()
    assert invoice.balance == Decimal('0')


def test_payment_cannot_exceed_balance(child, academic_year, curriculum):
    invoice = make_invoice(child, academic_year, curriculum, amount='300.00')

    with pytest.raises(ValidationError):
        record_payment(invoice, Decimal('300.01'), 'cash')
    assert not Payment.objects.exists()


def test_draft_invoice_cannot_be_paid(child, academic_year, curriculum):
    invoice = make_invoice(child, academic_year, curriculum, status=Invoice.Status.DRAFT)

    with pytest.raises(ValidationError):
        record_payment(invoice, Decimal('10.00'), 'cash')


def test_payment_overdue(child, academic_year, curriculum):
    yesterday = timezone.localdate() - datetime.timedelta(days=1)
    pending = Payment.objects.create(
        child_profile=child, academic_year=academic_year, amount=Decimal('50'), due_date=yesterday
    )
    flagged = Payment.objects.create(
        child_profile=child, academic_year=academic_year, amount=Decimal('50'),
        status=Payment.Status.OVERDUE,
    )
    completed = Payment.objects.create(
        child_profile=child, academic_year=academic_year, amount=Decimal('50'),
        due_date=yesterday, status=Payment.Status.COMPLETED,
    )

    assert pending.is_overdue
    assert not completed.is_overdue
    assert set(Payment.objects.overdue()) == {pending, flagged}


def test_payment_reference_numbers_are_unique(child, academic_year):
    first = Payment.objects.create(child_profile=child, academic_year=academic_year, amount=1)
    second = Payment.objects.create(child_profile=child, academic_year=academic_year, amount=1)

    assert first.reference_number.startswith(f"PAY-{timezone.localdate():%Y%m%d}-")
    assert first.reference_number != second.reference_number


def test_receipt_is_emailed_to_parent(
    child, academic_year, curriculum, mailoutbox, django_capture_on_commit_callbacks
):
    invoice = make_invoice(child, academic_year, curriculum)

    with django_capture_on_commit_callbacks(execute=True):
        payment = record_payment(invoice, Decimal('300.00'), 'cash')

    assert len(mailoutbox) == 1
    message = mailoutbox[0]
    assert message.to == ['parent@school.test']
    assert payment.reference_number in message.subject
    assert invoice.invoice_number in message.body


def test_receipt_is_skipped_without_email(child, academic_year, curriculum, parent_user):
    from tasks.finance_tasks import send_payment_receipt_task

    parent_user.email = ''
    parent_user.save()
    payment = Payment.objects.create(
        child_profile=child, academic_year=academic_year, amount=Decimal('10'),
        status=Payment.Status.COMPLETED,
    )

    result = send_payment_receipt_task.delay(payment.pk).get()

    assert result['reason'] == 'no_email'


def test_pending_payment_sends_no_receipt(
    child, academic_year, mailoutbox, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        Payment.objects.create(child_profile=child, academic_year=academic_year, amount=Decimal('10'))

    assert callbacks == []
    assert mailoutbox == []


def test_add_months_clamps_day():
    assert add_months(datetime.date(2031, 1, 31), 1) == datetime.date(2031, 2, 28)
    assert add_months(datetime.date(2031, 11, 15), 3) == datetime.date(2032, 2, 15)


def test_quarterly_plan_schedule(payment_plan):
    start = datetime.date(2031, 1, 10)

    schedule = payment_plan.calculate_payment_schedule(start)

    assert payment_plan.installments == 4
    assert [row['due_date'] for row in schedule] == [
        datetime.date(2031, 1, 10),
        datetime.date(2031, 4, 10),
        datetime.date(2031, 7, 10),
        datetime.date(2031, 10, 10),
    ]
    assert all(row['amount'] == Decimal('250.00') for row in schedule)
    assert schedule[-1]['description'] == 'Payment 4 of 4'


def test_setup_fee_and_discount_apply_to_schedule(curriculum):
    plan = PaymentPlan.objects.create(
        name='Annual',
        type=PaymentPlan.Type.ONE_TIME,
        amount=Decimal('1000.00'),
        setup_fee=Decimal('50.00'),
        discount_percentage=Decimal('10'),
    )

    schedule = plan.calculate_payment_schedule(datetime.date(2031, 1, 1))

    assert len(schedule) == 1
    assert schedule[0]['amount'] == Decimal('950.00')


def test_plan_code_is_generated(payment_plan):
    assert payment_plan.code.startswith('TERMQU')


def test_general_plan_can_be_used_for_any_curriculum(curriculum):
    plan = PaymentPlan.objects.create(name='General', amount=Decimal('10'))

    assert plan.can_be_used_for_curriculum(curriculum)
    assert plan.frequency == PaymentPlan.Type.MONTHLY


def test_generate_plan_invoices_is_idempotent(enrollment, payment_plan):
    enrollment.payment_plan = payment_plan
    enrollment.save()

    created = generate_plan_invoices(enrollment)
    again = generate_plan_invoices(enrollment)

    assert len(created) == 4
    assert again == []
    assert enrollment.invoices.count() == 4


def test_financial_report(child, academic_year, curriculum):
    paid = make_invoice(child, academic_year, curriculum, amount='300.00')
    make_invoice(child, academic_year, curriculum, amount='100.00')
    record_payment(paid, Decimal('300.00'), 'cash')
    today = timezone.localdate()

    report = generate_financial_report(today, today)

    assert report['invoices']['total'] == 2
    assert report['invoices']['total_amount'] == Decimal('400.00')
    assert report['payments']['completed'] == 1
    assert report['payments']['total_amount'] == Decimal('300.00')
    assert report['outstanding_amount'] == Decimal('100.00')
    assert report['invoices']['by_status'][Invoice.Status.PAID]['count'] == 1


def test_add_payment_view(client, admin_user, child, academic_year, curriculum):
    invoice = make_invoice(child, academic_year, curriculum, amount='300.00')
    client.force_login(admin_user)

    response = client.post(
        reverse('finance:add_payment', args=[invoice.pk]),
        {'amount': '120.00', 'payment_method': 'cash'},
    )

    assert response.status_code == 302
    invoice.refresh_from_db()
    assert invoice.amount_paid == Decimal('120.00')


def test_send_invoice_view(client, admin_user, child, academic_year, curriculum):
    invoice = make_invoice(child, academic_year, curriculum, status=Invoice.Status.DRAFT)
    client.force_login(admin_user)

    client.post(reverse('finance:invoice_status', args=[invoice.pk, 'send']))

    invoice.refresh_from_db()
    assert invoice.status == Invoice.Status.SENT


def test_export_financial_report(client, admin_user, child, academic_year, curriculum):
    invoice = make_invoice(child, academic_year, curriculum)
    client.force_login(admin_user)
    today = timezone.localdate().isoformat()

    response = client.get(
        reverse('finance:export_financial_report'), {'start_date': today, 'end_date': today}
    )

    assert response['Content-Type'] == 'text/csv'
    assert invoice.invoice_number in response.content.decode()


def test_student_balance_endpoint(client, admin_user, child, academic_year, curriculum):
    make_invoice(child, academic_year, curriculum, amount='300.00')
    client.force_login(admin_user)

    response = client.get(reverse('finance:student_balance_ajax', args=[child.pk]))

    data = response.json()
    assert data['unpaid_invoices'] == 1
    assert data['outstanding'] == '300.00'


def test_plan_invoices_are_not_billed_twice_when_due_day_is_past(enrollment, curriculum):
    plan = PaymentPlan.objects.create(
        name='Quarterly Fees',
        type=PaymentPlan.Type.QUARTERLY,
        amount=Decimal('250.00'),
        curriculum=curriculum,
        due_day=1,
    )
    enrollment.payment_plan = plan
    enrollment.save()

    created = generate_plan_invoices(enrollment)
    again = generate_plan_invoices(enrollment)
    later = generate_plan_invoices(
        enrollment, start_date=timezone.localdate() + datetime.timedelta(days=10)
    )

    assert len(created) == 4
    assert again == []
    assert later == []
    assert sorted(enrollment.invoices.values_list('installment_number', flat=True)) == [1, 2, 3, 4]
    assert all(invoice.due_date >= invoice.invoice_date for invoice in created)


def test_plan_schedule_starts_on_enrollment_date(enrollment, payment_plan):
    from apps.enrollments.models import ProgramEnrollment

    enrolled_on = timezone.now() - datetime.timedelta(days=1)
    ProgramEnrollment.objects.filter(pk=enrollment.pk).update(
        payment_plan=payment_plan, created_at=enrolled_on
    )
    enrollment.refresh_from_db()

    created = generate_plan_invoices(enrollment)

    second = created[1]
    assert second.due_date == add_months(timezone.localdate(enrolled_on), 3)


def test_deleted_plan_invoice_is_not_regenerated(enrollment, payment_plan):
    enrollment.payment_plan = payment_plan
    enrollment.save()
    first, *_rest = generate_plan_invoices(enrollment)

    first.delete()

    assert generate_plan_invoices(enrollment) == []


def test_payment_rereads_invoice_before_charging(child, academic_year, curriculum):
    invoice = make_invoice(child, academic_year, curriculum, amount='300.00')
    stale = Invoice.objects.get(pk=invoice.pk)
    invoice.cancel()

    with pytest.raises(ValidationError):
        record_payment(stale, Decimal('100.00'), 'cash')
    assert not Payment.objects.exists()


def test_invoice_numbers_continue_past_9999(child, academic_year, curriculum):
    prefix = f"INV-{timezone.localdate():%Y%m}-"
    for number in ('9999', '10000'):
        Invoice.objects.create(
            invoice_number=f"{prefix}{number}",
            child_profile=child,
            academic_year=academic_year,
            curriculum=curriculum,
            due_date=timezone.localdate(),
        )

    assert Invoice.generate_invoice_number() == f"{prefix}10001"
