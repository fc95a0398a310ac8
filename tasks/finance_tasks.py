"""
Finance background tasks: plan invoice generation and payment receipts
"""

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.db import OperationalError

logger = logging.getLogger("finance.tasks")


@shared_task(
    bind=True,
    name="finance.generate_plan_invoices",
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def generate_plan_invoices_task(self, enrollment_id: int):
    """
    Create the instalment invoices of an enrollment's payment plan.

    Idempotent: instalments that already have an invoice are skipped.
    """
    from apps.enrollments.models import ProgramEnrollment
    from apps.finance.utils import generate_plan_invoices

    task_id = self.request.id

    try:
        enrollment = ProgramEnrollment.objects.select_related(
            "payment_plan", "child_profile", "curriculum", "academic_year"
        ).get(pk=enrollment_id)
    except ProgramEnrollment.DoesNotExist:
        logger.warning("[%s] Enrollment %s no longer exists", task_id, enrollment_id)
        return {"success": False, "reason": "not_found", "enrollment_id": enrollment_id}

    invoices = generate_plan_invoices(enrollment)

    logger.info(
        "[%s] Generated %s plan invoice(s)",
        task_id,
        len(invoices),
        extra={"enrollment_id": enrollment_id},
    )

    return {
        "success": True,
        "enrollment_id": enrollment_id,
        "invoices": [invoice.invoice_number for invoice in invoices],
    }


@shared_task(
    bind=True,
    name="finance.send_payment_receipt",
    autoretry_for=(Exception,),
    retry_backoff=60,
    retry_kwargs={"max_retries": 3},
)
def send_payment_receipt_task(self, payment_id: int):
    """
    Email a receipt for a completed payment to the student's parent.
    """
    from apps.finance.models import Payment

    task_id = self.request.id

    payment = Payment.objects.select_related(
        "invoice", "child_profile__parent_profile__user", "child_profile__parent"
    ).filter(pk=payment_id).first()

    if payment is None:
        logger.warning("[%s] Payment %s no longer exists", task_id, payment_id)
        return {"success": False, "reason": "not_found", "payment_id": payment_id}

    child = payment.child_profile
    candidates = [
        child.parent_profile.user.email if child.parent_profile_id else "",
        child.parent.email if child.parent_id else "",
        child.email,
    ]
    email = next((address for address in candidates if address), "")

    if not email:
        logger.info("[%s] No parent email for payment %s", task_id, payment.reference_number)
        return {"success": False, "reason": "no_email", "payment_id": payment_id}

    school_name = getattr(settings, "SCHOOL_NAME", "School Back Office")
    invoice_line = f"Invoice: {payment.invoice.invoice_number}\n" if payment.invoice_id else ""
    balance_line = f"Remaining balance: {payment.invoice.balance}\n" if payment.invoice_id else ""

    message = (
        f"Dear Parent/Guardian,\n\n"
        f"We have received a payment for {child.full_name}.\n\n"
        f"Reference: {payment.reference_number}\n"
        f"{invoice_line}"
        f"Amount: {payment.amount}\n"
        f"Date: {payment.payment_date:%Y-%m-%d}\n"
        f"{balance_line}\n"
        f"Thank you,\n{school_name}"
    )

    send_mail(
        subject=f"[{school_name}] Payment receipt {payment.reference_number}",
        message=message,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
        recipient_list=[email],
        fail_silently=False,
    )

    logger.info("[%s] Receipt sent for %s", task_id, payment.reference_number)

    return {"success": True, "payment_id": payment_id, "sent_to": email}
