import logging

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import ProgramEnrollment

logger = logging.getLogger(__name__)


@receiver(post_save, sender=ProgramEnrollment)
def queue_plan_invoices(sender, instance, created, **kwargs):
    """Generate plan invoices in the background once the enrollment is committed"""
    if not created or instance.payment_plan_id is None:
        return
    if not instance.payment_plan.auto_generate_invoices:
        return

    from tasks.finance_tasks import generate_plan_invoices_task

    enrollment_id = instance.pk
    logger.info(f"Queueing plan invoices for enrollment {enrollment_id}")
    transaction.on_commit(lambda: generate_plan_invoices_task.delay(enrollment_id))
