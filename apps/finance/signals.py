import logging

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Payment

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Payment)
def queue_payment_receipt(sender, instance, created, update_fields=None, **kwargs):
    """Email a receipt once a payment has been completed"""
    if instance.status != Payment.Status.COMPLETED:
        return
    if not created and (update_fields is None or 'status' not in update_fields):
        return

    from tasks.finance_tasks import send_payment_receipt_task

    payment_id = instance.pk
    logger.info(f"Queueing receipt for payment {instance.reference_number}")
    transaction.on_commit(lambda: send_payment_receipt_task.delay(payment_id))
