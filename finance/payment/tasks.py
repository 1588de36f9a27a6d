"""
Background reconciliation for M-Pesa STK pushes whose callback never arrived.
"""
from celery import shared_task
from django.conf import settings
import logging

from .services import get_payment_service

logger = logging.getLogger(__name__)


@shared_task
def sweep_pending_mpesa_payments(older_than_minutes=None, limit=50):
    """Poll Daraja for PENDING STK payments and settle or fail them."""
    if older_than_minutes is None:
        older_than_minutes = getattr(settings, 'MPESA_STALE_AFTER_MINUTES', 2)
    counts = get_payment_service().sweep_pending_mpesa_payments(
        older_than_minutes=older_than_minutes, limit=limit
    )
    if counts['checked']:
        logger.info(f"M-Pesa sweep: {counts}")
    return counts
