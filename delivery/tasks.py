# delivery/tasks.py
"""
Celery tasks for Shipday dispatch.
"""
import logging

from celery import shared_task

from common.errors import ExternalServiceError
from orders.models import Order
from .shipday import dispatch_order

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def dispatch_order_task(self, order_id: int):
    """
    Send a paid delivery order to Shipday, retrying transport failures.
    """
    order = Order.objects.filter(pk=order_id).first()
    if order is None:
        logger.warning("Shipday dispatch skipped: order %s no longer exists", order_id)
        return None

    result = dispatch_order(order)
    if not result.success and not result.skipped:
        raise self.retry(exc=ExternalServiceError(result.message), countdown=60)
    return result.as_dict()
