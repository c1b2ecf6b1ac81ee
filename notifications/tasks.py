# notifications/tasks.py
"""
Celery tasks for outbound texts.
"""
from celery import shared_task

from orders.models import Order
from .services import send_order_confirmation


@shared_task
def send_order_confirmation_task(order_id: int):
    try:
        order = Order.objects.get(pk=order_id)
    except Order.DoesNotExist:
        return None
    return send_order_confirmation(order).status
