# orders/tasks.py
import logging

from celery import shared_task

from desamart.exceptions import MarketplaceError
from .services import OrderLifecycleService, orders_due_for_completion

logger = logging.getLogger(__name__)


@shared_task
def auto_complete_orders():
    # Complete orders where refund window has passed
    completed = 0
    for order in orders_due_for_completion().select_related('merchant', 'buyer', 'courier'):
        try:
            OrderLifecycleService.complete_by_system(order)
            completed += 1
        except MarketplaceError as exc:
            logger.warning("Failed to auto-complete order %s: %s", order.order_number, exc.detail)
    return completed
