# merchants/tasks.py
import logging

from celery import shared_task

from .services import QuotaService

logger = logging.getLogger(__name__)


@shared_task
def expire_subscriptions():
    count = QuotaService().expire_subscriptions()
    if count:
        logger.info("Expired %s merchant subscription(s)", count)
    return count
