import logging

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from notifications.models import Notification
from .utils import send_websocket_notification

logger = logging.getLogger(__name__)


def _push(notification):
    try:
        send_websocket_notification(notification.user_id, notification)
    except Exception:
        # Realtime fan-out is best effort; the stored record is the source of truth.
        logger.exception("Websocket push failed for notification %s", notification.pk)


@receiver(post_save, sender=Notification)
def push_new_notification(sender, instance, created, **kwargs):
    if created:
        transaction.on_commit(lambda: _push(instance))
