import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.utils import timezone

from desamart.exceptions import NotFound

from notifications.models import Notification

logger = logging.getLogger(__name__)

ORDER_MESSAGES = {
    'order_created': ('Pesanan Dibuat', "Pesanan #{number} berhasil dibuat."),
    'new_order': ('Pesanan Baru', "Ada pesanan baru #{number}. Segera konfirmasi pesanan."),
    'order_status': ('Status Pesanan Diperbarui', "Pesanan #{number} sekarang berstatus {status}."),
    'order_assigned': ('Kurir Ditugaskan', "Kurir telah ditugaskan untuk pesanan #{number}."),
    'courier_assignment': ('Pesanan Baru Ditugaskan', "Anda mendapat pesanan baru. Segera ambil pesanan."),
    'order_delivered': ('Pesanan Terkirim', "Pesanan #{number} telah sampai di tujuan."),
    'order_completed': ('Pesanan Selesai', "Pesanan #{number} telah selesai."),
    'order_cancelled': ('Pesanan Dibatalkan', "Pesanan #{number} dibatalkan."),
    'order_rejected': ('Pesanan Ditolak', "Pesanan #{number} ditolak oleh penjual."),
    'payment_proof': ('Bukti Pembayaran Diunggah', "Pembeli mengunggah bukti pembayaran untuk pesanan #{number}."),
    'payment_confirmed': ('Pembayaran Dikonfirmasi', "Pembayaran pesanan #{number} telah dikonfirmasi."),
    'refund_requested': ('Pengajuan Refund', "Ada pengajuan refund untuk pesanan #{number}."),
    'refund_approved': ('Refund Disetujui', "Refund untuk pesanan #{number} disetujui."),
    'refund_rejected': ('Refund Ditolak', "Refund untuk pesanan #{number} ditolak."),
}

ORDER_LINKS = {
    'courier_assignment': '/courier',
    'new_order': '/merchant/orders',
    'payment_proof': '/merchant/orders',
    'refund_requested': '/admin/refunds',
}


def send_notification(user, title, message, notification_type='system', link='',
                      content_object=None, extra_data=None):
    return Notification.objects.create(
        user=user,
        notification_type=notification_type,
        title=title,
        message=message,
        link=link or '',
        content_object=content_object,
        extra_data=extra_data,
    )


def send_order_notification(user, order, notification_type, extra_data=None):
    title, template = ORDER_MESSAGES[notification_type]
    return send_notification(
        user,
        title=title,
        message=template.format(number=order.order_number, status=order.get_status_display()),
        notification_type=notification_type,
        link=ORDER_LINKS.get(notification_type, f"/orders/{order.pk}"),
        content_object=order,
        extra_data=extra_data,
    )


def notify_role(role, title, message, notification_type='system', link=''):
    """Notify every active user holding ``role``. Returns the number sent."""
    users = get_user_model().objects.filter(role=role, is_active=True)
    notifications = [
        send_notification(user, title, message, notification_type=notification_type, link=link)
        for user in users
    ]
    return len(notifications)


def send_websocket_notification(user_id, notification):
    """Send notification via WebSocket to specific user"""
    from .serializers import NotificationSerializer

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    async_to_sync(channel_layer.group_send)(
        f'notifications_{user_id}',
        {
            'type': 'send_notification',
            'notification': NotificationSerializer(notification).data,
        }
    )


def inbox_for(user):
    return Notification.objects.filter(user=user).order_by('-created_at', '-id')


def mark_read(user, notification_id):
    notification = inbox_for(user).filter(pk=notification_id).first()
    if notification is None:
        raise NotFound('Notifikasi tidak ditemukan')
    notification.mark_as_read()
    return notification


def mark_all_read(user):
    return inbox_for(user).filter(is_read=False).update(is_read=True, read_at=timezone.now())
