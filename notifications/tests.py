from unittest import mock

from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.test import TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from accounts.models import Role, User
from desamart.factories import make_admin, make_order, make_user

from .consumers import NotificationConsumer
from .middleware import JWTQueryAuthMiddleware
from .models import Notification
from .utils import notify_role, send_notification, send_order_notification


class NotificationHelperTests(TestCase):

    def test_order_notification_text_and_link(self):
        order = make_order()
        note = send_order_notification(order.merchant.user, order, 'new_order')
        self.assertEqual(note.title, 'Pesanan Baru')
        self.assertIn(order.order_number, note.message)
        self.assertEqual(note.link, '/merchant/orders')
        self.assertEqual(note.content_object, order)

        note = send_order_notification(order.buyer, order, 'order_status')
        self.assertEqual(note.link, f'/orders/{order.pk}')
        self.assertIn('Baru', note.message)

    def test_notify_role_reaches_active_users_only(self):
        make_admin()
        make_admin()
        make_admin(is_active=False)
        make_user()
        sent = notify_role(Role.ADMIN, 'Halo', 'Pesan admin')
        self.assertEqual(sent, 2)
        self.assertEqual(Notification.objects.filter(title='Halo').count(), 2)

    def test_push_runs_after_commit(self):
        user = make_user()
        with mock.patch('notifications.signals.send_websocket_notification') as push:
            with self.captureOnCommitCallbacks(execute=True):
                note = send_notification(user, 'Judul', 'Isi')
                push.assert_not_called()
        push.assert_called_once_with(user.pk, note)

    def test_push_failure_is_logged(self):
        user = make_user()
        with mock.patch('notifications.signals.send_websocket_notification', side_effect=RuntimeError('down')):
            with self.assertLogs('notifications.signals', level='ERROR'):
                with self.captureOnCommitCallbacks(execute=True):
                    send_notification(user, 'Judul', 'Isi')
        self.assertTrue(Notification.objects.filter(user=user).exists())


class NotificationApiTests(TestCase):

    def setUp(self):
        self.user = make_user()
        self.client = APIClient()
        self.client.force_authenticate(self.user)
        self.first = send_notification(self.user, 'Satu', 'Pesan satu', notification_type='quota')
        self.second = send_notification(self.user, 'Dua', 'Pesan dua')
        send_notification(make_user(), 'Orang lain', 'Bukan milikmu')

    def test_list_newest_first(self):
        res = self.client.get(reverse('notification-list'))
        self.assertEqual(res.status_code, 200)
        self.assertEqual([row['title'] for row in res.data['results']], ['Dua', 'Satu'])

        res = self.client.get(reverse('notification-list'), {'type': 'quota'})
        self.assertEqual(res.data['count'], 1)

    def test_mark_read_and_count(self):
        self.assertEqual(self.client.get(reverse('unread-count')).data['unread_count'], 2)

        res = self.client.post(reverse('mark-read', args=[self.first.pk]))
        self.assertEqual(res.status_code, 200)
        self.first.refresh_from_db()
        self.assertTrue(self.first.is_read)
        self.assertEqual(self.client.get(reverse('unread-count')).data['unread_count'], 1)

        res = self.client.post(reverse('mark-all-read'))
        self.assertEqual(res.data['read_count'], 1)

    def test_cannot_touch_others(self):
        other = Notification.objects.exclude(user=self.user).get()
        res = self.client.post(reverse('mark-read', args=[other.pk]))
        self.assertEqual(res.status_code, 404)


IN_MEMORY_LAYERS = {'default': {'BACKEND': 'channels.layers.InMemoryChannelLayer'}}


class NotificationConsumerTests(TransactionTestCase):
    """Each test gets a fresh channel layer bound to its own event loop."""

    @override_settings(CHANNEL_LAYERS=IN_MEMORY_LAYERS)
    async def test_anonymous_rejected(self):
        app = JWTQueryAuthMiddleware(NotificationConsumer.as_asgi())
        communicator = WebsocketCommunicator(app, '/ws/notifications/?token=not-a-jwt')
        connected, code = await communicator.connect()
        self.assertFalse(connected)
        self.assertEqual(code, 4401)

    @override_settings(CHANNEL_LAYERS=IN_MEMORY_LAYERS)
    async def test_receives_group_messages(self):
        communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
        communicator.scope['user'] = User(id=4242, email='ws@desa.test')
        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        await get_channel_layer().group_send('notifications_4242', {
            'type': 'send_notification',
            'notification': {'id': 1, 'title': 'Pesanan Baru'},
        })
        message = await communicator.receive_json_from()
        self.assertEqual(message['type'], 'notification')
        self.assertEqual(message['notification']['title'], 'Pesanan Baru')
        await communicator.disconnect()
