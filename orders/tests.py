from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from desamart.exceptions import CapabilityDenied, NotEligible, PreconditionFailed
from desamart.factories import (
    make_admin, make_courier, make_merchant, make_order, make_product, make_subscription, make_user,
)
from merchants.models import MerchantStatus, MerchantSubscription, PlatformSetting, RegistrationStatus
from merchants.services import QuotaService
from notifications.models import Notification

from . import lifecycle
from .models import (
    DeliveryType, Order, OrderActor, OrderStatus, OrderStatusHistory, PaymentMethod, PaymentStatus,
    RefundRequest, RefundStatus,
)
from .services import CheckoutService, OrderLifecycleService, RefundService, orders_due_for_completion
from .tasks import auto_complete_orders
from .utils import calculate_shipping_cost


class LifecycleGraphTests(TestCase):

    def test_pickup_never_assigned(self):
        self.assertIn(OrderStatus.ASSIGNED, lifecycle.allowed_next(OrderStatus.PROCESSED, DeliveryType.INTERNAL))
        self.assertNotIn(OrderStatus.ASSIGNED, lifecycle.allowed_next(OrderStatus.PROCESSED, DeliveryType.PICKUP))

    def test_internal_delivery_cannot_skip_courier(self):
        self.assertFalse(lifecycle.can_transition(OrderStatus.PROCESSED, OrderStatus.DONE, DeliveryType.INTERNAL))
        self.assertTrue(lifecycle.can_transition(OrderStatus.PROCESSED, OrderStatus.DONE, DeliveryType.PICKUP))

    def test_terminal_states_have_no_exit(self):
        for status in lifecycle.TERMINAL_STATUSES:
            self.assertEqual(lifecycle.allowed_next(status), set())

    def test_courier_may_not_complete(self):
        self.assertFalse(lifecycle.actor_may_request(OrderActor.COURIER, OrderStatus.DONE))
        self.assertTrue(lifecycle.actor_may_request(OrderActor.BUYER, OrderStatus.DONE))


class ShippingCostTests(TestCase):

    def test_fees(self):
        self.assertEqual(calculate_shipping_cost(DeliveryType.PICKUP, 3), Decimal('0'))
        self.assertEqual(calculate_shipping_cost(DeliveryType.INTERNAL), Decimal('5000'))
        self.assertEqual(calculate_shipping_cost(DeliveryType.INTERNAL, 2.4), Decimal('9800'))
        self.assertEqual(calculate_shipping_cost(DeliveryType.INTERNAL, 500), Decimal('50000'))


class CancelTests(TestCase):

    def setUp(self):
        self.buyer = make_user()
        self.product = make_product(make_merchant(), stock=5)

    def test_buyer_cancels_new_order(self):
        order = make_order(buyer=self.buyer, merchant=self.product.merchant, items=[(self.product, 2)])
        order = OrderLifecycleService.cancel(order.pk, self.buyer, reason='Berubah pikiran')

        self.assertEqual(order.status, OrderStatus.CANCELED)
        self.assertEqual(order.cancellation_type, OrderActor.BUYER)
        self.assertEqual(order.cancellation_reason, 'Berubah pikiran')
        self.assertEqual(order.cancelled_by, self.buyer)
        self.assertIsNotNone(order.cancelled_at)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 7)

    def test_pending_confirmation_is_cancellable(self):
        order = make_order(buyer=self.buyer, status=OrderStatus.PENDING_CONFIRMATION)
        self.assertEqual(OrderLifecycleService.cancel(order.pk, self.buyer).status, OrderStatus.CANCELED)

    def test_cannot_cancel_after_confirmation(self):
        for status in (OrderStatus.PENDING_PAYMENT, OrderStatus.PROCESSING, OrderStatus.SENT, OrderStatus.DONE):
            order = make_order(buyer=self.buyer, status=status)
            with self.assertRaises(PreconditionFailed):
                OrderLifecycleService.cancel(order.pk, self.buyer, reason='Berubah pikiran')
            order.refresh_from_db()
            self.assertEqual(order.status, status)

    def test_only_buyer_cancels(self):
        order = make_order(buyer=self.buyer)
        with self.assertRaises(PreconditionFailed):
            OrderLifecycleService.cancel(order.pk, order.merchant.user)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.NEW)

    def test_race_with_merchant_confirmation(self):
        order = make_order(buyer=self.buyer, status=OrderStatus.PENDING_CONFIRMATION)
        OrderLifecycleService.update_status(order.pk, order.merchant.user, OrderStatus.PROCESSING)
        with self.assertRaises(PreconditionFailed):
            OrderLifecycleService.cancel(order.pk, self.buyer)


class UpdateStatusTests(TestCase):

    def setUp(self):
        self.order = make_order(status=OrderStatus.PENDING_CONFIRMATION)
        self.merchant_user = self.order.merchant.user

    def test_merchant_confirms_and_stamps_once(self):
        order = OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.PROCESSING)
        confirmed_at = order.confirmed_at
        self.assertIsNotNone(confirmed_at)

        order = OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.PROCESSED)
        order.refresh_from_db()
        self.assertEqual(order.confirmed_at, confirmed_at)
        self.assertEqual(order.status, OrderStatus.PROCESSED)

    def test_same_status_is_noop(self):
        OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.PROCESSING)
        stamped = Order.objects.get(pk=self.order.pk).confirmed_at
        OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.PROCESSING)

        self.assertEqual(Order.objects.get(pk=self.order.pk).confirmed_at, stamped)
        self.assertEqual(OrderStatusHistory.objects.filter(order=self.order).count(), 1)

    def test_reject_needs_reason(self):
        with self.assertRaises(ValidationError):
            OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.REJECTED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING_CONFIRMATION)

        order = OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.REJECTED,
                                                    rejection_reason='Stok habis')
        self.assertEqual(order.status, OrderStatus.REJECTED)
        self.assertEqual(order.rejection_reason, 'Stok habis')
        self.assertIsNotNone(order.rejected_at)

    def test_invalid_jump_rejected(self):
        with self.assertRaises(PreconditionFailed):
            OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.SENT)

    def test_reserved_targets(self):
        with self.assertRaises(PreconditionFailed):
            OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.CANCELED)
        with self.assertRaises(PreconditionFailed):
            OrderLifecycleService.update_status(self.order.pk, self.merchant_user, OrderStatus.ASSIGNED)

    def test_stranger_denied(self):
        with self.assertRaises(CapabilityDenied):
            OrderLifecycleService.update_status(self.order.pk, make_user(), OrderStatus.PROCESSING)

    def test_unknown_status(self):
        with self.assertRaises(ValidationError):
            OrderLifecycleService.update_status(self.order.pk, self.merchant_user, 'LOST')


class DeliveryAndCompletionTests(TestCase):

    def setUp(self):
        cache.clear()
        self.merchant = make_merchant()
        self.subscription = make_subscription(self.merchant, quota=5)
        self.courier = make_courier()
        self.order = make_order(merchant=self.merchant, status=OrderStatus.SENT, courier=self.courier,
                                shipping='7000')

    def test_pod_without_image_fails(self):
        with self.assertRaises(ValidationError):
            OrderLifecycleService.record_proof_of_delivery(self.order.pk, self.courier.user, '', notes='Sudah')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.SENT)
        self.assertIsNone(self.order.pod_uploaded_at)

    def test_pod_by_other_courier_denied(self):
        other = make_courier()
        with self.assertRaises(CapabilityDenied):
            OrderLifecycleService.record_proof_of_delivery(self.order.pk, other.user, 'https://img.test/pod.jpg')

    def test_pod_from_wrong_status(self):
        order = make_order(merchant=self.merchant, status=OrderStatus.ASSIGNED, courier=self.courier)
        with self.assertRaises(PreconditionFailed):
            OrderLifecycleService.record_proof_of_delivery(order.pk, self.courier.user, 'https://img.test/pod.jpg')

    def test_delivery_then_buyer_completion(self):
        order = OrderLifecycleService.record_proof_of_delivery(
            self.order.pk, self.courier.user, 'https://img.test/pod.jpg', notes='Dititipkan ke tetangga'
        )
        self.assertEqual(order.status, OrderStatus.DELIVERED)
        self.assertEqual(order.pod_notes, 'Dititipkan ke tetangga')
        self.assertIsNotNone(order.delivered_at)

        order = OrderLifecycleService.update_status(self.order.pk, self.order.buyer, OrderStatus.DONE)
        self.assertEqual(order.status, OrderStatus.DONE)
        self.assertIsNotNone(order.completed_at)

        order.refresh_from_db()
        self.assertTrue(order.quota_consumed)
        self.subscription.refresh_from_db()
        self.assertEqual(self.subscription.used_quota, 1)
        self.courier.refresh_from_db()
        self.assertEqual(self.courier.available_balance, Decimal('7000'))

    def test_failed_deduction_keeps_order_done(self):
        MerchantSubscription.objects.filter(pk=self.subscription.pk).update(used_quota=5)
        delivered = make_order(merchant=self.merchant, status=OrderStatus.DELIVERED, courier=self.courier,
                               delivered_at=timezone.now())

        order = OrderLifecycleService.update_status(delivered.pk, delivered.buyer, OrderStatus.DONE)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.DONE)
        self.assertFalse(order.quota_consumed)

        client = APIClient()
        client.force_authenticate(make_admin())
        res = client.get(reverse('unreconciled-orders'))
        self.assertEqual([row['id'] for row in res.data], [order.pk])

    def test_auto_complete_after_refund_window(self):
        old = make_order(merchant=self.merchant, status=OrderStatus.DELIVERED,
                         delivered_at=timezone.now() - timedelta(days=4))
        disputed = make_order(merchant=self.merchant, status=OrderStatus.DELIVERED,
                              delivered_at=timezone.now() - timedelta(days=4))
        RefundRequest.objects.create(order=disputed, amount=disputed.subtotal, reason='Barang rusak')
        recent = make_order(merchant=self.merchant, status=OrderStatus.DELIVERED, delivered_at=timezone.now())

        self.assertEqual(list(orders_due_for_completion()), [old])
        self.assertEqual(auto_complete_orders(), 1)

        old.refresh_from_db()
        self.assertEqual(old.status, OrderStatus.DONE)
        self.assertTrue(old.quota_consumed)
        history = OrderStatusHistory.objects.filter(order=old).first()
        self.assertEqual(history.actor, OrderActor.SYSTEM)
        for order in (disputed, recent):
            order.refresh_from_db()
            self.assertEqual(order.status, OrderStatus.DELIVERED)


class PaymentTests(TestCase):

    def setUp(self):
        self.order = make_order(payment_method=PaymentMethod.TRANSFER, payment_status=PaymentStatus.UNPAID)

    def test_payment_proof_does_not_change_status(self):
        order = OrderLifecycleService.record_payment_proof(self.order.pk, self.order.buyer,
                                                           'https://img.test/transfer.jpg')
        self.assertEqual(order.status, OrderStatus.NEW)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertIsNotNone(order.payment_proof_uploaded_at)

    def test_payment_proof_needs_transfer(self):
        cod = make_order()
        with self.assertRaises(PreconditionFailed):
            OrderLifecycleService.record_payment_proof(cod.pk, cod.buyer, 'https://img.test/x.jpg')

    def test_payment_proof_needs_image(self):
        with self.assertRaises(ValidationError):
            OrderLifecycleService.record_payment_proof(self.order.pk, self.order.buyer, ' ')

    def test_merchant_confirms_once(self):
        OrderLifecycleService.record_payment_proof(self.order.pk, self.order.buyer, 'https://img.test/t.jpg')
        order = OrderLifecycleService.confirm_payment(self.order.pk, self.order.merchant.user)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertIsNotNone(order.paid_at)
        with self.assertRaises(PreconditionFailed):
            OrderLifecycleService.confirm_payment(self.order.pk, self.order.merchant.user)

    def test_buyer_cannot_confirm(self):
        with self.assertRaises(CapabilityDenied):
            OrderLifecycleService.confirm_payment(self.order.pk, self.order.buyer)


class CheckoutTests(TestCase):

    def setUp(self):
        cache.clear()
        self.buyer = make_user(phone_number='08123')

    def test_one_order_per_merchant(self):
        a = make_product(make_merchant(), price='10000', stock=5)
        b = make_product(make_merchant(), price='2500', stock=5)

        orders = CheckoutService.process_checkout(
            self.buyer,
            [{'product_id': a.pk, 'quantity': 1}, {'product_id': b.pk, 'quantity': 2},
             {'product_id': a.pk, 'quantity': 1}],
            delivery={'address': 'Jl. Desa 1'},
        )
        self.assertEqual(len(orders), 2)
        first = orders[0]
        self.assertEqual(first.status, OrderStatus.PENDING_CONFIRMATION)
        self.assertEqual(first.payment_status, PaymentStatus.COD)
        self.assertEqual(first.subtotal, Decimal('20000'))
        self.assertEqual(first.shipping_cost, Decimal('5000'))
        self.assertEqual(first.total, Decimal('25000'))
        self.assertEqual(first.items.get().quantity, 2)
        self.assertEqual(first.delivery_phone, '08123')

        a.refresh_from_db()
        b.refresh_from_db()
        self.assertEqual((a.stock, b.stock), (3, 3))

    def test_transfer_starts_unpaid(self):
        p = make_product(make_merchant())
        [order] = CheckoutService.process_checkout(self.buyer, [{'product_id': p.pk, 'quantity': 1}],
                                                   delivery_type=DeliveryType.PICKUP,
                                                   payment_method=PaymentMethod.TRANSFER)
        self.assertEqual(order.status, OrderStatus.NEW)
        self.assertEqual(order.payment_status, PaymentStatus.UNPAID)
        self.assertEqual(order.shipping_cost, Decimal('0'))

    def test_exhausted_merchant_blocks_whole_cart(self):
        PlatformSetting.set_value('free_tier_limit', 1)
        exhausted = make_merchant()
        make_order(merchant=exhausted)
        blocked = make_product(exhausted, stock=5)
        fine = make_product(make_merchant(), stock=5)

        with self.assertRaises(NotEligible):
            CheckoutService.process_checkout(
                self.buyer,
                [{'product_id': blocked.pk, 'quantity': 1}, {'product_id': fine.pk, 'quantity': 1}],
            )
        self.assertFalse(Order.objects.filter(buyer=self.buyer).exists())
        fine.refresh_from_db()
        self.assertEqual(fine.stock, 5)

        orders = CheckoutService.process_checkout(self.buyer, [{'product_id': fine.pk, 'quantity': 1}])
        self.assertEqual(len(orders), 1)

    def test_insufficient_stock_rolls_back(self):
        ok = make_product(make_merchant(), stock=5)
        short = make_product(make_merchant(), stock=1)
        with self.assertRaises(NotEligible):
            CheckoutService.process_checkout(
                self.buyer,
                [{'product_id': ok.pk, 'quantity': 1}, {'product_id': short.pk, 'quantity': 2}],
            )
        ok.refresh_from_db()
        self.assertEqual(ok.stock, 5)
        self.assertFalse(Order.objects.filter(buyer=self.buyer).exists())

    def test_verifier_cannot_shop(self):
        p = make_product(make_merchant())
        with self.assertRaises(CapabilityDenied):
            CheckoutService.process_checkout(make_user(role='verifikator'), [{'product_id': p.pk, 'quantity': 1}])

    def test_free_tier_alerts_fire_once_when_orders_use_up_quota(self):
        PlatformSetting.set_value('free_tier_limit', 5)
        merchant = make_merchant()
        product = make_product(merchant, stock=20)

        orders = []
        for _ in range(5):
            orders += CheckoutService.process_checkout(self.buyer, [{'product_id': product.pk, 'quantity': 1}])
        alerts = Notification.objects.filter(user=merchant.user, notification_type='quota').order_by('id')
        self.assertEqual([n.title for n in alerts], ['Kuota Transaksi Hampir Habis', 'Kuota Transaksi Habis!'])

        quota = QuotaService()
        for order in orders:
            Order.objects.filter(pk=order.pk).update(status=OrderStatus.DONE)
            self.assertTrue(quota.consume_order_quota(order))
        self.assertEqual(alerts.count(), 2)
        self.assertEqual(alerts.filter(title='Kuota Transaksi Habis!').count(), 1)

    def test_closed_or_suspended_merchant_rejects_direct_order(self):
        closed = make_product(make_merchant(is_open=False))
        suspended = make_product(make_merchant(status=MerchantStatus.SUSPENDED))
        pending = make_product(make_merchant(registration_status=RegistrationStatus.PENDING))

        for product in (closed, suspended, pending):
            with self.assertRaises(NotEligible):
                CheckoutService.process_checkout(self.buyer, [{'product_id': product.pk, 'quantity': 1}])
            product.refresh_from_db()
            self.assertEqual(product.stock, 10)
        self.assertFalse(Order.objects.filter(buyer=self.buyer).exists())


class RefundTests(TestCase):

    def setUp(self):
        self.product = make_product(make_merchant(), stock=0)
        self.order = make_order(status=OrderStatus.DELIVERED, delivered_at=timezone.now(),
                                merchant=self.product.merchant, items=[(self.product, 2)])
        self.admin = make_admin()

    def test_request_and_approve(self):
        refund = RefundService.request_refund(self.order.pk, self.order.buyer, 'Barang rusak')
        self.assertEqual(refund.amount, self.order.subtotal)

        refund = RefundService.process_refund(refund.pk, self.admin, approve=True, notes='OK')
        self.assertEqual(refund.status, RefundStatus.APPROVED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.REFUNDED)
        self.assertEqual(self.order.payment_status, PaymentStatus.REFUNDED)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 2)

        with self.assertRaises(PreconditionFailed):
            RefundService.process_refund(refund.pk, self.admin, approve=False)

    def test_reject_leaves_order_delivered(self):
        refund = RefundService.request_refund(self.order.pk, self.order.buyer, 'Barang rusak')
        RefundService.process_refund(refund.pk, self.admin, approve=False)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)

    def test_window_closed(self):
        Order.objects.filter(pk=self.order.pk).update(delivered_at=timezone.now() - timedelta(days=5))
        with self.assertRaises(PreconditionFailed):
            RefundService.request_refund(self.order.pk, self.order.buyer, 'Terlambat')

    def test_single_request_per_order(self):
        RefundService.request_refund(self.order.pk, self.order.buyer, 'Barang rusak')
        with self.assertRaises(PreconditionFailed):
            RefundService.request_refund(self.order.pk, self.order.buyer, 'Lagi')


class ReconcileCommandTests(TestCase):

    def setUp(self):
        cache.clear()
        self.merchant = make_merchant()
        self.order = make_order(merchant=self.merchant, status=OrderStatus.DONE, completed_at=timezone.now())

    def test_dry_run_changes_nothing(self):
        out = StringIO()
        call_command('reconcile_quota', '--dry-run', stdout=out)
        self.assertIn(self.order.order_number, out.getvalue())
        self.order.refresh_from_db()
        self.assertFalse(self.order.quota_consumed)

    def test_reconciles_pending_orders(self):
        sub = make_subscription(self.merchant, quota=3)
        out = StringIO()
        call_command('reconcile_quota', '--merchant', str(self.merchant.pk), stdout=out)
        self.assertIn('Reconciled 1', out.getvalue())
        self.order.refresh_from_db()
        self.assertTrue(self.order.quota_consumed)
        sub.refresh_from_db()
        self.assertEqual(sub.used_quota, 1)


class OrderApiTests(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def test_checkout_endpoint(self):
        buyer = make_user()
        product = make_product(make_merchant(), stock=3)
        self.client.force_authenticate(buyer)
        res = self.client.post(reverse('checkout'), {
            'items': [{'product_id': product.pk, 'quantity': 2}],
            'delivery_address': 'Jl. Sawah 2',
        }, format='json')
        self.assertEqual(res.status_code, 201)
        self.assertEqual(len(res.data), 1)
        self.assertEqual(res.data[0]['status'], OrderStatus.PENDING_CONFIRMATION)

    def test_cancel_conflict_is_409(self):
        order = make_order(status=OrderStatus.PROCESSING)
        self.client.force_authenticate(order.buyer)
        res = self.client.post(reverse('cancel-order', args=[order.pk]), {'reason': 'Berubah pikiran'}, format='json')
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.data['code'], 'precondition_failed')

    def test_detail_hidden_from_strangers(self):
        order = make_order()
        self.client.force_authenticate(make_user())
        res = self.client.get(reverse('order-detail', args=[order.pk]))
        self.assertEqual(res.status_code, 404)

        self.client.force_authenticate(order.merchant.user)
        res = self.client.get(reverse('order-detail', args=[order.pk]))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['order_number'], order.order_number)

    def test_merchant_status_endpoint(self):
        order = make_order(status=OrderStatus.PENDING_CONFIRMATION)
        self.client.force_authenticate(order.merchant.user)
        res = self.client.post(reverse('update-order-status', args=[order.pk]),
                               {'status': 'REJECTED', 'rejection_reason': 'Toko tutup'}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['status'], OrderStatus.REJECTED)
        self.assertEqual(res.data['status_history'][0]['actor'], OrderActor.MERCHANT)

    def test_merchant_order_list(self):
        merchant = make_merchant()
        mine = make_order(merchant=merchant)
        make_order()
        self.client.force_authenticate(merchant.user)
        res = self.client.get(reverse('merchant-order-list'))
        self.assertEqual([row['id'] for row in res.data], [mine.pk])
