# orders/services.py
import logging
from collections import OrderedDict
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from accounts.models import Role
from accounts.permissionsUsers import Capability, has_capability, require_capability
from couriers.services import credit_delivery_fee
from desamart.exceptions import CapabilityDenied, NotEligible, NotFound, PreconditionFailed
from merchants.services import QuotaService
from notifications.utils import notify_role, send_order_notification
from products.models import Product

from . import lifecycle
from .models import (
    Order, OrderItem, OrderStatus, OrderStatusHistory, OrderActor,
    PaymentStatus, PaymentMethod, DeliveryType, RefundRequest, RefundStatus,
)
from .utils import calculate_shipping_cost, merchant_to_buyer_km

logger = logging.getLogger(__name__)

BUYER_NOTIFICATION_FOR = {
    OrderStatus.DELIVERED: 'order_delivered',
    OrderStatus.DONE: 'order_completed',
    OrderStatus.REJECTED: 'order_rejected',
}


def get_order(order_id):
    qs = Order.objects.select_related('merchant', 'merchant__user', 'courier', 'courier__user', 'buyer')
    order = qs.filter(pk=order_id).first()
    if order is None:
        raise NotFound('Pesanan tidak ditemukan')
    return order


def resolve_actors(order, user):
    """Every role ``user`` plays on ``order``, checked against capabilities."""
    actors = []
    if user is None or not user.is_authenticated:
        return actors
    if has_capability(user, Capability.RESOLVE_DISPUTES):
        actors.append(OrderActor.ADMIN)
    if order.merchant.user_id == user.id and has_capability(user, Capability.MANAGE_MERCHANT_ORDERS):
        actors.append(OrderActor.MERCHANT)
    if (order.courier_id is not None and order.courier.user_id == user.id
            and has_capability(user, Capability.DELIVER_ORDERS)):
        actors.append(OrderActor.COURIER)
    if order.buyer_id == user.id and has_capability(user, Capability.CONFIRM_RECEIPT):
        actors.append(OrderActor.BUYER)
    return actors


def orders_visible_to(user):
    if has_capability(user, Capability.RESOLVE_DISPUTES):
        return Order.objects.all()
    return Order.objects.filter(
        Q(buyer=user) | Q(merchant__user=user) | Q(courier__user=user)
    ).distinct()


def record_history(order, from_status, to_status, actor, user=None, notes=''):
    return OrderStatusHistory.objects.create(
        order=order,
        from_status=from_status or '',
        status=to_status,
        actor=actor,
        changed_by=user,
        notes=notes or '',
    )


def restock_items(order):
    for item in order.items.all():
        if item.product_id:
            Product.objects.filter(pk=item.product_id).update(stock=F('stock') + item.quantity)


class CheckoutService:

    @classmethod
    def quota_service(cls):
        return QuotaService()

    @classmethod
    def process_checkout(cls, buyer, items, delivery_type=DeliveryType.INTERNAL,
                         payment_method=PaymentMethod.COD, delivery=None, notes=''):
        """
        Create one order per merchant in the cart.

        ``items`` is a list of ``{'product_id', 'quantity'}``. Every merchant
        must still be able to transact; otherwise nothing is created.
        """
        require_capability(buyer, Capability.PLACE_ORDER)
        delivery = delivery or {}
        if not items:
            raise ValidationError({'items': 'Keranjang kosong'})

        quantities = OrderedDict()
        for line in items:
            quantities[line['product_id']] = quantities.get(line['product_id'], 0) + line['quantity']

        products = Product.objects.select_related('merchant').in_bulk(list(quantities))
        missing = [pid for pid in quantities if pid not in products]
        if missing:
            raise NotFound(f"Produk tidak ditemukan: {', '.join(str(pid) for pid in missing)}")

        by_merchant = OrderedDict()
        for product_id, qty in quantities.items():
            product = products[product_id]
            if not product.is_active:
                raise NotEligible(f"Produk {product.name} tidak tersedia")
            if not product.merchant.accepts_orders:
                raise NotEligible(f"Toko {product.merchant.name} sedang tidak menerima pesanan")
            by_merchant.setdefault(product.merchant, []).append((product, qty))

        quota = cls.quota_service()
        check = quota.check_checkout([m.pk for m in by_merchant])
        if not check['can_proceed_checkout']:
            names = ', '.join(m.name for m in by_merchant if m.pk in check['blocked_merchants'])
            logger.warning("Checkout blocked for buyer %s, quota exhausted: %s", buyer.pk, names)
            raise NotEligible(f"Toko tidak dapat menerima pesanan saat ini: {names}")

        lat, lng = delivery.get('lat'), delivery.get('lng')
        if payment_method == PaymentMethod.COD:
            initial_status, payment_status = OrderStatus.PENDING_CONFIRMATION, PaymentStatus.COD
        else:
            initial_status, payment_status = OrderStatus.NEW, PaymentStatus.UNPAID

        orders = []
        with transaction.atomic():
            for merchant, lines in by_merchant.items():
                for product, qty in lines:
                    taken = Product.objects.filter(
                        pk=product.pk, is_active=True, stock__gte=qty,
                    ).update(stock=F('stock') - qty)
                    if not taken:
                        raise NotEligible(f"Stok {product.name} tidak mencukupi")

                subtotal = sum((product.price * qty for product, qty in lines), Decimal('0'))
                distance = merchant_to_buyer_km(merchant, lat, lng)
                order = Order.objects.create(
                    buyer=buyer,
                    merchant=merchant,
                    status=initial_status,
                    payment_status=payment_status,
                    payment_method=payment_method,
                    delivery_type=delivery_type,
                    delivery_name=delivery.get('name', '') or buyer.full_name,
                    delivery_phone=delivery.get('phone', '') or buyer.phone_number,
                    delivery_address=delivery.get('address', ''),
                    delivery_lat=lat,
                    delivery_lng=lng,
                    notes=notes or '',
                    subtotal=subtotal,
                    shipping_cost=calculate_shipping_cost(delivery_type, distance),
                )
                for product, qty in lines:
                    OrderItem.objects.create(
                        order=order,
                        product=product,
                        product_name=product.name,
                        product_price=product.price,
                        quantity=qty,
                    )
                record_history(order, '', initial_status, OrderActor.BUYER, buyer, 'Checkout')
                send_order_notification(buyer, order, 'order_created')
                send_order_notification(merchant.user, order, 'new_order')
                orders.append(order)

            for merchant in by_merchant:
                quota.check_free_tier_alert(merchant.pk)

        logger.info("Buyer %s checked out %s order(s)", buyer.pk, len(orders))
        return orders


class OrderLifecycleService:

    @classmethod
    def quota_service(cls):
        return QuotaService()

    @classmethod
    def cancel(cls, order_id, user, reason=''):
        order = get_order(order_id)
        if order.buyer_id != user.id:
            raise PreconditionFailed('Hanya pembeli yang dapat membatalkan pesanan')
        require_capability(user, Capability.CANCEL_OWN_ORDER)

        now = timezone.now()
        with transaction.atomic():
            updated = Order.objects.filter(
                pk=order.pk,
                buyer=user,
                status__in=lifecycle.CANCELLABLE_STATUSES,
            ).update(
                status=OrderStatus.CANCELED,
                cancelled_at=now,
                cancelled_by=user,
                cancellation_reason=reason or '',
                cancellation_type=OrderActor.BUYER,
                updated_at=now,
            )
            if not updated:
                logger.warning("Cancel rejected for order %s in status %s", order.order_number, order.status)
                raise PreconditionFailed('Pesanan tidak dapat dibatalkan karena sudah diproses')

            previous = order.status
            restock_items(order)
            order.refresh_from_db()
            record_history(order, previous, OrderStatus.CANCELED, OrderActor.BUYER, user, reason)
            send_order_notification(order.merchant.user, order, 'order_cancelled')

        logger.info("Order %s cancelled by buyer", order.order_number)
        return order

    @classmethod
    def update_status(cls, order_id, user, new_status, rejection_reason='', notes=''):
        if new_status not in OrderStatus.values:
            raise ValidationError({'status': 'Status tidak dikenal'})
        if new_status in lifecycle.RESERVED_TARGETS:
            raise PreconditionFailed(
                f"Status {new_status} hanya dapat diatur melalui {lifecycle.RESERVED_TARGETS[new_status]}"
            )

        order = get_order(order_id)
        actor = next(
            (a for a in resolve_actors(order, user) if lifecycle.actor_may_request(a, new_status)),
            None,
        )
        if actor is None:
            raise CapabilityDenied()

        if order.status == new_status:
            return order

        return cls.apply_transition(order, new_status, actor, user,
                                    rejection_reason=rejection_reason, notes=notes)

    @classmethod
    def apply_transition(cls, order, target, actor, user=None, rejection_reason='', notes='', extra=None):
        """
        Compare-and-set ``order`` from its current status to ``target``.

        Raises PreconditionFailed when the graph forbids the move or another
        request changed the status first.
        """
        current = order.status
        if not lifecycle.can_transition(current, target, order.delivery_type):
            logger.warning("Rejected transition %s -> %s for order %s", current, target, order.order_number)
            raise PreconditionFailed(
                f"Pesanan berstatus {order.get_status_display()} tidak dapat diubah ke "
                f"{OrderStatus(target).label}"
            )
        if target == OrderStatus.REJECTED and not (rejection_reason or '').strip():
            raise ValidationError({'rejection_reason': 'Alasan penolakan wajib diisi'})

        now = timezone.now()
        changes = {'status': target, 'updated_at': now}
        stamp = lifecycle.TIMESTAMP_FIELDS.get(target)
        if stamp and not (stamp in lifecycle.STAMP_ONCE and getattr(order, stamp)):
            changes[stamp] = now
        if target == OrderStatus.REJECTED:
            changes['rejection_reason'] = rejection_reason.strip()
        changes.update(extra or {})

        with transaction.atomic():
            updated = Order.objects.filter(pk=order.pk, status=current).update(**changes)
            if not updated:
                logger.warning("Order %s changed concurrently, %s -> %s rejected",
                               order.order_number, current, target)
                raise PreconditionFailed('Status pesanan sudah berubah, muat ulang pesanan')

            for field, value in changes.items():
                setattr(order, field, value)
            record_history(order, current, target, actor, user, notes)
            if target == OrderStatus.REJECTED:
                restock_items(order)
            send_order_notification(order.buyer, order, BUYER_NOTIFICATION_FOR.get(target, 'order_status'))

        logger.info("Order %s: %s -> %s by %s", order.order_number, current, target, actor)

        if target == OrderStatus.DONE:
            cls._after_completion(order)
        return order

    @classmethod
    def _after_completion(cls, order):
        # The DONE write is committed; quota and payout follow as separate writes.
        cls.quota_service().consume_order_quota(order)

        if order.delivery_type == DeliveryType.INTERNAL and order.courier_id and order.shipping_cost:
            credit_delivery_fee(order.courier_id, order.shipping_cost)
            logger.info("Credited %s to courier %s for order %s",
                        order.shipping_cost, order.courier_id, order.order_number)

    @classmethod
    def complete_by_system(cls, order):
        return cls.apply_transition(order, OrderStatus.DONE, OrderActor.SYSTEM, notes='Selesai otomatis')

    @classmethod
    def record_proof_of_delivery(cls, order_id, user, image_url, notes=''):
        if not (image_url or '').strip():
            raise ValidationError({'pod_image_url': 'Foto bukti pengiriman wajib diunggah'})

        order = get_order(order_id)
        if OrderActor.COURIER not in resolve_actors(order, user):
            raise CapabilityDenied('Pesanan ini tidak ditugaskan kepada Anda')

        current = order.status
        if current not in lifecycle.POD_STATUSES:
            raise PreconditionFailed('Bukti pengiriman hanya dapat diunggah saat pesanan dalam pengantaran')

        now = timezone.now()
        changes = {
            'status': OrderStatus.DELIVERED,
            'delivered_at': now,
            'pod_image_url': image_url.strip(),
            'pod_notes': notes or '',
            'pod_uploaded_at': now,
            'updated_at': now,
        }
        with transaction.atomic():
            updated = Order.objects.filter(
                pk=order.pk,
                courier_id=order.courier_id,
                status=current,
            ).update(**changes)
            if not updated:
                raise PreconditionFailed('Status pesanan sudah berubah, muat ulang pesanan')
            for field, value in changes.items():
                setattr(order, field, value)
            record_history(order, current, OrderStatus.DELIVERED, OrderActor.COURIER, user, notes)
            send_order_notification(order.buyer, order, 'order_delivered')

        logger.info("Proof of delivery recorded for order %s", order.order_number)
        return order

    @classmethod
    def record_payment_proof(cls, order_id, user, image_url):
        if not (image_url or '').strip():
            raise ValidationError({'payment_proof_url': 'Bukti pembayaran wajib diunggah'})

        order = get_order(order_id)
        if order.buyer_id != user.id:
            raise CapabilityDenied()
        require_capability(user, Capability.UPLOAD_PAYMENT_PROOF)
        if order.payment_method != PaymentMethod.TRANSFER:
            raise PreconditionFailed('Bukti pembayaran hanya untuk metode transfer')

        now = timezone.now()
        updated = Order.objects.filter(
            pk=order.pk,
            payment_status__in=[PaymentStatus.UNPAID, PaymentStatus.PENDING],
        ).exclude(
            status__in=lifecycle.TERMINAL_STATUSES,
        ).update(
            payment_proof_url=image_url.strip(),
            payment_proof_uploaded_at=now,
            payment_status=PaymentStatus.PENDING,
            updated_at=now,
        )
        if not updated:
            raise PreconditionFailed('Pembayaran pesanan ini sudah diproses')

        order.refresh_from_db()
        send_order_notification(order.merchant.user, order, 'payment_proof')
        return order

    @classmethod
    def confirm_payment(cls, order_id, user):
        order = get_order(order_id)
        actors = resolve_actors(order, user)
        allowed = OrderActor.ADMIN in actors or (
            OrderActor.MERCHANT in actors and has_capability(user, Capability.CONFIRM_PAYMENTS)
        )
        if not allowed:
            raise CapabilityDenied()

        now = timezone.now()
        updated = Order.objects.filter(
            pk=order.pk,
            payment_status__in=[PaymentStatus.UNPAID, PaymentStatus.PENDING],
        ).update(payment_status=PaymentStatus.PAID, paid_at=now, updated_at=now)
        if not updated:
            raise PreconditionFailed('Pembayaran tidak dalam status menunggu konfirmasi')

        order.refresh_from_db()
        send_order_notification(order.buyer, order, 'payment_confirmed')
        logger.info("Payment confirmed for order %s by user %s", order.order_number, user.pk)
        return order

    @classmethod
    def reconcile_quota(cls, queryset=None):
        """Retry quota deduction for completed orders that never consumed it."""
        qs = queryset if queryset is not None else Order.objects.filter(
            status=OrderStatus.DONE, quota_consumed=False,
        )
        quota = cls.quota_service()
        fixed, failed = 0, 0
        for order in qs.select_related('merchant').order_by('completed_at', 'id'):
            if quota.consume_order_quota(order):
                fixed += 1
            else:
                failed += 1
        return fixed, failed


def orders_due_for_completion(now=None):
    now = now or timezone.now()
    window = timedelta(days=getattr(settings, 'REFUND_WINDOW_DAYS', 3))
    return Order.objects.filter(
        status=OrderStatus.DELIVERED,
        delivered_at__lte=now - window,
    ).filter(
        Q(refund__isnull=True) | Q(refund__status=RefundStatus.REJECTED)
    )


class RefundService:

    @classmethod
    def request_refund(cls, order_id, user, reason):
        if not (reason or '').strip():
            raise ValidationError({'reason': 'Alasan refund wajib diisi'})

        order = get_order(order_id)
        if order.buyer_id != user.id:
            raise CapabilityDenied()
        require_capability(user, Capability.REQUEST_REFUND)
        if not order.is_refundable:
            raise PreconditionFailed('Refund hanya dapat diajukan maksimal '
                                     f"{getattr(settings, 'REFUND_WINDOW_DAYS', 3)} hari setelah pesanan diterima")
        if RefundRequest.objects.filter(order=order).exists():
            raise PreconditionFailed('Refund untuk pesanan ini sudah diajukan')

        refund = RefundRequest.objects.create(order=order, amount=order.subtotal, reason=reason.strip())
        notify_role(
            Role.ADMIN,
            title='Pengajuan Refund',
            message=f"Ada pengajuan refund untuk pesanan #{order.order_number}.",
            notification_type='refund_requested',
            link='/admin/refunds',
        )
        logger.info("Refund requested for order %s", order.order_number)
        return refund

    @classmethod
    def process_refund(cls, refund_id, user, approve, notes=''):
        require_capability(user, Capability.RESOLVE_DISPUTES)
        refund = RefundRequest.objects.select_related('order', 'order__buyer').filter(pk=refund_id).first()
        if refund is None:
            raise NotFound('Pengajuan refund tidak ditemukan')

        now = timezone.now()
        order = refund.order
        with transaction.atomic():
            claimed = RefundRequest.objects.filter(pk=refund.pk, status=RefundStatus.REQUESTED).update(
                status=RefundStatus.APPROVED if approve else RefundStatus.REJECTED,
                admin_notes=notes or '',
                processed_by=user,
                processed_at=now,
            )
            if not claimed:
                raise PreconditionFailed('Pengajuan refund sudah diproses')

            if approve:
                updated = Order.objects.filter(pk=order.pk, status=OrderStatus.DELIVERED).update(
                    status=OrderStatus.REFUNDED,
                    payment_status=PaymentStatus.REFUNDED,
                    updated_at=now,
                )
                if not updated:
                    raise PreconditionFailed('Pesanan tidak lagi dalam status terkirim')
                restock_items(order)
                record_history(order, OrderStatus.DELIVERED, OrderStatus.REFUNDED, OrderActor.ADMIN, user, notes)

        refund.refresh_from_db()
        order.refresh_from_db()
        send_order_notification(order.buyer, order, 'refund_approved' if approve else 'refund_rejected')
        logger.info("Refund %s for order %s %s", refund.pk, order.order_number, refund.status)
        return refund
