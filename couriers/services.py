# couriers/services.py
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from django.conf import settings
from django.db.models import Count, F, Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from accounts.permissionsUsers import Capability, require_capability
from desamart.exceptions import NotFound, NotEligible, PreconditionFailed
from merchants.models import RegistrationStatus
from notifications.utils import send_notification, send_order_notification
from orders.lifecycle import ASSIGNABLE_STATUSES, COURIER_ACTIVE_STATUSES
from orders.models import Order, OrderStatus, OrderStatusHistory, DeliveryType, OrderActor

from .models import Courier, CourierStatus
from .utils import haversine_km, estimate_eta_minutes

logger = logging.getLogger(__name__)

NO_COURIER_ERROR = 'Tidak ada kurir tersedia dalam jangkauan'


@dataclass
class CourierCandidate:
    id: int
    name: str
    vehicle_type: str
    active_orders: int
    distance_km: Optional[float] = None
    eta_minutes: Optional[int] = None

    @property
    def has_location(self):
        return self.distance_km is not None

    def rank_key(self):
        # Located couriers first by distance, then everyone by load.
        return (not self.has_location, self.distance_km or 0.0, self.active_orders, self.id)

    def as_dict(self):
        return asdict(self)


@dataclass
class AssignmentResult:
    success: bool
    courier: Optional[CourierCandidate] = None
    error: Optional[str] = None
    candidates_count: int = 0

    @property
    def distance_km(self):
        return self.courier.distance_km if self.courier else None

    def as_dict(self):
        return {
            'success': self.success,
            'courier': self.courier.as_dict() if self.courier else None,
            'distance_km': self.distance_km,
            'error': self.error,
            'candidates_count': self.candidates_count,
        }


def eligible_couriers():
    return Courier.objects.filter(
        status=CourierStatus.ACTIVE,
        registration_status=RegistrationStatus.APPROVED,
        is_available=True,
    )


class CourierAssignmentService:
    """
    Greedy nearest-available courier selection.

    There is no reservation step: two assignments running at once may pick
    the same courier. The workload tie-break only biases against it.
    """

    def __init__(self, max_distance_km=None, stale_minutes=None):
        self.max_distance_km = float(
            max_distance_km if max_distance_km is not None
            else getattr(settings, 'COURIER_MAX_DISTANCE_KM', 10)
        )
        self.stale_minutes = (
            stale_minutes if stale_minutes is not None
            else getattr(settings, 'LOCATION_STALE_MINUTES', 30)
        )

    def list_available_couriers(self, lat=None, lng=None, max_distance_km=None):
        radius = float(max_distance_km) if max_distance_km is not None else self.max_distance_km
        couriers = list(
            eligible_couriers().annotate(
                active_orders=Count('orders', filter=Q(orders__status__in=COURIER_ACTIVE_STATUSES))
            )
        )
        now = timezone.now()
        origin_known = lat is not None and lng is not None

        candidates = []
        for courier in couriers:
            distance = None
            if origin_known and courier.has_fresh_location(now, self.stale_minutes):
                distance = haversine_km(lat, lng, courier.current_lat, courier.current_lng)
                if distance > radius:
                    continue
            candidates.append(CourierCandidate(
                id=courier.pk,
                name=courier.name,
                vehicle_type=courier.vehicle_type,
                active_orders=courier.active_orders,
                distance_km=round(distance, 3) if distance is not None else None,
                eta_minutes=estimate_eta_minutes(distance, courier.vehicle_type) if distance is not None else None,
            ))

        candidates.sort(key=CourierCandidate.rank_key)
        return candidates

    def auto_assign(self, order_id, merchant_lat=None, merchant_lng=None, max_distance_km=None, assigned_by=None):
        order = self._get_order(order_id)
        self._check_assignable(order, allow_reassign=False)

        if merchant_lat is None or merchant_lng is None:
            merchant = order.merchant
            if merchant.has_location:
                merchant_lat, merchant_lng = merchant.location_lat, merchant.location_lng

        candidates = self.list_available_couriers(merchant_lat, merchant_lng, max_distance_km)
        if not candidates:
            logger.info("No courier available for order %s", order.order_number)
            return AssignmentResult(success=False, error=NO_COURIER_ERROR, candidates_count=0)

        chosen = candidates[0]
        courier = Courier.objects.select_related('user').get(pk=chosen.id)
        self._bind(order, courier, allow_reassign=False, assigned_by=assigned_by)
        logger.info("Auto-assigned courier %s to order %s (distance=%s km, %s candidates)",
                    courier.pk, order.order_number, chosen.distance_km, len(candidates))
        return AssignmentResult(success=True, courier=chosen, candidates_count=len(candidates))

    def manual_assign(self, order_id, courier_id, assigned_by=None):
        order = self._get_order(order_id)
        courier = Courier.objects.select_related('user').filter(pk=courier_id).first()
        if courier is None:
            raise NotFound('Kurir tidak ditemukan')
        if courier.status != CourierStatus.ACTIVE:
            raise NotEligible('Kurir tidak aktif')
        self._check_assignable(order, allow_reassign=True)

        self._bind(order, courier, allow_reassign=True, assigned_by=assigned_by)
        logger.info("Manually assigned courier %s to order %s", courier.pk, order.order_number)
        active = courier.orders.filter(status__in=COURIER_ACTIVE_STATUSES).count()
        return AssignmentResult(
            success=True,
            courier=CourierCandidate(
                id=courier.pk,
                name=courier.name,
                vehicle_type=courier.vehicle_type,
                active_orders=active,
            ),
            candidates_count=1,
        )

    def _get_order(self, order_id):
        order = Order.objects.select_related('merchant', 'buyer').filter(pk=order_id).first()
        if order is None:
            raise NotFound('Pesanan tidak ditemukan')
        return order

    def _check_assignable(self, order, allow_reassign):
        if order.delivery_type != DeliveryType.INTERNAL:
            raise PreconditionFailed('Pesanan ambil sendiri tidak memerlukan kurir')
        if order.status in ASSIGNABLE_STATUSES and order.courier_id is None:
            return
        if allow_reassign and order.status == OrderStatus.ASSIGNED:
            return
        raise PreconditionFailed('Pesanan tidak dapat ditugaskan ke kurir pada status ini')

    def _bind(self, order, courier, allow_reassign, assigned_by=None):
        now = timezone.now()
        condition = Q(status__in=ASSIGNABLE_STATUSES, courier__isnull=True)
        if allow_reassign:
            condition |= Q(status=OrderStatus.ASSIGNED)

        updated = Order.objects.filter(
            condition,
            pk=order.pk,
            delivery_type=DeliveryType.INTERNAL,
        ).update(courier=courier, status=OrderStatus.ASSIGNED, assigned_at=now, updated_at=now)

        if not updated:
            logger.warning("Assignment of order %s lost a race, status changed", order.order_number)
            raise PreconditionFailed('Status pesanan sudah berubah, coba lagi')

        previous_status = order.status
        order.courier = courier
        order.status = OrderStatus.ASSIGNED
        order.assigned_at = now

        OrderStatusHistory.objects.create(
            order=order,
            from_status=previous_status,
            status=OrderStatus.ASSIGNED,
            actor=OrderActor.ADMIN if assigned_by is not None else OrderActor.SYSTEM,
            changed_by=assigned_by,
            notes=f"Kurir: {courier.name}",
        )
        send_order_notification(courier.user, order, 'courier_assignment')
        send_order_notification(order.buyer, order, 'order_assigned')
        return order


# ---- courier self-service ----

def update_location(courier, lat, lng):
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValidationError({'location': 'Koordinat tidak valid'})
    if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        raise ValidationError({'location': 'Koordinat di luar jangkauan'})

    now = timezone.now()
    Courier.objects.filter(pk=courier.pk).update(
        current_lat=round(lat, 6),
        current_lng=round(lng, 6),
        last_location_update=now,
    )
    courier.refresh_from_db(fields=['current_lat', 'current_lng', 'last_location_update'])
    return courier


def set_availability(courier, is_available):
    if is_available and (courier.status != CourierStatus.ACTIVE
                         or courier.registration_status != RegistrationStatus.APPROVED):
        raise NotEligible('Kurir belum aktif atau belum disetujui')
    Courier.objects.filter(pk=courier.pk).update(is_available=bool(is_available))
    courier.is_available = bool(is_available)
    return courier


def review_registration(courier_id, actor, approve, reason=''):
    require_capability(actor, Capability.VERIFY_REGISTRATIONS)
    courier = Courier.objects.select_related('user').filter(pk=courier_id).first()
    if courier is None:
        raise NotFound('Kurir tidak ditemukan')

    now = timezone.now()
    if approve:
        changes = dict(registration_status=RegistrationStatus.APPROVED,
                       status=CourierStatus.ACTIVE, approved_at=now, rejection_reason='')
    else:
        changes = dict(registration_status=RegistrationStatus.REJECTED,
                       status=CourierStatus.INACTIVE, is_available=False, rejection_reason=reason or '')

    updated = Courier.objects.filter(
        pk=courier.pk,
        registration_status=RegistrationStatus.PENDING,
    ).update(**changes)
    if not updated:
        raise PreconditionFailed('Pendaftaran kurir sudah diproses')

    courier.refresh_from_db()
    logger.info("Courier %s registration %s by user %s",
                courier.pk, courier.registration_status, actor.pk)

    if approve:
        title, message = 'Pendaftaran Kurir Disetujui', 'Selamat! Akun kurir Anda telah aktif.'
    else:
        title = 'Pendaftaran Kurir Ditolak'
        message = f"Pendaftaran kurir Anda ditolak. {reason}".strip()
    send_notification(courier.user, title, message, notification_type='registration',
                      link='/courier', content_object=courier)
    return courier


def credit_delivery_fee(courier_id, amount):
    """Add a completed delivery's fee to the courier's available balance."""
    return Courier.objects.filter(pk=courier_id).update(
        available_balance=F('available_balance') + amount
    )
