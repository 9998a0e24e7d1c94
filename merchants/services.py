# merchants/services.py
import logging
import math
from dataclasses import dataclass, asdict
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.cache import caches
from django.db import DatabaseError, transaction
from django.db.models import Count, F, Sum
from django.utils import timezone

from accounts.models import Role
from desamart.exceptions import NotFound, NotEligible
from notifications.utils import send_notification, notify_role
from orders.models import Order

from .models import (
    Merchant, MerchantStatus, RegistrationStatus, MerchantSubscription,
    SubscriptionStatus, TransactionPackage, QuotaUsageLog, PlatformSetting,
)

logger = logging.getLogger(__name__)

FREE_TIER_SETTING_KEY = 'free_tier_limit'
FREE_TIER_CACHE_KEY = 'quota:free_tier_limit'
FREE_TIER_PACKAGE_NAME = 'Free Tier'
SUBSCRIPTION_LINK = '/merchant/subscription'

LOW_WATER_RATIO = Decimal(str(getattr(settings, 'QUOTA_LOW_WATER_RATIO', '0.2')))


def start_of_month(now=None):
    now = timezone.localtime(now or timezone.now())
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


@dataclass
class QuotaInfo:
    merchant_id: int
    has_active_subscription: bool
    total_quota: int
    used_quota: int
    remaining_quota: int
    package_name: str
    quota_type: str
    expires_at: Optional[object] = None

    @property
    def can_transact(self):
        return self.remaining_quota > 0

    @property
    def usage_percentage(self):
        if self.total_quota <= 0:
            return 100
        return min(100, round(self.used_quota * 100 / self.total_quota))

    def as_dict(self):
        data = asdict(self)
        data['can_transact'] = self.can_transact
        data['usage_percentage'] = self.usage_percentage
        return data


class FreeTierLimitProvider:
    """
    Get-or-refresh access to the free-tier monthly limit.

    The value lives in ``PlatformSetting`` (falling back to
    ``settings.FREE_TIER_TRANSACTION_LIMIT``) and is kept in a Django cache
    backend for ``ttl`` seconds. Pass a different cache to isolate tests.
    """

    def __init__(self, cache=None, ttl=None):
        self.cache = cache if cache is not None else caches['default']
        self.ttl = ttl if ttl is not None else getattr(settings, 'FREE_TIER_LIMIT_CACHE_SECONDS', 300)

    def _load(self):
        default = getattr(settings, 'FREE_TIER_TRANSACTION_LIMIT', 100)
        value = PlatformSetting.get_value(FREE_TIER_SETTING_KEY, default)
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            logger.warning("Invalid free tier limit %r in settings table, using %s", value, default)
            return default

    def get_limit(self) -> int:
        return self.cache.get_or_set(FREE_TIER_CACHE_KEY, self._load, timeout=self.ttl)

    def set_limit(self, value: int) -> int:
        PlatformSetting.set_value(FREE_TIER_SETTING_KEY, int(value))
        self.invalidate()
        return self.get_limit()

    def invalidate(self):
        self.cache.delete(FREE_TIER_CACHE_KEY)


def evaluate_alert(remaining_after: int, credits: int, total: int) -> Optional[str]:
    """
    Return 'empty' or 'low' when a deduction of ``credits`` moved remaining
    quota across zero or the low-water mark, else None.
    """
    remaining_before = remaining_after + credits
    if remaining_after <= 0:
        return 'empty' if remaining_before > 0 else None
    mark = math.floor(total * LOW_WATER_RATIO)
    if remaining_after <= mark < remaining_before:
        return 'low'
    return None


class QuotaService:

    def __init__(self, free_tier: FreeTierLimitProvider = None):
        self.free_tier = free_tier or FreeTierLimitProvider()

    # ---- reads ----

    def _active_subscriptions(self, merchant_id, now=None):
        now = now or timezone.now()
        return MerchantSubscription.objects.filter(
            merchant_id=merchant_id,
            status=SubscriptionStatus.ACTIVE,
            expired_at__gte=now,
        ).order_by('expired_at', 'id')

    def orders_this_month(self, merchant_id) -> int:
        return Order.objects.filter(
            merchant_id=merchant_id,
            created_at__gte=start_of_month(),
        ).count()

    def fetch_quota_info(self, merchant_id) -> QuotaInfo:
        subscriptions = list(self._active_subscriptions(merchant_id).select_related('package'))

        if subscriptions:
            total = sum(sub.transaction_quota for sub in subscriptions)
            used = sum(sub.used_quota for sub in subscriptions)
            first = subscriptions[0]
            package_name = first.package.name if first.package else 'Premium'
            if len(subscriptions) > 1:
                package_name = f"{package_name} (+{len(subscriptions) - 1} paket)"
            return QuotaInfo(
                merchant_id=merchant_id,
                has_active_subscription=True,
                total_quota=total,
                used_quota=used,
                remaining_quota=max(0, total - used),
                package_name=package_name,
                quota_type='premium',
                expires_at=first.expired_at,
            )

        limit = self.free_tier.get_limit()
        usage = self.orders_this_month(merchant_id)
        return QuotaInfo(
            merchant_id=merchant_id,
            has_active_subscription=False,
            total_quota=limit,
            used_quota=usage,
            remaining_quota=max(0, limit - usage),
            package_name=FREE_TIER_PACKAGE_NAME,
            quota_type='free',
        )

    def can_transact(self, merchant_id) -> bool:
        try:
            return self.fetch_quota_info(merchant_id).can_transact
        except DatabaseError:
            # Treat unreadable quota as exhausted.
            logger.exception("Quota lookup failed for merchant %s, blocking", merchant_id)
            return False

    def check_checkout(self, merchant_ids):
        """
        Check every merchant of a cart independently. ``can_proceed_checkout``
        is true only when all of them may still transact.
        """
        statuses = {}
        for merchant_id in dict.fromkeys(merchant_ids):
            try:
                info = self.fetch_quota_info(merchant_id)
                statuses[merchant_id] = {
                    'can_transact': info.can_transact,
                    'remaining_quota': info.remaining_quota,
                }
            except DatabaseError:
                logger.exception("Quota lookup failed for merchant %s during checkout", merchant_id)
                statuses[merchant_id] = {'can_transact': False, 'remaining_quota': 0}

        blocked = [mid for mid, status in statuses.items() if not status['can_transact']]
        return {
            'statuses': statuses,
            'blocked_merchants': blocked,
            'can_proceed_checkout': not blocked,
        }

    def fetch_usage_logs(self, merchant_id, limit=20):
        return QuotaUsageLog.objects.filter(merchant_id=merchant_id).order_by('-created_at', '-id')[:limit]

    def merchants_with_active_quota(self):
        """IDs of open-for-business merchants whose remaining quota is above zero."""
        now = timezone.now()
        merchant_ids = list(
            Merchant.objects.filter(
                status=MerchantStatus.ACTIVE,
                registration_status=RegistrationStatus.APPROVED,
            ).values_list('id', flat=True)
        )
        if not merchant_ids:
            return set()

        premium = {
            row['merchant_id']: row['total'] - row['used']
            for row in MerchantSubscription.objects.filter(
                merchant_id__in=merchant_ids,
                status=SubscriptionStatus.ACTIVE,
                expired_at__gte=now,
            ).values('merchant_id').annotate(
                total=Sum('transaction_quota'),
                used=Sum('used_quota'),
            )
        }
        monthly = {
            row['merchant_id']: row['n']
            for row in Order.objects.filter(
                merchant_id__in=merchant_ids,
                created_at__gte=start_of_month(now),
            ).values('merchant_id').annotate(n=Count('id'))
        }
        limit = self.free_tier.get_limit()

        allowed = set()
        for merchant_id in merchant_ids:
            if merchant_id in premium:
                remaining = premium[merchant_id]
            else:
                remaining = limit - monthly.get(merchant_id, 0)
            if remaining > 0:
                allowed.add(merchant_id)
        return allowed

    # ---- writes ----

    def deduct_quota(self, merchant_id, credits=1, order=None) -> bool:
        """
        Consume ``credits`` from the oldest-expiring active subscription that
        still has room. Each attempt is a single conditional UPDATE.

        Without an active subscription the merchant is on the free tier,
        which has no counter to decrement; the deduction succeeds while the
        month's order count is within the limit.
        """
        now = timezone.now()
        candidate_ids = list(self._active_subscriptions(merchant_id, now).values_list('pk', flat=True))

        for sub_id in candidate_ids:
            updated = MerchantSubscription.objects.filter(
                pk=sub_id,
                status=SubscriptionStatus.ACTIVE,
                expired_at__gte=now,
                used_quota__lte=F('transaction_quota') - credits,
            ).update(used_quota=F('used_quota') + credits, updated_at=now)
            if updated:
                remaining = self.fetch_quota_info(merchant_id).remaining_quota
                self._log_usage(merchant_id, sub_id, order, credits, remaining)
                logger.info("Deducted %s credit(s) from subscription %s of merchant %s, %s left",
                            credits, sub_id, merchant_id, remaining)
                return True

        if candidate_ids:
            logger.warning("No room left on active subscriptions of merchant %s", merchant_id)
            return False

        limit = self.free_tier.get_limit()
        usage = self.orders_this_month(merchant_id)
        if usage > limit:
            logger.warning("Merchant %s is over the free tier limit (%s/%s)", merchant_id, usage, limit)
            return False

        self._log_usage(merchant_id, None, order, credits, max(0, limit - usage), notes='Free tier')
        logger.info("Recorded free tier usage for merchant %s (%s/%s)", merchant_id, usage, limit)
        return True

    def _log_usage(self, merchant_id, subscription_id, order, credits, remaining, notes=''):
        QuotaUsageLog.objects.create(
            merchant_id=merchant_id,
            subscription_id=subscription_id,
            order=order,
            order_total=order.total if order is not None else 0,
            credits_used=credits,
            remaining_quota=remaining,
            notes=notes or (f"Pesanan {order.order_number}" if order is not None else ''),
        )

    def consume_order_quota(self, order, credits=1) -> bool:
        """
        Deduct quota for a completed order and flag it as consumed.

        A failed deduction leaves ``quota_consumed`` false, is logged and is
        reported to admins; the order itself is never rolled back.
        """
        try:
            ok = self.deduct_quota(order.merchant_id, credits=credits, order=order)
        except DatabaseError:
            logger.exception("Quota deduction failed for order %s", order.order_number)
            ok = False

        if not ok:
            logger.error("Order %s completed without consuming quota; needs reconciliation",
                         order.order_number)
            notify_role(
                Role.ADMIN,
                title='Kuota Gagal Dipotong',
                message=f"Pesanan {order.order_number} selesai tetapi kuota merchant tidak terpotong.",
                notification_type='system',
                link='/admin/merchants',
            )
            return False

        Order.objects.filter(pk=order.pk, quota_consumed=False).update(quota_consumed=True)
        order.quota_consumed = True

        info = self.fetch_quota_info(order.merchant_id)
        # Free-tier remaining only moves when an order is created.
        if info.quota_type == 'premium':
            alert = evaluate_alert(info.remaining_quota, credits, info.total_quota)
            if alert:
                self.notify_low_or_empty(order.merchant_id, info.remaining_quota, alert)
        return True

    def check_free_tier_alert(self, merchant_id):
        """
        Alert a free-tier merchant whose newest order moved the monthly
        remaining count across the low-water mark or down to zero.
        """
        info = self.fetch_quota_info(merchant_id)
        if info.quota_type != 'free':
            return None
        remaining_before = max(0, info.total_quota - info.used_quota + 1)
        alert = evaluate_alert(info.remaining_quota, remaining_before - info.remaining_quota, info.total_quota)
        if alert:
            return self.notify_low_or_empty(merchant_id, info.remaining_quota, alert)
        return None

    def notify_low_or_empty(self, merchant_id, remaining, alert_type):
        merchant = Merchant.objects.select_related('user').filter(pk=merchant_id).first()
        if merchant is None:
            return None

        if alert_type == 'empty':
            title = 'Kuota Transaksi Habis!'
            message = ('Kuota transaksi Anda habis. Toko Anda tidak dapat menerima pesanan baru. '
                       'Segera beli paket kuota untuk melanjutkan.')
        else:
            title = 'Kuota Transaksi Hampir Habis'
            message = (f"Kuota transaksi Anda tersisa {remaining}. "
                       "Segera beli paket kuota agar toko tetap bisa menerima pesanan.")

        return send_notification(
            merchant.user,
            title=title,
            message=message,
            notification_type='quota',
            link=SUBSCRIPTION_LINK,
            content_object=merchant,
            extra_data={'remaining_quota': remaining, 'alert': alert_type},
        )

    @transaction.atomic
    def assign_package(self, merchant_id, package_id, assigned_by=None):
        merchant = Merchant.objects.filter(pk=merchant_id).first()
        if merchant is None:
            raise NotFound('Merchant tidak ditemukan')
        package = TransactionPackage.objects.filter(pk=package_id).first()
        if package is None:
            raise NotFound('Paket tidak ditemukan')
        if not package.is_active:
            raise NotEligible('Paket tidak aktif')

        now = timezone.now()
        subscription = MerchantSubscription.objects.create(
            merchant=merchant,
            package=package,
            transaction_quota=package.transaction_quota,
            used_quota=0,
            status=SubscriptionStatus.ACTIVE,
            started_at=now,
            expired_at=now + timedelta(days=package.validity_days),
        )
        logger.info("Assigned package %s to merchant %s (subscription %s) by user %s",
                    package.pk, merchant.pk, subscription.pk, getattr(assigned_by, 'pk', None))

        send_notification(
            merchant.user,
            title='Paket Kuota Aktif',
            message=f"Paket {package.name} dengan {package.transaction_quota} transaksi telah aktif.",
            notification_type='quota',
            link=SUBSCRIPTION_LINK,
            content_object=subscription,
        )
        return subscription

    def expire_subscriptions(self):
        return MerchantSubscription.objects.filter(
            status=SubscriptionStatus.ACTIVE,
            expired_at__lt=timezone.now(),
        ).update(status=SubscriptionStatus.EXPIRED, updated_at=timezone.now())
