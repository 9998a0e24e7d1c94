import uuid
from datetime import timedelta
from unittest import mock

from django.core.cache.backends.locmem import LocMemCache
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import Role
from desamart.factories import (
    make_user, make_admin, make_merchant, make_order, make_package, make_subscription,
)
from notifications.models import Notification
from orders.models import Order, OrderStatus

from .models import MerchantSubscription, PlatformSetting, QuotaUsageLog, SubscriptionStatus
from .services import FreeTierLimitProvider, QuotaService, evaluate_alert, start_of_month


def isolated_provider(ttl=300):
    return FreeTierLimitProvider(cache=LocMemCache(f'free-tier-{uuid.uuid4().hex}', {}), ttl=ttl)


class FreeTierLimitProviderTests(TestCase):

    @override_settings(FREE_TIER_TRANSACTION_LIMIT=100)
    def test_defaults_to_setting(self):
        self.assertEqual(isolated_provider().get_limit(), 100)

    def test_cached_until_invalidated(self):
        provider = isolated_provider()
        PlatformSetting.set_value('free_tier_limit', 40)
        self.assertEqual(provider.get_limit(), 40)

        PlatformSetting.set_value('free_tier_limit', 5)
        self.assertEqual(provider.get_limit(), 40)

        provider.invalidate()
        self.assertEqual(provider.get_limit(), 5)

    def test_set_limit_refreshes(self):
        provider = isolated_provider()
        provider.get_limit()
        self.assertEqual(provider.set_limit(7), 7)


class FetchQuotaInfoTests(TestCase):

    def setUp(self):
        self.merchant = make_merchant()
        self.service = QuotaService(free_tier=isolated_provider())

    def test_free_tier_counts_orders_this_month(self):
        PlatformSetting.set_value('free_tier_limit', 3)
        make_order(merchant=self.merchant)
        make_order(merchant=self.merchant)
        old = make_order(merchant=self.merchant)
        Order.objects.filter(pk=old.pk).update(created_at=start_of_month() - timedelta(seconds=1))

        info = self.service.fetch_quota_info(self.merchant.pk)
        self.assertEqual(info.quota_type, 'free')
        self.assertEqual(info.package_name, 'Free Tier')
        self.assertEqual(info.total_quota, 3)
        self.assertEqual(info.used_quota, 2)
        self.assertEqual(info.remaining_quota, 1)

    def test_free_tier_remaining_floors_at_zero(self):
        PlatformSetting.set_value('free_tier_limit', 1)
        make_order(merchant=self.merchant)
        make_order(merchant=self.merchant)
        info = self.service.fetch_quota_info(self.merchant.pk)
        self.assertEqual(info.remaining_quota, 0)
        self.assertFalse(self.service.can_transact(self.merchant.pk))

    def test_premium_sums_active_subscriptions(self):
        package = make_package(name='Paket Usaha')
        make_subscription(self.merchant, quota=10, used=4, days=5, package=package)
        make_subscription(self.merchant, quota=20, used=1, days=20)
        make_subscription(self.merchant, quota=50, used=0, status=SubscriptionStatus.EXPIRED)

        info = self.service.fetch_quota_info(self.merchant.pk)
        self.assertEqual(info.quota_type, 'premium')
        self.assertEqual(info.total_quota, 30)
        self.assertEqual(info.used_quota, 5)
        self.assertEqual(info.remaining_quota, 25)
        self.assertEqual(info.package_name, 'Paket Usaha (+1 paket)')

    def test_expired_by_timestamp_is_ignored(self):
        sub = make_subscription(self.merchant, quota=10)
        MerchantSubscription.objects.filter(pk=sub.pk).update(expired_at=timezone.now() - timedelta(minutes=1))
        self.assertEqual(self.service.fetch_quota_info(self.merchant.pk).quota_type, 'free')

    def test_remaining_never_negative_on_overshoot(self):
        make_subscription(self.merchant, quota=5, used=9)
        info = self.service.fetch_quota_info(self.merchant.pk)
        self.assertEqual(info.remaining_quota, 0)
        self.assertFalse(info.can_transact)

    def test_store_error_blocks(self):
        with mock.patch.object(QuotaService, 'fetch_quota_info', side_effect=DatabaseError('down')):
            self.assertFalse(self.service.can_transact(self.merchant.pk))


class CheckoutGateTests(TestCase):

    def test_exhausted_merchant_blocks_only_itself(self):
        service = QuotaService(free_tier=isolated_provider())
        PlatformSetting.set_value('free_tier_limit', 1)
        exhausted = make_merchant()
        make_order(merchant=exhausted)
        healthy = make_merchant()

        result = service.check_checkout([exhausted.pk, healthy.pk])
        self.assertFalse(result['can_proceed_checkout'])
        self.assertEqual(result['blocked_merchants'], [exhausted.pk])
        self.assertTrue(result['statuses'][healthy.pk]['can_transact'])
        self.assertTrue(service.check_checkout([healthy.pk])['can_proceed_checkout'])


class DeductQuotaTests(TestCase):

    def setUp(self):
        self.merchant = make_merchant()
        self.service = QuotaService(free_tier=isolated_provider())

    def test_deducts_from_soonest_expiring(self):
        soon = make_subscription(self.merchant, quota=5, days=3)
        later = make_subscription(self.merchant, quota=5, days=30)
        order = make_order(merchant=self.merchant)

        self.assertTrue(self.service.deduct_quota(self.merchant.pk, order=order))
        soon.refresh_from_db()
        later.refresh_from_db()
        self.assertEqual(soon.used_quota, 1)
        self.assertEqual(later.used_quota, 0)

        log = QuotaUsageLog.objects.get()
        self.assertEqual(log.order, order)
        self.assertEqual(log.subscription, soon)
        self.assertEqual(log.remaining_quota, 9)

    def test_full_subscription_is_skipped(self):
        full = make_subscription(self.merchant, quota=2, used=2, days=3)
        spare = make_subscription(self.merchant, quota=2, used=0, days=30)
        self.assertTrue(self.service.deduct_quota(self.merchant.pk, credits=2))
        full.refresh_from_db()
        spare.refresh_from_db()
        self.assertEqual(full.used_quota, 2)
        self.assertEqual(spare.used_quota, 2)

    def test_fails_when_every_subscription_is_full(self):
        make_subscription(self.merchant, quota=1, used=1)
        self.assertFalse(self.service.deduct_quota(self.merchant.pk))
        self.assertFalse(QuotaUsageLog.objects.exists())

    def test_free_tier_within_limit(self):
        PlatformSetting.set_value('free_tier_limit', 2)
        make_order(merchant=self.merchant)
        self.assertTrue(self.service.deduct_quota(self.merchant.pk))
        self.assertEqual(QuotaUsageLog.objects.get().remaining_quota, 1)

    def test_free_tier_over_limit(self):
        PlatformSetting.set_value('free_tier_limit', 1)
        make_order(merchant=self.merchant)
        make_order(merchant=self.merchant)
        self.assertFalse(self.service.deduct_quota(self.merchant.pk))

    def test_usage_logs_newest_first(self):
        make_subscription(self.merchant, quota=10)
        for _ in range(3):
            self.service.deduct_quota(self.merchant.pk)
        logs = list(self.service.fetch_usage_logs(self.merchant.pk, limit=2))
        self.assertEqual(len(logs), 2)
        self.assertEqual([log.remaining_quota for log in logs], [7, 8])


class ConsumeOrderQuotaTests(TestCase):

    def setUp(self):
        self.merchant = make_merchant()
        self.service = QuotaService(free_tier=isolated_provider())

    def test_marks_order_consumed(self):
        make_subscription(self.merchant, quota=10)
        order = make_order(merchant=self.merchant, status=OrderStatus.DONE)
        self.assertTrue(self.service.consume_order_quota(order))
        order.refresh_from_db()
        self.assertTrue(order.quota_consumed)

    def test_failure_leaves_flag_and_alerts_admins(self):
        admin = make_admin()
        make_subscription(self.merchant, quota=1, used=1)
        order = make_order(merchant=self.merchant, status=OrderStatus.DONE)

        self.assertFalse(self.service.consume_order_quota(order))
        order.refresh_from_db()
        self.assertFalse(order.quota_consumed)
        self.assertEqual(order.status, OrderStatus.DONE)
        self.assertTrue(Notification.objects.filter(user=admin, title='Kuota Gagal Dipotong').exists())

    def test_empty_alert_when_last_credit_used(self):
        make_subscription(self.merchant, quota=1)
        order = make_order(merchant=self.merchant, status=OrderStatus.DONE)
        self.service.consume_order_quota(order)
        note = Notification.objects.get(user=self.merchant.user, notification_type='quota')
        self.assertEqual(note.title, 'Kuota Transaksi Habis!')
        self.assertEqual(note.link, '/merchant/subscription')

    def test_low_alert_on_crossing(self):
        make_subscription(self.merchant, quota=10, used=7)
        order = make_order(merchant=self.merchant, status=OrderStatus.DONE)
        self.service.consume_order_quota(order)
        note = Notification.objects.get(user=self.merchant.user, notification_type='quota')
        self.assertEqual(note.title, 'Kuota Transaksi Hampir Habis')
        self.assertIn('tersisa 2', note.message)

    def test_free_tier_completion_does_not_repeat_alert(self):
        PlatformSetting.set_value('free_tier_limit', 2)
        orders = [make_order(merchant=self.merchant, status=OrderStatus.DONE) for _ in range(2)]
        self.assertEqual(self.service.check_free_tier_alert(self.merchant.pk).title, 'Kuota Transaksi Habis!')

        for order in orders:
            self.assertTrue(self.service.consume_order_quota(order))
        self.assertEqual(Notification.objects.filter(user=self.merchant.user, notification_type='quota').count(), 1)

    def test_free_tier_alert_skips_premium_merchants(self):
        make_subscription(self.merchant, quota=1, used=1)
        self.assertIsNone(self.service.check_free_tier_alert(self.merchant.pk))


class EvaluateAlertTests(TestCase):

    def test_thresholds(self):
        self.assertEqual(evaluate_alert(0, 1, 10), 'empty')
        self.assertEqual(evaluate_alert(2, 1, 10), 'low')
        self.assertIsNone(evaluate_alert(1, 1, 10))  # already below mark
        self.assertIsNone(evaluate_alert(5, 1, 10))
        self.assertIsNone(evaluate_alert(0, 0, 10))


class MerchantsWithActiveQuotaTests(TestCase):

    def test_filters_exhausted_and_unapproved(self):
        service = QuotaService(free_tier=isolated_provider())
        PlatformSetting.set_value('free_tier_limit', 1)

        premium = make_merchant()
        make_subscription(premium, quota=5, used=1)
        premium_full = make_merchant()
        make_subscription(premium_full, quota=5, used=5)
        free_ok = make_merchant()
        free_out = make_merchant()
        make_order(merchant=free_out)
        pending = make_merchant(registration_status='PENDING')

        allowed = service.merchants_with_active_quota()
        self.assertEqual(allowed, {premium.pk, free_ok.pk})
        self.assertNotIn(pending.pk, allowed)


class AssignPackageAndExpiryTests(TestCase):

    def test_assign_package_creates_active_subscription(self):
        merchant = make_merchant()
        package = make_package(quota=50, days=30)
        sub = QuotaService().assign_package(merchant.pk, package.pk)
        self.assertEqual(sub.status, SubscriptionStatus.ACTIVE)
        self.assertEqual(sub.transaction_quota, 50)
        self.assertAlmostEqual((sub.expired_at - sub.started_at).days, 30)

    def test_expire_subscriptions_task(self):
        from .tasks import expire_subscriptions

        merchant = make_merchant()
        sub = make_subscription(merchant)
        MerchantSubscription.objects.filter(pk=sub.pk).update(expired_at=timezone.now() - timedelta(hours=1))
        self.assertEqual(expire_subscriptions(), 1)
        sub.refresh_from_db()
        self.assertEqual(sub.status, SubscriptionStatus.EXPIRED)


class QuotaApiTests(TestCase):

    def setUp(self):
        self.client = APIClient()

    def test_merchant_reads_own_quota(self):
        merchant = make_merchant()
        make_subscription(merchant, quota=10, used=3)
        self.client.force_authenticate(merchant.user)
        res = self.client.get(reverse('my-quota'))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['remaining_quota'], 7)
        self.assertEqual(res.data['usage_percentage'], 30)

    def test_other_merchant_quota_is_forbidden(self):
        mine = make_merchant()
        other = make_merchant()
        self.client.force_authenticate(mine.user)
        res = self.client.get(reverse('merchant-quota', args=[other.pk]))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.data['code'], 'capability_denied')

    def test_verifier_reads_any_quota(self):
        other = make_merchant()
        self.client.force_authenticate(make_user(role=Role.VERIFIKATOR))
        res = self.client.get(reverse('merchant-quota', args=[other.pk]))
        self.assertEqual(res.status_code, 200)

    def test_admin_assigns_package(self):
        merchant = make_merchant()
        package = make_package()
        self.client.force_authenticate(make_admin())
        res = self.client.post(reverse('merchant-subscriptions', args=[merchant.pk]),
                               {'package_id': package.pk}, format='json')
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.data['package_name'], package.name)

    def test_buyer_cannot_change_free_tier(self):
        self.client.force_authenticate(make_user())
        res = self.client.put(reverse('free-tier-setting'), {'limit': 5}, format='json')
        self.assertEqual(res.status_code, 403)
