from datetime import timedelta

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from accounts.models import Role
from desamart.exceptions import CapabilityDenied, NotEligible, NotFound, PreconditionFailed
from desamart.factories import make_admin, make_courier, make_merchant, make_order, make_user
from merchants.models import RegistrationStatus
from notifications.models import Notification
from orders.models import DeliveryType, OrderStatus, OrderStatusHistory

from .models import CourierStatus
from .services import (
    NO_COURIER_ERROR, CourierAssignmentService, review_registration, set_availability, update_location,
)
from .utils import delivery_estimate, estimate_eta_minutes, format_distance, format_eta, haversine_km


class HaversineTests(TestCase):

    def test_symmetric_and_zero(self):
        a, b = (-7.33, 108.22), (-7.20, 108.10)
        self.assertAlmostEqual(haversine_km(*a, *b), haversine_km(*b, *a), places=9)
        self.assertEqual(haversine_km(*a, *a), 0)

    def test_known_distance(self):
        self.assertAlmostEqual(haversine_km(-7.33, 108.22, -7.34, 108.23), 1.56, delta=0.05)

    def test_eta_and_formatting(self):
        self.assertEqual(estimate_eta_minutes(0), 0)
        self.assertLess(estimate_eta_minutes(3, 'motor'), estimate_eta_minutes(3, 'jalan_kaki'))
        self.assertEqual(format_eta(0), 'Tiba sebentar lagi')
        self.assertEqual(format_eta(75), '1 jam 15 menit')
        self.assertEqual(format_eta(120), '2 jam')
        self.assertEqual(format_distance(0.42), '420 m')
        self.assertEqual(format_distance(2.345), '2.3 km')
        self.assertEqual(delivery_estimate(-7.33, 108.22, -7.33, 108.22)['distance_km'], 0)


class AutoAssignTests(TestCase):

    def setUp(self):
        self.merchant = make_merchant(lat='-7.330000', lng='108.220000')
        self.order = make_order(merchant=self.merchant, status=OrderStatus.PROCESSED)
        self.service = CourierAssignmentService()

    def test_nearest_courier_wins(self):
        near = make_courier(lat='-7.340000', lng='108.230000')
        make_courier(lat='-7.200000', lng='108.100000')

        result = self.service.auto_assign(self.order.pk, -7.33, 108.22, max_distance_km=10)
        self.assertTrue(result.success)
        self.assertEqual(result.courier.id, near.pk)
        self.assertEqual(result.candidates_count, 1)

        self.order.refresh_from_db()
        self.assertEqual(self.order.courier_id, near.pk)
        self.assertEqual(self.order.status, OrderStatus.ASSIGNED)
        self.assertIsNotNone(self.order.assigned_at)
        self.assertTrue(Notification.objects.filter(user=near.user, notification_type='courier_assignment').exists())
        self.assertEqual(OrderStatusHistory.objects.get(order=self.order).from_status, OrderStatus.PROCESSED)

    def test_larger_radius_keeps_nearest(self):
        near = make_courier(lat='-7.340000', lng='108.230000')
        far = make_courier(lat='-7.200000', lng='108.100000')

        candidates = self.service.list_available_couriers(-7.33, 108.22, max_distance_km=50)
        self.assertEqual([c.id for c in candidates], [near.pk, far.pk])

        result = self.service.auto_assign(self.order.pk, -7.33, 108.22, max_distance_km=50)
        self.assertEqual(result.courier.id, near.pk)
        self.assertEqual(result.candidates_count, 2)

    def test_falls_back_to_merchant_location(self):
        near = make_courier(lat='-7.331000', lng='108.221000')
        result = self.service.auto_assign(self.order.pk)
        self.assertEqual(result.courier.id, near.pk)

    def test_no_courier_in_range(self):
        make_courier(lat='-7.200000', lng='108.100000')
        result = self.service.auto_assign(self.order.pk, -7.33, 108.22, max_distance_km=10)
        self.assertFalse(result.success)
        self.assertEqual(result.error, NO_COURIER_ERROR)
        self.assertEqual(result.candidates_count, 0)
        self.order.refresh_from_db()
        self.assertIsNone(self.order.courier_id)
        self.assertEqual(self.order.status, OrderStatus.PROCESSED)

    def test_ineligible_couriers_ignored(self):
        make_courier(lat='-7.330100', lng='108.220100', is_available=False)
        make_courier(lat='-7.330100', lng='108.220100', status=CourierStatus.SUSPENDED)
        make_courier(lat='-7.330100', lng='108.220100', registration_status=RegistrationStatus.PENDING)
        self.assertEqual(self.service.list_available_couriers(-7.33, 108.22), [])

    def test_pickup_order_is_not_assignable(self):
        pickup = make_order(merchant=self.merchant, status=OrderStatus.PROCESSED,
                            delivery_type=DeliveryType.PICKUP)
        make_courier(lat='-7.340000', lng='108.230000')
        with self.assertRaises(PreconditionFailed):
            self.service.auto_assign(pickup.pk)

    def test_new_order_is_not_assignable(self):
        fresh = make_order(merchant=self.merchant, status=OrderStatus.NEW)
        with self.assertRaises(PreconditionFailed):
            self.service.auto_assign(fresh.pk)


class RankingTests(TestCase):

    def setUp(self):
        self.service = CourierAssignmentService(stale_minutes=30)
        self.merchant = make_merchant()

    def give_orders(self, courier, n, status=OrderStatus.ASSIGNED):
        for _ in range(n):
            make_order(merchant=self.merchant, status=status, courier=courier)

    def test_located_before_unlocated(self):
        unlocated = make_courier()
        located = make_courier(lat='-7.380000', lng='108.260000')
        self.give_orders(located, 3)

        ranked = self.service.list_available_couriers(-7.33, 108.22)
        self.assertEqual([c.id for c in ranked], [located.pk, unlocated.pk])
        self.assertEqual(ranked[0].active_orders, 3)

    def test_unlocated_ranked_by_load(self):
        busy = make_courier()
        idle = make_courier()
        self.give_orders(busy, 2)
        self.give_orders(idle, 1, status=OrderStatus.DONE)

        ranked = self.service.list_available_couriers(-7.33, 108.22)
        self.assertEqual([c.id for c in ranked], [idle.pk, busy.pk])
        self.assertEqual([c.active_orders for c in ranked], [0, 2])

    def test_stale_location_treated_as_unknown(self):
        stale = make_courier(lat='-7.330100', lng='108.220100',
                             located_at=timezone.now() - timedelta(hours=2))
        fresh = make_courier(lat='-7.360000', lng='108.250000')

        ranked = self.service.list_available_couriers(-7.33, 108.22)
        self.assertEqual([c.id for c in ranked], [fresh.pk, stale.pk])
        self.assertIsNone(ranked[1].distance_km)

    def test_without_origin_everyone_ranks_by_load(self):
        a = make_courier(lat='-7.340000', lng='108.230000')
        b = make_courier(lat='-7.300000', lng='108.200000')
        self.give_orders(a, 1)
        ranked = self.service.list_available_couriers()
        self.assertEqual([c.id for c in ranked], [b.pk, a.pk])


class ManualAssignTests(TestCase):

    def setUp(self):
        self.service = CourierAssignmentService()
        self.admin = make_admin()
        self.order = make_order(status=OrderStatus.PROCESSING)

    def test_assigns_named_courier(self):
        courier = make_courier()
        result = self.service.manual_assign(self.order.pk, courier.pk, assigned_by=self.admin)
        self.assertTrue(result.success)
        self.order.refresh_from_db()
        self.assertEqual(self.order.courier_id, courier.pk)
        self.assertEqual(self.order.status, OrderStatus.ASSIGNED)
        history = OrderStatusHistory.objects.get(order=self.order)
        self.assertEqual(history.changed_by, self.admin)

    def test_reassign_assigned_order(self):
        first, second = make_courier(), make_courier()
        self.service.manual_assign(self.order.pk, first.pk, assigned_by=self.admin)
        self.service.manual_assign(self.order.pk, second.pk, assigned_by=self.admin)
        self.order.refresh_from_db()
        self.assertEqual(self.order.courier_id, second.pk)

    def test_inactive_courier_rejected(self):
        courier = make_courier(status=CourierStatus.INACTIVE)
        with self.assertRaises(NotEligible):
            self.service.manual_assign(self.order.pk, courier.pk)
        self.order.refresh_from_db()
        self.assertIsNone(self.order.courier_id)

    def test_unknown_courier(self):
        with self.assertRaises(NotFound):
            self.service.manual_assign(self.order.pk, 999999)

    def test_picked_up_order_cannot_be_reassigned(self):
        courier = make_courier()
        order = make_order(status=OrderStatus.PICKED_UP, courier=courier)
        with self.assertRaises(PreconditionFailed):
            self.service.manual_assign(order.pk, make_courier().pk)


class CourierSelfServiceTests(TestCase):

    def test_update_location(self):
        courier = make_courier()
        update_location(courier, -7.3456789, 108.2)
        courier.refresh_from_db()
        self.assertAlmostEqual(float(courier.current_lat), -7.345679, places=6)
        self.assertIsNotNone(courier.last_location_update)

    def test_update_location_out_of_range(self):
        courier = make_courier()
        with self.assertRaises(ValidationError):
            update_location(courier, 91, 0)

    def test_pending_courier_cannot_go_available(self):
        courier = make_courier(status=CourierStatus.INACTIVE, registration_status=RegistrationStatus.PENDING,
                               is_available=False)
        with self.assertRaises(NotEligible):
            set_availability(courier, True)
        set_availability(courier, False)


class ReviewRegistrationTests(TestCase):

    def setUp(self):
        self.verifier = make_user(role=Role.VERIFIKATOR)
        self.courier = make_courier(status=CourierStatus.INACTIVE, registration_status=RegistrationStatus.PENDING,
                                    is_available=False)

    def test_approve(self):
        courier = review_registration(self.courier.pk, self.verifier, approve=True)
        self.assertEqual(courier.registration_status, RegistrationStatus.APPROVED)
        self.assertEqual(courier.status, CourierStatus.ACTIVE)
        self.assertIsNotNone(courier.approved_at)
        self.assertTrue(Notification.objects.filter(user=courier.user, notification_type='registration').exists())

    def test_reject_then_reprocess_fails(self):
        courier = review_registration(self.courier.pk, self.verifier, approve=False, reason='Dokumen buram')
        self.assertEqual(courier.registration_status, RegistrationStatus.REJECTED)
        self.assertEqual(courier.rejection_reason, 'Dokumen buram')
        with self.assertRaises(PreconditionFailed):
            review_registration(self.courier.pk, self.verifier, approve=True)

    def test_buyer_cannot_review(self):
        with self.assertRaises(CapabilityDenied):
            review_registration(self.courier.pk, make_user(), approve=True)


class CourierApiTests(TestCase):

    def setUp(self):
        self.client = APIClient()

    def test_auto_assign_endpoint(self):
        order = make_order(status=OrderStatus.PROCESSED)
        courier = make_courier(lat='-7.331000', lng='108.221000')
        self.client.force_authenticate(make_admin())
        res = self.client.post(reverse('auto-assign', args=[order.pk]), {}, format='json')
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['courier']['id'], courier.pk)

    def test_auto_assign_without_candidates_is_422(self):
        order = make_order(status=OrderStatus.PROCESSED)
        self.client.force_authenticate(make_admin())
        res = self.client.post(reverse('auto-assign', args=[order.pk]), {}, format='json')
        self.assertEqual(res.status_code, 422)
        self.assertFalse(res.data['success'])

    def test_merchant_cannot_assign(self):
        order = make_order(status=OrderStatus.PROCESSED)
        self.client.force_authenticate(order.merchant.user)
        res = self.client.post(reverse('manual-assign', args=[order.pk]), {'courier_id': 1}, format='json')
        self.assertEqual(res.status_code, 403)

    def test_courier_lists_own_orders_and_updates_location(self):
        courier = make_courier(lat='-7.330000', lng='108.220000')
        mine = make_order(status=OrderStatus.ASSIGNED, courier=courier,
                          delivery_lat='-7.340000', delivery_lng='108.230000')
        make_order(status=OrderStatus.ASSIGNED, courier=make_courier())
        self.client.force_authenticate(courier.user)

        res = self.client.get(reverse('courier-active-orders'))
        self.assertEqual([row['id'] for row in res.data], [mine.pk])
        self.assertIsNotNone(res.data[0]['estimate'])

        res = self.client.post(reverse('courier-location'), {'lat': -7.35, 'lng': 108.24}, format='json')
        self.assertEqual(res.status_code, 200)
        courier.refresh_from_db()
        self.assertAlmostEqual(float(courier.current_lat), -7.35)
