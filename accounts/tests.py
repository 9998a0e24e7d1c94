from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from desamart.exceptions import CapabilityDenied
from desamart.factories import make_user

from .models import Role
from .permissionsUsers import Capability, capabilities_for, has_capability, require_capability
from .utils import issue_session_token


class CapabilityTableTests(TestCase):

    def test_buyer_can_shop_but_not_manage(self):
        buyer = make_user(role=Role.BUYER)
        self.assertTrue(has_capability(buyer, Capability.PLACE_ORDER))
        self.assertTrue(has_capability(buyer, Capability.CANCEL_OWN_ORDER))
        self.assertFalse(has_capability(buyer, Capability.MANAGE_MERCHANT_ORDERS))
        self.assertFalse(has_capability(buyer, Capability.ASSIGN_COURIERS))

    def test_merchant_and_verifier_see_quota(self):
        self.assertTrue(has_capability(make_user(role=Role.MERCHANT), Capability.VIEW_MERCHANT_QUOTA))
        verifier = make_user(role=Role.VERIFIKATOR)
        self.assertTrue(has_capability(verifier, Capability.VIEW_MERCHANT_QUOTA))
        self.assertTrue(has_capability(verifier, Capability.VERIFY_REGISTRATIONS))
        self.assertFalse(has_capability(verifier, Capability.PLACE_ORDER))

    def test_courier_delivers(self):
        courier = make_user(role=Role.COURIER)
        self.assertTrue(has_capability(courier, Capability.DELIVER_ORDERS))
        self.assertFalse(has_capability(courier, Capability.CONFIRM_PAYMENTS))

    def test_admin_and_superuser_hold_everything(self):
        admin = make_user(role=Role.ADMIN)
        self.assertEqual(capabilities_for(admin), frozenset(Capability))
        superuser = make_user(role=Role.BUYER, is_superuser=True)
        self.assertEqual(capabilities_for(superuser), frozenset(Capability))

    def test_require_capability_raises(self):
        with self.assertRaises(CapabilityDenied):
            require_capability(make_user(role=Role.ADMIN_DESA), Capability.PLACE_ORDER)


class LoginTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.user = make_user(email='warga@desa.test', password='rahasia123')

    def test_login_returns_token_and_capabilities(self):
        res = self.client.post(reverse('login'), {'email': 'warga@desa.test', 'password': 'rahasia123'},
                               format='json')
        self.assertEqual(res.status_code, 200)
        self.assertIn('token', res.data)
        self.assertIn(Capability.PLACE_ORDER.value, res.data['user']['capabilities'])

    def test_wrong_password(self):
        res = self.client.post(reverse('login'), {'email': 'warga@desa.test', 'password': 'salah'},
                               format='json')
        self.assertEqual(res.status_code, 401)

    def test_token_authenticates_me(self):
        token = issue_session_token(self.user)
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        res = self.client.get(reverse('me'))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data['email'], 'warga@desa.test')

    def test_older_token_is_revoked_by_new_login(self):
        old = issue_session_token(self.user)
        issue_session_token(self.user)
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {old}')
        res = self.client.get(reverse('me'))
        self.assertEqual(res.status_code, 401)
