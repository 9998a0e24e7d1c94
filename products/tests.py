from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from desamart.factories import make_merchant, make_order, make_product, make_subscription
from merchants.models import PlatformSetting


class ProductListTests(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.url = reverse('product-list')

    def ids(self, res):
        return [row['id'] for row in res.data['results']]

    def test_public_listing(self):
        merchant = make_merchant()
        product = make_product(merchant)
        res = self.client.get(self.url)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.ids(res), [product.pk])
        self.assertEqual(res.data['results'][0]['merchant_name'], merchant.name)

    def test_hides_merchant_without_quota(self):
        PlatformSetting.set_value('free_tier_limit', 1)
        exhausted = make_merchant()
        make_product(exhausted)
        make_order(merchant=exhausted)

        premium = make_merchant()
        make_subscription(premium, quota=5, used=2)
        visible = make_product(premium)

        res = self.client.get(self.url)
        self.assertEqual(self.ids(res), [visible.pk])

    def test_hides_closed_and_inactive(self):
        closed = make_merchant(is_open=False)
        make_product(closed)
        open_merchant = make_merchant()
        make_product(open_merchant, is_active=False)
        self.assertEqual(self.ids(self.client.get(self.url)), [])

    def test_filters_and_sorting(self):
        merchant = make_merchant()
        cheap = make_product(merchant, price='5000', name='Gula Aren')
        pricey = make_product(merchant, price='30000', name='Madu Hutan')
        make_product(merchant, price='12000', name='Kopi Bubuk', stock=0)

        res = self.client.get(self.url, {'sort_by': 'price', 'sort_direction': 'asc', 'in_stock': 'true'})
        self.assertEqual(self.ids(res), [cheap.pk, pricey.pk])

        res = self.client.get(self.url, {'q': 'madu'})
        self.assertEqual(self.ids(res), [pricey.pk])

        res = self.client.get(self.url, {'min_price': '10000', 'max_price': '20000'})
        self.assertEqual(len(res.data['results']), 1)
