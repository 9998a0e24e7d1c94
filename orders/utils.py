# orders/utils.py
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings

from couriers.utils import haversine_km
from .models import DeliveryType

BASE_FEE = Decimal(getattr(settings, 'SHIPPING_BASE_FEE', '5000'))
PER_KM_FEE = Decimal(getattr(settings, 'SHIPPING_PER_KM_FEE', '2000'))
MAX_FEE = Decimal(getattr(settings, 'SHIPPING_MAX_FEE', '50000'))


def calculate_shipping_cost(delivery_type, distance_km=None):
    if delivery_type == DeliveryType.PICKUP:
        return Decimal('0')
    if distance_km is None:
        return BASE_FEE
    distance_fee = (Decimal(str(distance_km)) * PER_KM_FEE).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return min(MAX_FEE, max(BASE_FEE, BASE_FEE + distance_fee))


def merchant_to_buyer_km(merchant, lat, lng):
    if lat is None or lng is None or not merchant.has_location:
        return None
    return haversine_km(merchant.location_lat, merchant.location_lng, lat, lng)
