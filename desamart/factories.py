"""
Small model factories shared by the app test suites.
"""
from datetime import timedelta
from decimal import Decimal
from itertools import count

from django.utils import timezone

from accounts.models import Role, User
from couriers.models import Courier, CourierStatus
from merchants.models import (
    Merchant, MerchantStatus, RegistrationStatus, MerchantSubscription,
    SubscriptionStatus, TransactionPackage,
)
from orders.models import Order, OrderItem, OrderStatus, DeliveryType, PaymentMethod, PaymentStatus
from products.models import Product

_seq = count(1)


def make_user(role=Role.BUYER, email=None, password='rahasia123', **extra):
    n = next(_seq)
    extra.setdefault('full_name', f'User {n}')
    return User.objects.create_user(email or f'user{n}@desa.test', password, role=role, **extra)


def make_admin(**extra):
    return make_user(role=Role.ADMIN, **extra)


def make_merchant(user=None, lat='-7.330000', lng='108.220000', **extra):
    extra.setdefault('name', f'Toko {next(_seq)}')
    extra.setdefault('status', MerchantStatus.ACTIVE)
    extra.setdefault('registration_status', RegistrationStatus.APPROVED)
    return Merchant.objects.create(
        user=user or make_user(role=Role.MERCHANT),
        location_lat=Decimal(lat) if lat is not None else None,
        location_lng=Decimal(lng) if lng is not None else None,
        **extra
    )


def make_product(merchant, price='10000', stock=10, **extra):
    extra.setdefault('name', f'Produk {next(_seq)}')
    return Product.objects.create(merchant=merchant, price=Decimal(price), stock=stock, **extra)


def make_courier(user=None, lat=None, lng=None, located_at=None, **extra):
    extra.setdefault('name', f'Kurir {next(_seq)}')
    extra.setdefault('status', CourierStatus.ACTIVE)
    extra.setdefault('registration_status', RegistrationStatus.APPROVED)
    extra.setdefault('is_available', True)
    if lat is not None and located_at is None:
        located_at = timezone.now()
    return Courier.objects.create(
        user=user or make_user(role=Role.COURIER),
        current_lat=Decimal(lat) if lat is not None else None,
        current_lng=Decimal(lng) if lng is not None else None,
        last_location_update=located_at,
        **extra
    )


def make_package(quota=100, days=30, name='Paket Hemat', **extra):
    return TransactionPackage.objects.create(
        name=name, transaction_quota=quota, validity_days=days, price=Decimal('50000'), **extra
    )


def make_subscription(merchant, quota=10, used=0, days=30, package=None, status=SubscriptionStatus.ACTIVE):
    now = timezone.now()
    return MerchantSubscription.objects.create(
        merchant=merchant,
        package=package,
        transaction_quota=quota,
        used_quota=used,
        status=status,
        started_at=now - timedelta(days=1),
        expired_at=now + timedelta(days=days),
    )


def make_order(buyer=None, merchant=None, status=OrderStatus.NEW, subtotal='20000', shipping='5000',
               delivery_type=DeliveryType.INTERNAL, payment_method=PaymentMethod.COD,
               payment_status=PaymentStatus.COD, items=None, **extra):
    merchant = merchant or make_merchant()
    order = Order.objects.create(
        buyer=buyer or make_user(),
        merchant=merchant,
        status=status,
        subtotal=Decimal(subtotal),
        shipping_cost=Decimal(shipping),
        delivery_type=delivery_type,
        payment_method=payment_method,
        payment_status=payment_status,
        **extra
    )
    for product, qty in items or []:
        OrderItem.objects.create(
            order=order, product=product, product_name=product.name,
            product_price=product.price, quantity=qty,
        )
    return order
