# permissionsUsers.py
"""
Role -> capability table. Every service and view asks for a capability
instead of comparing role strings.
"""
from enum import Enum

from rest_framework.permissions import BasePermission

from desamart.exceptions import CapabilityDenied
from .models import Role


class Capability(str, Enum):
    PLACE_ORDER = 'place_order'
    CANCEL_OWN_ORDER = 'cancel_own_order'
    CONFIRM_RECEIPT = 'confirm_receipt'
    REQUEST_REFUND = 'request_refund'
    UPLOAD_PAYMENT_PROOF = 'upload_payment_proof'
    MANAGE_MERCHANT_ORDERS = 'manage_merchant_orders'
    CONFIRM_PAYMENTS = 'confirm_payments'
    VIEW_MERCHANT_QUOTA = 'view_merchant_quota'
    DELIVER_ORDERS = 'deliver_orders'
    VERIFY_REGISTRATIONS = 'verify_registrations'
    ASSIGN_COURIERS = 'assign_couriers'
    RESOLVE_DISPUTES = 'resolve_disputes'
    MANAGE_SUBSCRIPTIONS = 'manage_subscriptions'
    MANAGE_SETTINGS = 'manage_settings'


_SHOPPER = frozenset({
    Capability.PLACE_ORDER,
    Capability.CANCEL_OWN_ORDER,
    Capability.CONFIRM_RECEIPT,
    Capability.REQUEST_REFUND,
    Capability.UPLOAD_PAYMENT_PROOF,
})

ROLE_CAPABILITIES = {
    Role.BUYER: _SHOPPER,
    Role.MERCHANT: _SHOPPER | {
        Capability.MANAGE_MERCHANT_ORDERS,
        Capability.CONFIRM_PAYMENTS,
        Capability.VIEW_MERCHANT_QUOTA,
    },
    Role.COURIER: _SHOPPER | {Capability.DELIVER_ORDERS},
    Role.VERIFIKATOR: frozenset({
        Capability.VERIFY_REGISTRATIONS,
        Capability.VIEW_MERCHANT_QUOTA,
    }),
    Role.ADMIN_DESA: frozenset({Capability.VERIFY_REGISTRATIONS}),
    Role.ADMIN: frozenset(Capability),
    Role.SUPERADMIN: frozenset(Capability),
}


def capabilities_for(user):
    if user is None or not getattr(user, 'is_authenticated', False):
        return frozenset()
    if getattr(user, 'is_superuser', False):
        return ROLE_CAPABILITIES[Role.SUPERADMIN]
    return ROLE_CAPABILITIES.get(getattr(user, 'role', None), frozenset())


def has_capability(user, capability: Capability) -> bool:
    return capability in capabilities_for(user)


def require_capability(user, capability: Capability):
    if not has_capability(user, capability):
        raise CapabilityDenied()


def capability_required(*capabilities):
    """
    Build a DRF permission class that passes when the user holds any of
    ``capabilities``.
    """
    class HasCapability(BasePermission):
        def has_permission(self, request, view):
            return any(has_capability(request.user, cap) for cap in capabilities)

    HasCapability.__name__ = 'HasCapability_' + '_'.join(cap.value for cap in capabilities)
    return HasCapability


IsMerchant = capability_required(Capability.MANAGE_MERCHANT_ORDERS)
IsCourier = capability_required(Capability.DELIVER_ORDERS)
IsSuperAdminOrAdmin = capability_required(Capability.RESOLVE_DISPUTES)
