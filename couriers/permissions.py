# couriers/permissions.py
from accounts.permissionsUsers import Capability, capability_required
from desamart.exceptions import NotFound

from .models import Courier

IsDelivery = capability_required(Capability.DELIVER_ORDERS)
CanAssignCouriers = capability_required(Capability.ASSIGN_COURIERS)
CanVerifyRegistrations = capability_required(Capability.VERIFY_REGISTRATIONS)


def get_courier_profile(user):
    courier = Courier.objects.filter(user=user).first()
    if courier is None:
        raise NotFound('Profil kurir tidak ditemukan')
    return courier
