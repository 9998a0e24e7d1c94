# couriers/models.py
from django.db import models
from django.conf import settings
from django.utils import timezone
from datetime import timedelta

from merchants.models import RegistrationStatus


class CourierStatus(models.TextChoices):
    ACTIVE = 'ACTIVE', 'Aktif'
    INACTIVE = 'INACTIVE', 'Nonaktif'
    SUSPENDED = 'SUSPENDED', 'Ditangguhkan'


class VehicleType(models.TextChoices):
    MOTOR = 'motor', 'Motor'
    MOBIL = 'mobil', 'Mobil'
    SEPEDA = 'sepeda', 'Sepeda'
    JALAN_KAKI = 'jalan_kaki', 'Jalan Kaki'


class Courier(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='courier_profile'
    )
    name = models.CharField(max_length=150)
    phone = models.CharField(max_length=20, blank=True)
    vehicle_type = models.CharField(max_length=20, choices=VehicleType.choices, default=VehicleType.MOTOR)
    vehicle_plate = models.CharField(max_length=20, blank=True)

    status = models.CharField(max_length=20, choices=CourierStatus.choices, default=CourierStatus.INACTIVE)
    registration_status = models.CharField(
        max_length=20,
        choices=RegistrationStatus.choices,
        default=RegistrationStatus.PENDING
    )
    is_available = models.BooleanField(default=False)

    current_lat = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    current_lng = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(null=True, blank=True)

    available_balance = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    pending_balance = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_withdrawn = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    approved_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['status', 'registration_status', 'is_available'], name='courier_eligible_idx')]

    def __str__(self):
        return self.name

    def has_fresh_location(self, now=None, stale_minutes=None):
        if self.current_lat is None or self.current_lng is None:
            return False
        if self.last_location_update is None:
            return True
        if stale_minutes is None:
            stale_minutes = getattr(settings, 'LOCATION_STALE_MINUTES', 30)
        now = now or timezone.now()
        return now - self.last_location_update <= timedelta(minutes=stale_minutes)
