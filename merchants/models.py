# merchants/models.py
from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator


class MerchantStatus(models.TextChoices):
    ACTIVE = 'ACTIVE', 'Aktif'
    INACTIVE = 'INACTIVE', 'Nonaktif'
    SUSPENDED = 'SUSPENDED', 'Ditangguhkan'


class RegistrationStatus(models.TextChoices):
    PENDING = 'PENDING', 'Menunggu Verifikasi'
    APPROVED = 'APPROVED', 'Disetujui'
    REJECTED = 'REJECTED', 'Ditolak'


class Merchant(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='merchants'
    )
    name = models.CharField(max_length=150)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    location_lat = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    location_lng = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    status = models.CharField(max_length=20, choices=MerchantStatus.choices, default=MerchantStatus.ACTIVE)
    registration_status = models.CharField(
        max_length=20,
        choices=RegistrationStatus.choices,
        default=RegistrationStatus.PENDING
    )
    is_open = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def has_location(self):
        return self.location_lat is not None and self.location_lng is not None

    @property
    def accepts_orders(self):
        return (
            self.is_open and
            self.status == MerchantStatus.ACTIVE and
            self.registration_status == RegistrationStatus.APPROVED
        )


class TransactionPackage(models.Model):
    name = models.CharField(max_length=100)
    transaction_quota = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    validity_days = models.PositiveIntegerField(default=30)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.transaction_quota} transaksi)"


class SubscriptionStatus(models.TextChoices):
    PENDING = 'PENDING', 'Menunggu Pembayaran'
    ACTIVE = 'ACTIVE', 'Aktif'
    EXPIRED = 'EXPIRED', 'Kedaluwarsa'
    CANCELLED = 'CANCELLED', 'Dibatalkan'


class MerchantSubscription(models.Model):
    merchant = models.ForeignKey(Merchant, on_delete=models.CASCADE, related_name='subscriptions')
    package = models.ForeignKey(
        TransactionPackage,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='subscriptions'
    )
    transaction_quota = models.PositiveIntegerField()
    used_quota = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=SubscriptionStatus.choices, default=SubscriptionStatus.ACTIVE)
    started_at = models.DateTimeField()
    expired_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['expired_at']
        indexes = [models.Index(fields=['merchant', 'status', 'expired_at'], name='merchant_sub_active_idx')]

    def __str__(self):
        return f"{self.merchant} - {self.used_quota}/{self.transaction_quota}"

    @property
    def remaining_quota(self):
        return max(0, self.transaction_quota - self.used_quota)


class QuotaUsageLog(models.Model):
    merchant = models.ForeignKey(Merchant, on_delete=models.CASCADE, related_name='quota_usage_logs')
    subscription = models.ForeignKey(
        MerchantSubscription,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='usage_logs'
    )
    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='quota_usage_logs'
    )
    order_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    credits_used = models.PositiveIntegerField(default=1)
    remaining_quota = models.IntegerField()
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']


class PlatformSetting(models.Model):
    key = models.CharField(max_length=100, unique=True)
    value = models.JSONField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    @classmethod
    def get_value(cls, key, default=None):
        row = cls.objects.filter(key=key).first()
        return default if row is None else row.value

    @classmethod
    def set_value(cls, key, value):
        row, _ = cls.objects.update_or_create(key=key, defaults={'value': value})
        return row
