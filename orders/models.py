# orders/models.py
from django.db import models
from django.conf import settings
from django.utils import timezone
from datetime import timedelta
import uuid


class OrderStatus(models.TextChoices):
    NEW = 'NEW', 'Baru'
    PENDING_PAYMENT = 'PENDING_PAYMENT', 'Menunggu Pembayaran'
    PENDING_CONFIRMATION = 'PENDING_CONFIRMATION', 'Menunggu Konfirmasi'
    PROCESSING = 'PROCESSING', 'Diproses'
    PROCESSED = 'PROCESSED', 'Siap Diambil'
    ASSIGNED = 'ASSIGNED', 'Kurir Ditugaskan'
    PICKED_UP = 'PICKED_UP', 'Diambil Kurir'
    SENT = 'SENT', 'Dikirim'
    ON_DELIVERY = 'ON_DELIVERY', 'Dalam Perjalanan'
    DELIVERED = 'DELIVERED', 'Terkirim'
    DONE = 'DONE', 'Selesai'
    CANCELED = 'CANCELED', 'Dibatalkan'
    REJECTED = 'REJECTED', 'Ditolak'
    REFUNDED = 'REFUNDED', 'Dikembalikan'


class PaymentStatus(models.TextChoices):
    UNPAID = 'UNPAID', 'Belum Dibayar'
    PENDING = 'PENDING', 'Menunggu Verifikasi'
    PAID = 'PAID', 'Lunas'
    EXPIRED = 'EXPIRED', 'Kedaluwarsa'
    COD = 'COD', 'Bayar di Tempat'
    REFUNDED = 'REFUNDED', 'Dikembalikan'


class PaymentMethod(models.TextChoices):
    COD = 'COD', 'Bayar di Tempat'
    TRANSFER = 'TRANSFER', 'Transfer Bank'
    ONLINE = 'ONLINE', 'Pembayaran Online'


class DeliveryType(models.TextChoices):
    PICKUP = 'PICKUP', 'Ambil Sendiri'
    INTERNAL = 'INTERNAL', 'Kurir Desa'


class OrderActor(models.TextChoices):
    BUYER = 'BUYER', 'Pembeli'
    MERCHANT = 'MERCHANT', 'Merchant'
    COURIER = 'COURIER', 'Kurir'
    ADMIN = 'ADMIN', 'Admin'
    SYSTEM = 'SYSTEM', 'Sistem'


class Order(models.Model):
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='orders'
    )
    merchant = models.ForeignKey(
        'merchants.Merchant',
        on_delete=models.PROTECT,
        related_name='orders'
    )
    courier = models.ForeignKey(
        'couriers.Courier',
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='orders'
    )
    order_number = models.CharField(max_length=24, unique=True, editable=False)

    status = models.CharField(max_length=24, choices=OrderStatus.choices, default=OrderStatus.NEW)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.COD)
    delivery_type = models.CharField(max_length=20, choices=DeliveryType.choices, default=DeliveryType.INTERNAL)

    delivery_name = models.CharField(max_length=150, blank=True)
    delivery_phone = models.CharField(max_length=20, blank=True)
    delivery_address = models.TextField(blank=True)
    delivery_lat = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    delivery_lng = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    notes = models.TextField(blank=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    assigned_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='cancelled_orders'
    )
    cancellation_reason = models.TextField(blank=True)
    cancellation_type = models.CharField(max_length=20, choices=OrderActor.choices, blank=True)
    rejection_reason = models.TextField(blank=True)

    pod_image_url = models.URLField(max_length=500, blank=True)
    pod_notes = models.TextField(blank=True)
    pod_uploaded_at = models.DateTimeField(null=True, blank=True)

    payment_proof_url = models.URLField(max_length=500, blank=True)
    payment_proof_uploaded_at = models.DateTimeField(null=True, blank=True)

    quota_consumed = models.BooleanField(default=False)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['merchant', 'created_at'], name='order_merchant_month_idx'),
            models.Index(fields=['courier', 'status'], name='order_courier_status_idx'),
        ]

    def __str__(self):
        return f"Order #{self.order_number}"

    def save(self, *args, **kwargs):
        if not self.order_number:
            # Generate a unique order number
            date_part = timezone.now().strftime('%Y%m%d')
            unique_part = uuid.uuid4().hex[:6].upper()
            self.order_number = f"ORD-{date_part}-{unique_part}"
        self.total = (self.subtotal or 0) + (self.shipping_cost or 0)
        super().save(*args, **kwargs)

    @property
    def refund_deadline(self):
        days = getattr(settings, 'REFUND_WINDOW_DAYS', 3)
        return self.delivered_at + timedelta(days=days) if self.delivered_at else None

    @property
    def is_refundable(self):
        return (
            self.status == OrderStatus.DELIVERED and
            self.delivered_at is not None and
            timezone.now() <= self.refund_deadline
        )


class OrderItem(models.Model):
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items'
    )
    product = models.ForeignKey(
        'products.Product',
        null=True,
        on_delete=models.SET_NULL,
        related_name='order_items'
    )
    product_name = models.CharField(max_length=255)
    product_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    def save(self, *args, **kwargs):
        self.subtotal = self.product_price * self.quantity
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.quantity}x {self.product_name} in Order #{self.order.order_number}"


class OrderStatusHistory(models.Model):
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='status_history'
    )
    from_status = models.CharField(max_length=24, choices=OrderStatus.choices, blank=True)
    status = models.CharField(max_length=24, choices=OrderStatus.choices)
    actor = models.CharField(max_length=20, choices=OrderActor.choices)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        verbose_name_plural = 'Order Status History'

    def __str__(self):
        return f"Order #{self.order.order_number} changed to {self.status}"


class RefundStatus(models.TextChoices):
    REQUESTED = 'requested', 'Diajukan'
    APPROVED = 'approved', 'Disetujui'
    REJECTED = 'rejected', 'Ditolak'


class RefundRequest(models.Model):
    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name='refund')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.TextField()
    status = models.CharField(max_length=20, choices=RefundStatus.choices, default=RefundStatus.REQUESTED)
    admin_notes = models.TextField(blank=True)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='processed_refunds'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Refund for Order #{self.order.order_number} ({self.status})"
