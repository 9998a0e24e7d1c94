import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

ORDER_STATUS_CHOICES = [
    ('NEW', 'Baru'), ('PENDING_PAYMENT', 'Menunggu Pembayaran'),
    ('PENDING_CONFIRMATION', 'Menunggu Konfirmasi'), ('PROCESSING', 'Diproses'),
    ('PROCESSED', 'Siap Diambil'), ('ASSIGNED', 'Kurir Ditugaskan'), ('PICKED_UP', 'Diambil Kurir'),
    ('SENT', 'Dikirim'), ('ON_DELIVERY', 'Dalam Perjalanan'), ('DELIVERED', 'Terkirim'),
    ('DONE', 'Selesai'), ('CANCELED', 'Dibatalkan'), ('REJECTED', 'Ditolak'), ('REFUNDED', 'Dikembalikan'),
]
ACTOR_CHOICES = [
    ('BUYER', 'Pembeli'), ('MERCHANT', 'Merchant'), ('COURIER', 'Kurir'), ('ADMIN', 'Admin'), ('SYSTEM', 'Sistem'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('merchants', '0001_initial'),
        ('couriers', '0001_initial'),
        ('products', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('order_number', models.CharField(editable=False, max_length=24, unique=True)),
                ('status', models.CharField(choices=ORDER_STATUS_CHOICES, default='NEW', max_length=24)),
                ('payment_status', models.CharField(choices=[('UNPAID', 'Belum Dibayar'), ('PENDING', 'Menunggu Verifikasi'), ('PAID', 'Lunas'), ('EXPIRED', 'Kedaluwarsa'), ('COD', 'Bayar di Tempat'), ('REFUNDED', 'Dikembalikan')], default='UNPAID', max_length=20)),
                ('payment_method', models.CharField(choices=[('COD', 'Bayar di Tempat'), ('TRANSFER', 'Transfer Bank'), ('ONLINE', 'Pembayaran Online')], default='COD', max_length=20)),
                ('delivery_type', models.CharField(choices=[('PICKUP', 'Ambil Sendiri'), ('INTERNAL', 'Kurir Desa')], default='INTERNAL', max_length=20)),
                ('delivery_name', models.CharField(blank=True, max_length=150)),
                ('delivery_phone', models.CharField(blank=True, max_length=20)),
                ('delivery_address', models.TextField(blank=True)),
                ('delivery_lat', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('delivery_lng', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('notes', models.TextField(blank=True)),
                ('subtotal', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('shipping_cost', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('total', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('assigned_at', models.DateTimeField(blank=True, null=True)),
                ('picked_up_at', models.DateTimeField(blank=True, null=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True)),
                ('cancellation_type', models.CharField(blank=True, choices=ACTOR_CHOICES, max_length=20)),
                ('rejection_reason', models.TextField(blank=True)),
                ('pod_image_url', models.URLField(blank=True, max_length=500)),
                ('pod_notes', models.TextField(blank=True)),
                ('pod_uploaded_at', models.DateTimeField(blank=True, null=True)),
                ('payment_proof_url', models.URLField(blank=True, max_length=500)),
                ('payment_proof_uploaded_at', models.DateTimeField(blank=True, null=True)),
                ('quota_consumed', models.BooleanField(default=False)),
                ('buyer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to=settings.AUTH_USER_MODEL)),
                ('cancelled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='cancelled_orders', to=settings.AUTH_USER_MODEL)),
                ('courier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='orders', to='couriers.courier')),
                ('merchant', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='merchants.merchant')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['merchant', 'created_at'], name='order_merchant_month_idx'),
                    models.Index(fields=['courier', 'status'], name='order_courier_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OrderItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_name', models.CharField(max_length=255)),
                ('product_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('quantity', models.PositiveIntegerField()),
                ('subtotal', models.DecimalField(decimal_places=2, max_digits=12)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='orders.order')),
                ('product', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='order_items', to='products.product')),
            ],
        ),
        migrations.CreateModel(
            name='OrderStatusHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('from_status', models.CharField(blank=True, choices=ORDER_STATUS_CHOICES, max_length=24)),
                ('status', models.CharField(choices=ORDER_STATUS_CHOICES, max_length=24)),
                ('actor', models.CharField(choices=ACTOR_CHOICES, max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('changed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='status_history', to='orders.order')),
            ],
            options={
                'verbose_name_plural': 'Order Status History',
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='RefundRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('reason', models.TextField()),
                ('status', models.CharField(choices=[('requested', 'Diajukan'), ('approved', 'Disetujui'), ('rejected', 'Ditolak')], default='requested', max_length=20)),
                ('admin_notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('order', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='refund', to='orders.order')),
                ('processed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='processed_refunds', to=settings.AUTH_USER_MODEL)),
            ],
        ),
    ]
