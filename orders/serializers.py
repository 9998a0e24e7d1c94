# orders/serializers.py
from rest_framework import serializers

from .models import Order, OrderItem, OrderStatusHistory, RefundRequest, DeliveryType, PaymentMethod


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'product_name', 'product_price', 'quantity', 'subtotal']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    merchant_name = serializers.CharField(source='merchant.name', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'status', 'status_display', 'payment_status', 'payment_method',
            'delivery_type', 'merchant', 'merchant_name', 'courier',
            'subtotal', 'shipping_cost', 'total', 'created_at', 'updated_at', 'items',
        ]
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = ['from_status', 'status', 'actor', 'changed_by', 'notes', 'created_at']


class OrderDetailSerializer(OrderSerializer):
    status_history = OrderStatusHistorySerializer(many=True, read_only=True)
    courier_name = serializers.CharField(source='courier.name', read_only=True, default=None)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + [
            'courier_name', 'delivery_name', 'delivery_phone', 'delivery_address',
            'delivery_lat', 'delivery_lng', 'notes',
            'confirmed_at', 'assigned_at', 'picked_up_at', 'delivered_at', 'completed_at',
            'cancelled_at', 'rejected_at', 'paid_at',
            'cancellation_reason', 'cancellation_type', 'rejection_reason',
            'pod_image_url', 'pod_notes', 'pod_uploaded_at',
            'payment_proof_url', 'payment_proof_uploaded_at', 'quota_consumed',
            'status_history',
        ]
        read_only_fields = fields


class CheckoutItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class CheckoutSerializer(serializers.Serializer):
    items = CheckoutItemSerializer(many=True, allow_empty=False)
    delivery_type = serializers.ChoiceField(choices=DeliveryType.choices, default=DeliveryType.INTERNAL)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.COD)
    delivery_name = serializers.CharField(required=False, allow_blank=True, default='')
    delivery_phone = serializers.CharField(required=False, allow_blank=True, default='')
    delivery_address = serializers.CharField(required=False, allow_blank=True, default='')
    delivery_lat = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True,
                                            min_value=-90, max_value=90)
    delivery_lng = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True,
                                            min_value=-180, max_value=180)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['delivery_type'] == DeliveryType.INTERNAL and not attrs.get('delivery_address'):
            raise serializers.ValidationError({'delivery_address': 'Alamat pengiriman wajib diisi'})
        return attrs


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    rejection_reason = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PaymentProofSerializer(serializers.Serializer):
    payment_proof_url = serializers.URLField(max_length=500)


class RefundRequestSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)

    class Meta:
        model = RefundRequest
        fields = ['id', 'order', 'order_number', 'amount', 'reason', 'status',
                  'admin_notes', 'created_at', 'processed_at']
        read_only_fields = fields


class RequestRefundSerializer(serializers.Serializer):
    reason = serializers.CharField()


class ProcessRefundSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')
