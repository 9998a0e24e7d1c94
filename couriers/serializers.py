# couriers/serializers.py
from rest_framework import serializers

from orders.models import Order
from .models import Courier
from .utils import delivery_estimate


class CourierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Courier
        fields = ['id', 'name', 'phone', 'vehicle_type', 'vehicle_plate', 'status', 'registration_status',
                  'is_available', 'current_lat', 'current_lng', 'last_location_update',
                  'available_balance', 'pending_balance', 'total_withdrawn']
        read_only_fields = fields


class DeliveryOrderSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    merchant_name = serializers.CharField(source='merchant.name', read_only=True)
    merchant_address = serializers.CharField(source='merchant.address', read_only=True)
    estimate = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'status', 'status_display', 'merchant_name', 'merchant_address',
                  'delivery_name', 'delivery_phone', 'delivery_address', 'delivery_lat', 'delivery_lng',
                  'payment_method', 'payment_status', 'total', 'shipping_cost', 'assigned_at', 'estimate']
        read_only_fields = fields

    def get_estimate(self, obj):
        courier = obj.courier
        if (courier is None or courier.current_lat is None or courier.current_lng is None
                or obj.delivery_lat is None or obj.delivery_lng is None):
            return None
        return delivery_estimate(courier.current_lat, courier.current_lng,
                                 obj.delivery_lat, obj.delivery_lng, courier.vehicle_type)


class AvailableCouriersQuerySerializer(serializers.Serializer):
    lat = serializers.FloatField(required=False, min_value=-90, max_value=90)
    lng = serializers.FloatField(required=False, min_value=-180, max_value=180)
    max_distance_km = serializers.FloatField(required=False, min_value=0.1)


class AutoAssignSerializer(serializers.Serializer):
    merchant_lat = serializers.FloatField(required=False, allow_null=True, min_value=-90, max_value=90)
    merchant_lng = serializers.FloatField(required=False, allow_null=True, min_value=-180, max_value=180)
    max_distance_km = serializers.FloatField(required=False, min_value=0.1)


class ManualAssignSerializer(serializers.Serializer):
    courier_id = serializers.IntegerField(min_value=1)


class LocationSerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)


class AvailabilitySerializer(serializers.Serializer):
    is_available = serializers.BooleanField()


class ProofOfDeliverySerializer(serializers.Serializer):
    pod_image_url = serializers.CharField(required=False, allow_blank=True, default='')
    pod_notes = serializers.CharField(required=False, allow_blank=True, default='')


class CourierStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ReviewRegistrationSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
    reason = serializers.CharField(required=False, allow_blank=True, default='')
