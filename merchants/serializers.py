from rest_framework import serializers

from .models import Merchant, MerchantSubscription, QuotaUsageLog, TransactionPackage


class MerchantSerializer(serializers.ModelSerializer):
    class Meta:
        model = Merchant
        fields = ['id', 'name', 'phone', 'address', 'location_lat', 'location_lng',
                  'status', 'registration_status', 'is_open']
        read_only_fields = fields


class TransactionPackageSerializer(serializers.ModelSerializer):
    class Meta:
        model = TransactionPackage
        fields = ['id', 'name', 'transaction_quota', 'validity_days', 'price', 'is_active']


class MerchantSubscriptionSerializer(serializers.ModelSerializer):
    package_name = serializers.CharField(source='package.name', read_only=True, default=None)
    remaining_quota = serializers.IntegerField(read_only=True)

    class Meta:
        model = MerchantSubscription
        fields = ['id', 'package', 'package_name', 'transaction_quota', 'used_quota',
                  'remaining_quota', 'status', 'started_at', 'expired_at']
        read_only_fields = fields


class QuotaUsageLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuotaUsageLog
        fields = ['id', 'order', 'order_total', 'credits_used', 'remaining_quota', 'notes', 'created_at']
        read_only_fields = fields


class QuotaInfoSerializer(serializers.Serializer):
    merchant_id = serializers.IntegerField()
    has_active_subscription = serializers.BooleanField()
    total_quota = serializers.IntegerField()
    used_quota = serializers.IntegerField()
    remaining_quota = serializers.IntegerField()
    package_name = serializers.CharField()
    quota_type = serializers.CharField()
    expires_at = serializers.DateTimeField(allow_null=True)
    can_transact = serializers.BooleanField()
    usage_percentage = serializers.IntegerField()


class QuotaCheckSerializer(serializers.Serializer):
    merchant_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


class AssignPackageSerializer(serializers.Serializer):
    package_id = serializers.IntegerField(min_value=1)


class FreeTierLimitSerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=0)
