# serializers.py
from rest_framework import serializers
from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    related_object = serializers.SerializerMethodField()
    extra_data = serializers.SerializerMethodField()
    read_at = serializers.DateTimeField(format="%Y-%m-%d %H:%M:%S", read_only=True)
    created_at = serializers.DateTimeField(format="%Y-%m-%d %H:%M:%S", read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id', 'notification_type', 'title', 'message', 'link',
            'is_read', 'read_at', 'created_at', 'related_object', 'extra_data'
        ]
        read_only_fields = fields

    def get_related_object(self, obj):
        if obj.content_type_id is None or obj.object_id is None:
            return None
        related = {'type': obj.content_type.model, 'id': obj.object_id}
        target = obj.content_object
        if target is not None and hasattr(target, 'order_number'):
            related['order_number'] = target.order_number
            related['status'] = target.status
        return related

    def get_extra_data(self, obj):
        return obj.extra_data or None
