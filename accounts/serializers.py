from rest_framework import serializers
from django.contrib.auth import get_user_model

from .permissionsUsers import capabilities_for

User = get_user_model()


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class UserSerializer(serializers.ModelSerializer):
    capabilities = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'username', 'full_name', 'phone_number', 'role', 'capabilities']
        read_only_fields = fields

    def get_capabilities(self, obj):
        return sorted(cap.value for cap in capabilities_for(obj))
