from rest_framework import serializers

from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    merchant_name = serializers.CharField(source='merchant.name', read_only=True)
    in_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'merchant', 'merchant_name', 'name', 'description', 'price',
                  'stock', 'in_stock', 'image_url', 'created_at']
        read_only_fields = fields
