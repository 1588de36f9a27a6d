from rest_framework import serializers
from .models import PackagingOption


class PackagingOptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PackagingOption
        fields = ['id', 'name', 'price', 'is_active', 'is_default', 'created_at', 'updated_at']
        read_only_fields = fields


class PackagingOptionWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    is_active = serializers.BooleanField(required=False, default=True)
    is_default = serializers.BooleanField(required=False, default=False)

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Name is required")
        return value


class PackagingOptionUpdateSerializer(PackagingOptionWriteSerializer):
    name = serializers.CharField(max_length=120, required=False)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    is_active = serializers.BooleanField(required=False)
    is_default = serializers.BooleanField(required=False)
