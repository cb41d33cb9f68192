from rest_framework import serializers
from .models import Product, BundleItem
from .services.bundle_calculator import components_for, calculate_possible_quantity


def bundle_quantity(product):
    """Assemblable bundles from current component stock, None for plain products."""
    if not product.is_bundle:
        return None
    return calculate_possible_quantity(components_for(product))


class BundleItemSerializer(serializers.ModelSerializer):
    component_sku = serializers.CharField(source="component.sku", read_only=True)
    component_available = serializers.IntegerField(source="component.available", read_only=True)

    class Meta:
        model = BundleItem
        fields = ["id", "component", "component_sku", "component_available", "quantity"]
        read_only_fields = ["id"]


class ProductSerializer(serializers.ModelSerializer):
    bundle_items = BundleItemSerializer(many=True, read_only=True)
    available = serializers.SerializerMethodField()
    possible_quantity = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "sku",
            "description",
            "is_bundle",
            "available",
            "possible_quantity",
            "bundle_items",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def get_available(self, obj):
        # Bundles never read their own stored stock
        return obj.available if not obj.is_bundle else self.get_possible_quantity(obj)

    def get_possible_quantity(self, obj):
        return bundle_quantity(obj)


class ProductListSerializer(serializers.ModelSerializer):
    available = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ["id", "name", "sku", "is_bundle", "available", "is_active"]

    def get_available(self, obj):
        return obj.available if not obj.is_bundle else bundle_quantity(obj)


class ReserveSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
