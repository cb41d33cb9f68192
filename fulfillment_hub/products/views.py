from django.db.models import Prefetch
from rest_framework import viewsets, filters, status
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from order_fulfillment.exceptions import BusinessException
from order_fulfillment.permissions import IsWarehouseStaff, CanRunBulkOperations
from .models import Product, BundleItem
from .serializers import ProductSerializer, ProductListSerializer, ReserveSerializer
from .services.bundle_calculator import enrich_product_with_possible_quantity
from .services.stock_service import StockService


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Product.objects.prefetch_related(
        Prefetch("bundle_items", queryset=BundleItem.objects.select_related("component"))
    )
    permission_classes = [IsWarehouseStaff]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    search_fields = ["name", "sku", "description"]
    filterset_fields = ["is_bundle", "is_active"]
    ordering_fields = ["name", "sku", "created_at"]
    ordering = ["name"]

    def get_serializer_class(self):
        if self.action == "list":
            return ProductListSerializer
        return ProductSerializer

    @action(detail=True, methods=["get"])
    def availability(self, request, pk=None):
        """Current availability; bundles are derived from component stock."""
        product = self.get_object()
        return Response({"success": True, "data": enrich_product_with_possible_quantity(product)})

    @action(detail=True, methods=["post"], permission_classes=[CanRunBulkOperations])
    def reserve(self, request, pk=None):
        """Reserve stock of a product or of every component of a bundle."""
        product = self.get_object()
        serializer = ReserveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            StockService().reserve_stock(product, serializer.validated_data["quantity"])
        except BusinessException as e:
            return Response({
                "success": False,
                "error": {"code": e.code, "message": e.message, "details": e.details},
            }, status=status.HTTP_409_CONFLICT)

        product = self.get_queryset().get(pk=product.pk)
        return Response({"success": True, "data": enrich_product_with_possible_quantity(product)})
