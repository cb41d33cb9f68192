from django.db import transaction
from django.db.models import F

from order_fulfillment.exceptions import InventoryUnavailableException, ValidationException
from products.models import Product


class StockService:
    """
    Service for reserving product stock.

    Reservations are guarded compare-and-decrement updates: the decrement only
    applies when enough stock is still there, so the advisory bundle
    availability never has to be trusted at reservation time.
    """

    def _check_quantity(self, quantity):
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationException("Quantity must be a positive integer", {"quantity": quantity})

    def _decrement(self, product, quantity):
        updated = Product.objects.filter(pk=product.pk, available__gte=quantity).update(
            available=F("available") - quantity
        )
        if not updated:
            current = Product.objects.filter(pk=product.pk).values_list("available", flat=True).first()
            raise InventoryUnavailableException(product.sku, quantity, current or 0)

    @transaction.atomic
    def reserve_stock(self, product, quantity):
        """
        Reserve stock of a single product.

        Args:
            product: Product instance (not a bundle)
            quantity: Units to reserve

        Returns:
            Product instance with refreshed stock

        Raises:
            InventoryUnavailableException: If fewer than quantity units are available
        """
        self._check_quantity(quantity)
        if product.is_bundle:
            return self.reserve_bundle(product, quantity)

        self._decrement(product, quantity)
        product.refresh_from_db(fields=["available"])
        return product

    @transaction.atomic
    def reserve_bundle(self, bundle, quantity):
        """
        Reserve quantity bundles by decrementing every component.

        All components are reserved in one transaction; if any component is
        short, nothing is reserved.

        Args:
            bundle: Product instance with is_bundle set
            quantity: Bundles to reserve

        Returns:
            List of component Product instances with refreshed stock

        Raises:
            ValidationException: If the product is not a bundle or has no components
            InventoryUnavailableException: If a component is short
        """
        self._check_quantity(quantity)
        if not bundle.is_bundle:
            raise ValidationException(f"Product {bundle.sku} is not a bundle", {"sku": bundle.sku})

        # Stable order keeps concurrent reservations from deadlocking
        items = list(bundle.bundle_items.select_related("component").order_by("component_id"))
        if not items:
            raise ValidationException(f"Bundle {bundle.sku} has no components", {"sku": bundle.sku})

        components = []
        for item in items:
            if item.quantity <= 0:
                raise InventoryUnavailableException(item.component.sku, item.quantity * quantity, 0)
            self._decrement(item.component, item.quantity * quantity)
            item.component.refresh_from_db(fields=["available"])
            components.append(item.component)
        return components

    @transaction.atomic
    def release_stock(self, product, quantity):
        """
        Return reserved units of a product (or of every component of a bundle).

        Args:
            product: Product instance
            quantity: Units (or bundles) to release
        """
        self._check_quantity(quantity)
        if product.is_bundle:
            for item in product.bundle_items.select_related("component"):
                Product.objects.filter(pk=item.component_id).update(
                    available=F("available") + item.quantity * quantity
                )
            return

        Product.objects.filter(pk=product.pk).update(available=F("available") + quantity)
