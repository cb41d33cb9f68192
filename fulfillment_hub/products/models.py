from django.db import models


class Product(models.Model):
    """
    Sellable item.

    A bundle (composite product) holds no stock of its own: its availability
    is derived on every read from its components' stock.
    """

    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=100, unique=True, db_index=True)
    description = models.TextField(blank=True)
    is_bundle = models.BooleanField(default=False)
    available = models.IntegerField(default=0, help_text="Units in stock and not reserved")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        verbose_name = "Product"
        verbose_name_plural = "Products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["sku"], name="product_sku_idx"),
            models.Index(fields=["is_bundle"], name="product_is_bundle_idx"),
            models.Index(fields=["is_active"], name="product_is_active_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.sku})"


class BundleItem(models.Model):
    """One component of a bundle, with the units needed per bundle."""

    bundle = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="bundle_items")
    component = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="used_in_bundles")
    quantity = models.IntegerField(default=1, help_text="Units of the component per bundle")

    class Meta:
        db_table = "bundle_items"
        verbose_name = "Bundle Item"
        verbose_name_plural = "Bundle Items"
        constraints = [
            models.UniqueConstraint(fields=["bundle", "component"], name="unique_bundle_component"),
        ]

    def __str__(self):
        return f"{self.bundle.sku} <- {self.quantity} x {self.component.sku}"
