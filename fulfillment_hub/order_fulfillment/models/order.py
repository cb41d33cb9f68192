"""
Fulfillment order model for the Fulfillment Order lifecycle.
"""

import uuid
from django.db import models
from django.utils import timezone


class FulfillmentState(models.TextChoices):
    """Canonical fulfillment states, aligned with the fulfillment network."""
    PENDING = 'PENDING', 'Pending'
    PREPARATION = 'PREPARATION', 'Preparation'
    ACKNOWLEDGED = 'ACKNOWLEDGED', 'Acknowledged'
    PICKPROCESS = 'PICKPROCESS', 'Pick Process'
    LOCKED = 'LOCKED', 'Locked'
    SHIPPED = 'SHIPPED', 'Shipped'
    IN_TRANSIT = 'IN_TRANSIT', 'In Transit'
    DELIVERED = 'DELIVERED', 'Delivered'
    FAILED_DELIVERY = 'FAILED_DELIVERY', 'Failed Delivery'
    RETURNED_TO_SENDER = 'RETURNED_TO_SENDER', 'Returned to Sender'


class HoldReason(models.TextChoices):
    """Reasons an order can be held."""
    AWAITING_PAYMENT = 'AWAITING_PAYMENT', 'Awaiting Payment'
    HIGH_RISK_OF_FRAUD = 'HIGH_RISK_OF_FRAUD', 'High Risk of Fraud'
    INCORRECT_ADDRESS = 'INCORRECT_ADDRESS', 'Incorrect Address'
    INVENTORY_OUT_OF_STOCK = 'INVENTORY_OUT_OF_STOCK', 'Inventory Out of Stock'
    OTHER = 'OTHER', 'Other'


class SalesChannel(models.TextChoices):
    """Sales channels orders are ingested from."""
    SHOPIFY = 'SHOPIFY', 'Shopify'
    WOOCOMMERCE = 'WOOCOMMERCE', 'WooCommerce'
    MANUAL = 'MANUAL', 'Manual'


# Provider priority used to deprioritize held orders in the fulfillment network
HOLD_PRIORITY = {
    HoldReason.AWAITING_PAYMENT: -5,
    HoldReason.HIGH_RISK_OF_FRAUD: -5,
    HoldReason.INCORRECT_ADDRESS: -3,
    HoldReason.INVENTORY_OUT_OF_STOCK: -2,
    HoldReason.OTHER: -1,
}


class FulfillmentOrder(models.Model):
    """
    One sales-channel order's physical fulfillment progress.

    `fulfillment_state` is the single source of truth for progress. The hold
    flag is independent of it: a held order keeps its state, it just cannot
    move forward until released. Rows are soft-retained and never deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Channel identity, repeated ingestion of the same reference is deduplicated
    channel = models.CharField(
        max_length=20,
        choices=SalesChannel.choices,
        default=SalesChannel.MANUAL,
        help_text="Sales channel the order was ingested from"
    )
    external_order_id = models.CharField(
        max_length=100,
        help_text="Order reference assigned by the sales channel"
    )
    order_number = models.CharField(
        max_length=50,
        blank=True,
        help_text="Human-readable order number (e.g. #5339)"
    )

    fulfillment_state = models.CharField(
        max_length=30,
        choices=FulfillmentState.choices,
        default=FulfillmentState.PENDING,
        help_text="Current state in the fulfillment lifecycle"
    )

    # Hold control plane
    is_on_hold = models.BooleanField(default=False)
    hold_reason = models.CharField(
        max_length=30,
        choices=HoldReason.choices,
        blank=True,
        help_text="Why the order is held"
    )
    hold_notes = models.TextField(blank=True)
    hold_placed_at = models.DateTimeField(null=True, blank=True)
    hold_placed_by = models.CharField(max_length=150, blank=True)
    hold_released_at = models.DateTimeField(null=True, blank=True)
    hold_released_by = models.CharField(max_length=150, blank=True)
    priority_level = models.IntegerField(
        default=0,
        help_text="Priority pushed to the fulfillment network (negative while held)"
    )

    # Tracking, only set once a shipping-capable state is reached
    tracking_number = models.CharField(max_length=100, blank=True)
    carrier = models.CharField(max_length=100, blank=True)
    tracking_url = models.URLField(max_length=500, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    # Fulfillment network reference
    external_outbound_id = models.CharField(
        max_length=100,
        blank=True,
        help_text="Outbound identifier assigned by the fulfillment network"
    )
    last_synced_at = models.DateTimeField(null=True, blank=True)

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional flexible metadata"
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['channel', 'external_order_id'],
                name='unique_channel_external_order'
            ),
        ]
        indexes = [
            models.Index(fields=['fulfillment_state', 'is_on_hold'], name='ffo_state_hold_idx'),
            models.Index(fields=['channel', 'external_order_id'], name='ffo_channel_ref_idx'),
            models.Index(fields=['created_at'], name='ffo_created_idx'),
        ]

    def __str__(self):
        return f"Order {self.display_id} - {self.fulfillment_state}"

    def save(self, *args, **kwargs):
        if not self.order_number:
            self.order_number = f"#{self.external_order_id}"
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        from ..exceptions import BusinessException
        raise BusinessException(
            f"Order {self.display_id} is retained for audit and cannot be deleted",
            "ORDER_RETAINED"
        )

    @property
    def display_id(self):
        return self.order_number or str(self.id)
