"""
Order serializers for the Fulfillment Order lifecycle.
"""

from rest_framework import serializers

from ..models import FulfillmentOrder, FulfillmentState, HoldReason, SalesChannel
from ..exceptions import UnmigratableStateException
from ..services.state_migration import StateMigrationPolicy
from ..services.workflow import FulfillmentWorkflow


class FulfillmentOrderListSerializer(serializers.ModelSerializer):
    """Serializer for order listing."""

    class Meta:
        model = FulfillmentOrder
        fields = [
            'id', 'order_number', 'channel', 'external_order_id',
            'fulfillment_state', 'is_on_hold', 'hold_reason', 'priority_level',
            'tracking_number', 'carrier', 'last_synced_at',
            'created_at', 'updated_at'
        ]


class FulfillmentOrderDetailSerializer(serializers.ModelSerializer):
    """Serializer for order details."""

    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = FulfillmentOrder
        fields = [
            'id', 'order_number', 'channel', 'external_order_id',
            'fulfillment_state', 'allowed_transitions',
            'is_on_hold', 'hold_reason', 'hold_notes', 'hold_placed_at', 'hold_placed_by',
            'hold_released_at', 'hold_released_by', 'priority_level',
            'tracking_number', 'carrier', 'tracking_url', 'shipped_at', 'delivered_at',
            'external_outbound_id', 'last_synced_at', 'metadata',
            'created_at', 'updated_at'
        ]

    def get_allowed_transitions(self, obj):
        """States the order may move to next (empty while held)."""
        if obj.is_on_hold:
            return []
        try:
            state = StateMigrationPolicy.to_canonical(obj.fulfillment_state, obj.display_id)
        except UnmigratableStateException:
            return []
        return sorted(FulfillmentWorkflow.reachable_from(state))


class OrderIngestSerializer(serializers.Serializer):
    """Serializer for ingesting a sales-channel order."""

    channel = serializers.ChoiceField(choices=SalesChannel.choices)
    external_order_id = serializers.CharField(max_length=100)
    order_number = serializers.CharField(max_length=50, required=False, allow_blank=True)
    metadata = serializers.JSONField(required=False)


class HoldSerializer(serializers.Serializer):
    """Serializer for placing an order on hold."""

    reason = serializers.ChoiceField(choices=HoldReason.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class TransitionSerializer(serializers.Serializer):
    """Serializer for requesting a state transition."""

    target_state = serializers.ChoiceField(choices=FulfillmentState.choices)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    carrier = serializers.CharField(max_length=100, required=False, allow_blank=True)
    tracking_url = serializers.URLField(max_length=500, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, data):
        """Tracking is only accepted with a shipping-capable target."""
        tracking = self.get_tracking(data)
        if tracking and data['target_state'] not in FulfillmentWorkflow.SHIPPING_CAPABLE_STATES:
            raise serializers.ValidationError({
                'tracking_number': f"Tracking cannot be set when moving to {data['target_state']}"
            })
        return data

    @staticmethod
    def get_tracking(data):
        tracking = {
            field: data[field]
            for field in ('tracking_number', 'carrier', 'tracking_url')
            if data.get(field)
        }
        return tracking or None


class TrackingSerializer(serializers.Serializer):
    """Serializer for updating tracking information."""

    tracking_number = serializers.CharField(max_length=100)
    carrier = serializers.CharField(max_length=100)
    tracking_url = serializers.URLField(max_length=500, required=False, allow_blank=True, default='')
