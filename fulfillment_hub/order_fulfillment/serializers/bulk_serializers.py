"""
Bulk operation and sync serializers for the Fulfillment Order lifecycle.
"""

from rest_framework import serializers

from ..models import FulfillmentState, HoldReason
from ..services.workflow import FulfillmentWorkflow


class BulkOrderIdsSerializer(serializers.Serializer):
    """Base serializer for bulk requests."""

    order_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        max_length=500,
    )

    def validate_order_ids(self, value):
        """Keep the supplied order, drop repeated ids."""
        seen = set()
        unique = []
        for order_id in value:
            if order_id not in seen:
                seen.add(order_id)
                unique.append(order_id)
        return unique


class BulkHoldSerializer(BulkOrderIdsSerializer):
    reason = serializers.ChoiceField(choices=HoldReason.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class BulkReleaseSerializer(BulkOrderIdsSerializer):
    pass


class BulkFulfillSerializer(BulkOrderIdsSerializer):
    target_state = serializers.ChoiceField(choices=FulfillmentState.choices, default=FulfillmentState.SHIPPED)
    carrier = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')

    def validate(self, data):
        if data.get('carrier') and data['target_state'] not in FulfillmentWorkflow.SHIPPING_CAPABLE_STATES:
            raise serializers.ValidationError({
                'carrier': f"Carrier cannot be set when moving to {data['target_state']}"
            })
        return data


class SyncRequestSerializer(serializers.Serializer):
    """Serializer for triggering a sync run."""

    MODE_PUSH = 'push'
    MODE_POLL = 'poll'

    mode = serializers.ChoiceField(choices=[MODE_PUSH, MODE_POLL], default=MODE_PUSH)
    force = serializers.BooleanField(default=True)


class BatchResultSerializer(serializers.Serializer):
    """Read-only rendering of a BatchResult."""

    job_id = serializers.CharField()
    total_processed = serializers.IntegerField()
    updated = serializers.IntegerField()
    unchanged = serializers.IntegerField()
    failed = serializers.IntegerField()
    cancelled = serializers.BooleanField()
    failures = serializers.ListField(child=serializers.DictField())
    items = serializers.SerializerMethodField()

    def get_items(self, obj):
        return obj.to_dict()['items']
