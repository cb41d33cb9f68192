"""
Order Service for the Fulfillment Order lifecycle.

Handles order ingestion from sales channels and the read models built on top
of orders and their audit trail.
"""

import logging
from datetime import timedelta
from typing import Dict, Any, List, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from ..models import FulfillmentOrder, FulfillmentState, SalesChannel, AuditLog, AuditAction
from ..exceptions import ValidationException

logger = logging.getLogger(__name__)


class OrderService:
    """Service class for order ingestion and reporting."""

    INGESTIBLE_FIELDS = ['order_number', 'metadata', 'created_at']

    @staticmethod
    def ingest_order(channel: str, external_order_id: str, order_data: Dict[str, Any] = None,
                     actor=None) -> Tuple[FulfillmentOrder, bool]:
        """
        Create a fulfillment order for a sales-channel order, once.

        Repeated ingestion of the same (channel, external_order_id) returns the
        existing order untouched and writes no audit entry.

        Args:
            channel: One of SalesChannel
            external_order_id: Order reference assigned by the channel
            order_data: Optional order_number, metadata, created_at; any
                fulfillment_state is ignored, orders always start PENDING
            actor: User or component ingesting the order

        Returns:
            Tuple of (order, created)

        Raises:
            ValidationException: If the channel or reference is invalid
        """
        order_data = order_data or {}

        if channel not in SalesChannel.values:
            raise ValidationException(f"Unknown sales channel '{channel}'", {'channel': channel})
        if not external_order_id:
            raise ValidationException("External order id is required", {'external_order_id': 'required'})

        defaults = {field: order_data[field] for field in OrderService.INGESTIBLE_FIELDS if field in order_data}
        defaults['fulfillment_state'] = FulfillmentState.PENDING

        try:
            with transaction.atomic():
                order, created = FulfillmentOrder.objects.get_or_create(
                    channel=channel,
                    external_order_id=external_order_id,
                    defaults=defaults,
                )
                if created:
                    AuditLog.record(
                        order,
                        AuditAction.CREATED,
                        actor,
                        new_state=order.fulfillment_state,
                        field_changes={'fulfillment_state': {'old': None, 'new': order.fulfillment_state}},
                        notes=f"Order ingested from {channel}",
                    )
        except IntegrityError:
            # Concurrent ingestion of the same reference won the insert
            order = FulfillmentOrder.objects.get(channel=channel, external_order_id=external_order_id)
            created = False

        if created:
            logger.info(f"Order {order.display_id} ingested from {channel}")
        else:
            logger.debug(f"Order {channel}:{external_order_id} already ingested")
        return order, created

    @staticmethod
    def describe_audit_entry(entry: AuditLog) -> str:
        """Human-readable description of one audit entry."""
        if entry.action == AuditAction.CREATED:
            return f"Order created in state {entry.new_state}"
        if entry.action == AuditAction.STATE_CHANGED:
            return f"Fulfillment state changed from {entry.old_state} to {entry.new_state}"
        if entry.action == AuditAction.STATE_MIGRATED:
            return f"Legacy state {entry.old_state} migrated to {entry.new_state}"
        if entry.action == AuditAction.HOLD_PLACED:
            reason = entry.field_changes.get('hold_reason', {}).get('new', '')
            return f"Order placed on hold ({reason})" if reason else "Order placed on hold"
        if entry.action == AuditAction.HOLD_RELEASED:
            return "Order released from hold"
        if entry.action == AuditAction.TRACKING_UPDATED:
            tracking = entry.field_changes.get('tracking_number', {}).get('new')
            return f"Tracking number set to {tracking}" if tracking else "Tracking information updated"
        return entry.get_action_display()

    @staticmethod
    def get_order_audit(order_id) -> List[Dict[str, Any]]:
        """
        Get an order's audit trail in chronological order.

        Args:
            order_id: FulfillmentOrder UUID

        Returns:
            List of audit entries with descriptions
        """
        order = FulfillmentOrder.objects.get(id=order_id)
        return [
            {
                'id': entry.id,
                'action': entry.action,
                'description': OrderService.describe_audit_entry(entry),
                'actor': entry.actor,
                'job_id': entry.job_id,
                'old_state': entry.old_state,
                'new_state': entry.new_state,
                'field_changes': entry.field_changes,
                'notes': entry.notes,
                'timestamp': entry.timestamp,
            }
            for entry in order.audit_trail.order_by('timestamp')
        ]

    @staticmethod
    def get_dashboard_stats() -> Dict[str, Any]:
        """
        Get fulfillment dashboard counters.

        Returns:
            Counts per lifecycle bucket and the average hours from creation to shipping
        """
        orders = FulfillmentOrder.objects.all()
        today_start = timezone.now().replace(hour=0, minute=0, second=0, microsecond=0)

        shipped_states = [
            FulfillmentState.SHIPPED, FulfillmentState.IN_TRANSIT, FulfillmentState.DELIVERED,
            FulfillmentState.FAILED_DELIVERY, FulfillmentState.RETURNED_TO_SENDER,
        ]

        shipped = orders.filter(shipped_at__isnull=False).values_list('created_at', 'shipped_at')
        durations = [shipped_at - created_at for created_at, shipped_at in shipped]
        average_hours = None
        if durations:
            total = sum(durations, timedelta())
            average_hours = round(total.total_seconds() / 3600 / len(durations), 1)

        return {
            'total': orders.count(),
            'pending': orders.filter(
                fulfillment_state__in=[FulfillmentState.PENDING, FulfillmentState.PREPARATION],
                is_on_hold=False,
            ).count(),
            'in_progress': orders.filter(
                fulfillment_state__in=[
                    FulfillmentState.ACKNOWLEDGED, FulfillmentState.PICKPROCESS, FulfillmentState.LOCKED,
                ],
            ).count(),
            'on_hold': orders.filter(is_on_hold=True).count(),
            'shipped': orders.filter(fulfillment_state__in=shipped_states).count(),
            'delivered': orders.filter(fulfillment_state=FulfillmentState.DELIVERED).count(),
            'shipped_today': orders.filter(shipped_at__gte=today_start).count(),
            'failed': orders.filter(
                Q(fulfillment_state=FulfillmentState.FAILED_DELIVERY)
                | Q(fulfillment_state=FulfillmentState.RETURNED_TO_SENDER)
            ).count(),
            'average_hours_to_ship': average_hours,
        }
