"""
Fulfillment state machine.

Defines the canonical states, the legal transitions between them and the
side effects of each transition. All mutations of an order's state go
through FulfillmentStateMachine, which serializes them on the order row.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from ..exceptions import InvalidTransitionException, OrderOnHoldException, TrackingNotAllowedException
from ..models import FulfillmentOrder, FulfillmentState, AuditLog, AuditAction
from .state_migration import StateMigrationPolicy

logger = logging.getLogger(__name__)


class FulfillmentWorkflow:
    """Workflow rules for FulfillmentOrder state transitions."""

    # Immediate successors; legality is forward reachability along this graph
    ALLOWED_TRANSITIONS = {
        FulfillmentState.PENDING: [FulfillmentState.PREPARATION],
        FulfillmentState.PREPARATION: [FulfillmentState.ACKNOWLEDGED],
        FulfillmentState.ACKNOWLEDGED: [FulfillmentState.PICKPROCESS],
        FulfillmentState.PICKPROCESS: [FulfillmentState.LOCKED],
        FulfillmentState.LOCKED: [FulfillmentState.SHIPPED],
        FulfillmentState.SHIPPED: [FulfillmentState.IN_TRANSIT],
        FulfillmentState.IN_TRANSIT: [
            FulfillmentState.DELIVERED,
            FulfillmentState.FAILED_DELIVERY,
            FulfillmentState.RETURNED_TO_SENDER,
        ],
        FulfillmentState.DELIVERED: [],  # Final state, success
        FulfillmentState.FAILED_DELIVERY: [],  # Final state, failure
        FulfillmentState.RETURNED_TO_SENDER: [],  # Final state, failure
    }

    TERMINAL_STATES = frozenset(
        state for state, successors in ALLOWED_TRANSITIONS.items() if not successors
    )

    SHIPPING_CAPABLE_STATES = frozenset([
        FulfillmentState.SHIPPED,
        FulfillmentState.IN_TRANSIT,
        FulfillmentState.DELIVERED,
        FulfillmentState.FAILED_DELIVERY,
        FulfillmentState.RETURNED_TO_SENDER,
    ])

    @classmethod
    def reachable_from(cls, state: str) -> frozenset:
        """Return every state reachable from `state` (excluding itself)."""
        seen = set()
        pending = list(cls.ALLOWED_TRANSITIONS.get(state, []))
        while pending:
            nxt = pending.pop()
            if nxt in seen:
                continue
            seen.add(nxt)
            pending.extend(cls.ALLOWED_TRANSITIONS.get(nxt, []))
        return frozenset(seen)

    @classmethod
    def validate_transition(cls, current_state: str, new_state: str, order_ref: str = "") -> None:
        """
        Validate that new_state is reachable from current_state.

        Raises:
            InvalidTransitionException: If the transition is not allowed
        """
        if new_state not in cls.ALLOWED_TRANSITIONS:
            raise InvalidTransitionException(current_state, new_state, order_ref)

        if new_state not in cls.reachable_from(current_state):
            raise InvalidTransitionException(current_state, new_state, order_ref)

    @classmethod
    def can_transition_to(cls, current_state: str, new_state: str) -> bool:
        try:
            cls.validate_transition(current_state, new_state)
            return True
        except InvalidTransitionException:
            return False

    @classmethod
    def is_at_or_beyond(cls, current_state: str, target_state: str) -> bool:
        """True if the order already is in target_state or has moved past it."""
        return current_state == target_state or current_state in cls.reachable_from(target_state)

    @classmethod
    def is_terminal(cls, state: str) -> bool:
        return state in cls.TERMINAL_STATES


@dataclass
class OperationOutcome:
    """Result of a state machine or hold/release operation on one order."""
    order: FulfillmentOrder
    changed: bool
    old_state: str = ""
    new_state: str = ""
    audit_entry: Optional[AuditLog] = None


class FulfillmentStateMachine:
    """Applies transitions to fulfillment orders under a per-order row lock."""

    workflow = FulfillmentWorkflow

    def __init__(self, migration_policy: Optional[StateMigrationPolicy] = None):
        self.migration_policy = migration_policy or StateMigrationPolicy()

    def current_state(self, order: FulfillmentOrder) -> str:
        """Canonical view of the stored state; legacy labels are resolved through the migration table."""
        return self.migration_policy.to_canonical(order.fulfillment_state, order.display_id)

    def transition(self, order_id, target_state: str, actor, job_id: str = "",
                   tracking: Optional[Dict[str, Any]] = None, notes: str = "") -> OperationOutcome:
        """
        Move an order to target_state.

        Args:
            order_id: FulfillmentOrder UUID
            target_state: Requested FulfillmentState
            actor: User or component performing the transition
            job_id: Sync or bulk job identifier
            tracking: Optional tracking_number/carrier/tracking_url for shipping states
            notes: Additional audit notes

        Returns:
            OperationOutcome with the updated order

        Raises:
            OrderOnHoldException: If the order is held
            InvalidTransitionException: If target_state is not reachable
            TrackingNotAllowedException: If tracking is given for a non-shipping state
        """
        with transaction.atomic():
            order = FulfillmentOrder.objects.select_for_update().get(id=order_id)
            return self.apply_transition(order, target_state, actor, job_id=job_id, tracking=tracking, notes=notes)

    def apply_transition(self, order: FulfillmentOrder, target_state: str, actor, job_id: str = "",
                         tracking: Optional[Dict[str, Any]] = None, notes: str = "") -> OperationOutcome:
        """
        Apply a transition to an order whose row lock the caller already holds.

        Validation happens before any field is touched, so a rejected
        transition leaves the order unmodified.
        """
        if order.is_on_hold:
            raise OrderOnHoldException(order.display_id, order.hold_reason)

        old_state = self.current_state(order)
        self.workflow.validate_transition(old_state, target_state, order.display_id)

        if tracking and target_state not in self.workflow.SHIPPING_CAPABLE_STATES:
            raise TrackingNotAllowedException(order.display_id, target_state)

        now = timezone.now()
        field_changes = {'fulfillment_state': {'old': old_state, 'new': target_state}}
        update_fields = ['fulfillment_state', 'updated_at']

        order.fulfillment_state = target_state

        if target_state in self.workflow.SHIPPING_CAPABLE_STATES and not order.shipped_at:
            order.shipped_at = now
            update_fields.append('shipped_at')
        if target_state == FulfillmentState.DELIVERED:
            order.delivered_at = now
            update_fields.append('delivered_at')
        if tracking:
            field_changes.update(self._apply_tracking(order, tracking))
            update_fields.extend(['tracking_number', 'carrier', 'tracking_url'])

        order.save(update_fields=update_fields)

        entry = AuditLog.record(
            order,
            AuditAction.STATE_CHANGED,
            actor,
            old_state=old_state,
            new_state=target_state,
            field_changes=field_changes,
            job_id=job_id,
            notes=notes,
        )

        logger.info(f"Order {order.display_id} moved from {old_state} to {target_state} by {entry.actor}")
        return OperationOutcome(order=order, changed=True, old_state=old_state,
                                new_state=target_state, audit_entry=entry)

    def update_tracking(self, order_id, tracking_number: str, carrier: str, actor,
                        tracking_url: str = "", job_id: str = "") -> OperationOutcome:
        """
        Set tracking information on a shipped order.

        Raises:
            TrackingNotAllowedException: If the order has not reached a shipping-capable state
        """
        with transaction.atomic():
            order = FulfillmentOrder.objects.select_for_update().get(id=order_id)
            return self.apply_tracking(order, {
                'tracking_number': tracking_number,
                'carrier': carrier,
                'tracking_url': tracking_url,
            }, actor, job_id=job_id)

    def apply_tracking(self, order: FulfillmentOrder, tracking: Dict[str, Any], actor,
                       job_id: str = "") -> OperationOutcome:
        """Apply tracking to a locked order; unchanged tracking writes nothing."""
        state = self.current_state(order)
        if state not in self.workflow.SHIPPING_CAPABLE_STATES:
            raise TrackingNotAllowedException(order.display_id, state)

        field_changes = self._apply_tracking(order, tracking)
        if not field_changes:
            return OperationOutcome(order=order, changed=False, old_state=state, new_state=state)

        order.save(update_fields=['tracking_number', 'carrier', 'tracking_url', 'updated_at'])
        entry = AuditLog.record(
            order,
            AuditAction.TRACKING_UPDATED,
            actor,
            old_state=state,
            new_state=state,
            field_changes=field_changes,
            job_id=job_id,
        )

        logger.info(f"Tracking for order {order.display_id} set to {order.carrier} {order.tracking_number}")
        return OperationOutcome(order=order, changed=True, old_state=state, new_state=state, audit_entry=entry)

    @staticmethod
    def _apply_tracking(order: FulfillmentOrder, tracking: Dict[str, Any]) -> Dict[str, Any]:
        changes = {}
        for field in ('tracking_number', 'carrier', 'tracking_url'):
            value = tracking.get(field)
            if value is None or value == getattr(order, field):
                continue
            changes[field] = {'old': getattr(order, field), 'new': value}
            setattr(order, field, value)
        return changes
