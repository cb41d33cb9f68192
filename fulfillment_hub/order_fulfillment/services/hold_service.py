"""
Hold/release control plane for fulfillment orders.

A hold gates forward transitions without touching the order's fulfillment
state. Holding and releasing are idempotent: asking for the state the order
is already in succeeds without writing anything.
"""

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone

from ..exceptions import HoldNotAllowedException, HoldNotReleasableException, ValidationException
from ..models import FulfillmentOrder, HoldReason, HOLD_PRIORITY, AuditLog, AuditAction, actor_label
from .workflow import FulfillmentStateMachine, FulfillmentWorkflow, OperationOutcome

logger = logging.getLogger(__name__)


# Holds only the system may lift (e.g. once a payment webhook arrives)
SYSTEM_MANAGED_HOLDS = frozenset([HoldReason.AWAITING_PAYMENT])


class HoldReleaseController:
    """Applies and reverses holds under the same row lock the state machine uses."""

    def __init__(self, state_machine: Optional[FulfillmentStateMachine] = None):
        self.state_machine = state_machine or FulfillmentStateMachine()

    def hold(self, order_id, reason: str, actor, notes: str = "", job_id: str = "") -> OperationOutcome:
        """
        Put an order on hold.

        Args:
            order_id: FulfillmentOrder UUID
            reason: One of HoldReason
            actor: User or component placing the hold
            notes: Optional hold notes
            job_id: Sync or bulk job identifier

        Returns:
            OperationOutcome; changed is False if the order was already held

        Raises:
            ValidationException: If the reason is unknown
            HoldNotAllowedException: If the order is in a terminal state
        """
        if reason not in HoldReason.values:
            raise ValidationException(f"Invalid hold reason '{reason}'", {'reason': reason})

        with transaction.atomic():
            order = FulfillmentOrder.objects.select_for_update().get(id=order_id)
            return self.apply_hold(order, reason, actor, notes=notes, job_id=job_id)

    def apply_hold(self, order: FulfillmentOrder, reason: str, actor, notes: str = "",
                   job_id: str = "") -> OperationOutcome:
        """Hold an order whose row lock the caller already holds."""
        state = self.state_machine.current_state(order)

        if order.is_on_hold:
            return OperationOutcome(order=order, changed=False, old_state=state, new_state=state)

        if FulfillmentWorkflow.is_terminal(state):
            raise HoldNotAllowedException(order.display_id, state)

        old_priority = order.priority_level
        order.is_on_hold = True
        order.hold_reason = reason
        order.hold_notes = notes or ""
        order.hold_placed_at = timezone.now()
        order.hold_placed_by = actor_label(actor)
        order.priority_level = HOLD_PRIORITY[HoldReason(reason)]
        order.save(update_fields=[
            'is_on_hold', 'hold_reason', 'hold_notes', 'hold_placed_at',
            'hold_placed_by', 'priority_level', 'updated_at',
        ])

        entry = AuditLog.record(
            order,
            AuditAction.HOLD_PLACED,
            actor,
            old_state=state,
            new_state=state,
            field_changes={
                'is_on_hold': {'old': False, 'new': True},
                'hold_reason': {'old': '', 'new': reason},
                'priority_level': {'old': old_priority, 'new': order.priority_level},
            },
            job_id=job_id,
            notes=notes,
        )

        logger.info(f"Order {order.display_id} placed on hold ({reason}) by {entry.actor}")
        return OperationOutcome(order=order, changed=True, old_state=state, new_state=state, audit_entry=entry)

    def release(self, order_id, actor, system: bool = False, job_id: str = "") -> OperationOutcome:
        """
        Release an order from hold.

        Releasing only removes the gate; a later transition is needed to
        move the order forward.

        Args:
            order_id: FulfillmentOrder UUID
            actor: User or component releasing the hold
            system: True when released by the system (required for payment holds)
            job_id: Sync or bulk job identifier

        Returns:
            OperationOutcome; changed is False if the order was not held

        Raises:
            HoldNotReleasableException: If an operator tries to release a system-managed hold
        """
        with transaction.atomic():
            order = FulfillmentOrder.objects.select_for_update().get(id=order_id)
            return self.apply_release(order, actor, system=system, job_id=job_id)

    def apply_release(self, order: FulfillmentOrder, actor, system: bool = False,
                      job_id: str = "") -> OperationOutcome:
        """Release an order whose row lock the caller already holds."""
        state = self.state_machine.current_state(order)

        if not order.is_on_hold:
            return OperationOutcome(order=order, changed=False, old_state=state, new_state=state)

        if order.hold_reason in SYSTEM_MANAGED_HOLDS and not system:
            raise HoldNotReleasableException(order.display_id, order.hold_reason)

        old_reason = order.hold_reason
        old_priority = order.priority_level
        order.is_on_hold = False
        order.hold_reason = ""
        order.hold_notes = ""
        order.hold_released_at = timezone.now()
        order.hold_released_by = actor_label(actor)
        order.priority_level = 0
        order.save(update_fields=[
            'is_on_hold', 'hold_reason', 'hold_notes', 'hold_released_at',
            'hold_released_by', 'priority_level', 'updated_at',
        ])

        entry = AuditLog.record(
            order,
            AuditAction.HOLD_RELEASED,
            actor,
            old_state=state,
            new_state=state,
            field_changes={
                'is_on_hold': {'old': True, 'new': False},
                'hold_reason': {'old': old_reason, 'new': ''},
                'priority_level': {'old': old_priority, 'new': 0},
            },
            job_id=job_id,
            notes="Hold released - ready for processing",
        )

        logger.info(f"Order {order.display_id} released from hold by {entry.actor}")
        return OperationOutcome(order=order, changed=True, old_state=state, new_state=state, audit_entry=entry)
