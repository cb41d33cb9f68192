"""
Tests for the fulfillment state machine.
"""

import uuid
from django.test import TestCase

from ..models import FulfillmentOrder, FulfillmentState, HoldReason, AuditLog, AuditAction
from ..services import FulfillmentStateMachine, FulfillmentWorkflow, HoldReleaseController
from ..exceptions import (
    BusinessException, InvalidTransitionException, OrderOnHoldException, TrackingNotAllowedException,
    UnmigratableStateException,
)
from .helpers import create_order, create_user


HAPPY_PATH = [
    FulfillmentState.PREPARATION,
    FulfillmentState.ACKNOWLEDGED,
    FulfillmentState.PICKPROCESS,
    FulfillmentState.LOCKED,
    FulfillmentState.SHIPPED,
    FulfillmentState.IN_TRANSIT,
    FulfillmentState.DELIVERED,
]


class FulfillmentWorkflowTest(TestCase):
    """Test transition rules without touching orders."""

    def test_terminal_states(self):
        self.assertEqual(
            FulfillmentWorkflow.TERMINAL_STATES,
            {FulfillmentState.DELIVERED, FulfillmentState.FAILED_DELIVERY, FulfillmentState.RETURNED_TO_SENDER}
        )

    def test_reachability_is_forward_only(self):
        self.assertIn(FulfillmentState.SHIPPED, FulfillmentWorkflow.reachable_from(FulfillmentState.PENDING))
        self.assertNotIn(FulfillmentState.PENDING, FulfillmentWorkflow.reachable_from(FulfillmentState.PENDING))
        self.assertNotIn(FulfillmentState.PICKPROCESS, FulfillmentWorkflow.reachable_from(FulfillmentState.LOCKED))
        self.assertEqual(FulfillmentWorkflow.reachable_from(FulfillmentState.DELIVERED), frozenset())

    def test_failure_terminals_are_not_interchangeable(self):
        self.assertFalse(FulfillmentWorkflow.can_transition_to(
            FulfillmentState.FAILED_DELIVERY, FulfillmentState.DELIVERED
        ))
        self.assertFalse(FulfillmentWorkflow.can_transition_to(
            FulfillmentState.DELIVERED, FulfillmentState.RETURNED_TO_SENDER
        ))

    def test_is_at_or_beyond(self):
        self.assertTrue(FulfillmentWorkflow.is_at_or_beyond(FulfillmentState.SHIPPED, FulfillmentState.SHIPPED))
        self.assertTrue(FulfillmentWorkflow.is_at_or_beyond(FulfillmentState.DELIVERED, FulfillmentState.SHIPPED))
        self.assertFalse(FulfillmentWorkflow.is_at_or_beyond(FulfillmentState.LOCKED, FulfillmentState.SHIPPED))


class FulfillmentStateMachineTest(TestCase):
    """Test transitions applied to stored orders."""

    def setUp(self):
        """Set up test data."""
        self.user = create_user()
        self.state_machine = FulfillmentStateMachine()

    def _state_changes(self, order):
        return AuditLog.objects.filter(order=order, action=AuditAction.STATE_CHANGED)

    def test_full_lifecycle_writes_one_audit_entry_per_transition(self):
        """Test walking the whole path from PENDING to DELIVERED."""
        order = create_order()

        for target in HAPPY_PATH:
            outcome = self.state_machine.transition(order.id, target, self.user)
            self.assertTrue(outcome.changed)
            self.assertEqual(outcome.order.fulfillment_state, target)

        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.DELIVERED)
        self.assertIsNotNone(order.shipped_at)
        self.assertIsNotNone(order.delivered_at)

        entries = list(self._state_changes(order))
        self.assertEqual(len(entries), len(HAPPY_PATH))
        self.assertEqual([e.new_state for e in entries], HAPPY_PATH)
        self.assertEqual(entries[0].old_state, FulfillmentState.PENDING)
        self.assertTrue(all(e.actor == 'testuser' and e.user == self.user for e in entries))

        timestamps = [e.timestamp for e in entries]
        self.assertEqual(timestamps, sorted(timestamps))

    def test_forward_skip_is_allowed(self):
        order = create_order(FulfillmentState.PREPARATION)

        outcome = self.state_machine.transition(order.id, FulfillmentState.LOCKED, 'warehouse-scanner')

        self.assertEqual(outcome.old_state, FulfillmentState.PREPARATION)
        self.assertEqual(outcome.new_state, FulfillmentState.LOCKED)
        self.assertEqual(outcome.audit_entry.actor, 'warehouse-scanner')
        self.assertIsNone(outcome.audit_entry.user)

    def test_backward_transition_fails_without_mutation(self):
        """Test that an illegal transition leaves the order and its trail untouched."""
        order = create_order(FulfillmentState.LOCKED)
        updated_at = order.updated_at

        with self.assertRaises(InvalidTransitionException) as ctx:
            self.state_machine.transition(order.id, FulfillmentState.PICKPROCESS, self.user)

        self.assertEqual(ctx.exception.code, 'INVALID_TRANSITION')
        self.assertEqual(ctx.exception.details['current_state'], FulfillmentState.LOCKED)
        self.assertEqual(ctx.exception.details['requested_state'], FulfillmentState.PICKPROCESS)

        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.LOCKED)
        self.assertEqual(order.updated_at, updated_at)
        self.assertEqual(order.audit_trail.count(), 0)

    def test_same_state_transition_fails(self):
        order = create_order(FulfillmentState.SHIPPED)

        with self.assertRaises(InvalidTransitionException):
            self.state_machine.transition(order.id, FulfillmentState.SHIPPED, self.user)

    def test_terminal_state_cannot_move(self):
        order = create_order(FulfillmentState.FAILED_DELIVERY)

        with self.assertRaises(InvalidTransitionException):
            self.state_machine.transition(order.id, FulfillmentState.DELIVERED, self.user)
        with self.assertRaises(InvalidTransitionException):
            self.state_machine.transition(order.id, FulfillmentState.IN_TRANSIT, self.user)

    def test_hold_blocks_transitions_regardless_of_path(self):
        """Test that a held order reports the hold even for an illegal request."""
        order = create_order(FulfillmentState.LOCKED)
        HoldReleaseController(self.state_machine).hold(order.id, HoldReason.INCORRECT_ADDRESS, self.user)

        with self.assertRaises(OrderOnHoldException):
            self.state_machine.transition(order.id, FulfillmentState.SHIPPED, self.user)
        with self.assertRaises(OrderOnHoldException) as ctx:
            self.state_machine.transition(order.id, FulfillmentState.PENDING, self.user)

        self.assertEqual(ctx.exception.details['hold_reason'], HoldReason.INCORRECT_ADDRESS)
        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.LOCKED)
        self.assertEqual(self._state_changes(order).count(), 0)

    def test_release_restores_transition_eligibility(self):
        order = create_order(FulfillmentState.LOCKED)
        controller = HoldReleaseController(self.state_machine)
        controller.hold(order.id, HoldReason.OTHER, self.user)
        controller.release(order.id, self.user)

        outcome = self.state_machine.transition(order.id, FulfillmentState.SHIPPED, self.user)
        self.assertEqual(outcome.order.fulfillment_state, FulfillmentState.SHIPPED)

        with self.assertRaises(InvalidTransitionException):
            self.state_machine.transition(order.id, FulfillmentState.LOCKED, self.user)

    def test_shipping_transition_with_tracking(self):
        order = create_order(FulfillmentState.LOCKED)

        outcome = self.state_machine.transition(
            order.id, FulfillmentState.SHIPPED, self.user,
            tracking={'tracking_number': '1Z999', 'carrier': 'UPS'}, job_id='bulk-fulfill-20250101-abcdef12',
        )

        order.refresh_from_db()
        self.assertEqual(order.tracking_number, '1Z999')
        self.assertEqual(order.carrier, 'UPS')
        self.assertIsNotNone(order.shipped_at)
        self.assertEqual(outcome.audit_entry.job_id, 'bulk-fulfill-20250101-abcdef12')
        self.assertEqual(outcome.audit_entry.field_changes['tracking_number'], {'old': '', 'new': '1Z999'})

    def test_tracking_rejected_for_non_shipping_target(self):
        order = create_order(FulfillmentState.ACKNOWLEDGED)

        with self.assertRaises(TrackingNotAllowedException):
            self.state_machine.transition(
                order.id, FulfillmentState.PICKPROCESS, self.user, tracking={'tracking_number': '1Z999'}
            )

        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.ACKNOWLEDGED)
        self.assertEqual(order.tracking_number, '')

    def test_update_tracking(self):
        order = create_order(FulfillmentState.SHIPPED)

        outcome = self.state_machine.update_tracking(order.id, 'JJD000', 'DHL', self.user)
        self.assertTrue(outcome.changed)
        self.assertEqual(outcome.audit_entry.action, AuditAction.TRACKING_UPDATED)

        # Same tracking again writes nothing
        outcome = self.state_machine.update_tracking(order.id, 'JJD000', 'DHL', self.user)
        self.assertFalse(outcome.changed)
        self.assertEqual(order.audit_trail.filter(action=AuditAction.TRACKING_UPDATED).count(), 1)

    def test_update_tracking_before_shipping_fails(self):
        order = create_order(FulfillmentState.PICKPROCESS)

        with self.assertRaises(TrackingNotAllowedException):
            self.state_machine.update_tracking(order.id, 'JJD000', 'DHL', self.user)

    def test_legacy_label_resolves_before_transition(self):
        order = create_order('PACKED')

        outcome = self.state_machine.transition(order.id, FulfillmentState.SHIPPED, self.user)

        self.assertEqual(outcome.old_state, FulfillmentState.LOCKED)
        self.assertEqual(outcome.audit_entry.old_state, FulfillmentState.LOCKED)

    def test_unknown_label_is_not_guessed(self):
        order = create_order('LOST_IN_WAREHOUSE')

        with self.assertRaises(UnmigratableStateException):
            self.state_machine.transition(order.id, FulfillmentState.SHIPPED, self.user)

        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, 'LOST_IN_WAREHOUSE')

    def test_missing_order(self):
        with self.assertRaises(FulfillmentOrder.DoesNotExist):
            self.state_machine.transition(uuid.uuid4(), FulfillmentState.PREPARATION, self.user)


class AuditLogTest(TestCase):
    """Test audit trail guarantees."""

    def test_entries_are_append_only(self):
        order = create_order()
        entry = AuditLog.record(order, AuditAction.CREATED, None, new_state=FulfillmentState.PENDING)

        self.assertEqual(entry.actor, 'system')

        entry.notes = 'rewritten'
        with self.assertRaises(ValueError):
            entry.save()
        with self.assertRaises(ValueError):
            entry.delete()

    def test_orders_are_retained(self):
        order = create_order()

        with self.assertRaises(BusinessException) as ctx:
            order.delete()

        self.assertEqual(ctx.exception.code, 'ORDER_RETAINED')
        self.assertTrue(FulfillmentOrder.objects.filter(id=order.id).exists())
