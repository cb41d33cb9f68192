"""
Legacy fulfillment state migration.

Maps deprecated state labels onto the canonical FulfillmentState set. Labels
absent from the table are never guessed into a canonical state: they are
reported and left untouched for manual intervention.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.db import transaction

from ..exceptions import UnmigratableStateException
from ..models import FulfillmentOrder, FulfillmentState, AuditLog, AuditAction

logger = logging.getLogger(__name__)


class StateMigrationPolicy:
    """Fixed mapping from legacy labels to canonical states."""

    LEGACY_STATE_MAP = {
        'AWAITING_STOCK': FulfillmentState.PREPARATION,
        'READY_FOR_PICKING': FulfillmentState.ACKNOWLEDGED,
        'PICKING': FulfillmentState.PICKPROCESS,
        'PICKED': FulfillmentState.PICKPROCESS,
        'PACKING': FulfillmentState.PICKPROCESS,
        'PACKED': FulfillmentState.LOCKED,
        'LABEL_CREATED': FulfillmentState.LOCKED,
        'OUT_FOR_DELIVERY': FulfillmentState.IN_TRANSIT,
    }

    @classmethod
    def is_canonical(cls, label: str) -> bool:
        return label in FulfillmentState.values

    @classmethod
    def is_legacy(cls, label: str) -> bool:
        return label in cls.LEGACY_STATE_MAP

    @classmethod
    def to_canonical(cls, label: str, order_ref: str = "") -> str:
        """
        Resolve a stored label to its canonical state.

        Canonical labels map to themselves.

        Raises:
            UnmigratableStateException: If the label is neither canonical nor in the table
        """
        if cls.is_canonical(label):
            return FulfillmentState(label)
        if cls.is_legacy(label):
            return cls.LEGACY_STATE_MAP[label]
        raise UnmigratableStateException(label, order_ref)


@dataclass
class MigrationReport:
    """Outcome of a migration run."""
    migrated: int = 0
    unchanged: int = 0
    breakdown: Dict[str, int] = field(default_factory=dict)
    unmigratable: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self):
        return {
            'migrated': self.migrated,
            'unchanged': self.unchanged,
            'breakdown': dict(self.breakdown),
            'unmigratable': list(self.unmigratable),
        }


class StateMigrationService:
    """Applies StateMigrationPolicy to stored orders."""

    def __init__(self, policy: Optional[StateMigrationPolicy] = None):
        self.policy = policy or StateMigrationPolicy()

    def migrate_orders(self, queryset=None, actor="state-migration", job_id: str = "",
                       dry_run: bool = False) -> MigrationReport:
        """
        Migrate every order in the queryset carrying a legacy label.

        Args:
            queryset: Orders to inspect (defaults to all orders)
            actor: Actor recorded in the audit trail
            job_id: Job identifier recorded in the audit trail
            dry_run: Report what would change without writing

        Returns:
            MigrationReport
        """
        report = MigrationReport()
        if queryset is None:
            queryset = FulfillmentOrder.objects.all()

        for order_id in queryset.values_list('id', flat=True):
            self._migrate_one(order_id, report, actor, job_id, dry_run)

        logger.info(
            f"State migration finished: {report.migrated} migrated, {report.unchanged} unchanged, "
            f"{len(report.unmigratable)} unmigratable{' (dry run)' if dry_run else ''}"
        )
        return report

    def _migrate_one(self, order_id, report: MigrationReport, actor, job_id: str, dry_run: bool):
        with transaction.atomic():
            order = FulfillmentOrder.objects.select_for_update().get(id=order_id)
            label = order.fulfillment_state

            try:
                target = self.policy.to_canonical(label, order.display_id)
            except UnmigratableStateException as e:
                logger.warning(e.message)
                report.unmigratable.append({
                    'order_id': str(order.id),
                    'order': order.display_id,
                    'label': label,
                })
                return

            if target == label:
                report.unchanged += 1
                return

            key = f"{label} → {target}"
            report.breakdown[key] = report.breakdown.get(key, 0) + 1
            report.migrated += 1

            if dry_run:
                return

            order.fulfillment_state = target
            order.save(update_fields=['fulfillment_state', 'updated_at'])
            AuditLog.record(
                order,
                AuditAction.STATE_MIGRATED,
                actor,
                old_state=label,
                new_state=target,
                field_changes={'fulfillment_state': {'old': label, 'new': target}},
                job_id=job_id,
                notes="Legacy fulfillment state migrated",
            )
