"""
Audit trail model for the Fulfillment Order lifecycle.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.conf import settings
from django.utils import timezone


class AuditAction(models.TextChoices):
    """Actions recorded in an order's audit trail."""
    CREATED = 'created', 'Created'
    STATE_CHANGED = 'state_changed', 'State Changed'
    HOLD_PLACED = 'hold_placed', 'Hold Placed'
    HOLD_RELEASED = 'hold_released', 'Hold Released'
    TRACKING_UPDATED = 'tracking_updated', 'Tracking Updated'
    STATE_MIGRATED = 'state_migrated', 'State Migrated'


class AuditLog(models.Model):
    """
    Append-only audit trail entry for a fulfillment order.

    Entries are ordered by timestamp and are the only way to learn an order's
    history. Existing rows are never updated or deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        'FulfillmentOrder',
        on_delete=models.PROTECT,
        related_name='audit_trail',
        help_text="Order this entry belongs to"
    )

    action = models.CharField(
        max_length=30,
        choices=AuditAction.choices,
        help_text="Action performed"
    )

    # Who or what performed the action
    actor = models.CharField(
        max_length=150,
        help_text="Username, system component or sync job that performed the action"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='fulfillment_audit_logs',
        help_text="User who performed the action, when performed by a person"
    )
    job_id = models.CharField(
        max_length=100,
        blank=True,
        db_index=True,
        help_text="Sync or bulk job the action was part of"
    )

    # State before and after the action
    old_state = models.CharField(max_length=30, blank=True)
    new_state = models.CharField(max_length=30, blank=True)
    field_changes = models.JSONField(
        default=dict,
        blank=True,
        help_text="Specific fields that were changed"
    )

    timestamp = models.DateTimeField(default=timezone.now)
    notes = models.TextField(blank=True)
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional audit metadata"
    )

    class Meta:
        ordering = ['timestamp']
        indexes = [
            models.Index(fields=['order', 'timestamp'], name='audit_order_ts_idx'),
            models.Index(fields=['action', '-timestamp'], name='audit_action_ts_idx'),
            models.Index(fields=['timestamp'], name='audit_ts_idx'),
        ]

    def __str__(self):
        return f"{self.order_id} - {self.action} by {self.actor} at {self.timestamp}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Audit log entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit log entries are append-only")

    @classmethod
    def record(cls, order, action: str, actor, old_state: str = "", new_state: str = "",
               field_changes=None, job_id: str = "", notes: str = "", metadata=None):
        """
        Append an audit entry for an order.

        Must be called inside the transaction that holds the order's row lock,
        so the entry becomes visible atomically with the change it describes.
        Timestamps never go backwards within one order's trail.

        Args:
            order: FulfillmentOrder instance
            action: One of AuditAction
            actor: User instance or label of the acting component
            old_state: State before the action
            new_state: State after the action
            field_changes: {field: {'old': ..., 'new': ...}}
            job_id: Sync or bulk job identifier
            notes: Additional notes
            metadata: Additional metadata
        """
        def convert_values(obj):
            if isinstance(obj, dict):
                return {k: convert_values(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert_values(item) for item in obj]
            elif isinstance(obj, Decimal):
                return str(obj)
            elif hasattr(obj, 'isoformat'):
                return obj.isoformat()
            else:
                return obj

        timestamp = timezone.now()
        last = cls.objects.filter(order=order).order_by('-timestamp').values_list('timestamp', flat=True).first()
        if last is not None and last > timestamp:
            timestamp = last

        return cls.objects.create(
            order=order,
            action=action,
            actor=actor_label(actor),
            user=actor if _is_user(actor) and actor.pk is not None else None,
            job_id=job_id or "",
            old_state=old_state or "",
            new_state=new_state or "",
            field_changes=convert_values(field_changes or {}),
            timestamp=timestamp,
            notes=notes,
            metadata=convert_values(metadata or {}),
        )


def _is_user(actor):
    return hasattr(actor, 'get_username')


def actor_label(actor) -> str:
    """Return a printable label for a user instance or component name."""
    if actor is None:
        return "system"
    if _is_user(actor):
        return actor.get_username()
    return str(actor)
