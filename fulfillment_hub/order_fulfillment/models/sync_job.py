"""
Sync job model for fulfillment network reconciliation runs.
"""

import uuid
from django.db import models
from django.utils import timezone


class SyncScope(models.TextChoices):
    """Logical scope of a sync run."""
    INCREMENTAL_SYNC = 'incremental_sync', 'Incremental Sync'
    MANUAL_POLL = 'manual_poll', 'Manual Poll'
    MANUAL_PUSH = 'manual_push', 'Manual Push'


class SyncJob(models.Model):
    """
    One attempt to reconcile orders with the external fulfillment network.

    Kept for audit and log correlation only. The job id is not unique and is
    never used to deduplicate work; idempotency comes from the orders' own
    state.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    job_id = models.CharField(max_length=100, db_index=True)
    scope = models.CharField(max_length=30, choices=SyncScope.choices)
    provider = models.CharField(max_length=100, blank=True)

    # Result tally
    total_processed = models.PositiveIntegerField(default=0)
    updated = models.PositiveIntegerField(default=0)
    unchanged = models.PositiveIntegerField(default=0)
    failed = models.PositiveIntegerField(default=0)
    failures = models.JSONField(default=list, blank=True)

    forced = models.BooleanField(default=False)
    cancelled = models.BooleanField(default=False)

    started_at = models.DateTimeField(default=timezone.now)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['scope', '-started_at'], name='syncjob_scope_started_idx'),
        ]

    def __str__(self):
        return f"{self.job_id} ({self.scope})"

    @property
    def duration_seconds(self):
        if not self.finished_at:
            return None
        return (self.finished_at - self.started_at).total_seconds()
