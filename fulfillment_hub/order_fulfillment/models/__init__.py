"""
Fulfillment Order lifecycle models
"""

from .order import FulfillmentOrder, FulfillmentState, HoldReason, SalesChannel, HOLD_PRIORITY
from .audit import AuditLog, AuditAction, actor_label
from .sync_job import SyncJob, SyncScope

__all__ = [
    # Order models
    'FulfillmentOrder', 'FulfillmentState', 'HoldReason', 'SalesChannel', 'HOLD_PRIORITY',

    # Audit
    'AuditLog', 'AuditAction', 'actor_label',

    # Sync jobs
    'SyncJob', 'SyncScope',
]
