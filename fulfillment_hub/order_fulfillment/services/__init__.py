"""
Fulfillment Order lifecycle services
"""

from .workflow import FulfillmentWorkflow, FulfillmentStateMachine, OperationOutcome
from .state_migration import StateMigrationPolicy, StateMigrationService, MigrationReport
from .hold_service import HoldReleaseController
from .batch import BatchResult, ItemResult, ItemOutcome, run_batch
from .bulk_service import BulkOperationExecutor
from .sync_service import ExternalSyncCoordinator, RetryPolicy
from .sync_logger import SyncLogger, StateChange
from .job_identity import generate_job_id
from .order_service import OrderService

__all__ = [
    # State machine
    'FulfillmentWorkflow', 'FulfillmentStateMachine', 'OperationOutcome',
    'StateMigrationPolicy', 'StateMigrationService', 'MigrationReport',

    # Hold control plane
    'HoldReleaseController',

    # Batches
    'BatchResult', 'ItemResult', 'ItemOutcome', 'run_batch',
    'BulkOperationExecutor', 'ExternalSyncCoordinator', 'RetryPolicy',

    # Logging and correlation
    'SyncLogger', 'StateChange', 'generate_job_id',

    # Services
    'OrderService',
]
