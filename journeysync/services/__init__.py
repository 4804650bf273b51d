"""Service layer for journey sync.

Provides journey editing with optimistic locking, client management,
sync run bookkeeping and the publish ledger.
"""

from journeysync.services.client_service import ClientService
from journeysync.services.journey_service import JourneyService
from journeysync.services.publish_ledger import PublishLedger
from journeysync.services.sync_run_service import InvalidStateTransition, SyncRunService

__all__ = [
    "ClientService",
    "JourneyService",
    "PublishLedger",
    "SyncRunService",
    "InvalidStateTransition",
]
