"""Explicitly constructed dependencies for sync runs.

Nothing in the sync path reaches for module-level singletons; callers build
a SyncContext once (from config, or with fakes in tests) and hand it to the
orchestrator.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from journeysync.cli.config import JourneySyncConfig
from journeysync.services.conflict_detector import ConflictDetector
from journeysync.services.platform_client import PlatformClient
from journeysync.services.publish_ledger import PublishLedger
from journeysync.services.retry_policy import RetryPolicy
from journeysync.services.touchpoint_publisher import TouchpointPublisher


@dataclass
class SyncContext:
    """Everything a sync run needs.

    Attributes:
        db: Session shared by every worker of one run (single thread).
        ledger: Publish state ledger.
        platform: Remote platform client.
        publisher: Touchpoint publisher bound to ``platform`` and ``ledger``.
        retry_policy: Backoff for transient remote failures.
        detector: Conflict detector.
        concurrency: Worker pool size for touchpoint publishes.
        default_location_id: Fallback when a client has no location id.
    """

    db: Session
    ledger: PublishLedger
    platform: PlatformClient
    publisher: TouchpointPublisher
    retry_policy: RetryPolicy
    detector: ConflictDetector
    concurrency: int = 5
    default_location_id: str | None = None


def build_sync_context(
    db: Session,
    config: JourneySyncConfig,
    platform: PlatformClient | None = None,
) -> SyncContext:
    """Wire a SyncContext from configuration.

    Args:
        db: Session for ledger and run bookkeeping.
        config: Loaded configuration.
        platform: Pre-built client (tests pass one with a mock transport).

    Returns:
        Ready-to-use SyncContext. The caller owns closing ``platform``.
    """
    if platform is None:
        platform = PlatformClient(
            api_key=config.platform.api_key,
            base_url=config.platform.base_url,
            api_version=config.platform.api_version,
            timeout=config.platform.timeout_seconds,
        )
    ledger = PublishLedger(db)
    return SyncContext(
        db=db,
        ledger=ledger,
        platform=platform,
        publisher=TouchpointPublisher(platform, ledger),
        retry_policy=RetryPolicy(
            max_attempts=config.sync.max_attempts,
            base_delay=config.sync.base_delay_seconds,
            max_delay=config.sync.max_delay_seconds,
        ),
        detector=ConflictDetector(),
        concurrency=config.sync.concurrency,
        default_location_id=config.platform.default_location_id,
    )
