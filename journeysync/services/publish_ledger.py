"""Durable publish state ledger keyed by touchpoint id.

The ledger records, for every touchpoint ever published, the content hash
of what was last pushed and the remote template id it landed on. The
publisher consults it to skip unchanged content and to turn a would-be
create into an update when the touchpoint row lost its remote id.
"""

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from journeysync.db.models import PublishStateEntry, utc_now_iso
from journeysync.errors import LedgerUnavailableError, ValidationError

logger = logging.getLogger(__name__)

# Keys that change without the template content changing
VOLATILE_KEYS = frozenset(
    {"updated_at", "created_at", "published_at", "location_id", "locationId"}
)


def _strip_volatile(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: _strip_volatile(v) for k, v in value.items() if k not in VOLATILE_KEYS
        }
    if isinstance(value, list):
        return [_strip_volatile(v) for v in value]
    return value


def compute_content_hash(payload: dict[str, Any]) -> str:
    """Return a stable SHA-256 hex digest of a template payload.

    Volatile keys are dropped at every nesting level, then the payload is
    serialized as canonical JSON (sorted keys, compact separators).

    Args:
        payload: Rendered template payload.

    Returns:
        64-character hex digest.
    """
    canonical = json.dumps(
        _strip_volatile(payload),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class PublishLedger:
    """Publish state ledger backed by the ``publish_state`` table.

    Reads and writes are synchronous and commit immediately. Callers that
    publish concurrently hold ``lock_for(touchpoint_id)`` across the
    should-publish check, the remote call, and ``record_publish``.

    Attributes:
        db: SQLAlchemy session for ledger storage.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, touchpoint_id: str) -> asyncio.Lock:
        """Return the mutex serializing publishes of one touchpoint."""
        lock = self._locks.get(touchpoint_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[touchpoint_id] = lock
        return lock

    def get(self, touchpoint_id: str) -> PublishStateEntry | None:
        try:
            return self.db.get(PublishStateEntry, touchpoint_id)
        except SQLAlchemyError as e:
            raise LedgerUnavailableError(f"ledger read failed: {e}") from e

    def get_many(self, touchpoint_ids: list[str]) -> dict[str, PublishStateEntry]:
        """Fetch entries for several touchpoints, keyed by id (missing ids omitted)."""
        if not touchpoint_ids:
            return {}
        try:
            rows = (
                self.db.query(PublishStateEntry)
                .filter(PublishStateEntry.touchpoint_id.in_(touchpoint_ids))
                .all()
            )
        except SQLAlchemyError as e:
            raise LedgerUnavailableError(f"ledger read failed: {e}") from e
        return {row.touchpoint_id: row for row in rows}

    def entries(self) -> list[PublishStateEntry]:
        try:
            return (
                self.db.query(PublishStateEntry)
                .order_by(PublishStateEntry.published_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            raise LedgerUnavailableError(f"ledger read failed: {e}") from e

    def should_publish(self, touchpoint_id: str, payload: dict[str, Any]) -> bool:
        """True when the touchpoint was never published or its content changed."""
        entry = self.get(touchpoint_id)
        if entry is None:
            return True
        return entry.content_hash != compute_content_hash(payload)

    def record_publish(
        self,
        touchpoint_id: str,
        payload: dict[str, Any],
        remote_template_id: str | None,
        kind: str,
        name: str | None = None,
        sent_payload: dict[str, Any] | None = None,
    ) -> PublishStateEntry:
        """Upsert the ledger entry after a successful remote publish.

        Args:
            touchpoint_id: Local touchpoint id.
            payload: Local template payload (drives ``content_hash``).
            remote_template_id: Id returned by the platform.
            kind: Template kind ("email" or "sms").
            name: Template name.
            sent_payload: What was actually sent, when it differs from
                ``payload`` (merge resolutions). Drives ``remote_hash``.

        Returns:
            The stored entry.

        Raises:
            LedgerUnavailableError: If the write fails.
        """
        content_hash = compute_content_hash(payload)
        remote_hash = (
            compute_content_hash(sent_payload) if sent_payload is not None else content_hash
        )
        try:
            entry = self.db.get(PublishStateEntry, touchpoint_id)
            if entry is None:
                entry = PublishStateEntry(touchpoint_id=touchpoint_id)
                self.db.add(entry)
            entry.content_hash = content_hash
            entry.remote_hash = remote_hash
            if remote_template_id:
                entry.remote_template_id = remote_template_id
            entry.template_kind = kind
            entry.name = name
            entry.published_at = utc_now_iso()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerUnavailableError(f"ledger write failed: {e}") from e

        logger.debug(
            "Ledger recorded touchpoint %s -> %s (%s)",
            touchpoint_id, entry.remote_template_id, content_hash[:12],
        )
        return entry

    def forget(self, touchpoint_id: str) -> bool:
        """Remove an entry so the next publish creates a fresh template.

        Returns:
            True if an entry was removed.
        """
        try:
            entry = self.db.get(PublishStateEntry, touchpoint_id)
            if entry is None:
                return False
            self.db.delete(entry)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerUnavailableError(f"ledger write failed: {e}") from e
        return True

    def import_state_file(self, path: str | Path) -> int:
        """Import a legacy JSON publish-state file.

        The file maps touchpoint ids to ``{hash, ghlTemplateId, type, name,
        lastPublished}``. Legacy hashes are MD5 digests that can never equal
        a current content hash, so each imported touchpoint republishes once
        as an update to its known template. Existing entries are kept.

        Args:
            path: Path to the JSON file.

        Returns:
            Number of entries imported.

        Raises:
            ValidationError: If the file is missing or not a JSON object.
        """
        state_path = Path(path)
        try:
            raw = json.loads(state_path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ValidationError(f"State file not found: {state_path}") from e
        except json.JSONDecodeError as e:
            raise ValidationError(f"State file is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ValidationError("State file must contain a JSON object")

        imported = 0
        try:
            for touchpoint_id, record in raw.items():
                if not isinstance(record, dict):
                    logger.warning("Skipping malformed state record %s", touchpoint_id)
                    continue
                if self.db.get(PublishStateEntry, touchpoint_id) is not None:
                    continue
                self.db.add(
                    PublishStateEntry(
                        touchpoint_id=touchpoint_id,
                        content_hash=str(record.get("hash") or ""),
                        # No comparable remote hash: skip drift checks until republished
                        remote_hash="",
                        remote_template_id=record.get("ghlTemplateId"),
                        template_kind=str(record.get("type") or "email").lower(),
                        name=record.get("name"),
                        published_at=record.get("lastPublished") or utc_now_iso(),
                    )
                )
                imported += 1
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerUnavailableError(f"ledger import failed: {e}") from e

        logger.info("Imported %d publish state entries from %s", imported, state_path)
        return imported
