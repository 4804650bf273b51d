"""Client accounts that own journeys and supply the publish location."""

import logging
import re
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from journeysync.db.models import Client, SyncConflict
from journeysync.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9\-]*$")

EDITABLE_CLIENT_FIELDS = frozenset({"name", "slug", "remote_location_id"})


def slugify(name: str) -> str:
    """Lowercase, hyphen-separated slug from a display name."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "client"


class ClientService:
    """CRUD for clients.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def create_client(
        self,
        name: str,
        slug: str | None = None,
        remote_location_id: str | None = None,
    ) -> Client:
        """Create a client.

        Raises:
            ValidationError: If name or slug is malformed.
            ConflictError: If the slug is taken.
        """
        if not name or not name.strip():
            raise ValidationError("Client name is required")
        slug = slug or slugify(name)
        if not _SLUG_RE.match(slug):
            raise ValidationError(f"Invalid slug '{slug}'")

        client = Client(name=name.strip(), slug=slug, remote_location_id=remote_location_id)
        self.db.add(client)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"Client slug '{slug}' already exists") from e
        self.db.refresh(client)
        logger.info("Created client %s (%s)", client.id, slug)
        return client

    def get_client(self, client_id: str) -> Client:
        client = self.db.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client", client_id)
        return client

    def get_by_slug(self, slug: str) -> Client:
        client = self.db.query(Client).filter(Client.slug == slug).first()
        if client is None:
            raise NotFoundError("Client", slug)
        return client

    def list_clients(self) -> list[Client]:
        return self.db.query(Client).order_by(Client.name).all()

    def set_location(self, client_id: str, remote_location_id: str | None) -> Client:
        """Set (or clear) the remote location templates publish into."""
        return self.update_client(client_id, {"remote_location_id": remote_location_id})

    def update_client(self, client_id: str, patch: dict[str, Any]) -> Client:
        """Apply a partial update to a client.

        Args:
            client_id: Client to edit.
            patch: Any of ``name``, ``slug`` and ``remote_location_id``.
                An empty location clears it.

        Raises:
            NotFoundError: If the client does not exist.
            ValidationError: If a field is unknown or malformed.
            ConflictError: If the new slug is taken.
        """
        client = self.get_client(client_id)
        unknown = set(patch) - EDITABLE_CLIENT_FIELDS
        if unknown:
            raise ValidationError(f"Cannot edit client field(s): {', '.join(sorted(unknown))}")

        if "name" in patch:
            name = patch["name"]
            if not name or not name.strip():
                raise ValidationError("Client name is required")
            client.name = name.strip()
        if "slug" in patch:
            slug = patch["slug"]
            if not slug or not _SLUG_RE.match(slug):
                raise ValidationError(f"Invalid slug '{slug}'")
            client.slug = slug
        if "remote_location_id" in patch:
            client.remote_location_id = patch["remote_location_id"] or None

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"Client slug '{patch.get('slug')}' already exists") from e
        self.db.refresh(client)
        return client

    def delete_client(self, client_id: str) -> None:
        """Delete a client and every journey it owns.

        Journeys go with their touchpoints, snapshots and stored conflicts.
        Publish ledger entries and sync run history are kept.

        Raises:
            NotFoundError: If the client does not exist.
        """
        client = self.get_client(client_id)
        journey_ids = [j.id for j in client.journeys]
        if journey_ids:
            self.db.query(SyncConflict).filter(SyncConflict.journey_id.in_(journey_ids)).delete(
                synchronize_session=False
            )
        self.db.delete(client)
        self.db.commit()
        logger.info("Deleted client %s with %d journey(s)", client_id, len(journey_ids))
