"""FastAPI routes for clients (the accounts journeys belong to)."""

from fastapi import APIRouter, Depends, Response

from journeysync.api.dependencies import get_client_service
from journeysync.api.schemas import ClientCreate, ClientResponse, ClientUpdate
from journeysync.db.models import Client
from journeysync.errors import ValidationError
from journeysync.services import ClientService

router = APIRouter(prefix="/clients", tags=["clients"])


@router.post("", response_model=ClientResponse, status_code=201)
def create_client(
    data: ClientCreate,
    client_svc: ClientService = Depends(get_client_service),
) -> Client:
    """Create a client. A duplicate slug returns 409."""
    return client_svc.create_client(
        name=data.name,
        slug=data.slug,
        remote_location_id=data.remote_location_id,
    )


@router.get("", response_model=list[ClientResponse])
def list_clients(client_svc: ClientService = Depends(get_client_service)) -> list[Client]:
    """List clients by name."""
    return client_svc.list_clients()


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(
    client_id: str,
    client_svc: ClientService = Depends(get_client_service),
) -> Client:
    """Get a client by ID."""
    return client_svc.get_client(client_id)


@router.put("/{client_id}", response_model=ClientResponse)
def update_client(
    client_id: str,
    data: ClientUpdate,
    client_svc: ClientService = Depends(get_client_service),
) -> Client:
    """Edit a client's name, slug or publish location.

    Raises:
        ValidationError: If no field is present.
    """
    patch = data.model_dump(exclude_unset=True)
    if not patch:
        raise ValidationError("No fields to update")
    return client_svc.update_client(client_id, patch)


@router.delete("/{client_id}", status_code=204)
def delete_client(
    client_id: str,
    client_svc: ClientService = Depends(get_client_service),
) -> Response:
    """Delete a client and all of its journeys."""
    client_svc.delete_client(client_id)
    return Response(status_code=204)
