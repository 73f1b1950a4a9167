"""Contact request routes for the Real Estate API."""

from fastapi import APIRouter, Depends, Query, status

from . import crud, schemas
from .auth import verify_admin
from .database import Store, get_store, serialize_all

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_contact(
    contact_in: schemas.ContactCreate,
    store: Store = Depends(get_store),
):
    """
    Leave a call-back request from the public site.

    Args:
        contact_in (ContactCreate): Phone number and optional details.
        store (Store): Document store.

    Returns:
        dict: Inserted id of the request.
    """
    contact = crud.create_contact_request(store, contact_in)
    return {"insertedId": str(contact["_id"]), "message": "Request received"}


@router.get("")
def list_contacts(
    status_filter: schemas.ContactStatus | None = Query(None, alias="status"),
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """List contact requests, optionally by status (admin only)."""
    return serialize_all(crud.list_contact_requests(store, status_filter))


@router.patch("/{contact_id}")
def update_contact_status(
    contact_id: str,
    payload: schemas.ContactStatusUpdate,
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """
    Change the status of a contact request (admin only).

    Raises:
        HTTPException: 400 for a malformed id, 404 if absent.
    """
    return crud.set_contact_status(store, contact_id, payload.status)
