"""Wishlist routes for the Real Estate API."""

from fastapi import APIRouter, Depends, status

from . import crud
from .auth import Principal, ensure_self, get_current_principal
from .database import Store, get_store, serialize_all

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


@router.post("/{property_id}", status_code=status.HTTP_201_CREATED)
def add_to_wishlist(
    property_id: str,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """
    Add a property to the caller's wishlist.

    Raises:
        HTTPException: 404 for an unknown property, 409 if already listed.
    """
    entry = crud.add_to_wishlist(store, principal.email, property_id)
    return {"insertedId": str(entry["_id"]), "message": "Added to wishlist"}


@router.get("/{email}")
def get_wishlist(
    email: str,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    ensure_self(principal, email)
    return serialize_all(crud.list_wishlist(store, email))


@router.delete("/{entry_id}")
def remove_from_wishlist(
    entry_id: str,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """Remove an entry from the caller's wishlist."""
    crud.remove_from_wishlist(store, entry_id, principal.email)
    return {"deletedCount": 1}
