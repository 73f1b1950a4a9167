"""Review routes for the Real Estate API."""

from fastapi import APIRouter, Depends, Query, status

from . import crud, reports, schemas
from .auth import Principal, get_current_principal, is_admin
from .database import Store, get_store, serialize_all

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_review(
    review_in: schemas.ReviewCreate,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """Post a review of a property as the signed-in user."""
    review = crud.create_review(store, principal.email, review_in)
    return {"insertedId": str(review["_id"]), "message": "Review added"}


@router.get("")
def list_reviews(
    property_id: str | None = Query(None, alias="propertyId"),
    email: str | None = Query(None),
    limit: int = Query(0, ge=0, le=100),
    store: Store = Depends(get_store),
):
    """
    List reviews, newest first.

    With ``email`` the reviews written by that user are returned together
    with the reviewed property's title; with ``propertyId`` the reviews of
    one property; otherwise the latest reviews across all properties.
    """
    if email:
        return serialize_all(reports.reviews_for_user(store, email))
    return serialize_all(crud.list_reviews(store, property_id, limit))


@router.delete("/{review_id}")
def delete_review(
    review_id: str,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """Delete one of the caller's reviews (admins may delete any)."""
    crud.delete_review(store, review_id, principal.email, is_admin(store, principal))
    return {"deletedCount": 1}
