"""Property listing routes for the Real Estate API."""

from fastapi import APIRouter, Depends, Query, status

from . import crud, schemas
from .auth import (
    Principal,
    get_optional_principal,
    is_admin,
    verify_admin,
    verify_agent,
    verify_agent_or_admin,
)
from .database import Store, get_store, serialize, serialize_all
from .errors import Forbidden

router = APIRouter(tags=["properties"])


def _ensure_owner_or_admin(listing: dict, user: dict) -> None:
    if user.get("role") != "admin" and listing.get("agentEmail") != user.get("email"):
        raise Forbidden("Forbidden access")


@router.post("/addProperties", status_code=status.HTTP_201_CREATED)
def add_property(
    listing_in: schemas.ListingCreate,
    agent=Depends(verify_agent),
    store: Store = Depends(get_store),
):
    """
    Create a listing owned by the calling agent.

    The listing starts ``pending`` and unadvertised until an admin acts.

    Returns:
        dict: Inserted id and a confirmation message.
    """
    listing = crud.create_listing(store, agent["email"], listing_in)
    return {"insertedId": str(listing["_id"]), "message": "Property added successfully"}


@router.get("/properties")
def list_properties(
    agent_email: str | None = Query(None, alias="agentEmail"),
    status_filter: str | None = Query(None, alias="status"),
    verification_status: str | None = Query(None, alias="verificationStatus"),
    is_advertised: bool | None = Query(None, alias="isAdvertised"),
    search: str | None = Query(None),
    principal: Principal | None = Depends(get_optional_principal),
    store: Store = Depends(get_store),
):
    """
    List properties.

    Filters are applied in this order, the first one present wins:

    * ``agentEmail``: every listing of that agent, for the agent or an admin.
    * ``status`` / ``verificationStatus``: listings in that state; anything
      other than ``verified`` is admin only.
    * ``isAdvertised=true``: verified listings promoted to the home page.
    * otherwise all verified listings, optionally searched by location.

    Raises:
        HTTPException: 403 when a restricted filter is used without rights.
    """
    if agent_email:
        if principal is None or (
            principal.email != agent_email.lower() and not is_admin(store, principal)
        ):
            raise Forbidden("Forbidden access")
        return serialize_all(crud.list_by_agent(store, agent_email))

    wanted_status = status_filter or verification_status
    if wanted_status and wanted_status != "verified":
        if principal is None or not is_admin(store, principal):
            raise Forbidden("Forbidden access")
        return serialize_all(crud.list_by_status(store, wanted_status))

    if is_advertised:
        return serialize_all(crud.list_advertised(store))
    return serialize_all(crud.list_verified_public(store, search))


@router.get("/properties/{property_id}")
def get_property(property_id: str, store: Store = Depends(get_store)):
    """
    Retrieve a single property.

    Raises:
        HTTPException: 400 for a malformed id, 404 if absent.
    """
    return serialize(crud.get_listing(store, property_id))


@router.patch("/properties/verify/{property_id}")
def verify_property(
    property_id: str,
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """Mark a property verified, making it publicly visible (admin only)."""
    return crud.set_verification(store, property_id, "verified")


@router.patch("/properties/reject/{property_id}")
def reject_property(
    property_id: str,
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """Mark a property rejected (admin only)."""
    return crud.set_verification(store, property_id, "rejected")


@router.patch("/properties/advertise/{property_id}")
def advertise_property(
    property_id: str,
    admin=Depends(verify_admin),
    store: Store = Depends(get_store),
):
    """Promote a property to the advertisement section (admin only)."""
    return crud.set_advertised(store, property_id)


@router.patch("/properties/{property_id}")
def update_property(
    property_id: str,
    changes: schemas.ListingUpdate,
    user=Depends(verify_agent_or_admin),
    store: Store = Depends(get_store),
):
    """
    Update a property's descriptive fields.

    Only the owning agent or an admin may edit; verification and
    advertising state change through their own routes.
    """
    listing = crud.get_listing(store, property_id)
    _ensure_owner_or_admin(listing, user)
    return serialize(crud.update_listing(store, property_id, changes))


@router.delete("/properties/{property_id}")
def delete_property(
    property_id: str,
    user=Depends(verify_agent_or_admin),
    store: Store = Depends(get_store),
):
    """
    Delete a property owned by the caller (admins may delete any).

    Raises:
        HTTPException: 400 for a malformed id, 404 if nothing was deleted.
    """
    listing = crud.get_listing(store, property_id)
    _ensure_owner_or_admin(listing, user)
    crud.delete_listing(store, property_id)
    return {"deletedCount": 1}
