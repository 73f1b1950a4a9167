"""Offer routes for buyers and agents."""

from fastapi import APIRouter, Depends, Query, status

from . import ledger, reports, schemas
from .auth import Principal, ensure_self, get_current_principal, is_admin, verify_agent
from .database import Store, get_store, serialize, serialize_all
from .errors import Forbidden

router = APIRouter(tags=["offers"])


@router.post("/offers", status_code=status.HTTP_201_CREATED)
def make_offer(
    offer_in: schemas.OfferCreate,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """
    Submit an offer on a verified property as the signed-in buyer.

    Returns:
        dict: Inserted offer id.
    """
    offer = ledger.submit_offer(store, principal.email, offer_in)
    return {"insertedId": str(offer["_id"]), "message": "Offer submitted"}


@router.get("/offers")
def list_my_offers(
    email: str = Query(...),
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """List the offers the caller made, newest first."""
    ensure_self(principal, email)
    return serialize_all(ledger.offers_by_buyer(store, email))


@router.get("/offers/{offer_id}")
def get_offer(
    offer_id: str,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """Retrieve one offer; visible to its buyer, its agent and admins."""
    offer = ledger.get_offer(store, offer_id)
    if principal.email not in (offer.get("buyerEmail"), offer.get("agentEmail")):
        if not is_admin(store, principal):
            raise Forbidden("Forbidden access")
    return serialize(offer)


@router.get("/agent/requested-offers/{email}")
def requested_offers(
    email: str,
    offer_status: str | None = Query(None, alias="status"),
    agent=Depends(verify_agent),
    store: Store = Depends(get_store),
):
    """List offers made on the calling agent's properties."""
    if agent["email"] != email.lower():
        raise Forbidden("Forbidden access")
    return serialize_all(ledger.offers_by_agent(store, email, offer_status))


@router.patch("/agent/accept-offer/{offer_id}")
def accept_offer(
    offer_id: str,
    agent=Depends(verify_agent),
    store: Store = Depends(get_store),
):
    """
    Accept an offer on one of the caller's properties.

    Every other open offer on the same property is rejected. If that
    second step fails the response still succeeds and carries a
    ``warning``; repeating the call finishes it.
    """
    return ledger.accept_offer(store, offer_id, agent["email"])


@router.patch("/agent/reject-offer/{offer_id}")
def reject_offer(
    offer_id: str,
    agent=Depends(verify_agent),
    store: Store = Depends(get_store),
):
    """Reject an offer on one of the caller's properties."""
    return ledger.reject_offer(store, offer_id, agent["email"])


@router.get("/agent/sold-properties/{email}")
def sold_properties(
    email: str,
    agent=Depends(verify_agent),
    store: Store = Depends(get_store),
):
    """Properties the calling agent has sold, with buyer and amount."""
    if agent["email"] != email.lower():
        raise Forbidden("Forbidden access")
    return reports.sold_properties_for_agent(store, email)


@router.get("/agent/stats/{email}")
def stats(
    email: str,
    agent=Depends(verify_agent),
    store: Store = Depends(get_store),
):
    if agent["email"] != email.lower():
        raise Forbidden("Forbidden access")
    return reports.agent_stats(store, email)
