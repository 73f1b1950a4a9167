"""Offer and payment lifecycle.

An offer moves ``pending -> accepted -> bought`` or ends ``rejected``.
At most one offer per property may be ``accepted`` or ``bought``: the
property document records the holder in ``acceptedOfferId`` and a single
conditional update on that document decides which offer wins, so two
concurrent accepts cannot both succeed.

Accepting and paying are two-write sequences over documents the store
cannot update together. Both apply the write that matters first (the
accepted offer, the payment) and retry the follow-up write; if the retry
also fails the result carries a ``warning`` and the state is left in a
form the same call can finish later.
"""

import logging

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import crud, schemas
from .core import get_settings
from .database import NEWEST_FIRST, Store, parse_object_id, utcnow
from .errors import Conflict, Forbidden, InvalidArgument, NotFound

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"
BOUGHT = "bought"
TERMINAL = (REJECTED, BOUGHT)

SIBLING_REJECT_ATTEMPTS = 2


def _property_oid(offer: dict) -> ObjectId | None:
    property_id = offer.get("propertyId")
    if property_id and ObjectId.is_valid(property_id):
        return ObjectId(property_id)
    return None


def _find_offer(store: Store, offer_id: str, agent_email: str | None = None) -> dict:
    query: dict = {"_id": parse_object_id(offer_id, "offer id")}
    if agent_email:
        query["agentEmail"] = agent_email.lower()
    offer = store.offers.find_one(query)
    if offer is None:
        raise NotFound("Offer not found")
    return offer


def submit_offer(store: Store, buyer_email: str, offer_in: schemas.OfferCreate) -> dict:
    """
    Create a pending offer on a verified property.

    The agent is taken from the property unless the caller names one.
    Property title, location and image are copied onto the offer for
    display and are not kept in sync afterwards.

    Raises:
        NotFound: If the property does not exist.
        InvalidArgument: If the amount is not positive, the property is not
            verified, or the buyer is the property's agent.
        Conflict: If the property already has an accepted offer.
    """
    if offer_in.amount <= 0:
        raise InvalidArgument("Offer amount must be a positive number")
    listing = crud.get_listing(store, offer_in.property_id)
    if listing.get("verificationStatus") != "verified":
        raise InvalidArgument("Property is not open for offers")
    if listing.get("acceptedOfferId"):
        raise Conflict("Property already has an accepted offer")

    buyer_email = buyer_email.lower()
    agent_email = (offer_in.agent_email or listing.get("agentEmail") or "").lower()
    if not agent_email:
        raise InvalidArgument("Agent email is required")
    if agent_email == buyer_email:
        raise InvalidArgument("Agents cannot make offers on their own property")

    now = utcnow()
    offer = {
        "propertyId": str(listing["_id"]),
        "title": listing.get("title"),
        "location": listing.get("location"),
        "image": listing.get("image"),
        "agentEmail": agent_email,
        "agentName": offer_in.agent_name or listing.get("agentName"),
        "buyerEmail": buyer_email,
        "buyerName": offer_in.buyer_name,
        "amount": offer_in.amount,
        "status": PENDING,
        "createdAt": now,
        "updatedAt": now,
    }
    result = store.offers.insert_one(offer)
    offer["_id"] = result.inserted_id
    logger.info(
        "Offer %s submitted by %s on property %s",
        result.inserted_id,
        buyer_email,
        offer["propertyId"],
    )
    return offer


def _reject_siblings(store: Store, offer: dict) -> dict:
    query = {
        "propertyId": offer["propertyId"],
        "_id": {"$ne": offer["_id"]},
        "status": {"$nin": list(TERMINAL)},
    }
    last_error = None
    for _ in range(SIBLING_REJECT_ATTEMPTS):
        try:
            result = store.offers.update_many(
                query, {"$set": {"status": REJECTED, "updatedAt": utcnow()}}
            )
            return {"rejectedCount": result.modified_count}
        except PyMongoError as exc:
            last_error = exc
    logger.warning(
        "Offer %s accepted but rejecting the other offers on property %s failed: %s",
        offer["_id"],
        offer["propertyId"],
        last_error,
    )
    return {
        "rejectedCount": 0,
        "warning": "Offer accepted, but other offers on this property could not be rejected",
    }


def _release_claim(store: Store, offer: dict) -> None:
    property_oid = _property_oid(offer)
    if property_oid is None:
        return
    store.properties.update_one(
        {"_id": property_oid, "acceptedOfferId": str(offer["_id"])},
        {"$unset": {"acceptedOfferId": ""}},
    )


def accept_offer(store: Store, offer_id: str, agent_email: str | None = None) -> dict:
    """
    Accept an offer and reject every other open offer on its property.

    The offer is marked ``accepted`` before its siblings are rejected, so
    no reader ever sees two accepted offers for one property. Calling this
    again on an accepted offer only repeats the sibling rejection.

    Args:
        store (Store): Document store.
        offer_id (str): Offer to accept.
        agent_email (str | None): When given, the offer must belong to
            this agent.

    Raises:
        NotFound: If the offer (or its property) does not exist.
        Conflict: If the offer is terminal or another offer holds the
            property.

    Returns:
        dict: ``modifiedCount``, ``rejectedCount`` and possibly ``warning``.
    """
    offer = _find_offer(store, offer_id, agent_email)
    status = offer.get("status")
    if status in TERMINAL:
        raise Conflict("Offer already resolved")
    if status == ACCEPTED:
        return {"modifiedCount": 0, **_reject_siblings(store, offer)}

    property_oid = _property_oid(offer)
    if property_oid is None:
        raise NotFound("Property not found")
    claim = store.properties.update_one(
        {
            "_id": property_oid,
            "$or": [
                {"acceptedOfferId": {"$exists": False}},
                {"acceptedOfferId": str(offer["_id"])},
            ],
        },
        {"$set": {"acceptedOfferId": str(offer["_id"])}},
    )
    if claim.matched_count == 0:
        if store.properties.count_documents({"_id": property_oid}) == 0:
            raise NotFound("Property not found")
        raise Conflict("Another offer has already been accepted for this property")

    accepted = store.offers.update_one(
        {"_id": offer["_id"], "status": PENDING},
        {"$set": {"status": ACCEPTED, "updatedAt": utcnow()}},
    )
    if accepted.matched_count == 0:
        # rejected between our read and write
        _release_claim(store, offer)
        raise Conflict("Offer already resolved")

    logger.info("Offer %s accepted for property %s", offer["_id"], offer["propertyId"])
    return {"modifiedCount": accepted.modified_count, **_reject_siblings(store, offer)}


def reject_offer(store: Store, offer_id: str, agent_email: str | None = None) -> dict:
    """
    Reject a pending or accepted offer.

    Rejecting the offer that holds the property frees it for another
    offer. An offer with a recorded payment cannot be rejected.

    Raises:
        NotFound: If the offer does not exist.
        Conflict: If the offer is already ``rejected``, ``bought`` or paid.
    """
    offer = _find_offer(store, offer_id, agent_email)
    status = offer.get("status")
    if status in TERMINAL:
        raise Conflict("Offer already resolved")
    if store.payments.find_one({"offerId": str(offer["_id"])}) is not None:
        raise Conflict("Offer already paid")
    result = store.offers.update_one(
        {"_id": offer["_id"], "status": status},
        {"$set": {"status": REJECTED, "updatedAt": utcnow()}},
    )
    if result.matched_count == 0:
        raise Conflict("Offer already resolved")
    # a pending offer may hold the claim if accepting it failed halfway
    _release_claim(store, offer)
    return {"modifiedCount": result.modified_count}


def _mark_bought(store: Store, offer: dict, transaction_id: str) -> dict:
    retries = max(1, get_settings().OFFER_UPDATE_RETRIES)
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            result = store.offers.update_one(
                {"_id": offer["_id"], "status": {"$ne": REJECTED}},
                {
                    "$set": {
                        "status": BOUGHT,
                        "transactionId": transaction_id,
                        "updatedAt": utcnow(),
                    }
                },
            )
        except PyMongoError as exc:
            last_error = exc
            logger.warning(
                "Marking offer %s bought failed (attempt %d/%d): %s",
                offer["_id"],
                attempt,
                retries,
                exc,
            )
            continue
        if result.matched_count == 0:
            logger.error(
                "Payment %s stored but offer %s was rejected", transaction_id, offer["_id"]
            )
            return {
                "status": REJECTED,
                "warning": "Payment recorded, but the offer was rejected",
            }
        return {"status": BOUGHT}
    logger.error(
        "Payment %s stored but offer %s is still %s: %s",
        transaction_id,
        offer["_id"],
        offer.get("status"),
        last_error,
    )
    return {
        "status": offer.get("status"),
        "warning": "Payment recorded, but the offer could not be marked as bought",
    }


def record_payment(
    store: Store,
    offer_id: str,
    buyer_email: str | None,
    amount: float | None,
    transaction_id: str | None,
) -> dict:
    """
    Record a completed payment and mark its offer ``bought``.

    The payment document is the record that money moved. It is written
    first; the offer update is retried, and if a payment already exists
    for an offer that never reached ``bought`` the update is re-driven
    instead of storing a second payment.

    Raises:
        InvalidArgument: If buyer email, amount or transaction id is missing.
        NotFound: If the offer does not exist.
        Forbidden: If the offer belongs to another buyer.
        Conflict: If the offer is not accepted or is already paid.

    Returns:
        dict: ``paymentId``, the offer ``status`` and possibly ``warning``.
    """
    if not buyer_email or not amount or not transaction_id:
        raise InvalidArgument("buyerEmail, amount and transactionId are required")
    if amount <= 0:
        raise InvalidArgument("Payment amount must be a positive number")

    offer = _find_offer(store, offer_id)
    if offer.get("buyerEmail") != buyer_email.lower():
        raise Forbidden("Offer belongs to another buyer")

    existing = store.payments.find_one({"offerId": str(offer["_id"])})
    if existing is not None:
        if offer.get("status") == BOUGHT:
            raise Conflict("Offer already paid")
        outcome = _mark_bought(store, offer, existing["transactionId"])
        return {"paymentId": str(existing["_id"]), **outcome}

    if offer.get("status") != ACCEPTED:
        raise Conflict("Only accepted offers can be paid")

    payment = {
        "offerId": str(offer["_id"]),
        "propertyId": offer.get("propertyId"),
        "buyerEmail": buyer_email.lower(),
        "agentEmail": offer.get("agentEmail"),
        "amount": amount,
        "transactionId": transaction_id,
        "date": utcnow(),
    }
    try:
        result = store.payments.insert_one(payment)
    except DuplicateKeyError:
        raise Conflict("Offer already paid")
    logger.info("Payment %s recorded for offer %s", transaction_id, offer["_id"])
    return {"paymentId": str(result.inserted_id), **_mark_bought(store, offer, transaction_id)}


def mark_paid(store: Store, offer_id: str) -> dict:
    """
    Re-apply ``bought`` to an offer from its stored payment.

    Raises:
        NotFound: If the offer or its payment does not exist.
    """
    offer = _find_offer(store, offer_id)
    payment = store.payments.find_one({"offerId": str(offer["_id"])})
    if payment is None:
        raise NotFound("Payment not found")
    if offer.get("status") == BOUGHT:
        return {"paymentId": str(payment["_id"]), "status": BOUGHT, "modifiedCount": 0}
    return {"paymentId": str(payment["_id"]), **_mark_bought(store, offer, payment["transactionId"])}


def get_offer(store: Store, offer_id: str) -> dict:
    return _find_offer(store, offer_id)


def offers_by_buyer(store: Store, buyer_email: str) -> list[dict]:
    return list(store.offers.find({"buyerEmail": buyer_email.lower()}).sort(NEWEST_FIRST))


def offers_by_agent(store: Store, agent_email: str, status: str | None = None) -> list[dict]:
    query = {"agentEmail": agent_email.lower()}
    if status:
        query["status"] = status
    return list(store.offers.find(query).sort(NEWEST_FIRST))


def payments_by_buyer(store: Store, buyer_email: str) -> list[dict]:
    return list(
        store.payments.find({"buyerEmail": buyer_email.lower()}).sort(
            [("date", -1), ("_id", -1)]
        )
    )
