"""Read-only views joining offers, payments, reviews and listings.

Joins are resolved with batched ``$in`` lookups. A row whose offer is
gone is dropped; a row whose listing is gone keeps its own fields and
simply lacks the listing ones.
"""

from bson import ObjectId

from .database import NEWEST_FIRST, Store
from .ledger import BOUGHT


def _listings_by_id(store: Store, property_ids) -> dict[str, dict]:
    oids = {ObjectId(pid) for pid in property_ids if pid and ObjectId.is_valid(pid)}
    if not oids:
        return {}
    cursor = store.properties.find(
        {"_id": {"$in": list(oids)}}, {"title": 1, "location": 1, "image": 1}
    )
    return {str(doc["_id"]): doc for doc in cursor}


def sold_properties_for_agent(store: Store, agent_email: str) -> list[dict]:
    """
    Payments made on an agent's offers, newest first.

    Returns:
        list[dict]: One row per payment with buyer, seller, amount,
        transaction id, date and the property's title/location/image.
    """
    offers = {
        str(offer["_id"]): offer
        for offer in store.offers.find({"agentEmail": agent_email.lower()})
    }
    if not offers:
        return []
    payments = list(
        store.payments.find({"offerId": {"$in": list(offers)}}).sort(
            [("date", -1), ("_id", -1)]
        )
    )
    listings = _listings_by_id(store, (offers[p["offerId"]].get("propertyId") for p in payments))

    rows = []
    for payment in payments:
        offer = offers[payment["offerId"]]
        row = {
            "paymentId": str(payment["_id"]),
            "offerId": payment["offerId"],
            "propertyId": offer.get("propertyId"),
            "buyerEmail": payment.get("buyerEmail") or offer.get("buyerEmail"),
            "buyerName": offer.get("buyerName"),
            "agentEmail": offer.get("agentEmail"),
            "agentName": offer.get("agentName"),
            "amount": payment.get("amount"),
            "transactionId": payment.get("transactionId"),
            "date": payment.get("date"),
        }
        listing = listings.get(offer.get("propertyId"))
        if listing is not None:
            row.update(
                title=listing.get("title"),
                location=listing.get("location"),
                image=listing.get("image"),
            )
        rows.append(row)
    return rows


def reviews_for_user(store: Store, email: str) -> list[dict]:
    """Reviews written by ``email`` with the reviewed property's title."""
    reviews = list(store.reviews.find({"reviewerEmail": email.lower()}).sort(NEWEST_FIRST))
    listings = _listings_by_id(store, (review.get("propertyId") for review in reviews))
    for review in reviews:
        listing = listings.get(review.get("propertyId"))
        if listing is not None:
            review["propertyTitle"] = listing.get("title")
            review["propertyLocation"] = listing.get("location")
    return reviews


def agent_stats(store: Store, agent_email: str) -> dict:
    """Dashboard counters for one agent."""
    email = agent_email.lower()
    listings = {
        status: store.properties.count_documents(
            {"agentEmail": email, "verificationStatus": status}
        )
        for status in ("pending", "verified", "rejected")
    }
    sold = sold_properties_for_agent(store, email)
    return {
        "properties": listings,
        "totalProperties": sum(listings.values()),
        "requestedOffers": store.offers.count_documents({"agentEmail": email}),
        "boughtOffers": store.offers.count_documents({"agentEmail": email, "status": BOUGHT}),
        "soldCount": len(sold),
        "totalSoldAmount": sum(row["amount"] or 0 for row in sold),
    }
