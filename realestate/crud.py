"""CRUD operations for users, listings, reviews, wishlist and contacts.

This module contains document store interaction logic, isolated from
FastAPI route handlers. The offer and payment lifecycle lives in
:mod:`realestate.ledger`.
"""

import logging

from pymongo.errors import DuplicateKeyError, PyMongoError

from . import schemas
from .database import NEWEST_FIRST, Store, parse_object_id, utcnow
from .errors import Conflict, Forbidden, InvalidArgument, NotFound

logger = logging.getLogger(__name__)

ROLES = ("user", "agent", "admin", "fraud")
VERIFICATION_STATES = ("verified", "rejected")


# Users


def register_if_absent(store: Store, user_in: schemas.UserCreate) -> tuple[dict, bool]:
    """
    Insert a user unless one with the same email exists.

    Args:
        store (Store): Document store.
        user_in (UserCreate): Incoming user data.

    Returns:
        tuple[dict, bool]: The stored user and whether it was created.
    """
    email = user_in.email.lower()
    existing = store.users.find_one({"email": email})
    if existing:
        return existing, False

    user = user_in.to_document()
    user.update(
        email=email,
        role="user",
        isFirstLogin=True,
        createdAt=utcnow(),
    )
    try:
        result = store.users.insert_one(user)
    except DuplicateKeyError:
        # lost a race with a concurrent first login
        return store.users.find_one({"email": email}), False
    user["_id"] = result.inserted_id
    return user, True


def get_user_by_email(store: Store, email: str) -> dict:
    """
    Retrieve a user by email address.

    Raises:
        NotFound: If no user has this email.
    """
    user = store.users.find_one({"email": email.lower()})
    if user is None:
        raise NotFound("User not found")
    return user


def get_user(store: Store, user_id: str) -> dict:
    user = store.users.find_one({"_id": parse_object_id(user_id, "user id")})
    if user is None:
        raise NotFound("User not found")
    return user


def list_users(store: Store, role: str | None = None) -> list[dict]:
    query = {"role": role} if role else {}
    return list(store.users.find(query).sort(NEWEST_FIRST))


def update_user_by_email(store: Store, email: str, changes: schemas.UserUpdate) -> dict:
    """
    Merge profile fields into a user.

    Role and email are not part of :class:`UserUpdate`, so they can only
    change through :func:`set_role`.
    """
    fields = changes.to_document(exclude_unset=True)
    user = get_user_by_email(store, email)
    if fields:
        store.users.update_one({"_id": user["_id"]}, {"$set": fields})
        user.update(fields)
    return user


def set_role(store: Store, user_id: str, role: str) -> dict:
    """
    Change a user's role.

    Marking a user ``fraud`` also deletes every listing the user owns.
    The cascade is best effort: if it fails the role change stands and
    the result carries a ``warning``.

    Returns:
        dict: ``{"modifiedCount": int}`` plus ``deletedProperties`` or
        ``warning`` for the fraud cascade.
    """
    if role not in ROLES:
        raise InvalidArgument("Invalid role")
    oid = parse_object_id(user_id, "user id")
    user = store.users.find_one({"_id": oid})
    if user is None:
        raise NotFound("User not found")

    result = store.users.update_one({"_id": oid}, {"$set": {"role": role}})
    outcome = {"modifiedCount": result.modified_count}
    if role != "fraud":
        return outcome

    try:
        deleted = store.properties.delete_many({"agentEmail": user["email"]})
    except PyMongoError as exc:
        logger.warning(
            "User %s marked fraud but listing cleanup failed: %s", user["email"], exc
        )
        outcome["warning"] = "User marked as fraud, but removing their properties failed"
        return outcome
    logger.info(
        "User %s marked fraud, removed %d properties",
        user["email"],
        deleted.deleted_count,
    )
    outcome["deletedProperties"] = deleted.deleted_count
    return outcome


def mark_fraud(store: Store, user_id: str) -> dict:
    return set_role(store, user_id, "fraud")


def delete_user(store: Store, user_id: str) -> None:
    result = store.users.delete_one({"_id": parse_object_id(user_id, "user id")})
    if result.deleted_count == 0:
        raise NotFound("User not found")


# Listings


def create_listing(store: Store, agent_email: str, listing_in: schemas.ListingCreate) -> dict:
    """
    Create a listing owned by ``agent_email``.

    Verification status is always ``pending`` and the listing starts
    unadvertised, whatever the caller sent.
    """
    listing = listing_in.to_document()
    listing.update(
        agentEmail=agent_email.lower(),
        verificationStatus="pending",
        isAdvertised=False,
        createdAt=utcnow(),
    )
    result = store.properties.insert_one(listing)
    listing["_id"] = result.inserted_id
    return listing


def get_listing(store: Store, listing_id: str) -> dict:
    listing = store.properties.find_one({"_id": parse_object_id(listing_id, "property id")})
    if listing is None:
        raise NotFound("Property not found")
    return listing


def list_by_agent(store: Store, agent_email: str) -> list[dict]:
    return list(store.properties.find({"agentEmail": agent_email.lower()}).sort(NEWEST_FIRST))


def list_by_status(store: Store, status: str) -> list[dict]:
    return list(store.properties.find({"verificationStatus": status}).sort(NEWEST_FIRST))


def list_advertised(store: Store) -> list[dict]:
    """Verified listings promoted to the home page."""
    return list(
        store.properties.find(
            {"verificationStatus": "verified", "isAdvertised": True}
        ).sort(NEWEST_FIRST)
    )


def list_verified_public(store: Store, search: str | None = None) -> list[dict]:
    """
    Listings visible to everyone.

    Args:
        search (str | None): Optional case-insensitive location filter.
    """
    query: dict = {"verificationStatus": "verified"}
    if search:
        query["location"] = {"$regex": search, "$options": "i"}
    return list(store.properties.find(query).sort(NEWEST_FIRST))


def update_listing(store: Store, listing_id: str, changes: schemas.ListingUpdate) -> dict:
    listing = get_listing(store, listing_id)
    fields = changes.to_document(exclude_unset=True)
    min_price = fields.get("minPrice", listing.get("minPrice"))
    max_price = fields.get("maxPrice", listing.get("maxPrice"))
    if min_price is not None and max_price is not None and min_price > max_price:
        raise InvalidArgument("minPrice must not exceed maxPrice")
    if fields:
        store.properties.update_one({"_id": listing["_id"]}, {"$set": fields})
        listing.update(fields)
    return listing


def set_verification(store: Store, listing_id: str, status: str) -> dict:
    if status not in VERIFICATION_STATES:
        raise InvalidArgument("Invalid verification status")
    oid = parse_object_id(listing_id, "property id")
    result = store.properties.update_one(
        {"_id": oid}, {"$set": {"verificationStatus": status}}
    )
    if result.matched_count == 0:
        raise NotFound("Property not found")
    return {"modifiedCount": result.modified_count}


def set_advertised(store: Store, listing_id: str) -> dict:
    """Flag a listing as advertised. Repeating the call changes nothing."""
    oid = parse_object_id(listing_id, "property id")
    result = store.properties.update_one({"_id": oid}, {"$set": {"isAdvertised": True}})
    if result.matched_count == 0:
        raise NotFound("Property not found")
    return {"modifiedCount": result.modified_count}


def delete_listing(store: Store, listing_id: str) -> None:
    oid = parse_object_id(listing_id, "property id")
    result = store.properties.delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFound("Property not found")


# Reviews


def create_review(store: Store, reviewer_email: str, review_in: schemas.ReviewCreate) -> dict:
    """
    Create a review for an existing listing.

    Raises:
        NotFound: If the reviewed property does not exist.
    """
    get_listing(store, review_in.property_id)
    review = review_in.to_document()
    review.update(reviewerEmail=reviewer_email.lower(), createdAt=utcnow())
    result = store.reviews.insert_one(review)
    review["_id"] = result.inserted_id
    return review


def list_reviews(store: Store, property_id: str | None = None, limit: int = 0) -> list[dict]:
    query = {}
    if property_id:
        parse_object_id(property_id, "property id")
        query["propertyId"] = property_id
    cursor = store.reviews.find(query).sort(NEWEST_FIRST)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def delete_review(store: Store, review_id: str, email: str, admin: bool = False) -> None:
    """
    Delete a review written by ``email``; admins may delete any review.

    Raises:
        NotFound: If the review does not exist.
        Forbidden: If the caller neither wrote it nor is an admin.
    """
    oid = parse_object_id(review_id, "review id")
    review = store.reviews.find_one({"_id": oid})
    if review is None:
        raise NotFound("Review not found")
    if not admin and review.get("reviewerEmail") != email.lower():
        raise Forbidden("Forbidden access")
    store.reviews.delete_one({"_id": oid})


# Wishlist


def add_to_wishlist(store: Store, user_email: str, property_id: str) -> dict:
    """
    Add a listing to a user's wishlist.

    Raises:
        NotFound: If the listing does not exist.
        Conflict: If the pair is already wishlisted.
    """
    listing = get_listing(store, property_id)
    entry = {
        "userEmail": user_email.lower(),
        "propertyId": property_id,
        "title": listing.get("title"),
        "location": listing.get("location"),
        "image": listing.get("image"),
        "minPrice": listing.get("minPrice"),
        "maxPrice": listing.get("maxPrice"),
        "agentName": listing.get("agentName"),
        "agentEmail": listing.get("agentEmail"),
        "verificationStatus": listing.get("verificationStatus"),
        "createdAt": utcnow(),
    }
    try:
        result = store.wishlist.insert_one(entry)
    except DuplicateKeyError:
        raise Conflict("Property already in wishlist")
    entry["_id"] = result.inserted_id
    return entry


def list_wishlist(store: Store, user_email: str) -> list[dict]:
    return list(store.wishlist.find({"userEmail": user_email.lower()}).sort(NEWEST_FIRST))


def remove_from_wishlist(store: Store, entry_id: str, user_email: str) -> None:
    oid = parse_object_id(entry_id, "wishlist id")
    result = store.wishlist.delete_one({"_id": oid, "userEmail": user_email.lower()})
    if result.deleted_count == 0:
        raise NotFound("Wishlist item not found")


# Contacts


def create_contact_request(store: Store, contact_in: schemas.ContactCreate) -> dict:
    contact = contact_in.to_document()
    contact.update(status="pending", createdAt=utcnow())
    result = store.contacts.insert_one(contact)
    contact["_id"] = result.inserted_id
    return contact


def list_contact_requests(store: Store, status: str | None = None) -> list[dict]:
    query = {"status": status} if status else {}
    return list(store.contacts.find(query).sort(NEWEST_FIRST))


def set_contact_status(store: Store, contact_id: str, status: str) -> dict:
    oid = parse_object_id(contact_id, "contact id")
    result = store.contacts.update_one({"_id": oid}, {"$set": {"status": status}})
    if result.matched_count == 0:
        raise NotFound("Contact request not found")
    return {"modifiedCount": result.modified_count}
