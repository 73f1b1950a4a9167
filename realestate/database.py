"""Document store access.

This module defines the :class:`Store` repository that owns one MongoDB
collection per entity, the FastAPI dependency that hands it to routes,
and small helpers for converting ids between their wire and stored forms.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from fastapi import Request
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .core import get_settings
from .errors import InvalidArgument

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]
"""Sort order used by every listing-style query."""


class Store:
    """Collection handles for every entity, built once per process.

    Args:
        db: Database the collections live in.
    """

    def __init__(self, db: Database):
        self.db = db
        self.users = db["users"]
        self.properties = db["properties"]
        self.offers = db["offers"]
        self.payments = db["payments"]
        self.reviews = db["reviews"]
        self.wishlist = db["wishlist"]
        self.contacts = db["contacts"]

    @classmethod
    def from_client(cls, client: MongoClient, db_name: str) -> "Store":
        """Create a store on ``db_name`` and make sure its indexes exist."""
        store = cls(client[db_name])
        store.ensure_indexes()
        return store

    @classmethod
    def from_settings(cls) -> "Store":
        """Create a store from the configured MongoDB URL."""
        settings = get_settings()
        client = MongoClient(settings.MONGO_URL, tz_aware=True)
        logger.info("Using database %s", settings.DB_NAME)
        return cls.from_client(client, settings.DB_NAME)

    def ensure_indexes(self) -> None:
        """Create the unique indexes the data model relies on."""
        self.users.create_index([("email", ASCENDING)], unique=True)
        self.wishlist.create_index(
            [("userEmail", ASCENDING), ("propertyId", ASCENDING)], unique=True
        )
        self.payments.create_index([("offerId", ASCENDING)], unique=True)


def get_store(request: Request) -> Store:
    """
    Provide the process-wide store.

    This function is used as a FastAPI dependency. The store is created
    by the application's startup handler and kept on ``app.state``.
    """

    return request.app.state.store


def parse_object_id(value: str, label: str = "id") -> ObjectId:
    """
    Convert a wire id into an ``ObjectId``.

    Raises:
        InvalidArgument: If ``value`` is not a valid ObjectId string.
    """
    if not ObjectId.is_valid(value):
        raise InvalidArgument(f"Invalid {label}")
    return ObjectId(value)


def serialize(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return a JSON friendly copy of ``doc`` with ObjectIds as strings."""
    if doc is None:
        return None
    return {
        key: str(value) if isinstance(value, ObjectId) else value
        for key, value in doc.items()
    }


def serialize_all(docs) -> list[dict[str, Any]]:
    return [serialize(doc) for doc in docs]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
