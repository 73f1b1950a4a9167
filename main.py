"""
Main application entry point for the Real Estate API.

This module initializes the FastAPI application, configures logging and
CORS, registers the JSON error handlers, creates the document store and
the rate limiter on startup, and includes the routers for every area of
the marketplace.

Modules:
- FastAPI: Web framework
- CORSMiddleware: Middleware for handling CORS
- FastAPILimiter: Rate limiting
- redis.asyncio: Async Redis client
- fakeredis: In-process Redis used when the real one is unreachable
- realestate.database: Document store
- realestate.errors: Error taxonomy and handlers
- realestate.core: Application settings and logging
"""

import logging
from contextlib import asynccontextmanager

from fakeredis import FakeAsyncRedis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi_limiter import FastAPILimiter
import redis.asyncio as redis

from realestate import (
    contacts,
    offers,
    payments,
    properties,
    reviews,
    users,
    wishlist,
)
from realestate.core import configure_logging, get_settings
from realestate.database import Store
from realestate.errors import register_exception_handlers

settings = get_settings()
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan handler.

    Creates the document store unless one was provided already, and
    initializes the rate limiter with Redis backend, falling back to
    FakeRedis if Redis is unavailable (e.g., during tests or offline).
    """
    if getattr(app.state, "store", None) is None:
        app.state.store = Store.from_settings()
    redis_client = redis.from_url(
        settings.REDIS_URL, encoding="utf-8", decode_responses=True
    )
    try:
        await FastAPILimiter.init(redis_client)
    except Exception as exc:
        logger.warning("Redis unavailable (%s), rate limiting in memory", exc)
        await FastAPILimiter.init(FakeAsyncRedis(decode_responses=True))
    yield
    await FastAPILimiter.close()


# Initialize FastAPI application
app = FastAPI(title="Real Estate API", lifespan=lifespan)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# Include routers for application areas
app.include_router(users.router)
app.include_router(properties.router)
app.include_router(offers.router)
app.include_router(payments.router)
app.include_router(reviews.router)
app.include_router(wishlist.router)
app.include_router(contacts.router)


@app.get("/", response_class=PlainTextResponse)
def root():
    """
    Root endpoint for the API.

    Returns:
        str: Static availability message.
    """
    return "Real Estate Server is running"
