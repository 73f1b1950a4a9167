"""Payment routes and the payment processor gateway."""

import logging

import stripe
from fastapi import APIRouter, Depends, Query, status
from fastapi_limiter.depends import RateLimiter

from . import ledger, schemas
from .auth import Principal, ensure_self, get_current_principal, is_admin
from .core import get_settings
from .database import Store, get_store, serialize_all
from .errors import Internal, NotFound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])
settings = get_settings()


class PaymentGateway:
    """Creates payment intents with Stripe.

    Args:
        api_key (str | None): Stripe secret key.
        currency (str): Currency of created intents.
    """

    def __init__(self, api_key: str | None, currency: str = "usd"):
        self.api_key = api_key
        self.currency = currency

    def create_intent(self, amount: float) -> str:
        """
        Create a card payment intent for ``amount`` in major units.

        Returns:
            str: The intent's client secret.

        Raises:
            Internal: If Stripe is not configured or rejects the request.
        """
        if not self.api_key:
            raise Internal("Payment processor is not configured")
        try:
            intent = stripe.PaymentIntent.create(
                amount=int(round(amount * 100)),
                currency=self.currency,
                payment_method_types=["card"],
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            logger.error("Creating payment intent failed: %s", exc)
            raise Internal("Payment processor error")
        return intent.client_secret


def get_payment_gateway() -> PaymentGateway:
    return PaymentGateway(settings.STRIPE_SECRET_KEY, settings.PAYMENT_CURRENCY)


@router.post(
    "/create-payment-intent",
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.RATE_LIMIT_TIMES, seconds=settings.RATE_LIMIT_SECONDS
            )
        )
    ],
)
def create_payment_intent(
    payload: schemas.PaymentIntentRequest,
    principal: Principal = Depends(get_current_principal),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Create a payment intent and hand its client secret to the browser.

    Args:
        payload (PaymentIntentRequest): Amount to charge.
        principal (Principal): Authenticated caller.
        gateway (PaymentGateway): Payment processor client.

    Returns:
        dict: ``clientSecret`` for the checkout form.
    """
    return {"clientSecret": gateway.create_intent(payload.amount)}


@router.post("/payments", status_code=status.HTTP_201_CREATED)
def record_payment(
    payment_in: schemas.PaymentCreate,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """
    Record a completed payment for an accepted offer.

    The offer becomes ``bought`` with the payment's transaction id.
    """
    ensure_self(principal, payment_in.buyer_email)
    return ledger.record_payment(
        store,
        payment_in.offer_id,
        payment_in.buyer_email,
        payment_in.amount,
        payment_in.transaction_id,
    )


@router.get("/payments")
def list_payments(
    email: str = Query(...),
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """Payment history of the caller."""
    ensure_self(principal, email)
    return serialize_all(ledger.payments_by_buyer(store, email))


@router.patch("/payments/mark-paid/{offer_id}")
def mark_paid(
    offer_id: str,
    principal: Principal = Depends(get_current_principal),
    store: Store = Depends(get_store),
):
    """
    Mark an offer bought from its recorded payment.

    Used to finish a payment whose offer update did not go through.
    Allowed for the paying buyer and admins.
    """
    offer = ledger.get_offer(store, offer_id)
    if offer.get("buyerEmail") != principal.email and not is_admin(store, principal):
        raise NotFound("Offer not found")
    return ledger.mark_paid(store, offer_id)
