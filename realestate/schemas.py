from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

Role = Literal["user", "agent", "admin", "fraud"]
VerificationStatus = Literal["pending", "verified", "rejected"]
ContactStatus = Literal["pending", "contacted", "resolved"]


class CamelModel(BaseModel):
    """Request body accepting the camelCase keys stored in documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self, exclude_unset: bool = False) -> dict:
        """Dump fields under their stored (camelCase) names."""
        return self.model_dump(
            by_alias=True, exclude_none=True, exclude_unset=exclude_unset
        )


class UserCreate(CamelModel):
    """Payload sent on first login to register a user."""

    email: EmailStr
    name: Optional[str] = None
    photo: Optional[str] = None


class UserUpdate(CamelModel):
    """Profile fields a user may change (all optional)."""

    name: Optional[str] = None
    photo: Optional[str] = None
    is_first_login: Optional[bool] = None


class RoleUpdate(CamelModel):
    role: Role


class ListingCreate(CamelModel):
    """Schema for a new property listing.

    Verification and advertising state are not part of the payload; any
    such keys sent by the caller are ignored.
    """

    title: str = Field(min_length=1, max_length=200)
    location: str = Field(min_length=1)
    image: Optional[str] = None
    description: Optional[str] = None
    min_price: float = Field(ge=0)
    max_price: float = Field(ge=0)
    agent_name: Optional[str] = None
    agent_image: Optional[str] = None

    @model_validator(mode="after")
    def check_price_range(self):
        if self.min_price > self.max_price:
            raise ValueError("minPrice must not exceed maxPrice")
        return self


class ListingUpdate(CamelModel):
    """Schema for updating a listing (all fields optional)."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    location: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    agent_name: Optional[str] = None
    agent_image: Optional[str] = None


class OfferCreate(CamelModel):
    """A buyer's offer against a verified listing."""

    property_id: str
    amount: float = Field(gt=0)
    agent_email: Optional[EmailStr] = None
    agent_name: Optional[str] = None
    buyer_name: Optional[str] = None


class PaymentCreate(CamelModel):
    """Completed payment reported by the client after checkout."""

    offer_id: str
    buyer_email: EmailStr
    amount: float = Field(gt=0)
    transaction_id: str = Field(min_length=1)


class PaymentIntentRequest(CamelModel):
    amount: float = Field(gt=0)


class ReviewCreate(CamelModel):
    property_id: str
    comment: str = Field(min_length=1, max_length=5000)
    rating: Optional[int] = Field(None, ge=1, le=5)
    reviewer_name: Optional[str] = None
    reviewer_image: Optional[str] = None


class ContactCreate(CamelModel):
    """Contact request left from the public site."""

    phone: str = Field(min_length=3, max_length=30)
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    message: Optional[str] = Field(None, max_length=2000)


class ContactStatusUpdate(CamelModel):
    status: ContactStatus
