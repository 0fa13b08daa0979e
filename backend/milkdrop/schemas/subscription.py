"""Pydantic v2 request/response schemas for subscription endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from milkdrop.services.address import (
    ADDRESS_MAX_LENGTH,
    BUILDING_NAME_MAX_LENGTH,
    FLAT_NUMBER_MAX_LENGTH,
    clean_address_field,
)

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CheckoutRequest(BaseModel):
    """Plan selection and delivery address for a new subscription."""

    plan: str  # plan code, e.g. "500ml-6days"
    address: str
    building_name: str
    flat_number: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    success_url: str | None = None
    cancel_url: str | None = None

    @field_validator("address")
    @classmethod
    def _clean_address(cls, value: str) -> str:
        return clean_address_field(value, "address", ADDRESS_MAX_LENGTH)

    @field_validator("building_name")
    @classmethod
    def _clean_building_name(cls, value: str) -> str:
        return clean_address_field(value, "building_name", BUILDING_NAME_MAX_LENGTH)

    @field_validator("flat_number")
    @classmethod
    def _clean_flat_number(cls, value: str) -> str:
        return clean_address_field(value, "flat_number", FLAT_NUMBER_MAX_LENGTH)


class PurchaseRequest(BaseModel):
    """Confirm a completed Stripe Checkout session."""

    checkout_session_id: str = Field(..., pattern=r"^cs_[A-Za-z0-9_]+$")


class TransitionRequest(BaseModel):
    """Optional audit reason for pause/resume/cancel."""

    reason: str | None = Field(None, max_length=500)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PlanResponse(BaseModel):
    code: str
    subscription_type: str
    duration: str
    display_name: str
    price: Decimal
    nominal_days: int
    effective_days: int


class PlansListResponse(BaseModel):
    plans: list[PlanResponse]


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    checkout_url: str
    session_id: str


class SubscriptionResponse(BaseModel):
    """A subscription with its computed status facts."""

    id: uuid.UUID
    subscription_type: str
    duration: str
    amount: Decimal
    currency: str
    status: str
    start_date: date
    end_date: date
    paused_at: datetime | None = None
    resumed_at: datetime | None = None
    total_paused_days: int
    remaining_days: int
    is_expired: bool
    address: str
    building_name: str
    flat_number: str
    latitude: Decimal | None = None
    longitude: Decimal | None = None
    payment_id: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_subscription(cls, subscription, remaining_days: int, **extra):
        """Serialize an ORM row together with its computed fields."""
        fields = {
            name: getattr(subscription, name)
            for name in cls.model_fields
            if name not in ("remaining_days", "is_expired") and name not in extra
        }
        return cls(
            **fields,
            **extra,
            remaining_days=remaining_days,
            is_expired=subscription.status == "expired",
        )


class SubscriptionListResponse(BaseModel):
    items: list[SubscriptionResponse]
    total: int


class CurrentSubscriptionResponse(BaseModel):
    """Summary of the user's latest live (active or paused) subscription."""

    has_active_subscription: bool
    remaining_days: int
    subscription: SubscriptionResponse | None = None


class StatusHistoryEntry(BaseModel):
    id: uuid.UUID
    old_status: str
    new_status: str
    changed_by: str
    change_reason: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryResponse(BaseModel):
    history: list[StatusHistoryEntry]
