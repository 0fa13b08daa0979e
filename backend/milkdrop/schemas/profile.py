"""Pydantic v2 schemas for the user profile endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class ProfileUpdate(BaseModel):
    """Partial profile update. All fields optional."""

    name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20, pattern=r"^\+?[0-9\s-]{7,20}$")
    street: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=128)


class DeliveryAddress(BaseModel):
    address: str
    building_name: str
    flat_number: str


class ProfileResponse(BaseModel):
    """Profile plus the delivery address of the latest active subscription."""

    id: uuid.UUID
    username: str
    name: str
    email: str
    phone: str
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    created_at: datetime
    profile_complete: bool
    subscription_address: DeliveryAddress | None = None
