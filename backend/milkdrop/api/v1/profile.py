"""Profile API router — view and edit the account, change password."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from milkdrop.api.deps import get_current_active_user, get_db
from milkdrop.auth.passwords import hash_password, verify_password
from milkdrop.models.user import User
from milkdrop.schemas.auth import MessageResponse
from milkdrop.schemas.profile import (
    ChangePasswordRequest,
    DeliveryAddress,
    ProfileResponse,
    ProfileUpdate,
)
from milkdrop.services.subscription_service import get_current_subscription
from milkdrop.subscriptions.lifecycle import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/profile", tags=["profile"])


async def _build_profile(db: AsyncSession, user: User) -> ProfileResponse:
    subscription = await get_current_subscription(db, user, utcnow())
    address = None
    if subscription is not None:
        address = DeliveryAddress(
            address=subscription.address,
            building_name=subscription.building_name,
            flat_number=subscription.flat_number,
        )

    return ProfileResponse(
        id=user.id,
        username=user.username,
        name=user.name or "",
        email=user.email,
        phone=user.phone or "",
        street=user.street,
        city=user.city,
        state=user.state,
        zip_code=user.zip_code,
        created_at=user.created_at,
        profile_complete=bool(user.name and user.email and user.phone),
        subscription_address=address,
    )


@router.get("", response_model=ProfileResponse)
async def get_profile(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ProfileResponse:
    """Profile plus the delivery address of the current subscription."""
    return await _build_profile(db, current_user)


@router.put("", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ProfileResponse:
    """Partially update the profile. Only provided fields are changed."""
    update_data = body.model_dump(exclude_unset=True)

    if update_data.get("email"):
        update_data["email"] = update_data["email"].lower()
        if update_data["email"] != current_user.email:
            result = await db.execute(select(User).where(User.email == update_data["email"]))
            if result.scalar_one_or_none() is not None:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already in use")
    elif "email" in update_data:
        # email is required on the account
        del update_data["email"]

    if update_data.get("phone") and update_data["phone"] != current_user.phone:
        result = await db.execute(select(User).where(User.phone == update_data["phone"]))
        if result.scalar_one_or_none() is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Phone number already in use")

    for field, value in update_data.items():
        setattr(current_user, field, value)

    await db.flush()
    await db.refresh(current_user)
    logger.info("Profile updated for user %s: %s", current_user.id, sorted(update_data))
    return await _build_profile(db, current_user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MessageResponse:
    """Replace the password after checking the current one."""
    if not verify_password(body.current_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

    current_user.hashed_password = hash_password(body.new_password)
    await db.flush()
    logger.info("Password changed for user %s", current_user.id)
    return MessageResponse(message="Password updated")
