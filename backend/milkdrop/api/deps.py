"""Shared API dependencies — single import point for all routers.

Re-exports database session, authentication and OTP store dependencies so
that router modules can import everything they need from one place::

    from milkdrop.api.deps import get_db, get_current_active_user
"""

from milkdrop.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    require_admin,
)
from milkdrop.auth.otp import get_otp_store
from milkdrop.database import get_db

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "require_admin",
    "get_otp_store",
]
