"""Client profile and rollup models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr


class UserProfile(BaseModel):
    """Contact details and preferences a client manages from settings."""

    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    notifications: bool = True
    language: str = "en"


class ClientRollup(BaseModel):
    """Per-client aggregate derived from their requests and points."""

    user_id: int
    total_orders: int
    total_spent: int
    points: int
    last_active_at: datetime
