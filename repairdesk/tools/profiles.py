"""
Client profile store: contact details and notification preferences.

Phone and email arrive through the two-step contact capture flow and are
validated here before being saved.
"""

import logging
import threading

from pydantic import EmailStr, TypeAdapter, ValidationError

from repairdesk.errors import InvalidInput
from repairdesk.schemas.customer_schema import UserProfile
from repairdesk.utils import is_valid_phone, normalize_phone

logger = logging.getLogger(__name__)

_EMAIL = TypeAdapter(EmailStr)


class ProfileStore:
    """Profiles keyed by user id; unknown users get defaults."""

    def __init__(self) -> None:
        self._profiles: dict[int, UserProfile] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int) -> UserProfile:
        with self._lock:
            profile = self._profiles.get(user_id)
            return profile.model_copy() if profile else UserProfile()

    def profiles_for(self, user_ids: list[int]) -> dict[int, UserProfile]:
        return {user_id: self.get(user_id) for user_id in user_ids}

    def _update(self, user_id: int, **changes) -> UserProfile:
        with self._lock:
            current = self._profiles.get(user_id) or UserProfile()
            updated = current.model_copy(update=changes)
            self._profiles[user_id] = updated
            return updated.model_copy()

    def set_phone(self, user_id: int, raw: str) -> UserProfile:
        """Validate and save a phone number.

        Raises:
            InvalidInput: If the number is not a valid mobile number.
        """
        if not is_valid_phone(raw):
            raise InvalidInput(f"Invalid phone number: {raw!r}")
        profile = self._update(user_id, phone=normalize_phone(raw))
        logger.info("Phone saved for user %s", user_id)
        return profile

    def set_email(self, user_id: int, raw: str) -> UserProfile:
        """Validate and save an email address.

        Raises:
            InvalidInput: If the address is malformed.
        """
        try:
            email = _EMAIL.validate_python(raw.strip())
        except ValidationError:
            raise InvalidInput(f"Invalid email: {raw!r}") from None
        profile = self._update(user_id, email=email)
        logger.info("Email saved for user %s", user_id)
        return profile

    def toggle_notifications(self, user_id: int) -> UserProfile:
        enabled = not self.get(user_id).notifications
        return self._update(user_id, notifications=enabled)

    def wants_notifications(self, user_id: int) -> bool:
        return self.get(user_id).notifications

    def reset(self) -> None:
        with self._lock:
            self._profiles.clear()
