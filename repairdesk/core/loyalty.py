"""Per-user loyalty point ledger."""

import logging
import threading
from typing import Optional

from repairdesk.errors import InvalidInput

logger = logging.getLogger(__name__)

STANDARD_POINTS_DIVISOR = 10


def points_for_order(price: int, bundle_points: Optional[int] = None) -> int:
    """Points earned by an order.

    Bundles award their fixed point value; standard services award a tenth
    of the price, rounded down.
    """
    if bundle_points is not None:
        return bundle_points
    return price // STANDARD_POINTS_DIVISOR


class LoyaltyLedger:
    """Point balances keyed by user id. Balances only ever grow."""

    def __init__(self) -> None:
        self._balances: dict[int, int] = {}
        self._lock = threading.Lock()

    def credit(self, user_id: int, points: int, reason: str = "") -> int:
        """Add points to a user's balance and return the new total."""
        if points < 0:
            raise InvalidInput(f"Cannot credit negative points: {points}")
        with self._lock:
            total = self._balances.get(user_id, 0) + points
            self._balances[user_id] = total
        logger.info(
            "Loyalty points added: user=%s points=%d reason=%r total=%d",
            user_id, points, reason, total,
        )
        return total

    def balance(self, user_id: int) -> int:
        with self._lock:
            return self._balances.get(user_id, 0)

    def balances(self) -> dict[int, int]:
        """Snapshot of every known balance."""
        with self._lock:
            return dict(self._balances)

    def reset(self) -> None:
        """Clear all balances. Used by test fixtures for isolation."""
        with self._lock:
            self._balances.clear()
