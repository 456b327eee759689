"""
Repair request lifecycle.

Every status change a request can go through is listed explicitly below.
Pending is the only initial status; completed and cancelled are terminal.
Anything not in the table, including re-applying the current status, is
rejected.

Usage:
    check_transition(RequestStatus.PENDING, RequestStatus.IN_PROGRESS)
    valid_targets(RequestStatus.COMPLETED)  # -> []
"""

import logging
from dataclasses import dataclass

from repairdesk.errors import InvalidTransition
from repairdesk.schemas.request_schema import RequestStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    """A single valid status change."""
    from_status: RequestStatus
    to_status: RequestStatus


TRANSITIONS: list[Transition] = [
    # --- Triage ---
    Transition(RequestStatus.PENDING, RequestStatus.IN_PROGRESS),
    Transition(RequestStatus.PENDING, RequestStatus.CANCELLED),

    # --- Work ---
    Transition(RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED),
    Transition(RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED),
]


def valid_targets(current: RequestStatus) -> list[RequestStatus]:
    """Return every status reachable in one step from ``current``."""
    return [t.to_status for t in TRANSITIONS if t.from_status == current]


def is_valid_transition(current: RequestStatus, new: RequestStatus) -> bool:
    return any(t.from_status == current and t.to_status == new for t in TRANSITIONS)


def check_transition(current: RequestStatus, new: RequestStatus) -> None:
    """
    Validate a status change against the table.

    Raises:
        InvalidTransition: If ``new`` is not reachable from ``current``.
    """
    if is_valid_transition(current, new):
        return
    valid = [s.value for s in valid_targets(current)]
    logger.debug("Rejected transition %s -> %s", current.value, new.value)
    raise InvalidTransition(
        f"No valid transition from '{current.value}' to '{new.value}'. "
        f"Valid targets: {valid}"
    )
