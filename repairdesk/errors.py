"""
Typed failures raised by the core stores.

Every core operation either returns its value or raises exactly one of
these. The dispatcher maps them to user-facing replies; anything else is
treated as an unexpected fault.
"""


class RepairDeskError(Exception):
    """Base class for all expected core failures."""


class NotFound(RepairDeskError):
    """Referenced request or conversation does not exist."""


class Forbidden(RepairDeskError):
    """Acting user lacks operator authority."""


class InvalidTransition(RepairDeskError):
    """Requested status change is unreachable from the current status."""


class InvalidInput(RepairDeskError):
    """Malformed phone, email, date or callback payload."""


class DeliveryFailure(RepairDeskError):
    """A notification could not be delivered by the transport."""
