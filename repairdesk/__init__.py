"""RepairDesk: conversational repair-request desk for messaging platforms."""

__version__ = "0.1.0"
