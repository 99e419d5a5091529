"""Wire and domain schemas."""

from .connection_role import ConnectionRole
from .signaling import INBOUND_MESSAGES, SignalMessage, SignalType

__all__ = [
    "ConnectionRole",
    "INBOUND_MESSAGES",
    "SignalMessage",
    "SignalType",
]
