"""Connection role enum."""

from enum import Enum


class ConnectionRole(str, Enum):
    """Role a relay connection plays within a session.

    Role Transition Flow:

    UNASSIGNED → STREAMER
        ↓
      VIEWER

    Role Descriptions:
    - UNASSIGNED: Socket accepted, no join message processed yet.
    - STREAMER: Owns exactly one session. Set by join-as-streamer.
    - VIEWER: Member of one streamer's session. Set by a successful join-as-viewer.

    STREAMER and VIEWER are terminal: a role is never reassigned.
    """

    UNASSIGNED = "unassigned"
    STREAMER = "streamer"
    VIEWER = "viewer"

    def __str__(self) -> str:
        return self.value


__all__ = ["ConnectionRole"]
