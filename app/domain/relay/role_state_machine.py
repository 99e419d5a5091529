"""Connection role state machine."""

from app.schemas.connection_role import ConnectionRole


class RoleStateMachine:
    """State machine for connection role transitions.

    - UNASSIGNED -> STREAMER (join-as-streamer processed)
    - UNASSIGNED -> VIEWER (join-as-viewer accepted)
    - STREAMER/VIEWER are terminal states
    """

    TRANSITIONS: dict[ConnectionRole, set[ConnectionRole]] = {
        ConnectionRole.UNASSIGNED: {ConnectionRole.STREAMER, ConnectionRole.VIEWER},
        ConnectionRole.STREAMER: set(),
        ConnectionRole.VIEWER: set(),
    }

    @classmethod
    def can_transition(cls, current: ConnectionRole, new: ConnectionRole) -> bool:
        """Check if role transition is valid.

        Args:
            current: Current connection role
            new: Target role

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

