"""Relay connection: one transport socket plus its role within a session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Protocol

from loguru import logger

from app.domain.utils.idgen import new_connection_id
from app.schemas.connection_role import ConnectionRole
from app.schemas.signaling import SignalMessage
from app.utils.app_errors import AppError, AppErrorCode, WsCloseCode

from .role_state_machine import RoleStateMachine


class SignalingTransport(Protocol):
    """Message-oriented, bidirectional socket the relay talks through."""

    @property
    def is_connected(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int, reason: str) -> None: ...


@dataclass(frozen=True)
class Unassigned:
    kind: ClassVar[ConnectionRole] = ConnectionRole.UNASSIGNED


@dataclass(frozen=True)
class StreamerRole:
    session_id: str

    kind: ClassVar[ConnectionRole] = ConnectionRole.STREAMER


@dataclass(frozen=True)
class ViewerRole:
    session_id: str
    viewer_id: str

    kind: ClassVar[ConnectionRole] = ConnectionRole.VIEWER


Role = Unassigned | StreamerRole | ViewerRole

UNASSIGNED = Unassigned()


class Connection:
    """A single participant socket.

    Sends are best-effort: a frame for a socket that is not open is skipped,
    and a failed send marks the connection as broken so that it reads as
    not open to the router and the liveness sweeper.
    """

    def __init__(self, transport: SignalingTransport, connection_id: str | None = None):
        self.connection_id = connection_id or new_connection_id()
        self._transport = transport
        self._role: Role = UNASSIGNED
        self._closed = False
        self._broken = False

    def __repr__(self) -> str:
        return f"Connection({self.connection_id}, {self._role.kind})"

    @property
    def role(self) -> Role:
        return self._role

    @property
    def session_id(self) -> str | None:
        return getattr(self._role, "session_id", None)

    @property
    def viewer_id(self) -> str | None:
        return getattr(self._role, "viewer_id", None)

    @property
    def is_open(self) -> bool:
        return not self._closed and not self._broken and self._transport.is_connected

    def assign_role(self, role: StreamerRole | ViewerRole) -> None:
        """Assign the connection's role. Roles are set once and never change.

        Raises:
            AppError: If a role was already assigned
        """
        if not RoleStateMachine.can_transition(self._role.kind, role.kind):
            raise AppError(
                errcode=AppErrorCode.E_ROLE_ALREADY_ASSIGNED,
                errmesg=f"Invalid role transition: {self._role.kind} -> {role.kind}",
            )
        self._role = role

    async def send(self, message: SignalMessage) -> bool:
        """Send a frame if the socket is open. Returns whether it was written."""
        if not self.is_open:
            logger.debug("Skip {} to {}: connection not open", message.type, self.connection_id)
            return False

        try:
            await self._transport.send_text(message.model_dump_json())
        except Exception as exc:
            self._broken = True
            logger.warning("Failed to send {} to {}: {}", message.type, self.connection_id, exc)
            return False

        return True

    async def close(
        self,
        code: WsCloseCode = WsCloseCode.NORMAL_CLOSURE,
        reason: str = "",
    ) -> None:
        """Close the socket from the relay side. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if not self._transport.is_connected:
            return

        try:
            await self._transport.close(code=int(code), reason=reason)
        except Exception as exc:
            logger.debug("Close of {} failed: {}", self.connection_id, exc)
