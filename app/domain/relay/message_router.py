"""Message router: role-based dispatch of signaling frames.

The target of every frame is derived from the sender's own role:
- a streamer's offer / ice-candidate fans out to every open viewer of its session
- a viewer's answer / ice-candidate goes to its session's streamer

Every registry mutation of one logical operation happens before the first
`await`, so operations interleaving on the event loop never observe a
half-updated session.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import orjson
from loguru import logger
from pydantic import ValidationError

from app.schemas.connection_role import ConnectionRole
from app.schemas.signaling import (
    INBOUND_MESSAGES,
    AnswerIn,
    AnswerOut,
    ErrorOut,
    IceCandidateIn,
    JoinAsStreamerIn,
    JoinAsViewerIn,
    JoinedOut,
    NoStreamOut,
    OfferIn,
    OfferOut,
    SessionCreatedOut,
    SignalMessage,
    SignalType,
    StreamEndedOut,
    StreamerIceCandidateOut,
    ViewerIceCandidateOut,
    ViewerJoinedOut,
    ViewerLeftOut,
)
from app.utils.app_errors import AppError, AppErrorCode, WsCloseCode

from .connection import Connection, StreamerRole, ViewerRole
from .session_registry import Session, SessionRegistry

DEFAULT_VIEWER_JOIN_URL_TEMPLATE = "/viewer.html?stream={session_id}"

Handler = Callable[[Connection, SignalMessage], Awaitable[None]]


class MessageRouter:
    """Interprets inbound frames against the sender's role and the registry."""

    def __init__(
        self,
        registry: SessionRegistry,
        viewer_join_url_template: str = DEFAULT_VIEWER_JOIN_URL_TEMPLATE,
    ):
        self.registry = registry
        self.viewer_join_url_template = viewer_join_url_template

        self._handlers: dict[tuple[ConnectionRole, SignalType], Handler] = {
            (ConnectionRole.UNASSIGNED, SignalType.JOIN_AS_STREAMER): self._join_as_streamer,
            (ConnectionRole.UNASSIGNED, SignalType.JOIN_AS_VIEWER): self._join_as_viewer,
            (ConnectionRole.STREAMER, SignalType.OFFER): self._fan_out_offer,
            (ConnectionRole.STREAMER, SignalType.ICE_CANDIDATE): self._fan_out_candidate,
            (ConnectionRole.VIEWER, SignalType.ANSWER): self._forward_answer,
            (ConnectionRole.VIEWER, SignalType.ICE_CANDIDATE): self._forward_candidate,
            (ConnectionRole.VIEWER, SignalType.LEAVE): self._leave,
        }

    def viewer_join_url(self, session_id: str) -> str:
        return self.viewer_join_url_template.format(session_id=session_id)

    # ── Inbound frames ────────────────────────────────────────

    async def handle_message(self, connection: Connection, raw: str | bytes) -> None:
        """Parse one inbound frame and dispatch it.

        Malformed frames, unknown types and types not valid for the sender's
        role are logged and ignored; the connection stays open.
        """
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            logger.warning("Invalid JSON from {}: {}", connection.connection_id, exc)
            return

        if not isinstance(data, dict):
            logger.warning("Ignoring non-object frame from {}", connection.connection_id)
            return

        msg_type = data.get("type")
        signal_type = _inbound_signal_type(msg_type)
        if signal_type is None:
            logger.warning("Unknown message type from {}: {!r}", connection.connection_id, msg_type)
            return

        try:
            message = INBOUND_MESSAGES[signal_type].model_validate(data)
        except ValidationError as exc:
            logger.warning(
                "Failed to parse {} from {}: {}",
                signal_type,
                connection.connection_id,
                exc.errors(include_url=False),
            )
            return

        role = connection.role.kind
        handler = self._handlers.get((role, signal_type))
        if handler is None:
            logger.warning(
                "{} not permitted for {} connection {}",
                signal_type,
                role,
                connection.connection_id,
            )
            return

        await handler(connection, message)

    async def _join_as_streamer(self, connection: Connection, message: JoinAsStreamerIn) -> None:
        session = self.registry.create_session(connection)
        connection.assign_role(StreamerRole(session_id=session.session_id))

        logger.info("Streamer {} created session {}", connection.connection_id, session.session_id)

        await connection.send(
            SessionCreatedOut(
                session_id=session.session_id,
                viewer_join_url=self.viewer_join_url(session.session_id),
            )
        )

    async def _join_as_viewer(self, connection: Connection, message: JoinAsViewerIn) -> None:
        try:
            session = self._resolve_joinable_session(message.session_id)
        except AppError as exc:
            logger.info(
                "Viewer {} rejected: {} {} msg={} caller={}",
                connection.connection_id,
                exc.errcode,
                exc.erresid,
                exc.errmesg,
                exc.caller_info,
            )
            if exc.errcode == AppErrorCode.E_MISSING_SESSION_ID.value:
                reply: SignalMessage = ErrorOut(message=exc.errmesg)
            else:
                reply = NoStreamOut(message=exc.errmesg)
            await connection.send(reply)
            await connection.close(exc.close_code, reason=exc.errcode)
            return

        viewer_id = connection.connection_id
        connection.assign_role(ViewerRole(session_id=session.session_id, viewer_id=viewer_id))
        session.viewers[viewer_id] = connection
        viewer_count = session.viewer_count

        logger.info(
            "Viewer {} joined session {} ({} viewers)",
            viewer_id,
            session.session_id,
            viewer_count,
        )

        await session.streamer.send(ViewerJoinedOut(viewer_id=viewer_id, viewer_count=viewer_count))
        await connection.send(JoinedOut(session_id=session.session_id, viewer_id=viewer_id))

    def _resolve_joinable_session(self, session_id: Any) -> Session:
        if session_id is None or session_id == "":
            raise AppError(
                errcode=AppErrorCode.E_MISSING_SESSION_ID,
                errmesg="viewer must provide sessionId",
            )

        session = self.registry.get(session_id) if isinstance(session_id, str) else None
        if session is None:
            raise AppError(
                errcode=AppErrorCode.E_SESSION_NOT_FOUND,
                errmesg="Streamer not available",
            )

        if not session.streamer.is_open:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_UNAVAILABLE,
                errmesg="Streamer not available",
            )

        return session

    async def _fan_out_offer(self, connection: Connection, message: OfferIn) -> None:
        await self._fan_out(connection, OfferOut(sdp=message.sdp))

    async def _fan_out_candidate(self, connection: Connection, message: IceCandidateIn) -> None:
        await self._fan_out(connection, StreamerIceCandidateOut(candidate=message.candidate))

    async def _fan_out(self, streamer: Connection, outbound: SignalMessage) -> None:
        session = self.registry.get(streamer.session_id)
        if session is None or session.streamer is not streamer:
            logger.warning("No session for streamer {}, dropping {}", streamer.connection_id, outbound.type)
            return

        viewers = session.open_viewers()
        for viewer in viewers:
            await viewer.send(outbound)

        logger.debug("Fanned out {} to {} viewer(s) of {}", outbound.type, len(viewers), session.session_id)

    async def _forward_answer(self, connection: Connection, message: AnswerIn) -> None:
        await self._forward_to_streamer(
            connection,
            AnswerOut(viewer_id=connection.viewer_id, sdp=message.sdp),
        )

    async def _forward_candidate(self, connection: Connection, message: IceCandidateIn) -> None:
        await self._forward_to_streamer(
            connection,
            ViewerIceCandidateOut(viewer_id=connection.viewer_id, candidate=message.candidate),
        )

    async def _forward_to_streamer(self, viewer: Connection, outbound: SignalMessage) -> None:
        session = self.registry.get(viewer.session_id)
        if session is None or not session.streamer.is_open:
            logger.debug("Streamer of {} not open, dropping {}", viewer.session_id, outbound.type)
            return

        await session.streamer.send(outbound)

    async def _leave(self, connection: Connection, message: SignalMessage) -> None:
        await self._release_viewer(connection)
        await connection.close(WsCloseCode.NORMAL_CLOSURE, reason="left")

    # ── Close handling ────────────────────────────────────────

    async def handle_close(self, connection: Connection) -> None:
        """Tear down whatever the closing connection registered.

        Safe to call more than once for the same connection.
        """
        role = connection.role
        if isinstance(role, StreamerRole):
            session = self.registry.get(role.session_id)
            if session is not None and session.streamer is connection:
                logger.info("Streamer {} disconnected", connection.connection_id)
                await self.teardown_session(session)
        elif isinstance(role, ViewerRole):
            await self._release_viewer(connection)

    async def _release_viewer(self, viewer: Connection) -> None:
        session = self.registry.get(viewer.session_id)
        if session is None or session.viewers.get(viewer.viewer_id) is not viewer:
            return

        del session.viewers[viewer.viewer_id]
        viewer_count = session.viewer_count

        logger.info(
            "Viewer {} left session {} ({} viewers)",
            viewer.viewer_id,
            session.session_id,
            viewer_count,
        )

        if session.streamer.is_open:
            await session.streamer.send(ViewerLeftOut(viewer_id=viewer.viewer_id, viewer_count=viewer_count))

    async def teardown_session(self, session: Session, *, close_streamer: bool = False) -> bool:
        """Remove a session, notify and close every viewer.

        Returns False if the session had already been removed.
        """
        if self.registry.get(session.session_id) is not session:
            return False

        self.registry.remove(session.session_id)
        viewers = list(session.viewers.values())
        session.viewers.clear()

        ended = StreamEndedOut(session_id=session.session_id)
        for viewer in viewers:
            await viewer.send(ended)
            await viewer.close(WsCloseCode.NORMAL_CLOSURE, reason="stream ended")

        if close_streamer:
            await session.streamer.close(WsCloseCode.GOING_AWAY, reason="session closed")

        logger.info("Session {} removed, {} viewer(s) closed", session.session_id, len(viewers))
        return True

    async def shutdown(self) -> int:
        """Tear down every session, closing all sockets. Used on process shutdown."""
        sessions = self.registry.sessions()
        for session in sessions:
            await self.teardown_session(session, close_streamer=True)
        return len(sessions)


def _inbound_signal_type(value: object) -> SignalType | None:
    if not isinstance(value, str):
        return None
    try:
        signal_type = SignalType(value)
    except ValueError:
        return None
    return signal_type if signal_type in INBOUND_MESSAGES else None
