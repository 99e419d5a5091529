"""Session registry: the single source of truth for live sessions."""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger

from app.domain.utils.idgen import new_session_id

from .connection import Connection


class Session:
    """One streamer connection and the viewers attached to it.

    The streamer is fixed at creation. Callers may add and remove entries of
    `viewers` directly; every value in it is a connection holding a viewer
    role for this session.
    """

    def __init__(self, session_id: str, streamer: Connection):
        self._session_id = session_id
        self._streamer = streamer
        self.viewers: dict[str, Connection] = {}
        self.created_at = datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return f"Session({self._session_id}, viewers={len(self.viewers)})"

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def streamer(self) -> Connection:
        return self._streamer

    @property
    def viewer_count(self) -> int:
        return len(self.viewers)

    def open_viewers(self) -> list[Connection]:
        """Snapshot of viewers whose socket is currently open."""
        return [viewer for viewer in self.viewers.values() if viewer.is_open]


class SessionRegistry:
    """Process-local mapping of session id to session.

    Nothing is persisted; the registry is rebuilt as streamers connect.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create_session(self, streamer: Connection) -> Session:
        """Register a new session owned by `streamer` under a fresh id."""
        session_id = new_session_id()
        while session_id in self._sessions:
            session_id = new_session_id()

        session = Session(session_id, streamer)
        self._sessions[session_id] = session
        logger.debug("Session {} registered ({} total)", session_id, len(self._sessions))
        return session

    def get(self, session_id: str | None) -> Session | None:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        """Drop a session. Removing an unknown id is a no-op."""
        return self._sessions.pop(session_id, None)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def viewer_count(self) -> int:
        return sum(session.viewer_count for session in self._sessions.values())
