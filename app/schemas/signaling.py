"""Signaling wire messages.

Pydantic models for the JSON frames exchanged over the relay WebSocket.
Field names are snake_case in Python and camelCase on the wire.
`sdp` and `candidate` payloads are opaque and passed through untouched.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SignalType(str, Enum):
    """Signaling message types."""

    # Client -> relay
    JOIN_AS_STREAMER = "join-as-streamer"
    JOIN_AS_VIEWER = "join-as-viewer"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    LEAVE = "leave"

    # Relay -> client
    SESSION_CREATED = "session-created"
    JOINED = "joined"
    VIEWER_JOINED = "viewer-joined"
    VIEWER_LEFT = "viewer-left"
    STREAM_ENDED = "stream-ended"
    ERROR = "error"
    NO_STREAM = "no-stream"

    def __str__(self) -> str:
        return self.value


class SignalMessage(BaseModel):
    """Base for every frame; unknown fields are ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
        extra="ignore",
    )


# ── Inbound ───────────────────────────────────────────────────


class JoinAsStreamerIn(SignalMessage):
    type: Literal[SignalType.JOIN_AS_STREAMER] = SignalType.JOIN_AS_STREAMER


class JoinAsViewerIn(SignalMessage):
    """join-as-viewer request.

    A client-supplied `viewerId` is ignored; viewer ids are always generated
    by the relay.
    """

    type: Literal[SignalType.JOIN_AS_VIEWER] = SignalType.JOIN_AS_VIEWER
    # Any JSON value is accepted; a non-string id simply matches no session.
    session_id: Any = Field(None, description="Session to join")


class OfferIn(SignalMessage):
    type: Literal[SignalType.OFFER] = SignalType.OFFER
    sdp: Any = Field(..., description="Opaque SDP offer")


class AnswerIn(SignalMessage):
    type: Literal[SignalType.ANSWER] = SignalType.ANSWER
    sdp: Any = Field(..., description="Opaque SDP answer")


class IceCandidateIn(SignalMessage):
    type: Literal[SignalType.ICE_CANDIDATE] = SignalType.ICE_CANDIDATE
    candidate: Any = Field(..., description="Opaque ICE candidate")


class LeaveIn(SignalMessage):
    type: Literal[SignalType.LEAVE] = SignalType.LEAVE


INBOUND_MESSAGES: dict[SignalType, type[SignalMessage]] = {
    SignalType.JOIN_AS_STREAMER: JoinAsStreamerIn,
    SignalType.JOIN_AS_VIEWER: JoinAsViewerIn,
    SignalType.OFFER: OfferIn,
    SignalType.ANSWER: AnswerIn,
    SignalType.ICE_CANDIDATE: IceCandidateIn,
    SignalType.LEAVE: LeaveIn,
}


# ── Outbound ──────────────────────────────────────────────────


class SessionCreatedOut(SignalMessage):
    type: Literal[SignalType.SESSION_CREATED] = SignalType.SESSION_CREATED
    session_id: str
    viewer_join_url: str


class JoinedOut(SignalMessage):
    type: Literal[SignalType.JOINED] = SignalType.JOINED
    session_id: str
    viewer_id: str


class ViewerJoinedOut(SignalMessage):
    type: Literal[SignalType.VIEWER_JOINED] = SignalType.VIEWER_JOINED
    viewer_id: str
    viewer_count: int


class ViewerLeftOut(SignalMessage):
    type: Literal[SignalType.VIEWER_LEFT] = SignalType.VIEWER_LEFT
    viewer_id: str
    viewer_count: int


class OfferOut(SignalMessage):
    type: Literal[SignalType.OFFER] = SignalType.OFFER
    sdp: Any


class AnswerOut(SignalMessage):
    type: Literal[SignalType.ANSWER] = SignalType.ANSWER
    viewer_id: str
    sdp: Any


class StreamerIceCandidateOut(SignalMessage):
    """Candidate fanned out from the streamer to its viewers."""

    type: Literal[SignalType.ICE_CANDIDATE] = SignalType.ICE_CANDIDATE
    candidate: Any


class ViewerIceCandidateOut(SignalMessage):
    """Candidate forwarded from a viewer to its streamer."""

    type: Literal[SignalType.ICE_CANDIDATE] = SignalType.ICE_CANDIDATE
    viewer_id: str
    candidate: Any


class StreamEndedOut(SignalMessage):
    type: Literal[SignalType.STREAM_ENDED] = SignalType.STREAM_ENDED
    session_id: str


class ErrorOut(SignalMessage):
    type: Literal[SignalType.ERROR] = SignalType.ERROR
    message: str


class NoStreamOut(SignalMessage):
    type: Literal[SignalType.NO_STREAM] = SignalType.NO_STREAM
    message: str
