"""Tests for MessageRouter dispatch and close handling."""

import pytest

from app.domain.relay.connection import StreamerRole, Unassigned, ViewerRole
from app.schemas import ConnectionRole
from app.utils.app_errors import WsCloseCode
from tests.fixtures.relay_fixtures import frame


class TestSignalingScenario:
    """End-to-end handshake through the router."""

    async def test_full_handshake(self, router, registry, streamer_session, join_viewer):
        """Streamer joins, viewer joins, offer/answer relayed, viewer leaves."""
        # Arrange
        streamer, streamer_tx, session_id = await streamer_session()

        # Act - viewer joins
        viewer, viewer_tx = await join_viewer(session_id)
        viewer_id = viewer.connection_id

        # Assert
        assert streamer_tx.messages[-1] == {
            "type": "viewer-joined",
            "viewerId": viewer_id,
            "viewerCount": 1,
        }
        assert viewer_tx.messages == [
            {"type": "joined", "sessionId": session_id, "viewerId": viewer_id},
        ]

        # Act - offer from streamer
        await router.handle_message(streamer, frame("offer", sdp="v=0 offer"))
        assert viewer_tx.messages[-1] == {"type": "offer", "sdp": "v=0 offer"}

        # Act - answer from viewer
        await router.handle_message(viewer, frame("answer", sdp="v=0 answer"))
        assert streamer_tx.messages[-1] == {
            "type": "answer",
            "viewerId": viewer_id,
            "sdp": "v=0 answer",
        }

        # Act - viewer disconnects
        await router.handle_close(viewer)
        assert streamer_tx.messages[-1] == {
            "type": "viewer-left",
            "viewerId": viewer_id,
            "viewerCount": 0,
        }
        assert session_id in registry


class TestJoinAsStreamer:
    async def test_creates_session_and_assigns_role(self, router, registry, new_peer):
        """join-as-streamer registers a session owned by the sender."""
        streamer, transport = new_peer()

        await router.handle_message(streamer, frame("join-as-streamer"))

        reply = transport.messages[0]
        session_id = reply["sessionId"]
        assert reply == {
            "type": "session-created",
            "sessionId": session_id,
            "viewerJoinUrl": f"/viewer.html?stream={session_id}",
        }
        assert session_id.startswith("se_")
        assert streamer.role == StreamerRole(session_id=session_id)
        assert registry.get(session_id).streamer is streamer

    async def test_client_supplied_session_id_is_ignored(self, router, new_peer):
        """Session ids are always generated by the relay."""
        streamer, transport = new_peer()

        await router.handle_message(streamer, frame("join-as-streamer", sessionId="mine"))

        assert transport.messages[0]["sessionId"] != "mine"

    async def test_second_join_is_ignored(self, router, registry, streamer_session):
        """A streamer cannot join again or own a second session."""
        streamer, transport, session_id = await streamer_session()

        await router.handle_message(streamer, frame("join-as-streamer"))
        await router.handle_message(streamer, frame("join-as-viewer", sessionId=session_id))

        assert len(registry) == 1
        assert len(transport.messages) == 1
        assert streamer.role.kind == ConnectionRole.STREAMER

    async def test_distinct_streamers_get_distinct_sessions(self, registry, streamer_session):
        _, _, first = await streamer_session()
        _, _, second = await streamer_session()

        assert first != second
        assert len(registry) == 2

    async def test_custom_viewer_join_url_template(self, registry, new_peer):
        from app.domain.relay.message_router import MessageRouter

        router = MessageRouter(registry, viewer_join_url_template="https://relay.test/watch/{session_id}")
        streamer, transport = new_peer()

        await router.handle_message(streamer, frame("join-as-streamer"))

        reply = transport.messages[0]
        assert reply["viewerJoinUrl"] == f"https://relay.test/watch/{reply['sessionId']}"


class TestJoinAsViewer:
    async def test_unknown_session_replies_no_stream_and_closes(self, router, registry, new_peer, streamer_session):
        """Joining an unknown session yields no-stream, closes, leaves registry unchanged."""
        await streamer_session()
        before = {s.session_id: s.viewer_count for s in registry.sessions()}
        viewer, transport = new_peer()

        await router.handle_message(viewer, frame("join-as-viewer", sessionId="se_missing"))

        assert transport.messages == [{"type": "no-stream", "message": "Streamer not available"}]
        assert transport.close_calls == [(WsCloseCode.POLICY_VIOLATION, "E_SESSION_NOT_FOUND")]
        assert isinstance(viewer.role, Unassigned)
        assert viewer.is_open is False
        assert {s.session_id: s.viewer_count for s in registry.sessions()} == before

    @pytest.mark.parametrize("session_id", [123, {"id": "se_x"}, ["se_x"]])
    async def test_non_string_session_id_replies_no_stream_and_closes(
        self, router, registry, new_peer, streamer_session, session_id
    ):
        """A sessionId of any other JSON type matches no session and is rejected the same way."""
        await streamer_session()
        viewer, transport = new_peer()

        await router.handle_message(viewer, frame("join-as-viewer", sessionId=session_id))

        assert transport.messages == [{"type": "no-stream", "message": "Streamer not available"}]
        assert transport.close_calls == [(WsCloseCode.POLICY_VIOLATION, "E_SESSION_NOT_FOUND")]
        assert isinstance(viewer.role, Unassigned)
        assert registry.viewer_count() == 0

    async def test_missing_session_id_replies_error(self, router, registry, new_peer):
        viewer, transport = new_peer()

        await router.handle_message(viewer, frame("join-as-viewer"))

        assert transport.messages == [{"type": "error", "message": "viewer must provide sessionId"}]
        assert transport.close_calls[0][0] == WsCloseCode.POLICY_VIOLATION
        assert isinstance(viewer.role, Unassigned)
        assert len(registry) == 0

    async def test_streamer_not_open_replies_no_stream(self, router, registry, streamer_session, join_viewer):
        """A registered session whose streamer socket died is not joinable."""
        _, streamer_tx, session_id = await streamer_session()
        streamer_tx.connected = False

        viewer, viewer_tx = await join_viewer(session_id)

        assert viewer_tx.of_type("no-stream")
        assert isinstance(viewer.role, Unassigned)
        assert registry.get(session_id).viewer_count == 0

    async def test_client_supplied_viewer_id_is_ignored(self, router, streamer_session, new_peer):
        _, _, session_id = await streamer_session()
        viewer, transport = new_peer()

        await router.handle_message(viewer, frame("join-as-viewer", sessionId=session_id, viewerId="custom"))

        joined = transport.of_type("joined")[0]
        assert joined["viewerId"] == viewer.connection_id
        assert viewer.role == ViewerRole(session_id=session_id, viewer_id=viewer.connection_id)

    async def test_viewer_count_grows(self, registry, streamer_session, join_viewer):
        _, streamer_tx, session_id = await streamer_session()

        await join_viewer(session_id)
        await join_viewer(session_id)

        counts = [m["viewerCount"] for m in streamer_tx.of_type("viewer-joined")]
        assert counts == [1, 2]
        assert registry.get(session_id).viewer_count == 2


class TestFanOut:
    async def test_offer_reaches_each_open_viewer_once(self, router, streamer_session, join_viewer):
        """Offers go to every open viewer exactly once and never to a closed one."""
        streamer, _, session_id = await streamer_session()
        _, first_tx = await join_viewer(session_id)
        _, second_tx = await join_viewer(session_id)
        _, closed_tx = await join_viewer(session_id)
        closed_tx.connected = False

        await router.handle_message(streamer, frame("offer", sdp={"type": "offer", "sdp": "v=0"}))

        expected = {"type": "offer", "sdp": {"type": "offer", "sdp": "v=0"}}
        assert first_tx.of_type("offer") == [expected]
        assert second_tx.of_type("offer") == [expected]
        assert closed_tx.of_type("offer") == []

    async def test_streamer_candidate_fans_out_without_viewer_id(self, router, streamer_session, join_viewer):
        streamer, _, session_id = await streamer_session()
        _, viewer_tx = await join_viewer(session_id)

        await router.handle_message(streamer, frame("ice-candidate", candidate=None))

        assert viewer_tx.messages[-1] == {"type": "ice-candidate", "candidate": None}

    async def test_offer_does_not_cross_sessions(self, router, streamer_session, join_viewer):
        streamer, _, session_id = await streamer_session()
        _, _, other_session_id = await streamer_session()
        _, other_tx = await join_viewer(other_session_id)

        await router.handle_message(streamer, frame("offer", sdp="x"))

        assert other_tx.of_type("offer") == []


class TestForwardToStreamer:
    async def test_viewer_candidate_tagged_with_viewer_id(self, router, streamer_session, join_viewer):
        _, streamer_tx, session_id = await streamer_session()
        viewer, _ = await join_viewer(session_id)
        candidate = {"candidate": "candidate:1 1 udp 1 10.0.0.1 9 typ host", "sdpMid": "0"}

        await router.handle_message(viewer, frame("ice-candidate", candidate=candidate))

        assert streamer_tx.messages[-1] == {
            "type": "ice-candidate",
            "viewerId": viewer.connection_id,
            "candidate": candidate,
        }

    async def test_answer_dropped_when_streamer_not_open(self, router, streamer_session, join_viewer):
        _, streamer_tx, session_id = await streamer_session()
        viewer, viewer_tx = await join_viewer(session_id)
        sent_before = len(streamer_tx.sent)
        streamer_tx.connected = False

        await router.handle_message(viewer, frame("answer", sdp="late"))

        assert len(streamer_tx.sent) == sent_before
        assert viewer.is_open is True
        assert viewer_tx.of_type("error") == []


class TestIgnoredFrames:
    """Malformed, unknown and role-invalid frames are dropped without reply."""

    async def test_invalid_json(self, router, new_peer):
        connection, transport = new_peer()

        await router.handle_message(connection, "{not json")

        assert transport.sent == []
        assert connection.is_open is True
        assert isinstance(connection.role, Unassigned)

    async def test_non_object_payload(self, router, new_peer):
        connection, transport = new_peer()

        await router.handle_message(connection, "[1, 2, 3]")

        assert transport.sent == []

    async def test_unknown_type(self, router, registry, new_peer):
        connection, transport = new_peer()

        await router.handle_message(connection, frame("subscribe"))
        await router.handle_message(connection, b'{"sessionId": "se_x"}')
        await router.handle_message(connection, b'{"type": ["offer"]}')

        assert transport.sent == []
        assert len(registry) == 0

    async def test_relay_only_type_from_client(self, router, new_peer):
        connection, transport = new_peer()

        await router.handle_message(connection, frame("session-created", sessionId="se_x"))

        assert transport.sent == []
        assert isinstance(connection.role, Unassigned)

    async def test_offer_without_sdp(self, router, streamer_session, join_viewer):
        streamer, _, session_id = await streamer_session()
        _, viewer_tx = await join_viewer(session_id)

        await router.handle_message(streamer, frame("offer"))

        assert viewer_tx.of_type("offer") == []

    async def test_role_mismatched_types(self, router, streamer_session, join_viewer, new_peer):
        streamer, streamer_tx, session_id = await streamer_session()
        viewer, viewer_tx = await join_viewer(session_id)
        unassigned, unassigned_tx = new_peer()
        streamer_sent, viewer_sent = len(streamer_tx.sent), len(viewer_tx.sent)

        await router.handle_message(viewer, frame("offer", sdp="x"))
        await router.handle_message(streamer, frame("answer", sdp="y"))
        await router.handle_message(unassigned, frame("offer", sdp="z"))
        await router.handle_message(streamer, frame("leave"))

        assert len(streamer_tx.sent) == streamer_sent
        assert len(viewer_tx.sent) == viewer_sent
        assert unassigned_tx.sent == []
        assert streamer.is_open is True


class TestHandleClose:
    async def test_streamer_close_ends_stream_for_every_viewer(
        self, router, registry, streamer_session, join_viewer
    ):
        """Every viewer gets exactly one stream-ended, is closed, and the session is gone."""
        streamer, streamer_tx, session_id = await streamer_session()
        viewers = [await join_viewer(session_id) for _ in range(3)]
        streamer_tx.connected = False

        await router.handle_close(streamer)

        assert session_id not in registry
        for viewer, viewer_tx in viewers:
            assert viewer_tx.of_type("stream-ended") == [{"type": "stream-ended", "sessionId": session_id}]
            assert viewer_tx.close_calls == [(WsCloseCode.NORMAL_CLOSURE, "stream ended")]
            assert viewer.is_open is False

        # Late viewer close events after teardown are no-ops
        for viewer, viewer_tx in viewers:
            await router.handle_close(viewer)
            assert len(viewer_tx.of_type("stream-ended")) == 1

    async def test_streamer_close_is_idempotent(self, router, registry, streamer_session, join_viewer):
        streamer, _, session_id = await streamer_session()
        _, viewer_tx = await join_viewer(session_id)

        await router.handle_close(streamer)
        await router.handle_close(streamer)

        assert len(viewer_tx.of_type("stream-ended")) == 1
        assert len(registry) == 0

    async def test_viewer_close_notifies_streamer_once(self, router, registry, streamer_session, join_viewer):
        _, streamer_tx, session_id = await streamer_session()
        leaving, _ = await join_viewer(session_id)
        await join_viewer(session_id)

        await router.handle_close(leaving)
        await router.handle_close(leaving)

        assert streamer_tx.of_type("viewer-left") == [
            {"type": "viewer-left", "viewerId": leaving.connection_id, "viewerCount": 1},
        ]
        assert registry.get(session_id).viewer_count == 1

    async def test_viewer_close_with_streamer_gone_sends_nothing(
        self, router, registry, streamer_session, join_viewer
    ):
        _, streamer_tx, session_id = await streamer_session()
        viewer, _ = await join_viewer(session_id)
        streamer_tx.connected = False

        await router.handle_close(viewer)

        assert streamer_tx.of_type("viewer-left") == []
        assert registry.get(session_id).viewer_count == 0

    async def test_unassigned_close_is_noop(self, router, registry, new_peer, streamer_session):
        await streamer_session()
        connection, transport = new_peer()

        await router.handle_close(connection)

        assert transport.sent == []
        assert len(registry) == 1


class TestLeave:
    async def test_leave_removes_viewer_and_closes(self, router, registry, streamer_session, join_viewer):
        _, streamer_tx, session_id = await streamer_session()
        viewer, viewer_tx = await join_viewer(session_id)

        await router.handle_message(viewer, frame("leave"))

        assert streamer_tx.of_type("viewer-left")[0]["viewerCount"] == 0
        assert viewer_tx.close_calls == [(WsCloseCode.NORMAL_CLOSURE, "left")]
        assert registry.get(session_id).viewer_count == 0

        # The socket's own close event afterwards changes nothing
        await router.handle_close(viewer)
        assert len(streamer_tx.of_type("viewer-left")) == 1


class TestShutdown:
    async def test_shutdown_closes_everything(self, router, registry, streamer_session, join_viewer):
        _, first_tx, first_id = await streamer_session()
        _, second_tx, _ = await streamer_session()
        _, viewer_tx = await join_viewer(first_id)

        closed = await router.shutdown()

        assert closed == 2
        assert len(registry) == 0
        assert viewer_tx.of_type("stream-ended")
        assert first_tx.close_calls == [(WsCloseCode.GOING_AWAY, "session closed")]
        assert second_tx.close_calls == [(WsCloseCode.GOING_AWAY, "session closed")]
