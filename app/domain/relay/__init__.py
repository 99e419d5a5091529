"""
WebRTC signaling relay.

Includes:
- connection: Transport wrapper holding a one-way role tag.
- session_registry: Session ownership (one streamer, many viewers).
- message_router: Role-based dispatch of signaling frames.
- liveness_sweeper: Periodic eviction of sessions whose streamer is gone.
"""
