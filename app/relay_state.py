"""Process-wide relay state, owned by the FastAPI application.

The registry, router and sweeper are built once per application and stored on
`app.state.relay`; request and WebSocket handlers reach them through
`get_relay_state`.
"""

from dataclasses import dataclass

from starlette.applications import Starlette

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.relay.liveness_sweeper import LivenessSweeper
from app.domain.relay.message_router import MessageRouter
from app.domain.relay.session_registry import SessionRegistry


@dataclass
class RelayState:
    registry: SessionRegistry
    router: MessageRouter
    sweeper: LivenessSweeper


def build_relay_state(app_config: AppEnvironConfig | None = None) -> RelayState:
    app_config = app_config or get_app_environ_config()

    registry = SessionRegistry()
    router = MessageRouter(
        registry,
        viewer_join_url_template=app_config.VIEWER_JOIN_URL_TEMPLATE,
    )
    sweeper = LivenessSweeper(
        registry,
        router,
        interval_seconds=app_config.SWEEP_INTERVAL_SECONDS,
    )
    return RelayState(registry=registry, router=router, sweeper=sweeper)


def get_relay_state(app: Starlette) -> RelayState:
    relay = getattr(app.state, "relay", None)
    if relay is None:
        relay = build_relay_state()
        app.state.relay = relay
    return relay
