"""Signaling relay WebSocket endpoint.

One socket per participant. Each inbound text frame is handed to the message
router in arrival order; whatever the connection registered is torn down when
the socket goes away, however it goes away.
"""

from fastapi import APIRouter, WebSocket
from loguru import logger

from app.app_config import get_app_environ_config
from app.domain.relay.connection import Connection
from app.relay_state import get_relay_state
from app.services.websocket_transport import WebSocketTransport
from app.shared.api.utils import format_error

router = APIRouter(tags=["Signaling"])


@router.websocket(get_app_environ_config().SIGNALING_WS_PATH)
async def relay_websocket(websocket: WebSocket):
    relay = get_relay_state(websocket.app)

    await websocket.accept()
    connection = Connection(WebSocketTransport(websocket))
    logger.info("Connection {} accepted from {}", connection.connection_id, websocket.client)

    try:
        while connection.is_open:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(
                    "Connection {} closed by peer (code={})",
                    connection.connection_id,
                    message.get("code"),
                )
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue

            await relay.router.handle_message(connection, raw)
    except Exception as exc:
        logger.warning("Connection {} transport error: {}", connection.connection_id, format_error(exc))
    finally:
        await relay.router.handle_close(connection)
