"""Starlette WebSocket adapter for relay connections."""

from starlette.websockets import WebSocket, WebSocketState


class WebSocketTransport:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def is_connected(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def close(self, code: int, reason: str) -> None:
        await self.websocket.close(code=code, reason=reason)
