"""WebSocket connection registry and broadcast."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, final

from fastapi.encoders import jsonable_encoder

if TYPE_CHECKING:
    from fastapi import WebSocket
    from structlog.typing import FilteringBoundLogger


def encode_message(
    message_type: str,
    data: Any = None,  # noqa: ANN401
) -> dict[str, Any]:
    """Build a `{type, data}` message with JSON-compatible data."""
    message: dict[str, Any] = {"type": message_type}
    if data is not None:
        message["data"] = jsonable_encoder(data, by_alias=True)
    return message


@final
class ConnectionManager:
    """Tracks connected dashboard clients.

    Broadcasts are global: every connected client receives every message.
    A client whose send fails is dropped.
    """

    __slots__ = ("_logger", "active_connections")

    def __init__(self, logger: FilteringBoundLogger) -> None:
        self.active_connections: set[WebSocket] = set()
        self._logger = logger

    def __len__(self) -> int:
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a WebSocket and register it."""
        await websocket.accept()
        self.active_connections.add(websocket)
        self._logger.info("websocket_connected", clients=len(self.active_connections))

    def disconnect(self, websocket: WebSocket) -> None:
        """Forget a WebSocket."""
        if websocket in self.active_connections:
            self.active_connections.discard(websocket)
            self._logger.info(
                "websocket_disconnected", clients=len(self.active_connections)
            )

    async def send(
        self,
        websocket: WebSocket,
        message_type: str,
        data: Any = None,  # noqa: ANN401
    ) -> None:
        """Send one message to a single client."""
        await websocket.send_json(encode_message(message_type, data))

    async def broadcast(
        self,
        message_type: str,
        data: Any = None,  # noqa: ANN401
    ) -> int:
        """Send a message to every connected client.

        Returns:
            The number of clients the message reached.
        """
        message = encode_message(message_type, data)
        delivered = 0
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception as e:  # noqa: BLE001
                self._logger.warning("broadcast_failed", error=str(e))
                self.disconnect(connection)
            else:
                delivered += 1
        return delivered
