from typing import Any, Optional
from uuid import uuid4

from fastapi import WebSocket


class Channel:
    """A connected client on the message channel."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.id = uuid4().hex

    def __repr__(self) -> str:
        return f"<Channel {self.id}>"

    async def send(self, event: str, payload: Optional[dict] = None) -> None:
        await self.websocket.send_json({"event": event, **(payload or {})})

    async def send_error(self, error: str, message: str, **extra: Any) -> None:
        await self.send("error", {"error": error, "message": message, **extra})
