from __future__ import annotations

import asyncio
import json
import logging
import webbrowser
from typing import Any

import click
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from tracktube.services.playback_types import DeliveryError

LOGGER = logging.getLogger("tracktube.delivery")


class WebSocketDelivery:
    """Sends resolved links to a viewer over an accepted websocket as text frames."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def send(self, message: str) -> None:
        await self._send_text(message)

    async def send_notice(self, payload: dict[str, Any]) -> None:
        """Send a JSON status frame that is not a video link."""
        await self._send_text(json.dumps(payload))

    async def _send_text(self, text: str) -> None:
        if self.closed or self._websocket.client_state != WebSocketState.CONNECTED:
            raise DeliveryError("Viewer websocket is closed.")
        try:
            await self._websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            self._closed.set()
            raise DeliveryError(f"Sending to viewer websocket failed: {exc}") from exc

    async def wait_closed(self) -> None:
        """Drain inbound frames until the viewer disconnects."""
        try:
            while True:
                message = await self._websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    return
        except (WebSocketDisconnect, RuntimeError):
            return
        finally:
            self._closed.set()


class EchoDelivery:
    """Prints each link on its own line."""

    async def send(self, message: str) -> None:
        click.echo(message)


class BrowserDelivery:
    """Opens each link in the local web browser."""

    async def send(self, message: str) -> None:
        opened = await asyncio.to_thread(webbrowser.open, message)
        if not opened:
            LOGGER.warning("no browser accepted the video link url=%s", message)
        click.echo(message)
