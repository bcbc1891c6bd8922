"""Socket listener that feeds server-pushed trip events into a tracker."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets

from ridehail.client.tracker import TripTracker

logger = logging.getLogger(__name__)


def socket_url(backend_url: str, token: str) -> str:
    """``http(s)://host`` -> ``ws(s)://host/ws?token=...``"""
    parts = urlsplit(backend_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    return urlunsplit((scheme, parts.netloc, "/ws", urlencode({"token": token}), ""))


def decode_message(raw: str | bytes) -> Optional[tuple[str, Any]]:
    try:
        message = json.loads(raw)
    except ValueError:
        logger.warning("Dropping non-JSON socket message")
        return None
    if not isinstance(message, dict) or "event" not in message:
        return None
    return message["event"], message.get("data")


class TripSocket:
    def __init__(self, backend_url: str, token: str, tracker: TripTracker):
        self.url = socket_url(backend_url, token)
        self.tracker = tracker

    def handle(self, raw: str | bytes) -> bool:
        decoded = decode_message(raw)
        if decoded is None:
            return False
        event, data = decoded
        return self.tracker.apply(event, data)

    async def listen(self) -> None:
        """Consume events until the server closes the connection."""
        async with websockets.connect(self.url) as ws:
            logger.info("Socket connected")
            async for raw in ws:
                self.handle(raw)
        logger.info("Socket closed")
