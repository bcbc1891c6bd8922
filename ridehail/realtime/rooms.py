"""
In-process socket rooms.

A *room* is a named set of users.  Membership is kept per user rather than
per socket: a user with two open connections receives each event twice,
and a user who reconnects is put straight back into the rooms they belonged
to.  Every connected user is implicitly a member of ``user:{id}``.

Room names
----------
* ``user:{user_id}`` -- all sockets of one user
* ``trip:{trip_id}`` -- rider and assigned driver of one trip
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class SocketLike(Protocol):
    async def send_text(self, data: str) -> None: ...


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def trip_room(trip_id: int) -> str:
    return f"trip:{trip_id}"


def envelope(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data}, default=str)


class RoomManager:
    def __init__(self) -> None:
        self._sockets: dict[int, set[SocketLike]] = defaultdict(set)
        self._members: dict[str, set[int]] = defaultdict(set)

    # ── Connections ───────────────────────────────────────────────────

    def connect(self, user_id: int, socket: SocketLike) -> None:
        self._sockets[user_id].add(socket)
        logger.info("User %d connected (%d sockets)", user_id, len(self._sockets[user_id]))

    def disconnect(self, user_id: int, socket: SocketLike) -> None:
        sockets = self._sockets.get(user_id)
        if not sockets:
            return
        sockets.discard(socket)
        if not sockets:
            del self._sockets[user_id]
        logger.info("User %d disconnected", user_id)

    def is_online(self, user_id: int) -> bool:
        return bool(self._sockets.get(user_id))

    def online_count(self) -> int:
        return len(self._sockets)

    # ── Membership ────────────────────────────────────────────────────

    def join(self, room: str, user_id: int) -> None:
        self._members[room].add(user_id)

    def leave(self, room: str, user_id: int) -> None:
        members = self._members.get(room)
        if members is None:
            return
        members.discard(user_id)
        if not members:
            del self._members[room]

    def close(self, room: str) -> None:
        self._members.pop(room, None)

    def members(self, room: str) -> set[int]:
        if room.startswith("user:"):
            return {int(room.split(":", 1)[1])}
        return set(self._members.get(room, ()))

    def rooms_of(self, user_id: int) -> set[str]:
        rooms = {room for room, users in self._members.items() if user_id in users}
        rooms.add(user_room(user_id))
        return rooms

    # ── Delivery ──────────────────────────────────────────────────────

    async def emit(self, room: str, event: str, data: Any) -> int:
        """Send *event* to every socket in *room*.  Returns deliveries made."""
        message = envelope(event, data)
        delivered = 0
        for user_id in self.members(room):
            for socket in list(self._sockets.get(user_id, ())):
                try:
                    await socket.send_text(message)
                    delivered += 1
                except Exception:
                    logger.warning(
                        "Dropping socket of user %d after failed send", user_id,
                        exc_info=True,
                    )
                    self.disconnect(user_id, socket)
        logger.debug("Emitted %s to %s (%d deliveries)", event, room, delivered)
        return delivered

    def clear(self) -> None:
        self._sockets.clear()
        self._members.clear()


rooms = RoomManager()
