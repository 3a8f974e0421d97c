from __future__ import annotations

from typing import Any

from flask_socketio import SocketIO


class SocketIOBroadcaster:
    """Outbound side of the transport as seen by the game core."""

    def __init__(self, socketio: SocketIO, namespace: str = "/") -> None:
        self.socketio = socketio
        self.namespace = namespace

    def emit(self, event: str, payload: Any, to: str | None = None) -> None:
        self.socketio.emit(event, payload, to=to, namespace=self.namespace)

    def evict(self, sid: str, code: str) -> None:
        self.socketio.server.leave_room(sid, code, namespace=self.namespace)

    def close_room(self, code: str) -> None:
        self.socketio.close_room(code, namespace=self.namespace)
