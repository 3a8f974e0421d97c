from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("rooms", __name__)


def _registry():
    return current_app.extensions["venti"]


@bp.get("/rooms")
def list_rooms():
    return jsonify({"rooms": _registry().list_summaries()})


@bp.get("/rooms/<code>")
def get_room(code: str):
    session = _registry().lookup(code.strip().upper())
    if not session:
        return jsonify({"error": "room_not_found"}), 404
    with session.lock:
        return jsonify(session.public_state())
