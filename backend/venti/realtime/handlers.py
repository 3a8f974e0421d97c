from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..game.errors import GameError, InvalidPayload
from ..game.registry import SessionRegistry
from ..game.settings import GameSettings


log = logging.getLogger(__name__)


def _room_code(payload: dict) -> str:
    code = str(payload.get("code", "")).strip().upper()
    if not code:
        raise InvalidPayload("Codice stanza mancante")
    return code


def _validate_name(name: str, max_length: int) -> bool:
    n = (name or "").strip()
    if not n:
        return False
    if len(n) > max_length:
        return False
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        return False
    # No control characters.
    for ch in n:
        if ord(ch) < 32:
            return False
    return True


def _clean_text(raw: Any, max_length: int) -> str:
    text = " ".join(str(raw or "").split())
    return text[:max_length]


def register_socketio_handlers(socketio: SocketIO, registry: SessionRegistry) -> None:
    settings: GameSettings = registry.settings

    def _player_name(payload: dict) -> str:
        name = str(payload.get("name", "")).strip()
        if not _validate_name(name, settings.max_name_length):
            raise InvalidPayload("Nome non valido")
        return name

    def _recover(handler: Callable[[dict], None]) -> Callable[..., dict]:
        @functools.wraps(handler)
        def wrapper(data=None):
            payload = data if isinstance(data, dict) else {}
            try:
                handler(payload)
            except GameError as exc:
                log.debug("rejected %s from %s: %s", handler.__name__, request.sid, exc.code)
                emit("system:error", exc.to_payload(), to=request.sid)
                return {"ok": False, "error": exc.code}
            return {"ok": True}

        return wrapper

    @socketio.on("room:create")
    @_recover
    def room_create(payload: dict) -> None:
        code = _room_code(payload)
        name = _player_name(payload)

        session = registry.create(code, request.sid, name)
        join_room(code)
        session.announce_creation()

    @socketio.on("room:join")
    @_recover
    def room_join(payload: dict) -> None:
        code = _room_code(payload)
        name = _player_name(payload)

        session = registry.get(code)
        # Joined before the roster update so the newcomer gets the room broadcasts.
        join_room(code)
        try:
            session.join(request.sid, name)
        except GameError:
            leave_room(code)
            raise

    @socketio.on("room:leave")
    @_recover
    def room_leave(payload: dict) -> None:
        code = _room_code(payload)
        session = registry.lookup(code)
        leave_room(code)
        if session:
            session.leave(request.sid)

    @socketio.on("round:start")
    @_recover
    def round_start(payload: dict) -> None:
        code = _room_code(payload)
        registry.get(code).start_round(request.sid, str(payload.get("secretWord") or ""))

    @socketio.on("question:ask")
    @_recover
    def question_ask(payload: dict) -> None:
        code = _room_code(payload)
        text = _clean_text(payload.get("text"), settings.max_text_length)
        if not text:
            raise InvalidPayload("Domanda vuota")
        registry.get(code).ask_question(request.sid, text)

    @socketio.on("question:answer")
    @_recover
    def question_answer(payload: dict) -> None:
        code = _room_code(payload)
        try:
            question_id = int(payload.get("id"))
        except (TypeError, ValueError):
            raise InvalidPayload("Domanda non valida")
        answer = _clean_text(payload.get("answer"), settings.max_text_length)
        registry.get(code).answer_question(request.sid, question_id, answer)

    @socketio.on("guess:submit")
    @_recover
    def guess_submit(payload: dict) -> None:
        code = _room_code(payload)
        text = _clean_text(payload.get("text"), settings.max_text_length)
        session = registry.lookup(code)
        if not session or not text:
            return
        session.submit_guess(request.sid, text)

    @socketio.on("chat:message")
    @_recover
    def chat_message(payload: dict) -> None:
        code = _room_code(payload)
        text = _clean_text(payload.get("text"), settings.max_text_length)
        session = registry.lookup(code)
        if not session or not text:
            return
        session.post_chat(request.sid, str(payload.get("name", "")).strip(), text)

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        # Linear scan: a connection may sit in more than one room.
        for session in registry.sessions_with(request.sid):
            session.leave(request.sid)
