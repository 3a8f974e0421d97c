"""Errors raised by the game core.

Every error is recovered at the event boundary and reported to the offending
connection only; none of them ends a session.
"""

from __future__ import annotations


class GameError(Exception):
    code = "game_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_payload(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidPayload(GameError):
    code = "invalid_payload"


class DuplicateCode(GameError):
    code = "duplicate_code"


class RoomNotFound(GameError):
    code = "room_not_found"


class Forbidden(GameError):
    code = "forbidden"


class NotYourTurn(Forbidden):
    code = "not_your_turn"


class RoundInProgress(Forbidden):
    code = "round_in_progress"


class EmptySecret(GameError):
    code = "empty_secret"


class QuestionLimitReached(GameError):
    code = "question_limit_reached"
