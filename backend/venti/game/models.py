from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Literal


SessionStatus = Literal["waiting", "playing", "guessing"]
Role = Literal["thinker", "guesser"]
TimerKind = Literal["ask", "answer"]


@dataclass
class Player:
    id: str
    name: str
    role: Role = "guesser"
    timeout_count: int = 0


@dataclass
class Question:
    id: int
    asker_id: str
    asker_name: str
    text: str
    answer: str | None = None


@dataclass
class Guess:
    player_id: str
    name: str
    text: str
    correct: bool
    phase: SessionStatus


@dataclass(frozen=True)
class TimerToken:
    """Identity of a scheduled timeout, compared against live state on fire."""

    code: str
    kind: TimerKind
    actor_id: str
    generation: int
    question_id: int | None = None


@dataclass
class Session:
    code: str
    status: SessionStatus = "waiting"
    players: dict[str, Player] = field(default_factory=dict)
    thinker_id: str | None = None
    secret_word: str | None = None
    questions: list[Question] = field(default_factory=list)
    guesses: list[Guess] = field(default_factory=list)
    turn_order: list[str] = field(default_factory=list)
    turn_index: int = 0
    asked_count: int = 0
    max_questions: int = 20
    guess_attempts: dict[str, int] = field(default_factory=dict)
    round: int = 0
    active_timer: Any = None
    timer_generation: int = 0
    closed: bool = False
    logs: list[str] = field(default_factory=list)
    chat: list[dict] = field(default_factory=list)
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)

    def current_turn_id(self) -> str | None:
        if not self.turn_order:
            return None
        return self.turn_order[self.turn_index]

    def pending_question(self) -> Question | None:
        if self.questions and self.questions[-1].answer is None:
            return self.questions[-1]
        return None

    def find_question(self, question_id: int) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def guesser_ids(self) -> list[str]:
        return [pid for pid in self.players if pid != self.thinker_id]

    def reset_round(self) -> None:
        self.secret_word = None
        self.questions = []
        self.guesses = []
        self.turn_order = []
        self.turn_index = 0
        self.asked_count = 0
        self.guess_attempts = {}
