from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping


ThinkerExitPolicy = Literal["teardown", "rotate"]
LateJoinPolicy = Literal["append", "next_round"]


@dataclass(frozen=True)
class GameSettings:
    turn_timeout_sec: float = 60
    max_questions: int = 20
    guess_attempts: int = 2
    max_timeouts: int = 3
    dont_know_answer: str = "Non so"
    thinker_exit_policy: ThinkerExitPolicy = "teardown"
    late_join_policy: LateJoinPolicy = "append"
    rotate_thinker: bool = False
    max_name_length: int = 24
    max_text_length: int = 200

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "GameSettings":
        defaults = cls()

        exit_policy = str(config.get("THINKER_EXIT_POLICY", defaults.thinker_exit_policy)).strip().lower()
        if exit_policy not in ("teardown", "rotate"):
            raise ValueError(f"invalid THINKER_EXIT_POLICY: {exit_policy!r}")

        join_policy = str(config.get("LATE_JOIN_POLICY", defaults.late_join_policy)).strip().lower()
        if join_policy not in ("append", "next_round"):
            raise ValueError(f"invalid LATE_JOIN_POLICY: {join_policy!r}")

        return cls(
            turn_timeout_sec=float(config.get("TURN_TIMEOUT_SEC", defaults.turn_timeout_sec)),
            max_questions=int(config.get("MAX_QUESTIONS", defaults.max_questions)),
            guess_attempts=int(config.get("GUESS_ATTEMPTS", defaults.guess_attempts)),
            max_timeouts=int(config.get("MAX_TIMEOUTS", defaults.max_timeouts)),
            dont_know_answer=str(config.get("DONT_KNOW_ANSWER", defaults.dont_know_answer)),
            thinker_exit_policy=exit_policy,  # type: ignore[arg-type]
            late_join_policy=join_policy,  # type: ignore[arg-type]
            rotate_thinker=bool(config.get("ROTATE_THINKER", defaults.rotate_thinker)),
            max_name_length=int(config.get("MAX_NAME_LENGTH", defaults.max_name_length)),
            max_text_length=int(config.get("MAX_TEXT_LENGTH", defaults.max_text_length)),
        )
