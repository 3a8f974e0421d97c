from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .models import Question, TimerKind, TimerToken
from .timers import TimerService

if TYPE_CHECKING:
    from .session import GameSession


log = logging.getLogger(__name__)


class TurnScheduler:
    """Turn rotation and per-turn timeouts for one session.

    Callers must hold the session lock, except for ``on_timeout`` which is
    invoked from a timer task and takes the lock itself.

    Every scheduled timer carries a ``TimerToken``. Scheduling or cancelling
    bumps ``Session.timer_generation``, so a callback from an older timer never
    matches the live state and is dropped without touching anything.
    """

    def __init__(self, game: GameSession, timers: TimerService) -> None:
        self.game = game
        self.timers = timers

    @property
    def state(self):
        return self.game.state

    # -- timers ---------------------------------------------------------

    def cancel(self) -> None:
        s = self.state
        if s.active_timer is not None:
            s.active_timer.cancel()
            s.active_timer = None
        s.timer_generation += 1

    def _schedule(self, kind: TimerKind, actor_id: str, question_id: int | None = None) -> None:
        self.cancel()
        s = self.state
        delay = self.game.settings.turn_timeout_sec
        token = TimerToken(
            code=s.code,
            kind=kind,
            actor_id=actor_id,
            generation=s.timer_generation,
            question_id=question_id,
        )
        s.active_timer = self.timers.schedule(delay, self.on_timeout, token)
        self.game.emit("timer:start", {"duration": delay, "kind": kind}, to=actor_id)

    def start_ask_timer(self) -> None:
        actor_id = self.state.current_turn_id()
        if actor_id is None:
            self.cancel()
            return
        self._schedule("ask", actor_id)

    def start_answer_timer(self, question: Question) -> None:
        thinker_id = self.state.thinker_id
        if thinker_id is None:
            return
        self._schedule("answer", thinker_id, question_id=question.id)

    # -- turn order -----------------------------------------------------

    def announce_turn(self) -> None:
        pid = self.state.current_turn_id()
        if pid is None:
            return
        player = self.state.players.get(pid)
        self.game.emit_room("turn:now", {"id": pid, "name": player.name if player else ""})

    def start_first_turn(self) -> None:
        if not self.state.turn_order:
            return
        self.state.turn_index = 0
        self.announce_turn()
        self.start_ask_timer()

    def advance(self) -> None:
        s = self.state
        if s.status != "playing":
            return
        if s.asked_count >= s.max_questions:
            self.game.enter_guessing()
            return
        if not s.turn_order:
            # Suspended until someone joins or the round ends.
            self.cancel()
            return

        s.turn_index = (s.turn_index + 1) % len(s.turn_order)
        self.announce_turn()
        self.start_ask_timer()

    def resume(self) -> None:
        """Hand the turn to a player who just joined a suspended round."""
        s = self.state
        if s.status != "playing" or len(s.turn_order) != 1:
            return
        if s.pending_question() is not None or s.active_timer is not None:
            return
        self.start_first_turn()

    def remove_from_turn_order(self, pid: str) -> None:
        s = self.state
        if pid not in s.turn_order:
            return

        idx = s.turn_order.index(pid)
        was_current = idx == s.turn_index
        s.turn_order.pop(idx)

        if not s.turn_order:
            s.turn_index = 0
            # A pending question keeps the Thinker's answer timer alive.
            if s.pending_question() is None:
                self.cancel()
            return

        if idx < s.turn_index:
            s.turn_index = max(0, s.turn_index - 1)
            return

        if not was_current:
            return

        if s.status != "playing":
            s.turn_index = idx % len(s.turn_order)
            return

        if s.pending_question() is not None:
            # The next advance must land on the player now at ``idx``.
            s.turn_index = (idx - 1) % len(s.turn_order)
            return

        s.turn_index = idx % len(s.turn_order)
        self.announce_turn()
        self.start_ask_timer()

    # -- timeout escalation ---------------------------------------------

    def _is_live(self, token: TimerToken) -> bool:
        s = self.state
        if s.closed or token.generation != s.timer_generation:
            return False
        if s.status != "playing":
            return False

        if token.kind == "ask":
            return (
                token.actor_id in s.players
                and s.current_turn_id() == token.actor_id
                and s.pending_question() is None
            )

        pending = s.pending_question()
        return (
            token.actor_id == s.thinker_id
            and token.actor_id in s.players
            and pending is not None
            and pending.id == token.question_id
        )

    def on_timeout(self, token: TimerToken) -> None:
        with self.state.lock:
            if not self._is_live(token):
                log.debug(
                    "stale timer room=%s kind=%s actor=%s generation=%s",
                    token.code,
                    token.kind,
                    token.actor_id,
                    token.generation,
                )
                return

            self.state.active_timer = None
            if token.kind == "ask":
                self._ask_timed_out(token.actor_id)
            else:
                self._answer_timed_out(token.actor_id)

    def _ask_timed_out(self, pid: str) -> None:
        s = self.state
        player = s.players[pid]
        player.timeout_count += 1
        max_timeouts = self.game.settings.max_timeouts
        log.info("ask timeout room=%s player=%s count=%s", s.code, pid, player.timeout_count)

        if player.timeout_count >= max_timeouts:
            self.game.expel(pid)
            return

        s.asked_count += 1
        self.game.emit_counter()
        self.game.log(f"⏱️ {player.name} ha saltato il turno ({player.timeout_count}/{max_timeouts})")
        self.advance()

    def _answer_timed_out(self, thinker_id: str) -> None:
        s = self.state
        question = s.pending_question()
        thinker = s.players[thinker_id]

        self.game.record_answer(question, self.game.settings.dont_know_answer)
        thinker.timeout_count += 1
        max_timeouts = self.game.settings.max_timeouts
        log.info("answer timeout room=%s thinker=%s count=%s", s.code, thinker_id, thinker.timeout_count)

        if thinker.timeout_count >= max_timeouts:
            self.game.expel_thinker()
            return

        self.game.log(f"⏱️ {thinker.name} non ha risposto in tempo ({thinker.timeout_count}/{max_timeouts})")
        self.advance()
