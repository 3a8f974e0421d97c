from __future__ import annotations

import logging
from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Protocol

from .errors import (
    EmptySecret,
    Forbidden,
    InvalidPayload,
    NotYourTurn,
    QuestionLimitReached,
    RoomNotFound,
    RoundInProgress,
)
from .models import Guess, Player, Question, Session
from .scheduler import TurnScheduler
from .settings import GameSettings
from .timers import TimerService

if TYPE_CHECKING:
    from .registry import SessionRegistry


log = logging.getLogger(__name__)


class Broadcaster(Protocol):
    def emit(self, event: str, payload: Any, to: str | None = None) -> None: ...

    def evict(self, sid: str, code: str) -> None: ...

    def close_room(self, code: str) -> None: ...


def normalize_word(text: str) -> str:
    return " ".join((text or "").split()).casefold()


class GameSession:
    """State machine for one room.

    Public methods take the session lock; everything prefixed with ``_`` and
    the helpers called by the scheduler expect it to be held already.
    """

    def __init__(
        self,
        code: str,
        creator_id: str,
        creator_name: str,
        *,
        registry: SessionRegistry,
        broadcaster: Broadcaster,
        timers: TimerService,
        settings: GameSettings,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.settings = settings
        self.state = Session(code=code, max_questions=settings.max_questions)
        self.scheduler = TurnScheduler(self, timers)

        self.state.players[creator_id] = Player(id=creator_id, name=creator_name, role="thinker")
        self.state.thinker_id = creator_id

    @property
    def code(self) -> str:
        return self.state.code

    @property
    def lock(self):
        return self.state.lock

    # -- outbound -------------------------------------------------------

    def emit(self, event: str, payload: Any, to: str | None = None) -> None:
        self.broadcaster.emit(event, payload, to=to)

    def emit_room(self, event: str, payload: Any) -> None:
        self.broadcaster.emit(event, payload, to=self.code)

    def emit_counter(self) -> None:
        s = self.state
        self.emit_room("counter:update", {"asked": s.asked_count, "max": s.max_questions})

    def log(self, message: str) -> None:
        self.state.logs.append(message)
        self.emit_room("log:message", {"message": message})

    def roster(self) -> list[dict]:
        return [
            {"id": p.id, "name": p.name, "role": p.role, "timeoutCount": p.timeout_count}
            for p in self.state.players.values()
        ]

    def public_state(self) -> dict:
        s = self.state
        pending = s.pending_question()
        return {
            "code": s.code,
            "status": s.status,
            "round": s.round,
            "thinkerId": s.thinker_id,
            "players": self.roster(),
            "askedCount": s.asked_count,
            "maxQuestions": s.max_questions,
            "turnOrder": list(s.turn_order),
            # Nobody is due to ask while the Thinker owes an answer.
            "currentTurnId": None if pending else s.current_turn_id(),
            "pendingQuestion": {"id": pending.id, "askerId": pending.asker_id} if pending else None,
            "guessAttempts": dict(s.guess_attempts),
        }

    def summary(self) -> dict:
        s = self.state
        return {"code": s.code, "playerCount": len(s.players), "status": s.status}

    def publish_state(self) -> None:
        self.emit_room("room:state", self.public_state())

    def transcript(self) -> dict:
        s = self.state
        return {
            "questions": [asdict(q) for q in s.questions],
            "guesses": [asdict(g) for g in s.guesses],
        }

    # -- membership -----------------------------------------------------

    def announce_creation(self) -> None:
        with self.lock:
            thinker = self.state.players[self.state.thinker_id]
            self.log(f"👤 {thinker.name} ha creato la stanza (Pensatore)")
            self.publish_state()

    def join(self, conn_id: str, name: str) -> Player:
        with self.lock:
            s = self.state
            if s.closed:
                raise RoomNotFound(f"La stanza {s.code} non esiste")

            resume = False
            player = s.players.get(conn_id)
            if player is not None:
                player.name = name
            else:
                player = Player(id=conn_id, name=name, role="guesser")
                s.players[conn_id] = player
                if s.status == "playing" and self.settings.late_join_policy == "append":
                    resume = not s.turn_order
                    s.turn_order.append(conn_id)

            # Snapshot for the newcomer.
            self.emit("room:state", self.public_state(), to=conn_id)
            self.emit("log:history", {"messages": list(s.logs)}, to=conn_id)
            self.emit("chat:history", {"messages": list(s.chat)}, to=conn_id)

            self.log(f"👤 {name} è entrato")
            self.publish_state()
            self.registry.publish_lobby()

            if resume:
                self.scheduler.resume()
            return player

    def leave(self, conn_id: str) -> None:
        with self.lock:
            if self.state.closed or conn_id not in self.state.players:
                return
            self._remove_player(conn_id)

    def expel(self, conn_id: str) -> None:
        with self.lock:
            if conn_id not in self.state.players:
                return
            self._remove_player(conn_id, expelled=True)

    def expel_thinker(self) -> None:
        with self.lock:
            s = self.state
            thinker = s.players.get(s.thinker_id) if s.thinker_id else None
            if thinker is None:
                return
            # Out of the roster before the round ends, so no per-round
            # rotation can hand the role on ahead of the exit policy.
            s.players.pop(thinker.id)
            if s.status != "waiting":
                self.end_round(f"⛔ {thinker.name} non risponde: round terminato", None)
            self._announce_expulsion(thinker)
            self._thinker_departed(thinker)

    def _announce_expulsion(self, player: Player) -> None:
        s = self.state
        log.info("expelled room=%s player=%s", s.code, player.id)
        self.log(f"⛔ {player.name} è stato espulso per inattività")
        self.emit("room:expelled", {"code": s.code}, to=player.id)
        self.broadcaster.evict(player.id, s.code)

    def _remove_player(self, conn_id: str, expelled: bool = False) -> None:
        s = self.state
        player = s.players.pop(conn_id)

        if expelled:
            self._announce_expulsion(player)
        else:
            self.log(f"👋 {player.name} ha lasciato")

        if conn_id == s.thinker_id:
            self._thinker_departed(player)
            return

        s.guess_attempts.pop(conn_id, None)
        self.scheduler.remove_from_turn_order(conn_id)

        if not s.players:
            self.close()
            return

        if s.status == "guessing" and not any(left > 0 for left in s.guess_attempts.values()):
            self.end_round("😶 Nessuno ha indovinato!", None)
            return

        self.publish_state()
        self.registry.publish_lobby()

    def _thinker_departed(self, thinker: Player) -> None:
        s = self.state
        if s.status != "waiting":
            self.end_round(f"🚪 Il Pensatore {thinker.name} ha lasciato la partita", None)

        if self.settings.thinker_exit_policy == "rotate" and s.players:
            successor = next(iter(s.players.values()))
            successor.role = "thinker"
            s.thinker_id = successor.id
            self.log(f"🧠 {successor.name} è il nuovo Pensatore")
            self.publish_state()
            self.registry.publish_lobby()
            return

        s.thinker_id = None
        self.close()

    def close(self) -> None:
        with self.lock:
            s = self.state
            if s.closed:
                return
            s.closed = True
            self.scheduler.cancel()
            log.info("closing room=%s", s.code)
            self.emit_room("room:closed", {"code": s.code})
            self.registry.destroy(s.code)
            self.broadcaster.close_room(s.code)

    # -- round ----------------------------------------------------------

    def start_round(self, conn_id: str, secret_word: str | None) -> None:
        with self.lock:
            s = self.state
            if conn_id != s.thinker_id:
                raise Forbidden("Solo il Pensatore può iniziare il round")
            if s.status != "waiting":
                raise RoundInProgress("Il round è già in corso")

            word = (secret_word or "").strip()
            if not word:
                raise EmptySecret("La parola segreta non può essere vuota")

            s.reset_round()
            s.secret_word = word
            s.round += 1
            s.turn_order = s.guesser_ids()
            s.turn_index = 0
            for p in s.players.values():
                p.timeout_count = 0
            s.status = "playing"
            log.info("round started room=%s round=%s guessers=%s", s.code, s.round, len(s.turn_order))

            self.emit("round:secret", {"secretWord": word}, to=conn_id)
            self.emit_room(
                "round:started",
                {
                    "round": s.round,
                    "maxQuestions": s.max_questions,
                    "thinkerId": s.thinker_id,
                    "players": self.roster(),
                },
            )
            self.emit_counter()
            self.log(f"🎬 Round {s.round} iniziato")
            self.publish_state()
            self.registry.publish_lobby()

            self.scheduler.start_first_turn()

    def ask_question(self, conn_id: str, text: str) -> Question:
        with self.lock:
            s = self.state
            if s.status != "playing":
                raise Forbidden("Nessun round in corso")
            if conn_id != s.current_turn_id():
                raise NotYourTurn("Non è il tuo turno")
            if s.pending_question() is not None:
                raise NotYourTurn("In attesa della risposta del Pensatore")
            if s.asked_count >= s.max_questions:
                raise QuestionLimitReached("Limite di domande raggiunto")

            self.scheduler.cancel()
            player = s.players[conn_id]
            player.timeout_count = 0

            question = Question(
                id=len(s.questions) + 1,
                asker_id=conn_id,
                asker_name=player.name,
                text=text,
            )
            s.questions.append(question)
            self.emit_room(
                "question:new",
                {"id": question.id, "byId": conn_id, "byName": player.name, "text": text, "answer": None},
            )
            self.scheduler.start_answer_timer(question)
            return question

    def answer_question(self, conn_id: str, question_id: int, answer: str) -> None:
        with self.lock:
            s = self.state
            if conn_id != s.thinker_id:
                raise Forbidden("Solo il Pensatore può rispondere")

            question = s.find_question(question_id)
            if question is None or question.answer is not None:
                return

            if not answer:
                raise InvalidPayload("Risposta vuota")

            if s.status == "playing":
                self.scheduler.cancel()
            s.players[conn_id].timeout_count = 0
            self.record_answer(question, answer)
            self.scheduler.advance()

    def record_answer(self, question: Question, answer: str) -> None:
        s = self.state
        question.answer = answer
        self.emit_room("question:update", {"id": question.id, "answer": answer})

        counts = normalize_word(answer) != normalize_word(self.settings.dont_know_answer)
        if counts and s.status == "playing" and s.asked_count < s.max_questions:
            s.asked_count += 1
            self.emit_counter()

    def submit_guess(self, conn_id: str, text: str) -> None:
        with self.lock:
            s = self.state
            if s.status == "waiting" or not s.secret_word:
                return
            if conn_id == s.thinker_id or conn_id not in s.players:
                return

            player = s.players[conn_id]
            correct = normalize_word(text) == normalize_word(s.secret_word)

            if s.status == "playing":
                player.timeout_count = 0
                self._record_guess(player, text, correct)
                if correct:
                    self.end_round(f"🎉 {player.name} ha indovinato!", conn_id)
                    return

                s.asked_count += 1
                self.emit_counter()
                self.log(f"❌ {player.name} ha provato «{text}»: sbagliato")
                if s.asked_count >= s.max_questions:
                    self.enter_guessing()
                elif s.pending_question() is None:
                    self.scheduler.advance()
                return

            left = s.guess_attempts.get(conn_id, 0)
            if left <= 0:
                return
            s.guess_attempts[conn_id] = left - 1
            self._record_guess(player, text, correct, attempts_left=left - 1)
            if correct:
                self.end_round(f"🎉 {player.name} ha indovinato!", conn_id)
                return

            self.log(f"❌ {player.name} ha sbagliato. Tentativi rimasti: {left - 1}")
            if not any(n > 0 for n in s.guess_attempts.values()):
                self.end_round("😶 Nessuno ha indovinato!", None)
                return
            self.publish_state()

    def _record_guess(self, player: Player, text: str, correct: bool, attempts_left: int | None = None) -> None:
        s = self.state
        s.guesses.append(Guess(player_id=player.id, name=player.name, text=text, correct=correct, phase=s.status))
        payload = {"id": player.id, "name": player.name, "text": text, "correct": correct}
        if attempts_left is not None:
            payload["attemptsLeft"] = attempts_left
        self.emit_room("guess:new", payload)

    def enter_guessing(self) -> None:
        s = self.state
        if s.status != "playing":
            return
        s.status = "guessing"
        self.scheduler.cancel()
        s.guess_attempts = {pid: self.settings.guess_attempts for pid in s.guesser_ids()}
        if not s.guess_attempts:
            self.end_round("😶 Nessuno ha indovinato!", None)
            return

        log.info("guessing phase room=%s guessers=%s", s.code, len(s.guess_attempts))
        self.log("⚠️ Limite domande raggiunto, iniziano i tentativi finali!")
        self.emit_room("guessing:started", {"attempts": dict(s.guess_attempts)})
        self.publish_state()
        self.registry.publish_lobby()

    def end_round(self, message: str, winner_id: str | None) -> None:
        with self.lock:
            s = self.state
            if s.status == "waiting":
                return
            self.scheduler.cancel()

            winner = s.players.get(winner_id) if winner_id else None
            self.emit_room(
                "round:ended",
                {
                    "message": message,
                    "secretWord": s.secret_word,
                    "transcript": self.transcript(),
                    "winnerId": winner.id if winner else None,
                    "winnerName": winner.name if winner else None,
                },
            )
            log.info("round ended room=%s round=%s winner=%s", s.code, s.round, winner_id)
            self.log(message)

            s.reset_round()
            s.status = "waiting"
            if self.settings.rotate_thinker:
                self._rotate_thinker()

            self.publish_state()
            self.registry.publish_lobby()

    def _rotate_thinker(self) -> None:
        s = self.state
        order = list(s.players)
        if len(order) < 2 or s.thinker_id not in s.players:
            return
        idx = order.index(s.thinker_id)
        s.players[s.thinker_id].role = "guesser"
        successor = s.players[order[(idx + 1) % len(order)]]
        successor.role = "thinker"
        s.thinker_id = successor.id
        self.log(f"🧠 {successor.name} è il nuovo Pensatore")

    # -- chat -----------------------------------------------------------

    def post_chat(self, conn_id: str, name: str, text: str) -> None:
        with self.lock:
            s = self.state
            if s.closed:
                return
            player = s.players.get(conn_id)
            msg = {"from": conn_id, "name": player.name if player else name, "text": text}
            s.chat.append(msg)
            self.emit_room("chat:message", msg)
