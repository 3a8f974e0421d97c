from venti.game.registry import SessionRegistry
from venti.game.settings import GameSettings


def test_ask_timeout_skips_turn_and_consumes_slot(room, broadcaster, timers):
    room.join("carol", "Carol")
    room.start_round("alice", "gatto")

    timers.fire()

    s = room.state
    assert s.players["bob"].timeout_count == 1
    assert s.asked_count == 1
    assert s.current_turn_id() == "carol"
    assert broadcaster.last("turn:now")["id"] == "carol"
    assert any("Bob ha saltato" in m for m in s.logs)
    assert len(timers.live()) == 1


def test_three_timeouts_expel_single_guesser(room, registry, broadcaster, timers):
    room.start_round("alice", "gatto")

    timers.fire()
    timers.fire()
    assert room.state.players["bob"].timeout_count == 2
    assert room.state.asked_count == 2

    timers.fire()

    s = room.state
    assert "bob" not in s.players
    assert s.turn_order == []
    assert s.guesser_ids() == []
    assert s.asked_count == 2
    assert timers.live() == []
    assert broadcaster.evicted == [("bob", "ABCD")]
    assert broadcaster.named("room:expelled", to="bob") == [{"code": "ABCD"}]
    assert registry.lookup("ABCD") is room
    assert s.status == "playing"


def test_repeated_firing_expels_once(room, broadcaster, timers):
    room.start_round("alice", "gatto")
    timers.fire()
    timers.fire()
    entry = timers.live()[0]

    timers.fire()
    timers.fire_late(entry)
    timers.fire_late(entry)

    assert broadcaster.named("room:expelled") == [{"code": "ABCD"}]
    assert room.state.asked_count == 2


def test_voluntary_action_resets_timeout_count(room, timers):
    room.start_round("alice", "gatto")
    timers.fire()
    timers.fire()
    assert room.state.players["bob"].timeout_count == 2

    q = room.ask_question("bob", "È un animale?")
    assert room.state.players["bob"].timeout_count == 0
    room.answer_question("alice", q.id, "Sì")

    timers.fire()
    assert "bob" in room.state.players
    assert room.state.players["bob"].timeout_count == 1


def test_stale_ask_timer_does_not_mutate(room, timers):
    room.start_round("alice", "gatto")
    stale = timers.live()[0]

    q = room.ask_question("bob", "È un animale?")
    room.answer_question("alice", q.id, "Sì")

    before = (room.state.asked_count, room.state.turn_index, room.state.players["bob"].timeout_count)
    timers.fire_late(stale)
    after = (room.state.asked_count, room.state.turn_index, room.state.players["bob"].timeout_count)

    assert before == after == (1, 0, 0)
    assert len(timers.live()) == 1


def test_stale_answer_timer_does_not_overwrite(room, timers):
    room.start_round("alice", "gatto")
    q = room.ask_question("bob", "È un animale?")
    stale = timers.live()[0]

    room.answer_question("alice", q.id, "Sì")
    timers.fire_late(stale)

    assert q.answer == "Sì"
    assert room.state.players["alice"].timeout_count == 0


def test_timer_for_departed_player_is_ignored(room, timers):
    room.join("carol", "Carol")
    room.start_round("alice", "gatto")
    stale = timers.live()[0]

    room.leave("bob")
    timers.fire_late(stale)

    assert room.state.asked_count == 0
    assert room.state.current_turn_id() == "carol"


def test_answer_timeout_fills_dont_know(room, broadcaster, timers):
    room.start_round("alice", "gatto")
    q = room.ask_question("bob", "È un animale?")

    timers.fire()

    assert q.answer == "Non so"
    assert broadcaster.last("question:update") == {"id": q.id, "answer": "Non so"}
    assert room.state.asked_count == 0
    assert room.state.players["alice"].timeout_count == 1
    assert room.state.current_turn_id() == "bob"
    assert broadcaster.last("timer:start", to="bob")["kind"] == "ask"


def test_thinker_expelled_after_three_answer_timeouts(room, registry, broadcaster, timers):
    room.start_round("alice", "gatto")
    for _ in range(3):
        room.ask_question("bob", "È un animale?")
        timers.fire()

    ended = broadcaster.last("round:ended")
    assert ended["winnerId"] is None
    assert ended["secretWord"] == "gatto"
    assert ("alice", "ABCD") in broadcaster.evicted
    assert registry.lookup("ABCD") is None
    assert timers.live() == []


def test_timeout_on_last_slot_enters_guessing(room, timers):
    room.start_round("alice", "gatto")
    for _ in range(19):
        q = room.ask_question("bob", "È grande?")
        room.answer_question("alice", q.id, "No")

    timers.fire()

    assert room.state.asked_count == 20
    assert room.state.status == "guessing"
    assert room.state.guess_attempts == {"bob": 2}
    assert timers.live() == []


def test_timer_duration_follows_settings(broadcaster, timers):
    registry = SessionRegistry(GameSettings(turn_timeout_sec=15), broadcaster, timers)
    session = registry.create("ABCD", "alice", "Alice")
    session.join("bob", "Bob")
    session.start_round("alice", "gatto")

    assert timers.live()[0][0].delay == 15
    assert broadcaster.last("timer:start", to="bob") == {"duration": 15, "kind": "ask"}


def test_at_most_one_live_timer(room, timers):
    room.join("carol", "Carol")
    room.start_round("alice", "gatto")
    for _ in range(4):
        q = room.ask_question(room.state.current_turn_id(), "È grande?")
        assert len(timers.live()) == 1
        room.answer_question("alice", q.id, "No")
        assert len(timers.live()) == 1
