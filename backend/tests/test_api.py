def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json() == {"ok": True, "rooms": 0}


def test_rooms_listing(flask_app, client):
    registry = flask_app.extensions["venti"]
    registry.create("ABCD", "alice", "Alice")

    res = client.get("/api/rooms")
    assert res.status_code == 200
    assert res.get_json() == {"rooms": [{"code": "ABCD", "playerCount": 1, "status": "waiting"}]}


def test_room_state(flask_app, client):
    registry = flask_app.extensions["venti"]
    session = registry.create("ABCD", "alice", "Alice")
    session.join("bob", "Bob")
    session.start_round("alice", "gatto")

    res = client.get("/api/rooms/abcd")
    assert res.status_code == 200
    state = res.get_json()
    assert state["status"] == "playing"
    assert state["currentTurnId"] == "bob"
    assert "secretWord" not in state
    assert "gatto" not in str(state)


def test_room_not_found(client):
    res = client.get("/api/rooms/NOPE")
    assert res.status_code == 404
    assert res.get_json() == {"error": "room_not_found"}
