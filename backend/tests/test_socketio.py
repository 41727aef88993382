import pytest

from showdown.game import machine, service
from showdown.game.session import session_from_sync


def _events(client, name):
    return [pkt["args"][0] for pkt in client.get_received() if pkt["name"] == name]


def _join(client, code, seat, credentials="", name=""):
    return client.emit(
        "room:join",
        {"roomCode": code, "seatId": seat, "credentials": credentials, "name": name},
        callback=True,
    )


@pytest.fixture()
def relay_room():
    return service.create_room()


def test_join_acks_and_syncs(sio_factory, relay_room):
    host = sio_factory()
    ack = _join(host, relay_room.code.lower(), "0", "cred-0", "Host")
    assert ack == {"ok": True, "seatId": "0", "moveCount": 0}

    received = host.get_received()
    sync = [p["args"][0] for p in received if p["name"] == "room:sync"]
    assert sync and sync[0]["seed"] == relay_room.seed
    assert sync[0]["moves"] == []
    presence = [p["args"][0] for p in received if p["name"] == "room:presence"]
    assert presence[0] == {"roomCode": relay_room.code, "seatId": "0", "connected": True, "name": "Host"}


def test_join_errors(sio_factory, relay_room):
    c = sio_factory()
    assert _join(c, "ZZZZZZ", "1", "x", "Pat") == {"ok": False, "error": "room_not_found"}
    assert _join(c, relay_room.code, "1", "x", "") == {"ok": False, "error": "invalid_name"}
    assert _join(c, relay_room.code, "1", "x", "<b>") == {"ok": False, "error": "invalid_name"}
    assert _join(c, relay_room.code, "42", "x", "Pat") == {"ok": False, "error": "invalid_seat"}
    assert _join(c, relay_room.code, "1", "", "Pat") == {"ok": False, "error": "invalid_credentials"}
    assert _join(c, "", "1", "x", "Pat") == {"ok": False, "error": "invalid_payload"}
    assert len(_events(c, "room:error")) == 6


def test_connected_seat_cannot_be_taken(sio_factory, relay_room):
    first, second = sio_factory(), sio_factory()
    assert _join(first, relay_room.code, "1", "mine", "Pat")["ok"]
    assert _join(second, relay_room.code, "1", "yours", "Sam") == {"ok": False, "error": "seat_taken"}


def test_seat_can_be_reclaimed_after_disconnect(sio_factory, relay_room):
    first = sio_factory()
    _join(first, relay_room.code, "1", "mine", "Pat")
    first.disconnect()

    again = sio_factory()
    assert _join(again, relay_room.code, "1", "mine", "Pat")["ok"]


def test_moves_are_ordered_and_broadcast(sio_factory, relay_room):
    host, peer = sio_factory(), sio_factory()
    _join(host, relay_room.code, "0", "c0", "Host")
    _join(peer, relay_room.code, "1", "c1", "Peer")
    host.get_received()
    peer.get_received()

    ack = host.emit(
        "move:submit",
        {"roomCode": relay_room.code, "moveName": "setPlayerName", "args": ["Host"], "seq": 1, "source": "h"},
        callback=True,
    )
    assert ack == {"ok": True, "index": 1}

    # the relay stamps the sender from the bound seat, not the payload
    ack = peer.emit(
        "move:submit",
        {"roomCode": relay_room.code, "moveName": "setPlayerName", "args": ["Peer"], "senderSeatId": "0", "seq": 1},
        callback=True,
    )
    assert ack["index"] == 2

    applied = _events(peer, "move:applied")
    assert [(m["moveName"], m["senderSeatId"], m["index"]) for m in applied] == [
        ("setPlayerName", "0", 1),
        ("setPlayerName", "1", 2),
    ]
    assert applied[0]["roomCode"] == relay_room.code

    state = relay_room.session.state
    assert state.players["0"].name == "Host"
    assert state.players["1"].name == "Peer"

    late = sio_factory()
    assert _join(late, relay_room.code, "spectator")["moveCount"] == 2


def test_spectators_and_strangers_cannot_move(sio_factory, relay_room):
    watcher, stranger = sio_factory(), sio_factory()
    assert _join(watcher, relay_room.code, "spectator")["ok"]

    move = {"roomCode": relay_room.code, "moveName": "startGame", "args": []}
    assert watcher.emit("move:submit", move, callback=True) == {"ok": False, "error": "spectator"}
    assert stranger.emit("move:submit", move, callback=True) == {"ok": False, "error": "not_in_room"}
    assert relay_room.moves == []


def test_malformed_move_is_rejected(sio_factory, relay_room):
    host = sio_factory()
    _join(host, relay_room.code, "0", "c0", "Host")
    ack = host.emit("move:submit", {"roomCode": relay_room.code, "args": []}, callback=True)
    assert ack == {"ok": False, "error": "invalid_move"}


def test_disconnect_broadcasts_presence(sio_factory, relay_room):
    host, peer = sio_factory(), sio_factory()
    _join(host, relay_room.code, "0", "c0", "Host")
    _join(peer, relay_room.code, "1", "c1", "Peer")
    host.get_received()

    peer.disconnect()
    presence = _events(host, "room:presence")
    assert presence[-1]["seatId"] == "1"
    assert presence[-1]["connected"] is False

    public = service.room_public_state(relay_room)
    assert "1" in public["openSeats"]
    assert public["hostConnected"] is True


def test_leave_room(sio_factory, relay_room):
    host, peer = sio_factory(), sio_factory()
    _join(host, relay_room.code, "0", "c0", "Host")
    _join(peer, relay_room.code, "1", "c1", "Peer")
    host.get_received()

    assert peer.emit("room:leave", {"roomCode": relay_room.code}, callback=True) == {"ok": True}
    assert _events(host, "room:presence")[-1] == {
        "roomCode": relay_room.code,
        "seatId": "1",
        "connected": False,
        "name": "",
    }
    assert service.seat_for_socket(relay_room, "nobody") is None


def test_rejected_moves_stay_out_of_the_log(relay_room, monkeypatch):
    assert service.append_move(relay_room, "0", {"moveName": "setPlayerName", "args": ["Host"]})["index"] == 1

    snapshot = relay_room.session.snapshot()
    snapshot["timer"] = float("inf")
    assert service.append_move(relay_room, "0", {"moveName": "restoreState", "args": [snapshot]}) is None
    assert service.append_move(relay_room, "0", {"moveName": "setPlayerName", "args": ["Host"]}) is None

    def explode(state, ctx, args):
        ctx.rng.uuid()
        raise RuntimeError("handler bug")

    monkeypatch.setitem(machine.PHASE_MOVES["lobby"], "startGame", explode)
    assert service.append_move(relay_room, "0", {"moveName": "startGame", "args": []}) is None
    monkeypatch.undo()

    assert service.append_move(relay_room, "1", {"moveName": "setPlayerName", "args": ["Peer"]})["index"] == 2
    assert [m["index"] for m in relay_room.moves] == [1, 2]

    replica = session_from_sync(service.sync_payload(relay_room))
    assert replica.snapshot() == relay_room.session.snapshot()


def test_no_op_move_is_acked_as_rejected(sio_factory, relay_room):
    host = sio_factory()
    _join(host, relay_room.code, "0", "c0", "Host")
    move = {"roomCode": relay_room.code, "moveName": "setPlayerName", "args": ["Host"]}

    assert host.emit("move:submit", move, callback=True) == {"ok": True, "index": 1}
    host.get_received()
    assert host.emit("move:submit", move, callback=True) == {"ok": False, "error": "move_rejected"}
    assert _events(host, "move:applied") == []
    assert len(relay_room.moves) == 1
