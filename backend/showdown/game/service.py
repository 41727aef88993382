from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from threading import RLock
from typing import Any

from ..config import Config
from .models import HOST_SEAT_ID, SPECTATOR_SEAT_ID, new_game_state, state_to_dict
from .scoring import generate_room_code, normalize_room_code
from .session import MoveEnvelope, ReplicatedSession


logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SeatBinding:
    seat_id: str
    credentials: str
    name: str = ""
    socket_id: str | None = None
    connected: bool = True


@dataclass
class RelayRoom:
    """Relay-side view of a room: ordered move log plus a non-authoritative replica."""

    code: str
    seed: str
    initial_state: dict
    session: ReplicatedSession = field(repr=False)
    max_players: int = 8
    created_at_ms: int = field(default_factory=now_ms)
    moves: list[dict] = field(default_factory=list)
    seats: dict[str, SeatBinding] = field(default_factory=dict)
    spectators: set[str] = field(default_factory=set)
    last_empty_at_ms: int | None = None


_lock = RLock()
_rooms: dict[str, RelayRoom] = {}


def create_room(
    max_players: int | None = None,
    playback_duration: int | None = None,
    total_rounds: int | None = None,
    reveal_songs: bool | None = None,
) -> RelayRoom:
    with _lock:
        code = generate_room_code()
        while code in _rooms:
            code = generate_room_code()

        state = new_game_state(
            max_players=max_players or Config.MAX_PLAYERS,
            playback_duration=playback_duration or Config.PLAYBACK_DURATION_SEC,
            total_rounds=total_rounds or Config.TOTAL_ROUNDS,
            reveal_songs=Config.REVEAL_SONGS if reveal_songs is None else reveal_songs,
        )
        seed = uuid.uuid4().hex
        room = RelayRoom(
            code=code,
            seed=seed,
            initial_state=state_to_dict(state),
            session=ReplicatedSession(seed, state=state),
            max_players=state.max_players,
            last_empty_at_ms=now_ms(),
        )
        _rooms[code] = room
        logger.info(f"[room-create] room={code} maxPlayers={room.max_players}")
        return room


def get_room(code: str) -> RelayRoom | None:
    with _lock:
        return _rooms.get(normalize_room_code(code))


def delete_room(code: str) -> bool:
    with _lock:
        code = normalize_room_code(code)
        if code in _rooms:
            del _rooms[code]
            logger.info(f"[room-delete] room={code}")
            return True
        return False


def list_rooms() -> list[RelayRoom]:
    with _lock:
        return list(_rooms.values())


def bind_seat(room: RelayRoom, socket_id: str, seat_id: str, credentials: str, name: str = "") -> str | None:
    """Attach a socket to a seat. Returns an error code, or None on success."""
    with _lock:
        room.last_empty_at_ms = None

        if seat_id == SPECTATOR_SEAT_ID:
            room.spectators.add(socket_id)
            return None

        if not seat_id.isdigit() or int(seat_id) >= room.max_players:
            return "invalid_seat"
        if not credentials:
            return "invalid_credentials"

        binding = room.seats.get(seat_id)
        if binding is not None and binding.credentials != credentials:
            if binding.connected and binding.socket_id != socket_id:
                return "seat_taken"
            logger.info(f"[seat-takeover] room={room.code} seat={seat_id}")

        room.seats[seat_id] = SeatBinding(
            seat_id=seat_id,
            credentials=credentials,
            name=name,
            socket_id=socket_id,
            connected=True,
        )
        room.spectators.discard(socket_id)
        return None


def unbind_socket(room: RelayRoom, socket_id: str) -> str | None:
    """Detach a socket; returns the seat it held, if any."""
    with _lock:
        room.spectators.discard(socket_id)
        seat = None
        for binding in room.seats.values():
            if binding.socket_id == socket_id:
                binding.socket_id = None
                binding.connected = False
                seat = binding.seat_id
                break

        if not room.spectators and not any(b.connected for b in room.seats.values()):
            room.last_empty_at_ms = now_ms()
        return seat


def seat_for_socket(room: RelayRoom, socket_id: str) -> str | None:
    with _lock:
        for binding in room.seats.values():
            if binding.socket_id == socket_id and binding.connected:
                return binding.seat_id
        if socket_id in room.spectators:
            return SPECTATOR_SEAT_ID
        return None


def append_move(room: RelayRoom, sender_seat: str, payload: Any) -> dict | None:
    """Order one move into the room log and apply it to the relay replica.

    The move is applied first and logged only when it changed the replica or
    ended the session, so the log always replays cleanly. Returns None for a
    move the replica rejected. Raises ValueError when the payload is unusable.
    """
    body = dict(payload) if isinstance(payload, dict) else {}
    body["senderSeatId"] = sender_seat
    envelope = MoveEnvelope.from_dict(body)

    with _lock:
        result = room.session.receive(envelope)
        if result is None or not (result.changed or result.ended):
            logger.debug(f"[move-rejected] room={room.code} seat={sender_seat} move={envelope.move}")
            return None
        wire = envelope.to_dict()
        wire["index"] = len(room.moves) + 1
        room.moves.append(wire)
        return wire


def sync_payload(room: RelayRoom) -> dict:
    with _lock:
        return {
            "roomCode": room.code,
            "seed": room.seed,
            "initialState": room.initial_state,
            "moves": list(room.moves),
        }


def room_public_state(room: RelayRoom) -> dict:
    with _lock:
        state = room.session.state
        occupied = {seat for seat, b in room.seats.items() if b.connected}
        open_seats = [str(s) for s in range(1, room.max_players) if str(s) not in occupied]
        return {
            "code": room.code,
            "phase": state.phase,
            "createdAtMs": room.created_at_ms,
            "moveCount": len(room.moves),
            "ended": room.session.ended,
            "hostConnected": HOST_SEAT_ID in occupied,
            "openSeats": open_seats,
            "spectators": len(room.spectators),
            "seats": [
                {"seatId": b.seat_id, "name": b.name, "connected": b.connected}
                for b in sorted(room.seats.values(), key=lambda b: int(b.seat_id))
            ],
            "state": state_to_dict(state),
        }
