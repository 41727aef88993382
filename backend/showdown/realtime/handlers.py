from __future__ import annotations

import logging
from typing import Any, Mapping

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from ..game import service
from ..game.models import MAX_NAME_LENGTH, SPECTATOR_SEAT_ID


logger = logging.getLogger(__name__)

_room_tasks: dict[str, bool] = {}


def _validate_name(name: str) -> bool:
    n = (name or "").strip()
    if not n:
        return False
    if len(n) > MAX_NAME_LENGTH:
        return False
    if "<" in n or ">" in n:
        return False
    for ch in n:
        if ord(ch) < 32:
            return False
    return True


def register_socketio_handlers(socketio: SocketIO, config: Mapping[str, Any] | None = None) -> None:
    config = config or {}
    empty_ttl_ms = int(config.get("ROOM_EMPTY_TTL_SEC", 10)) * 1000
    sweeper_enabled = bool(config.get("ROOM_SWEEPER_ENABLED", True)) and not config.get("TESTING")

    def _broadcast_presence(room_code: str, seat_id: str, connected: bool, name: str = "") -> None:
        socketio.emit(
            "room:presence",
            {"roomCode": room_code, "seatId": seat_id, "connected": connected, "name": name},
            to=room_code,
        )

    def _ensure_room_task(room_code: str) -> None:
        if not sweeper_enabled or _room_tasks.get(room_code):
            return
        _room_tasks[room_code] = True

        def _runner() -> None:
            while True:
                room = service.get_room(room_code)
                if not room:
                    break
                if room.last_empty_at_ms is not None and service.now_ms() - room.last_empty_at_ms >= empty_ttl_ms:
                    service.delete_room(room_code)
                    break
                socketio.sleep(1)

            _room_tasks.pop(room_code, None)

        socketio.start_background_task(_runner)

    def _error(code: str) -> dict:
        emit("room:error", {"error": code})
        return {"ok": False, "error": code}

    @socketio.on("room:join")
    def room_join(data):
        payload = data or {}
        room_code = str(payload.get("roomCode", "")).strip().upper()
        seat_id = str(payload.get("seatId", "")).strip()
        credentials = str(payload.get("credentials", "")).strip()
        name = str(payload.get("name", "")).strip()

        if not room_code or not seat_id:
            return _error("invalid_payload")
        if seat_id != SPECTATOR_SEAT_ID and not _validate_name(name):
            return _error("invalid_name")

        room = service.get_room(room_code)
        if not room:
            return _error("room_not_found")

        err = service.bind_seat(room, request.sid, seat_id, credentials, name=name)
        if err:
            logger.info(f"[join-rejected] room={room_code} seat={seat_id} error={err}")
            return _error(err)

        join_room(room_code)
        logger.info(f"[join] room={room_code} seat={seat_id}")

        sync = service.sync_payload(room)
        emit("room:sync", sync, to=request.sid)
        if seat_id != SPECTATOR_SEAT_ID:
            _broadcast_presence(room_code, seat_id, True, name)

        _ensure_room_task(room_code)
        return {"ok": True, "seatId": seat_id, "moveCount": len(sync["moves"])}

    @socketio.on("room:leave")
    def room_leave(data):
        payload = data or {}
        room_code = str(payload.get("roomCode", "")).strip().upper()
        room = service.get_room(room_code) if room_code else None
        if not room:
            return {"ok": False, "error": "room_not_found"}

        leave_room(room_code)
        seat = service.unbind_socket(room, request.sid)
        if seat:
            logger.info(f"[leave] room={room_code} seat={seat}")
            _broadcast_presence(room_code, seat, False)
        return {"ok": True}

    @socketio.on("move:submit")
    def move_submit(data):
        payload = data or {}
        room_code = str(payload.get("roomCode", "")).strip().upper()
        room = service.get_room(room_code) if room_code else None
        if not room:
            return _error("room_not_found")

        seat = service.seat_for_socket(room, request.sid)
        if seat is None:
            return _error("not_in_room")
        if seat == SPECTATOR_SEAT_ID:
            return _error("spectator")

        try:
            wire = service.append_move(room, seat, payload)
        except ValueError:
            return _error("invalid_move")
        if wire is None:
            return _error("move_rejected")

        socketio.emit("move:applied", dict(wire, roomCode=room_code), to=room_code)
        return {"ok": True, "index": wire["index"]}

    @socketio.on("disconnect")
    def on_disconnect(*args):
        for r in service.list_rooms():
            seat = service.unbind_socket(r, request.sid)
            if seat:
                logger.info(f"[disconnect] room={r.code} seat={seat}")
                _broadcast_presence(r.code, seat, False)
