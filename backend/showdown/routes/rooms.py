from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..game import service

bp = Blueprint("rooms", __name__)


def _optional_int(data: dict, key: str, low: int, high: int) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ValueError(key)
    return value


@bp.post("/rooms")
def create_room():
    data = request.get_json(silent=True) or {}
    try:
        max_players = _optional_int(data, "maxPlayers", 2, 16)
        playback_duration = _optional_int(data, "playbackDuration", 15, 60)
        total_rounds = _optional_int(data, "totalRounds", 1, 10)
    except ValueError as exc:
        return jsonify({"error": "invalid_settings", "field": str(exc)}), 400

    reveal_songs = data.get("revealSongs")
    if reveal_songs is not None and not isinstance(reveal_songs, bool):
        return jsonify({"error": "invalid_settings", "field": "revealSongs"}), 400

    room = service.create_room(
        max_players=max_players,
        playback_duration=playback_duration,
        total_rounds=total_rounds,
        reveal_songs=reveal_songs,
    )
    return jsonify({"roomCode": room.code, "seed": room.seed}), 201


@bp.get("/rooms/<code>")
def get_room(code: str):
    room = service.get_room(code)
    if not room:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(service.room_public_state(room))


@bp.get("/rooms/<code>/moves")
def get_room_moves(code: str):
    room = service.get_room(code)
    if not room:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(service.sync_payload(room))
