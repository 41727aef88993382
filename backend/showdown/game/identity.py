"""Local seat identity for a participant.

A participant keeps one :class:`PlayerIdentity` per room in a small key/value
store. The host always sits in seat ``"0"``; peers take the lowest free
numbered seat; spectators hold no seat at all.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from .models import HOST_SEAT_ID, MAX_NAME_LENGTH, MAX_PLAYERS, SPECTATOR_SEAT_ID, Player


logger = logging.getLogger(__name__)

PlayerRole = Literal["host", "peer", "spectator"]

KEY_PREFIX = "showdown.identity"
PLAYER_NAME_KEY = "showdown.playerName"
DEFAULT_PLAYER_NAME = "Player"
MIN_PEER_ID = 1


@dataclass
class PlayerIdentity:
    player_id: str
    credentials: str
    role: PlayerRole
    player_name: str

    def to_dict(self) -> dict:
        return {
            "playerID": self.player_id,
            "credentials": self.credentials,
            "role": self.role,
            "playerName": self.player_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PlayerIdentity":
        role = data["role"]
        if role not in ("host", "peer", "spectator"):
            raise ValueError(f"unknown role {role!r}")
        return cls(
            player_id=str(data["playerID"]),
            credentials=str(data.get("credentials") or ""),
            role=role,
            player_name=str(data.get("playerName") or ""),
        )


class IdentityStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryIdentityStore:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileIdentityStore:
    """JSON file holding every key; rewritten on each change."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning(f"[identity-store] unreadable path={self.path} error={exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


def generate_credentials() -> str:
    return uuid.uuid4().hex


def _clean_name(name: str | None) -> str:
    return (name or "").strip()[:MAX_NAME_LENGTH]


class IdentityManager:
    def __init__(self, store: IdentityStore, max_players: int = MAX_PLAYERS):
        self.store = store
        self.max_players = max_players
        self.max_peer_id = max(MIN_PEER_ID, max_players - 1)

    # ---- storage ----

    def _identity_key(self, room_code: str) -> str:
        return f"{KEY_PREFIX}.{room_code}"

    def _used_key(self, room_code: str) -> str:
        return f"{KEY_PREFIX}.{room_code}.used"

    def _read_used(self, room_code: str) -> set[str]:
        raw = self.store.get(self._used_key(room_code))
        if not raw:
            return set()
        try:
            return {str(pid) for pid in json.loads(raw)}
        except (ValueError, TypeError):
            return set()

    def _write_used(self, room_code: str, used: set[str]) -> None:
        ordered = sorted(used, key=lambda pid: (len(pid), pid))
        self.store.set(self._used_key(room_code), json.dumps(ordered))

    def _save(self, room_code: str, identity: PlayerIdentity) -> PlayerIdentity:
        self.store.set(self._identity_key(room_code), json.dumps(identity.to_dict()))
        return identity

    def get_identity(self, room_code: str) -> PlayerIdentity | None:
        raw = self.store.get(self._identity_key(room_code))
        if not raw:
            return None
        try:
            return PlayerIdentity.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            return None

    def clear_identity(self, room_code: str) -> None:
        self.store.delete(self._identity_key(room_code))
        self.store.delete(self._used_key(room_code))

    def get_player_name(self) -> str:
        return self.store.get(PLAYER_NAME_KEY) or DEFAULT_PLAYER_NAME

    def remember_player_name(self, name: str) -> str:
        cleaned = _clean_name(name)
        if cleaned:
            self.store.set(PLAYER_NAME_KEY, cleaned)
        return cleaned

    # ---- seats ----

    def is_valid_player_id(self, role: PlayerRole, player_id: str) -> bool:
        if role == "host":
            return player_id == HOST_SEAT_ID
        if role == "spectator":
            return player_id == SPECTATOR_SEAT_ID
        if not player_id.isdigit():
            return False
        return MIN_PEER_ID <= int(player_id) <= self.max_peer_id

    def _allocate_peer_id(self, room_code: str, used: set[str]) -> str:
        for seat in range(MIN_PEER_ID, self.max_peer_id + 1):
            candidate = str(seat)
            if candidate not in used:
                used.add(candidate)
                self._write_used(room_code, used)
                return candidate

        # Pool exhausted: hand out a computed seat anyway. Not collision-free.
        fallback = str(min(self.max_peer_id, max(MIN_PEER_ID, len(used) + MIN_PEER_ID)))
        logger.warning(f"[identity] room={room_code} seat pool exhausted, reusing seat={fallback}")
        used.add(fallback)
        self._write_used(room_code, used)
        return fallback

    def release_peer_id(self, room_code: str, player_id: str) -> None:
        if not player_id or player_id in (HOST_SEAT_ID, SPECTATOR_SEAT_ID):
            return
        used = self._read_used(room_code)
        if player_id in used:
            used.discard(player_id)
            self._write_used(room_code, used)

    # ---- identities ----

    def create_spectator_identity(self, player_name: str) -> PlayerIdentity:
        return PlayerIdentity(
            player_id=SPECTATOR_SEAT_ID,
            credentials="",
            role="spectator",
            player_name=_clean_name(player_name) or DEFAULT_PLAYER_NAME,
        )

    def upsert_identity(self, room_code: str, role: PlayerRole, player_name: str) -> PlayerIdentity:
        """Return the stored identity for the room, creating or repairing it.

        Spectators asking for an identity are given a peer seat. A stored host
        stays host. A stored seat that is out of range for the current
        capacity is released and replaced with a fresh seat and credentials.
        """
        role = "peer" if role == "spectator" else role
        name = _clean_name(player_name)
        used = self._read_used(room_code)
        existing = self.get_identity(room_code)

        if existing is not None and existing.role != "spectator":
            updated_role: PlayerRole = "host" if existing.role == "host" else role
            player_id = existing.player_id
            credentials = existing.credentials

            if updated_role == "host":
                if player_id != HOST_SEAT_ID:
                    used.discard(player_id)
                    self._write_used(room_code, used)
                    player_id = HOST_SEAT_ID
                    credentials = generate_credentials()
            elif not self.is_valid_player_id(updated_role, player_id):
                used.discard(player_id)
                player_id = self._allocate_peer_id(room_code, used)
                credentials = generate_credentials()
            elif player_id not in used:
                used.add(player_id)
                self._write_used(room_code, used)

            updated = PlayerIdentity(
                player_id=player_id,
                credentials=credentials or generate_credentials(),
                role=updated_role,
                player_name=name or existing.player_name or DEFAULT_PLAYER_NAME,
            )
            if updated != existing:
                logger.info(f"[identity] room={room_code} seat={updated.player_id} role={updated.role} updated")
            return self._save(room_code, updated)

        if role == "host":
            identity = PlayerIdentity(
                player_id=HOST_SEAT_ID,
                credentials=generate_credentials(),
                role="host",
                player_name=name or DEFAULT_PLAYER_NAME,
            )
        else:
            identity = PlayerIdentity(
                player_id=self._allocate_peer_id(room_code, used),
                credentials=generate_credentials(),
                role="peer",
                player_name=name or DEFAULT_PLAYER_NAME,
            )
        logger.info(f"[identity] room={room_code} seat={identity.player_id} role={identity.role} created")
        return self._save(room_code, identity)

    def promote_identity_to_host(self, room_code: str, player_name: str) -> PlayerIdentity:
        existing = self.get_identity(room_code)
        if existing is not None and existing.player_id != HOST_SEAT_ID:
            self.release_peer_id(room_code, existing.player_id)

        name = _clean_name(player_name) or (existing.player_name if existing else "") or DEFAULT_PLAYER_NAME
        identity = PlayerIdentity(
            player_id=HOST_SEAT_ID,
            credentials=generate_credentials(),
            role="host",
            player_name=name,
        )
        logger.info(f"[identity] room={room_code} promoted to host")
        return self._save(room_code, identity)

    def claim_peer_identity(
        self,
        room_code: str,
        player_name: str,
        preferred_id: str | None = None,
    ) -> PlayerIdentity:
        used = self._read_used(room_code)
        player_id = None
        if (
            preferred_id
            and preferred_id not in used
            and self.is_valid_player_id("peer", preferred_id)
        ):
            player_id = preferred_id
            used.add(player_id)
            self._write_used(room_code, used)

        identity = PlayerIdentity(
            player_id=player_id or self._allocate_peer_id(room_code, used),
            credentials=generate_credentials(),
            role="peer",
            player_name=_clean_name(player_name) or DEFAULT_PLAYER_NAME,
        )
        return self._save(room_code, identity)

    def create_peer_assignment(self, room_code: str, player_name: str) -> PlayerIdentity:
        """Reserve a seat for someone else (the host handing out seats)."""
        used = self._read_used(room_code)
        return PlayerIdentity(
            player_id=self._allocate_peer_id(room_code, used),
            credentials=generate_credentials(),
            role="peer",
            player_name=_clean_name(player_name) or DEFAULT_PLAYER_NAME,
        )

    def apply_assigned_identity(self, room_code: str, identity: PlayerIdentity) -> PlayerIdentity:
        normalized = PlayerIdentity(
            player_id=identity.player_id,
            credentials=identity.credentials,
            role="peer",
            player_name=_clean_name(identity.player_name) or DEFAULT_PLAYER_NAME,
        )
        used = self._read_used(room_code)
        used.add(normalized.player_id)
        self._write_used(room_code, used)
        return self._save(room_code, normalized)

    def release_to_spectator(self, room_code: str, identity: PlayerIdentity) -> PlayerIdentity:
        self.release_peer_id(room_code, identity.player_id)
        self.store.delete(self._identity_key(room_code))
        return self.create_spectator_identity(identity.player_name)


class SeatClaimer:
    """Moves a spectator into a free seat and backs out of seats that never connect.

    Call :meth:`step` once per poll interval with the latest replicated player
    map. A claimed peer seat that is still not shown as connected after
    ``max_attempts`` polls is released and the participant drops back to
    spectator.
    """

    def __init__(self, manager: IdentityManager, room_code: str, max_attempts: int = 3):
        self.manager = manager
        self.room_code = room_code
        self.max_attempts = max_attempts
        self.attempted: set[str] = set()
        self.retries: dict[str, int] = {}

    def _find_seat(self, occupied: set[str]) -> str | None:
        for seat in range(MIN_PEER_ID, self.manager.max_players):
            seat_id = str(seat)
            if seat_id in occupied or seat_id in self.attempted:
                continue
            return seat_id
        return None

    def step(self, identity: PlayerIdentity, players: dict[str, Player]) -> PlayerIdentity:
        if identity.role == "host":
            self.attempted.clear()
            self.retries.clear()
            return identity

        if identity.role == "spectator":
            occupied = {pid for pid, p in players.items() if p.connected}
            candidate = self._find_seat(occupied)
            if candidate is None and self.attempted:
                self.attempted.clear()
                candidate = self._find_seat(occupied)
            if candidate is None:
                return identity
            self.attempted.add(candidate)
            logger.info(f"[seat-claim] room={self.room_code} seat={candidate}")
            return self.manager.claim_peer_identity(self.room_code, identity.player_name, candidate)

        seat_id = identity.player_id
        occupant = players.get(seat_id)
        if occupant is not None and occupant.connected:
            self.retries.pop(seat_id, None)
            return identity

        attempts = self.retries.get(seat_id, 0) + 1
        if attempts < self.max_attempts:
            self.retries[seat_id] = attempts
            return identity

        self.retries.pop(seat_id, None)
        self.attempted.discard(seat_id)
        logger.info(f"[seat-release] room={self.room_code} seat={seat_id} never connected")
        return self.manager.release_to_spectator(self.room_code, identity)


def pick_host_successor(lobby_order: list[str], players: dict[str, Player]) -> str | None:
    """First connected seat in lobby order; the caller decides when to promote."""
    for pid in lobby_order:
        player = players.get(pid)
        if player is not None and player.connected:
            return pid
    return None
