"""Replication shell around the room reducer.

Each participant holds a :class:`ReplicatedSession`. Moves are never applied
directly: they are wrapped in a :class:`MoveEnvelope`, handed to the move
channel, and applied when the channel delivers them back in its agreed order.
Replicas that share a seed and see the same envelope order end up with the
same state without ever exchanging it.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol

from .machine import MoveResult, apply_move
from .models import SPECTATOR_SEAT_ID, GameState, new_game_state, state_from_dict, state_to_dict
from .rng import SharedRandom


logger = logging.getLogger(__name__)


@dataclass
class MoveEnvelope:
    move: str
    sender: str
    args: list = field(default_factory=list)
    seq: int = 0
    source: str = ""

    def to_dict(self) -> dict:
        return {
            "moveName": self.move,
            "args": list(self.args),
            "senderSeatId": self.sender,
            "seq": self.seq,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "MoveEnvelope":
        if not isinstance(payload, dict):
            raise ValueError("envelope must be an object")
        move = str(payload.get("moveName") or "").strip()
        sender = str(payload.get("senderSeatId") or "").strip()
        if not move or not sender:
            raise ValueError("envelope requires moveName and senderSeatId")
        args = payload.get("args") or []
        if not isinstance(args, list):
            args = [args]
        try:
            seq = int(payload.get("seq") or 0)
        except (TypeError, ValueError) as exc:
            raise ValueError("seq must be an integer") from exc
        return cls(move=move, sender=sender, args=args, seq=seq, source=str(payload.get("source") or ""))


class MoveChannel(Protocol):
    def publish(self, envelope: MoveEnvelope) -> None: ...


Listener = Callable[[MoveResult, MoveEnvelope], None]


class ReplicatedSession:
    def __init__(
        self,
        seed: str | int,
        local_seat: str | None = None,
        channel: MoveChannel | None = None,
        state: GameState | None = None,
    ):
        self.seed = seed
        self.local_seat = local_seat
        self.channel = channel
        self.ended = False

        self._rng = SharedRandom(seed)
        self._state = state.clone() if state is not None else new_game_state()
        self._log: list[MoveEnvelope] = []
        self._applied: dict[tuple[str, str], int] = {}
        self._listeners: list[Listener] = []
        self._source = uuid.uuid4().hex
        self._next_seq = 0

    @classmethod
    def replay(
        cls,
        seed: str | int,
        envelopes: Iterable[MoveEnvelope],
        state: GameState | None = None,
        **kwargs: Any,
    ) -> "ReplicatedSession":
        session = cls(seed, state=state, **kwargs)
        for envelope in envelopes:
            session.receive(envelope)
        return session

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def log(self) -> list[MoveEnvelope]:
        return list(self._log)

    def snapshot(self) -> dict:
        return state_to_dict(self._state)

    @property
    def is_host(self) -> bool:
        if not self.local_seat:
            return False
        player = self._state.players.get(self.local_seat)
        return bool(player and player.is_host)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def dispatch(self, move: str, *args: Any) -> MoveEnvelope | None:
        """Send a move from the local seat.

        Without a channel the move is applied immediately, which is what a
        single-replica session (tests, the relay's own copy) wants.
        """
        if not self.local_seat or self.local_seat == SPECTATOR_SEAT_ID:
            logger.debug(f"[dispatch-skip] move={move} reason=no-seat")
            return None
        if self.ended:
            return None

        self._next_seq += 1
        envelope = MoveEnvelope(
            move=move,
            sender=self.local_seat,
            args=list(args),
            seq=self._next_seq,
            source=self._source,
        )
        if self.channel is not None:
            self.channel.publish(envelope)
        else:
            self.receive(envelope)
        return envelope

    def receive(self, envelope: MoveEnvelope) -> MoveResult | None:
        """Apply one delivered envelope. Redeliveries are dropped."""
        if self.ended:
            return None

        if envelope.seq > 0:
            key = (envelope.sender, envelope.source)
            if envelope.seq <= self._applied.get(key, 0):
                logger.debug(f"[duplicate] move={envelope.move} seat={envelope.sender} seq={envelope.seq}")
                return None
            self._applied[key] = envelope.seq

        result = apply_move(self._state, envelope.move, envelope.sender, envelope.args, self._rng)
        self._state = result.state
        self._log.append(envelope)

        if result.ended:
            self.ended = True
            logger.info(f"[session-ended] seed={self.seed} seat={envelope.sender}")

        if result.changed or result.ended:
            for listener in list(self._listeners):
                listener(result, envelope)
        return result

    def restore_state(self, snapshot: GameState | dict) -> MoveEnvelope | None:
        if isinstance(snapshot, GameState):
            snapshot = state_to_dict(snapshot)
        return self.dispatch("restoreState", snapshot)

    def tick(self) -> MoveEnvelope | None:
        """Host clock: one tickTimer per call while a song is counting down."""
        if not self.is_host:
            return None
        if self._state.phase != "guessing" or self._state.timer is None:
            return None
        return self.dispatch("tickTimer")


class LocalChannel:
    """In-process channel delivering every envelope to every attached replica.

    Envelopes published while a delivery is in progress are queued, so all
    replicas observe one global order.
    """

    def __init__(self) -> None:
        self._sessions: list[ReplicatedSession] = []
        self._queue: deque[MoveEnvelope] = deque()
        self._draining = False

    def attach(self, session: ReplicatedSession) -> ReplicatedSession:
        session.channel = self
        self._sessions.append(session)
        return session

    def publish(self, envelope: MoveEnvelope) -> None:
        self._queue.append(envelope)
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                current = self._queue.popleft()
                for session in list(self._sessions):
                    session.receive(current)
        finally:
            self._draining = False


def session_from_sync(payload: dict, local_seat: str | None = None) -> ReplicatedSession:
    """Build a replica from a relay ``room:sync`` payload."""
    initial = payload.get("initialState")
    state = state_from_dict(initial) if initial else None
    envelopes = [MoveEnvelope.from_dict(item) for item in payload.get("moves") or []]
    return ReplicatedSession.replay(payload["seed"], envelopes, state=state, local_seat=local_seat)
