from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Any, Literal


Phase = Literal[
    "lobby",
    "theme_selection",
    "song_picking",
    "guessing",
    "song_reveal",
    "round_results",
    "game_over",
]

PHASES: tuple[str, ...] = (
    "lobby",
    "theme_selection",
    "song_picking",
    "guessing",
    "song_reveal",
    "round_results",
    "game_over",
)

# Allowed phase edges. restoreState is the only move that may jump outside them.
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "lobby": ("theme_selection",),
    "theme_selection": ("song_picking",),
    "song_picking": ("guessing", "round_results"),
    "guessing": ("song_reveal", "round_results"),
    "song_reveal": ("guessing", "round_results"),
    "round_results": ("theme_selection", "game_over"),
    "game_over": ("lobby",),
}

HOST_SEAT_ID = "0"
MAX_PLAYERS = 8
DEFAULT_PLAYBACK_DURATION = 30
DEFAULT_TOTAL_ROUNDS = 3
MAX_NAME_LENGTH = 24
MAX_START_SECONDS = 3600
MAX_THEME_LENGTH = 80
SPECTATOR_SEAT_ID = "spectator"


class SnapshotError(ValueError):
    """Raised when a serialized game state cannot be read back."""


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, ())


@dataclass
class Player:
    id: str
    name: str
    score: int = 0
    is_host: bool = False
    connected: bool = True


@dataclass
class GameSettings:
    playback_duration: int = DEFAULT_PLAYBACK_DURATION
    total_rounds: int = DEFAULT_TOTAL_ROUNDS
    reveal_songs: bool = False


@dataclass
class SongSelection:
    video_id: str
    original_title: str = ""
    custom_title: str = ""
    thumbnail: str = ""
    start_seconds: int = 0


@dataclass
class GuessInfo:
    guess: str
    time: float
    is_correct: bool


@dataclass
class GuessLogEntry:
    id: str
    player_id: str
    player_name: str
    guess: str
    time: float
    is_correct: bool
    song_owner_id: str | None
    song_owner_name: str | None
    song_index: int


@dataclass
class RoundState:
    round_number: int
    theme: str = ""
    song_selections: dict[str, SongSelection] = field(default_factory=dict)
    current_song_index: int = 0
    current_player_id: str | None = None
    guesses: dict[str, list[GuessInfo]] = field(default_factory=dict)
    round_scores: dict[str, int] = field(default_factory=dict)
    play_order: list[str] = field(default_factory=list)
    correct_guessers: dict[str, bool] = field(default_factory=dict)
    guess_log: list[GuessLogEntry] = field(default_factory=list)
    reveal_song_owner_id: str | None = None
    reveal_song_index: int | None = None


@dataclass
class GameState:
    phase: Phase = "lobby"
    players: dict[str, Player] = field(default_factory=dict)
    settings: GameSettings = field(default_factory=GameSettings)
    current_round: RoundState | None = None
    total_rounds: int = DEFAULT_TOTAL_ROUNDS
    completed_rounds: int = 0
    timer: int | None = None
    max_players: int = MAX_PLAYERS
    lobby_order: list[str] = field(default_factory=list)

    def clone(self) -> "GameState":
        return copy.deepcopy(self)

    def connected_players(self) -> list[Player]:
        return [p for p in self.players.values() if p.connected]


def new_game_state(
    max_players: int = MAX_PLAYERS,
    playback_duration: int = DEFAULT_PLAYBACK_DURATION,
    total_rounds: int = DEFAULT_TOTAL_ROUNDS,
    reveal_songs: bool = False,
) -> GameState:
    return GameState(
        settings=GameSettings(
            playback_duration=playback_duration,
            total_rounds=total_rounds,
            reveal_songs=reveal_songs,
        ),
        total_rounds=total_rounds,
        max_players=max_players,
    )


# ---------- Wire format (camelCase, JSON-safe) ----------


def selection_to_dict(s: SongSelection) -> dict:
    return {
        "videoId": s.video_id,
        "originalTitle": s.original_title,
        "customTitle": s.custom_title,
        "thumbnail": s.thumbnail,
        "startSeconds": s.start_seconds,
    }


def selection_from_dict(data: Any) -> SongSelection:
    """Validate a client-supplied selection payload.

    Raises ValueError for anything that is not a usable selection.
    """
    if not isinstance(data, dict):
        raise ValueError("selection must be an object")

    video_id = str(data.get("videoId") or "").strip()
    if not video_id:
        raise ValueError("selection requires a videoId")

    original_title = str(data.get("originalTitle") or "").strip()
    custom_title = str(data.get("customTitle") or "").strip() or original_title

    raw_start = data.get("startSeconds", 0)
    if raw_start is None:
        raw_start = 0
    if isinstance(raw_start, bool) or not isinstance(raw_start, (int, float)):
        raise ValueError("startSeconds must be a number")
    if not math.isfinite(raw_start):
        raise ValueError("startSeconds must be finite")
    start_seconds = int(raw_start)
    if start_seconds < 0 or start_seconds > MAX_START_SECONDS:
        raise ValueError("startSeconds out of range")

    return SongSelection(
        video_id=video_id,
        original_title=original_title,
        custom_title=custom_title,
        thumbnail=str(data.get("thumbnail") or ""),
        start_seconds=start_seconds,
    )


def _guess_to_dict(g: GuessInfo) -> dict:
    return {"guess": g.guess, "time": g.time, "isCorrect": g.is_correct}


def _log_entry_to_dict(e: GuessLogEntry) -> dict:
    return {
        "id": e.id,
        "playerId": e.player_id,
        "playerName": e.player_name,
        "guess": e.guess,
        "time": e.time,
        "isCorrect": e.is_correct,
        "songOwnerId": e.song_owner_id,
        "songOwnerName": e.song_owner_name,
        "songIndex": e.song_index,
    }


def round_to_dict(r: RoundState) -> dict:
    return {
        "roundNumber": r.round_number,
        "theme": r.theme,
        "songSelections": {pid: selection_to_dict(s) for pid, s in r.song_selections.items()},
        "currentSongIndex": r.current_song_index,
        "currentPlayerId": r.current_player_id,
        "guesses": {pid: [_guess_to_dict(g) for g in gs] for pid, gs in r.guesses.items()},
        "roundScores": dict(r.round_scores),
        "playOrder": list(r.play_order),
        "correctGuessers": dict(r.correct_guessers),
        "guessLog": [_log_entry_to_dict(e) for e in r.guess_log],
        "revealSongOwnerId": r.reveal_song_owner_id,
        "revealSongIndex": r.reveal_song_index,
    }


def state_to_dict(state: GameState) -> dict:
    return {
        "phase": state.phase,
        "players": {
            pid: {
                "id": p.id,
                "name": p.name,
                "score": p.score,
                "isHost": p.is_host,
                "connected": p.connected,
            }
            for pid, p in state.players.items()
        },
        "settings": {
            "playbackDuration": state.settings.playback_duration,
            "totalRounds": state.settings.total_rounds,
            "revealSongs": state.settings.reveal_songs,
        },
        "currentRound": round_to_dict(state.current_round) if state.current_round else None,
        "totalRounds": state.total_rounds,
        "completedRounds": state.completed_rounds,
        "timer": state.timer,
        "maxPlayers": state.max_players,
        "lobbyOrder": list(state.lobby_order),
    }


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotError(f"{name} must be a number")
    if not math.isfinite(value) or value != int(value):
        raise SnapshotError(f"{name} must be a whole number")
    return int(value)


def _as_time(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise SnapshotError(f"{name} must be a finite number")
    return value


def _as_bool(value: Any, name: str, default: bool = False) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise SnapshotError(f"{name} must be true or false")
    return value


def _as_seat(value: Any, name: str, optional: bool = True) -> str | None:
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise SnapshotError(f"{name} must be a seat id")
    return value


def _round_from_dict(data: dict) -> RoundState:
    reveal_index = data.get("revealSongIndex")
    return RoundState(
        round_number=_as_int(data["roundNumber"], "roundNumber"),
        theme=str(data.get("theme") or ""),
        song_selections={
            str(pid): SongSelection(
                video_id=str(s["videoId"]),
                original_title=str(s.get("originalTitle") or ""),
                custom_title=str(s.get("customTitle") or ""),
                thumbnail=str(s.get("thumbnail") or ""),
                start_seconds=_as_int(s.get("startSeconds") or 0, "startSeconds"),
            )
            for pid, s in (data.get("songSelections") or {}).items()
        },
        current_song_index=_as_int(data.get("currentSongIndex") or 0, "currentSongIndex"),
        current_player_id=_as_seat(data.get("currentPlayerId"), "currentPlayerId"),
        guesses={
            str(pid): [
                GuessInfo(
                    guess=str(g["guess"]),
                    time=_as_time(g["time"], "guess time"),
                    is_correct=_as_bool(g["isCorrect"], "isCorrect"),
                )
                for g in gs
            ]
            for pid, gs in (data.get("guesses") or {}).items()
        },
        round_scores={str(pid): _as_int(v, "roundScores") for pid, v in (data.get("roundScores") or {}).items()},
        play_order=[_as_seat(pid, "playOrder", optional=False) for pid in (data.get("playOrder") or [])],
        correct_guessers={
            str(pid): _as_bool(v, "correctGuessers") for pid, v in (data.get("correctGuessers") or {}).items()
        },
        guess_log=[
            GuessLogEntry(
                id=str(e["id"]),
                player_id=str(e["playerId"]),
                player_name=str(e.get("playerName") or ""),
                guess=str(e["guess"]),
                time=_as_time(e["time"], "guessLog time"),
                is_correct=_as_bool(e["isCorrect"], "isCorrect"),
                song_owner_id=_as_seat(e.get("songOwnerId"), "songOwnerId"),
                song_owner_name=e.get("songOwnerName") if isinstance(e.get("songOwnerName"), str) else None,
                song_index=_as_int(e["songIndex"], "songIndex"),
            )
            for e in (data.get("guessLog") or [])
        ],
        reveal_song_owner_id=_as_seat(data.get("revealSongOwnerId"), "revealSongOwnerId"),
        reveal_song_index=_as_int(reveal_index, "revealSongIndex") if reveal_index is not None else None,
    )


def state_from_dict(data: Any) -> GameState:
    """Rebuild a GameState from its wire form.

    The payload is deep-copied first so the result never shares structure with
    the caller. Any missing or mistyped field raises SnapshotError.
    """
    if not isinstance(data, dict):
        raise SnapshotError("snapshot must be an object")

    try:
        data = copy.deepcopy(data)
        phase = data["phase"]
        if phase not in PHASES:
            raise SnapshotError(f"unknown phase {phase!r}")

        settings_raw = data.get("settings") or {}
        settings = GameSettings(
            playback_duration=_as_int(settings_raw.get("playbackDuration", DEFAULT_PLAYBACK_DURATION), "playbackDuration"),
            total_rounds=_as_int(settings_raw.get("totalRounds", DEFAULT_TOTAL_ROUNDS), "totalRounds"),
            reveal_songs=_as_bool(settings_raw.get("revealSongs"), "revealSongs"),
        )
        if settings.playback_duration <= 0:
            raise SnapshotError("playbackDuration must be positive")

        players = {}
        for pid, p in (data.get("players") or {}).items():
            players[str(pid)] = Player(
                id=str(p.get("id", pid)),
                name=str(p["name"]),
                score=_as_int(p.get("score") or 0, "score"),
                is_host=_as_bool(p.get("isHost"), "isHost"),
                connected=_as_bool(p.get("connected"), "connected"),
            )

        round_raw = data.get("currentRound")
        timer = data.get("timer")

        return GameState(
            phase=phase,
            players=players,
            settings=settings,
            current_round=_round_from_dict(round_raw) if round_raw else None,
            total_rounds=_as_int(data.get("totalRounds", settings.total_rounds), "totalRounds"),
            completed_rounds=_as_int(data.get("completedRounds") or 0, "completedRounds"),
            timer=_as_int(timer, "timer") if timer is not None else None,
            max_players=_as_int(data.get("maxPlayers") or MAX_PLAYERS, "maxPlayers"),
            lobby_order=[str(pid) for pid in (data.get("lobbyOrder") or [])],
        )
    except SnapshotError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError, OverflowError) as exc:
        raise SnapshotError(f"malformed snapshot: {exc}") from exc
