"""Phase-based reducer for a Music Showdown room.

Every move goes through :func:`apply_move`. A move that is not legal in the
current phase, comes from a seat that may not issue it, or would break a room
invariant is ignored: the original state object is returned untouched and the
result reports ``changed=False``. Nothing here raises for bad input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable

from .models import (
    HOST_SEAT_ID,
    MAX_NAME_LENGTH,
    MAX_THEME_LENGTH,
    GameState,
    GuessInfo,
    GuessLogEntry,
    Player,
    RoundState,
    SnapshotError,
    can_transition,
    selection_from_dict,
    state_from_dict,
)
from .rng import SharedRandom
from .scoring import calculate_points, clamp_guess_time, is_first_correct, is_guess_correct


logger = logging.getLogger(__name__)

PLAYBACK_DURATION_RANGE = (15, 60)
TOTAL_ROUNDS_RANGE = (1, 10)


@dataclass
class MoveContext:
    player_id: str
    rng: SharedRandom
    ended: bool = False


@dataclass
class MoveResult:
    state: GameState
    changed: bool = False
    transition: str | None = None
    ended: bool = False


MoveHandler = Callable[[GameState, MoveContext, list], bool]


# ---------- helpers ----------


def _arg(args: list, index: int, default: Any = None) -> Any:
    return args[index] if len(args) > index else default


def _is_host(state: GameState, player_id: str) -> bool:
    player = state.players.get(player_id)
    return bool(player and player.is_host)


def _is_seat_id(state: GameState, player_id: str) -> bool:
    if not isinstance(player_id, str) or not player_id.isdigit():
        return False
    return 0 <= int(player_id) < state.max_players


def _clean_name(raw: Any) -> str:
    if not isinstance(raw, str):
        return ""
    return raw.strip()[:MAX_NAME_LENGTH]


def _valid_int(value: Any, bounds: tuple[int, int]) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return bounds[0] <= value <= bounds[1]


def _append_lobby_order(state: GameState, player_id: str) -> None:
    if player_id not in state.lobby_order:
        state.lobby_order.append(player_id)


def _reset_song(round_state: RoundState) -> None:
    round_state.guesses = {}
    round_state.correct_guessers = {}


def _advance_pointer(round_state: RoundState) -> None:
    next_index = round_state.current_song_index + 1
    round_state.current_song_index = next_index
    if next_index < len(round_state.play_order):
        round_state.current_player_id = round_state.play_order[next_index]
    else:
        round_state.current_player_id = None
    _reset_song(round_state)


def _finish_current_song(state: GameState) -> None:
    """The playing song is over: reveal it, or move straight on."""
    round_state = state.current_round
    if round_state is None:
        return

    if state.settings.reveal_songs:
        round_state.reveal_song_owner_id = round_state.current_player_id
        round_state.reveal_song_index = round_state.current_song_index
        _advance_pointer(round_state)
        state.timer = None
        state.phase = "song_reveal"
        return

    _advance_pointer(round_state)
    if round_state.current_player_id is None:
        state.timer = None
        state.phase = "round_results"
    else:
        state.timer = state.settings.playback_duration


def _song_picking_complete(state: GameState) -> bool:
    if state.current_round is None:
        return False
    selections = state.current_round.song_selections
    return all(p.id in selections for p in state.connected_players())


def _start_guessing(state: GameState, rng: SharedRandom) -> None:
    round_state = state.current_round
    if round_state is None:
        return

    submitted = sorted(round_state.song_selections, key=lambda pid: (len(pid), pid))
    order = rng.shuffle(submitted)

    round_state.play_order = order
    round_state.current_song_index = 0
    _reset_song(round_state)

    if not order:
        round_state.current_player_id = None
        state.timer = None
        state.phase = "round_results"
        return

    round_state.current_player_id = order[0]
    state.timer = state.settings.playback_duration
    state.phase = "guessing"


# ---------- lobby ----------


def update_settings(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False
    patch = _arg(args, 0)
    if not isinstance(patch, dict):
        return False

    settings = state.settings
    playback_duration = patch.get("playbackDuration", settings.playback_duration)
    total_rounds = patch.get("totalRounds", settings.total_rounds)
    reveal_songs = patch.get("revealSongs", settings.reveal_songs)

    if not _valid_int(playback_duration, PLAYBACK_DURATION_RANGE):
        return False
    if not _valid_int(total_rounds, TOTAL_ROUNDS_RANGE):
        return False
    if not isinstance(reveal_songs, bool):
        return False

    if (
        playback_duration == settings.playback_duration
        and total_rounds == settings.total_rounds
        and reveal_songs == settings.reveal_songs
        and state.total_rounds == total_rounds
    ):
        return False

    settings.playback_duration = playback_duration
    settings.total_rounds = total_rounds
    settings.reveal_songs = reveal_songs
    state.total_rounds = total_rounds
    return True


def kick_player(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False
    target = _arg(args, 0)
    if not isinstance(target, str) or target == ctx.player_id:
        return False
    if target not in state.players:
        return False

    del state.players[target]
    state.lobby_order = [pid for pid in state.lobby_order if pid != target]
    return True


def set_player_name(state: GameState, ctx: MoveContext, args: list) -> bool:
    player_id = ctx.player_id
    if not _is_seat_id(state, player_id):
        return False
    name = _clean_name(_arg(args, 0))
    if not name:
        return False

    existing = state.players.get(player_id)
    if existing is not None:
        if existing.name == name and existing.connected:
            return False
        existing.name = name
        existing.connected = True
        _append_lobby_order(state, player_id)
        return True

    if len(state.players) >= state.max_players:
        return False

    state.players[player_id] = Player(
        id=player_id,
        name=name,
        score=0,
        is_host=player_id == HOST_SEAT_ID,
        connected=True,
    )
    _append_lobby_order(state, player_id)
    return True


def start_game(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False

    state.current_round = None
    state.completed_rounds = 0
    state.total_rounds = state.settings.total_rounds
    state.timer = None
    state.phase = "theme_selection"
    return True


# ---------- theme selection ----------


def set_theme(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False
    theme = _arg(args, 0)
    if not isinstance(theme, str):
        return False
    theme = theme[:MAX_THEME_LENGTH]

    if state.current_round is None:
        state.current_round = RoundState(round_number=state.completed_rounds + 1, theme=theme)
        return True

    if state.current_round.theme == theme:
        return False
    state.current_round.theme = theme
    return True


def confirm_theme(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False
    if state.current_round is None or not state.current_round.theme.strip():
        return False

    state.timer = None
    state.phase = "song_picking"
    return True


# ---------- song picking ----------


def select_song(state: GameState, ctx: MoveContext, args: list) -> bool:
    round_state = state.current_round
    if round_state is None or ctx.player_id not in state.players:
        return False

    try:
        selection = selection_from_dict(_arg(args, 0))
    except ValueError:
        return False

    for owner_id, song in round_state.song_selections.items():
        if owner_id != ctx.player_id and song.video_id == selection.video_id:
            return False

    if round_state.song_selections.get(ctx.player_id) == selection:
        return False
    round_state.song_selections[ctx.player_id] = selection
    return True


# ---------- guessing ----------


def submit_guess(state: GameState, ctx: MoveContext, args: list) -> bool:
    round_state = state.current_round
    if round_state is None or not round_state.current_player_id:
        return False

    player_id = ctx.player_id
    owner_id = round_state.current_player_id
    if player_id == owner_id or player_id not in state.players:
        return False

    guess = _arg(args, 0)
    if not isinstance(guess, str):
        return False

    previous = round_state.guesses.get(player_id, [])
    if any(entry.is_correct for entry in previous):
        return False

    duration = state.settings.playback_duration
    guess_time = clamp_guess_time(duration - (state.timer or 0), duration)
    song = round_state.song_selections.get(owner_id)
    correct = bool(song and is_guess_correct(guess, song.custom_title))

    round_state.guesses[player_id] = previous + [GuessInfo(guess=guess, time=guess_time, is_correct=correct)]

    owner = state.players.get(owner_id)
    round_state.guess_log.append(
        GuessLogEntry(
            id=ctx.rng.uuid(),
            player_id=player_id,
            player_name=state.players[player_id].name,
            guess=guess,
            time=guess_time,
            is_correct=correct,
            song_owner_id=owner_id,
            song_owner_name=owner.name if owner else None,
            song_index=round_state.current_song_index,
        )
    )

    if correct:
        round_state.correct_guessers[player_id] = True
        first = is_first_correct(round_state, player_id, guess_time)
        points = calculate_points(True, guess_time, duration, first)
        state.players[player_id].score += points
        round_state.round_scores[player_id] = round_state.round_scores.get(player_id, 0) + points

    eligible = len([p for p in state.connected_players() if p.id != owner_id])
    correct_count = len([v for v in round_state.correct_guessers.values() if v])
    if eligible == 0 or correct_count >= eligible:
        _finish_current_song(state)

    return True


def tick_timer(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False
    if state.timer is None:
        return False

    if state.timer > 0:
        state.timer -= 1
    if state.timer <= 0:
        state.timer = 0
        _finish_current_song(state)
    return True


# ---------- reveal / results ----------


def continue_reveal(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False
    round_state = state.current_round
    if round_state is None:
        return False

    round_state.reveal_song_owner_id = None
    round_state.reveal_song_index = None
    if round_state.current_player_id is not None:
        state.timer = state.settings.playback_duration
        state.phase = "guessing"
    else:
        state.timer = None
        state.phase = "round_results"
    return True


def next_round(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False

    state.completed_rounds += 1
    state.timer = None
    if state.completed_rounds < state.total_rounds:
        state.current_round = None
        state.phase = "theme_selection"
    else:
        state.phase = "game_over"
    return True


def restart_lobby(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False

    for player in state.players.values():
        player.score = 0
    state.current_round = None
    state.completed_rounds = 0
    state.timer = None
    state.total_rounds = state.settings.total_rounds
    state.phase = "lobby"
    return True


def end_game(state: GameState, ctx: MoveContext, args: list) -> bool:
    if not _is_host(state, ctx.player_id):
        return False
    ctx.ended = True
    return False


# ---------- any phase ----------


def restore_state(state: GameState, ctx: MoveContext, args: list) -> bool:
    if ctx.player_id != HOST_SEAT_ID:
        return False

    try:
        restored = state_from_dict(_arg(args, 0))
    except SnapshotError as exc:
        logger.warning(f"[restore-rejected] seat={ctx.player_id} error={exc}")
        return False

    host = restored.players.get(ctx.player_id)
    if host is not None:
        host.connected = True
        host.is_host = True

    for f in fields(GameState):
        setattr(state, f.name, getattr(restored, f.name))
    return True


def update_presence(state: GameState, ctx: MoveContext, args: list) -> bool:
    target = _arg(args, 0)
    connected = _arg(args, 1)
    if not isinstance(target, str) or not isinstance(connected, bool):
        return False
    if ctx.player_id != target and not _is_host(state, ctx.player_id):
        return False

    player = state.players.get(target)
    if player is None or player.connected == connected:
        return False
    player.connected = connected
    return True


def promote_to_host(state: GameState, ctx: MoveContext, args: list) -> bool:
    if ctx.player_id != HOST_SEAT_ID:
        return False
    name = _clean_name(_arg(args, 0))

    changed = False
    for pid, player in state.players.items():
        if pid != HOST_SEAT_ID and player.is_host:
            player.is_host = False
            changed = True

    host = state.players.get(HOST_SEAT_ID)
    if host is None:
        if not name or len(state.players) >= state.max_players:
            return changed
        state.players[HOST_SEAT_ID] = Player(id=HOST_SEAT_ID, name=name, is_host=True, connected=True)
        _append_lobby_order(state, HOST_SEAT_ID)
        return True

    if name and host.name != name:
        host.name = name
        changed = True
    if not host.connected or not host.is_host:
        host.connected = True
        host.is_host = True
        changed = True
    _append_lobby_order(state, HOST_SEAT_ID)
    return changed


PHASE_MOVES: dict[str, dict[str, MoveHandler]] = {
    "lobby": {
        "updateSettings": update_settings,
        "kickPlayer": kick_player,
        "setPlayerName": set_player_name,
        "startGame": start_game,
    },
    "theme_selection": {
        "setTheme": set_theme,
        "confirmTheme": confirm_theme,
    },
    "song_picking": {
        "selectSong": select_song,
    },
    "guessing": {
        "submitGuess": submit_guess,
        "tickTimer": tick_timer,
    },
    "song_reveal": {
        "continueReveal": continue_reveal,
    },
    "round_results": {
        "nextRound": next_round,
    },
    "game_over": {
        "restartLobby": restart_lobby,
        "endGame": end_game,
    },
}

ANY_PHASE_MOVES: dict[str, MoveHandler] = {
    "restoreState": restore_state,
    "updatePresence": update_presence,
    "promoteToHost": promote_to_host,
}


def legal_moves(phase: str) -> list[str]:
    return list(PHASE_MOVES.get(phase, {})) + list(ANY_PHASE_MOVES)


def apply_move(
    state: GameState,
    move: str,
    player_id: str,
    args: list | tuple | None,
    rng: SharedRandom,
) -> MoveResult:
    """Apply one move and report what happened.

    The handler runs against a deep copy. When it reports no change the
    caller's ``state`` comes back as-is, so a rejected move is never visible,
    and ``rng`` is rewound so it draws nothing either. A handler that raises
    is logged and treated as rejected.
    """
    handler = PHASE_MOVES.get(state.phase, {}).get(move) or ANY_PHASE_MOVES.get(move)
    if handler is None:
        logger.debug(f"[move-illegal] move={move} seat={player_id} phase={state.phase}")
        return MoveResult(state=state)

    draft = state.clone()
    ctx = MoveContext(player_id=str(player_id), rng=rng)
    rng_state = rng.getstate()
    try:
        changed = handler(draft, ctx, list(args or []))
        # song_picking ends as soon as every connected seat has picked, whatever move got it there.
        if changed and state.phase == "song_picking" and draft.phase == "song_picking" and _song_picking_complete(draft):
            _start_guessing(draft, rng)
    except Exception:
        logger.exception(f"[move-failed] move={move} seat={player_id} phase={state.phase}")
        rng.setstate(rng_state)
        return MoveResult(state=state)

    if not changed:
        if not ctx.ended:
            logger.debug(f"[move-ignored] move={move} seat={player_id} phase={state.phase}")
        rng.setstate(rng_state)
        return MoveResult(state=state, ended=ctx.ended)

    transition = draft.phase if draft.phase != state.phase else None
    if transition and move != "restoreState" and not can_transition(state.phase, transition):
        logger.error(f"[move-bad-edge] move={move} from={state.phase} to={transition}")
        rng.setstate(rng_state)
        return MoveResult(state=state)

    if transition:
        logger.info(f"[phase] move={move} seat={player_id} {state.phase} -> {transition}")
    return MoveResult(state=draft, changed=True, transition=transition)
