from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from ..game.models import GameState, SongSelection


class MediaProvider(Protocol):
    """Plays one media reference. Implemented by the embedding client."""

    def load(self, video_id: str, start_seconds: int, max_seconds: int) -> None: ...

    def on_ready(self, callback: Callable[[], None]) -> None: ...

    def on_ended(self, callback: Callable[[], None]) -> None: ...

    def set_prevent_external_pause(self, prevent: bool) -> None: ...


@dataclass
class PlaybackControls:
    video_id: str | None
    start_seconds: int
    max_seconds: int
    can_seek: bool
    can_pause: bool
    prevent_external_pause: bool


def active_song(state: GameState) -> tuple[str | None, SongSelection | None]:
    """The song the room should be hearing right now, with its owner seat."""
    round_state = state.current_round
    if round_state is None:
        return None, None
    if state.phase == "song_reveal":
        owner = round_state.reveal_song_owner_id
    elif state.phase == "guessing":
        owner = round_state.current_player_id
    else:
        return None, None
    if owner is None:
        return None, None
    return owner, round_state.song_selections.get(owner)


def playback_controls(state: GameState, seat_id: str | None) -> PlaybackControls:
    duration = state.settings.playback_duration

    # Previewing your own pick: full controls.
    if state.phase == "song_picking":
        mine = state.current_round.song_selections.get(seat_id) if state.current_round and seat_id else None
        return PlaybackControls(
            video_id=mine.video_id if mine else None,
            start_seconds=mine.start_seconds if mine else 0,
            max_seconds=duration,
            can_seek=True,
            can_pause=True,
            prevent_external_pause=False,
        )

    _, song = active_song(state)
    if song is None:
        return PlaybackControls(None, 0, duration, False, False, False)

    guessing = state.phase == "guessing"
    return PlaybackControls(
        video_id=song.video_id,
        start_seconds=song.start_seconds,
        max_seconds=duration,
        can_seek=False,
        can_pause=not guessing,
        prevent_external_pause=guessing,
    )
