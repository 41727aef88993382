import pytest

from showdown.game.models import SnapshotError, state_from_dict, state_to_dict
from showdown.media.playback import active_song, playback_controls


def test_song_picking_previews_own_pick(room, song):
    room.move("0", "setPlayerName", "Host")
    room.move("1", "setPlayerName", "Peer")
    room.move("0", "startGame")
    room.move("0", "setTheme", "Pop")
    room.move("0", "confirmTheme")
    room.move("0", "selectSong", dict(song("mine", "Mine"), startSeconds=42))

    controls = playback_controls(room.state, "0")
    assert controls.video_id == "mine"
    assert controls.start_seconds == 42
    assert controls.can_seek and controls.can_pause
    assert not controls.prevent_external_pause

    assert playback_controls(room.state, "1").video_id is None


def test_guessing_locks_playback(two_player_guessing):
    state = two_player_guessing.state
    owner, selection = active_song(state)
    assert owner == state.current_round.current_player_id

    for seat in ("0", "1", "spectator"):
        controls = playback_controls(state, seat)
        assert controls.video_id == selection.video_id
        assert controls.max_seconds == 30
        assert not controls.can_seek
        assert not controls.can_pause
        assert controls.prevent_external_pause


def test_reveal_plays_previous_song(make_room, song):
    room = make_room(reveal_songs=True)
    room.move("0", "setPlayerName", "Host")
    room.move("1", "setPlayerName", "Peer")
    room.move("0", "startGame")
    room.move("0", "setTheme", "Pop")
    room.move("0", "confirmTheme")
    room.move("0", "selectSong", song("h", "Host Song"))
    room.move("1", "selectSong", song("p", "Peer Song"))
    first_owner = room.state.current_round.current_player_id
    for _ in range(30):
        room.move("0", "tickTimer")

    assert room.state.phase == "song_reveal"
    owner, selection = active_song(room.state)
    assert owner == first_owner
    controls = playback_controls(room.state, "1")
    assert controls.video_id == selection.video_id
    assert controls.can_pause
    assert not controls.prevent_external_pause


def test_lobby_has_nothing_to_play(room):
    assert active_song(room.state) == (None, None)
    assert playback_controls(room.state, "0").video_id is None


def test_snapshot_survives_wire_form(two_player_guessing):
    state = two_player_guessing.state
    two_player_guessing.move("1" if state.current_round.current_player_id == "0" else "0", "submitGuess", "nope")
    data = state_to_dict(two_player_guessing.state)
    assert state_to_dict(state_from_dict(data)) == data


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {},
        {"phase": "warmup"},
        {"phase": "lobby", "players": {"0": {"score": 1}}},
        {"phase": "guessing", "currentRound": {"theme": "x"}},
        {"phase": "lobby", "timer": "soon"},
        {"phase": "lobby", "timer": float("inf")},
        {"phase": "lobby", "completedRounds": float("inf")},
        {"phase": "lobby", "players": {"0": {"name": "A", "connected": "false"}}},
        {"phase": "lobby", "players": {"0": {"name": "A", "score": float("nan")}}},
        {"phase": "guessing", "currentRound": {"roundNumber": 1, "currentPlayerId": 0}},
        {"phase": "guessing", "currentRound": {"roundNumber": 1, "playOrder": [None]}},
        {"phase": "song_reveal", "currentRound": {"roundNumber": 1, "revealSongIndex": "0"}},
        {
            "phase": "guessing",
            "currentRound": {"roundNumber": 1, "guesses": {"1": [{"guess": "x", "time": "abc"}]}},
        },
    ],
)
def test_bad_snapshots_raise(payload):
    with pytest.raises(SnapshotError):
        state_from_dict(payload)
