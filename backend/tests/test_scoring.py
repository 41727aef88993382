"""Tests for title matching and point calculation."""

import random

from showdown.game.models import GameState, Player, RoundState
from showdown.game.scoring import (
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
    calculate_points,
    clamp_guess_time,
    generate_room_code,
    guesses_for_song,
    is_guess_correct,
    normalize_room_code,
    round_leaderboard,
    total_leaderboard,
)


def test_points_for_fastest_first_guess():
    assert calculate_points(True, 0, 30, True) == 200


def test_points_for_last_second_guess():
    assert calculate_points(True, 30, 30, False) == 100


def test_incorrect_guess_scores_nothing():
    assert calculate_points(False, 5, 30, True) == 0


def test_speed_bonus_is_floored():
    # 1 - 10/30 = 0.666.. -> 33
    assert calculate_points(True, 10, 30, False) == 133


def test_clamp_guess_time():
    assert clamp_guess_time(-3, 30) == 0
    assert clamp_guess_time(45, 30) == 30
    assert clamp_guess_time(12, 30) == 12


def test_matching_ignores_punctuation_and_case():
    assert is_guess_correct("Don't Stop Believin'", "dont stop believin")


def test_matching_ignores_diacritics():
    assert is_guess_correct("Café", "cafe")


def test_matching_rejects_different_titles():
    assert not is_guess_correct("Hello", "World")


def test_matching_collapses_whitespace_and_trims():
    assert is_guess_correct("  take   on  me ", "Take On Me")


def test_matching_never_raises_on_empty():
    assert is_guess_correct("", "")
    assert not is_guess_correct("", "Song")


def test_room_codes_use_unambiguous_alphabet():
    code = generate_room_code(random.Random(5))
    assert len(code) == ROOM_CODE_LENGTH
    assert all(ch in ROOM_CODE_ALPHABET for ch in code)
    assert not set("01IO") & set(code)


def test_room_code_entry_is_case_insensitive():
    assert normalize_room_code(" abc234 ") == "ABC234"


def test_total_leaderboard_orders_by_score_then_seat():
    state = GameState(
        players={
            "2": Player(id="2", name="C", score=150),
            "0": Player(id="0", name="A", score=150),
            "1": Player(id="1", name="B", score=300),
        },
        current_round=RoundState(round_number=1),
    )
    assert total_leaderboard(state) == [("1", 300), ("0", 150), ("2", 150)]


def test_round_leaderboard_and_song_review(two_player_guessing):
    room = two_player_guessing
    r = room.state.current_round
    owner = r.current_player_id
    guesser = "1" if owner == "0" else "0"
    room.move(guesser, "submitGuess", "wrong")
    room.move(guesser, "submitGuess", r.song_selections[owner].custom_title)

    board = round_leaderboard(room.state)
    assert board[0] == (guesser, 200)
    assert board[1] == (owner, 0)

    reviewed = guesses_for_song(room.state.current_round, 0)
    assert [e.guess for e in reviewed] == ["wrong", r.song_selections[owner].custom_title]
    assert guesses_for_song(room.state.current_round, 1) == []
