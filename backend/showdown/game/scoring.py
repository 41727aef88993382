from __future__ import annotations

import math
import random
import re
import unicodedata

from .models import GameState, GuessLogEntry, RoundState


BASE_POINTS = 100
FIRST_CORRECT_BONUS = 50
MAX_SPEED_BONUS = 50

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def _normalize_text(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold().strip()


def _clean_text(text: str) -> str:
    t = _NON_WORD.sub("", text)
    return _WHITESPACE.sub(" ", t)


def is_guess_correct(guess: str, answer: str) -> bool:
    """Case- and accent-insensitive title match, forgiving about punctuation."""
    g = _normalize_text(guess)
    a = _normalize_text(answer)
    if g == a:
        return True
    return _clean_text(g) == _clean_text(a)


def calculate_points(is_correct: bool, guess_time: float, max_time: float, is_first_correct: bool) -> int:
    """Points for one guess; guess_time must already be clamped to [0, max_time]."""
    if not is_correct:
        return 0

    first_bonus = FIRST_CORRECT_BONUS if is_first_correct else 0
    time_ratio = 1 - (guess_time / max_time) if max_time > 0 else 0
    speed_bonus = math.floor(time_ratio * MAX_SPEED_BONUS)
    return BASE_POINTS + first_bonus + speed_bonus


def clamp_guess_time(guess_time: float, max_time: float) -> float:
    return max(0, min(guess_time, max_time))


def is_first_correct(round_state: RoundState, player_id: str, guess_time: float) -> bool:
    # Equal times: whoever was applied first in the replicated order keeps the bonus.
    for other_id, guess_list in round_state.guesses.items():
        if other_id == player_id:
            continue
        for other in guess_list:
            if other.is_correct:
                if other.time <= guess_time:
                    return False
                break
    return True


def round_leaderboard(state: GameState) -> list[tuple[str, int]]:
    scores = state.current_round.round_scores if state.current_round else {}
    rows = [(pid, scores.get(pid, 0)) for pid in state.players]
    return sorted(rows, key=lambda row: (-row[1], _seat_key(row[0])))


def guesses_for_song(round_state: RoundState, song_index: int) -> list[GuessLogEntry]:
    return [e for e in round_state.guess_log if e.song_index == song_index]


def total_leaderboard(state: GameState) -> list[tuple[str, int]]:
    rows = [(pid, p.score) for pid, p in state.players.items()]
    return sorted(rows, key=lambda row: (-row[1], _seat_key(row[0])))


def _seat_key(seat_id: str) -> tuple[float, str]:
    return (int(seat_id), seat_id) if seat_id.isdigit() else (math.inf, seat_id)


def generate_room_code(rng: random.Random | None = None) -> str:
    r = rng or random.SystemRandom()
    return "".join(r.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_room_code(code: str) -> str:
    return (code or "").strip().upper()
