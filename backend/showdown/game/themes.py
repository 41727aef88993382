from __future__ import annotations

import random


THEME_SUGGESTIONS = [
    "1960s",
    "1970s",
    "1980s",
    "1990s",
    "2000s",
    "2010s",
    "2020s",
    "Game Soundtracks",
    "Movie Soundtracks",
    "Alternative Rock",
    "FIFA Soundtracks",
    "R&B Grooves",
    "Classic Hip-Hop",
    "Indie Favorites",
    "Top 40 Hits",
    "Chill Electronic",
    "Country Classics",
    "Classic Rock",
    "Modern Country",
    "Reggae Classics",
    "Funk Essentials",
]


def pick_themes(count: int, exclude: str | None = None) -> list[str]:
    pool = [t for t in THEME_SUGGESTIONS if t != (exclude or "").strip()] or list(THEME_SUGGESTIONS)
    count = max(1, min(count, len(pool)))
    return random.sample(pool, count)
