"""Video search over the YouTube Data API v3."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass

import requests


logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
MUSIC_CATEGORY_ID = "10"


class SearchError(Exception):
    """The search could not be completed. No partial results are returned."""


@dataclass
class VideoResult:
    id: str
    title: str
    thumbnail: str
    channel_name: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail": self.thumbnail,
            "channelName": self.channel_name,
        }


def _parse_item(item: dict) -> VideoResult:
    snippet = item.get("snippet") or {}
    thumbnails = snippet.get("thumbnails") or {}
    return VideoResult(
        id=(item.get("id") or {}).get("videoId") or "",
        title=html.unescape(snippet.get("title") or ""),
        thumbnail=(thumbnails.get("medium") or {}).get("url") or "",
        channel_name=html.unescape(snippet.get("channelTitle") or ""),
    )


def search_videos(
    query: str,
    api_key: str,
    max_results: int = 12,
    timeout: float = 10,
    session: requests.Session | None = None,
) -> list[VideoResult]:
    q = (query or "").strip()
    if not q:
        return []
    if not api_key:
        raise SearchError("YouTube API key not configured")

    params = {
        "part": "snippet",
        "q": q,
        "type": "video",
        "maxResults": str(max_results),
        "videoEmbeddable": "true",
        "videoCategoryId": MUSIC_CATEGORY_ID,
        "key": api_key,
    }
    http = session or requests

    try:
        response = http.get(SEARCH_URL, params=params, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning(f"[search] query={q!r} failed error={exc}")
        raise SearchError("Failed to search YouTube") from exc

    items = data.get("items") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise SearchError("Unexpected search response")

    results = [_parse_item(item) for item in items if isinstance(item, dict)]
    return [r for r in results if r.id]
