import pytest
import requests

from showdown.media.youtube import SEARCH_URL, SearchError, search_videos


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _item(video_id, title, channel="Chan"):
    return {
        "id": {"videoId": video_id},
        "snippet": {
            "title": title,
            "channelTitle": channel,
            "thumbnails": {"medium": {"url": f"https://i.ytimg.com/{video_id}.jpg"}},
        },
    }


def test_search_parses_and_unescapes():
    session = FakeSession(FakeResponse({"items": [_item("a1", "Don&#39;t Stop", "Queen &amp; Co"), {"id": {}}]}))
    results = search_videos("queen", api_key="k", max_results=5, timeout=3, session=session)

    assert [r.to_dict() for r in results] == [
        {
            "id": "a1",
            "title": "Don't Stop",
            "thumbnail": "https://i.ytimg.com/a1.jpg",
            "channelName": "Queen & Co",
        }
    ]
    url, params, timeout = session.calls[0]
    assert url == SEARCH_URL
    assert params["q"] == "queen"
    assert params["maxResults"] == "5"
    assert params["videoCategoryId"] == "10"
    assert params["key"] == "k"
    assert timeout == 3


def test_empty_query_skips_the_request():
    session = FakeSession(FakeResponse({"items": []}))
    assert search_videos("   ", api_key="k", session=session) == []
    assert session.calls == []


def test_missing_key_fails():
    with pytest.raises(SearchError):
        search_videos("abba", api_key="")


@pytest.mark.parametrize(
    "response",
    [
        requests.ConnectionError("down"),
        FakeResponse({"error": "quota"}, status=403),
        FakeResponse(ValueError("not json")),
        FakeResponse({"items": "nope"}),
    ],
)
def test_failures_raise_search_error(response):
    with pytest.raises(SearchError):
        search_videos("abba", api_key="k", session=FakeSession(response))
