"""
Pytest configuration and fixtures for IPTV addon tests.
"""
import json
from typing import Any, Callable, Optional

import httpx
import pytest

from iptv_addon.config import Settings
from iptv_addon.models.channel import Channel, Stream

CHANNELS_URL = "https://iptv-org.github.io/api/channels.json"
STREAMS_URL = "https://iptv-org.github.io/api/streams.json"


class FakeUpstream:
    """
    httpx MockTransport backed by a url -> response table.

    A route may be JSON-serializable data (200), an int status code, an
    exception instance to raise, or a callable taking the request.
    """

    def __init__(self, routes: Optional[dict[str, Any]] = None):
        self.routes = dict(routes or {})
        self.calls: list[tuple[str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append((request.method, url))
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404)
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        if isinstance(route, int):
            return httpx.Response(route)
        return httpx.Response(200, json=route)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, url: str, method: Optional[str] = None) -> int:
        return sum(1 for m, u in self.calls if u == url and (method is None or m == method))


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    """Build isolated settings: no .env, no persistence, no background timer."""

    def _make(**overrides) -> Settings:
        values = {
            "channels_url": CHANNELS_URL,
            "streams_url": STREAMS_URL,
            "custom_channels_file": str(tmp_path / "custom-channels.json"),
            "snapshot_path": "",
            "refresh_interval_seconds": 0,
            "verify_mode": "off",
            "watch_debounce_seconds": 0.05,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def sample_channels_json():
    """Channel directory in the iptv-org channels.json shape."""
    return [
        {"id": "ert1", "name": "ERT 1", "country": "GR", "languages": ["ell"],
         "categories": ["general"], "is_nsfw": False, "logo": "https://example.com/ert1.png",
         "network": None, "website": "https://www.ert.gr"},
        {"id": "bbc1", "name": "BBC One", "country": "GB", "languages": ["eng"],
         "categories": ["general"], "is_nsfw": False, "logo": "https://example.com/bbc1.png",
         "network": "BBC", "website": None},
        {"id": "skai", "name": "Skai", "country": "GR", "languages": ["ell"],
         "categories": ["news"], "is_nsfw": False, "logo": None},
    ]


@pytest.fixture
def sample_streams_json():
    """Stream directory in the iptv-org streams.json shape."""
    return [
        {"channel": "ert1", "url": "https://example.com/ert1.m3u8", "title": "ERT 1",
         "http_referrer": "https://www.ert.gr/", "user_agent": None, "quality": "720p"},
        {"channel": "skai", "url": "https://example.com/skai.m3u8", "title": "Skai",
         "referrer": None, "user_agent": "SkaiPlayer/1.0", "quality": "1080p"},
        {"channel": "skai", "url": "https://example.com/skai-backup.m3u8", "title": "Skai (backup)"},
        {"channel": "ghost", "url": "https://example.com/ghost.m3u8", "title": "Orphan"},
    ]


@pytest.fixture
def upstream(sample_channels_json, sample_streams_json) -> FakeUpstream:
    return FakeUpstream({
        CHANNELS_URL: sample_channels_json,
        STREAMS_URL: sample_streams_json,
    })


@pytest.fixture
def write_overlay(tmp_path) -> Callable[[Any], str]:
    """Write a custom overlay file and return its path."""

    def _write(document: Any, name: str = "custom-channels.json") -> str:
        path = tmp_path / name
        if isinstance(document, str):
            path.write_text(document)
        else:
            path.write_text(json.dumps(document))
        return str(path)

    return _write


def channel(id: str, country: str = "GR", custom: bool = False, **fields) -> Channel:
    return Channel(id=id, name=fields.pop("name", id.upper()), country=country, is_custom=custom, **fields)


def stream(channel_id: str, url: Optional[str] = None, **fields) -> Stream:
    return Stream(channel=channel_id, url=url or f"https://example.com/{channel_id}.m3u8", **fields)
