"""
Tests for the HTTP endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from iptv_addon.main import create_app
from iptv_addon.state import build_state

from conftest import CHANNELS_URL


@pytest.fixture
def client(make_settings, upstream):
    settings = make_settings(include_countries=["GR"], admin_api_key="secret")
    app = create_app(build_state(settings, source_transport=upstream.transport))
    with TestClient(app) as test_client:
        yield test_client


class TestAddonEndpoints:

    def test_manifest(self, client):
        response = client.get("/manifest.json")

        assert response.status_code == 200
        manifest = response.json()
        assert manifest["resources"] == ["catalog", "meta", "stream"]
        assert manifest["idPrefixes"] == ["iptv-"]
        assert [c["id"] for c in manifest["catalogs"]] == ["iptv-channels-GR"]

    def test_catalog(self, client):
        response = client.get("/catalog/tv/iptv-channels-GR.json")

        assert response.status_code == 200
        metas = response.json()["metas"]
        assert [m["id"] for m in metas] == ["iptv-ert1", "iptv-skai"]
        assert metas[0]["posterShape"] == "square"
        assert metas[0]["isCustom"] is False
        assert "streams" not in metas[0]

    def test_catalog_with_genre_extra(self, client):
        response = client.get("/catalog/tv/iptv-channels-GR/genre=news.json")

        assert [m["id"] for m in response.json()["metas"]] == ["iptv-skai"]

    def test_catalog_for_other_type_is_empty(self, client):
        response = client.get("/catalog/movie/iptv-channels-GR.json")

        assert response.json() == {"metas": []}

    def test_meta(self, client):
        response = client.get("/meta/tv/iptv-ert1.json")

        meta = response.json()["meta"]
        assert meta["name"] == "ERT 1"
        assert meta["genres"] == ["general", "GR"]

    def test_missing_meta(self, client):
        response = client.get("/meta/tv/iptv-nonexistent.json")

        assert response.status_code == 200
        assert response.json() == {"meta": {}}

    def test_streams_carry_request_headers(self, client):
        response = client.get("/stream/tv/iptv-ert1.json")

        streams = response.json()["streams"]
        assert streams[0]["url"] == "https://example.com/ert1.m3u8"
        assert streams[0]["behaviorHints"]["proxyHeaders"]["request"] == {"Referer": "https://www.ert.gr/"}

    def test_missing_streams(self, client):
        response = client.get("/stream/tv/nonexistent.json")

        assert response.json() == {"streams": []}


class TestAdminEndpoints:

    def test_health(self, client):
        client.get("/catalog/tv/iptv-channels-GR.json")

        response = client.get("/api/health")

        assert response.json()["status"] == "healthy"
        assert response.json()["channels"] == 2

    def test_stats(self, client):
        response = client.get("/api/stats")

        assert set(response.json()) == {"refresh", "cache", "verification"}

    def test_refresh_requires_admin_key(self, client):
        assert client.post("/api/refresh").status_code == 401
        assert client.post("/api/refresh", headers={"X-Admin-Key": "wrong"}).status_code == 401

    def test_refresh_with_header(self, client, upstream):
        before = upstream.count(CHANNELS_URL)

        response = client.post("/api/refresh", headers={"X-Admin-Key": "secret"})

        assert response.status_code == 200
        assert response.json()["status"] == "published"
        assert response.json()["channels"] == 2
        assert upstream.count(CHANNELS_URL) > before

    def test_refresh_with_query_parameter(self, client):
        response = client.post("/api/refresh", params={"X-Admin-Key": "secret"})

        assert response.status_code == 200
