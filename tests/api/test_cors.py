"""Tests for the CORS hook and preflight handling."""

import pytest

from quiz_analytics import config
from quiz_analytics.app import pick_cors_origin

QUIZ_ORIGIN = "https://quiz.example.jp"


class TestPickOrigin:
    @pytest.mark.unit
    def test_wildcard_allows_any_origin(self):
        assert pick_cors_origin(QUIZ_ORIGIN, ["*"]) == "*"

    @pytest.mark.unit
    def test_listed_origin_is_echoed(self):
        assert pick_cors_origin(QUIZ_ORIGIN, ["https://other.example", QUIZ_ORIGIN]) == QUIZ_ORIGIN

    @pytest.mark.unit
    def test_unlisted_or_missing_origin(self):
        assert pick_cors_origin("https://evil.example", [QUIZ_ORIGIN]) is None
        assert pick_cors_origin(None, ["*"]) is None


class TestPreflight:
    def test_tracking_preflight(self, client, store):
        resp = client.options(
            "/api/track/pageview",
            headers={
                "Origin": QUIZ_ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert resp.status_code == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]
        assert resp.headers["Access-Control-Allow-Headers"] == "Content-Type"
        assert store.count("page_views") == 0

    def test_admin_preflight_skips_the_key_check(self, client):
        resp = client.options(
            "/api/admin/dashboard",
            headers={"Origin": QUIZ_ORIGIN, "Access-Control-Request-Method": "GET"},
        )

        assert resp.status_code == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_allowlist_mismatch_gets_no_cors_headers(self, client, monkeypatch):
        monkeypatch.setattr(config, "CORS_ALLOW_ORIGINS", [QUIZ_ORIGIN])

        resp = client.post("/api/track/pageview", json={"page": "home"}, headers={"Origin": "https://evil.example"})

        assert resp.status_code == 200
        assert "Access-Control-Allow-Origin" not in resp.headers

    def test_allowlisted_origin_is_echoed_with_vary(self, client, monkeypatch):
        monkeypatch.setattr(config, "CORS_ALLOW_ORIGINS", [QUIZ_ORIGIN])

        resp = client.post("/api/track/pageview", json={"page": "home"}, headers={"Origin": QUIZ_ORIGIN})

        assert resp.headers["Access-Control-Allow-Origin"] == QUIZ_ORIGIN
        assert resp.headers["Vary"] == "Origin"
