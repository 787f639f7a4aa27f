"""Tests de últimas partidas y movers de leaderboards"""
import asyncio
from datetime import datetime
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from riftboard.api.deps import leaderboard_service
from riftboard.core.cache import TaggedCache
from riftboard.main import app
from riftboard.services.leaderboard_service import (
    LeaderboardService,
    compute_end_type,
    pick_blended_delta,
    top_entries,
    window_bounds,
)

CHICAGO = ZoneInfo("America/Chicago")
NOW = datetime(2026, 3, 10, 18, 0, tzinfo=CHICAGO)
SEASON_START = "2026-01-08T20:00:00.000Z"
SEASON_START_MS = 1767902400000

LATEST_ROWS = [
    {
        "match_id": "NA1_1", "puuid": "p1", "queue_id": 420, "champion_id": 103, "win": True,
        "kills": 5, "deaths": 2, "assists": 7, "cs": 180,
        "game_end_ts": SEASON_START_MS + 1000, "game_duration_s": 1800,
    },
    {"match_id": "NA1_2", "puuid": "p1", "queue_id": 440, "game_end_ts": SEASON_START_MS + 2000},
    {"match_id": "NA1_0", "puuid": "p2", "queue_id": 420, "game_end_ts": SEASON_START_MS - 1000},
]


class TestEndType:
    @pytest.mark.parametrize("early, surrender, duration, lp, expected", [
        (True, None, 180, -5, "REMAKE"),
        (True, None, 260, -10, "EARLY_SURRENDER"),
        (True, None, None, -3, "EARLY_SURRENDER"),
        (True, None, None, None, "REMAKE"),
        (None, True, 1500, -18, "SURRENDER"),
        (None, None, 200, 0, "REMAKE"),
        (None, None, 200, None, "REMAKE"),
        (None, None, 290, -12, "EARLY_SURRENDER"),
        (None, None, 290, 12, "NORMAL"),
        (None, None, 1800, 20, "NORMAL"),
    ])
    def test_classification(self, early, surrender, duration, lp, expected):
        assert compute_end_type(early, surrender, duration, lp) == expected


class TestBlendedDelta:
    def test_small_drift_prefers_events(self):
        assert pick_blended_delta(30, 25) == 25
        assert pick_blended_delta(30, 10) == 10

    def test_large_drift_prefers_canonical(self):
        assert pick_blended_delta(80, 25) == 80

    def test_single_source(self):
        assert pick_blended_delta(None, 12) == 12
        assert pick_blended_delta(-4, None) == -4
        assert pick_blended_delta(None, None) is None

    def test_top_entries(self):
        assert top_entries([]) == (None, None)
        assert top_entries([("a", 5), ("b", -3), ("c", 9)]) == (("c", 9), ("b", -3))


class TestWindowBounds:
    def test_midnight_in_timezone(self):
        today, week = window_bounds("America/Chicago", NOW)
        assert today == datetime(2026, 3, 10, tzinfo=CHICAGO)
        assert week == datetime(2026, 3, 3, tzinfo=CHICAGO)


def make_supabase(visibility="PUBLIC"):
    supabase = AsyncMock()
    supabase.select_one.return_value = {"id": "lb1", "user_id": "u1", "visibility": visibility}
    today, week = window_bounds("America/Chicago", NOW)

    async def rpc(fn, params=None, **kwargs):
        if fn == "get_leaderboard_latest_games":
            return LATEST_ROWS
        if params["start_at"] == today.isoformat():
            return [{"puuid": "p1", "lp_delta": 30}, {"puuid": "p2", "lp_delta": -15}]
        if params["start_at"] == week.isoformat():
            return [
                {"puuid": "p1", "lp_delta": 80},
                {"puuid": "p2", "lp_delta": -40},
                {"puuid": "p3", "lp_delta": 10},
            ]
        return []

    async def select(table, columns="*", filters=None, **kwargs):
        if table == "matches":
            return [{"match_id": "NA1_1", "game_end_ts": SEASON_START_MS + 1000}]
        if table == "player_lp_events" and "note" in columns:
            return [{"match_id": "NA1_1", "puuid": "p1", "lp_delta": 21, "note": None}]
        if table == "player_lp_events":
            return [
                {"puuid": "p1", "lp_delta": 25, "recorded_at": "2026-03-10T15:00:00Z"},
                {"puuid": "p3", "lp_delta": 12, "recorded_at": "2026-03-08T12:00:00Z"},
                {"puuid": "p3", "lp_delta": "nan", "recorded_at": "2026-03-08T13:00:00Z"},
            ]
        if table == "leaderboard_players":
            return [
                {"id": 1, "puuid": "p1", "game_name": "Uno", "tag_line": "NA1"},
                {"id": 2, "puuid": "p2", "game_name": "Dos", "tag_line": "NA1"},
                {"id": 3, "puuid": "p3", "game_name": "Tres", "tag_line": "NA1"},
            ]
        if table == "player_riot_state":
            return [{"puuid": "p1", "profile_icon_id": 29}]
        return []

    supabase.rpc.side_effect = rpc
    supabase.select.side_effect = select
    return supabase


@pytest.fixture
def supabase():
    return make_supabase()


@pytest.fixture
def service(supabase, clock):
    return LeaderboardService(
        supabase, TaggedCache(clock=clock), season_override=SEASON_START, now=lambda: NOW
    )


@pytest.fixture
def lb_client(client, service):
    app.dependency_overrides[leaderboard_service] = lambda: service
    return client


class TestVisibility:
    def test_missing_leaderboard(self, lb_client, supabase):
        supabase.select_one.return_value = None

        response = lb_client.get("/api/leaderboards/lb1/latest-games")

        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}
        supabase.rpc.assert_not_called()

    def test_private_hidden_from_other_users(self, lb_client, supabase):
        supabase.select_one.return_value = {"id": "lb1", "user_id": "u1", "visibility": "PRIVATE"}
        supabase.get_user.return_value = {"id": "u2"}

        response = lb_client.get("/api/leaderboards/lb1/movers", headers={"Authorization": "Bearer t"})

        assert response.status_code == 404

    def test_private_visible_to_owner(self, lb_client, supabase):
        supabase.select_one.return_value = {"id": "lb1", "user_id": "u1", "visibility": "PRIVATE"}
        supabase.get_user.return_value = {"id": "u1"}

        response = lb_client.get("/api/leaderboards/lb1/movers", headers={"Authorization": "Bearer t"})

        assert response.status_code == 200
        supabase.get_user.assert_awaited_once_with("t")


class TestLatestGames:
    def test_filters_to_ranked_solo_in_season(self, lb_client):
        response = lb_client.get("/api/leaderboards/lb1/latest-games?ddVersion=16.5.1")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-store"
        games = response.json()["games"]
        assert [g["matchId"] for g in games] == ["NA1_1"]
        game = games[0]
        assert game["lpChange"] == 21
        assert game["endType"] == "NORMAL"
        assert (game["k"], game["d"], game["a"], game["cs"]) == (5, 2, 7, 180)
        assert game["durationS"] == 1800

    def test_cached_until_revalidated(self, lb_client, supabase):
        lb_client.get("/api/leaderboards/lb1/latest-games?ddVersion=16.5.1")
        lb_client.get("/api/leaderboards/lb1/latest-games?ddVersion=16.5.1")
        assert supabase.rpc.await_count == 1

        revalidated = lb_client.post(
            "/api/internal/revalidate", json={"lbIds": ["lb1"]}, headers={"x-internal-secret": "s3cret"}
        )
        assert revalidated.status_code == 200

        lb_client.get("/api/leaderboards/lb1/latest-games?ddVersion=16.5.1")
        assert supabase.rpc.await_count == 2

    def test_cache_expires(self, lb_client, supabase, clock):
        lb_client.get("/api/leaderboards/lb1/latest-games?ddVersion=16.5.1")
        clock.advance(31)
        lb_client.get("/api/leaderboards/lb1/latest-games?ddVersion=16.5.1")
        assert supabase.rpc.await_count == 2


class TestMovers:
    def test_blended_movers(self, lb_client):
        response = lb_client.get("/api/leaderboards/lb1/movers")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-store"
        movers = response.json()["movers"]
        assert movers["dailyTopGain"] == ["p1", 25]
        assert movers["dailyTopLoss"] == ["p2", -15]
        assert movers["weeklyTopGain"] == ["p1", 80]
        assert movers["weeklyTopLoss"] == ["p2", -40]
        assert movers["playerIconsByPuuid"] == {"p1": 29}
        assert set(movers["playersByPuuid"]) == {"p1", "p2", "p3"}

    def test_no_players(self, lb_client, supabase):
        async def select(table, columns="*", filters=None, **kwargs):
            return []

        supabase.select.side_effect = select

        movers = lb_client.get("/api/leaderboards/lb1/movers").json()["movers"]

        assert movers["dailyTopGain"] is None
        assert movers["weeklyTopLoss"] is None
        assert movers["playersByPuuid"] == {}

    def test_weekly_loss_shown_even_when_positive(self, service, supabase):
        async def rpc(fn, params=None, **kwargs):
            return [{"puuid": "p1", "lp_delta": 40}]

        async def select(table, columns="*", filters=None, **kwargs):
            if table == "leaderboard_players":
                return [{"id": 1, "puuid": "p1"}]
            return []

        supabase.rpc.side_effect = rpc
        supabase.select.side_effect = select

        movers = asyncio.run(service.get_movers("lb1"))

        assert movers["dailyTopLoss"] is None
        assert movers["weeklyTopLoss"] == ["p1", 40]
