"""Tests del coordinador de prefetch de partidas"""
import asyncio
import json
from collections import Counter

import httpx

from riftboard.services.prefetch_service import (
    ABSENT,
    InFlightDebounce,
    MatchPrefetcher,
    Pending,
    PrefetchSweeper,
    Ready,
)

MATCH = {"metadata": {"matchId": "NA1_123", "participants": ["p1", "p2"]}, "info": {"gameDuration": 1800}}
TIMELINE = {"info": {"frames": []}}


def make_transport(calls: Counter, match_status: int = 200, match_body=None):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        calls[path] += 1
        assert request.headers.get("Priority") == "u=6"
        if path.startswith("/api/match/"):
            body = {"match": MATCH} if match_body is None else match_body
            return httpx.Response(match_status, content=json.dumps(body))
        if path.endswith("/timeline"):
            return httpx.Response(200, json={"timeline": TIMELINE})
        if path.startswith("/api/riot/account/"):
            puuid = path.rsplit("/", 1)[1]
            if puuid == "p2":
                return httpx.Response(200, json={"account": None, "error": "BAD_PUUID"})
            return httpx.Response(200, json={"account": {"puuid": puuid, "gameName": "Faker", "tagLine": "KR1"}})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestInFlightDebounce:
    def test_window_expires_by_time(self, clock):
        debounce = InFlightDebounce(window=1.0, clock=clock)
        assert debounce.try_acquire("m") is True
        assert debounce.try_acquire("m") is False
        clock.advance(0.5)
        assert "m" in debounce
        clock.advance(0.5)
        assert "m" not in debounce
        assert debounce.try_acquire("m") is True

    def test_release(self, clock):
        debounce = InFlightDebounce(window=1.0, clock=clock)
        debounce.try_acquire("m")
        debounce.release("m")
        assert debounce.try_acquire("m") is True


class TestMatchPrefetcher:
    def test_end_to_end_chain(self, clock):
        calls = Counter()

        async def scenario():
            prefetcher = MatchPrefetcher("http://app", transport=make_transport(calls), clock=clock)
            assert prefetcher.prefetch("NA1_123") is True

            record = prefetcher.get_prefetched_data("NA1_123")
            assert isinstance(record.match, Pending)
            assert record.timeline is ABSENT

            await prefetcher.wait("NA1_123")
            return prefetcher.get_prefetched_data("NA1_123")

        record = asyncio.run(scenario())

        assert record.match == Ready(MATCH)
        assert record.timeline == Ready(TIMELINE)
        assert isinstance(record.accounts, Ready)
        assert set(record.accounts.value) == {"p1"}
        assert calls["/api/match/NA1_123"] == 1
        assert calls["/api/riot/match/NA1_123/timeline"] == 1

    def test_concurrent_calls_issue_one_request(self, clock):
        calls = Counter()

        async def scenario():
            prefetcher = MatchPrefetcher("http://app", transport=make_transport(calls), clock=clock)
            launched = [prefetcher.prefetch("NA1_123") for _ in range(5)]
            await prefetcher.wait("NA1_123")
            return launched

        launched = asyncio.run(scenario())
        assert launched == [True, False, False, False, False]
        assert calls["/api/match/NA1_123"] == 1

    def test_fresh_record_skips_refetch_after_window(self, clock):
        calls = Counter()

        async def scenario():
            prefetcher = MatchPrefetcher("http://app", ttl=300, transport=make_transport(calls), clock=clock)
            prefetcher.prefetch("NA1_123")
            await prefetcher.wait("NA1_123")
            clock.advance(5)
            assert prefetcher.prefetch("NA1_123") is False
            clock.advance(300)
            assert prefetcher.prefetch("NA1_123") is True
            await prefetcher.wait("NA1_123")

        asyncio.run(scenario())
        assert calls["/api/match/NA1_123"] == 2

    def test_failed_match_never_requests_timeline(self, clock):
        calls = Counter()

        async def scenario():
            prefetcher = MatchPrefetcher("http://app", transport=make_transport(calls, match_status=500), clock=clock)
            prefetcher.prefetch("NA1_123")
            return await prefetcher.wait("NA1_123")

        record = asyncio.run(scenario())
        assert record.match == Ready(None)
        assert record.timeline is ABSENT
        assert record.value("timeline") is None
        assert calls["/api/riot/match/NA1_123/timeline"] == 0

    def test_timeline_uses_server_confirmed_id(self, clock):
        calls = Counter()
        body = {"match": {"metadata": {"matchId": "NA1_999", "participants": []}}}

        async def scenario():
            prefetcher = MatchPrefetcher(
                "http://app", transport=make_transport(calls, match_body=body), clock=clock
            )
            prefetcher.prefetch("na1_999")
            return await prefetcher.wait("na1_999")

        record = asyncio.run(scenario())
        assert calls["/api/riot/match/NA1_999/timeline"] == 1
        assert record.accounts == Ready({})

    def test_network_error_resolves_to_none(self, clock):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        async def scenario():
            prefetcher = MatchPrefetcher("http://app", transport=httpx.MockTransport(handler), clock=clock)
            prefetcher.prefetch("NA1_1")
            return await prefetcher.wait("NA1_1")

        record = asyncio.run(scenario())
        assert record.value("match") is None

    def test_malformed_match_resolves_to_none(self, clock):
        calls = Counter()
        body = {"match": ["not", "a", "dict"]}

        async def scenario():
            prefetcher = MatchPrefetcher(
                "http://app", transport=make_transport(calls, match_body=body), clock=clock
            )
            prefetcher.prefetch("NA1_1")
            return await prefetcher.wait("NA1_1")

        record = asyncio.run(scenario())
        assert record.match == Ready(None)
        assert record.timeline is ABSENT
        assert calls["/api/riot/match/NA1_1/timeline"] == 0

    def test_malformed_metadata_falls_back_to_requested_id(self, clock):
        calls = Counter()
        body = {"match": {"metadata": "oops", "info": {}}}

        async def scenario():
            prefetcher = MatchPrefetcher(
                "http://app", transport=make_transport(calls, match_body=body), clock=clock
            )
            prefetcher.prefetch("NA1_5")
            return await prefetcher.wait("NA1_5")

        record = asyncio.run(scenario())
        assert record.match == Ready(body["match"])
        assert record.timeline == Ready(TIMELINE)
        assert record.accounts == Ready({})
        assert calls["/api/riot/match/NA1_5/timeline"] == 1

    def test_clear_allows_immediate_refetch(self, clock):
        calls = Counter()

        async def scenario():
            prefetcher = MatchPrefetcher("http://app", transport=make_transport(calls), clock=clock)
            prefetcher.prefetch("NA1_123")
            await prefetcher.wait("NA1_123")
            prefetcher.clear("NA1_123")
            assert prefetcher.get_prefetched_data("NA1_123") is None
            assert prefetcher.prefetch("NA1_123") is True
            await prefetcher.wait("NA1_123")

        asyncio.run(scenario())
        assert calls["/api/match/NA1_123"] == 2

    def test_sweep_drops_stale_records(self, clock):
        calls = Counter()

        async def scenario():
            prefetcher = MatchPrefetcher("http://app", ttl=300, transport=make_transport(calls), clock=clock)
            prefetcher.prefetch("NA1_1")
            await prefetcher.wait("NA1_1")
            clock.advance(100)
            prefetcher.prefetch("NA1_2")
            await prefetcher.wait("NA1_2")
            clock.advance(250)
            removed = prefetcher.sweep()
            return prefetcher, removed

        prefetcher, removed = asyncio.run(scenario())
        assert removed == 1
        assert prefetcher.get_prefetched_data("NA1_1") is None
        assert prefetcher.get_prefetched_data("NA1_2") is not None


class TestPrefetchSweeper:
    def test_starts_once_and_stops_on_last_unsubscribe(self):
        async def scenario():
            sweeper = PrefetchSweeper(lambda: None, interval=60)
            assert not sweeper.running
            sweeper.subscribe()
            first_task = sweeper._task
            sweeper.subscribe()
            assert sweeper._task is first_task
            assert sweeper.subscribers == 2

            sweeper.unsubscribe()
            assert sweeper.running
            sweeper.unsubscribe()
            assert not sweeper.running
            assert sweeper.subscribers == 0

            sweeper.unsubscribe()
            assert sweeper.subscribers == 0

        asyncio.run(scenario())

    def test_runs_callback_periodically(self):
        ticks = []

        async def scenario():
            sweeper = PrefetchSweeper(lambda: ticks.append(1), interval=0.01)
            sweeper.subscribe()
            await asyncio.sleep(0.05)
            sweeper.unsubscribe()
            count = len(ticks)
            await asyncio.sleep(0.03)
            return count

        count = asyncio.run(scenario())
        assert count >= 1
        assert len(ticks) == count

    def test_callback_errors_do_not_stop_the_timer(self):
        ticks = []

        def callback():
            ticks.append(1)
            raise RuntimeError("fallo")

        async def scenario():
            sweeper = PrefetchSweeper(callback, interval=0.01)
            sweeper.subscribe()
            await asyncio.sleep(0.05)
            sweeper.unsubscribe()

        asyncio.run(scenario())
        assert len(ticks) >= 2
