"""
Servicio de partidas: Match-V5 con caché en memoria y timelines cacheadas en DB.

La timeline se guarda en match_cache.timeline_json durante 24h. Las
peticiones concurrentes de la misma timeline comparten un único fetch.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from riftboard.core.cache import TTLCache
from riftboard.core.errors import ApiError
from riftboard.services.riot_service import RiotAPIService, routing_from_match_id
from riftboard.services.supabase_service import SupabaseError, SupabaseService

logger = logging.getLogger(__name__)

CACHE_HIT_DB = "HIT-DB"
CACHE_HIT_INFLIGHT = "HIT-INFLIGHT"
CACHE_MISS = "MISS"


def parse_timestamp(value: Optional[str]) -> Optional[float]:
    """ISO-8601 -> epoch en segundos; None si no se puede parsear"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def now_iso(clock: Callable[[], float] = time.time) -> str:
    return datetime.fromtimestamp(clock(), tz=timezone.utc).isoformat().replace("+00:00", "Z")


class MatchService:
    def __init__(
        self,
        riot: RiotAPIService,
        supabase: SupabaseService,
        match_cache_ttl: float = 5 * 60,
        timeline_db_ttl: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.riot = riot
        self.supabase = supabase
        self.timeline_db_ttl = timeline_db_ttl
        self._clock = clock
        self._matches: TTLCache[Dict[str, Any]] = TTLCache(
            max_entries=200, default_ttl=match_cache_ttl, clock=clock, name="riot_match"
        )
        self._timelines_in_flight: Dict[str, "asyncio.Future[Any]"] = {}

    @staticmethod
    def routing_or_400(match_id: str) -> str:
        routing = routing_from_match_id(match_id)
        if not routing:
            raise ApiError(400, "Unsupported match id")
        return routing

    async def get_match(self, match_id: str, max_retries: Optional[int] = None) -> Dict[str, Any]:
        """
        Detalle Match-V5 de una partida, cacheado 5 minutos.

        Raises:
            ApiError: 400 si el prefijo de plataforma no es conocido
            RiotAPIError: si Riot falla tras los reintentos
        """
        routing = self.routing_or_400(match_id)

        cached = self._matches.get(match_id)
        if cached is not None:
            logger.debug(f"[CACHE HIT] Partida {match_id}")
            return cached

        match = await self.riot.get_match(match_id, routing, max_retries=max_retries)
        self._matches.set(match_id, match)
        return match

    # ============== TIMELINE ==============

    async def _get_db_timeline(self, match_id: str) -> Optional[Any]:
        try:
            row = await self.supabase.select_one(
                "match_cache",
                "timeline_json, timeline_fetched_at",
                {"match_id": f"eq.{match_id}"},
                service=True,
            )
        except SupabaseError as e:
            logger.error(f"[Timeline Cache] Error de lectura: {e.message}")
            return None

        if not row or not row.get("timeline_json"):
            return None
        fetched_at = parse_timestamp(row.get("timeline_fetched_at"))
        if fetched_at is None or self._clock() - fetched_at >= self.timeline_db_ttl:
            return None
        return row["timeline_json"]

    async def _store_db_timeline(self, match_id: str, timeline: Any) -> None:
        now = now_iso(self._clock)
        try:
            await self.supabase.upsert(
                "match_cache",
                {
                    "match_id": match_id,
                    "timeline_json": timeline,
                    "timeline_fetched_at": now,
                    "updated_at": now,
                },
                on_conflict="match_id",
            )
        except SupabaseError as e:
            logger.error(f"[Timeline Cache] Error de escritura: {e.message}")

    async def _fetch_timeline(self, match_id: str, routing: str) -> Any:
        timeline = await self.riot.get_timeline(match_id, routing)
        await self._store_db_timeline(match_id, timeline)
        return timeline

    async def get_timeline(self, match_id: str) -> Tuple[Any, str]:
        """
        Timeline de una partida.

        Returns:
            (timeline, estado) con estado HIT-DB, HIT-INFLIGHT o MISS
        """
        cached = await self._get_db_timeline(match_id)
        if cached is not None:
            return cached, CACHE_HIT_DB

        in_flight = self._timelines_in_flight.get(match_id)
        if in_flight is not None:
            return await asyncio.shield(in_flight), CACHE_HIT_INFLIGHT

        routing = self.routing_or_400(match_id)
        future = asyncio.ensure_future(self._fetch_timeline(match_id, routing))
        self._timelines_in_flight[match_id] = future
        try:
            timeline = await asyncio.shield(future)
        finally:
            if self._timelines_in_flight.get(match_id) is future:
                del self._timelines_in_flight[match_id]
        return timeline, CACHE_MISS

    def get_stats(self) -> Dict[str, Any]:
        stats = self._matches.get_stats()
        stats["timelines_in_flight"] = len(self._timelines_in_flight)
        return stats
