"""
Lecturas de leaderboards: últimas partidas y movers (LP ganados/perdidos).

Los resultados se guardan en una TaggedCache con los tags del leaderboard,
de forma que el webhook de revalidación puede invalidarlos al instante.
"""
import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from riftboard.core.cache import TaggedCache, latest_activity_tag, leaderboard_cache_tags, movers_tag
from riftboard.core.errors import ApiError
from riftboard.services.season import current_season
from riftboard.services.supabase_service import SupabaseError, SupabaseService

logger = logging.getLogger(__name__)

RANKED_SOLO_QUEUE_ID = 420
MOVER_QUEUE_TYPE = "RANKED_SOLO_5x5"
LATEST_GAMES_LIMIT = 10
EVENT_DRIFT_FALLBACK_THRESHOLD = 20
REMAKE_MAX_SECONDS = 210
EARLY_SURRENDER_MAX_SECONDS = 300


def in_filter(values: Iterable[str]) -> str:
    return "in.(" + ",".join(f'"{v}"' for v in values) + ")"


def _finite(value: Any) -> Optional[float]:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def _first(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def compute_end_type(
    early_surrender: Optional[bool],
    surrender: Optional[bool],
    duration_s: Optional[float],
    lp_change: Optional[float],
) -> str:
    """REMAKE, EARLY_SURRENDER, SURRENDER o NORMAL"""
    lp = _finite(lp_change)

    if early_surrender is True:
        if duration_s is not None:
            return "REMAKE" if duration_s <= REMAKE_MAX_SECONDS else "EARLY_SURRENDER"
        if lp is not None and lp < 0:
            return "EARLY_SURRENDER"
        return "REMAKE"

    if surrender is True:
        return "SURRENDER"

    if duration_s is not None:
        if duration_s <= REMAKE_MAX_SECONDS and (lp is None or lp == 0):
            return "REMAKE"
        if duration_s <= EARLY_SURRENDER_MAX_SECONDS and lp is not None and lp < 0:
            return "EARLY_SURRENDER"

    return "NORMAL"


def pick_blended_delta(canonical: Optional[float], event_delta: Optional[float]) -> Optional[float]:
    """
    Combina el delta del RPC con la suma de eventos LP.

    Si ambos existen y difieren en más de 20 LP se confía en el RPC.
    """
    if canonical is not None and event_delta is not None:
        if abs(canonical - event_delta) <= EVENT_DRIFT_FALLBACK_THRESHOLD:
            return event_delta
        return canonical
    if event_delta is not None:
        return event_delta
    return canonical


def top_entries(entries: List[Tuple[str, float]]) -> Tuple[Optional[Tuple[str, float]], Optional[Tuple[str, float]]]:
    """(mayor ganancia, mayor pérdida) o None si no hay ninguna"""
    if not entries:
        return None, None
    gain = max(entries, key=lambda e: e[1])
    loss = min(entries, key=lambda e: e[1])
    return gain, loss


def window_bounds(time_zone: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Inicio de hoy y de hace 7 días en la zona horaria de los movers"""
    tz = ZoneInfo(time_zone)
    now = (now or datetime.now(tz)).astimezone(tz)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today_start, today_start - timedelta(days=7)


class LeaderboardService:
    def __init__(
        self,
        supabase: SupabaseService,
        cache: TaggedCache,
        latest_games_ttl: float = 30,
        movers_ttl: float = 90,
        movers_timezone: str = "America/Chicago",
        season_override: Optional[str] = None,
        now: Callable[[], Optional[datetime]] = lambda: None,
    ):
        self.supabase = supabase
        self.cache = cache
        self.latest_games_ttl = latest_games_ttl
        self.movers_ttl = movers_ttl
        self.movers_timezone = movers_timezone
        self.season_override = season_override
        self._now = now

    @classmethod
    def from_settings(cls, settings, supabase: SupabaseService, cache: TaggedCache) -> "LeaderboardService":
        return cls(
            supabase,
            cache,
            latest_games_ttl=settings.LATEST_GAMES_CACHE_TTL,
            movers_ttl=settings.MOVERS_CACHE_TTL,
            movers_timezone=settings.MOVERS_TIMEZONE,
            season_override=settings.RANKED_SEASON_START,
        )

    async def _safe(self, query, fallback: Any, label: str) -> Any:
        """Un fallo de una consulta auxiliar no tumba la respuesta completa"""
        try:
            result = await query
        except SupabaseError as e:
            logger.error(f"[LEADERBOARD] Error de base de datos en {label}: {e.message}")
            return fallback
        return fallback if result is None else result

    # ============== VISIBILIDAD ==============

    async def ensure_visible(self, lb_id: str, access_token: Optional[str]) -> Dict[str, Any]:
        """
        Los PRIVATE solo los ve su dueño; para el resto son 404.

        Raises:
            ApiError: 400 sin id, 404 si no existe o no es visible
        """
        if not lb_id:
            raise ApiError(400, "Missing leaderboard id")

        try:
            leaderboard = await self.supabase.select_one(
                "leaderboards", "id, user_id, visibility", {"id": f"eq.{lb_id}"}, access_token=access_token
            )
        except SupabaseError as e:
            logger.warning(f"[LEADERBOARD] Error leyendo {lb_id}: {e.message}")
            leaderboard = None

        if not leaderboard:
            raise ApiError(404, "Not found")

        if leaderboard.get("visibility") == "PRIVATE":
            try:
                user = await self.supabase.get_user(access_token)
            except SupabaseError:
                user = None
            if not user or user.get("id") != leaderboard.get("user_id"):
                raise ApiError(404, "Not found")
        return leaderboard

    # ============== ÚLTIMAS PARTIDAS ==============

    async def get_latest_games(self, lb_id: str, dd_version: str) -> List[Dict[str, Any]]:
        key = f"{latest_activity_tag(lb_id)}:{dd_version}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"[CACHE HIT] Últimas partidas {lb_id}")
            return cached

        games = await self._fetch_latest_games(lb_id, dd_version)
        self.cache.set(key, games, ttl=self.latest_games_ttl, tags=[latest_activity_tag(lb_id)])
        return games

    async def _fetch_latest_games(self, lb_id: str, dd_version: str) -> List[Dict[str, Any]]:
        raw = await self._safe(
            self.supabase.rpc(
                "get_leaderboard_latest_games", {"lb_id": lb_id, "lim": LATEST_GAMES_LIMIT}, service=True
            ),
            [],
            "get_leaderboard_latest_games",
        )

        match_ids = list(dict.fromkeys(row["match_id"] for row in raw if row.get("match_id")))
        puuids = list(dict.fromkeys(row["puuid"] for row in raw if row.get("puuid")))

        season = current_season(now=self._now(), dd_version=dd_version, override=self.season_override)
        season_start_ms = season.start_ms

        matches_query = self.supabase.select(
            "matches",
            "match_id, fetched_at, game_end_ts",
            {
                "match_id": in_filter(match_ids),
                "fetched_at": f"gte.{season.start_iso}",
                "game_end_ts": f"gte.{season_start_ms}",
            },
            service=True,
        ) if match_ids else _empty()
        events_query = self.supabase.select(
            "player_lp_events",
            "match_id, puuid, lp_delta, note",
            {"match_id": in_filter(match_ids), "puuid": in_filter(puuids)},
            service=True,
        ) if match_ids and puuids else _empty()

        matches_raw, events_raw = await asyncio.gather(
            self._safe(matches_query, [], "latest_matches"),
            self._safe(events_query, [], "player_lp_events"),
        )

        allowed = {row["match_id"] for row in matches_raw}
        end_by_id = {row["match_id"]: row.get("game_end_ts") for row in matches_raw}

        def in_season(row: Dict[str, Any]) -> bool:
            if row.get("queue_id") != RANKED_SOLO_QUEUE_ID:
                return False
            if row.get("match_id") in allowed:
                return True
            end_ts = _first(row, "game_end_ts") or end_by_id.get(row.get("match_id"))
            if isinstance(end_ts, (int, float)):
                return end_ts >= season_start_ms
            return True

        lp_events = {
            (row["match_id"], row["puuid"]): row
            for row in events_raw
            if row.get("match_id") and row.get("puuid") and _finite(row.get("lp_delta")) is not None
        }

        games = []
        for row in filter(in_season, raw):
            event = lp_events.get((row.get("match_id"), row.get("puuid"))) or {}
            lp_change = _first(row, "lp_change", "lp_delta", "lp_diff")
            if lp_change is None:
                lp_change = event.get("lp_delta")
            duration_s = _first(row, "game_duration_s", "gameDuration")
            games.append({
                "matchId": row.get("match_id"),
                "puuid": row.get("puuid"),
                "championId": row.get("champion_id"),
                "win": row.get("win"),
                "k": row.get("kills") or 0,
                "d": row.get("deaths") or 0,
                "a": row.get("assists") or 0,
                "cs": row.get("cs") or 0,
                "endTs": _first(row, "game_end_ts") or end_by_id.get(row.get("match_id")),
                "durationS": duration_s,
                "queueId": row.get("queue_id"),
                "lpChange": lp_change,
                "lpNote": _first(row, "lp_note", "note") or event.get("note"),
                "endType": compute_end_type(
                    _first(row, "game_ended_in_early_surrender", "gameEndedInEarlySurrender"),
                    _first(row, "game_ended_in_surrender", "gameEndedInSurrender"),
                    duration_s,
                    lp_change,
                ),
            })
        return games

    # ============== MOVERS ==============

    async def get_movers(self, lb_id: str) -> Dict[str, Any]:
        key = movers_tag(lb_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"[CACHE HIT] Movers {lb_id}")
            return cached

        movers = await self._fetch_movers(lb_id)
        self.cache.set(key, movers, ttl=self.movers_ttl, tags=[movers_tag(lb_id)])
        return movers

    async def _fetch_movers(self, lb_id: str) -> Dict[str, Any]:
        players = await self._safe(
            self.supabase.select(
                "leaderboard_players",
                "id, puuid, game_name, tag_line",
                {"leaderboard_id": f"eq.{lb_id}"},
                service=True,
                order="sort_order.asc",
                limit=50,
            ),
            [],
            "leaderboard_players",
        )
        puuids = [p["puuid"] for p in players if p.get("puuid")]
        if not puuids:
            return {
                "playersByPuuid": {},
                "playerIconsByPuuid": {},
                "dailyTopGain": None,
                "dailyTopLoss": None,
                "weeklyTopGain": None,
                "weeklyTopLoss": None,
            }

        today_start, week_start = window_bounds(self.movers_timezone, self._now())

        states, daily_rows, weekly_rows, events = await asyncio.gather(
            self._safe(
                self.supabase.select(
                    "player_riot_state", "puuid, profile_icon_id", {"puuid": in_filter(puuids)}, service=True
                ),
                [],
                "player_riot_state",
            ),
            self._safe(
                self.supabase.rpc(
                    "get_leaderboard_movers_fast",
                    {"lb_id": lb_id, "start_at": today_start.isoformat()},
                    service=True,
                ),
                [],
                "movers_daily",
            ),
            self._safe(
                self.supabase.rpc(
                    "get_leaderboard_movers_fast",
                    {"lb_id": lb_id, "start_at": week_start.isoformat()},
                    service=True,
                ),
                [],
                "movers_weekly",
            ),
            self._safe(
                self.supabase.select(
                    "player_lp_events",
                    "puuid, lp_delta, recorded_at, queue_type",
                    {
                        "puuid": in_filter(puuids),
                        "queue_type": f"eq.{MOVER_QUEUE_TYPE}",
                        "recorded_at": f"gte.{week_start.isoformat()}",
                    },
                    service=True,
                ),
                [],
                "movers_recent_events",
            ),
        )

        daily_canonical = _delta_map(daily_rows)
        weekly_canonical = _delta_map(weekly_rows)
        daily_events: Dict[str, float] = {}
        weekly_events: Dict[str, float] = {}
        for row in events:
            delta = _finite(row.get("lp_delta"))
            recorded = _parse_dt(row.get("recorded_at"))
            if not row.get("puuid") or delta is None or recorded is None:
                continue
            if recorded >= week_start:
                weekly_events[row["puuid"]] = weekly_events.get(row["puuid"], 0) + delta
            if recorded >= today_start:
                daily_events[row["puuid"]] = daily_events.get(row["puuid"], 0) + delta

        def resolve(canonical: Dict[str, float], summed: Dict[str, float]) -> List[Tuple[str, float]]:
            entries = []
            for puuid in puuids:
                delta = pick_blended_delta(canonical.get(puuid), summed.get(puuid))
                if delta is not None:
                    entries.append((puuid, delta))
            return entries

        daily_gain, daily_loss = top_entries(resolve(daily_canonical, daily_events))
        weekly_gain, weekly_loss = top_entries(resolve(weekly_canonical, weekly_events))

        return {
            "playersByPuuid": {p["puuid"]: p for p in players if p.get("puuid")},
            "playerIconsByPuuid": {s["puuid"]: s.get("profile_icon_id") for s in states},
            "dailyTopGain": list(daily_gain) if daily_gain and daily_gain[1] > 0 else None,
            "dailyTopLoss": list(daily_loss) if daily_loss and daily_loss[1] < 0 else None,
            "weeklyTopGain": list(weekly_gain) if weekly_gain and weekly_gain[1] > 0 else None,
            # la mayor pérdida semanal se muestra aunque no sea negativa
            "weeklyTopLoss": list(weekly_loss) if weekly_loss else None,
        }

    # ============== REVALIDACIÓN ==============

    def revalidate(self, lb_ids: Iterable[str]) -> int:
        """Invalida los tags de cada leaderboard; devuelve entradas eliminadas"""
        removed = 0
        for lb_id in lb_ids:
            for tag in leaderboard_cache_tags(lb_id):
                removed += self.cache.revalidate_tag(tag)
        return removed


async def _empty() -> List[Any]:
    return []


def _delta_map(rows: List[Dict[str, Any]]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for row in rows or []:
        delta = _finite(row.get("lp_delta"))
        if row.get("puuid") and delta is not None:
            out[row["puuid"]] = delta
    return out


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=ZoneInfo("UTC"))
