"""Lecturas de jugador: resumen de rango y partidas ranked de la temporada"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from riftboard.core.errors import ApiError
from riftboard.services.match_service import parse_timestamp
from riftboard.services.season import current_season
from riftboard.services.supabase_service import SupabaseError, SupabaseService

logger = logging.getLogger(__name__)

RANKED_SOLO_QUEUE_ID = 420
SOLO_QUEUE = "RANKED_SOLO_5x5"
FLEX_QUEUE = "RANKED_FLEX_SR"
DEFAULT_MATCH_LIMIT = 50
MAX_MATCH_LIMIT = 200
PAGE_SIZE = 1000

MATCH_COLUMNS = (
    "match_id, puuid, champion_id, kills, deaths, assists, cs, win, vision_score, "
    "matches!inner(game_end_ts, game_duration_s, queue_id)"
)


def parse_limit(raw: Optional[str]) -> Optional[int]:
    """
    "all" -> None (sin límite); si no, entero en [1, 200], 50 por defecto.
    """
    if raw == "all":
        return None
    if raw is None:
        return DEFAULT_MATCH_LIMIT
    try:
        value = int(float(raw))
    except (ValueError, OverflowError):
        return DEFAULT_MATCH_LIMIT
    return min(max(value, 1), MAX_MATCH_LIMIT)


def pick_rank(ranks: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Solo queue antes que flex"""
    solo = next((r for r in ranks if r.get("queue_type") == SOLO_QUEUE), None)
    flex = next((r for r in ranks if r.get("queue_type") == FLEX_QUEUE), None)
    return solo or flex


def serialize_match_row(row: Dict[str, Any]) -> Dict[str, Any]:
    match = row.get("matches") or {}
    return {
        "matchId": row.get("match_id"),
        "puuid": row.get("puuid"),
        "championId": row.get("champion_id"),
        "win": row.get("win"),
        "k": row.get("kills") or 0,
        "d": row.get("deaths") or 0,
        "a": row.get("assists") or 0,
        "cs": row.get("cs") or 0,
        "visionScore": row.get("vision_score"),
        "endTs": match.get("game_end_ts"),
        "durationS": match.get("game_duration_s"),
        "queueId": match.get("queue_id"),
    }


class PlayerService:
    def __init__(self, supabase: SupabaseService, season_override: Optional[str] = None):
        self.supabase = supabase
        self.season_override = season_override

    async def get_summary(self, puuid: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        """
        Resumen del jugador: icono, última sincronización y rango.

        Raises:
            ApiError: 400 sin puuid, 500 si falla la base de datos
        """
        if not puuid:
            raise ApiError(400, "Missing puuid")

        filters = {"puuid": f"eq.{puuid}"}
        try:
            state, ranks = await asyncio.gather(
                self.supabase.select_one(
                    "player_riot_state",
                    "puuid, profile_icon_id, last_rank_sync_at, last_matches_sync_at",
                    filters,
                    access_token=access_token,
                ),
                self.supabase.select(
                    "player_rank_snapshot",
                    "puuid, queue_type, tier, rank, league_points, wins, losses, fetched_at",
                    filters,
                    access_token=access_token,
                ),
            )
        except SupabaseError as e:
            logger.error(f"[PLAYER] Error leyendo resumen de {puuid}: {e.message}")
            raise ApiError(500, "Failed to fetch player summary")

        state = state or {}
        rank = pick_rank(ranks)

        candidates = [state.get("last_rank_sync_at"), state.get("last_matches_sync_at")]
        if rank:
            candidates.append(rank.get("fetched_at"))
        stamps = [(parse_timestamp(iso), iso) for iso in candidates if iso]
        stamps = [item for item in stamps if item[0] is not None]
        last_updated = max(stamps)[1] if stamps else None

        return {
            "profileIconId": state.get("profile_icon_id"),
            "lastUpdated": last_updated,
            "rank": {
                "tier": rank.get("tier"),
                "rank": rank.get("rank"),
                "league_points": rank.get("league_points") or 0,
                "wins": rank.get("wins") or 0,
                "losses": rank.get("losses") or 0,
                "queueType": rank.get("queue_type"),
            } if rank else None,
        }

    async def get_matches(
        self,
        puuid: str,
        limit: Union[int, None] = DEFAULT_MATCH_LIMIT,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Partidas de ranked solo desde el inicio de temporada, más recientes primero.

        Args:
            limit: número de partidas, o None para traerlas todas en páginas de 1000
        """
        if not puuid:
            raise ApiError(400, "Missing puuid")

        season_start_ms = current_season(override=self.season_override).start_ms
        filters = {
            "puuid": f"eq.{puuid}",
            "matches.queue_id": f"eq.{RANKED_SOLO_QUEUE_ID}",
            "matches.game_end_ts": f"gte.{season_start_ms}",
        }

        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            try:
                page = await self.supabase.select(
                    "match_participants",
                    MATCH_COLUMNS,
                    filters,
                    access_token=access_token,
                    order="matches(game_end_ts).desc",
                    limit=PAGE_SIZE if limit is None else limit,
                    offset=offset if limit is None else None,
                )
            except SupabaseError as e:
                raise ApiError(500, e.message)

            rows.extend(page)
            if limit is not None or len(page) < PAGE_SIZE:
                break
            offset += PAGE_SIZE

        return [serialize_match_row(row) for row in rows]
