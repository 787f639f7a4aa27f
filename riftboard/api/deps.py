from functools import lru_cache
from typing import Optional

from fastapi import Request

from riftboard.core.cache import TaggedCache
from riftboard.core.config import get_settings
from riftboard.core.errors import ApiError
from riftboard.services.banner_service import BannerService
from riftboard.services.leaderboard_service import LeaderboardService
from riftboard.services.match_service import MatchService
from riftboard.services.player_service import PlayerService
from riftboard.services.riot_auth_service import RiotAuthService
from riftboard.services.riot_service import RiotAPIService
from riftboard.services.supabase_service import (
    SupabaseService,
    decode_session_cookies,
    session_cookie_name,
)


@lru_cache
def server_cache() -> TaggedCache:
    """Caché con tags para últimas partidas y movers"""
    return TaggedCache(max_entries=500, default_ttl=get_settings().LATEST_GAMES_CACHE_TTL, name="leaderboards")


@lru_cache
def riot_service() -> RiotAPIService:
    s = get_settings()
    try:
        api_key = s.riot_api_key()
    except ValueError as e:
        raise ApiError(500, str(e))
    return RiotAPIService(api_key, max_retries=s.RIOT_MAX_RETRIES, retry_delay=s.RIOT_RETRY_DELAY)


@lru_cache
def supabase_service() -> SupabaseService:
    s = get_settings()
    return SupabaseService(s.SUPABASE_URL, s.SUPABASE_ANON_KEY, s.SUPABASE_SERVICE_ROLE_KEY)


@lru_cache
def match_service() -> MatchService:
    s = get_settings()
    return MatchService(
        riot_service(),
        supabase_service(),
        match_cache_ttl=s.MATCH_CACHE_TTL,
        timeline_db_ttl=s.TIMELINE_DB_TTL,
    )


@lru_cache
def banner_service() -> BannerService:
    return BannerService.from_settings(get_settings(), supabase_service())


@lru_cache
def player_service() -> PlayerService:
    return PlayerService(supabase_service(), season_override=get_settings().RANKED_SEASON_START)


@lru_cache
def leaderboard_service() -> LeaderboardService:
    return LeaderboardService.from_settings(get_settings(), supabase_service(), server_cache())


@lru_cache
def riot_auth_service() -> RiotAuthService:
    return RiotAuthService(get_settings(), supabase_service())


def get_access_token(request: Request) -> Optional[str]:
    """Access token de Supabase: header Authorization o cookie de sesión"""
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
        if token:
            return token

    s = get_settings()
    name = session_cookie_name(s.SUPABASE_URL, s.SUPABASE_COOKIE_NAME)
    session = decode_session_cookies(name, request.cookies)
    return (session or {}).get("access_token")
