"""Proxies de la API de Riot: partidas, timelines, cuentas y summoners"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from riftboard.api.deps import match_service, riot_service
from riftboard.core.errors import ApiError
from riftboard.schemas.riot import AccountResponse, MatchResponse, SummonerResponse, TimelineResponse
from riftboard.services.match_service import MatchService
from riftboard.services.riot_service import RiotAPIError, RiotAPIService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Riot"])

TIMELINE_CACHE_CONTROL = "public, s-maxage=300, stale-while-revalidate=600"
ACCOUNT_CACHE_CONTROL = "public, s-maxage=300, stale-while-revalidate=900"


@router.get("/api/match/{match_id}", response_model=MatchResponse)
async def get_match_summary(match_id: str, service: MatchService = Depends(match_service)):
    """
    Detalle de una partida para el historial (sin reintentos).

    - **match_id**: id con prefijo de plataforma, ej. `NA1_5012345678`
    """
    try:
        match = await service.get_match(match_id, max_retries=0)
    except RiotAPIError as e:
        logger.error(f"[Match API] {match_id}: {e.message}")
        raise ApiError(500, "Failed to fetch match")
    return {"match": match}


@router.get("/api/riot/match/{match_id}", response_model=MatchResponse)
async def get_riot_match(match_id: str, service: MatchService = Depends(match_service)):
    """Detalle Match-V5 con reintentos (429 si se agota el rate limit)"""
    return {"match": await service.get_match(match_id)}


@router.get("/api/riot/match/{match_id}/timeline", response_model=TimelineResponse)
async def get_riot_timeline(match_id: str, service: MatchService = Depends(match_service)):
    """
    Timeline de la partida.

    El header `X-Cache` indica HIT-DB, HIT-INFLIGHT o MISS.
    """
    timeline, status = await service.get_timeline(match_id)
    return JSONResponse(
        {"timeline": timeline},
        headers={"Cache-Control": TIMELINE_CACHE_CONTROL, "X-Cache": status},
    )


@router.get("/api/riot/account/{puuid}", response_model=AccountResponse)
async def get_riot_account(puuid: str, riot: RiotAPIService = Depends(riot_service)):
    """Cuenta Riot (gameName/tagLine); un PUUID inválido devuelve BAD_PUUID"""
    try:
        account = await riot.get_account(puuid)
    except RiotAPIError as e:
        if e.status_code != 400:
            raise
        return JSONResponse(
            {"account": None, "error": "BAD_PUUID"},
            headers={"Cache-Control": ACCOUNT_CACHE_CONTROL},
        )
    return JSONResponse({"account": account}, headers={"Cache-Control": ACCOUNT_CACHE_CONTROL})


@router.get("/api/riot/summoner/{platform}/{puuid}", response_model=SummonerResponse)
async def get_riot_summoner(platform: str, puuid: str, riot: RiotAPIService = Depends(riot_service)):
    """Summoner-V4 + entradas de League-V4 del jugador"""
    try:
        summoner = await riot.get_summoner_with_league(platform, puuid)
    except RiotAPIError as e:
        logger.error(f"[Summoner API] {platform}/{puuid}: {e.message}")
        raise ApiError(500, "Internal Server Error")

    if summoner is None:
        raise ApiError(404, "Summoner not found")
    return {"summoner": summoner}
