"""Últimas partidas y movers de un leaderboard (sin caché HTTP)"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from riftboard.api.deps import get_access_token, leaderboard_service
from riftboard.core.config import get_settings
from riftboard.schemas.leaderboards import LatestGamesResponse, MoversResponse
from riftboard.services.leaderboard_service import LeaderboardService

router = APIRouter(prefix="/api/leaderboards", tags=["Leaderboards"])


@router.get("/{lb_id}/latest-games", response_model=LatestGamesResponse)
async def get_latest_games(
    lb_id: str,
    response: Response,
    ddVersion: Optional[str] = Query(None),
    service: LeaderboardService = Depends(leaderboard_service),
    access_token: Optional[str] = Depends(get_access_token),
):
    """Últimas 10 partidas ranked del leaderboard con cambio de LP"""
    await service.ensure_visible(lb_id, access_token)
    dd_version = (ddVersion or "").strip() or get_settings().DDRAGON_VERSION
    games = await service.get_latest_games(lb_id, dd_version)
    response.headers["Cache-Control"] = "no-store"
    return {"games": games}


@router.get("/{lb_id}/movers", response_model=MoversResponse)
async def get_movers(
    lb_id: str,
    response: Response,
    service: LeaderboardService = Depends(leaderboard_service),
    access_token: Optional[str] = Depends(get_access_token),
):
    """Mayores ganancias y pérdidas de LP de hoy y de la semana"""
    await service.ensure_visible(lb_id, access_token)
    movers = await service.get_movers(lb_id)
    response.headers["Cache-Control"] = "no-store"
    return {"movers": movers}
