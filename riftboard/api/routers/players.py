"""Endpoints de jugador: resumen de rango y partidas de la temporada"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from riftboard.api.deps import get_access_token, player_service
from riftboard.schemas.player import PlayerMatchesResponse, PlayerSummaryResponse
from riftboard.services.player_service import PlayerService, parse_limit

router = APIRouter(prefix="/api/player", tags=["Players"])


@router.get("/{puuid}/summary", response_model=PlayerSummaryResponse)
async def get_player_summary(
    puuid: str,
    service: PlayerService = Depends(player_service),
    access_token: Optional[str] = Depends(get_access_token),
):
    """Icono, última sincronización y rango (solo queue antes que flex)"""
    return await service.get_summary(puuid, access_token=access_token)


@router.get("/{puuid}/matches", response_model=PlayerMatchesResponse)
async def get_player_matches(
    puuid: str,
    limit: Optional[str] = Query(None, description="1-200 (50 por defecto) o `all`"),
    service: PlayerService = Depends(player_service),
    access_token: Optional[str] = Depends(get_access_token),
):
    """
    Partidas de ranked solo desde el inicio de la temporada.

    - **limit**: número de partidas, o `all` para traer todas
    """
    matches = await service.get_matches(puuid, parse_limit(limit), access_token=access_token)
    return {"matches": matches}
