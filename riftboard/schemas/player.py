"""Esquemas Pydantic para los endpoints de jugador"""
from typing import List, Optional

from pydantic import BaseModel


class RankInfo(BaseModel):
    """Snapshot de rango (solo queue si existe, si no flex)"""
    tier: Optional[str] = None
    rank: Optional[str] = None
    league_points: int = 0
    wins: int = 0
    losses: int = 0
    queueType: Optional[str] = None


class PlayerSummaryResponse(BaseModel):
    profileIconId: Optional[int] = None
    lastUpdated: Optional[str] = None
    rank: Optional[RankInfo] = None


class MatchSummary(BaseModel):
    """Una partida ranked del jugador"""
    matchId: str
    puuid: str
    championId: Optional[int] = None
    win: Optional[bool] = None
    k: int = 0
    d: int = 0
    a: int = 0
    cs: int = 0
    visionScore: Optional[int] = None
    endTs: Optional[int] = None
    durationS: Optional[int] = None
    queueId: Optional[int] = None


class PlayerMatchesResponse(BaseModel):
    matches: List[MatchSummary]
