"""Esquemas Pydantic para últimas partidas y movers de un leaderboard"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class LatestGame(BaseModel):
    matchId: str
    puuid: str
    championId: Optional[int] = None
    win: Optional[bool] = None
    k: int = 0
    d: int = 0
    a: int = 0
    cs: int = 0
    endTs: Optional[int] = None
    durationS: Optional[int] = None
    queueId: Optional[int] = None
    lpChange: Optional[float] = None
    lpNote: Optional[str] = None
    endType: str = "NORMAL"


class LatestGamesResponse(BaseModel):
    games: List[LatestGame]


class MoversData(BaseModel):
    """[puuid, delta LP] para cada extremo, o None"""
    playersByPuuid: Dict[str, Dict[str, Any]] = {}
    playerIconsByPuuid: Dict[str, Optional[int]] = {}
    dailyTopGain: Optional[List[Any]] = None
    dailyTopLoss: Optional[List[Any]] = None
    weeklyTopGain: Optional[List[Any]] = None
    weeklyTopLoss: Optional[List[Any]] = None


class MoversResponse(BaseModel):
    movers: MoversData
