"""Esquemas Pydantic para los proxies de la API de Riot"""
from typing import Any, Dict, Optional

from pydantic import BaseModel


class MatchResponse(BaseModel):
    match: Dict[str, Any]


class TimelineResponse(BaseModel):
    timeline: Dict[str, Any]


class AccountResponse(BaseModel):
    account: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class SummonerResponse(BaseModel):
    summoner: Optional[Dict[str, Any]] = None
