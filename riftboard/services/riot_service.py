"""Servicio para interactuar con las APIs de plataforma de Riot"""
import asyncio
import logging
import random
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from riftboard.core.logging_config import TimingLogger

logger = logging.getLogger(__name__)

# Routing regional (Match-V5, Account-V1) a partir del prefijo de plataforma
ROUTING_BY_PLATFORM = {
    "NA1": "americas",
    "BR1": "americas",
    "LA1": "americas",
    "LA2": "americas",
    "OC1": "sea",
    "KR": "asia",
    "JP1": "asia",
    "EUN1": "europe",
    "EUW1": "europe",
    "TR1": "europe",
    "RU": "europe",
    "PH2": "sea",
    "SG2": "sea",
    "TH2": "sea",
    "TW2": "sea",
    "VN2": "sea",
}


class RiotAPIError(Exception):
    """Respuesta no exitosa de Riot (o red caída tras agotar reintentos)"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


def routing_from_match_id(match_id: str) -> Optional[str]:
    """"NA1_123" -> "americas"; None si la plataforma no es conocida"""
    platform = (match_id or "").split("_")[0].upper()
    if not platform:
        return None
    return ROUTING_BY_PLATFORM.get(platform)


def should_retry(status: int, attempt: int, max_retries: int, retry_on_429: bool = True) -> bool:
    if attempt >= max_retries:
        return False
    if status == 429:
        return retry_on_429
    return 500 <= status < 600 or status == 408


def retry_delay(response: httpx.Response, attempt: int, base_delay: float) -> float:
    """Retry-After si viene en la respuesta; si no, backoff exponencial"""
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            seconds = int(retry_after)
            if seconds > 0:
                return float(seconds)
        except ValueError:
            pass

    delay = base_delay * (2 ** attempt)
    if response.status_code == 429:
        delay += random.random()
    return delay


class RiotAPIService:
    """Cliente HTTP para Match-V5, Account-V1, Summoner-V4 y League-V4"""

    def __init__(
        self,
        api_key: str,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self.headers = {"X-Riot-Token": api_key}

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def fetch_json(
        self,
        url: str,
        max_retries: Optional[int] = None,
        retry_on_429: bool = True,
    ) -> Any:
        """
        GET con reintentos para 429, 5xx, 408 y errores de red

        Raises:
            RiotAPIError: respuesta no reintentable o reintentos agotados
        """
        retries = self.max_retries if max_retries is None else max_retries

        for attempt in range(retries + 1):
            try:
                with TimingLogger(f"Riot GET {url}", __name__):
                    async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                        response = await client.get(url, headers=self.headers)
            except httpx.TransportError as e:
                if attempt < retries:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(
                        f"[Riot API] Error de red en {url}. Reintento en {delay:.1f}s "
                        f"(intento {attempt + 1}/{retries + 1})"
                    )
                    await self._sleep(delay)
                    continue
                raise RiotAPIError(503, f"Riot fetch failed: {e}") from e

            if response.is_success:
                return response.json()

            status = response.status_code
            if should_retry(status, attempt, retries, retry_on_429):
                delay = retry_delay(response, attempt, self.retry_delay)
                logger.warning(
                    f"[Riot API] {'Rate limit (429)' if status == 429 else f'Error {status}'} "
                    f"en {url}. Reintento en {delay:.1f}s (intento {attempt + 1}/{retries + 1})"
                )
                await self._sleep(delay)
                continue

            if status == 429:
                raise RiotAPIError(429, "Rate limit exceeded. Please try again later.")
            raise RiotAPIError(status, f"Riot fetch failed {status}: {response.text[:200]}")

        raise RiotAPIError(500, f"Riot fetch failed after {retries + 1} attempts")

    # ============== MATCH-V5 ==============

    async def get_match(self, match_id: str, routing: str, max_retries: Optional[int] = None) -> Dict[str, Any]:
        url = f"https://{routing}.api.riotgames.com/lol/match/v5/matches/{quote(match_id)}"
        return await self.fetch_json(url, max_retries=max_retries)

    async def get_timeline(self, match_id: str, routing: str) -> Dict[str, Any]:
        url = f"https://{routing}.api.riotgames.com/lol/match/v5/matches/{quote(match_id)}/timeline"
        return await self.fetch_json(url)

    # ============== ACCOUNT-V1 ==============

    async def get_account(self, puuid: str) -> Dict[str, Any]:
        url = f"https://americas.api.riotgames.com/riot/account/v1/accounts/by-puuid/{quote(puuid)}"
        return await self.fetch_json(url)

    # ============== SUMMONER-V4 / LEAGUE-V4 ==============

    async def _get_or_none(self, url: str) -> Optional[Any]:
        """404 y 403 (key expirada) se tratan como "sin datos" """
        try:
            return await self.fetch_json(url, max_retries=0)
        except RiotAPIError as e:
            if e.status_code == 404:
                return None
            if e.status_code == 403:
                logger.warning(f"[Riot API] 403 Forbidden (¿key expirada?): {url}")
                return None
            raise

    async def get_summoner_with_league(self, platform: str, puuid: str) -> Optional[Dict[str, Any]]:
        host = f"{platform.lower()}.api.riotgames.com"
        summoner = await self._get_or_none(f"https://{host}/lol/summoner/v4/summoners/by-puuid/{quote(puuid)}")
        if not summoner or not summoner.get("id"):
            logger.warning(f"[Riot API] Summoner no encontrado para PUUID {puuid}")
            return None

        league: Optional[List[Dict[str, Any]]] = await self._get_or_none(
            f"https://{host}/lol/league/v4/entries/by-summoner/{summoner['id']}"
        )
        return {**summoner, "league": league or []}
