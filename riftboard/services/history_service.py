"""
Cliente del historial de partidas de un jugador.

Consulta primero las cachés del cliente, luego el prefetch ya resuelto y, por
último, la API. Nunca lanza excepciones: los fallos se devuelven como None
o listas vacías.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Union
from urllib.parse import quote

import httpx

from riftboard.services.cache_service import ClientCacheService
from riftboard.services.ddragon_service import fetch_static_data
from riftboard.services.prefetch_service import MatchPrefetcher

logger = logging.getLogger(__name__)

EMPTY_STATIC = {"spells": {}, "runes": []}


class CancelToken:
    """Marca de cancelación; un resultado que llega tras cancel() se descarta"""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def _match_sort_key(match: Dict[str, Any]) -> float:
    """endTs, o el número del match id si no lo hay"""
    if match.get("endTs") is not None:
        return match["endTs"]
    try:
        return float(str(match.get("matchId", "")).split("_")[1])
    except (IndexError, ValueError):
        return 0


def normalize_match_summary(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "matchId": raw.get("matchId"),
        "puuid": raw.get("puuid"),
        "championId": raw.get("championId"),
        "win": raw.get("win"),
        "k": raw.get("k"),
        "d": raw.get("d"),
        "a": raw.get("a"),
        "cs": raw.get("cs"),
        "endTs": raw.get("endTs"),
        "durationS": raw.get("durationS"),
        "queueId": raw.get("queueId"),
        "visionScore": raw.get("visionScore"),
        "lpChange": raw.get("lpChange", raw.get("lp_change")),
        "lpNote": raw.get("lpNote", raw.get("lp_note")),
        "endType": raw.get("endType", raw.get("end_type")),
    }


class MatchHistoryClient:
    def __init__(
        self,
        caches: ClientCacheService,
        prefetcher: Optional[MatchPrefetcher],
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        static_transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.caches = caches
        self.prefetcher = prefetcher
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._static_transport = static_transport
        self._fetching: Set[str] = set()

    @classmethod
    def from_settings(
        cls,
        settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        static_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "MatchHistoryClient":
        """
        Raíz del cliente: crea una sola vez las cachés y el prefetcher y los
        comparte con el historial.

        Uso:
            async with MatchHistoryClient.from_settings(get_settings()) as history:
                history.prefetch(match_id)
                detail = await history.get_match_detail(match_id)
        """
        caches = ClientCacheService.from_settings(settings)
        prefetcher = MatchPrefetcher.from_settings(settings, transport=transport)
        return cls(caches, prefetcher, settings.APP_BASE_URL, transport=transport, static_transport=static_transport)

    async def __aenter__(self) -> "MatchHistoryClient":
        if self.prefetcher is not None:
            self.prefetcher.subscribe()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.prefetcher is not None:
            self.prefetcher.unsubscribe()

    def prefetch(self, match_id: str) -> bool:
        """Lanza el prefetch de una partida si no está ya en caché"""
        if self.prefetcher is None or self.caches.match_detail.get(match_id) is not None:
            return False
        return self.prefetcher.prefetch(match_id)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "caches": self.caches.get_stats(),
            "prefetched": len(self.prefetcher) if self.prefetcher is not None else 0,
        }

    async def _get_json(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, transport=self._transport, timeout=self.timeout
            ) as client:
                response = await client.get(path)
            if not response.is_success:
                logger.debug(f"[HISTORY] {path} -> {response.status_code}")
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[HISTORY] Fallo en {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def get_summary(self, puuid: str) -> Optional[Dict[str, Any]]:
        cached = self.caches.summary.get(puuid)
        if cached is not None:
            return cached

        data = await self._get_json(f"/api/player/{quote(puuid)}/summary")
        if data is not None:
            self.caches.summary.set(puuid, data)
        return data

    async def get_matches(self, puuid: str, limit: Union[int, str] = "all") -> List[Dict[str, Any]]:
        """Partidas del jugador ordenadas de más reciente a más antigua"""
        key = f"{puuid}:{limit}"
        cached = self.caches.matches.get(key)
        if cached is not None:
            return cached

        data = await self._get_json(f"/api/player/{quote(puuid)}/matches?limit={limit}")
        if data is None:
            return []

        matches = [normalize_match_summary(m) for m in data.get("matches") or []]
        matches.sort(key=_match_sort_key, reverse=True)
        self.caches.matches.set(key, matches)
        return matches

    async def get_match_detail(self, match_id: str, token: Optional[CancelToken] = None) -> Optional[Dict[str, Any]]:
        """
        Detalle de una partida: caché, luego prefetch resuelto, luego red.

        Si el token se cancela mientras la petición está en curso, el
        resultado no se guarda en caché y se devuelve None.
        """
        cached = self.caches.match_detail.get(match_id)
        if cached is not None:
            return cached

        if self.prefetcher is not None:
            record = self.prefetcher.get_prefetched_data(match_id)
            match = record.value("match") if record else None
            if isinstance(match, dict) and match:
                self.caches.match_detail.set(match_id, match)
                return match

        self._fetching.add(match_id)
        try:
            data = await self._get_json(f"/api/match/{quote(match_id)}")
        finally:
            self._fetching.discard(match_id)

        if token is not None and token.cancelled:
            logger.debug(f"[HISTORY] Resultado descartado para {match_id} (cancelado)")
            return None

        match = (data or {}).get("match")
        if not isinstance(match, dict) or not match:
            return None
        self.caches.match_detail.set(match_id, match)
        return match

    def store_match_detail(self, match_id: str, match: Dict[str, Any]) -> None:
        self.caches.match_detail.set(match_id, match)

    async def get_static_data(self, version: str) -> Dict[str, Any]:
        cached = self.caches.static.get(version)
        if cached is not None:
            return cached
        try:
            data = await fetch_static_data(version, transport=self._static_transport)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[HISTORY] Datos estáticos no disponibles para {version}: {e}")
            return dict(EMPTY_STATIC)
        self.caches.static.set(version, data)
        return data

    async def preload_details(
        self,
        match_ids: Iterable[str],
        batch_size: int = 3,
        pause: float = 0.5,
        token: Optional[CancelToken] = None,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Precarga detalles en lotes pequeños.

        Returns:
            {match_id: detalle} para las partidas disponibles
        """
        results: Dict[str, Dict[str, Any]] = {}
        queue: List[str] = []
        for match_id in match_ids:
            cached = self.caches.match_detail.get(match_id)
            if cached is not None:
                results[match_id] = cached
            elif match_id not in self._fetching:
                queue.append(match_id)

        while queue and not (token and token.cancelled):
            batch, queue = queue[:batch_size], queue[batch_size:]
            details = await asyncio.gather(*(self.get_match_detail(m, token) for m in batch))
            for match_id, detail in zip(batch, details):
                if detail is not None:
                    results[match_id] = detail
            if queue and pause > 0:
                await asyncio.sleep(pause)
        return results
