"""Servicio de cachés del cliente: resumen, partidas, detalle y datos estáticos"""
import time
import logging
from typing import Any, Callable, Dict

from riftboard.core.cache import TTLCache

logger = logging.getLogger(__name__)


class ClientCacheService:
    """
    Agrupa las cuatro cachés TTL que usa el historial de partidas.

    Estructura:
    - summary: {puuid: resumen del jugador}
    - matches: {puuid:limit: lista de partidas}
    - match_detail: {match_id: detalle de la partida}
    - static: {versión Data Dragon: {spells, runes}}

    Se crea una vez por proceso (o por test) y se pasa por referencia a
    quien la necesite; no hay estado global de módulo.
    """

    def __init__(
        self,
        max_entries: int = 50,
        summary_ttl: float = 5 * 60,
        matches_ttl: float = 5 * 60,
        match_detail_ttl: float = 10 * 60,
        static_ttl: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.summary = TTLCache(max_entries, summary_ttl, clock=clock, name="summary")
        self.matches = TTLCache(max_entries, matches_ttl, clock=clock, name="matches")
        self.match_detail = TTLCache(max_entries, match_detail_ttl, clock=clock, name="match_detail")
        self.static = TTLCache(max_entries, static_ttl, clock=clock, name="static")
        logger.info(f"[INFO] ClientCacheService inicializado con max_entries={max_entries}")

    @classmethod
    def from_settings(cls, settings) -> "ClientCacheService":
        return cls(
            max_entries=settings.CACHE_MAX_ENTRIES,
            summary_ttl=settings.CACHE_TTL_SUMMARY,
            matches_ttl=settings.CACHE_TTL_MATCHES,
            match_detail_ttl=settings.CACHE_TTL_MATCH_DETAIL,
            static_ttl=settings.CACHE_TTL_STATIC,
        )

    def clear(self) -> None:
        """Limpia todas las cachés"""
        for cache in (self.summary, self.matches, self.match_detail, self.static):
            cache.clear()
        logger.info("[CACHE CLEAR] Cachés del cliente limpiadas")

    def get_stats(self) -> Dict[str, Any]:
        return {
            cache.name: cache.get_stats()
            for cache in (self.summary, self.matches, self.match_detail, self.static)
        }
