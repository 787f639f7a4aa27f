"""
Prefetch de detalles de partida para el historial.

Al pasar el cursor por una fila se llama a prefetch(match_id): se pide la
partida a /api/match/{id} y, si llega, la timeline (con el matchId que
confirma el servidor) y las cuentas de los participantes. Cada campo del
registro pasa de Pending(task) a Ready(valor); los fallos terminan en
Ready(None), nunca en excepción.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Set, Union
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

# Pista de prioridad baja (RFC 9218); el prefetch no debe competir con la UI
LOW_PRIORITY_HEADERS = {"Priority": "u=6"}


@dataclass
class Pending:
    task: "asyncio.Task[Any]"


@dataclass
class Ready:
    value: Any


class _Absent:
    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()

Slot = Union[Pending, Ready, _Absent]


@dataclass
class PrefetchRecord:
    match_id: str
    timestamp: float
    match: Slot = ABSENT
    timeline: Slot = ABSENT
    accounts: Slot = ABSENT

    def value(self, field_name: str) -> Any:
        """Valor ya resuelto de un campo, o None si está pendiente o ausente"""
        slot = getattr(self, field_name)
        return slot.value if isinstance(slot, Ready) else None


class InFlightDebounce:
    """
    Ventana de deduplicación por clave.

    try_acquire() marca la clave durante `window` segundos. La marca caduca
    por tiempo, no cuando termina el fetch: un fetch que tarda más que la
    ventana puede duplicarse si alguien vuelve a pedirlo sin registro fresco.
    """

    def __init__(self, window: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self._clock = clock
        self._expires: Dict[str, float] = {}

    def __contains__(self, key: str) -> bool:
        expires_at = self._expires.get(key)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._expires[key]
            return False
        return True

    def try_acquire(self, key: str) -> bool:
        if key in self:
            return False
        self._expires[key] = self._clock() + self.window
        return True

    def release(self, key: str) -> None:
        self._expires.pop(key, None)


class PrefetchSweeper:
    """
    Timer periódico con contador de suscriptores.

    Arranca con el primer subscribe() y se detiene con el último
    unsubscribe(); nunca hay dos timers a la vez ni corre sin suscriptores.
    """

    def __init__(self, callback: Callable[[], Any], interval: float = 60.0):
        self.callback = callback
        self.interval = interval
        self._subscribers = 0
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def subscribers(self) -> int:
        return self._subscribers

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self) -> None:
        self._subscribers += 1
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
            logger.debug(f"[PREFETCH] Sweeper iniciado (intervalo {self.interval}s)")

    def unsubscribe(self) -> None:
        if self._subscribers == 0:
            return
        self._subscribers -= 1
        if self._subscribers == 0 and self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug("[PREFETCH] Sweeper detenido")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.callback()
            except Exception:
                logger.exception("[PREFETCH] Error en la limpieza periódica")


class MatchPrefetcher:
    """
    Coordinador de prefetch: como mucho un fetch en curso por match_id y los
    resultados disponibles de forma síncrona en cuanto se resuelven.
    """

    def __init__(
        self,
        base_url: str,
        ttl: float = 5 * 60,
        debounce_window: float = 1.0,
        sweep_interval: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = base_url.rstrip("/")
        self.ttl = ttl
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._records: Dict[str, PrefetchRecord] = {}
        self._in_flight = InFlightDebounce(debounce_window, clock=clock)
        self._sweeper = PrefetchSweeper(self.sweep, sweep_interval)
        self._lock = threading.Lock()
        self._tasks: Set["asyncio.Task[Any]"] = set()

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "MatchPrefetcher":
        return cls(
            base_url=settings.APP_BASE_URL,
            ttl=settings.PREFETCH_TTL,
            debounce_window=settings.PREFETCH_DEBOUNCE,
            sweep_interval=settings.PREFETCH_SWEEP_INTERVAL,
            transport=transport,
        )

    # ============== OPERACIONES ==============

    def prefetch(self, match_id: str) -> bool:
        """
        Lanza el prefetch de una partida. Debe llamarse dentro del event loop.

        Returns:
            True si se lanzó un fetch, False si ya estaba en curso o en caché
        """
        if not match_id:
            return False

        loop = asyncio.get_running_loop()

        # Comprobar + marcar + lanzar es una sección crítica
        with self._lock:
            if match_id in self._in_flight:
                return False

            cached = self._records.get(match_id)
            if cached is not None and self._clock() - cached.timestamp < self.ttl:
                return False

            self._in_flight.try_acquire(match_id)
            record = PrefetchRecord(match_id=match_id, timestamp=self._clock())
            self._records[match_id] = record
            record.match = Pending(self._spawn(loop, self._run_chain(record)))

        logger.debug(f"[PREFETCH] Iniciado {match_id}")
        return True

    def get_prefetched_data(self, match_id: str) -> Optional[PrefetchRecord]:
        """Lectura pura del registro; nunca dispara un fetch"""
        return self._records.get(match_id)

    def clear(self, match_id: str) -> None:
        """Elimina el registro y la marca en curso para forzar un fetch nuevo"""
        with self._lock:
            self._records.pop(match_id, None)
            self._in_flight.release(match_id)

    def sweep(self) -> int:
        """Elimina los registros más viejos que el TTL; devuelve cuántos"""
        now = self._clock()
        with self._lock:
            stale = [k for k, r in self._records.items() if now - r.timestamp > self.ttl]
            for key in stale:
                del self._records[key]
        if stale:
            logger.debug(f"[PREFETCH] Limpieza: {len(stale)} registros expirados")
        return len(stale)

    async def wait(self, match_id: str) -> Optional[PrefetchRecord]:
        """Espera a que se resuelvan los campos pendientes del registro"""
        record = self._records.get(match_id)
        if record is None:
            return None
        for field_name in ("match", "timeline", "accounts"):
            slot = getattr(record, field_name)
            if isinstance(slot, Pending):
                await slot.task
        return record

    def subscribe(self) -> None:
        self._sweeper.subscribe()

    def unsubscribe(self) -> None:
        self._sweeper.unsubscribe()

    @property
    def sweeper(self) -> PrefetchSweeper:
        return self._sweeper

    def __len__(self) -> int:
        return len(self._records)

    # ============== FETCH ==============

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro) -> "asyncio.Task[Any]":
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_chain(self, record: PrefetchRecord) -> Optional[Dict[str, Any]]:
        match = await self._get_json(f"/api/match/{quote(record.match_id)}", "match")
        if not isinstance(match, dict):
            record.match = Ready(None)
            logger.debug(f"[PREFETCH] Partida {record.match_id} no disponible")
            return None
        record.match = Ready(match)

        metadata = match.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        confirmed_id = metadata.get("matchId")
        if not isinstance(confirmed_id, str) or not confirmed_id:
            confirmed_id = record.match_id
        participants = metadata.get("participants")
        if not isinstance(participants, list):
            participants = []
        loop = asyncio.get_running_loop()

        record.timeline = Pending(self._spawn(loop, self._fetch_timeline(record, confirmed_id)))
        record.accounts = Pending(self._spawn(loop, self._fetch_accounts(record, participants)))
        return match

    async def _fetch_timeline(self, record: PrefetchRecord, match_id: str) -> Optional[Dict[str, Any]]:
        timeline = await self._get_json(f"/api/riot/match/{quote(match_id)}/timeline", "timeline")
        if not isinstance(timeline, dict):
            timeline = None
        record.timeline = Ready(timeline)
        return timeline

    async def _fetch_accounts(self, record: PrefetchRecord, puuids: Iterable[str]) -> Dict[str, Any]:
        puuid_list = [p for p in puuids if isinstance(p, str) and p]
        results = await asyncio.gather(
            *(self._get_json(f"/api/riot/account/{quote(p)}", "account") for p in puuid_list)
        )
        accounts = {
            puuid: account for puuid, account in zip(puuid_list, results) if isinstance(account, dict) and account
        }
        record.accounts = Ready(accounts)
        return accounts

    async def _get_json(self, path: str, key: str) -> Optional[Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, transport=self._transport, timeout=self.timeout
            ) as client:
                response = await client.get(path, headers=LOW_PRIORITY_HEADERS)
            if not response.is_success:
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"[PREFETCH] Fallo en {path}: {e}")
            return None

        if not isinstance(data, dict):
            return None
        return data.get(key) or None
