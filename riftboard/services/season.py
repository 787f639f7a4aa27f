"""Inicio de la temporada ranked actual (tabla por región + override por env)"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from riftboard.services.match_service import parse_timestamp

REGION_CODES = {
    "NA", "NA1", "EUW", "EUW1", "EUNE", "EUN1", "KR", "JP", "JP1", "BR", "BR1",
    "LAN", "LA1", "LAS", "LA2", "OCE", "OC1", "RU", "TR", "CN",
}

_SEASON_2026_REGIONS = {
    "OCE": "2026-01-08T01:00:00.000Z",
    "OC1": "2026-01-08T01:00:00.000Z",
    "JP": "2026-01-08T03:00:00.000Z",
    "JP1": "2026-01-08T03:00:00.000Z",
    "KR": "2026-01-08T03:00:00.000Z",
    "CN": "2026-01-08T04:00:00.000Z",
    "EUNE": "2026-01-08T11:00:00.000Z",
    "EUN1": "2026-01-08T11:00:00.000Z",
    "EUW": "2026-01-08T12:00:00.000Z",
    "EUW1": "2026-01-08T12:00:00.000Z",
    "RU": "2026-01-08T09:00:00.000Z",
    "TR": "2026-01-08T09:00:00.000Z",
    "LAS": "2026-01-08T15:00:00.000Z",
    "LA2": "2026-01-08T15:00:00.000Z",
    "BR": "2026-01-08T15:00:00.000Z",
    "BR1": "2026-01-08T15:00:00.000Z",
    "LAN": "2026-01-08T18:00:00.000Z",
    "LA1": "2026-01-08T18:00:00.000Z",
    "NA": "2026-01-08T20:00:00.000Z",
    "NA1": "2026-01-08T20:00:00.000Z",
}

SEASON_STARTS = [
    (2024, "2024-01-10T20:00:00.000Z", {}),
    (2025, "2025-01-08T20:00:00.000Z", {}),
    (2026, "2026-01-08T20:00:00.000Z", _SEASON_2026_REGIONS),
]


@dataclass(frozen=True)
class SeasonInfo:
    season: int
    start_iso: str
    end_iso: Optional[str]
    source: str  # override | table | version

    @property
    def start_ms(self) -> int:
        ts = parse_timestamp(self.start_iso)
        if ts is None:
            raise ValueError(f"Invalid season start: {self.start_iso}")
        return int(ts * 1000)


def _season_table(region: Optional[str]) -> List[SeasonInfo]:
    code = (region or "").upper()
    code = code if code in REGION_CODES else None
    rows = sorted(SEASON_STARTS, key=lambda row: row[0])
    table = []
    for idx, (season, start_iso, regions) in enumerate(rows):
        next_start = rows[idx + 1][1] if idx + 1 < len(rows) else None
        regional: Dict[str, str] = regions
        table.append(SeasonInfo(season, regional.get(code, start_iso) if code else start_iso, next_start, "table"))
    return table


def _by_date(now: datetime, table: List[SeasonInfo]) -> SeasonInfo:
    now_ts = now.timestamp()
    for row in table:
        start = parse_timestamp(row.start_iso)
        end = parse_timestamp(row.end_iso) if row.end_iso else None
        if now_ts >= start and (end is None or now_ts < end):
            return row
    return table[-1]


def _by_version(dd_version: Optional[str], table: List[SeasonInfo]) -> Optional[SeasonInfo]:
    if not dd_version:
        return None
    try:
        major = int(dd_version.split(".")[0])
    except ValueError:
        return None
    if major <= 0:
        return None
    season = 2010 + major
    return next((row for row in table if row.season == season), None)


def current_season(
    now: Optional[datetime] = None,
    dd_version: Optional[str] = None,
    region: Optional[str] = None,
    override: Optional[str] = None,
) -> SeasonInfo:
    """
    Temporada vigente.

    El override (RANKED_SEASON_START) gana siempre; si no, se usa la tabla
    por fecha, salvo que la versión de Data Dragon apunte a una temporada
    igual o posterior.
    """
    now = now or datetime.now(timezone.utc)
    if override:
        return SeasonInfo(now.year, override, None, "override")

    table = _season_table(region)
    by_date = _by_date(now, table)
    by_version = _by_version(dd_version, table)
    if by_version and by_version.season >= by_date.season:
        return replace(by_version, source="version")
    return by_date
