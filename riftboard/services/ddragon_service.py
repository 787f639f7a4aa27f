"""Helpers de Data Dragon: URLs de iconos, mapas de lookup y versión del parche"""
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

logger = logging.getLogger(__name__)

DDRAGON_BASE = "https://ddragon.leagueoflegends.com"


# ============== URLS ==============

def static_url(version: str, path: str) -> str:
    return f"{DDRAGON_BASE}/cdn/{version}/{path}"


def profile_icon_url(version: str, icon_id: Optional[int]) -> Optional[str]:
    if icon_id is None:
        return None
    return f"{DDRAGON_BASE}/cdn/{version}/img/profileicon/{icon_id}.png"


def champion_icon_url(version: str, image_full: str) -> str:
    return f"{DDRAGON_BASE}/cdn/{version}/img/champion/{image_full}"


def champion_image_full(champion: Optional[Dict[str, Any]]) -> Optional[str]:
    """Nombre del archivo de imagen de un campeón ("Ahri.png")"""
    if not champion:
        return None
    image = champion.get("image") or {}
    if image.get("full"):
        return image["full"]
    if champion.get("id"):
        return f"{champion['id']}.png"
    return None


def item_icon_url(version: str, item_id: Optional[int]) -> Optional[str]:
    # item 0 = slot vacío
    if not item_id:
        return None
    return f"{DDRAGON_BASE}/cdn/{version}/img/item/{item_id}.png"


def spell_icon_url(version: str, spell: Optional[Dict[str, Any]]) -> Optional[str]:
    image_full = ((spell or {}).get("image") or {}).get("full")
    if not image_full:
        return None
    return f"{DDRAGON_BASE}/cdn/{version}/img/spell/{image_full}"


def rune_icon_url(icon: Optional[str]) -> Optional[str]:
    # Las runas no llevan versión en la ruta
    return f"{DDRAGON_BASE}/cdn/img/{icon}" if icon else None


def rank_icon_src(tier: Optional[str]) -> str:
    return f"/images/{tier.upper() if tier else 'UNRANKED'}_SMALL.jpg"


# ============== MAPAS ==============

def _numeric_key(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_champion_map(data: Optional[Dict[str, Any]]) -> Dict[int, Dict[str, Any]]:
    """
    champion.json["data"] -> {championKey: {"id", "name", "image"}}
    """
    out: Dict[int, Dict[str, Any]] = {}
    for champion in (data or {}).values():
        key = _numeric_key(champion.get("key"))
        if key is None:
            continue
        out[key] = {
            "id": champion.get("id"),
            "name": champion.get("name"),
            "image": champion.get("image"),
        }
    return out


def build_spell_map(spells: Optional[Dict[str, Any]]) -> Dict[int, Dict[str, Any]]:
    """summoner.json["data"] -> {spellKey: spell}"""
    out: Dict[int, Dict[str, Any]] = {}
    for spell in (spells or {}).values():
        key = _numeric_key(spell.get("key"))
        if key is not None:
            out[key] = spell
    return out


def build_rune_map(runes: Optional[Iterable[Dict[str, Any]]]) -> Dict[int, Dict[str, Any]]:
    """runesReforged.json -> {id: definición} para árboles y runas"""
    out: Dict[int, Dict[str, Any]] = {}
    for style in runes or []:
        out[style["id"]] = style
        for slot in style.get("slots") or []:
            for rune in slot.get("runes") or []:
                out[rune["id"]] = rune
    return out


# ============== VERSIONES ==============

def match_patch(game_version: Optional[str]) -> Optional[str]:
    """
    Convierte gameVersion de la partida en parche de Data Dragon.

    "15.24.612.1234" -> "15.24.6", "15.3.1.0" -> "15.3.1"
    """
    if not game_version:
        return None
    parts = game_version.split(".")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    major, minor = parts[0], parts[1]
    patch_num = _numeric_key(parts[2]) if len(parts) > 2 else None
    patch = 0
    if patch_num is not None:
        patch = patch_num if patch_num < 10 else patch_num // 100
    return f"{major}.{minor}.{patch}"


async def resolve_ddragon_version(
    game_version: Optional[str],
    fallback: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Primera versión publicada con el mismo major.minor que la partida"""
    patch = match_patch(game_version)
    if not patch:
        return fallback
    major, minor = patch.split(".")[:2]

    try:
        async with httpx.AsyncClient(transport=transport, timeout=10.0) as client:
            response = await client.get(f"{DDRAGON_BASE}/api/versions.json")
        if not response.is_success:
            return fallback
        versions: List[str] = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug(f"[DDRAGON] No se pudo resolver la versión de {game_version}: {e}")
        return fallback

    prefix = f"{major}.{minor}."
    return next((v for v in versions if v.startswith(prefix)), fallback)


async def fetch_static_data(
    version: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    Descarga hechizos de invocador y runas de una versión.

    Returns:
        {"spells": {...}, "runes": [...]}; lanza httpx.HTTPError si falla
    """
    async with httpx.AsyncClient(transport=transport, timeout=10.0) as client:
        spells_res = await client.get(static_url(version, "data/en_US/summoner.json"))
        runes_res = await client.get(static_url(version, "data/en_US/runesReforged.json"))
    spells_res.raise_for_status()
    runes_res.raise_for_status()
    return {"spells": spells_res.json().get("data", {}), "runes": runes_res.json()}
