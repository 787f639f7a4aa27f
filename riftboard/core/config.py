# riftboard/core/config.py
from functools import lru_cache
from pathlib import Path
from typing import Optional, List

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    # === Entorno ===
    ENVIRONMENT: str = "development"
    APP_BASE_URL: str = "http://localhost:8000"
    APP_POST_LOGIN_REDIRECT: str = "https://cwf.lol/dashboard"
    # Dominio raíz para cookies cuando SUPABASE_COOKIE_DOMAIN no está definido
    APP_ROOT_DOMAIN: Optional[str] = None
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # === Riot API ===
    RIOT_API_KEY: Optional[str] = None
    RIOT_MAX_RETRIES: int = 3
    RIOT_RETRY_DELAY: float = 2.0

    # === Riot OAuth (RSO) ===
    RIOT_CLIENT_ID: Optional[str] = None
    RIOT_CLIENT_SECRET: Optional[str] = None
    RIOT_REDIRECT_URI: Optional[str] = None
    RIOT_SCOPES: str = "openid"
    RIOT_AUTHORIZE_URL: str = "https://auth.riotgames.com/authorize"
    RIOT_TOKEN_URL: str = "https://auth.riotgames.com/token"
    RIOT_USERINFO_URL: str = "https://auth.riotgames.com/userinfo"
    RIOT_ACCOUNT_ME_URL: str = "https://americas.api.riotgames.com/riot/account/v1/accounts/me"
    RIOT_SUMMONER_ME_URL: Optional[str] = None

    # === Supabase (Auth / Postgres / Storage) ===
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_COOKIE_DOMAIN: Optional[str] = None
    SUPABASE_COOKIE_NAME: Optional[str] = None

    # === Banners ===
    BANNER_BUCKET: str = "leaderboard-banners"
    BANNER_MAX_MB: int = 4
    BANNER_SIGNED_URL_TTL: int = 60 * 60

    # === Webhook interno ===
    INTERNAL_REVALIDATE_SECRET: Optional[str] = None

    # === Data Dragon / temporada ===
    DDRAGON_VERSION: str = "15.24.1"
    RANKED_SEASON_START: Optional[str] = None
    MOVERS_TIMEZONE: str = "America/Chicago"

    # === Configuración de Caché (segundos) ===
    CACHE_MAX_ENTRIES: int = 50
    CACHE_TTL_SUMMARY: float = 5 * 60
    CACHE_TTL_MATCHES: float = 5 * 60
    CACHE_TTL_MATCH_DETAIL: float = 10 * 60
    CACHE_TTL_STATIC: float = 24 * 60 * 60
    PREFETCH_TTL: float = 5 * 60
    PREFETCH_SWEEP_INTERVAL: float = 60
    PREFETCH_DEBOUNCE: float = 1.0
    MATCH_CACHE_TTL: float = 5 * 60
    LATEST_GAMES_CACHE_TTL: float = 30
    MOVERS_CACHE_TTL: float = 90
    TIMELINE_DB_TTL: float = 24 * 60 * 60

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_FILES_ENABLED: bool = True

    # Configuración de pydantic v2
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def banner_max_bytes(self) -> int:
        return self.BANNER_MAX_MB * 1024 * 1024

    def riot_api_key(self) -> str:
        """Devuelve la API key de Riot sin comillas ni espacios"""
        raw = (self.RIOT_API_KEY or "").strip().strip("'\"")
        if not raw:
            raise ValueError("RIOT_API_KEY is not set")
        return raw


def required(value: Optional[str], name: str) -> str:
    """Valida que una variable de entorno obligatoria tenga valor"""
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"Missing required env var: {name}")
    return cleaned


@lru_cache
def get_settings() -> Settings:
    return Settings()
