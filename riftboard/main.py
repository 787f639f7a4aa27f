import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from riftboard.api.routers import auth, banner, health, internal, leaderboards, players, riot
from riftboard.core.config import get_settings
from riftboard.core.errors import ApiError, api_error_handler, riot_error_handler
from riftboard.core.logging_config import setup_logging
from riftboard.middleware import PerformanceMonitoringMiddleware, RequestLoggingMiddleware
from riftboard.services.riot_service import RiotAPIError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    s = get_settings()
    logger.info(f"[STARTUP] Iniciando Riftboard API ({s.ENVIRONMENT})")
    if not s.RIOT_API_KEY:
        logger.warning("[STARTUP] RIOT_API_KEY no configurada; los proxies de Riot responderán 500")
    if not s.INTERNAL_REVALIDATE_SECRET:
        logger.warning("[STARTUP] INTERNAL_REVALIDATE_SECRET no configurado")
    yield
    logger.info("[SHUTDOWN] Riftboard API detenida")


def create_app() -> FastAPI:
    s = get_settings()
    setup_logging(getattr(logging, s.LOG_LEVEL.upper(), logging.INFO), logs_dir=s.LOG_DIR, to_files=s.LOG_FILES_ENABLED)

    app = FastAPI(title="Riftboard API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(PerformanceMonitoringMiddleware, slow_request_threshold=5.0)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RiotAPIError, riot_error_handler)

    app.include_router(health.router)
    app.include_router(riot.router)
    app.include_router(players.router)
    app.include_router(leaderboards.router)
    app.include_router(banner.router)
    app.include_router(auth.router)
    app.include_router(internal.router)

    @app.get("/")
    def root():
        return {
            "message": "Riftboard API",
            "version": "1.0.0",
            "endpoints": [
                "/health",
                "/api/match",
                "/api/riot",
                "/api/player",
                "/api/leaderboards",
                "/api/banner",
                "/api/auth/riot",
                "/api/internal/revalidate",
                "/docs",
            ],
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("riftboard.main:app", host="0.0.0.0", port=8000, reload=True)
