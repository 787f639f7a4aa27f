"""Errores de la API y su representación JSON"""
import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """
    Error con código HTTP que se devuelve como {"error": ..., "details": ...}

    - 400: validación
    - 401: sin sesión / sesión inválida
    - 403: el usuario no es dueño del recurso
    - 404: no encontrado
    - 429: rate limit de Riot
    - 500: fallo de Riot, storage o base de datos
    """

    def __init__(self, status_code: int, error: str, details: Optional[Any] = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


def riot_error_status(exc: Exception) -> int:
    """429 si Riot agotó el rate limit, 500 para cualquier otro fallo"""
    return 429 if getattr(exc, "status_code", None) == 429 else 500


async def riot_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = riot_error_status(exc)
    logger.error(f"[Riot API] {request.method} {request.url.path} | {exc}")
    return JSONResponse({"error": str(exc)}, status_code=status)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"[API ERROR] {request.method} {request.url.path} | "
        f"Status: {exc.status_code} | Error: {exc.error}"
    )
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)
