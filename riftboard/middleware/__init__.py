"""
Middleware para logging de requests HTTP
Registra cada request y su respuesta, y avisa de los requests lentos
"""
import time
import json
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
import logging

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logea cada request con método, path, cliente, status y tiempo.

    Añade el header X-Process-Time a la respuesta.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        client_host = request.client.host if request.client else None

        logger.info(f"[REQUEST] {request.method} {request.url.path} | Client: {client_host}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.perf_counter() - start_time
            logger.error(
                f"[REQUEST] ERROR en {request.method} {request.url.path} | "
                f"Time: {process_time:.3f}s | Error: {e}",
                exc_info=True,
            )
            raise

        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        log_level = logging.INFO if response.status_code < 400 else logging.WARNING
        logger.log(
            log_level,
            f"[REQUEST] {request.method} {request.url.path} | "
            f"Status: {response.status_code} | Time: {process_time:.3f}s",
        )

        if logger.isEnabledFor(logging.DEBUG):
            # Nunca se loguean cookies ni el header Authorization
            detail = {
                "query_params": dict(request.query_params),
                "user_agent": request.headers.get("user-agent", "unknown"),
                "status_code": response.status_code,
            }
            logger.debug(f"[REQUEST] Detalle: {json.dumps(detail)}")

        return response


class PerformanceMonitoringMiddleware(BaseHTTPMiddleware):
    """Avisa de los requests que superan el umbral (los reintentos de Riot pueden tardar)"""

    def __init__(self, app: ASGIApp, slow_request_threshold: float = 5.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        if process_time > self.slow_request_threshold:
            logger.warning(
                f"[PERFORMANCE] Request lento: {request.method} {request.url.path} | "
                f"Tiempo: {process_time:.3f}s (umbral: {self.slow_request_threshold}s)"
            )
        return response
