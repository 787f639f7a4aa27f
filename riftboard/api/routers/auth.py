"""Login con Riot (RSO) que termina en una sesión de Supabase"""
import json
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from riftboard.api.deps import riot_auth_service
from riftboard.core.config import get_settings
from riftboard.services.riot_auth_service import (
    FLASH_COOKIE,
    FLASH_MAX_AGE,
    FLASH_MESSAGE,
    NEXT_COOKIE,
    OAUTH_COOKIE_MAX_AGE,
    STATE_COOKIE,
    OAuthCallbackError,
    RiotAuthService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth/riot", tags=["Auth"])


def sign_in_redirect(message: str) -> RedirectResponse:
    return RedirectResponse(f"/sign-in?error={quote(message, safe='')}", status_code=307)


@router.get("/start")
async def riot_start(next: Optional[str] = None, service: RiotAuthService = Depends(riot_auth_service)):
    """Redirige al authorize de Riot guardando state (y next) en cookies"""
    try:
        start = service.start(next)
    except ValueError as e:
        logger.error(f"[AUTH] No se pudo iniciar el login con Riot: {e}")
        return sign_in_redirect(str(e) or "riot_start_failed")

    secure = get_settings().is_production
    response = RedirectResponse(start.authorize_url, status_code=307)
    response.set_cookie(STATE_COOKIE, start.state, max_age=OAUTH_COOKIE_MAX_AGE, path="/",
                        httponly=True, secure=secure, samesite="lax")
    if start.next_path:
        response.set_cookie(NEXT_COOKIE, start.next_path, max_age=OAUTH_COOKIE_MAX_AGE, path="/",
                            httponly=True, secure=secure, samesite="lax")
    return response


@router.get("/callback")
async def riot_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    service: RiotAuthService = Depends(riot_auth_service),
):
    """
    Completa el login: sesión de Supabase en cookies y redirect al dashboard.

    Cualquier fallo redirige a /sign-in?error=...
    """
    try:
        session = await service.callback(
            code,
            state,
            expected_state=request.cookies.get(STATE_COOKIE),
            next_cookie=request.cookies.get(NEXT_COOKIE),
            host=request.headers.get("host"),
        )
    except OAuthCallbackError as e:
        logger.warning(f"[AUTH] Callback de Riot fallido: {e.message} | {e.details}")
        return sign_in_redirect(e.message)
    except ValueError as e:
        logger.error(f"[AUTH] Configuración incompleta: {e}")
        return sign_in_redirect(str(e))
    except Exception as e:
        logger.exception(f"[AUTH] Error inesperado en el callback de Riot: {e}")
        return sign_in_redirect("Unexpected error")

    secure = get_settings().is_production
    response = RedirectResponse(session.redirect_to, status_code=307)
    response.headers["Cache-Control"] = "no-store"

    for name, value in session.cookies.items():
        response.set_cookie(name, value, path="/", domain=session.cookie_domain,
                            secure=secure, samesite="lax", httponly=False)

    response.set_cookie(FLASH_COOKIE, json.dumps(FLASH_MESSAGE), max_age=FLASH_MAX_AGE, path="/",
                        secure=secure, samesite="lax")
    response.delete_cookie(STATE_COOKIE, path="/")
    response.delete_cookie(NEXT_COOKIE, path="/")
    return response
