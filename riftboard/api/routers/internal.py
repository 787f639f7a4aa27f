"""Webhook interno: invalida las cachés de leaderboards tras un refresh"""
import hmac
import logging

from fastapi import APIRouter, Depends, Request

from riftboard.api.deps import leaderboard_service
from riftboard.core.config import get_settings
from riftboard.core.errors import ApiError
from riftboard.schemas.internal import RevalidateRequest, RevalidateResponse
from riftboard.services.leaderboard_service import LeaderboardService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/internal", tags=["Internal"])


@router.post("/revalidate", response_model=RevalidateResponse)
async def revalidate(request: Request, service: LeaderboardService = Depends(leaderboard_service)):
    """
    Invalida últimas partidas y movers de los leaderboards indicados.

    Requiere el header `x-internal-secret`.
    """
    expected = (get_settings().INTERNAL_REVALIDATE_SECRET or "").strip()
    if not expected:
        raise ApiError(500, "Missing INTERNAL_REVALIDATE_SECRET")

    provided = (request.headers.get("x-internal-secret") or "").strip()
    if not provided or not hmac.compare_digest(provided, expected):
        raise ApiError(401, "Unauthorized")

    try:
        payload = await request.json()
    except ValueError:
        payload = None
    body = RevalidateRequest(**payload) if isinstance(payload, dict) else RevalidateRequest()

    lb_ids = body.valid_ids()
    if not lb_ids:
        raise ApiError(400, "lbIds required")

    removed = service.revalidate(lb_ids)
    logger.info(f"[REVALIDATE] {len(lb_ids)} leaderboards, {removed} entradas invalidadas")
    return {"ok": True, "revalidated": lb_ids, "count": len(lb_ids)}
