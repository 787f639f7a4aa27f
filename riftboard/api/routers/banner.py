"""Subida y lectura de banners de leaderboards"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from riftboard.api.deps import banner_service, get_access_token
from riftboard.schemas.banner import BannerUploadResponse
from riftboard.services.banner_service import BannerService

router = APIRouter(prefix="/api/banner", tags=["Banners"])


@router.post("/upload", response_model=BannerUploadResponse)
async def upload_banner(
    leaderboardId: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    service: BannerService = Depends(banner_service),
    access_token: Optional[str] = Depends(get_access_token),
):
    """
    Sube el banner de un leaderboard propio.

    - **leaderboardId**: id del leaderboard
    - **file**: imagen png, jpg o webp (máx. 4MB)
    """
    # Tipo y tamaño se validan antes de leer el cuerpo completo
    content_type = file.content_type if file is not None else None
    service.validate_upload(leaderboardId, content_type, file.size if file is not None else None,
                            has_file=file is not None)
    content = await file.read()
    return await service.upload(access_token, leaderboardId, content, content_type)


@router.get("/{slug}")
async def get_banner(
    slug: str,
    service: BannerService = Depends(banner_service),
    access_token: Optional[str] = Depends(get_access_token),
):
    """URL firmada (1h) del banner; `{url: null}` si no hay banner o no es visible"""
    lookup = await service.get_banner(slug, access_token)
    headers = {"Cache-Control": lookup.cache_control} if lookup.cache_control else None
    return JSONResponse(lookup.to_dict(), status_code=lookup.status_code, headers=headers)
