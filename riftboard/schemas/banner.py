"""Esquemas Pydantic para banners de leaderboards"""
from pydantic import BaseModel


class BannerUploadResponse(BaseModel):
    ok: bool
    banner_path: str
