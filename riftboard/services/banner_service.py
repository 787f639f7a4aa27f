"""Banners de leaderboards: subida a Storage y URL firmada de lectura"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from riftboard.core.errors import ApiError
from riftboard.services.match_service import now_iso
from riftboard.services.supabase_service import SupabaseError, SupabaseService

logger = logging.getLogger(__name__)

EXTENSION_BY_CONTENT_TYPE = {
    "image/png": "png",
    "image/webp": "webp",
    "image/jpeg": "jpg",
}

PUBLIC_CACHE_CONTROL = "public, s-maxage=300, stale-while-revalidate=3600"


def extension_for(content_type: Optional[str]) -> Optional[str]:
    return EXTENSION_BY_CONTENT_TYPE.get(content_type or "")


def banner_path(user_id: str, leaderboard_id: str, ext: str) -> str:
    # Storage exige que la primera carpeta sea el id del usuario
    return f"{user_id}/{leaderboard_id}/banner.{ext}"


@dataclass
class BannerLookup:
    status_code: int
    url: Optional[str] = None
    updated_at: Optional[str] = None
    cache_control: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.url is None:
            return {"url": None}
        return {"url": self.url, "updatedAt": self.updated_at}


class BannerService:
    def __init__(
        self,
        supabase: SupabaseService,
        bucket: str = "leaderboard-banners",
        max_mb: int = 4,
        signed_url_ttl: int = 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.supabase = supabase
        self.bucket = bucket
        self.max_mb = max_mb
        self.signed_url_ttl = signed_url_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, supabase: SupabaseService) -> "BannerService":
        return cls(
            supabase,
            bucket=settings.BANNER_BUCKET,
            max_mb=settings.BANNER_MAX_MB,
            signed_url_ttl=settings.BANNER_SIGNED_URL_TTL,
        )

    def validate_upload(
        self,
        leaderboard_id: Optional[str],
        content_type: Optional[str],
        size: Optional[int],
        has_file: bool,
    ) -> str:
        """
        Validación previa a cualquier llamada de red.

        Returns:
            La extensión del archivo
        Raises:
            ApiError: 400 con el motivo
        """
        if not leaderboard_id:
            raise ApiError(400, "Missing leaderboardId")
        if not has_file:
            raise ApiError(400, "Missing file")

        ext = extension_for(content_type)
        if ext is None:
            raise ApiError(400, "Invalid file type (png/jpg/webp only)")

        if (size or 0) > self.max_mb * 1024 * 1024:
            raise ApiError(400, f"File too large (max {self.max_mb}MB)")
        return ext

    async def upload(
        self,
        access_token: Optional[str],
        leaderboard_id: Optional[str],
        content: Optional[bytes],
        content_type: Optional[str],
    ) -> Dict[str, Any]:
        """
        Sube (o reemplaza) el banner de un leaderboard del usuario.

        Returns:
            {"ok": True, "banner_path": ...}
        Raises:
            ApiError: 400/401/403/404/500 según el fallo
        """
        ext = self.validate_upload(
            leaderboard_id,
            content_type,
            len(content) if content is not None else None,
            has_file=content is not None,
        )

        user_result, lb_result = await asyncio.gather(
            self.supabase.get_user(access_token),
            self.supabase.select_one("leaderboards", "id, user_id", {"id": f"eq.{leaderboard_id}"},
                                     access_token=access_token),
            return_exceptions=True,
        )

        if isinstance(user_result, SupabaseError):
            raise ApiError(401, user_result.message)
        if isinstance(user_result, BaseException):
            raise user_result
        if not user_result:
            raise ApiError(401, "Unauthorized")

        if isinstance(lb_result, SupabaseError):
            raise ApiError(500, f"leaderboards: {lb_result.message}")
        if isinstance(lb_result, BaseException):
            raise lb_result
        if not lb_result:
            raise ApiError(404, "Leaderboard not found")
        if lb_result.get("user_id") != user_result.get("id"):
            raise ApiError(403, "Forbidden")

        path = banner_path(user_result["id"], leaderboard_id, ext)

        try:
            await self.supabase.upload_object(self.bucket, path, content, content_type, upsert=True)
        except SupabaseError as e:
            raise ApiError(500, f"storage: {e.message}")

        try:
            await self.supabase.update(
                "leaderboards",
                {"banner_path": path, "banner_updated_at": now_iso(self._clock)},
                {"id": f"eq.{leaderboard_id}"},
                access_token=access_token,
            )
        except SupabaseError as e:
            raise ApiError(500, f"leaderboards update: {e.message}")

        logger.info(f"[BANNER] Subido {path}")
        return {"ok": True, "banner_path": path}

    async def get_banner(self, slug: str, access_token: Optional[str]) -> BannerLookup:
        """URL firmada del banner de un leaderboard según su visibilidad"""
        try:
            lb = await self.supabase.select_one(
                "leaderboards",
                "id, user_id, visibility, banner_path, banner_updated_at",
                {"slug": f"eq.{slug}"},
                access_token=access_token,
            )
        except SupabaseError as e:
            logger.warning(f"[BANNER] Error leyendo leaderboard {slug}: {e.message}")
            lb = None

        if not lb or not lb.get("banner_path"):
            return BannerLookup(200)

        is_private = lb.get("visibility") == "PRIVATE"
        if is_private:
            try:
                user = await self.supabase.get_user(access_token)
            except SupabaseError:
                user = None
            if not user or user.get("id") != lb.get("user_id"):
                return BannerLookup(404)

        try:
            url = await self.supabase.create_signed_url(self.bucket, lb["banner_path"], self.signed_url_ttl)
        except SupabaseError as e:
            logger.error(f"[BANNER] No se pudo firmar {lb['banner_path']}: {e.message}")
            return BannerLookup(500)

        return BannerLookup(
            200,
            url=url,
            updated_at=lb.get("banner_updated_at"),
            cache_control=None if is_private else PUBLIC_CACHE_CONTROL,
        )
