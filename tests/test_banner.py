"""Tests de los endpoints de banners"""
from unittest.mock import AsyncMock

import pytest

from riftboard.api.deps import banner_service
from riftboard.main import app
from riftboard.services.banner_service import BannerService
from riftboard.services.supabase_service import SupabaseError

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


@pytest.fixture
def supabase():
    return AsyncMock()


@pytest.fixture
def banner_client(client, supabase):
    app.dependency_overrides[banner_service] = lambda: BannerService(supabase)
    return client


def upload(client, content=PNG, content_type="image/png", leaderboard_id="lb1"):
    data = {"leaderboardId": leaderboard_id} if leaderboard_id is not None else {}
    return client.post(
        "/api/banner/upload",
        data=data,
        files={"file": ("banner", content, content_type)},
        headers={"Authorization": "Bearer user-token"},
    )


class TestBannerUploadValidation:
    def test_gif_rejected_before_any_backend_call(self, banner_client, supabase):
        response = upload(banner_client, b"GIF89a", "image/gif")

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid file type (png/jpg/webp only)"}
        supabase.get_user.assert_not_called()
        supabase.select_one.assert_not_called()
        supabase.upload_object.assert_not_called()

    def test_too_large(self, banner_client, supabase):
        response = upload(banner_client, b"0" * (4 * 1024 * 1024 + 1))

        assert response.status_code == 400
        assert response.json() == {"error": "File too large (max 4MB)"}
        supabase.get_user.assert_not_called()

    def test_missing_leaderboard_id(self, banner_client, supabase):
        response = upload(banner_client, leaderboard_id=None)

        assert response.status_code == 400
        assert response.json() == {"error": "Missing leaderboardId"}

    def test_missing_file(self, banner_client, supabase):
        response = banner_client.post("/api/banner/upload", data={"leaderboardId": "lb1"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing file"}


class TestBannerUploadFlow:
    def test_owner_upload(self, banner_client, supabase):
        supabase.get_user.return_value = {"id": "u1"}
        supabase.select_one.return_value = {"id": "lb1", "user_id": "u1"}

        response = upload(banner_client)

        assert response.status_code == 200
        assert response.json() == {"ok": True, "banner_path": "u1/lb1/banner.png"}
        supabase.get_user.assert_awaited_once_with("user-token")
        args, kwargs = supabase.upload_object.await_args
        assert args[:2] == ("leaderboard-banners", "u1/lb1/banner.png")
        assert kwargs["upsert"] is True
        values = supabase.update.await_args.args[1]
        assert values["banner_path"] == "u1/lb1/banner.png"
        assert "banner_updated_at" in values

    def test_anonymous(self, banner_client, supabase):
        supabase.get_user.return_value = None
        supabase.select_one.return_value = {"id": "lb1", "user_id": "u1"}

        response = upload(banner_client)

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        supabase.upload_object.assert_not_called()

    def test_not_owner(self, banner_client, supabase):
        supabase.get_user.return_value = {"id": "u2"}
        supabase.select_one.return_value = {"id": "lb1", "user_id": "u1"}

        response = upload(banner_client)

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}

    def test_leaderboard_not_found(self, banner_client, supabase):
        supabase.get_user.return_value = {"id": "u1"}
        supabase.select_one.return_value = None

        assert upload(banner_client).status_code == 404

    def test_storage_error(self, banner_client, supabase):
        supabase.get_user.return_value = {"id": "u1"}
        supabase.select_one.return_value = {"id": "lb1", "user_id": "u1"}
        supabase.upload_object.side_effect = SupabaseError("bucket missing", 400)

        response = upload(banner_client)

        assert response.status_code == 500
        assert response.json() == {"error": "storage: bucket missing"}
        supabase.update.assert_not_called()


class TestBannerRead:
    def test_no_banner(self, banner_client, supabase):
        supabase.select_one.return_value = {"id": "lb1", "visibility": "PUBLIC", "banner_path": None}

        response = banner_client.get("/api/banner/my-board")

        assert response.status_code == 200
        assert response.json() == {"url": None}

    def test_private_banner_hidden_from_anonymous(self, banner_client, supabase):
        supabase.select_one.return_value = {
            "id": "lb1", "user_id": "u1", "visibility": "PRIVATE", "banner_path": "u1/lb1/banner.png",
        }
        supabase.get_user.return_value = None

        response = banner_client.get("/api/banner/secret")

        assert response.status_code == 404
        assert response.json() == {"url": None}
        supabase.create_signed_url.assert_not_called()

    def test_public_banner_is_cacheable(self, banner_client, supabase):
        supabase.select_one.return_value = {
            "id": "lb1", "user_id": "u1", "visibility": "PUBLIC",
            "banner_path": "u1/lb1/banner.png", "banner_updated_at": "2026-01-10T00:00:00Z",
        }
        supabase.create_signed_url.return_value = "https://cdn.example/signed"

        response = banner_client.get("/api/banner/public-board")

        assert response.status_code == 200
        assert response.json() == {"url": "https://cdn.example/signed", "updatedAt": "2026-01-10T00:00:00Z"}
        assert response.headers["cache-control"] == "public, s-maxage=300, stale-while-revalidate=3600"
        supabase.create_signed_url.assert_awaited_once_with("leaderboard-banners", "u1/lb1/banner.png", 3600)

    def test_private_banner_for_owner_is_not_cacheable(self, banner_client, supabase):
        supabase.select_one.return_value = {
            "id": "lb1", "user_id": "u1", "visibility": "PRIVATE", "banner_path": "u1/lb1/banner.png",
        }
        supabase.get_user.return_value = {"id": "u1"}
        supabase.create_signed_url.return_value = "https://cdn.example/signed"

        response = banner_client.get("/api/banner/secret", headers={"Authorization": "Bearer t"})

        assert response.status_code == 200
        assert "cache-control" not in response.headers

    def test_sign_failure(self, banner_client, supabase):
        supabase.select_one.return_value = {"id": "lb1", "visibility": "UNLISTED", "banner_path": "p.png"}
        supabase.create_signed_url.side_effect = SupabaseError("nope")

        response = banner_client.get("/api/banner/board")

        assert response.status_code == 500
        assert response.json() == {"url": None}
