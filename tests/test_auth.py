"""Tests del login con Riot (RSO) hacia sesiones de Supabase"""
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from riftboard.api.deps import riot_auth_service
from riftboard.core.config import get_settings
from riftboard.main import app
from riftboard.services.riot_auth_service import (
    NEXT_COOKIE,
    STATE_COOKIE,
    RiotAuthService,
    display_name,
    extract_token_hash,
    safe_next_path,
)
from riftboard.services.supabase_service import SupabaseError, decode_session_cookies

SUMMONER_ME = "https://kr.api.riotgames.com/lol/summoner/v4/summoners/me"
SESSION = {"access_token": "at", "refresh_token": "rt", "user": {"id": "u1"}}


def riot_handler(request: httpx.Request) -> httpx.Response:
    url = str(request.url)
    if url.startswith("https://auth.riotgames.com/token"):
        return httpx.Response(200, json={"access_token": "rso-token"})
    assert request.headers["authorization"] == "Bearer rso-token"
    if url.startswith("https://auth.riotgames.com/userinfo"):
        return httpx.Response(200, json={"sub": "riot-sub-1"})
    if url.endswith("/riot/account/v1/accounts/me"):
        return httpx.Response(200, json={"gameName": " Faker ", "tagLine": "KR1"})
    if url == SUMMONER_ME:
        return httpx.Response(200, json={"puuid": "pp", "profileIconId": 29})
    return httpx.Response(404)


def set_cookies(response):
    """{nombre: valor} de los Set-Cookie, sin filtrar por dominio"""
    cookies = {}
    for header in response.headers.get_list("set-cookie"):
        name, _, rest = header.partition("=")
        cookies[name] = rest.split(";", 1)[0].strip('"')
    return cookies


def make_settings(**overrides):
    values = {
        "RIOT_CLIENT_ID": "client",
        "RIOT_CLIENT_SECRET": "secret",
        "RIOT_REDIRECT_URI": "https://cwf.lol/api/auth/riot/callback",
        "RIOT_SUMMONER_ME_URL": SUMMONER_ME,
        "APP_ROOT_DOMAIN": "cwf.lol",
    }
    values.update(overrides)
    return get_settings().model_copy(update=values)


@pytest.fixture
def supabase():
    mock = AsyncMock()
    mock.admin_create_user.return_value = {"id": "u1"}
    mock.admin_generate_link.return_value = {
        "properties": {
            "action_link": "https://abcdref.supabase.co/auth/v1/verify?token=abc&type=magiclink",
            "hashed_token": "hash",
            "verification_type": "magiclink",
        }
    }
    mock.verify_otp.return_value = SESSION
    return mock


@pytest.fixture
def auth_client(client, supabase):
    def install(handler=riot_handler, **overrides):
        service = RiotAuthService(make_settings(**overrides), supabase, transport=httpx.MockTransport(handler))
        app.dependency_overrides[riot_auth_service] = lambda: service
        return client

    return install


def test_safe_next_path():
    assert safe_next_path("/lb/mine") == "/lb/mine"
    assert safe_next_path("//evil.com") is None
    assert safe_next_path("https://evil.com") is None
    assert safe_next_path(None) is None


def test_display_name():
    assert display_name({"gameName": "Faker", "tagLine": "KR1"}, {}) == "Faker#KR1"
    assert display_name(None, {"preferred_username": "faker"}) == "faker"
    assert display_name({}, {"game_name": "A", "tag_line": "B"}) == "A#B"
    assert display_name(None, {}) is None


def test_extract_token_hash_from_fragment():
    link = {"action_link": "https://x/verify#token_hash=abc&type=email"}
    assert extract_token_hash(link) == ("abc", "email")


class TestStart:
    def test_redirects_to_riot_with_state(self, auth_client):
        client = auth_client()

        response = client.get("/api/auth/riot/start?next=/lb/mine", follow_redirects=False)

        assert response.status_code == 307
        location = urlparse(response.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == "https://auth.riotgames.com/authorize"
        query = parse_qs(location.query)
        assert query["client_id"] == ["client"]
        assert query["response_type"] == ["code"]
        assert query["scope"] == ["openid"]
        assert set_cookies(response)[STATE_COOKIE] == query["state"][0]
        assert set_cookies(response)[NEXT_COOKIE] == "/lb/mine"

    def test_external_next_is_ignored(self, auth_client):
        response = auth_client().get("/api/auth/riot/start?next=//evil.com", follow_redirects=False)
        assert NEXT_COOKIE not in set_cookies(response)

    def test_missing_configuration(self, auth_client):
        response = auth_client(RIOT_CLIENT_ID=None).get("/api/auth/riot/start", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"].startswith("/sign-in?error=Missing%20required%20env%20var")


class TestCallback:
    def test_invalid_state(self, auth_client, supabase):
        client = auth_client()
        client.cookies.set(STATE_COOKIE, "expected")

        response = client.get("/api/auth/riot/callback?code=c&state=other", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/sign-in?error=Invalid%20state"
        supabase.admin_create_user.assert_not_called()

    def test_missing_code(self, auth_client):
        response = auth_client().get("/api/auth/riot/callback?state=s", follow_redirects=False)
        assert response.headers["location"] == "/sign-in?error=Missing%20code"

    def test_success_sets_session_cookies(self, auth_client, supabase):
        client = auth_client()
        client.cookies.set(STATE_COOKIE, "st")
        client.cookies.set(NEXT_COOKIE, "/lb/mine")

        response = client.get(
            "/api/auth/riot/callback?code=c&state=st", headers={"host": "app.cwf.lol"}, follow_redirects=False
        )

        assert response.status_code == 307
        assert response.headers["location"] == "https://cwf.lol/lb/mine"
        assert response.headers["cache-control"] == "no-store"
        assert decode_session_cookies("sb-abcdref-auth-token", set_cookies(response)) == SESSION
        raw_cookies = response.headers.get_list("set-cookie")
        assert any("Domain=.cwf.lol" in c for c in raw_cookies if c.startswith("sb-abcdref-auth-token"))
        assert any(c.startswith("dashboard_flash=") for c in raw_cookies)
        assert any(c.startswith(f"{STATE_COOKIE}=") and "Max-Age=0" in c for c in raw_cookies)

        email, metadata = supabase.admin_create_user.await_args.args
        assert email == "riot-sub-1@riot.local"
        assert metadata == {
            "riot_sub": "riot-sub-1",
            "riot_game_name": "Faker",
            "riot_tag_line": "KR1",
            "riot_puuid": "pp",
            "riot_profile_icon_id": 29,
            "full_name": "Faker#KR1",
        }
        profile = supabase.upsert.await_args.args[1]
        assert profile["user_id"] == "u1"
        assert profile["username"] == "Faker#KR1"
        supabase.admin_generate_link.assert_awaited_once_with("riot-sub-1@riot.local", "https://cwf.lol/lb/mine")
        supabase.verify_otp.assert_awaited_once_with("hash", "magiclink")

    def test_existing_user_is_looked_up(self, auth_client, supabase):
        supabase.admin_create_user.side_effect = SupabaseError(
            "A user with this email address has already been registered", 422
        )
        supabase.admin_list_users.return_value = [
            {"id": "other", "email": "x@y.z"},
            {"id": "u9", "email": "riot-sub-1@riot.local"},
        ]
        client = auth_client()
        client.cookies.set(STATE_COOKIE, "st")

        response = client.get("/api/auth/riot/callback?code=c&state=st", follow_redirects=False)

        assert response.headers["location"] == "https://cwf.lol/dashboard"
        assert supabase.admin_update_user.await_args_list[0].args[0] == "u9"

    def test_create_user_failure(self, auth_client, supabase):
        supabase.admin_create_user.side_effect = SupabaseError("Database error", 500)
        client = auth_client()
        client.cookies.set(STATE_COOKIE, "st")

        response = client.get("/api/auth/riot/callback?code=c&state=st", follow_redirects=False)

        assert response.headers["location"] == "/sign-in?error=Create%20user%20failed"
        supabase.admin_generate_link.assert_not_called()

    def test_verify_failure(self, auth_client, supabase):
        supabase.verify_otp.side_effect = SupabaseError("Token has expired", 403)
        client = auth_client()
        client.cookies.set(STATE_COOKIE, "st")

        response = client.get("/api/auth/riot/callback?code=c&state=st", follow_redirects=False)

        assert response.headers["location"] == "/sign-in?error=verifyOtp%20failed"

    def test_riot_unreachable(self, auth_client, supabase):
        def handler(request):
            raise httpx.ConnectError("riot down", request=request)

        client = auth_client(handler)
        client.cookies.set(STATE_COOKIE, "st")

        response = client.get("/api/auth/riot/callback?code=x&state=st", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/sign-in?error=Riot%20request%20failed"
        supabase.admin_create_user.assert_not_called()

    @pytest.mark.parametrize("body", [["not", "a", "dict"], {"access_token": 42}])
    def test_malformed_token_response(self, auth_client, body):
        def handler(request):
            if str(request.url).startswith("https://auth.riotgames.com/token"):
                return httpx.Response(200, json=body)
            return riot_handler(request)

        client = auth_client(handler)
        client.cookies.set(STATE_COOKIE, "st")

        response = client.get("/api/auth/riot/callback?code=x&state=st", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/sign-in?error=No%20access_token%20returned"
