"""
Puente de Riot Sign-On (OAuth) a sesiones de Supabase.

Flujo:
1. start(): genera el state y la URL de autorización de Riot.
2. callback(): canjea el code, lee la identidad Riot, crea/actualiza el
   usuario en Supabase y genera un magic link que se verifica en el
   servidor para obtener la sesión.
"""
import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse

import httpx

from riftboard.core.config import required
from riftboard.services.match_service import now_iso
from riftboard.services.supabase_service import (
    SupabaseError,
    SupabaseService,
    encode_session_cookies,
    session_cookie_name,
)

logger = logging.getLogger(__name__)

STATE_COOKIE = "riot_oauth_state"
NEXT_COOKIE = "riot_oauth_next"
FLASH_COOKIE = "dashboard_flash"
OAUTH_COOKIE_MAX_AGE = 10 * 60
FLASH_MAX_AGE = 120
FLASH_MESSAGE = {
    "kind": "auth",
    "tone": "success",
    "message": "Signed in with Riot. Finish profile setup in Dashboard.",
}
USERNAME_MAX_LENGTH = 24

SUMMONER_FALLBACK_HOSTS = ["na1", "euw1", "eun1", "kr", "br1", "jp1", "la1", "la2", "oc1", "tr1", "ru"]

ALREADY_REGISTERED = re.compile(r"already been registered|already exists|already registered", re.IGNORECASE)


class OAuthCallbackError(Exception):
    """Cualquier fallo del flujo OAuth; la ruta lo convierte en redirect a /sign-in"""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass
class OAuthStart:
    authorize_url: str
    state: str
    next_path: Optional[str] = None


@dataclass
class OAuthSession:
    redirect_to: str
    cookies: Dict[str, str] = field(default_factory=dict)
    cookie_domain: Optional[str] = None


def safe_next_path(next_path: Optional[str]) -> Optional[str]:
    """Solo se aceptan rutas relativas al sitio"""
    if next_path and next_path.startswith("/") and not next_path.startswith("//"):
        return next_path
    return None


def display_name(account: Optional[Dict[str, Any]], userinfo: Dict[str, Any]) -> Optional[str]:
    """gameName#tagLine, o lo que ofrezca userinfo"""
    account = account or {}
    if account.get("gameName") and account.get("tagLine"):
        return f"{account['gameName']}#{account['tagLine']}"
    if userinfo.get("preferred_username"):
        return userinfo["preferred_username"]
    if userinfo.get("game_name") and userinfo.get("tag_line"):
        return f"{userinfo['game_name']}#{userinfo['tag_line']}"
    return None


def build_user_metadata(
    riot_sub: str,
    account: Optional[Dict[str, Any]],
    summoner: Optional[Dict[str, Any]],
    riot_display: Optional[str],
) -> Dict[str, Any]:
    account = account or {}
    summoner = summoner or {}
    metadata: Dict[str, Any] = {"riot_sub": riot_sub}
    if account.get("gameName"):
        metadata["riot_game_name"] = account["gameName"]
    if account.get("tagLine"):
        metadata["riot_tag_line"] = account["tagLine"]
    if summoner.get("puuid"):
        metadata["riot_puuid"] = summoner["puuid"]
    if isinstance(summoner.get("profileIconId"), int):
        metadata["riot_profile_icon_id"] = summoner["profileIconId"]
    if riot_display:
        metadata["full_name"] = riot_display
    return metadata


def extract_token_hash(link: Dict[str, Any]) -> tuple:
    """
    (token_hash, type) del magic link generado.

    Se busca primero en las propiedades de la respuesta, luego en la query y
    por último en el fragmento del action_link.
    """
    props = link.get("properties") or link
    action_link = props.get("action_link") or ""
    parsed = urlparse(action_link)
    query = parse_qs(parsed.query)
    fragment = parse_qs(parsed.fragment)

    token_hash = props.get("hashed_token") or (query.get("token_hash") or [None])[0]
    token_type = props.get("verification_type") or (query.get("type") or [None])[0]
    if not token_hash:
        token_hash = (fragment.get("token_hash") or [None])[0]
    if not token_type:
        token_type = (fragment.get("type") or [None])[0]
    return token_hash, token_type


class RiotAuthService:
    def __init__(self, settings, supabase: SupabaseService, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.supabase = supabase
        self._transport = transport

    # ============== START ==============

    def start(self, next_path: Optional[str] = None) -> OAuthStart:
        client_id = required(self.settings.RIOT_CLIENT_ID, "RIOT_CLIENT_ID")
        redirect_uri = required(self.settings.RIOT_REDIRECT_URI, "RIOT_REDIRECT_URI")
        state = secrets.token_urlsafe(24)

        query = urlencode({
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": (self.settings.RIOT_SCOPES or "").strip() or "openid",
            "state": state,
        })
        return OAuthStart(
            authorize_url=f"{self.settings.RIOT_AUTHORIZE_URL}?{query}",
            state=state,
            next_path=safe_next_path(next_path),
        )

    # ============== RIOT ==============

    async def _bearer_get(self, client: httpx.AsyncClient, url: str, token: str) -> Optional[Dict[str, Any]]:
        response = await client.get(url, headers={"Authorization": f"Bearer {token}"})
        if not response.is_success:
            return None
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> str:
        response = await client.post(
            self.settings.RIOT_TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": required(self.settings.RIOT_REDIRECT_URI, "RIOT_REDIRECT_URI"),
                "client_id": required(self.settings.RIOT_CLIENT_ID, "RIOT_CLIENT_ID"),
                "client_secret": required(self.settings.RIOT_CLIENT_SECRET, "RIOT_CLIENT_SECRET"),
            },
        )
        if not response.is_success:
            raise OAuthCallbackError("Token exchange failed", response.text[:200])
        try:
            data = response.json()
        except ValueError:
            raise OAuthCallbackError("Token exchange failed", "invalid_json")
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise OAuthCallbackError("No access_token returned")
        return access_token

    async def _account_me(self, client: httpx.AsyncClient, token: str) -> Optional[Dict[str, Any]]:
        data = await self._bearer_get(client, self.settings.RIOT_ACCOUNT_ME_URL, token)
        if data is None:
            return None
        return {
            "gameName": data["gameName"].strip() if isinstance(data.get("gameName"), str) else None,
            "tagLine": data["tagLine"].strip() if isinstance(data.get("tagLine"), str) else None,
        }

    def summoner_me_endpoints(self) -> List[str]:
        configured = (self.settings.RIOT_SUMMONER_ME_URL or "").strip()
        if configured:
            return [configured]
        return [f"https://{host}.api.riotgames.com/lol/summoner/v4/summoners/me" for host in SUMMONER_FALLBACK_HOSTS]

    async def _summoner_me(self, client: httpx.AsyncClient, token: str) -> Optional[Dict[str, Any]]:
        for endpoint in self.summoner_me_endpoints():
            data = await self._bearer_get(client, endpoint, token)
            if data is None:
                continue
            return {
                "profileIconId": data.get("profileIconId") if isinstance(data.get("profileIconId"), int) else None,
                "puuid": data.get("puuid") if isinstance(data.get("puuid"), str) else None,
            }
        return None

    # ============== SUPABASE ==============

    async def _ensure_user(self, email: str, metadata: Dict[str, Any]) -> Optional[str]:
        try:
            created = await self.supabase.admin_create_user(email, metadata)
            return (created.get("user") or created).get("id")
        except SupabaseError as e:
            if not ALREADY_REGISTERED.search(e.message or ""):
                raise OAuthCallbackError("Create user failed", e.message)

        try:
            users = await self.supabase.admin_list_users(page=1, per_page=1000)
        except SupabaseError as e:
            raise OAuthCallbackError("List users failed", e.message)
        return next((u.get("id") for u in users if u.get("email") == email), None)

    async def _sync_profile(self, user_id: str, riot_display: Optional[str], metadata: Dict[str, Any]) -> None:
        if riot_display:
            await self.supabase.upsert(
                "profiles",
                {
                    "user_id": user_id,
                    "username": riot_display[:USERNAME_MAX_LENGTH],
                    "updated_at": now_iso(),
                },
                on_conflict="user_id",
            )
        await self.supabase.admin_update_user(user_id, metadata)

    def redirect_target(self, next_cookie: Optional[str]) -> str:
        post_login = (self.settings.APP_POST_LOGIN_REDIRECT or "").strip() or "https://cwf.lol/dashboard"
        next_path = safe_next_path(next_cookie)
        if not next_path:
            return post_login
        parsed = urlparse(post_login)
        return urljoin(f"{parsed.scheme}://{parsed.netloc}", next_path)

    def cookie_domain(self, host: Optional[str]) -> Optional[str]:
        if self.settings.SUPABASE_COOKIE_DOMAIN:
            return self.settings.SUPABASE_COOKIE_DOMAIN
        root = (self.settings.APP_ROOT_DOMAIN or "").strip().lstrip(".")
        hostname = (host or "").split(":")[0]
        if root and hostname.endswith(root):
            return f".{root}"
        return None

    # ============== CALLBACK ==============

    async def callback(
        self,
        code: Optional[str],
        state: Optional[str],
        expected_state: Optional[str],
        next_cookie: Optional[str] = None,
        host: Optional[str] = None,
    ) -> OAuthSession:
        """
        Completa el login con Riot y devuelve las cookies de sesión.

        Raises:
            OAuthCallbackError: en cualquier paso fallido
        """
        if not code:
            raise OAuthCallbackError("Missing code")
        if not state or not expected_state or not secrets.compare_digest(state, expected_state):
            raise OAuthCallbackError("Invalid state")

        started = time.time()
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                access_token = await self._exchange_code(client, code)

                userinfo = await self._bearer_get(client, self.settings.RIOT_USERINFO_URL, access_token)
                if userinfo is None:
                    raise OAuthCallbackError("Userinfo failed")
                riot_sub = userinfo.get("sub")
                if not isinstance(riot_sub, str) or not riot_sub:
                    raise OAuthCallbackError("No riot sub in userinfo")

                account = await self._account_me(client, access_token)
                summoner = await self._summoner_me(client, access_token)
        except httpx.HTTPError as e:
            raise OAuthCallbackError("Riot request failed", str(e))

        riot_display = display_name(account, userinfo)
        email = userinfo.get("email") or f"{riot_sub}@riot.local"
        metadata = build_user_metadata(riot_sub, account, summoner, riot_display)

        try:
            user_id = await self._ensure_user(email, metadata)
            if user_id and riot_display:
                await self._sync_profile(user_id, riot_display, metadata)

            redirect_to = self.redirect_target(next_cookie)
            link = await self.supabase.admin_generate_link(email, redirect_to)
        except SupabaseError as e:
            raise OAuthCallbackError(e.message)

        props = link.get("properties") or link
        if not props.get("action_link"):
            raise OAuthCallbackError("Magic link generation failed", "missing_action_link")

        token_hash, token_type = extract_token_hash(link)
        if not token_hash or token_type not in ("magiclink", "email"):
            raise OAuthCallbackError("Missing token_hash/type in generated action link")

        try:
            session = await self.supabase.verify_otp(token_hash, token_type)
        except SupabaseError as e:
            raise OAuthCallbackError("verifyOtp failed", e.message)

        verified_id = (session.get("user") or {}).get("id") or user_id
        if verified_id:
            try:
                await self._sync_profile(verified_id, riot_display, metadata)
            except SupabaseError as e:
                raise OAuthCallbackError(e.message)

        name = session_cookie_name(self.settings.SUPABASE_URL, self.settings.SUPABASE_COOKIE_NAME)
        logger.info(f"[AUTH] Login con Riot completado para {riot_sub} en {time.time() - started:.2f}s")
        return OAuthSession(
            redirect_to=redirect_to,
            cookies=encode_session_cookies(name, session),
            cookie_domain=self.cookie_domain(host),
        )
