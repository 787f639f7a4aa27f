"""
Acceso a Supabase (Auth, PostgREST y Storage) con el SDK async.

Los servicios usan esta fachada en lugar del cliente directo: decide qué
clave usar en cada llamada (service role, token del usuario o anon) y
traduce los errores del SDK a SupabaseError. La cookie de sesión se
serializa aquí porque el SDK de Python no la gestiona.
"""
import base64
import json
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlparse

import httpx
from supabase import (
    AsyncClient,
    AsyncClientOptions,
    AuthApiError,
    AuthError,
    PostgrestAPIError,
    StorageException,
    acreate_client,
)

from riftboard.core.logging_config import TimingLogger

logger = logging.getLogger(__name__)

# Tamaño máximo de cada chunk de la cookie de sesión (igual que @supabase/ssr)
MAX_COOKIE_CHUNK = 3180
BASE64_PREFIX = "base64-"

ClientFactory = Callable[[str, str], Awaitable[AsyncClient]]


class SupabaseError(Exception):
    """Error devuelto por Supabase (o fallo de red hablando con Supabase)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@contextmanager
def supabase_errors(operation: str):
    """Mide la llamada y convierte cualquier error del SDK en SupabaseError"""
    try:
        with TimingLogger(f"Supabase {operation}", __name__):
            yield
    except AuthApiError as e:
        raise SupabaseError(e.message, e.status) from e
    except AuthError as e:
        raise SupabaseError(e.message) from e
    except PostgrestAPIError as e:
        raise SupabaseError(e.message or str(e)) from e
    except StorageException as e:
        raise SupabaseError(getattr(e, "message", None) or str(e), getattr(e, "status", None)) from e
    except httpx.HTTPError as e:
        raise SupabaseError(f"Supabase request failed: {e}") from e


async def create_supabase_client(url: str, key: str) -> AsyncClient:
    """Cliente sin sesión persistida ni refresco: el servidor no guarda sesiones"""
    options = AsyncClientOptions(auto_refresh_token=False, persist_session=False)
    return await acreate_client(url, key, options=options)


def _dump(model: Any) -> Optional[Dict[str, Any]]:
    if model is None:
        return None
    return model.model_dump(mode="json")


def _apply_filters(query, filters: Optional[Dict[str, str]]):
    """Aplica filtros {columna: "operador.valor"} con la sintaxis de PostgREST"""
    for column, expression in (filters or {}).items():
        operator, _, value = expression.partition(".")
        query = query.filter(column, operator, value)
    return query


# ============== COOKIES DE SESIÓN ==============

def session_cookie_name(supabase_url: str, name_base: Optional[str] = None) -> str:
    """sb-<project-ref>-auth-token, o el nombre configurado"""
    if name_base:
        return name_base
    host = urlparse(supabase_url).hostname or "localhost"
    return f"sb-{host.split('.')[0]}-auth-token"


def encode_session_cookies(name: str, session: Mapping[str, Any]) -> Dict[str, str]:
    """Serializa la sesión como base64-<json> y la parte en chunks si no cabe"""
    raw = json.dumps(session, separators=(",", ":"))
    value = BASE64_PREFIX + base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")
    if len(value) <= MAX_COOKIE_CHUNK:
        return {name: value}
    return {
        f"{name}.{i}": value[start:start + MAX_COOKIE_CHUNK]
        for i, start in enumerate(range(0, len(value), MAX_COOKIE_CHUNK))
    }


def decode_session_cookies(name: str, cookies: Mapping[str, str]) -> Optional[Dict[str, Any]]:
    """Reconstruye la sesión desde la cookie entera o sus chunks"""
    value = cookies.get(name)
    if value is None:
        chunks = []
        i = 0
        while f"{name}.{i}" in cookies:
            chunks.append(cookies[f"{name}.{i}"])
            i += 1
        if not chunks:
            return None
        value = "".join(chunks)

    try:
        if value.startswith(BASE64_PREFIX):
            payload = value[len(BASE64_PREFIX):]
            value = base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)).decode()
        session = json.loads(value)
    except (ValueError, UnicodeDecodeError):
        logger.debug("[AUTH] Cookie de sesión ilegible")
        return None
    return session if isinstance(session, dict) else None


class SupabaseService:
    """Fachada sobre el cliente async de Supabase"""

    def __init__(
        self,
        url: str,
        anon_key: str,
        service_role_key: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self._factory = client_factory or create_supabase_client
        self._anon: Optional[AsyncClient] = None
        self._service: Optional[AsyncClient] = None

    async def _anon_client(self) -> AsyncClient:
        if self._anon is None:
            self._anon = await self._factory(self.url, self.anon_key)
        return self._anon

    async def _service_client(self) -> AsyncClient:
        if not self.service_role_key:
            raise SupabaseError("Missing SUPABASE_SERVICE_ROLE_KEY")
        if self._service is None:
            self._service = await self._factory(self.url, self.service_role_key)
        return self._service

    @asynccontextmanager
    async def _client(self, access_token: Optional[str] = None, service: bool = False):
        """
        Cliente para una consulta a PostgREST.

        Con access_token se crea un cliente propio de la petición para que
        las políticas RLS vean al usuario; los clientes anon y service role
        se comparten.
        """
        if service:
            yield await self._service_client()
            return
        if not access_token:
            yield await self._anon_client()
            return

        client = await self._factory(self.url, self.anon_key)
        client.postgrest.auth(access_token)
        try:
            yield client
        finally:
            await client.postgrest.aclose()

    # ============== AUTH ==============

    async def get_user(self, access_token: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Usuario dueño del access token.

        Returns:
            El usuario, o None si no hay token o el token no es válido
        Raises:
            SupabaseError: si Auth falla por otro motivo
        """
        if not access_token:
            return None
        client = await self._anon_client()
        try:
            with supabase_errors("auth.get_user"):
                response = await client.auth.get_user(access_token)
        except SupabaseError as e:
            if e.status_code in (401, 403):
                return None
            raise
        return _dump(response.user) if response else None

    async def verify_otp(self, token_hash: str, otp_type: str) -> Dict[str, Any]:
        """Canjea el token hash de un magic link por una sesión"""
        # verify_otp deja la sesión en el cliente, así que no se usa el compartido
        client = await self._factory(self.url, self.anon_key)
        with supabase_errors("auth.verify_otp"):
            response = await client.auth.verify_otp({"token_hash": token_hash, "type": otp_type})
        if response.session is None:
            raise SupabaseError("No session returned")
        return _dump(response.session)

    async def admin_create_user(self, email: str, user_metadata: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._service_client()
        with supabase_errors("auth.admin.create_user"):
            response = await client.auth.admin.create_user(
                {"email": email, "email_confirm": True, "user_metadata": user_metadata}
            )
        return _dump(response.user) or {}

    async def admin_list_users(self, page: int = 1, per_page: int = 1000) -> List[Dict[str, Any]]:
        client = await self._service_client()
        with supabase_errors("auth.admin.list_users"):
            users = await client.auth.admin.list_users(page=page, per_page=per_page)
        return [_dump(user) for user in users]

    async def admin_update_user(self, user_id: str, user_metadata: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._service_client()
        with supabase_errors("auth.admin.update_user_by_id"):
            response = await client.auth.admin.update_user_by_id(user_id, {"user_metadata": user_metadata})
        return _dump(response.user) or {}

    async def admin_generate_link(self, email: str, redirect_to: str) -> Dict[str, Any]:
        """Genera un magic link; devuelve properties con action_link, hashed_token y verification_type"""
        client = await self._service_client()
        with supabase_errors("auth.admin.generate_link"):
            response = await client.auth.admin.generate_link(
                {"type": "magiclink", "email": email, "options": {"redirect_to": redirect_to}}
            )
        return _dump(response)

    # ============== POSTGREST ==============

    async def select(
        self,
        table: str,
        columns: str,
        filters: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None,
        service: bool = False,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        SELECT sobre una tabla.

        Args:
            filters: {columna: "operador.valor"}, ej. {"id": "eq.42"}
            order: "columna.desc" o "tabla(columna).desc"
            offset: solo se aplica junto con limit
        """
        async with self._client(access_token, service) as client:
            query = _apply_filters(client.table(table).select(columns), filters)
            if order:
                column, _, direction = order.rpartition(".")
                query = query.order(column, desc=direction == "desc")
            if limit is not None and offset is not None:
                query = query.range(offset, offset + limit - 1)
            elif limit is not None:
                query = query.limit(limit)
            with supabase_errors(f"select {table}"):
                response = await query.execute()
        return response.data or []

    async def select_one(self, table: str, columns: str, filters: Dict[str, str], **kwargs) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, columns, filters, limit=1, **kwargs)
        return rows[0] if rows else None

    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Dict[str, str],
        access_token: Optional[str] = None,
        service: bool = False,
    ) -> None:
        async with self._client(access_token, service) as client:
            query = _apply_filters(client.table(table).update(values), filters)
            with supabase_errors(f"update {table}"):
                await query.execute()

    async def upsert(
        self,
        table: str,
        values: Dict[str, Any],
        on_conflict: str,
        access_token: Optional[str] = None,
        service: bool = True,
    ) -> None:
        async with self._client(access_token, service) as client:
            with supabase_errors(f"upsert {table}"):
                await client.table(table).upsert(values, on_conflict=on_conflict).execute()

    async def rpc(
        self,
        function: str,
        params: Dict[str, Any],
        access_token: Optional[str] = None,
        service: bool = False,
    ) -> Any:
        async with self._client(access_token, service) as client:
            with supabase_errors(f"rpc {function}"):
                response = await client.rpc(function, params).execute()
        return response.data

    # ============== STORAGE ==============

    async def upload_object(self, bucket: str, path: str, content: bytes, content_type: str, upsert: bool = True) -> None:
        """Sube con la service role; quien llama ya comprobó que el usuario es dueño"""
        client = await self._service_client()
        options = {"content-type": content_type, "x-upsert": "true" if upsert else "false"}
        with supabase_errors(f"storage upload {bucket}"):
            await client.storage.from_(bucket).upload(path, content, options)

    async def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        client = await self._service_client()
        with supabase_errors(f"storage sign {bucket}"):
            data = await client.storage.from_(bucket).create_signed_url(path, expires_in)
        signed = (data or {}).get("signedURL") or (data or {}).get("signedUrl")
        if not signed:
            raise SupabaseError("Missing signedURL in storage response")
        return signed
