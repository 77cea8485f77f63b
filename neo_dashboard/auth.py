import logging
from typing import Optional, Tuple

import httpx

from . import config
from .schemas import User

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
INITIAL_SESSION = "INITIAL_SESSION"


class AuthError(Exception):
    pass


def project_user(data: Optional[dict]) -> Optional[User]:
    """Read-only projection of a provider user payload."""

    if not data:
        return None
    metadata = data.get("user_metadata") or {}
    return User(
        id=data["id"],
        email=data.get("email") or "",
        name=metadata.get("name"),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
    )


class AuthState:
    def __init__(self):
        self.user: Optional[User] = None
        self.loading = True
        self.error: Optional[str] = None

    def apply(self, event: str, user: Optional[User]) -> None:
        """Update the projection from a provider session event."""

        logger.debug("Auth state change: %s %s", event, user.email if user else None)
        if event == TOKEN_REFRESHED:
            return
        if event == SIGNED_OUT:
            self.user = None
        elif self._user_id() != (user.id if user else None):
            self.user = user
        self.loading = False

    def _user_id(self) -> Optional[str]:
        return self.user.id if self.user else None


class GoTrueIdentity:
    """Email/password client for a Supabase (GoTrue) auth endpoint."""

    def __init__(self, url: str = "", anon_key: str = ""):
        self.url = (url or config.SUPABASE_URL).rstrip("/")
        self.anon_key = anon_key or config.SUPABASE_ANON_KEY

    def build_client(self) -> httpx.AsyncClient:
        if not self.url or not self.anon_key:
            raise AuthError("Identity provider is not configured")
        return httpx.AsyncClient(
            base_url=f"{self.url}/auth/v1",
            timeout=config.AUTH_TIMEOUT,
            headers={"apikey": self.anon_key},
        )

    async def _request(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> dict:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        async with self.build_client() as client:
            try:
                resp = await client.request(method, path, headers=headers, **kwargs)
            except httpx.HTTPError as exc:
                logger.error("Identity provider unreachable: %s", exc)
                raise AuthError("Authentication service is unreachable") from exc
        if resp.is_error:
            raise AuthError(_error_message(resp))
        if not resp.content:
            return {}
        return resp.json()

    async def sign_in(self, email: str, password: str) -> Tuple[str, User]:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return data["access_token"], project_user(data["user"])

    async def sign_up(self, email: str, password: str, name: Optional[str] = None) -> Tuple[Optional[str], User]:
        """Register a user.

        Returns an access token only when the provider signs the user in
        straight away; otherwise email confirmation is pending.
        """

        data = await self._request(
            "POST",
            "/signup",
            json={"email": email, "password": password, "data": {"name": name}},
        )
        if "access_token" in data:
            return data["access_token"], project_user(data["user"])
        return None, project_user(data)

    async def sign_out(self, token: str) -> None:
        await self._request("POST", "/logout", token=token)

    async def get_user(self, token: str) -> Optional[User]:
        return project_user(await self._request("GET", "/user", token=token))


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"Authentication failed ({resp.status_code})"
    if not isinstance(body, dict):
        return f"Authentication failed ({resp.status_code})"
    for key in ("error_description", "msg", "message", "error"):
        if body.get(key):
            return str(body[key])
    return f"Authentication failed ({resp.status_code})"
