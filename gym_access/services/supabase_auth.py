"""
Supabase Auth (GoTrue) client.

Covers the admin calls the Telegram login needs (create user, update user,
look up by email) plus the password grant and access-token introspection.
Every failure surfaces as AuthProviderError, a DownstreamError carrying the
provider's own message.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from gym_access.errors import DownstreamError
from gym_access.settings import TelegramAuthConfig

logger = logging.getLogger(__name__)

EMAIL_TAKEN_CODES = {"email_exists", "user_already_exists"}


class AuthProviderError(DownstreamError):
    """Auth provider answered with an error."""

    def __init__(self, message: str, status_code: int | None = None, error_code: str | None = None):
        super().__init__(message)
        self.provider_status = status_code
        self.error_code = error_code

    @property
    def is_email_taken(self) -> bool:
        if self.error_code in EMAIL_TAKEN_CODES:
            return True
        return self.provider_status == 422 and "already been registered" in self.message


@dataclass
class AuthUser:
    """User record returned by the provider."""

    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionTokens:
    access_token: str
    refresh_token: str


def _user_from_payload(data: dict[str, Any]) -> AuthUser:
    # Admin endpoints return the user directly; older versions wrap it
    user = data.get("user", data) if isinstance(data, dict) else {}
    user_id = user.get("id")
    if not user_id:
        raise AuthProviderError("Auth provider returned a user without id")
    return AuthUser(
        id=str(user_id),
        email=user.get("email"),
        user_metadata=user.get("user_metadata") or {},
    )


def _error_from_response(response: httpx.Response) -> AuthProviderError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = (
        body.get("msg")
        or body.get("message")
        or body.get("error_description")
        or body.get("error")
        or f"Auth provider request failed with status {response.status_code}"
    )
    error_code = body.get("error_code") or body.get("code")
    return AuthProviderError(
        str(message),
        status_code=response.status_code,
        error_code=str(error_code) if error_code is not None else None,
    )


class SupabaseAuthClient:
    """Async client for the Supabase Auth REST API."""

    def __init__(
        self,
        config: TelegramAuthConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = f"{config.supabase_url}/auth/v1"
        self.service_role_key = config.service_role_key
        self.anon_key = config.anon_key
        self.timeout = config.http_timeout_seconds
        self._transport = transport

    def _admin_headers(self) -> dict[str, str]:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }

    def _public_headers(self, access_token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        headers: dict[str, str],
        **kwargs,
    ) -> dict[str, Any]:
        """Make a request and decode the JSON answer."""
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{endpoint}",
                    headers=headers,
                    **kwargs,
                )
        except httpx.HTTPError as e:
            raise AuthProviderError(f"Auth provider is unreachable: {e}") from e

        if response.is_error:
            raise _error_from_response(response)
        try:
            data = response.json()
        except ValueError as e:
            raise AuthProviderError("Auth provider returned invalid JSON") from e
        return data if isinstance(data, dict) else {"items": data}

    async def create_user(
        self,
        email: str,
        password: str,
        user_metadata: dict[str, Any] | None = None,
        email_confirm: bool = True,
    ) -> AuthUser:
        """Create a user through the admin API."""
        data = await self._request(
            "POST",
            "/admin/users",
            headers=self._admin_headers(),
            json={
                "email": email,
                "password": password,
                "email_confirm": email_confirm,
                "user_metadata": user_metadata or {},
            },
        )
        return _user_from_payload(data)

    async def update_user(
        self,
        user_id: str,
        password: str | None = None,
        user_metadata: dict[str, Any] | None = None,
    ) -> AuthUser:
        """Update password and/or metadata of a user through the admin API."""
        payload: dict[str, Any] = {}
        if password is not None:
            payload["password"] = password
        if user_metadata is not None:
            payload["user_metadata"] = user_metadata
        data = await self._request(
            "PUT",
            f"/admin/users/{user_id}",
            headers=self._admin_headers(),
            json=payload,
        )
        return _user_from_payload(data)

    async def find_user_by_email(self, email: str) -> AuthUser | None:
        """Find a user by exact (case-insensitive) email via the admin list filter."""
        data = await self._request(
            "GET",
            "/admin/users",
            headers=self._admin_headers(),
            params={"filter": email, "page": 1, "per_page": 50},
        )
        wanted = email.strip().lower()
        for item in data.get("users", []):
            if (item.get("email") or "").lower() == wanted:
                return _user_from_payload(item)
        return None

    async def sign_in_with_password(self, email: str, password: str) -> SessionTokens:
        """Password grant; returns the session token pair."""
        data = await self._request(
            "POST",
            "/token",
            headers=self._public_headers(),
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        if not access_token or not refresh_token:
            raise AuthProviderError("Could not create an auth session.")
        return SessionTokens(access_token=access_token, refresh_token=refresh_token)

    async def get_user(self, access_token: str) -> AuthUser:
        """Resolve an access token to its user."""
        data = await self._request(
            "GET",
            "/user",
            headers=self._public_headers(access_token),
        )
        return _user_from_payload(data)
