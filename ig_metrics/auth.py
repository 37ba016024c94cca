from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from .config import AuthSecrets
from .errors import AuthError, InputValidationError


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str | None


def _clean_email(raw: Any) -> str:
    if not isinstance(raw, str):
        return ""
    email = raw.strip()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        return ""
    return email


class MagicLinkSender:
    """Thin async client for the identity provider's passwordless endpoints."""

    def __init__(
        self,
        secrets: AuthSecrets,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = secrets.supabase_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._headers = {
            "apikey": secrets.anon_key,
            "Authorization": f"Bearer {secrets.anon_key}",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def send_magic_link(self, email: Any, redirect_to: str | None = None) -> None:
        address = _clean_email(email)
        if not address:
            raise InputValidationError("A valid email is required")

        params: dict[str, str] = {}
        if redirect_to:
            params["redirect_to"] = redirect_to

        payload = {"email": address, "create_user": True}
        async with self._client() as client:
            try:
                response = await client.post(
                    "/auth/v1/otp", json=payload, params=params, headers=self._headers
                )
            except httpx.RequestError as exc:
                raise AuthError("Failed to send login link", details=str(exc)) from exc

        if response.status_code >= 400:
            raise AuthError(
                "Failed to send login link",
                details=f"{response.status_code}: {response.text}",
            )

    async def get_user(self, access_token: str) -> AuthUser:
        token = (access_token or "").strip()
        if not token:
            raise AuthError("Missing access token")

        headers = {"apikey": self._headers["apikey"], "Authorization": f"Bearer {token}"}
        async with self._client() as client:
            try:
                response = await client.get("/auth/v1/user", headers=headers)
            except httpx.RequestError as exc:
                raise AuthError("Session check failed", details=str(exc)) from exc

        if response.status_code != 200:
            raise AuthError("Invalid or expired session", details=f"status {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise AuthError("Invalid JSON from identity provider") from exc

        user_id = str(body.get("id") or "").strip() if isinstance(body, dict) else ""
        if not user_id:
            raise AuthError("Identity provider returned no user")
        return AuthUser(id=user_id, email=body.get("email"))


def bearer_token(authorization: str | None) -> str:
    value = (authorization or "").strip()
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()
