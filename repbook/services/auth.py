from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from ..errors import TRANSPORT_CODE, AuthError
from ..logs import log
from ..models import Identity
from ..settings import get_settings
from .store_client import api_headers, error_from_response


OAUTH_PROVIDERS = ("google", "apple")


class AuthSession(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "bearer"
    user: Identity


class SignUpResult(BaseModel):
    user: Optional[Identity] = None
    # None until the address is confirmed when confirmation is required
    session: Optional[AuthSession] = None


def _identity(raw: Dict[str, Any]) -> Identity:
    return Identity(id=str(raw["id"]), email=raw.get("email"))


def _session(data: Dict[str, Any]) -> AuthSession:
    return AuthSession(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=data.get("expires_in"),
        token_type=data.get("token_type") or "bearer",
        user=_identity(data["user"]),
    )


class AuthClient:
    """Email/password and OAuth authentication against the ``/auth/v1`` API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=api_headers(api_key or settings.supabase_anon_key, None),
            timeout=settings.request_timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(
        self,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None,
    ) -> Any:
        headers: Dict[str, str] = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            resp = await self._client.post(path, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise AuthError(TRANSPORT_CODE, str(e) or type(e).__name__) from e
        if resp.status_code >= 400:
            raise error_from_response(resp, AuthError)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        data = await self._post("/auth/v1/signup", json={"email": email, "password": password})
        if data and data.get("access_token"):
            session = _session(data)
            log("auth", f"sign up successful for {email}")
            return SignUpResult(user=session.user, session=session)
        user = data.get("user", data) if data else None
        log("auth", f"sign up pending confirmation for {email}")
        return SignUpResult(user=_identity(user) if user and user.get("id") else None)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        data = await self._post(
            "/auth/v1/token", json={"email": email, "password": password}, params={"grant_type": "password"}
        )
        log("auth", f"sign in successful for {email}")
        return _session(data)

    async def refresh(self, refresh_token: str) -> AuthSession:
        data = await self._post(
            "/auth/v1/token", json={"refresh_token": refresh_token}, params={"grant_type": "refresh_token"}
        )
        return _session(data)

    async def sign_out(self, access_token: str) -> None:
        await self._post("/auth/v1/logout", access_token=access_token)
        log("auth", "sign out successful")

    async def reset_password(self, email: str, redirect_to: Optional[str] = None) -> None:
        redirect = redirect_to or get_settings().password_reset_redirect_url
        await self._post("/auth/v1/recover", json={"email": email}, params={"redirect_to": redirect})

    def oauth_url(self, provider: str, redirect_to: Optional[str] = None) -> str:
        """URL the device browser opens to sign in with an OAuth provider."""
        if provider not in OAUTH_PROVIDERS:
            raise AuthError("unsupported_provider", f"Unsupported OAuth provider: {provider}", status=400)
        query = urlencode({"provider": provider, "redirect_to": redirect_to or get_settings().oauth_redirect_url})
        return f"{self.base_url}/auth/v1/authorize?{query}"
