# src/taskdash/remote/auth.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.session import BaseSessionProvider
from ..errors import AuthError, TransportError
from ..tasks.task_models import Principal
from .rest_store import raise_for_status

logger = logging.getLogger(__name__)


def _json_object(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError as e:
        raise TransportError(f"auth endpoint returned a non-JSON body (HTTP {resp.status_code})") from e
    if not isinstance(body, dict):
        raise TransportError(f"auth endpoint returned {type(body).__name__}, expected an object")
    return body


def _principal_from_user(user: Any) -> Principal:
    if not isinstance(user, dict) or not user.get("id"):
        raise TransportError("auth response did not contain a user")
    return Principal(id=str(user["id"]), email=user.get("email"))


class PasswordSessionProvider(BaseSessionProvider):
    """
    Email/password session against the hosted auth API ({base_url}/auth/v1).

    The access token is kept in memory only and handed to RestTaskStore through
    access_token(). Signing out always clears the local session, even when the
    remote logout call fails.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        if not base_url or not base_url.strip():
            raise ValueError("backend URL is not set. Set TASKDASH_SUPABASE_URL in your .env.")
        if not api_key or not api_key.strip():
            raise ValueError("backend API key is not set. Set TASKDASH_SUPABASE_ANON_KEY in your .env.")
        self._api_key = api_key.strip()
        self._access_token: str | None = None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/auth/v1",
            timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
        )

    def access_token(self) -> str | None:
        return self._access_token

    def _headers(self, *, bearer: str | None = None) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {bearer or self._api_key}",
        }

    async def _post(self, path: str, *, json: Any = None, bearer: str | None = None,
                    params: dict[str, str] | None = None) -> httpx.Response:
        try:
            resp = await self._client.post(path, json=json, params=params, headers=self._headers(bearer=bearer))
        except httpx.HTTPError as e:
            raise TransportError(f"auth request failed: {e.__class__.__name__}: {e}") from e
        # Bad credentials come back as 400 from the token endpoint.
        if resp.status_code == 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            body = body if isinstance(body, dict) else {}
            msg = body.get("error_description") or body.get("msg") or "invalid credentials"
            raise AuthError(str(msg))
        raise_for_status(resp)
        return resp

    @staticmethod
    def _check_credentials(email: str, password: str) -> None:
        if not email or "@" not in email:
            raise AuthError("a valid email is required")
        if not password:
            raise AuthError("password is required")

    async def sign_in(self, email: str, password: str) -> Principal:
        self._check_credentials(email, password)
        resp = await self._post(
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        data = _json_object(resp)
        token = data.get("access_token")
        if not token:
            raise AuthError("sign-in response did not contain an access token")
        principal = _principal_from_user(data.get("user"))
        self._access_token = str(token)
        logger.info("Signed in user_id=%s", principal.id)
        await self._set_principal(principal)
        return principal

    async def sign_up(self, email: str, password: str) -> Principal | None:
        """
        Create an account.

        Returns the new principal when the backend signs the user in immediately,
        or None when the account still needs email confirmation.
        """
        self._check_credentials(email, password)
        resp = await self._post("/signup", json={"email": email, "password": password})
        data = _json_object(resp)
        token = data.get("access_token")
        if not token:
            logger.info("Sign-up accepted for %s; confirmation pending", email)
            return None
        principal = _principal_from_user(data.get("user"))
        self._access_token = str(token)
        await self._set_principal(principal)
        return principal

    async def sign_out(self) -> None:
        token, self._access_token = self._access_token, None
        if token:
            try:
                await self._post("/logout", bearer=token)
            except (AuthError, TransportError) as e:
                logger.warning("Remote sign-out failed (session cleared locally): %s", e)
        await self._set_principal(None)

    async def close(self) -> None:
        await self._client.aclose()
