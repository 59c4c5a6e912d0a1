"""Client for the managed auth provider's REST API (GoTrue-compatible)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

USERS_PAGE_SIZE = 1000


class AuthProviderError(Exception):
    """Auth provider unreachable or answered unexpectedly."""


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str | None
    name: str | None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> AuthUser:
        meta = data.get("user_metadata") or {}
        return cls(
            id=data["id"],
            email=data.get("email"),
            name=meta.get("full_name") or meta.get("name"),
        )


class AuthClient:
    """Resolves session tokens to users and performs the few admin calls we need."""

    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._timeout = timeout

    def _admin_headers(self) -> dict[str, str]:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
        }

    async def get_user(self, access_token: str) -> AuthUser | None:
        """The user behind a session token, or None if the provider rejects it."""
        if not self._base_url:
            raise AuthProviderError("AUTH_URL is not configured")
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.get(
                    f"{self._base_url}/auth/v1/user",
                    headers={
                        "apikey": self._service_key,
                        "Authorization": f"Bearer {access_token}",
                    },
                )
            except httpx.RequestError as e:
                raise AuthProviderError(f"Auth provider unreachable: {e}") from e

        if response.status_code in (401, 403):
            return None
        if response.status_code >= 400:
            raise AuthProviderError(f"Auth provider error: {response.status_code}")
        return AuthUser.from_api(response.json())

    async def confirm_email(self, user_id: str) -> None:
        """Mark a user's email as confirmed (invite links are trusted)."""
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.put(
                    f"{self._base_url}/auth/v1/admin/users/{user_id}",
                    headers=self._admin_headers(),
                    json={"email_confirm": True},
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise AuthProviderError(f"Could not confirm email for {user_id}: {e}") from e

    async def list_user_emails(self) -> set[str]:
        """Lowercased emails of all registered users."""
        emails: set[str] = set()
        page = 1
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            while True:
                try:
                    response = await client.get(
                        f"{self._base_url}/auth/v1/admin/users",
                        headers=self._admin_headers(),
                        params={"page": page, "per_page": USERS_PAGE_SIZE},
                    )
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    raise AuthProviderError(f"Could not list users: {e}") from e

                users = response.json().get("users") or []
                emails.update(u["email"].lower() for u in users if u.get("email"))
                if len(users) < USERS_PAGE_SIZE:
                    break
                page += 1
        return emails
