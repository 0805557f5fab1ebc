"""Sign-in against the hosted identity provider and per-request user context.

The provider speaks the GoTrue REST dialect: password grant for sign-in,
bearer tokens for the current user, and ``/admin/users`` endpoints that need
the service role key.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from psycopg import Connection

from .config import AuthConfig
from .domain import Role
from .repositories.profile_repo import ProfileRepository
from .repositories.worker_repo import WorkerRepository

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    pass


class PermissionDenied(Exception):
    pass


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    email: str
    access_token: str


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    full_name: str
    role: Role
    shop_id: Optional[int]

    @property
    def is_owner(self) -> bool:
        return self.role == Role.OWNER


def require_owner(ctx: RequestContext) -> RequestContext:
    if not ctx.is_owner:
        raise PermissionDenied("Owner access required.")
    return ctx


def require_shop(ctx: RequestContext) -> int:
    if ctx.shop_id is None:
        raise PermissionDenied("Your account is not linked to a shop.")
    return ctx.shop_id


class IdentityClient:
    def __init__(self, cfg: AuthConfig, session: requests.Session | None = None) -> None:
        self.cfg = cfg
        self.http = session or requests.Session()

    def _headers(self, token: str | None = None, admin: bool = False) -> dict[str, str]:
        key = self.cfg.anon_key
        if admin:
            if not self.cfg.service_role_key:
                raise AuthError("Admin action needs [auth] service_role_key in config.toml.")
            key = self.cfg.service_role_key
        return {
            "apikey": key,
            "Authorization": f"Bearer {token or key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, *, admin: bool = False, token: str | None = None, **kwargs) -> Any:
        url = f"{self.cfg.url}/auth/v1{path}"
        try:
            response = self.http.request(
                method,
                url,
                headers=self._headers(token=token, admin=admin),
                timeout=self.cfg.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            log.error("identity provider unreachable: %s %s: %s", method, path, e)
            raise AuthError(f"Identity provider unreachable: {e}") from e

        if response.status_code >= 400:
            raise AuthError(_error_message(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise AuthError("Identity provider returned invalid JSON.") from e

    def sign_in(self, email: str, password: str) -> AuthSession:
        if not email or not password:
            raise AuthError("Please enter email and password.")
        data = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        user = (data or {}).get("user") or {}
        if not user.get("id") or not data.get("access_token"):
            raise AuthError("Sign-in response had no user.")
        log.info("signed in user_id=%s", user["id"])
        return AuthSession(user_id=str(user["id"]), email=user.get("email", email), access_token=data["access_token"])

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", token=access_token)

    def get_user(self, access_token: str) -> dict:
        return self._request("GET", "/user", token=access_token) or {}

    def create_user(self, email: str, password: str) -> str:
        data = self._request(
            "POST",
            "/admin/users",
            admin=True,
            json={"email": email, "password": password, "email_confirm": True},
        )
        user_id = (data or {}).get("id") or ((data or {}).get("user") or {}).get("id")
        if not user_id:
            raise AuthError("Create user response had no id.")
        return str(user_id)

    def update_password(self, user_id: str, password: str) -> None:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
        self._request("PUT", f"/admin/users/{user_id}", admin=True, json={"password": password})

    def delete_user(self, user_id: str) -> None:
        self._request("DELETE", f"/admin/users/{user_id}", admin=True)

    def list_users(self) -> dict[str, str]:
        """Map user id -> email for every account."""
        data = self._request("GET", "/admin/users", admin=True) or {}
        users = data.get("users", []) if isinstance(data, dict) else data
        return {str(u["id"]): u.get("email", "") for u in users if u.get("id")}


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


def resolve_context(
    conn: Connection,
    user_id: str,
    *,
    profile_repo: ProfileRepository,
    worker_repo: WorkerRepository,
) -> RequestContext:
    profile = profile_repo.get(conn, user_id)
    if profile is not None:
        return RequestContext(
            user_id=profile.id,
            full_name=profile.full_name,
            role=profile.role,
            shop_id=profile.shop_id,
        )

    worker = worker_repo.get(conn, user_id)
    if worker is not None:
        return RequestContext(user_id=worker.id, full_name=worker.name, role=Role.MANAGER, shop_id=worker.shop_id)

    log.error("no profile for authenticated user_id=%s", user_id)
    raise AuthError("Your account is authenticated but no profile was found. Contact support.")
