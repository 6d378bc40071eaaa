# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from gdash.auth.errors import Forbidden, TokenRejected
from gdash.auth.roles import Role
from gdash.auth.session import COOKIE_NAME, authenticate_session
from gdash.config import Settings

logger = logging.getLogger(__name__)

PUBLIC_PREFIXES = ("/api/auth/", "/static/")
PUBLIC_PATHS = {"/login", "/favicon.ico"}
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

# POST routes under /api/garage that only read from the backend.
READ_ONLY_POSTS = {"/api/garage/s3/presign"}


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES)


def is_write_request(method: str, path: str) -> bool:
    if method.upper() in SAFE_METHODS:
        return False
    return path not in READ_ONLY_POSTS


def settings_of(request: Request) -> Settings:
    return request.app.state.settings


def load_role_from_request(request: Request) -> Optional[Role]:
    settings = settings_of(request)
    return authenticate_session(
        request.cookies.get(COOKIE_NAME, ""),
        settings.secrets_by_role,
        max_age=settings.session_max_age,
        clock_skew=settings.clock_skew,
    )


def current_role_optional(request: Request) -> Optional[Role]:
    """Role of the caller; admin when authentication is disabled."""
    if not settings_of(request).auth_enabled:
        return Role.ADMIN
    if hasattr(request.state, "role"):
        return request.state.role
    return load_role_from_request(request)


def cookie_settings(settings: Settings) -> dict:
    return {
        "httponly": True,
        "samesite": "strict",
        "secure": settings.cookie_secure,
        "path": "/",
        "max_age": settings.session_max_age,
    }


def _rejected_response(request: Request) -> Response:
    if request.url.path.startswith("/api/"):
        resp: Response = JSONResponse(TokenRejected().as_body(), status_code=TokenRejected.status_code)
    else:
        next_url = request.url.path
        if request.url.query:
            next_url += "?" + request.url.query
        resp = RedirectResponse(url=f"/login?next={quote(next_url, safe='/')}", status_code=303)
    if COOKIE_NAME in request.cookies:
        resp.delete_cookie(COOKIE_NAME, path="/")
    return resp


async def auth_gate(request: Request, call_next):
    """Authentication gate: every non-public request needs a valid session."""
    if not settings_of(request).auth_enabled or is_public_path(request.url.path):
        return await call_next(request)

    role = load_role_from_request(request)
    if role is None:
        return _rejected_response(request)
    request.state.role = role
    return await call_next(request)


def forbid_readonly_writes(request: Request) -> None:
    """Router dependency: readonly sessions may only read the backend."""
    role = current_role_optional(request)
    if role is None:
        raise TokenRejected()
    if is_write_request(request.method, request.url.path) and not role.allows(Role.ADMIN):
        logger.info("Forbidden %s %s for %s session", request.method, request.url.path, role.value)
        raise Forbidden()
