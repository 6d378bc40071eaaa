# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Form, Header, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from gdash.auth.errors import AuthError, InvalidPassword, NoCredentialsConfigured
from gdash.auth.passwords import match_password
from gdash.auth.roles import Role
from gdash.auth.session import COOKIE_NAME, issue_session
from gdash.config import Settings, load_settings
from gdash.core.units import format_bytes, time_ago
from gdash.infra.garage_api import GarageApiError, GarageClient
from gdash.infra.s3_client import get_s3_client
from gdash.permissions import (
    auth_gate,
    cookie_settings,
    current_role_optional,
    forbid_readonly_writes,
    settings_of,
)
from gdash.services import cluster_service, metrics_service, provisioning_service, s3_service

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.filters["bytes"] = format_bytes
templates.env.filters["ago"] = time_ago

garage = APIRouter(prefix="/api/garage", dependencies=[Depends(forbid_readonly_writes)])


def create_app(
    settings: Optional[Settings] = None,
    *,
    garage_transport=None,
    s3_factory=None,
) -> FastAPI:
    """Build the dashboard app.

    ``garage_transport`` (an httpx transport) and ``s3_factory`` replace the
    real backend connections in tests.
    """
    app = FastAPI(title="Garage dashboard")
    app.state.settings = settings or load_settings()
    app.state.garage_transport = garage_transport
    app.state.s3_factory = s3_factory or get_s3_client

    app.middleware("http")(auth_gate)
    app.add_exception_handler(AuthError, _auth_error_handler)
    app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
    app.include_router(pages)
    app.include_router(garage)
    return app


async def _auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(exc.as_body(), status_code=exc.status_code)


def _error_response(e: Exception) -> JSONResponse:
    if isinstance(e, GarageApiError):
        return JSONResponse({"error": e.message}, status_code=e.status)
    if isinstance(e, ValueError):
        return JSONResponse({"error": str(e)}, status_code=400)
    logger.exception("Unexpected error while calling the storage backend")
    return JSONResponse({"error": str(e) or type(e).__name__}, status_code=502)


def _garage_client(request: Request, cluster_id: Optional[str]) -> GarageClient:
    settings = settings_of(request)
    cluster = settings.get_cluster(cluster_id)
    if cluster is None:
        raise GarageApiError(
            500,
            "No cluster configured. Set GARAGE_CLUSTERS or GARAGE_ADMIN_URL/GARAGE_ADMIN_TOKEN",
        )
    return GarageClient(cluster, timeout=settings.request_timeout, transport=request.app.state.garage_transport)


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise ValueError("Request body must be valid JSON") from None


def _safe_next(next_url: str) -> str:
    if not next_url or not next_url.startswith("/") or next_url.startswith("//"):
        return "/"
    return next_url


def _set_session_cookie(resp: Response, settings: Settings, role: Role) -> None:
    token = issue_session(settings.secrets_by_role[role], role)
    resp.set_cookie(COOKIE_NAME, token, **cookie_settings(settings))


def _login(request: Request, password: Any) -> Role:
    settings = settings_of(request)
    if not settings.auth_enabled:
        raise NoCredentialsConfigured()
    role = match_password(settings.secrets_by_role, password if isinstance(password, str) else "")
    if role is None:
        client = request.client.host if request.client else "unknown"
        logger.warning("Failed dashboard login from %s", client)
        raise InvalidPassword()
    logger.info("Dashboard login as %s", role.value)
    return role


# ------------------ Pages & auth ------------------

pages = APIRouter()


def _render(request: Request, template_name: str, ctx: dict, status_code: int = 200):
    """TemplateResponse wrapper injecting global UI state."""
    settings = settings_of(request)
    base_ctx = {
        "role": current_role_optional(request),
        "auth_enabled": settings.auth_enabled,
        "clusters": [c.public() for c in settings.clusters],
    }
    return templates.TemplateResponse(request, template_name, {**base_ctx, **(ctx or {})}, status_code=status_code)


@pages.get("/login", response_class=HTMLResponse)
def login_get(request: Request, next: str = "/"):
    if not settings_of(request).auth_enabled or current_role_optional(request):
        return RedirectResponse(url=_safe_next(next), status_code=303)
    return _render(request, "login.html", {"next": next, "error": ""})


@pages.post("/login")
def login_post(request: Request, password: str = Form(""), next: str = Form("/")):
    try:
        role = _login(request, password)
    except AuthError as e:
        return _render(request, "login.html", {"next": next, "error": e.message}, status_code=e.status_code)
    resp = RedirectResponse(url=_safe_next(next), status_code=303)
    _set_session_cookie(resp, settings_of(request), role)
    return resp


@pages.post("/logout")
def logout_post():
    resp = RedirectResponse(url="/login", status_code=303)
    resp.delete_cookie(COOKIE_NAME, path="/")
    return resp


@pages.post("/api/auth/login")
async def api_login(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Bad request"}, status_code=400)
    if not isinstance(body, dict) or not isinstance(body.get("password"), str):
        return JSONResponse({"error": "Bad request"}, status_code=400)
    if not settings_of(request).auth_enabled:
        raise NoCredentialsConfigured()

    role = _login(request, body["password"])
    resp = JSONResponse({"ok": True, "role": role.value})
    _set_session_cookie(resp, settings_of(request), role)
    return resp


@pages.post("/api/auth/logout")
def api_logout():
    resp = JSONResponse({"ok": True})
    resp.delete_cookie(COOKIE_NAME, path="/")
    return resp


@pages.get("/api/auth/role")
def api_role(request: Request):
    role = current_role_optional(request)
    return {"role": role.value if role else None, "authEnabled": settings_of(request).auth_enabled}


@pages.get("/api/clusters")
def api_clusters(request: Request):
    return [c.public() for c in settings_of(request).clusters]


@pages.get("/", response_class=HTMLResponse)
async def home(request: Request, cluster_id: Optional[str] = Query(None, alias="cluster")):
    ctx: dict = {"health": None, "status": None, "buckets": [], "errors": [], "cluster_id": cluster_id}
    try:
        client = _garage_client(request, cluster_id)
    except GarageApiError as e:
        ctx["errors"].append(e.message)
        return _render(request, "index.html", ctx)

    ctx["cluster_id"] = client.cluster.id
    health, status, buckets = await asyncio.gather(
        cluster_service.get_health(client),
        cluster_service.get_status(client),
        provisioning_service.list_buckets(client),
        return_exceptions=True,
    )
    for key, value in (("health", health), ("status", status), ("buckets", buckets)):
        if isinstance(value, Exception):
            ctx["errors"].append(value.message if isinstance(value, GarageApiError) else str(value))
        else:
            ctx[key] = value
    ctx["total_bytes"] = sum(b.get("bytes") or 0 for b in ctx["buckets"])
    return _render(request, "index.html", ctx)


# ------------------ Storage backend proxy ------------------


@garage.get("/health")
async def garage_health(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        return await cluster_service.get_health(_garage_client(request, cluster_id))
    except Exception as e:
        return _error_response(e)


@garage.get("/status")
async def garage_status(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        return await cluster_service.get_status(_garage_client(request, cluster_id))
    except Exception as e:
        return _error_response(e)


@garage.get("/buckets")
async def garage_buckets(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        return await provisioning_service.list_buckets(_garage_client(request, cluster_id))
    except Exception as e:
        return _error_response(e)


@garage.post("/buckets")
async def garage_create_bucket(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        body = await _json_body(request)
        return await provisioning_service.create_bucket(_garage_client(request, cluster_id), body)
    except Exception as e:
        return _error_response(e)


@garage.post("/bucket-allow")
async def garage_bucket_allow(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        body = await _json_body(request)
        return await provisioning_service.allow_bucket_key(_garage_client(request, cluster_id), body)
    except Exception as e:
        return _error_response(e)


@garage.get("/keys")
async def garage_keys(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        return await provisioning_service.list_keys(_garage_client(request, cluster_id))
    except Exception as e:
        return _error_response(e)


@garage.post("/keys")
async def garage_create_key(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        body = await _json_body(request)
        return await provisioning_service.create_key(_garage_client(request, cluster_id), body)
    except Exception as e:
        return _error_response(e)


@garage.get("/layout")
async def garage_layout(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        return await cluster_service.get_layout(_garage_client(request, cluster_id))
    except Exception as e:
        return _error_response(e)


@garage.post("/layout")
async def garage_stage_layout(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        body = await _json_body(request)
        return await cluster_service.stage_layout(_garage_client(request, cluster_id), body)
    except Exception as e:
        return _error_response(e)


@garage.post("/layout/apply")
async def garage_apply_layout(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        body = await _json_body(request)
        return await cluster_service.apply_layout(_garage_client(request, cluster_id), body)
    except Exception as e:
        return _error_response(e)


@garage.post("/layout/revert")
async def garage_revert_layout(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        body = await _json_body(request)
        return await cluster_service.revert_layout(_garage_client(request, cluster_id), body)
    except Exception as e:
        return _error_response(e)


@garage.post("/connect")
async def garage_connect(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        body = await _json_body(request)
        return await cluster_service.connect_nodes(_garage_client(request, cluster_id), body)
    except Exception as e:
        return _error_response(e)


@garage.post("/discover")
async def garage_discover(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        body = await _json_body(request)
        if not isinstance(body, dict):
            raise ValueError("IP address is required")
        return await cluster_service.discover_node(
            _garage_client(request, cluster_id),
            body.get("ip"),
            admin_port=body.get("adminPort"),
            rpc_port=body.get("rpcPort"),
        )
    except Exception as e:
        return _error_response(e)


@garage.get("/metrics")
async def garage_metrics(request: Request, cluster_id: Optional[str] = Query(None, alias="clusterId")):
    try:
        return await metrics_service.get_metrics(_garage_client(request, cluster_id))
    except Exception as e:
        return _error_response(e)


def _s3_for(request: Request, cluster_id: Optional[str], access_key: str, secret_key: str):
    settings = settings_of(request)
    cluster = settings.get_cluster(cluster_id)
    if cluster is None:
        raise GarageApiError(500, "No cluster configured")
    return request.app.state.s3_factory(cluster, access_key, secret_key)


@garage.get("/s3/objects")
def s3_objects(
    request: Request,
    bucket: str = "",
    prefix: str = "",
    continuation_token: Optional[str] = Query(None, alias="continuationToken"),
    cluster_id: Optional[str] = Query(None, alias="clusterId"),
    access_key: str = Header("", alias="x-s3-access-key"),
    secret_key: str = Header("", alias="x-s3-secret-key"),
):
    if not bucket:
        return JSONResponse({"error": "bucket query parameter is required"}, status_code=400)
    if not access_key or not secret_key:
        return JSONResponse({"error": "S3 credentials are required"}, status_code=401)
    try:
        s3 = _s3_for(request, cluster_id, access_key, secret_key)
        return s3_service.list_objects(s3, bucket, prefix, continuation_token)
    except GarageApiError as e:
        return _error_response(e)
    except Exception as e:
        return JSONResponse({"error": str(e) or type(e).__name__}, status_code=502)


@garage.post("/s3/presign")
async def s3_presign(
    request: Request,
    cluster_id: Optional[str] = Query(None, alias="clusterId"),
    access_key: str = Header("", alias="x-s3-access-key"),
    secret_key: str = Header("", alias="x-s3-secret-key"),
):
    if not access_key or not secret_key:
        return JSONResponse({"error": "S3 credentials are required"}, status_code=401)
    try:
        body = await _json_body(request)
    except ValueError as e:
        return _error_response(e)
    bucket = body.get("bucket") if isinstance(body, dict) else None
    key = body.get("key") if isinstance(body, dict) else None
    if not bucket or not key:
        return JSONResponse({"error": "bucket and key are required"}, status_code=400)
    try:
        s3 = await run_in_threadpool(_s3_for, request, cluster_id, access_key, secret_key)
        return await run_in_threadpool(s3_service.presign_get, s3, bucket, key, body.get("expiresIn"))
    except GarageApiError as e:
        return _error_response(e)
    except Exception as e:
        return JSONResponse({"error": str(e) or type(e).__name__}, status_code=502)
