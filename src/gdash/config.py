# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Process configuration.

Everything is read from the environment once, in :func:`load_settings`, and the
resulting :class:`Settings` is handed to the app. Nothing below the app reads
``os.environ`` on its own.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from gdash.auth.roles import Role
from gdash.auth.session import DEFAULT_CLOCK_SKEW_SECONDS, DEFAULT_MAX_AGE_SECONDS

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "y"}


@dataclass(frozen=True)
class ClusterConfig:
    id: str
    name: str
    admin_url: str
    admin_token: str
    s3_endpoint: str = ""
    region: str = "garage"
    replication_factor: int = 1

    def public(self) -> Dict[str, Any]:
        """Fields safe to hand to the browser (no admin token)."""
        return {
            "id": self.id,
            "name": self.name,
            "s3Endpoint": self.s3_endpoint,
            "region": self.region,
        }


@dataclass(frozen=True)
class Settings:
    admin_password: str = ""
    readonly_password: str = ""
    session_max_age: int = DEFAULT_MAX_AGE_SECONDS
    clock_skew: int = DEFAULT_CLOCK_SKEW_SECONDS
    cookie_secure: bool = False
    request_timeout: float = 30.0
    log_level: str = "INFO"
    clusters: Tuple[ClusterConfig, ...] = field(default_factory=tuple)

    @property
    def secrets_by_role(self) -> Dict[Role, str]:
        out: Dict[Role, str] = {}
        if self.admin_password:
            out[Role.ADMIN] = self.admin_password
        if self.readonly_password:
            out[Role.READONLY] = self.readonly_password
        return out

    @property
    def auth_enabled(self) -> bool:
        return bool(self.secrets_by_role)

    def get_cluster(self, cluster_id: Optional[str] = None) -> Optional[ClusterConfig]:
        """Cluster by id, falling back to the first configured one."""
        if cluster_id:
            for c in self.clusters:
                if c.id == cluster_id:
                    return c
        return self.clusters[0] if self.clusters else None


def _cluster_from_dict(raw: Mapping[str, Any]) -> ClusterConfig:
    cid = str(raw.get("id") or "default")
    return ClusterConfig(
        id=cid,
        name=str(raw.get("name") or cid),
        admin_url=str(raw.get("adminUrl") or "").rstrip("/"),
        admin_token=str(raw.get("adminToken") or ""),
        s3_endpoint=str(raw.get("s3Endpoint") or ""),
        region=str(raw.get("region") or "garage"),
        replication_factor=int(raw.get("replicationFactor") or 1),
    )


def _clusters_from_list(items: Any) -> List[ClusterConfig]:
    if not isinstance(items, list):
        return []
    return [_cluster_from_dict(c) for c in items if isinstance(c, dict)]


def load_clusters(environ: Mapping[str, str]) -> Tuple[ClusterConfig, ...]:
    """Resolve clusters from GARAGE_CLUSTERS (JSON), GARAGE_CLUSTERS_FILE (YAML)
    or, for a single cluster, the flat GARAGE_ADMIN_* variables."""
    raw_json = environ.get("GARAGE_CLUSTERS", "").strip()
    if raw_json:
        try:
            clusters = _clusters_from_list(json.loads(raw_json))
        except (ValueError, TypeError) as e:
            logger.warning("Ignoring unparsable GARAGE_CLUSTERS: %s", e)
            clusters = []
        if clusters:
            return tuple(clusters)

    path = environ.get("GARAGE_CLUSTERS_FILE", "").strip()
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            clusters = _clusters_from_list(raw.get("clusters") if isinstance(raw, dict) else raw)
            if clusters:
                return tuple(clusters)
        else:
            logger.warning("GARAGE_CLUSTERS_FILE %s does not exist", p)

    admin_url = environ.get("GARAGE_ADMIN_URL", "")
    admin_token = environ.get("GARAGE_ADMIN_TOKEN", "")
    if not admin_url or not admin_token:
        return ()
    return (
        _cluster_from_dict(
            {
                "id": "default",
                "name": "Default",
                "adminUrl": admin_url,
                "adminToken": admin_token,
                "s3Endpoint": environ.get("GARAGE_S3_ENDPOINT", ""),
                "region": environ.get("GARAGE_REGION", "garage"),
                "replicationFactor": environ.get("GARAGE_REPLICATION_FACTOR", "1"),
            }
        ),
    )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ

    production = env.get("GDASH_ENV", "development").lower() == "production"
    secure_raw = env.get("GDASH_COOKIE_SECURE")
    cookie_secure = production if secure_raw is None else secure_raw.lower() in _TRUTHY

    settings = Settings(
        admin_password=env.get("DASHBOARD_PASSWORD", ""),
        readonly_password=env.get("READ_ONLY_PASSWORD", ""),
        session_max_age=int(env.get("GDASH_SESSION_MAX_AGE", str(DEFAULT_MAX_AGE_SECONDS))),
        clock_skew=int(env.get("GDASH_CLOCK_SKEW", str(DEFAULT_CLOCK_SKEW_SECONDS))),
        cookie_secure=cookie_secure,
        request_timeout=float(env.get("GDASH_REQUEST_TIMEOUT", "30")),
        log_level=env.get("GDASH_LOG_LEVEL", "INFO").upper(),
        clusters=load_clusters(env),
    )

    if not settings.auth_enabled:
        logger.warning("No dashboard password configured: authentication is disabled")
    elif settings.admin_password and settings.admin_password == settings.readonly_password:
        logger.warning("DASHBOARD_PASSWORD and READ_ONLY_PASSWORD are identical; logins get the admin role")
    if not settings.clusters:
        logger.warning("No Garage cluster configured")
    return settings
