# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Thin async client for the Garage admin API (v2)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from gdash.config import ClusterConfig

logger = logging.getLogger(__name__)

REMOTE_TIMEOUT_SECONDS = 10.0


class GarageApiError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class GarageClient:
    """Calls one cluster's admin API with its bearer token.

    ``transport`` is passed straight to :class:`httpx.AsyncClient`; the app
    injects one in tests.
    """

    def __init__(
        self,
        cluster: ClusterConfig,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cluster = cluster
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.cluster.admin_token}"}

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            transport=self.transport,
            headers=self._headers(),
        )

    def _require_config(self) -> None:
        if not self.cluster.admin_url or not self.cluster.admin_token:
            raise GarageApiError(
                500,
                f"Cluster '{self.cluster.id}' has no admin URL or admin token configured",
            )

    async def call(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        *,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Perform one admin API call and return its decoded body."""
        self._require_config()
        url = f"{self.cluster.admin_url}{endpoint}"
        try:
            async with self._client() as client:
                res = await client.request(method, url, json=body, params=params)
        except httpx.HTTPError as e:
            logger.warning("Garage API %s %s unreachable: %s", method, endpoint, e)
            raise GarageApiError(502, f"Garage API {method} {endpoint}: {e}") from e

        if res.is_error:
            logger.warning("Garage API %s %s returned %s", method, endpoint, res.status_code)
            raise GarageApiError(
                res.status_code,
                f"Garage API {method} {endpoint}: {res.status_code} {res.reason_phrase} {res.text}".rstrip(),
            )

        if "application/json" in res.headers.get("content-type", ""):
            return res.json()
        return res.text

    async def metrics_text(self) -> str:
        self._require_config()
        try:
            async with self._client() as client:
                res = await client.get(f"{self.cluster.admin_url}/metrics")
        except httpx.HTTPError as e:
            raise GarageApiError(502, f"Metrics endpoint: {e}") from e
        if res.is_error:
            raise GarageApiError(res.status_code, f"Metrics endpoint: {res.status_code} {res.reason_phrase}")
        return res.text

    async def remote_status(self, host: str, admin_port: int) -> Dict[str, Any]:
        """Ask a node that is not (yet) part of the cluster for its status.

        Uses this cluster's admin token; new nodes share it.
        """
        url = f"http://{host}:{admin_port}/v2/GetClusterStatus"
        try:
            async with self._client(timeout=REMOTE_TIMEOUT_SECONDS) as client:
                res = await client.get(url)
        except httpx.HTTPError as e:
            raise GarageApiError(502, f"Cannot reach {host}:{admin_port}, is the admin API accessible?") from e
        if res.is_error:
            raise GarageApiError(502, f"Remote node responded {res.status_code}: {res.text}")
        try:
            return res.json()
        except ValueError as e:
            raise GarageApiError(502, f"Remote node at {host}:{admin_port} did not return JSON") from e
