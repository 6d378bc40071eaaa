# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from gdash.infra.garage_api import GarageClient

logger = logging.getLogger(__name__)


async def _with_details(client: GarageClient, list_endpoint: str, info_endpoint: str) -> List[Dict[str, Any]]:
    """List items, then fetch every item's details in parallel.

    Items whose detail call fails are left out rather than failing the list.
    """
    items = await client.call("GET", list_endpoint) or []
    results = await asyncio.gather(
        *(client.call("GET", info_endpoint, params={"id": item["id"]}) for item in items),
        return_exceptions=True,
    )
    out: List[Dict[str, Any]] = []
    for item, res in zip(items, results):
        if isinstance(res, Exception):
            logger.warning("Skipping %s %s: %s", info_endpoint, item.get("id"), res)
            continue
        out.append(res)
    return out


async def list_buckets(client: GarageClient) -> List[Dict[str, Any]]:
    return await _with_details(client, "/v2/ListBuckets", "/v2/GetBucketInfo")


async def create_bucket(client: GarageClient, body: Any) -> Any:
    return await client.call("POST", "/v2/CreateBucket", body)


async def allow_bucket_key(client: GarageClient, body: Any) -> Any:
    if not isinstance(body, dict) or not body.get("bucketId") or not body.get("accessKeyId"):
        raise ValueError("bucketId and accessKeyId are required")
    return await client.call("POST", "/v2/AllowBucketKey", body)


async def list_keys(client: GarageClient) -> List[Dict[str, Any]]:
    return await _with_details(client, "/v2/ListKeys", "/v2/GetKeyInfo")


async def create_key(client: GarageClient, body: Any) -> Any:
    return await client.call("POST", "/v2/CreateKey", body)
