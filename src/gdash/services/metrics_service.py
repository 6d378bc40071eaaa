# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Any, Dict, List

from gdash.core.prometheus import Metric, first_value, parse_prometheus, select
from gdash.infra.garage_api import GarageClient


def _by_endpoint(metrics: List[Metric]) -> List[Dict[str, Any]]:
    rows = [{"endpoint": m.label("api_endpoint"), "count": m.value} for m in metrics]
    return sorted(rows, key=lambda r: r["count"], reverse=True)


def summarize_metrics(metrics: List[Metric]) -> Dict[str, Any]:
    s3_requests = _by_endpoint(select(metrics, "api_s3_request_counter"))
    s3_errors = sorted(
        (
            {
                "endpoint": m.label("api_endpoint"),
                "statusCode": m.label("status_code"),
                "count": m.value,
            }
            for m in select(metrics, "api_s3_error_counter")
        ),
        key=lambda r: r["count"],
        reverse=True,
    )
    admin_requests = _by_endpoint(select(metrics, "api_admin_request_counter"))

    return {
        "s3": {
            "totalRequests": sum(r["count"] for r in s3_requests),
            "totalErrors": sum(r["count"] for r in s3_errors),
            "operations": s3_requests,
            "errors": s3_errors,
        },
        "blockIO": {
            "bytesRead": first_value(metrics, "block_bytes_read"),
            "bytesWritten": first_value(metrics, "block_bytes_written"),
        },
        "admin": {
            "totalRequests": sum(r["count"] for r in admin_requests),
            "operations": admin_requests,
        },
    }


async def get_metrics(client: GarageClient) -> Dict[str, Any]:
    return summarize_metrics(parse_prometheus(await client.metrics_text()))
