# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Bucket browsing through the S3 API with the operator's own key pair."""

from __future__ import annotations

from typing import Any, Dict, Optional

MAX_KEYS = 200
DEFAULT_PRESIGN_TTL = 3600
MIN_PRESIGN_TTL = 60
MAX_PRESIGN_TTL = 7 * 24 * 3600


def clamp_ttl(expires_in: Any) -> int:
    try:
        ttl = int(float(expires_in)) if expires_in not in (None, "") else 0
    except (TypeError, ValueError):
        ttl = 0
    if ttl <= 0:
        ttl = DEFAULT_PRESIGN_TTL
    return min(max(ttl, MIN_PRESIGN_TTL), MAX_PRESIGN_TTL)


def list_objects(s3, bucket: str, prefix: str = "", continuation_token: Optional[str] = None) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "Bucket": bucket,
        "Prefix": prefix or "",
        "Delimiter": "/",
        "MaxKeys": MAX_KEYS,
    }
    if continuation_token:
        kwargs["ContinuationToken"] = continuation_token

    res = s3.list_objects_v2(**kwargs)
    objects = []
    for obj in res.get("Contents") or []:
        modified = obj.get("LastModified")
        objects.append(
            {
                "key": obj["Key"],
                "size": obj.get("Size", 0),
                "lastModified": modified.isoformat() if modified else None,
                "etag": obj.get("ETag"),
                "storageClass": obj.get("StorageClass"),
            }
        )
    return {
        "objects": objects,
        "prefixes": [p["Prefix"] for p in res.get("CommonPrefixes") or []],
        "isTruncated": bool(res.get("IsTruncated", False)),
        "nextContinuationToken": res.get("NextContinuationToken"),
    }


def presign_get(s3, bucket: str, key: str, expires_in: Any = None) -> Dict[str, Any]:
    ttl = clamp_ttl(expires_in)
    url = s3.generate_presigned_url(
        "get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=ttl,
    )
    return {"url": url, "expiresIn": ttl}
