# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import boto3
from botocore.config import Config

from gdash.config import ClusterConfig


def get_s3_client(cluster: ClusterConfig, access_key_id: str, secret_access_key: str):
    """S3 client for a cluster, using the caller's own key pair (never the admin token)."""
    if not cluster.s3_endpoint:
        raise ValueError(f"Cluster '{cluster.id}' has no S3 endpoint configured")
    if not access_key_id or not secret_access_key:
        raise ValueError("S3 access key and secret key are required")

    return boto3.client(
        "s3",
        endpoint_url=cluster.s3_endpoint,
        region_name=cluster.region or "garage",
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )
