# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Byte-size and duration helpers shared by the API and the templates."""

from __future__ import annotations

import re
from typing import Optional

_CAPACITY_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB|PB)?")

UNITS = ["B", "KB", "MB", "GB", "TB", "PB"]
MULTIPLIERS = {unit: 1024**i for i, unit in enumerate(UNITS)}


def parse_capacity(text: str) -> Optional[int]:
    """Parse "100GB", "1.5 TB" or "500000000" into bytes (binary multiples).

    Returns None when the text is not a capacity.
    """
    m = _CAPACITY_RE.fullmatch(str(text or "").strip().upper())
    if not m:
        return None
    return round(float(m.group(1)) * MULTIPLIERS[m.group(2) or "B"])


def format_bytes(num: float) -> str:
    if not num or num <= 0:
        return "0 B"
    i = 0
    while num >= 1024 and i < len(UNITS) - 1:
        num /= 1024
        i += 1
    text = f"{num:.1f}".rstrip("0").rstrip(".")
    return f"{text} {UNITS[i]}"


def time_ago(seconds: Optional[int]) -> str:
    if seconds is None:
        return "now"
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"
