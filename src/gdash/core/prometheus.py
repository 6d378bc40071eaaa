# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Minimal Prometheus text exposition parser.

Only what the metrics panel needs: ``name{label="v",...} value`` samples.
Comments, blank lines and lines that do not parse are skipped.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

_SAMPLE_RE = re.compile(r"^([a-zA-Z_:][a-zA-Z0-9_:]*)(?:\{(.*?)\})?\s+(\S+)")
_LABEL_RE = re.compile(r'([a-zA-Z_][a-zA-Z0-9_]*)="((?:[^"\\]|\\.)*)"')


@dataclass(frozen=True)
class Metric:
    name: str
    value: float
    labels: Dict[str, str] = field(default_factory=dict)

    def label(self, key: str, default: str = "unknown") -> str:
        return self.labels.get(key) or default


def _unescape(v: str) -> str:
    return v.replace('\\"', '"').replace("\\n", "\n").replace("\\\\", "\\")


def parse_prometheus(text: str) -> List[Metric]:
    out: List[Metric] = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        m = _SAMPLE_RE.match(line)
        if not m:
            continue
        try:
            value = float(m.group(3))
        except ValueError:
            continue
        if math.isnan(value):
            continue
        labels = {k: _unescape(v) for k, v in _LABEL_RE.findall(m.group(2) or "")}
        out.append(Metric(name=m.group(1), value=value, labels=labels))
    return out


def select(metrics: Iterable[Metric], name: str) -> List[Metric]:
    return [m for m in metrics if m.name == name]


def first_value(metrics: Iterable[Metric], name: str, default: float = 0.0) -> float:
    for m in metrics:
        if m.name == name:
            return m.value
    return default
