# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = "admin"
    READONLY = "readonly"

    @classmethod
    def parse(cls, value: str) -> Optional["Role"]:
        """Exact match on the wire value; anything else is not a role."""
        for role in cls:
            if role.value == value:
                return role
        return None

    def allows(self, required: "Role") -> bool:
        return ROLE_ORDER[self] >= ROLE_ORDER[required]


ROLE_ORDER = {Role.READONLY: 0, Role.ADMIN: 1}
