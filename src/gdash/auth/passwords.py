# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import hmac
from typing import Mapping, Optional

from gdash.auth.roles import Role

# Admin is tried first so identical passwords resolve to the wider role.
_LOGIN_ORDER = (Role.ADMIN, Role.READONLY)


def verify_password(expected: str, plain: str) -> bool:
    if not expected or not plain:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), plain.encode("utf-8"))


def match_password(secrets_by_role: Mapping[Role, str], plain: str) -> Optional[Role]:
    for role in _LOGIN_ORDER:
        if verify_password(secrets_by_role.get(role, ""), plain):
            return role
    return None
