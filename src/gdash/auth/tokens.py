# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Session token signing and wire format.

A token is ``<role>:<issued_at hex>.<signature hex>`` where the signature is
HMAC-SHA256 over ``SALT:role:issued_at`` keyed with the role's password.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass
from enum import Enum
from typing import Union

from gdash.auth.roles import Role

SALT = "garage-dashboard-v1"

# either case, at most 64 bits
_HEX_RE = re.compile(r"[0-9a-fA-F]{1,16}")


class Rejection(str, Enum):
    MISSING = "missing"
    UNRECOGNIZED_ROLE = "unrecognized_role"
    MALFORMED_TIMESTAMP = "malformed_timestamp"
    ROLE_NOT_CONFIGURED = "role_not_configured"
    EXPIRED = "expired"
    FUTURE_DATED = "future_dated"
    BAD_SIGNATURE = "bad_signature"


@dataclass(frozen=True)
class SessionToken:
    role: Role
    issued_at: int
    signature: str


def sign_token(secret: str, role: Role, issued_at: int) -> str:
    message = f"{SALT}:{role.value}:{issued_at}"
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def encode_token(role: Role, issued_at: int, signature: str) -> str:
    return f"{role.value}:{issued_at:x}.{signature}"


def decode_token(value: str) -> Union[SessionToken, Rejection]:
    """Parse a token string without touching any secret.

    Returns the parsed token, or the reason it could not be parsed.
    """
    role_part, _, rest = (value or "").partition(":")
    role = Role.parse(role_part)
    if role is None:
        return Rejection.UNRECOGNIZED_ROLE

    ts_part, sep, signature = rest.partition(".")
    if not sep or not _HEX_RE.fullmatch(ts_part):
        return Rejection.MALFORMED_TIMESTAMP
    return SessionToken(role=role, issued_at=int(ts_part, 16), signature=signature)
