# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import hmac
import logging
import time
from dataclasses import dataclass
from typing import Mapping, Optional

from gdash.auth.roles import Role
from gdash.auth.tokens import Rejection, SessionToken, decode_token, encode_token, sign_token

logger = logging.getLogger(__name__)

COOKIE_NAME = "garage-auth"
DEFAULT_MAX_AGE_SECONDS = 86400  # 24 hours
DEFAULT_CLOCK_SKEW_SECONDS = 60


@dataclass(frozen=True)
class Verdict:
    role: Optional[Role] = None
    reason: Optional[Rejection] = None

    @property
    def ok(self) -> bool:
        return self.role is not None


def _now(now: Optional[int]) -> int:
    return int(time.time()) if now is None else int(now)


def issue_session(secret: str, role: Role, *, now: Optional[int] = None) -> str:
    if not secret:
        raise ValueError("Cannot issue a session with an empty secret")
    issued_at = _now(now)
    return encode_token(role, issued_at, sign_token(secret, role, issued_at))


def check_session(
    token: Optional[str],
    secrets_by_role: Mapping[Role, str],
    *,
    now: Optional[int] = None,
    max_age: int = DEFAULT_MAX_AGE_SECONDS,
    clock_skew: int = DEFAULT_CLOCK_SKEW_SECONDS,
) -> Verdict:
    """Validate a presented token and say why it failed, if it did.

    The secret is looked up by the role the token claims; a token is never
    tried against another role's secret.
    """
    if not token:
        return Verdict(reason=Rejection.MISSING)

    decoded = decode_token(token)
    if not isinstance(decoded, SessionToken):
        return Verdict(reason=decoded)

    secret = secrets_by_role.get(decoded.role)
    if not secret:
        return Verdict(reason=Rejection.ROLE_NOT_CONFIGURED)

    current = _now(now)
    if current - decoded.issued_at > max_age:
        return Verdict(reason=Rejection.EXPIRED)
    if decoded.issued_at - current > clock_skew:
        return Verdict(reason=Rejection.FUTURE_DATED)

    expected = sign_token(secret, decoded.role, decoded.issued_at)
    if not hmac.compare_digest(expected.encode("utf-8"), decoded.signature.encode("utf-8")):
        return Verdict(reason=Rejection.BAD_SIGNATURE)

    return Verdict(role=decoded.role)


def authenticate_session(
    token: Optional[str],
    secrets_by_role: Mapping[Role, str],
    *,
    now: Optional[int] = None,
    max_age: int = DEFAULT_MAX_AGE_SECONDS,
    clock_skew: int = DEFAULT_CLOCK_SKEW_SECONDS,
) -> Optional[Role]:
    verdict = check_session(
        token,
        secrets_by_role,
        now=now,
        max_age=max_age,
        clock_skew=clock_skew,
    )
    if not verdict.ok and verdict.reason is not Rejection.MISSING:
        logger.debug("Session rejected: %s", verdict.reason.value)
    return verdict.role
