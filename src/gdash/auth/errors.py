# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations


class AuthError(Exception):
    status_code = 401
    message = "Unauthorized"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message

    def as_body(self) -> dict:
        return {"error": self.message}


class NoCredentialsConfigured(AuthError):
    """Login attempted while the operator configured no password at all."""

    status_code = 500
    message = "No dashboard passwords configured"


class InvalidPassword(AuthError):
    status_code = 401
    message = "Invalid password"


class TokenRejected(AuthError):
    """Missing, expired, malformed or forged session; the reasons are merged."""

    status_code = 401
    message = "Unauthorized"


class Forbidden(AuthError):
    status_code = 403
    message = "Read-only access: this action requires the admin role"
