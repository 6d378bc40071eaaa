# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Authentication helpers.

This package provides:
- Roles (admin / readonly)
- Signed, self-contained session tokens (HMAC-SHA256, no server-side store)
- Password matching against the configured per-role secrets
"""
