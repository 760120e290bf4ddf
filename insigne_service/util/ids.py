from __future__ import annotations

import secrets

import ulid


ACCESS_TOKEN_BYTES = 24


def new_insigne_id() -> str:
    return f"ins_{ulid.new().str}"


def new_answers_id() -> str:
    return f"ans_{ulid.new().str}"


def new_asset_id() -> str:
    return f"ast_{ulid.new().str}"


def new_access_token() -> str:
    return secrets.token_hex(ACCESS_TOKEN_BYTES)
