"""
Telegram Mini App ``initData`` verification.

Implements the WebApp signature check: the payload is a URL-encoded set of
``key=value`` pairs; all pairs except ``hash`` are sorted by key and joined
with newlines, then signed with ``HMAC_SHA256(HMAC_SHA256("WebAppData",
bot_token), data_check_string)``.

Everything here is pure: the caller passes the bot token, the freshness
window and (optionally) the current time.
"""

import hashlib
import hmac
import json
import math
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from gym_access.errors import (
    BadSignatureError,
    ExpiredCredentialError,
    FutureTimestampError,
    MalformedFieldError,
    MissingFieldError,
)

WEB_APP_DATA_KEY = b"WebAppData"
HASH_FIELD = "hash"
AUTH_DATE_FIELD = "auth_date"
USER_FIELD = "user"
START_PARAM_FIELD = "start_param"

# Clock skew tolerated for credentials stamped slightly in the future
MAX_FUTURE_SKEW_SECONDS = 30


class TelegramUser(BaseModel):
    """The ``user`` object embedded in initData."""

    model_config = ConfigDict(extra="ignore")

    id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def require_finite_number(cls, v: Any) -> int:
        # bool is an int subclass; JSON true/false is not an id
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("telegram user id must be a number")
        if isinstance(v, float):
            if not math.isfinite(v) or not v.is_integer():
                raise ValueError("telegram user id must be a finite integer")
            return int(v)
        return v

    @field_validator("username", "first_name", "last_name", mode="before")
    @classmethod
    def drop_non_strings(cls, v: Any) -> str | None:
        return v if isinstance(v, str) else None


@dataclass(frozen=True)
class InitDataClaims:
    """Verified claims extracted from initData."""

    telegram_user_id: int
    auth_date: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    start_param: str | None = None


def parse_init_data(init_data: str) -> list[tuple[str, str]]:
    """Split initData into ordered ``(key, value)`` pairs, duplicates kept."""
    return parse_qsl(init_data, keep_blank_values=True)


def build_data_check_string(pairs: list[tuple[str, str]]) -> str:
    """Canonical message: every non-hash pair, sorted byte-wise by key."""
    fields = [(key, value) for key, value in pairs if key != HASH_FIELD]
    fields.sort(key=lambda pair: pair[0].encode("utf-8"))
    return "\n".join(f"{key}={value}" for key, value in fields)


def compute_signature(data_check_string: str, bot_token: str) -> str:
    """Hex HMAC the platform is expected to have attached as ``hash``."""
    secret_key = hmac.new(WEB_APP_DATA_KEY, bot_token.encode("utf-8"), hashlib.sha256).digest()
    return hmac.new(secret_key, data_check_string.encode("utf-8"), hashlib.sha256).hexdigest()


def constant_time_equals(left: str, right: str) -> bool:
    """Compare two strings without short-circuiting on the first mismatch.

    Length is not secret (a hex SHA-256 is always 64 chars), so a length
    mismatch returns immediately. Otherwise every byte pair is folded into
    the accumulator.
    """
    left_bytes = left.encode("utf-8")
    right_bytes = right.encode("utf-8")
    if len(left_bytes) != len(right_bytes):
        return False

    diff = 0
    for a, b in zip(left_bytes, right_bytes):
        diff |= a ^ b
    return diff == 0


def _first(pairs: list[tuple[str, str]], name: str) -> str | None:
    for key, value in pairs:
        if key == name:
            return value
    return None


def _parse_auth_date(raw: str | None) -> float:
    if raw is None or not raw.strip():
        raise MissingFieldError("auth_date is missing from initData.")
    try:
        value = float(raw)
    except ValueError:
        raise MalformedFieldError("auth_date is not a number.") from None
    if not math.isfinite(value):
        raise MalformedFieldError("auth_date is not a number.")
    return value


def _parse_user(raw: str | None) -> TelegramUser:
    if not raw:
        raise MissingFieldError("initData has no user. Open the Mini App through the Telegram bot.")

    try:
        payload = json.loads(raw)
    except ValueError:
        raise MalformedFieldError("Could not read user from initData.") from None

    if not isinstance(payload, dict):
        raise MalformedFieldError("Invalid user in initData.")
    if "id" not in payload:
        raise MissingFieldError("user in initData has no id.")

    try:
        return TelegramUser.model_validate(payload)
    except PydanticValidationError:
        raise MalformedFieldError("Invalid telegram user id.") from None


def verify_init_data(
    init_data: str,
    bot_token: str,
    max_age_seconds: int,
    now: int | float | None = None,
) -> InitDataClaims:
    """Verify signed initData and return its claims.

    Raises MissingFieldError / MalformedFieldError for structural problems,
    BadSignatureError, FutureTimestampError or ExpiredCredentialError for
    authentication failures.
    """
    pairs = parse_init_data(init_data)

    provided_hash = _first(pairs, HASH_FIELD)
    if not provided_hash:
        raise MissingFieldError("hash is missing from initData.")

    expected_hash = compute_signature(build_data_check_string(pairs), bot_token)
    if not constant_time_equals(expected_hash, provided_hash.lower()):
        raise BadSignatureError()

    auth_date = _parse_auth_date(_first(pairs, AUTH_DATE_FIELD))
    # auth_date is compared unrounded; the clock is whole seconds
    now_seconds = int(time.time()) if now is None else now
    if auth_date > now_seconds + MAX_FUTURE_SKEW_SECONDS:
        raise FutureTimestampError()
    if now_seconds - auth_date > max_age_seconds:
        raise ExpiredCredentialError()

    user = _parse_user(_first(pairs, USER_FIELD))
    return InitDataClaims(
        telegram_user_id=user.id,
        auth_date=int(auth_date),
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        start_param=_first(pairs, START_PARAM_FIELD) or None,
    )
