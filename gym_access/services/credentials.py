"""
Deterministic auth-provider credentials for Telegram users.

The auth provider only understands email + password, so each Telegram user
gets a synthetic email and a password derived from a server secret. The
password is never stored; it is recomputed and re-set on every login, which
is what lets the secret rotate without a data migration.
"""

import hashlib
import hmac

AUTH_EMAIL_DOMAIN = "telegram.local"
PASSWORD_MESSAGE_PREFIX = "identity:"
PASSWORD_DIGEST_CHARS = 48
# Guarantees upper, lower, digit and symbol for the provider's password rules
PASSWORD_SUFFIX = "Aa1!"


def derive_auth_email(telegram_user_id: int) -> str:
    """Synthetic, never-displayed email for a Telegram user."""
    return f"tg_{telegram_user_id}@{AUTH_EMAIL_DOMAIN}"


def derive_auth_password(telegram_user_id: int, secret: str) -> str:
    """Password for a Telegram user under the given server secret."""
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{PASSWORD_MESSAGE_PREFIX}{telegram_user_id}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return digest[:PASSWORD_DIGEST_CHARS] + PASSWORD_SUFFIX
