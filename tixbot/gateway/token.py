"""
Gateway token authority

The bearer token is embedded in every control UI URL handed out, so a valid
token is never rotated: a new one is generated only when none exists.
"""

import secrets
from typing import Any

from tixbot.errors import TokenGenerationError

TOKEN_BYTES = 24


def normalize_token(value: Any) -> str:
    """Return the trimmed token if it is a non-empty string, else ""."""
    if isinstance(value, str):
        return value.strip()
    return ""


def generate_token(nbytes: int = TOKEN_BYTES) -> str:
    """
    Generate a new bearer token.

    Args:
        nbytes: Bytes of entropy (default: 24, i.e. 48 hex characters)

    Returns:
        str: Lowercase hexadecimal token

    Raises:
        TokenGenerationError: The OS random source is unavailable
    """
    try:
        return secrets.token_hex(nbytes)
    except (NotImplementedError, OSError) as e:
        raise TokenGenerationError(f"Secure random source unavailable: {e}") from e


def resolve_token(existing: Any) -> str:
    """Reuse a valid existing token verbatim (trimmed); otherwise generate one."""
    token = normalize_token(existing)
    return token or generate_token()
