"""
Share and admin link tokens.

Both are bearer secrets passed in URLs: the share token grants read access to a
challenge, the admin token grants participant removal. They are capabilities,
not sessions.
"""

import hmac
import secrets
from typing import Optional

# No ambiguous characters (0/o, 1/l/i) so links survive being read aloud
SHARE_TOKEN_ALPHABET = "23456789abcdefghjkmnpqrstuvwxyz"
SHARE_TOKEN_LENGTH = 10

ADMIN_TOKEN_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
ADMIN_TOKEN_LENGTH = 32


def _random_string(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_share_token() -> str:
    return _random_string(SHARE_TOKEN_ALPHABET, SHARE_TOKEN_LENGTH)


def generate_admin_token() -> str:
    return _random_string(ADMIN_TOKEN_ALPHABET, ADMIN_TOKEN_LENGTH)


def tokens_match(expected: Optional[str], provided: Optional[str]) -> bool:
    """Constant-time comparison; a missing token never matches."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode(), provided.encode())
