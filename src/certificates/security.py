"""Certificate identifiers.

Provides:
- Verification codes (short, human-readable, unambiguous)
- Certificate ids (time ordered, globally unique in practice)

Uniqueness is enforced by storage; callers regenerate on collision.
"""

import secrets
import string
from datetime import datetime


# Alphabet for verification codes - excludes ambiguous characters (0, O, I, 1)
CODE_ALPHABET = string.ascii_uppercase.replace("O", "").replace(
    "I", ""
) + string.digits.replace("0", "").replace("1", "")
# Result: ABCDEFGHJKLMNPQRSTUVWXYZ23456789 (32 characters)

CODE_LENGTH = 8

_BASE36 = string.digits + string.ascii_uppercase


def generate_verification_code(length: int = CODE_LENGTH) -> str:
    """Generate a verification code (e.g., "K7QF2M9A")."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    """Codes are case-insensitive for lookups."""
    return code.strip().upper()


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_certificate_id(now: datetime) -> str:
    """Generate a certificate id like ``CERT-LZ3K9Q1A-7GQ2KX9P``."""
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(8))
    return f"CERT-{_base36(millis)}-{suffix}"
