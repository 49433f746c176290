"""Payment reference generation."""

import secrets
import string
import time
from typing import Optional

from app.config import settings

_ALPHABET = string.ascii_lowercase + string.digits
RANDOM_SUFFIX_LENGTH = 10


def generate_reference(prefix: Optional[str] = None) -> str:
    """
    Return a payment reference like ``nedapay-1729331200123-k3v9q0x2ma``.

    Each call combines a millisecond timestamp with an independent random
    suffix, so concurrent callers never share state. Uniqueness holds within
    a process; references reused across restarts must be checked against the
    provider.
    """
    prefix = prefix if prefix is not None else settings.reference_prefix
    millis = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(RANDOM_SUFFIX_LENGTH))
    return f"{prefix}-{millis}-{suffix}"
