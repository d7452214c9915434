"""Random opaque identifiers for callback tokens and element values."""

from __future__ import annotations

import secrets
import string

_ALPHABET = string.ascii_letters + string.digits

# Token carried by messages that have nothing to call back into.
NO_CALLBACK = "NOCALLBACK"

TOKEN_LENGTH = 8


def random_id(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))
