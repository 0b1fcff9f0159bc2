from __future__ import annotations

import hashlib
from collections.abc import Sequence

from django.core.cache import cache


def _rate_limit_key(scope: str, key_parts: Sequence[str]) -> str:
    digest = hashlib.sha256("\x1f".join(str(p) for p in key_parts).encode("utf-8")).hexdigest()
    return f"rate_limit:{scope}:{digest}"


def allow_request(*, scope: str, key_parts: Sequence[str], limit: int, window_seconds: int) -> bool:
    """Fixed-window counter in the Django cache; False once ``limit`` is exceeded."""
    key = _rate_limit_key(scope, key_parts)

    if cache.add(key, 1, timeout=window_seconds):
        return True

    try:
        count = cache.incr(key)
    except ValueError:
        # The window expired between add() and incr().
        cache.set(key, 1, timeout=window_seconds)
        return True

    # Some backends drop the expiry on incr; a counter without one never resets.
    cache.touch(key, window_seconds)
    return count <= limit
