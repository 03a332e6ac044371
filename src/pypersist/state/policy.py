"""Key inclusion policy."""

from __future__ import annotations

from collections.abc import Collection


def passes_filter(
    key: str,
    *,
    whitelist: Collection[str] | None,
    blacklist: Collection[str],
) -> bool:
    """Decide whether a top-level key may be persisted.

    A key passes when there is no whitelist (or it is listed there) and it
    is not blacklisted. An empty whitelist rejects every key.
    """
    if whitelist is not None and key not in whitelist:
        return False
    return key not in blacklist
