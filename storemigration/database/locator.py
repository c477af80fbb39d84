"""Resolve filesystem paths from legacy store connection locators."""

from __future__ import annotations

from typing import Optional, Tuple

# Locators for in-memory, SSL, TCP or archived stores have no local file to migrate
EXCLUDED_LOCATOR_TOKENS: Tuple[str, ...] = (":mem:", ":ssl:", ":tcp:", ":zip:")


def resolve_locator_path(locator: Optional[str]) -> Optional[str]:
    """Extract the store path from a locator such as ``jdbc:h2:file:/data/app;OPT=1``.

    Returns ``None`` when the locator does not refer to a file-backed store.
    """
    if not locator or not locator.strip():
        return None

    lowered = locator.lower()
    if any(token in lowered for token in EXCLUDED_LOCATOR_TOKENS):
        return None

    path = locator.split(":")[-1].split(";")[0].strip()
    return path or None


def storage_file_for(locator: Optional[str], storage_suffix: str) -> Optional[str]:
    """Return the on-disk storage file for ``locator``, or ``None``."""
    path = resolve_locator_path(locator)
    if path is None:
        return None
    return path + storage_suffix
