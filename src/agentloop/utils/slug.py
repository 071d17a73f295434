"""Helpers that turn run identifiers into safe file-name components."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_UNSAFE_PATTERN: Pattern[str] = re.compile(r"[^A-Za-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def file_component(value: str, *, fallback: str = "run", max_length: int = 80) -> str:
    """Normalise ``value`` into a single path component.

    Case is preserved so distinct slugs stay distinct.  Values longer than
    ``max_length`` are truncated and suffixed with a short digest.
    """
    component = _UNSAFE_PATTERN.sub("-", (value or "").strip())
    component = _HYPHEN_COLLAPSE.sub("-", component).strip("-.")
    if not component:
        component = fallback
    if len(component) <= max_length:
        return component

    digest = hashlib.sha256(component.encode("utf-8")).hexdigest()[:8]
    prefix = component[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"


__all__ = ["file_component"]
