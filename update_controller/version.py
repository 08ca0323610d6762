"""Helpers for normalizing version strings at system boundaries.

The coordinator tracks instance versions without a leading `v` while git tags
are expected to carry one.
"""

__all__ = ["add_v", "strip_v"]


def add_v(version: str) -> str:
    """Return the version with a leading `v`, adding one if missing."""
    if version.startswith("v"):
        return version
    return f"v{version}"


def strip_v(version: str) -> str:
    """Return the version with a single leading `v` removed."""
    return version.removeprefix("v")
