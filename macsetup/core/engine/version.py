"""
Minimum-version checks (pure).

Versions are compared as dotted integer tuples (``3.12.1`` →
``(3, 12, 1)``). Anything that doesn't parse is treated as satisfying
the constraint, since it can't be proven otherwise.
"""

from __future__ import annotations


def parse_version(v: str) -> tuple[int, ...]:
    """``"v1.2.3"`` → ``(1, 2, 3)``. Raises ValueError."""
    parts = v.strip().lstrip("v").split(".")[:3]
    return tuple(int(x) for x in parts)


def check_minimum(version: str | None, minimum: str | None) -> dict:
    """Validate ``version >= minimum``.

    Returns:
        ``{"valid": True}`` or ``{"valid": False, "message": "..."}``;
        ``"unknown": True`` is added when the check couldn't be made.
    """
    if not minimum:
        return {"valid": True}
    if not version:
        return {"valid": True, "unknown": True}

    try:
        have = parse_version(version)
        want = parse_version(minimum)
    except ValueError:
        return {"valid": True, "unknown": True}

    # Pad so that "3.12" compares equal to "3.12.0".
    width = max(len(have), len(want))
    have += (0,) * (width - len(have))
    want += (0,) * (width - len(want))

    if have >= want:
        return {"valid": True}
    return {
        "valid": False,
        "message": f"Version {version} < {minimum}. Minimum required: {minimum}.",
    }
