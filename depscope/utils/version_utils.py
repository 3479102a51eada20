"""
Version parsing helpers for depscope.

PEP 440 parsing via :mod:`packaging` first; strings it rejects fall back
to a plain dot-separated numeric reading (``"2024.01.7"``, ``"v3.2"``).
Anything that fits neither is treated as unparsable and callers decide
what that means for them.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Tuple, Union

from packaging.version import InvalidVersion, Version

NumericVersion = Tuple[int, ...]
ParsedVersion = Union[Version, NumericVersion]

_NUMERIC_RE = re.compile(r"^(\d+(?:\.\d+)*)(?:$|[^\d.])")


def parse_version(value: Optional[str]) -> Optional[Version]:
    """Parse a PEP 440 version, tolerating a leading ``v`` (git tags)."""
    if not value:
        return None
    text = value.strip()
    if text[:1] in ("v", "V") and text[1:2].isdigit():
        text = text[1:]
    try:
        return Version(text)
    except InvalidVersion:
        return None


def parse_numeric(value: Optional[str]) -> Optional[NumericVersion]:
    """Read the leading dotted numbers: ``"1.2.3-custom"`` is ``(1, 2, 3)``.

    Returns ``None`` when the string does not start with a digit.
    """
    if not value:
        return None
    text = value.strip().lstrip("vV")
    match = _NUMERIC_RE.match(text)
    if not match:
        return None
    return _trim_zeros(tuple(int(part) for part in match.group(1).split(".")))


def parse_any(value: Optional[str]) -> Optional[ParsedVersion]:
    """PEP 440 first, numeric fallback second."""
    parsed = parse_version(value)
    if parsed is not None:
        return parsed
    return parse_numeric(value)


def _trim_zeros(parts: NumericVersion) -> NumericVersion:
    """Drop trailing zero components so ``1.0`` equals ``1.0.0``."""
    end = len(parts)
    while end > 1 and parts[end - 1] == 0:
        end -= 1
    return parts[:end]


def release_triple(version: ParsedVersion) -> Tuple[int, int, int]:
    """Normalize a release segment to ``(major, minor, patch)``."""
    release = version.release if isinstance(version, Version) else version
    major = release[0] if len(release) > 0 else 0
    minor = release[1] if len(release) > 1 else 0
    patch = release[2] if len(release) > 2 else 0
    return major, minor, patch


def as_numeric(version: ParsedVersion) -> NumericVersion:
    """Release numbers of either form, trailing zeros dropped."""
    release = version.release if isinstance(version, Version) else version
    return _trim_zeros(tuple(release))


def is_prerelease(value: Optional[str]) -> bool:
    """True for PEP 440 pre- and dev-releases; False if unparsable."""
    parsed = parse_version(value)
    return bool(parsed is not None and parsed.is_prerelease)


def version_sort_key(value: str) -> Tuple[int, Any]:
    """Sort key ordering PEP 440 versions above unparsable strings.

    Unparsable strings sort first, lexically, so they never displace a
    real version from the top of an ascending list.
    """
    parsed = parse_version(value)
    if parsed is not None:
        return (2, parsed)
    numeric = parse_numeric(value)
    if numeric is not None:
        return (1, numeric)
    return (0, value)


def sort_versions(values: Iterable[str]) -> List[str]:
    """Return ``values`` deduplicated and ascending by version precedence."""
    seen = set()
    unique = []
    for value in values:
        if value not in seen:
            seen.add(value)
            unique.append(value)
    return sorted(unique, key=version_sort_key)


def versions_equal(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two version strings by normalized value."""
    left, right = parse_any(a), parse_any(b)
    if left is None or right is None:
        return a == b
    if type(left) is not type(right):
        return False
    return left == right
