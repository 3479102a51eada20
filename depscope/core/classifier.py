"""Version delta classification for depscope.

Pure functions, no I/O.  :func:`classify` sizes the jump from a current
to a latest version; :func:`select_latest` decides which release counts
as *latest* in the first place.

Latest-version policy:

1. Candidates are the versions that parse as PEP 440.
2. Pre-releases are excluded unless explicitly allowed (the caller allows
   them when the requirement itself pins a pre-release).
3. The newest remaining candidate wins, regardless of release line.  A
   project that still patches an older major does not change the answer:
   ``1.4.9`` published after ``2.1.0`` still leaves ``2.1.0`` as latest.
4. With no candidate left, the registry's own notion of latest is used if
   it passes the same filter; otherwise there is no latest version.

Typical usage::

    from depscope.core.classifier import classify, select_latest

    latest = select_latest(["3.2.0", "4.2.0", "5.0rc1"])  # "4.2.0"
    classify("3.2.0", latest)                             # UpdateSeverity.MAJOR
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from packaging.version import Version

from depscope.models.package import UpdateSeverity
from depscope.utils.version_utils import (
    ParsedVersion,
    as_numeric,
    parse_any,
    parse_version,
    release_triple,
)

__all__ = ["classify", "classify_record", "select_latest"]


def classify(current: Optional[str], latest: Optional[str]) -> UpdateSeverity:
    """Classify the update from ``current`` to ``latest``.

    Args:
        current: Version currently selected by the manifest.
        latest: Latest available version.

    Returns:
        ``UNKNOWN`` when either side is missing or unparsable,
        ``UP_TO_DATE`` when ``latest`` is not newer, ``PRERELEASE`` when
        it is a newer pre-release, else ``MAJOR``, ``MINOR`` or ``PATCH``
        according to the highest differing release component.

    Example::

        >>> classify("3.2.0", "4.2.0")
        <UpdateSeverity.MAJOR: 'major'>
        >>> classify("1.0", "1.0.0")
        <UpdateSeverity.UP_TO_DATE: 'up-to-date'>
    """
    cur = parse_any(current)
    new = parse_any(latest)
    if cur is None or new is None:
        return UpdateSeverity.UNKNOWN

    left, right = _comparable(cur, new)
    if right <= left:
        return UpdateSeverity.UP_TO_DATE

    if isinstance(new, Version) and new.is_prerelease:
        return UpdateSeverity.PRERELEASE

    cur_major, cur_minor, _ = release_triple(cur)
    new_major, new_minor, _ = release_triple(new)
    if new_major != cur_major:
        return UpdateSeverity.MAJOR
    if new_minor != cur_minor:
        return UpdateSeverity.MINOR
    # Patch component, a fourth component, a post-release, or pre → final
    return UpdateSeverity.PATCH


def classify_record(
    current: Optional[str],
    latest: Optional[str],
    *,
    fetch_failed: bool = False,
) -> UpdateSeverity:
    """Like :func:`classify`, but a failed metadata fetch is always ``ERROR``."""
    if fetch_failed:
        return UpdateSeverity.ERROR
    return classify(current, latest)


def select_latest(
    versions: Iterable[str],
    include_prereleases: bool = False,
    fallback: Optional[str] = None,
) -> Optional[str]:
    """Pick the latest version of ``versions`` under the module's policy."""
    best: Optional[Tuple[Version, str]] = None
    for raw in versions:
        parsed = parse_version(raw)
        if parsed is None or (parsed.is_prerelease and not include_prereleases):
            continue
        if best is None or parsed > best[0]:
            best = (parsed, raw)

    if best is not None:
        return best[1]

    parsed_fallback = parse_version(fallback)
    if parsed_fallback is None:
        return None
    if parsed_fallback.is_prerelease and not include_prereleases:
        return None
    return fallback


def _comparable(
    a: ParsedVersion,
    b: ParsedVersion,
) -> Tuple[ParsedVersion, ParsedVersion]:
    """Bring two parsed versions to a common, orderable form."""
    if isinstance(a, Version) and isinstance(b, Version):
        return a, b
    return as_numeric(a), as_numeric(b)
