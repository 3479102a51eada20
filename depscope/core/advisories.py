"""Security advisory correlation for depscope.

Maps a package and its current version to the known vulnerabilities that
affect it.  Advisories come from the OSV database (ecosystem ``PyPI``);
the query asks for every advisory of the package and the version filter
runs locally in :func:`filter_vulnerabilities`, so the same cached
response serves any version.

A result is always one of *vulnerable*, *clean* or *unchecked*.  An
unreachable advisory source, or a package without a concrete current
version, is *unchecked*: zero vulnerabilities, but never reported clean.

Typical usage::

    correlator = AdvisoryCorrelator(registry.fetch_advisories)
    result = await correlator.correlate("flask", "2.0.1", available)
    if result.unchecked:
        print(result.reason)
"""

from __future__ import annotations

from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
)

import httpx
from packaging.utils import canonicalize_name
from packaging.version import Version

from depscope.exceptions import DepScopeError
from depscope.utils.logger import get_logger
from depscope.utils.version_utils import parse_version
from depscope.constants import OSV_ADVISORY_URL, OSV_ECOSYSTEM
from depscope.models.advisory import (
    AdvisoryResult,
    Vulnerability,
    VulnerabilitySeverity,
)

logger = get_logger("advisories")

AdvisoryFetch = Callable[[str], Awaitable[List[Dict[str, Any]]]]

# Lower and upper bound of one affected interval; ``None`` is unbounded.
# The flag marks an inclusive upper bound (``last_affected``).
_Interval = Tuple[Optional[Version], Optional[Version], bool]

__all__ = ["AdvisoryCorrelator", "filter_vulnerabilities"]


class AdvisoryCorrelator:
    """Correlate package versions with an advisory source.

    Args:
        fetch: Coroutine function returning the raw advisory entries for a
            normalized package name.  Usually
            :meth:`RegistryClient.fetch_advisories`, which caches per run.
    """

    def __init__(self, fetch: AdvisoryFetch) -> None:
        self._fetch = fetch

    async def correlate(
        self,
        name: str,
        current: Optional[str],
        available: Sequence[str] = (),
    ) -> AdvisoryResult:
        """Return the advisories affecting ``name`` at ``current``.

        Args:
            name: Package name.
            current: Version the manifest selects.
            available: Known releases, used to suggest a fixed version
                when the advisory names none.

        Returns:
            An :class:`AdvisoryResult`; never raises for source failures.
        """
        package = canonicalize_name(name)

        if parse_version(current) is None:
            return AdvisoryResult.unchecked_result(
                package, current, "no concrete current version"
            )

        try:
            entries = await self._fetch(package)
        except (DepScopeError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Advisory lookup failed for %s: %s", package, exc)
            return AdvisoryResult.unchecked_result(
                package, current, f"advisory source unavailable: {exc}"
            )

        vulnerabilities = filter_vulnerabilities(package, current, entries, available)
        if vulnerabilities:
            logger.info(
                "%s %s is affected by %d advisory(ies)",
                package,
                current,
                len(vulnerabilities),
            )
        return AdvisoryResult(
            package=package,
            version=current,
            vulnerabilities=vulnerabilities,
        )


# ---------------------------------------------------------------------------
# Pure filtering
# ---------------------------------------------------------------------------


def filter_vulnerabilities(
    package: str,
    current: Optional[str],
    entries: Iterable[Dict[str, Any]],
    available: Sequence[str] = (),
) -> Tuple[Vulnerability, ...]:
    """Keep the advisory entries that affect ``package`` at ``current``.

    An entry matches when one of its ``affected`` blocks for the package
    lists the version explicitly, or when one of its ranges contains it.
    Ranges are read from ``introduced``, ``fixed`` and ``last_affected``
    events; ``GIT`` ranges are ignored.

    Returns:
        Matching vulnerabilities, worst severity first, then by id.
    """
    version = parse_version(current)
    if version is None:
        return ()

    key = canonicalize_name(package)
    found: Dict[str, Vulnerability] = {}

    for entry in entries:
        vuln_id = entry.get("id")
        if not vuln_id or vuln_id in found:
            continue

        blocks = [b for b in entry.get("affected") or [] if _block_is_for(b, key)]
        matching = [b for b in blocks if _block_affects(b, version)]
        if not matching:
            continue

        found[vuln_id] = Vulnerability(
            id=vuln_id,
            severity=_severity_of(entry, matching),
            summary=_summary_of(entry),
            affected_range=_describe_ranges(matching, version),
            fixed_version=_fixed_version(blocks, matching, version, available),
            url=OSV_ADVISORY_URL.format(id=vuln_id),
            aliases=tuple(entry.get("aliases") or ()),
        )

    return tuple(sorted(found.values(), key=lambda v: (-v.severity.rank, v.id)))


def _block_is_for(block: Dict[str, Any], key: str) -> bool:
    package = block.get("package") or {}
    name = package.get("name")
    ecosystem = package.get("ecosystem")
    if ecosystem and ecosystem != OSV_ECOSYSTEM:
        return False
    return name is None or canonicalize_name(name) == key


def _block_affects(block: Dict[str, Any], version: Version) -> bool:
    for listed in block.get("versions") or []:
        if parse_version(listed) == version:
            return True
    return any(_in_interval(version, interval) for interval in _intervals(block))


def _intervals(block: Dict[str, Any]) -> List[_Interval]:
    """Turn the ranges of an affected block into explicit intervals."""
    intervals: List[_Interval] = []
    for range_ in block.get("ranges") or []:
        if range_.get("type") == "GIT":
            continue

        lower: Optional[Version] = None
        is_open = False
        for event in range_.get("events") or []:
            if "introduced" in event:
                raw = event["introduced"]
                lower = None if raw == "0" else parse_version(raw)
                is_open = raw == "0" or lower is not None
            elif "fixed" in event and is_open:
                upper = parse_version(event["fixed"])
                if upper is not None:
                    intervals.append((lower, upper, False))
                is_open = False
            elif "last_affected" in event and is_open:
                upper = parse_version(event["last_affected"])
                if upper is not None:
                    intervals.append((lower, upper, True))
                is_open = False

        if is_open:
            intervals.append((lower, None, False))
    return intervals


def _in_interval(version: Version, interval: _Interval) -> bool:
    lower, upper, inclusive = interval
    if lower is not None and version < lower:
        return False
    if upper is None:
        return True
    return version <= upper if inclusive else version < upper


def _describe_ranges(blocks: Sequence[Dict[str, Any]], version: Version) -> str:
    parts: List[str] = []
    for block in blocks:
        for interval in _intervals(block):
            if not _in_interval(version, interval):
                continue
            lower, upper, inclusive = interval
            bounds = []
            if lower is not None:
                bounds.append(f">={lower}")
            if upper is not None:
                bounds.append(f"{'<=' if inclusive else '<'}{upper}")
            text = ",".join(bounds) or "*"
            if text not in parts:
                parts.append(text)
    return " || ".join(parts) if parts else f"=={version}"


def _fixed_version(
    blocks: Sequence[Dict[str, Any]],
    matching: Sequence[Dict[str, Any]],
    version: Version,
    available: Sequence[str],
) -> Optional[str]:
    """Lowest ``fixed`` event above ``version``, else lowest clean release."""
    fixes = []
    for block in matching:
        for range_ in block.get("ranges") or []:
            for event in range_.get("events") or []:
                parsed = parse_version(event.get("fixed"))
                if parsed is not None and parsed > version:
                    fixes.append(parsed)
    if fixes:
        return str(min(fixes))

    newer = sorted(
        (parsed, raw)
        for raw in available
        for parsed in [parse_version(raw)]
        if parsed is not None and parsed > version and not parsed.is_prerelease
    )
    for parsed, raw in newer:
        if not any(_block_affects(block, parsed) for block in blocks):
            return raw
    return None


def _severity_of(
    entry: Dict[str, Any],
    blocks: Sequence[Dict[str, Any]],
) -> VulnerabilitySeverity:
    label = (entry.get("database_specific") or {}).get("severity")
    if not label:
        for block in blocks:
            label = (block.get("database_specific") or {}).get("severity")
            if label:
                break
    return VulnerabilitySeverity.from_label(label)


def _summary_of(entry: Dict[str, Any]) -> str:
    summary = entry.get("summary")
    if summary:
        return summary.strip()
    details = (entry.get("details") or "").strip()
    return details.splitlines()[0] if details else ""
