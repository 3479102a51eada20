"""
Security advisory data models for depscope.

An :class:`AdvisoryResult` is always one of three things: vulnerable (one
or more :class:`Vulnerability` entries), confirmed clean (checked, none
found), or unchecked (the advisory source could not be consulted). The
last two both carry zero vulnerabilities and must never be confused.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


class VulnerabilitySeverity(str, Enum):
    """Severity of a single advisory."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Higher is worse."""
        return _SEVERITY_RANK[self]

    @property
    def is_severe(self) -> bool:
        return self in (VulnerabilitySeverity.CRITICAL, VulnerabilitySeverity.HIGH)

    @classmethod
    def from_label(cls, label: Optional[str]) -> "VulnerabilitySeverity":
        """Map a source label to a severity; unknown labels become MEDIUM."""
        if not label:
            return cls.MEDIUM
        return _SEVERITY_ALIASES.get(label.strip().lower(), cls.MEDIUM)


_SEVERITY_RANK = {
    VulnerabilitySeverity.LOW: 1,
    VulnerabilitySeverity.MEDIUM: 2,
    VulnerabilitySeverity.HIGH: 3,
    VulnerabilitySeverity.CRITICAL: 4,
}

_SEVERITY_ALIASES = {
    "critical": VulnerabilitySeverity.CRITICAL,
    "high": VulnerabilitySeverity.HIGH,
    "important": VulnerabilitySeverity.HIGH,
    "medium": VulnerabilitySeverity.MEDIUM,
    "moderate": VulnerabilitySeverity.MEDIUM,
    "low": VulnerabilitySeverity.LOW,
}


@dataclass(frozen=True)
class Vulnerability:
    """A known vulnerability affecting a specific package version.

    Args:
        id: Advisory identifier (``GHSA-...``, ``PYSEC-...``).
        severity: Normalized severity.
        summary: One-line description.
        affected_range: Human-readable affected range, e.g. ``>=1.0,<1.4.2``.
        fixed_version: Lowest version known to fix it, if any.
        url: Link to the advisory.
        aliases: Other identifiers for the same issue (CVE ids).
    """

    id: str
    severity: VulnerabilitySeverity = VulnerabilitySeverity.MEDIUM
    summary: str = ""
    affected_range: str = ""
    fixed_version: Optional[str] = None
    url: Optional[str] = None
    aliases: Tuple[str, ...] = ()

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "summary": self.summary,
            "affected_range": self.affected_range,
            "fixed_version": self.fixed_version,
            "url": self.url,
            "aliases": list(self.aliases),
        }


@dataclass(frozen=True)
class AdvisoryResult:
    """Outcome of correlating one package version against an advisory source.

    Args:
        package: Normalized package name.
        version: Version that was checked, if known.
        vulnerabilities: Matching vulnerabilities, worst first.
        unchecked: The source could not be consulted.
        reason: Why the result is unchecked.
    """

    package: str
    version: Optional[str]
    vulnerabilities: Tuple[Vulnerability, ...] = ()
    unchecked: bool = False
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        if self.unchecked and self.vulnerabilities:
            raise ValueError("An unchecked advisory result cannot list vulnerabilities")

    @classmethod
    def unchecked_result(
        cls,
        package: str,
        version: Optional[str],
        reason: str,
    ) -> "AdvisoryResult":
        return cls(package=package, version=version, unchecked=True, reason=reason)

    @property
    def is_clean(self) -> bool:
        """Checked and nothing found."""
        return not self.unchecked and not self.vulnerabilities

    @property
    def status(self) -> str:
        if self.unchecked:
            return "unchecked"
        return "vulnerable" if self.vulnerabilities else "clean"

    @property
    def highest_severity(self) -> Optional[VulnerabilitySeverity]:
        if not self.vulnerabilities:
            return None
        return max((v.severity for v in self.vulnerabilities), key=lambda s: s.rank)

    def count_by_severity(self) -> Dict[VulnerabilitySeverity, int]:
        counts = {severity: 0 for severity in VulnerabilitySeverity}
        for vuln in self.vulnerabilities:
            counts[vuln.severity] += 1
        return counts

    def to_json(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "version": self.version,
            "reason": self.reason,
            "vulnerabilities": [v.to_json() for v in self.vulnerabilities],
        }
