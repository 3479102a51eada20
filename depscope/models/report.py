"""
Upgrade simulation report model for depscope.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

from depscope.models.package import UpdateSeverity
from depscope.models.changelog import RiskTier
from depscope.models.conflict import ConflictReport, GraphInconsistency


class RiskLevel(str, Enum):
    """Aggregate risk of applying an upgrade selection."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class SimulationReport:
    """Read-only result of simulating an upgrade selection.

    Attributes:
        selection: Normalized names of the selected packages, sorted.
        targets: Target version per selected package that has one.
        severity_counts: Selected packages per current → target severity.
        vulnerabilities_confirmed: Known vulnerabilities affecting the
            current versions of selected packages.
        vulnerabilities_fixed: Those among them fixed at or below the target.
        advisories_unchecked: Selected packages whose advisories could not
            be checked.
        conflicts: Conflicts touching the selection.
        changelog_tiers: Selected packages per changelog tier.
        changelog_unknown: Selected packages without release notes.
        deprecations: Selected packages whose notes announce deprecations.
        inconsistencies: Edges touching the selection that could not be
            evaluated.
        risk_level: Aggregate risk.
        reasons: Human-readable factors behind ``risk_level``.
    """

    selection: Tuple[str, ...] = ()
    targets: Mapping[str, str] = field(default_factory=dict)
    severity_counts: Mapping[UpdateSeverity, int] = field(default_factory=dict)
    vulnerabilities_confirmed: int = 0
    vulnerabilities_fixed: int = 0
    advisories_unchecked: int = 0
    conflicts: Tuple[ConflictReport, ...] = ()
    changelog_tiers: Mapping[RiskTier, int] = field(default_factory=dict)
    changelog_unknown: int = 0
    deprecations: int = 0
    inconsistencies: Tuple[GraphInconsistency, ...] = ()
    risk_level: RiskLevel = RiskLevel.LOW
    reasons: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in ("targets", "severity_counts", "changelog_tiers"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def to_json(self) -> Dict[str, Any]:
        return {
            "selection": list(self.selection),
            "targets": dict(self.targets),
            "risk_level": self.risk_level.value,
            "reasons": list(self.reasons),
            "severity_counts": {k.value: v for k, v in self.severity_counts.items()},
            "vulnerabilities": {
                "confirmed": self.vulnerabilities_confirmed,
                "fixed_by_upgrade": self.vulnerabilities_fixed,
                "unchecked_packages": self.advisories_unchecked,
            },
            "changelog": {
                "tiers": {k.value: v for k, v in self.changelog_tiers.items()},
                "unknown": self.changelog_unknown,
                "deprecations": self.deprecations,
            },
            "conflicts": [c.to_json() for c in self.conflicts],
            "inconsistencies": [
                {"dependent": i.dependent, "target": i.target, "reason": i.reason}
                for i in self.inconsistencies
            ],
        }
