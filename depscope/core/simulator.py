"""Upgrade what-if simulation for depscope.

:class:`UpgradeSimulator` answers "what happens if I upgrade these?"
without touching anything.  It reads the run's records and constraint
graph and aggregates one :class:`~depscope.models.report.SimulationReport`.

Risk levels:

* ``HIGH``: a conflict touching the selection, a critical or high
  vulnerability, a major version jump, or a high changelog tier.
* ``MEDIUM``: otherwise, a deprecation notice or a low/medium
  vulnerability.
* ``LOW``: everything else, including the empty selection.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from packaging.utils import canonicalize_name

from depscope.exceptions import SelectionError
from depscope.core.graph import DependencyGraph
from depscope.utils.logger import get_logger
from depscope.core.classifier import classify, classify_record
from depscope.utils.version_utils import parse_version
from depscope.models.advisory import Vulnerability
from depscope.models.changelog import ChangeCategory, RiskTier
from depscope.models.package import PackageRecord, UpdateSeverity
from depscope.models.report import RiskLevel, SimulationReport

logger = get_logger("simulator")

# Public API
__all__ = ["UpgradeSimulator"]


class UpgradeSimulator:
    """Read-only aggregator over one run's records and graph.

    Repeated calls with the same arguments return equal reports.

    Args:
        records: Fetched records keyed by normalized name.
        graph: The run's constraint graph.

    Example::

        simulator = UpgradeSimulator(records, graph)
        report = simulator.simulate({"django"}, pins={"celery": "5.3.6"})
        print(report.risk_level, report.reasons)
    """

    def __init__(
        self,
        records: Mapping[str, PackageRecord],
        graph: DependencyGraph,
    ) -> None:
        self._records = dict(records)
        self.graph = graph

    def upgradable(self, severities: Optional[Iterable[UpdateSeverity]] = None) -> List[str]:
        """Normalized names of packages that have an update, sorted.

        Args:
            severities: Keep only updates of these kinds; all when ``None``.
        """
        wanted = set(severities) if severities is not None else None
        return sorted(
            key
            for key, record in self._records.items()
            if record.has_update and (wanted is None or record.severity in wanted)
        )

    def simulate(
        self,
        selection: Iterable[str],
        pins: Optional[Mapping[str, str]] = None,
    ) -> SimulationReport:
        """Simulate upgrading ``selection``.

        Each selected package moves to its pinned version when one is
        given, else to its latest version.  A package already at or past
        its latest version stays where it is.  Pinned packages join the
        selection even when not listed in it.

        Args:
            selection: Package names, in any casing.
            pins: Package name → explicit target version.

        Returns:
            A frozen :class:`SimulationReport`.

        Raises:
            SelectionError: A selected or pinned name is not in the manifest.
        """
        pinned = {canonicalize_name(name): version for name, version in (pins or {}).items()}
        keys = {canonicalize_name(name) for name in selection} | set(pinned)

        missing = sorted(key for key in keys if key not in self.graph)
        if missing:
            raise SelectionError(
                f"Not declared in the manifest: {', '.join(missing)}",
                package_names=missing,
            )

        selected = sorted(keys)
        targets: Dict[str, str] = {}
        for key in selected:
            record = self._records.get(key)
            target = pinned.get(key) or _default_target(record)
            if target is not None:
                targets[key] = target

        severity_counts = self._severity_counts(selected, targets)
        confirmed: List[Vulnerability] = []
        fixed = 0
        unchecked = 0
        tiers: Dict[RiskTier, int] = {}
        changelog_unknown = 0
        deprecations = 0

        for key in selected:
            record = self._records.get(key)
            advisories = record.advisories if record else None
            if advisories is None or advisories.unchecked:
                unchecked += 1
            else:
                confirmed.extend(advisories.vulnerabilities)
                fixed += sum(
                    1
                    for vuln in advisories.vulnerabilities
                    if _fixed_by(vuln, targets.get(key))
                )

            risk = record.changelog_risk if record else None
            if risk is None or risk.unknown:
                changelog_unknown += 1
            else:
                tiers[risk.tier] = tiers.get(risk.tier, 0) + 1
                if risk.has(ChangeCategory.DEPRECATED):
                    deprecations += 1

        touched: Set[str] = set(selected)
        conflicts = tuple(
            c
            for c in self.graph.detect_conflicts(targets)
            if c.dependent in touched or c.target in touched
        )
        inconsistencies = tuple(
            i
            for i in self.graph.inconsistencies(targets)
            if i.dependent in touched or i.target in touched
        )

        risk_level, reasons = _assess(
            conflicts=len(conflicts),
            severe=sum(1 for v in confirmed if v.severity.is_severe),
            moderate=sum(1 for v in confirmed if not v.severity.is_severe),
            majors=severity_counts.get(UpdateSeverity.MAJOR, 0),
            high_changelogs=tiers.get(RiskTier.HIGH, 0),
            deprecations=deprecations,
        )
        logger.debug("Simulated %d package(s): %s", len(selected), risk_level.value)

        return SimulationReport(
            selection=tuple(selected),
            targets=targets,
            severity_counts=severity_counts,
            vulnerabilities_confirmed=len(confirmed),
            vulnerabilities_fixed=fixed,
            advisories_unchecked=unchecked,
            conflicts=conflicts,
            changelog_tiers=tiers,
            changelog_unknown=changelog_unknown,
            deprecations=deprecations,
            inconsistencies=inconsistencies,
            risk_level=risk_level,
            reasons=reasons,
        )

    def _severity_counts(
        self,
        selected: Iterable[str],
        targets: Mapping[str, str],
    ) -> Dict[UpdateSeverity, int]:
        counts: Dict[UpdateSeverity, int] = {}
        for key in selected:
            record = self._records.get(key)
            if record is None:
                severity = UpdateSeverity.UNKNOWN
            else:
                severity = classify_record(
                    record.current_version,
                    targets.get(key),
                    fetch_failed=record.fetch_failed,
                )
            counts[severity] = counts.get(severity, 0) + 1
        return dict(sorted(counts.items(), key=lambda item: item[0].priority))


def _default_target(record: Optional[PackageRecord]) -> Optional[str]:
    """Latest version, unless that would not move the package forward."""
    if record is None:
        return None
    if classify(record.current_version, record.latest_version) is UpdateSeverity.UP_TO_DATE:
        return record.current_version
    return record.latest_version


def _fixed_by(vuln: Vulnerability, target: Optional[str]) -> bool:
    fixed = parse_version(vuln.fixed_version)
    version = parse_version(target)
    return fixed is not None and version is not None and version >= fixed


def _assess(
    *,
    conflicts: int,
    severe: int,
    moderate: int,
    majors: int,
    high_changelogs: int,
    deprecations: int,
) -> Tuple[RiskLevel, Tuple[str, ...]]:
    high: List[str] = []
    if conflicts:
        high.append(f"{conflicts} version conflict(s)")
    if severe:
        high.append(f"{severe} critical/high vulnerability(ies)")
    if majors:
        high.append(f"{majors} major version upgrade(s)")
    if high_changelogs:
        high.append(f"{high_changelogs} changelog(s) announcing breaking changes")

    medium: List[str] = []
    if deprecations:
        medium.append(f"{deprecations} changelog(s) announcing deprecations")
    if moderate:
        medium.append(f"{moderate} low/medium vulnerability(ies)")

    if high:
        return RiskLevel.HIGH, tuple(high + medium)
    if medium:
        return RiskLevel.MEDIUM, tuple(medium)
    return RiskLevel.LOW, ()
