"""
Package record data model for depscope.

A :class:`PackageRecord` is a :class:`Requirement` enriched with everything
fetched for it during one run: versions, descriptive metadata, popularity,
first-level dependencies, the update severity, the advisory result and the
changelog risk. Records are frozen: the fetch pipeline builds each one in
a single step, so a record is either complete or absent.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from depscope.models.advisory import AdvisoryResult
from depscope.models.changelog import ChangelogRisk
from depscope.models.requirement import Requirement, SourceKind


class UpdateSeverity(str, Enum):
    """Size of the jump from the current to the latest version."""

    UP_TO_DATE = "up-to-date"
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"
    PRERELEASE = "prerelease"
    UNKNOWN = "unknown"
    ERROR = "error"

    @property
    def is_update(self) -> bool:
        return self in (
            UpdateSeverity.PATCH,
            UpdateSeverity.MINOR,
            UpdateSeverity.MAJOR,
            UpdateSeverity.PRERELEASE,
        )

    @property
    def priority(self) -> int:
        """Display priority; lower sorts first."""
        return _SEVERITY_PRIORITY[self]


_SEVERITY_PRIORITY = {
    UpdateSeverity.ERROR: 0,
    UpdateSeverity.MAJOR: 1,
    UpdateSeverity.MINOR: 2,
    UpdateSeverity.PATCH: 3,
    UpdateSeverity.PRERELEASE: 4,
    UpdateSeverity.UNKNOWN: 5,
    UpdateSeverity.UP_TO_DATE: 6,
}


@dataclass(frozen=True)
class PopularityData:
    """Recent download counts over rolling windows."""

    last_day: Optional[int] = None
    last_week: Optional[int] = None
    last_month: Optional[int] = None

    def to_json(self) -> Dict[str, Optional[int]]:
        return {
            "last_day": self.last_day,
            "last_week": self.last_week,
            "last_month": self.last_month,
        }


@dataclass(frozen=True)
class PackageRecord:
    """
    A requirement plus all data fetched for it in one run.

    Attributes:
        requirement: The governing manifest declaration.
        current_version: Version the manifest currently selects, if known.
        latest_version: Newest release under the latest-version policy.
        available_versions: Known releases, ascending.
        description: One-line project summary.
        license: Declared license.
        repo_url: Source repository URL.
        popularity: Recent download counts.
        dependencies: First-level requirements of the current version.
        latest_dependencies: First-level requirements of the latest version.
        upload_times: Release version to upload timestamp.
        severity: Classification of current → latest.
        advisories: Advisory correlation outcome, ``None`` when not requested.
        changelog_risk: Release-notes risk, ``None`` when not requested.
        error: Failure of the primary metadata fetch.
        field_errors: Failures of secondary fetches, keyed by field name.
    """

    requirement: Requirement
    current_version: Optional[str] = None
    latest_version: Optional[str] = None
    available_versions: Tuple[str, ...] = ()
    description: Optional[str] = None
    license: Optional[str] = None
    repo_url: Optional[str] = None
    popularity: Optional[PopularityData] = None
    dependencies: Tuple[str, ...] = ()
    latest_dependencies: Tuple[str, ...] = ()
    upload_times: Mapping[str, str] = field(default_factory=dict)
    severity: UpdateSeverity = UpdateSeverity.UNKNOWN
    advisories: Optional[AdvisoryResult] = None
    changelog_risk: Optional[ChangelogRisk] = None
    error: Optional[str] = None
    field_errors: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "upload_times", MappingProxyType(dict(self.upload_times)))
        object.__setattr__(self, "field_errors", MappingProxyType(dict(self.field_errors)))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.requirement.name

    @property
    def key(self) -> str:
        return self.requirement.key

    @property
    def source(self) -> SourceKind:
        return self.requirement.source

    @property
    def fetch_failed(self) -> bool:
        return self.error is not None

    @property
    def has_update(self) -> bool:
        return self.severity.is_update

    @property
    def vulnerability_count(self) -> int:
        return len(self.advisories.vulnerabilities) if self.advisories else 0

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def get_display_data(self) -> Dict[str, str]:
        """Plain-text cell values for tabular rendering."""
        if self.advisories is None:
            security = "-"
        elif self.advisories.unchecked:
            security = "unchecked"
        elif self.advisories.vulnerabilities:
            worst = self.advisories.highest_severity
            security = f"{self.vulnerability_count} ({worst.value if worst else '?'})"
        else:
            security = "clean"

        monthly = self.popularity.last_month if self.popularity else None
        return {
            "package": self.name,
            "source": self.source.value,
            "current": self.current_version or "-",
            "latest": self.latest_version or ("error" if self.fetch_failed else "-"),
            "severity": self.severity.value,
            "security": security,
            "changelog": self.changelog_risk.label if self.changelog_risk else "-",
            "downloads": f"{monthly:,}" if monthly is not None else "-",
        }

    def to_json(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "name": self.name,
            "key": self.key,
            "source": self.source.value,
            "line": self.requirement.line_number,
            "constraint": self.requirement.constraint or None,
            "current_version": self.current_version,
            "latest_version": self.latest_version,
            "severity": self.severity.value,
            "description": self.description,
            "license": self.license,
            "repo_url": self.repo_url,
            "popularity": self.popularity.to_json() if self.popularity else None,
            "dependencies": list(self.dependencies),
            "advisories": self.advisories.to_json() if self.advisories else None,
            "changelog": self.changelog_risk.to_json() if self.changelog_risk else None,
            "error": self.error,
            "field_errors": dict(self.field_errors),
        }


class SortKey(str, Enum):
    """Orderings available to presentation layers."""

    MANIFEST = "manifest"
    NAME = "name"
    SEVERITY = "severity"
    POPULARITY = "popularity"


def sort_records(
    records: Iterable[PackageRecord],
    by: SortKey = SortKey.MANIFEST,
) -> List[PackageRecord]:
    """Impose a display order on fetched records.

    Fetch completion order carries no meaning, so every presentation path
    goes through here. Ties fall back to manifest order.
    """
    items = list(records)
    if by is SortKey.NAME:
        return sorted(items, key=lambda r: (r.key, r.requirement.line_number))
    if by is SortKey.SEVERITY:
        return sorted(
            items,
            key=lambda r: (r.severity.priority, r.requirement.line_number),
        )
    if by is SortKey.POPULARITY:
        return sorted(
            items,
            key=lambda r: (
                -(r.popularity.last_month or 0) if r.popularity else 1,
                r.requirement.line_number,
            ),
        )
    return sorted(items, key=lambda r: r.requirement.line_number)


def count_by_severity(records: Iterable[PackageRecord]) -> Dict[UpdateSeverity, int]:
    """Tally records per severity; every severity appears in the result."""
    counts = {severity: 0 for severity in UpdateSeverity}
    for record in records:
        counts[record.severity] += 1
    return counts
