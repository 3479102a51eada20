"""
Unified data model exports for depscope.

Example:
    >>> from depscope.models import PackageRecord, Requirement, ConflictReport
"""

from __future__ import annotations

from depscope.models.requirement import Requirement, SourceKind
from depscope.models.advisory import (
    AdvisoryResult,
    Vulnerability,
    VulnerabilitySeverity,
)
from depscope.models.changelog import (
    ChangeCategory,
    ChangelogRisk,
    NotesScope,
    ReleaseNotes,
    RiskTier,
)
from depscope.models.package import (
    PackageRecord,
    PopularityData,
    SortKey,
    UpdateSeverity,
    count_by_severity,
    sort_records,
)
from depscope.models.conflict import (
    MANIFEST_DEPENDENT,
    ConflictReport,
    Edge,
    GraphInconsistency,
)
from depscope.models.report import RiskLevel, SimulationReport

__all__ = [
    "Requirement",
    "SourceKind",
    "AdvisoryResult",
    "Vulnerability",
    "VulnerabilitySeverity",
    "ChangeCategory",
    "ChangelogRisk",
    "NotesScope",
    "ReleaseNotes",
    "RiskTier",
    "PackageRecord",
    "PopularityData",
    "SortKey",
    "UpdateSeverity",
    "count_by_severity",
    "sort_records",
    "MANIFEST_DEPENDENT",
    "ConflictReport",
    "Edge",
    "GraphInconsistency",
    "RiskLevel",
    "SimulationReport",
]
