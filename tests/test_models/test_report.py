"""Unit tests for depscope.models.report and depscope.models.changelog.

Test Coverage:
- ReleaseNotes truthiness
- ChangelogRisk labels, evidence lookup and JSON
- SimulationReport defaults, read-only mappings and JSON
"""

from __future__ import annotations

import pytest

from depscope.models.conflict import ConflictReport, GraphInconsistency
from depscope.models.package import UpdateSeverity
from depscope.models.report import RiskLevel, SimulationReport
from depscope.models.changelog import (
    ChangeCategory,
    ChangelogRisk,
    NotesScope,
    ReleaseNotes,
    RiskTier,
)


@pytest.mark.unit
class TestReleaseNotes:
    """Tests for ReleaseNotes."""

    def test_blank_notes_are_falsy(self) -> None:
        assert not ReleaseNotes("demo")
        assert not ReleaseNotes("demo", {"1.0": "   \n"})
        assert ReleaseNotes("demo", {"1.0": "Fixed a bug"})


@pytest.mark.unit
class TestChangelogRisk:
    """Tests for ChangelogRisk."""

    def test_unknown(self) -> None:
        risk = ChangelogRisk.unknown_risk()

        assert risk.unknown
        assert risk.tier is RiskTier.LOW
        assert risk.scope is NotesScope.NONE
        assert risk.label == "unknown"

    def test_evidence(self) -> None:
        risk = ChangelogRisk(
            tier=RiskTier.HIGH,
            evidence={ChangeCategory.BREAKING: ("Removed foo()",)},
            scope=NotesScope.LATEST,
        )

        assert risk.label == "high"
        assert risk.has(ChangeCategory.BREAKING)
        assert not risk.has(ChangeCategory.SECURITY)
        assert risk.to_json() == {
            "tier": "high",
            "unknown": False,
            "scope": "latest",
            "evidence": {"breaking": ["Removed foo()"]},
        }


@pytest.mark.unit
class TestSimulationReport:
    """Tests for SimulationReport."""

    def test_defaults(self) -> None:
        report = SimulationReport()

        assert report.risk_level is RiskLevel.LOW
        assert not report.has_conflicts
        assert report.to_json()["selection"] == []

    def test_mappings_read_only(self) -> None:
        report = SimulationReport(targets={"django": "4.2.0"})

        with pytest.raises(TypeError):
            report.targets["flask"] = "2.0.3"  # type: ignore[index]

    def test_to_json(self) -> None:
        report = SimulationReport(
            selection=("django",),
            targets={"django": "4.2.0"},
            severity_counts={UpdateSeverity.MAJOR: 1},
            vulnerabilities_confirmed=2,
            vulnerabilities_fixed=1,
            advisories_unchecked=0,
            conflicts=(ConflictReport("celery", "django", "<4", "4.2.0", "5.3.0"),),
            changelog_tiers={RiskTier.HIGH: 1},
            changelog_unknown=0,
            deprecations=1,
            inconsistencies=(GraphInconsistency("celery", "kombu", "no fetched record"),),
            risk_level=RiskLevel.HIGH,
            reasons=("1 version conflict(s)",),
        )

        data = report.to_json()

        assert data["targets"] == {"django": "4.2.0"}
        assert data["risk_level"] == "high"
        assert data["severity_counts"] == {"major": 1}
        assert data["vulnerabilities"] == {
            "confirmed": 2,
            "fixed_by_upgrade": 1,
            "unchecked_packages": 0,
        }
        assert data["changelog"] == {"tiers": {"high": 1}, "unknown": 0, "deprecations": 1}
        assert data["conflicts"][0]["dependent"] == "celery"
        assert data["inconsistencies"] == [
            {"dependent": "celery", "target": "kombu", "reason": "no fetched record"}
        ]
