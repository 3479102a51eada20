"""Unit tests for depscope.models.package module.

Test Coverage:
- UpdateSeverity flags and display priority
- PackageRecord accessors and immutability
- Display data for tables (security, changelog, downloads cells)
- JSON serialization
- sort_records() orderings and tie-breaking
- count_by_severity()
"""

from __future__ import annotations

import dataclasses
from typing import Optional

import pytest

from depscope.models.advisory import AdvisoryResult, Vulnerability, VulnerabilitySeverity
from depscope.models.changelog import ChangelogRisk, RiskTier
from depscope.models.requirement import Requirement, SourceKind
from depscope.models.package import (
    PackageRecord,
    PopularityData,
    SortKey,
    UpdateSeverity,
    count_by_severity,
    sort_records,
)


def _record(
    name: str,
    line: int,
    severity: UpdateSeverity = UpdateSeverity.UP_TO_DATE,
    monthly: Optional[int] = None,
    **kwargs,
) -> PackageRecord:
    return PackageRecord(
        requirement=Requirement(name=name, specs=(("==", "1.0"),), line_number=line),
        current_version="1.0",
        severity=severity,
        popularity=PopularityData(last_month=monthly) if monthly is not None else None,
        **kwargs,
    )


# ============================================================================
# UpdateSeverity
# ============================================================================


@pytest.mark.unit
class TestUpdateSeverity:
    """Tests for the UpdateSeverity enum."""

    @pytest.mark.parametrize(
        "severity,expected",
        [
            (UpdateSeverity.PATCH, True),
            (UpdateSeverity.MINOR, True),
            (UpdateSeverity.MAJOR, True),
            (UpdateSeverity.PRERELEASE, True),
            (UpdateSeverity.UP_TO_DATE, False),
            (UpdateSeverity.UNKNOWN, False),
            (UpdateSeverity.ERROR, False),
        ],
    )
    def test_is_update(self, severity: UpdateSeverity, expected: bool) -> None:
        assert severity.is_update is expected

    def test_priority_order(self) -> None:
        ordered = sorted(UpdateSeverity, key=lambda s: s.priority)

        assert ordered[0] is UpdateSeverity.ERROR
        assert ordered[1] is UpdateSeverity.MAJOR
        assert ordered[-1] is UpdateSeverity.UP_TO_DATE

    def test_string_value(self) -> None:
        assert UpdateSeverity("up-to-date") is UpdateSeverity.UP_TO_DATE


# ============================================================================
# PackageRecord
# ============================================================================


@pytest.mark.unit
class TestPackageRecord:
    """Tests for PackageRecord accessors."""

    def test_accessors(self) -> None:
        record = PackageRecord(
            requirement=Requirement(name="Django", specs=(("==", "3.2.0"),)),
            current_version="3.2.0",
            latest_version="4.2.0",
            severity=UpdateSeverity.MAJOR,
        )

        assert record.name == "Django"
        assert record.key == "django"
        assert record.source is SourceKind.REGISTRY
        assert record.has_update
        assert not record.fetch_failed
        assert record.vulnerability_count == 0

    def test_failed_record(self) -> None:
        record = _record("flask", 1, UpdateSeverity.ERROR, error="boom")

        assert record.fetch_failed
        assert not record.has_update

    def test_frozen(self) -> None:
        record = _record("flask", 1)

        with pytest.raises(dataclasses.FrozenInstanceError):
            record.latest_version = "9.9"  # type: ignore[misc]

    def test_mappings_are_read_only(self) -> None:
        """Edge case: a caller's dict is copied and cannot mutate the record."""
        errors = {"popularity": "down"}
        record = _record("flask", 1, field_errors=errors)
        errors["changelog"] = "later"

        assert dict(record.field_errors) == {"popularity": "down"}
        with pytest.raises(TypeError):
            record.field_errors["x"] = "y"  # type: ignore[index]


@pytest.mark.unit
class TestDisplayData:
    """Tests for PackageRecord.get_display_data()."""

    def test_defaults(self) -> None:
        data = _record("flask", 1).get_display_data()

        assert data == {
            "package": "flask",
            "source": "registry",
            "current": "1.0",
            "latest": "-",
            "severity": "up-to-date",
            "security": "-",
            "changelog": "-",
            "downloads": "-",
        }

    def test_error_latest(self) -> None:
        data = _record("flask", 1, UpdateSeverity.ERROR, error="boom").get_display_data()

        assert data["latest"] == "error"

    def test_security_cells(self) -> None:
        vulnerable = AdvisoryResult(
            "flask",
            "1.0",
            (
                Vulnerability("A", VulnerabilitySeverity.LOW),
                Vulnerability("B", VulnerabilitySeverity.CRITICAL),
            ),
        )

        def cell(result: AdvisoryResult) -> str:
            return _record("flask", 1, advisories=result).get_display_data()["security"]

        assert cell(vulnerable) == "2 (critical)"
        assert cell(AdvisoryResult("flask", "1.0")) == "clean"
        assert cell(AdvisoryResult.unchecked_result("flask", "1.0", "offline")) == "unchecked"

    def test_changelog_and_downloads(self) -> None:
        data = _record(
            "flask",
            1,
            monthly=1234567,
            changelog_risk=ChangelogRisk(tier=RiskTier.MEDIUM),
        ).get_display_data()

        assert data["changelog"] == "medium"
        assert data["downloads"] == "1,234,567"

        unknown = _record("flask", 1, changelog_risk=ChangelogRisk.unknown_risk())
        assert unknown.get_display_data()["changelog"] == "unknown"


@pytest.mark.unit
class TestToJson:
    """Tests for PackageRecord.to_json()."""

    def test_serializes_nested_values(self) -> None:
        record = _record(
            "flask",
            3,
            UpdateSeverity.PATCH,
            monthly=10,
            latest_version="1.0.1",
            dependencies=("click>=8",),
            advisories=AdvisoryResult("flask", "1.0"),
            field_errors={"changelog": "offline"},
        )

        data = record.to_json()

        assert data["name"] == "flask"
        assert data["line"] == 3
        assert data["constraint"] == "==1.0"
        assert data["severity"] == "patch"
        assert data["popularity"] == {"last_day": None, "last_week": None, "last_month": 10}
        assert data["dependencies"] == ["click>=8"]
        assert data["advisories"]["status"] == "clean"
        assert data["changelog"] is None
        assert data["field_errors"] == {"changelog": "offline"}

    def test_unconstrained(self) -> None:
        record = PackageRecord(requirement=Requirement(name="flask"))

        assert record.to_json()["constraint"] is None


# ============================================================================
# Ordering and counting
# ============================================================================


@pytest.mark.unit
class TestSortRecords:
    """Tests for sort_records()."""

    @pytest.fixture
    def records(self):
        return [
            _record("zeta", 1, UpdateSeverity.PATCH, monthly=5),
            _record("alpha", 2, UpdateSeverity.MAJOR),
            _record("mid", 3, UpdateSeverity.ERROR, monthly=500),
            _record("beta", 4, UpdateSeverity.MAJOR, monthly=50),
        ]

    def test_manifest(self, records) -> None:
        shuffled = [records[2], records[0], records[3], records[1]]

        assert [r.name for r in sort_records(shuffled)] == ["zeta", "alpha", "mid", "beta"]

    def test_name(self, records) -> None:
        assert [r.name for r in sort_records(records, SortKey.NAME)] == [
            "alpha",
            "beta",
            "mid",
            "zeta",
        ]

    def test_severity_ties_follow_manifest(self, records) -> None:
        assert [r.name for r in sort_records(records, SortKey.SEVERITY)] == [
            "mid",
            "alpha",
            "beta",
            "zeta",
        ]

    def test_popularity_unknown_last(self, records) -> None:
        assert [r.name for r in sort_records(records, SortKey.POPULARITY)] == [
            "mid",
            "beta",
            "zeta",
            "alpha",
        ]


@pytest.mark.unit
def test_count_by_severity() -> None:
    counts = count_by_severity(
        [
            _record("a", 1, UpdateSeverity.MAJOR),
            _record("b", 2, UpdateSeverity.MAJOR),
            _record("c", 3, UpdateSeverity.ERROR),
        ]
    )

    assert counts[UpdateSeverity.MAJOR] == 2
    assert counts[UpdateSeverity.ERROR] == 1
    assert counts[UpdateSeverity.PATCH] == 0
    assert set(counts) == set(UpdateSeverity)
