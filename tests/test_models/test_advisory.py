"""Unit tests for depscope.models.advisory module.

Test Coverage:
- VulnerabilitySeverity ranking and label mapping
- AdvisoryResult states: vulnerable, clean, unchecked
- Highest severity and per-severity counts
- JSON serialization
"""

from __future__ import annotations

import pytest

from depscope.models.advisory import (
    AdvisoryResult,
    Vulnerability,
    VulnerabilitySeverity,
)


@pytest.mark.unit
class TestVulnerabilitySeverity:
    """Tests for VulnerabilitySeverity."""

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("CRITICAL", VulnerabilitySeverity.CRITICAL),
            ("important", VulnerabilitySeverity.HIGH),
            (" Moderate ", VulnerabilitySeverity.MEDIUM),
            ("low", VulnerabilitySeverity.LOW),
            ("weird", VulnerabilitySeverity.MEDIUM),
            (None, VulnerabilitySeverity.MEDIUM),
        ],
    )
    def test_from_label(self, label, expected: VulnerabilitySeverity) -> None:
        assert VulnerabilitySeverity.from_label(label) is expected

    def test_rank_and_severe(self) -> None:
        assert VulnerabilitySeverity.CRITICAL.rank > VulnerabilitySeverity.HIGH.rank
        assert VulnerabilitySeverity.HIGH.is_severe
        assert not VulnerabilitySeverity.MEDIUM.is_severe


@pytest.mark.unit
class TestAdvisoryResult:
    """Tests for AdvisoryResult."""

    def test_clean(self) -> None:
        result = AdvisoryResult("flask", "2.0.0")

        assert result.is_clean
        assert result.status == "clean"
        assert result.highest_severity is None

    def test_unchecked_is_not_clean(self) -> None:
        """Edge case: zero vulnerabilities, yet not reported clean."""
        result = AdvisoryResult.unchecked_result("flask", "2.0.0", "advisory source unavailable")

        assert result.unchecked
        assert not result.is_clean
        assert result.status == "unchecked"
        assert result.vulnerabilities == ()
        assert result.reason == "advisory source unavailable"

    def test_unchecked_cannot_list_vulnerabilities(self) -> None:
        with pytest.raises(ValueError):
            AdvisoryResult("flask", "2.0.0", (Vulnerability("X"),), unchecked=True)

    def test_vulnerable(self) -> None:
        result = AdvisoryResult(
            "flask",
            "2.0.0",
            (
                Vulnerability("GHSA-1", VulnerabilitySeverity.HIGH),
                Vulnerability("GHSA-2", VulnerabilitySeverity.LOW),
                Vulnerability("GHSA-3", VulnerabilitySeverity.HIGH),
            ),
        )

        assert result.status == "vulnerable"
        assert result.highest_severity is VulnerabilitySeverity.HIGH
        assert result.count_by_severity() == {
            VulnerabilitySeverity.CRITICAL: 0,
            VulnerabilitySeverity.HIGH: 2,
            VulnerabilitySeverity.MEDIUM: 0,
            VulnerabilitySeverity.LOW: 1,
        }

    def test_to_json(self) -> None:
        vuln = Vulnerability(
            "GHSA-1",
            VulnerabilitySeverity.CRITICAL,
            summary="RCE",
            affected_range=">=1.0,<1.4.2",
            fixed_version="1.4.2",
            url="https://osv.dev/vulnerability/GHSA-1",
            aliases=("CVE-2024-0001",),
        )

        data = AdvisoryResult("demo", "1.0", (vuln,)).to_json()

        assert data["status"] == "vulnerable"
        assert data["vulnerabilities"][0] == {
            "id": "GHSA-1",
            "severity": "critical",
            "summary": "RCE",
            "affected_range": ">=1.0,<1.4.2",
            "fixed_version": "1.4.2",
            "url": "https://osv.dev/vulnerability/GHSA-1",
            "aliases": ["CVE-2024-0001"],
        }
