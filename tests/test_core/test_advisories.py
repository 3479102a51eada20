"""Unit tests for depscope.core.advisories.

Test Coverage:
- filter_vulnerabilities: explicit version lists, ECOSYSTEM/SEMVER ranges,
  last_affected, open-ended ranges, GIT ranges ignored
- Fixed version from events, or from the first clean available release
- Severity mapping and ordering
- AdvisoryCorrelator: vulnerable, clean, unreachable source, no version
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from depscope.core.advisories import AdvisoryCorrelator, filter_vulnerabilities
from depscope.exceptions import NetworkError
from depscope.models.advisory import VulnerabilitySeverity


# ============================================================================
# Fixtures
# ============================================================================


def _entry(
    vuln_id: str,
    *,
    events: Optional[List[Dict[str, str]]] = None,
    versions: Optional[List[str]] = None,
    severity: Optional[str] = None,
    name: str = "flask",
    range_type: str = "ECOSYSTEM",
) -> Dict[str, Any]:
    block: Dict[str, Any] = {"package": {"name": name, "ecosystem": "PyPI"}}
    if events is not None:
        block["ranges"] = [{"type": range_type, "events": events}]
    if versions is not None:
        block["versions"] = versions
    entry: Dict[str, Any] = {
        "id": vuln_id,
        "summary": f"Issue {vuln_id}",
        "aliases": [f"CVE-{vuln_id}"],
        "affected": [block],
    }
    if severity is not None:
        entry["database_specific"] = {"severity": severity}
    return entry


@pytest.fixture
def entries() -> List[Dict[str, Any]]:
    return [
        _entry("A", events=[{"introduced": "0"}, {"fixed": "2.2.5"}], severity="HIGH"),
        _entry("B", events=[{"introduced": "2.1.0"}, {"last_affected": "2.1.3"}]),
        _entry("C", versions=["1.0", "1.1"], severity="CRITICAL"),
        _entry("D", events=[{"introduced": "0"}, {"fixed": "abc123"}], range_type="GIT"),
    ]


# ============================================================================
# filter_vulnerabilities
# ============================================================================


@pytest.mark.unit
class TestFilterVulnerabilities:
    """Tests for the pure version filter."""

    def test_range_with_fixed_event(self, entries: List[Dict[str, Any]]) -> None:
        result = filter_vulnerabilities("flask", "2.0.1", entries)

        assert [v.id for v in result] == ["A"]
        assert result[0].severity is VulnerabilitySeverity.HIGH
        assert result[0].fixed_version == "2.2.5"
        assert result[0].affected_range == "<2.2.5"
        assert result[0].aliases == ("CVE-A",)
        assert result[0].url.endswith("/A")

    def test_last_affected_is_inclusive(self, entries: List[Dict[str, Any]]) -> None:
        ids = [v.id for v in filter_vulnerabilities("flask", "2.1.3", entries)]

        assert ids == ["A", "B"]

    def test_outside_every_range(self, entries: List[Dict[str, Any]]) -> None:
        assert filter_vulnerabilities("flask", "2.2.5", entries) == ()

    def test_explicit_versions_list(self, entries: List[Dict[str, Any]]) -> None:
        """Happy path: a listed version matches, worst severity sorts first."""
        result = filter_vulnerabilities("flask", "1.1", entries)

        assert [v.id for v in result] == ["C", "A"]
        assert result[0].severity is VulnerabilitySeverity.CRITICAL
        assert result[0].affected_range == "==1.1"

    def test_git_ranges_ignored(self) -> None:
        entry = _entry("D", events=[{"introduced": "0"}, {"fixed": "abc"}], range_type="GIT")

        assert filter_vulnerabilities("flask", "1.0", [entry]) == ()

    def test_open_ended_range(self) -> None:
        """Edge case: no fix yet means every later release is affected."""
        entry = _entry("E", events=[{"introduced": "3.0"}])

        result = filter_vulnerabilities("flask", "3.5", [entry], available=["3.5", "4.0"])

        assert result[0].affected_range == ">=3.0"
        assert result[0].fixed_version is None

    def test_fixed_version_from_available(self) -> None:
        """Edge case: without a fixed event the first clean release is suggested."""
        entry = _entry("F", versions=["1.0", "1.1"])

        result = filter_vulnerabilities(
            "flask", "1.0", [entry], available=["1.0", "1.1", "1.2rc1", "1.2", "2.0"]
        )

        assert result[0].fixed_version == "1.2"

    def test_other_package_blocks_ignored(self) -> None:
        entry = _entry("G", versions=["1.0"], name="jinja2")

        assert filter_vulnerabilities("flask", "1.0", [entry]) == ()

    def test_unknown_severity_is_medium(self) -> None:
        entry = _entry("H", versions=["1.0"], severity="spicy")

        assert filter_vulnerabilities("flask", "1.0", [entry])[0].severity is (
            VulnerabilitySeverity.MEDIUM
        )

    def test_duplicate_ids_collapse(self) -> None:
        entry = _entry("I", versions=["1.0"])

        assert len(filter_vulnerabilities("flask", "1.0", [entry, entry])) == 1

    def test_unparsable_current(self, entries: List[Dict[str, Any]]) -> None:
        assert filter_vulnerabilities("flask", "main", entries) == ()


# ============================================================================
# AdvisoryCorrelator
# ============================================================================


@pytest.mark.unit
class TestAdvisoryCorrelator:
    """Tests for AdvisoryCorrelator.correlate."""

    @pytest.mark.asyncio
    async def test_vulnerable(self, entries: List[Dict[str, Any]]) -> None:
        fetch = AsyncMock(return_value=entries)

        result = await AdvisoryCorrelator(fetch).correlate("Flask", "2.0.1")

        fetch.assert_awaited_once_with("flask")
        assert result.status == "vulnerable"
        assert result.version == "2.0.1"
        assert len(result.vulnerabilities) == 1

    @pytest.mark.asyncio
    async def test_clean(self) -> None:
        result = await AdvisoryCorrelator(AsyncMock(return_value=[])).correlate("flask", "3.0.0")

        assert result.is_clean
        assert not result.unchecked

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("Connection refused"),
            httpx.ConnectTimeout("timed out"),
            ValueError("Invalid JSON"),
        ],
    )
    async def test_unreachable_source_is_unchecked(self, error: Exception) -> None:
        """Edge case: an unreachable source is unchecked, never clean."""
        fetch = AsyncMock(side_effect=error)

        result = await AdvisoryCorrelator(fetch).correlate("flask", "2.0.1")

        assert result.unchecked
        assert result.vulnerabilities == ()
        assert not result.is_clean
        assert result.reason.startswith("advisory source unavailable")

    @pytest.mark.asyncio
    async def test_no_concrete_version(self) -> None:
        fetch = AsyncMock(return_value=[])

        result = await AdvisoryCorrelator(fetch).correlate("flask", None)

        assert result.unchecked
        assert result.reason == "no concrete current version"
        fetch.assert_not_awaited()
