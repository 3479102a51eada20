"""Unit tests for depscope.core.classifier.

Test Coverage:
- classify: major/minor/patch/prerelease/up-to-date/unknown
- Non-PEP 440 versions through the numeric fallback
- classify_record: fetch failures
- select_latest: prerelease filter, LTS lines, registry fallback
"""

from __future__ import annotations

import pytest

from depscope.core.classifier import classify, classify_record, select_latest
from depscope.models.package import UpdateSeverity


# ============================================================================
# classify
# ============================================================================


@pytest.mark.unit
class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize(
        "current,latest,expected",
        [
            ("3.2.0", "4.2.0", UpdateSeverity.MAJOR),
            ("1.9.9", "2.0.0", UpdateSeverity.MAJOR),
            ("2.0.0", "2.1.0", UpdateSeverity.MINOR),
            ("2.0", "2.1", UpdateSeverity.MINOR),
            ("2.0.0", "2.0.1", UpdateSeverity.PATCH),
            ("1.2.3", "1.2.3.1", UpdateSeverity.PATCH),
            ("1.2.3", "1.2.3.post1", UpdateSeverity.PATCH),
            ("2.0.0rc1", "2.0.0", UpdateSeverity.PATCH),
            ("2.0.0", "2.1.0b1", UpdateSeverity.PRERELEASE),
            ("2.0.0", "2.0.0", UpdateSeverity.UP_TO_DATE),
            ("1.0", "1.0.0", UpdateSeverity.UP_TO_DATE),
            ("3.0.0", "2.9.0", UpdateSeverity.UP_TO_DATE),
        ],
    )
    def test_pep440_versions(
        self, current: str, latest: str, expected: UpdateSeverity
    ) -> None:
        assert classify(current, latest) is expected

    @pytest.mark.parametrize(
        "current,latest",
        [(None, "1.0"), ("1.0", None), ("", "1.0"), ("latest", "1.0"), ("1.0", "main")],
    )
    def test_unknown_when_missing_or_unparsable(self, current, latest) -> None:
        """Edge case: anything not comparable is Unknown, never Up-to-date."""
        assert classify(current, latest) is UpdateSeverity.UNKNOWN

    def test_numeric_fallback(self) -> None:
        """Edge case: non-PEP 440 strings compare on their leading numbers."""
        assert classify("1.2.3-custom", "1.3.0-custom") is UpdateSeverity.MINOR
        assert classify("1.2.3-custom", "1.2.3") is UpdateSeverity.UP_TO_DATE

    def test_django_line(self) -> None:
        """Happy path: django 3.2.0 against a fetched latest of 4.2.0."""
        assert classify("3.2.0", "4.2.0") is UpdateSeverity.MAJOR

    def test_is_pure(self) -> None:
        assert classify("1.0.0", "1.1.0") is classify("1.0.0", "1.1.0")


@pytest.mark.unit
class TestClassifyRecord:
    """Tests for classify_record()."""

    def test_fetch_failure_is_error(self) -> None:
        assert classify_record("1.0", "2.0", fetch_failed=True) is UpdateSeverity.ERROR

    def test_delegates_to_classify(self) -> None:
        assert classify_record("1.0", "2.0") is UpdateSeverity.MAJOR
        assert classify_record(None, None) is UpdateSeverity.UNKNOWN


# ============================================================================
# select_latest
# ============================================================================


@pytest.mark.unit
class TestSelectLatest:
    """Tests for select_latest()."""

    def test_newest_stable_wins(self) -> None:
        assert select_latest(["3.2.0", "4.2.0", "5.0rc1"]) == "4.2.0"

    def test_prereleases_when_allowed(self) -> None:
        assert select_latest(["4.2.0", "5.0rc1"], include_prereleases=True) == "5.0rc1"

    def test_lts_patch_does_not_change_latest(self) -> None:
        """Edge case: a newer patch on an older line is not the latest."""
        assert select_latest(["2.1.0", "1.4.9", "1.4.8"]) == "2.1.0"

    def test_invalid_versions_skipped(self) -> None:
        assert select_latest(["not-a-version", "1.0"]) == "1.0"

    def test_returns_original_spelling(self) -> None:
        assert select_latest(["1.0.0", "v1.1"]) == "v1.1"

    def test_fallback_used_when_nothing_qualifies(self) -> None:
        assert select_latest([], fallback="2.0") == "2.0"
        assert select_latest(["3.0a1"], fallback="2.0") == "2.0"

    def test_fallback_obeys_prerelease_filter(self) -> None:
        """Edge case: a pre-release fallback is no latest at all."""
        assert select_latest([], fallback="3.0b1") is None
        assert select_latest([], include_prereleases=True, fallback="3.0b1") == "3.0b1"

    def test_nothing_at_all(self) -> None:
        assert select_latest([]) is None
        assert select_latest(["garbage"], fallback="also garbage") is None
