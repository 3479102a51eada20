"""Heuristic changelog risk classification for depscope.

Release notes are scanned line by line against :data:`CATEGORY_PATTERNS`,
a declarative table of ``(category, regex)`` pairs.  Adding a category or
a phrase is a table edit; the scanning loop never changes.

Tiers:

* ``HIGH``: at least one *breaking* line.
* ``MEDIUM``: at least one *deprecated* line and no breaking ones.
* ``LOW``: anything else, including notes with no matches at all.

When no release notes are available the tier is ``LOW`` with
``unknown=True``, which presentation layers must show as *unknown*.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from depscope.constants import DEFAULT_EVIDENCE_LIMIT
from depscope.utils.version_utils import parse_version
from depscope.models.changelog import (
    ChangeCategory,
    ChangelogRisk,
    NotesScope,
    ReleaseNotes,
    RiskTier,
)

__all__ = ["CATEGORY_PATTERNS", "ChangelogRiskClassifier"]

#: ``(category, pattern)`` table; patterns are matched case-insensitively.
CATEGORY_PATTERNS: Tuple[Tuple[ChangeCategory, str], ...] = (
    (ChangeCategory.BREAKING, r"\bbreaking\b"),
    (ChangeCategory.BREAKING, r"\bbackwards?[- ]incompatib\w*"),
    (ChangeCategory.BREAKING, r"\bincompatible (?:change|api)"),
    (ChangeCategory.BREAKING, r"(?<!will be )(?<!to be )\bremoved\b"),
    (ChangeCategory.BREAKING, r"\bdrop(?:ped|s)? support\b"),
    (ChangeCategory.BREAKING, r"\bno longer (?:supports?|accepts?|works?)\b"),
    (ChangeCategory.DEPRECATED, r"\bdeprecat\w*"),
    (ChangeCategory.DEPRECATED, r"\bwill be removed\b"),
    (ChangeCategory.DEPRECATED, r"\bmigrat(?:e|ion|ing)\b"),
    (ChangeCategory.DEPRECATED, r"\bin favou?r of\b"),
    (ChangeCategory.SECURITY, r"\bsecurity\b"),
    (ChangeCategory.SECURITY, r"\bcve-\d{4}-\d+"),
    (ChangeCategory.SECURITY, r"\bghsa-[\w-]+"),
    (ChangeCategory.SECURITY, r"\bvulnerab\w*"),
    (ChangeCategory.SECURITY, r"\b(?:xss|csrf|injection)\b"),
    (ChangeCategory.PERFORMANCE, r"\bperformance\b"),
    (ChangeCategory.PERFORMANCE, r"\bfaster\b"),
    (ChangeCategory.PERFORMANCE, r"\bspeed(?:up|s up| up)\b"),
    (ChangeCategory.PERFORMANCE, r"\boptimi[sz](?:e|ed|ation)\b"),
    (ChangeCategory.PERFORMANCE, r"\bmemory (?:usage|footprint)\b"),
)

_MAX_EVIDENCE_LENGTH = 200
_BULLET_CHARS = "-*+• "


class ChangelogRiskClassifier:
    """Score the release notes between two versions.

    Args:
        evidence_limit: Matched lines kept per category.
        patterns: Category table; defaults to :data:`CATEGORY_PATTERNS`.

    Example::

        >>> notes = ReleaseNotes("demo", {"2.0.0": "- Breaking: dropped py2"})
        >>> ChangelogRiskClassifier().classify(notes, "1.0.0", "2.0.0").tier
        <RiskTier.HIGH: 'high'>
    """

    def __init__(
        self,
        evidence_limit: int = DEFAULT_EVIDENCE_LIMIT,
        patterns: Sequence[Tuple[ChangeCategory, str]] = CATEGORY_PATTERNS,
    ) -> None:
        if evidence_limit < 1:
            raise ValueError("evidence_limit must be at least 1")
        self.evidence_limit = evidence_limit
        self._patterns: List[Tuple[ChangeCategory, Pattern[str]]] = [
            (category, re.compile(pattern, re.IGNORECASE))
            for category, pattern in patterns
        ]

    def classify(
        self,
        notes: Optional[ReleaseNotes],
        current: Optional[str],
        latest: Optional[str],
    ) -> ChangelogRisk:
        """Classify the notes of releases in ``(current, latest]``.

        Falls back to the latest release's notes when the range selects
        nothing, and to an *unknown* result when there is no text at all.
        """
        if not notes:
            return ChangelogRisk.unknown_risk()

        texts, scope = self.select_texts(notes, current, latest)
        if not texts:
            return ChangelogRisk.unknown_risk()

        evidence = self.scan(texts)
        return ChangelogRisk(
            tier=_tier_for(evidence),
            evidence={category: tuple(lines) for category, lines in evidence.items()},
            unknown=False,
            scope=scope,
        )

    @staticmethod
    def select_texts(
        notes: ReleaseNotes,
        current: Optional[str],
        latest: Optional[str],
    ) -> Tuple[List[str], NotesScope]:
        """Pick the notes to scan and say which scope they cover."""
        lower = parse_version(current)
        upper = parse_version(latest)

        if lower is not None and upper is not None:
            in_range = sorted(
                (parsed, text)
                for version, text in notes.entries.items()
                for parsed in [parse_version(version)]
                if parsed is not None and lower < parsed <= upper and text.strip()
            )
            if in_range:
                return [text for _, text in in_range], NotesScope.RANGE

        for version, text in notes.entries.items():
            if not text.strip():
                continue
            if version == latest or (upper is not None and parse_version(version) == upper):
                return [text], NotesScope.LATEST

        return [], NotesScope.NONE

    def scan(self, texts: Sequence[str]) -> Dict[ChangeCategory, List[str]]:
        """Collect matching lines per category, capped at ``evidence_limit``."""
        evidence: Dict[ChangeCategory, List[str]] = {}
        for text in texts:
            for raw_line in text.splitlines():
                line = raw_line.strip().lstrip(_BULLET_CHARS).strip()
                if not line:
                    continue
                for category, pattern in self._patterns:
                    lines = evidence.setdefault(category, [])
                    if len(lines) >= self.evidence_limit:
                        continue
                    snippet = line[:_MAX_EVIDENCE_LENGTH]
                    if snippet not in lines and pattern.search(line):
                        lines.append(snippet)
        return {category: lines for category, lines in evidence.items() if lines}


def _tier_for(evidence: Dict[ChangeCategory, List[str]]) -> RiskTier:
    if evidence.get(ChangeCategory.BREAKING):
        return RiskTier.HIGH
    if evidence.get(ChangeCategory.DEPRECATED):
        return RiskTier.MEDIUM
    return RiskTier.LOW
