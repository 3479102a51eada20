"""
Changelog risk data models for depscope.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple


class RiskTier(str, Enum):
    """Qualitative risk bucket of a release-notes range."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ChangeCategory(str, Enum):
    """What a matched release-notes line announces."""

    BREAKING = "breaking"
    DEPRECATED = "deprecated"
    SECURITY = "security"
    PERFORMANCE = "performance"


class NotesScope(str, Enum):
    """Which release notes the risk was computed from."""

    RANGE = "range"
    LATEST = "latest"
    NONE = "none"


@dataclass(frozen=True)
class ReleaseNotes:
    """Free-text release notes per version for one package.

    Args:
        package: Normalized package name.
        entries: Version string to notes text.
        source: Where the notes came from (``github``, ``pypi``).
    """

    package: str
    entries: Mapping[str, str] = field(default_factory=dict)
    source: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    def __bool__(self) -> bool:
        return any(text.strip() for text in self.entries.values())


@dataclass(frozen=True)
class ChangelogRisk:
    """Heuristic risk of moving across a release-notes range.

    ``unknown`` is set when no notes were available; the tier is then LOW
    but callers must not read it as a reviewed, low-risk changelog.
    """

    tier: RiskTier = RiskTier.LOW
    evidence: Mapping[ChangeCategory, Tuple[str, ...]] = field(default_factory=dict)
    unknown: bool = False
    scope: NotesScope = NotesScope.NONE

    def __post_init__(self) -> None:
        object.__setattr__(self, "evidence", MappingProxyType(dict(self.evidence)))

    @classmethod
    def unknown_risk(cls) -> "ChangelogRisk":
        return cls(tier=RiskTier.LOW, unknown=True, scope=NotesScope.NONE)

    def has(self, category: ChangeCategory) -> bool:
        return bool(self.evidence.get(category))

    @property
    def label(self) -> str:
        return "unknown" if self.unknown else self.tier.value

    def to_json(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "unknown": self.unknown,
            "scope": self.scope.value,
            "evidence": {
                category.value: list(lines) for category, lines in self.evidence.items()
            },
        }
