"""
Constraint graph and conflict data models for depscope.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

#: Dependent name used for constraints the manifest itself declares.
MANIFEST_DEPENDENT = "<manifest>"


@dataclass(frozen=True, order=True)
class Edge:
    """``dependent`` requires ``target`` under ``constraint``.

    Args:
        dependent: Normalized name of the requiring package, or
            :data:`MANIFEST_DEPENDENT`.
        target: Normalized name of the constrained package.
        constraint: PEP 440 specifier string, e.g. ``">=2.0,<3"``.
        source_version: The edge only applies while ``dependent`` resolves
            to this version; ``None`` means it always applies.
        line_number: Manifest line for manifest edges.
    """

    dependent: str
    target: str
    constraint: str
    source_version: Optional[str] = None
    line_number: Optional[int] = None


@dataclass(frozen=True, order=True)
class ConflictReport:
    """A constraint violated by a candidate version assignment.

    Args:
        dependent: Package (or the manifest) declaring the constraint.
        target: Package being constrained.
        constraint: The violated specifier.
        version: Offending effective version of ``target``.
        dependent_version: Effective version of ``dependent``, if known.
        compatible_version: Highest available version of ``target``
            satisfying every applicable constraint. Informational only.
    """

    dependent: str
    target: str
    constraint: str
    version: str
    dependent_version: Optional[str] = None
    compatible_version: Optional[str] = None

    def to_display_string(self) -> str:
        source = (
            f"{self.dependent}=={self.dependent_version}"
            if self.dependent_version
            else self.dependent
        )
        return f"{source} requires {self.target}{self.constraint}, got {self.version}"

    def to_json(self) -> Dict[str, Optional[str]]:
        return {
            "dependent": self.dependent,
            "dependent_version": self.dependent_version,
            "target": self.target,
            "constraint": self.constraint,
            "version": self.version,
            "compatible_version": self.compatible_version,
        }

    def __str__(self) -> str:
        return self.to_display_string()


@dataclass(frozen=True, order=True)
class GraphInconsistency:
    """An edge that could not be evaluated; its target severity is Unknown."""

    dependent: str
    target: str
    reason: str
