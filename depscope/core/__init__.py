"""
Core functionality exports for depscope.

Importing from here keeps user-facing imports clean and stable:

    from depscope.core import ManifestParser, analyze
"""

from __future__ import annotations

from depscope.core.graph import DependencyGraph
from depscope.core.data_store import MetadataCache
from depscope.core.pipeline import Analysis, analyze
from depscope.core.simulator import UpgradeSimulator
from depscope.core.advisories import AdvisoryCorrelator
from depscope.core.parser import ManifestParser, ParseResult
from depscope.core.writer import render_lock, render_manifest
from depscope.core.changelog import CATEGORY_PATTERNS, ChangelogRiskClassifier
from depscope.core.classifier import classify, classify_record, select_latest
from depscope.core.registry import RegistryClient, RegistryMetadata

__all__ = [
    "ManifestParser",
    "ParseResult",
    "MetadataCache",
    "RegistryClient",
    "RegistryMetadata",
    "classify",
    "classify_record",
    "select_latest",
    "AdvisoryCorrelator",
    "CATEGORY_PATTERNS",
    "ChangelogRiskClassifier",
    "DependencyGraph",
    "UpgradeSimulator",
    "render_lock",
    "render_manifest",
    "Analysis",
    "analyze",
]
