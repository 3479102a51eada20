"""One-hop constraint graph and conflict detection for depscope.

The graph is built once per run from two sources:

1. **The manifest itself.**  When a package is declared more than once,
   the last declaration governs upgrades and every earlier declaration
   stays behind as a constraint from the synthetic
   :data:`~depscope.models.conflict.MANIFEST_DEPENDENT`.
2. **First-level metadata.**  The declared dependencies of each package's
   current release and of its latest release, restricted to packages that
   appear in the manifest.  An edge from the current release only applies
   while the package stays at its current version; an edge from the latest
   release only applies once it moves there.

Nothing beyond one hop is walked; this is not a resolver.  Conflicts are
reported, never repaired: :attr:`ConflictReport.compatible_version` is a
hint and is never substituted into a candidate.

Typical usage::

    graph = DependencyGraph.build(parse_result, records)
    for conflict in graph.detect_conflicts({"pkga": "2.0"}):
        print(conflict.to_display_string())
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import canonicalize_name
from packaging.requirements import InvalidRequirement, Requirement as PkgRequirement

from depscope.core.parser import ParseResult
from depscope.utils.logger import get_logger
from depscope.utils.version_utils import parse_version, versions_equal
from depscope.models.package import PackageRecord
from depscope.models.requirement import Requirement
from depscope.models.conflict import (
    MANIFEST_DEPENDENT,
    ConflictReport,
    Edge,
    GraphInconsistency,
)

logger = get_logger("graph")

# Public API
__all__ = ["DependencyGraph"]


class DependencyGraph:
    """Read-only constraint graph over the packages of one manifest.

    Args:
        requirements: Governing requirement per normalized name.
        records: Fetched records per normalized name; may be partial.
        edges: Constraint edges between manifest packages.
    """

    def __init__(
        self,
        requirements: Mapping[str, Requirement],
        records: Mapping[str, PackageRecord],
        edges: Iterable[Edge],
    ) -> None:
        self._requirements = dict(requirements)
        self._records = dict(records)
        self._edges: Tuple[Edge, ...] = tuple(sorted(set(edges), key=_edge_sort_key))
        self._by_target: Dict[str, List[Edge]] = {}
        for edge in self._edges:
            self._by_target.setdefault(edge.target, []).append(edge)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        parse_result: ParseResult,
        records: Mapping[str, PackageRecord],
    ) -> "DependencyGraph":
        """Build the graph from a parse result and the fetched records."""
        governing = parse_result.governing()
        edges: List[Edge] = []

        for key, duplicates in parse_result.duplicates().items():
            winner = governing[key]
            for req in duplicates:
                if req is winner or not req.specs:
                    continue
                if _valid_specifier(req.constraint) is None:
                    continue
                edges.append(
                    Edge(
                        dependent=MANIFEST_DEPENDENT,
                        target=key,
                        constraint=req.constraint,
                        line_number=req.line_number,
                    )
                )

        for key, record in sorted(records.items()):
            if key not in governing:
                continue
            edges.extend(
                _metadata_edges(key, record.dependencies, record.current_version, governing)
            )
            edges.extend(
                _metadata_edges(
                    key, record.latest_dependencies, record.latest_version, governing
                )
            )

        graph = cls(governing, records, edges)
        logger.debug(
            "Built graph with %d node(s) and %d edge(s)",
            len(graph.nodes),
            len(graph.edges),
        )
        return graph

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> Tuple[str, ...]:
        return tuple(sorted(self._requirements))

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return self._edges

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonicalize_name(name) in self._requirements

    def edges_to(self, target: str) -> Tuple[Edge, ...]:
        return tuple(self._by_target.get(canonicalize_name(target), ()))

    def dependents_of(self, name: str) -> Tuple[str, ...]:
        """Manifest packages whose metadata constrains ``name``, sorted.

        Constraints from duplicate manifest lines are not counted.
        """
        key = canonicalize_name(name)
        return tuple(
            sorted(
                {
                    edge.dependent
                    for edge in self._by_target.get(key, ())
                    if edge.dependent != MANIFEST_DEPENDENT
                }
            )
        )

    def dependencies_of(self, name: str) -> Tuple[str, ...]:
        """Manifest packages that ``name`` declares a dependency on, sorted."""
        key = canonicalize_name(name)
        return tuple(sorted({edge.target for edge in self._edges if edge.dependent == key}))

    def current_version(self, key: str) -> Optional[str]:
        """Version the manifest currently selects for ``key``."""
        record = self._records.get(key)
        if record is not None:
            return record.current_version
        req = self._requirements.get(key)
        return req.current_version() if req is not None else None

    # ------------------------------------------------------------------
    # Conflict detection
    # ------------------------------------------------------------------

    def detect_conflicts(
        self,
        candidate: Optional[Mapping[str, str]] = None,
    ) -> List[ConflictReport]:
        """Return every edge violated by the candidate assignment, sorted.

        For each applicable edge *P requires Q under C*, Q's effective
        version is ``candidate[Q]`` when present, else Q's current version.
        Edges that cannot be evaluated are skipped; see
        :meth:`inconsistencies`.  So are edges of a dependent moved to a
        release whose dependencies were never fetched, which
        :meth:`inconsistencies` also reports.

        Args:
            candidate: Normalized or raw package name → target version.

        Returns:
            Conflicts sorted by dependent, target and constraint, so the
            result depends only on the edges and the candidate.
        """
        conflicts, _ = self._evaluate(candidate or {})
        return conflicts

    def inconsistencies(
        self,
        candidate: Optional[Mapping[str, str]] = None,
    ) -> List[GraphInconsistency]:
        """Applicable edges that could not be evaluated for ``candidate``."""
        _, problems = self._evaluate(candidate or {})
        return problems

    def compatible_version(
        self,
        target: str,
        candidate: Optional[Mapping[str, str]] = None,
    ) -> Optional[str]:
        """Highest stable release of ``target`` allowed by every applicable edge."""
        assignment = _normalize_candidate(candidate or {})
        key = canonicalize_name(target)
        record = self._records.get(key)
        if record is None or not record.available_versions:
            return None

        applicable = [e for e in self._by_target.get(key, ()) if self._applies(e, assignment)]
        combined = _valid_specifier(",".join(e.constraint for e in applicable))
        if combined is None:
            return None

        best = None
        for raw in record.available_versions:
            parsed = parse_version(raw)
            if parsed is None or parsed.is_prerelease:
                continue
            if combined.contains(parsed) and (best is None or parsed > best[0]):
                best = (parsed, raw)
        return best[1] if best else None

    def _evaluate(
        self,
        candidate: Mapping[str, str],
    ) -> Tuple[List[ConflictReport], List[GraphInconsistency]]:
        assignment = _normalize_candidate(candidate)
        conflicts: Set[ConflictReport] = set()
        problems: Set[GraphInconsistency] = set()
        hints: Dict[str, Optional[str]] = {}

        for edge in self._edges:
            if not self._applies(edge, assignment):
                unknown = self._unfetched_release(edge.dependent, assignment)
                if unknown is not None:
                    problems.add(
                        GraphInconsistency(
                            edge.dependent, edge.target, f"dependencies of {unknown} unknown"
                        )
                    )
                continue

            if edge.target not in self._records:
                problems.add(
                    GraphInconsistency(edge.dependent, edge.target, "no fetched record")
                )
                continue

            version = assignment.get(edge.target) or self.current_version(edge.target)
            parsed = parse_version(version)
            if parsed is None:
                reason = "unparsable version" if version else "no known version"
                problems.add(GraphInconsistency(edge.dependent, edge.target, reason))
                continue

            specifier = _valid_specifier(edge.constraint)
            if specifier is None or specifier.contains(parsed, prereleases=True):
                continue

            if edge.target not in hints:
                hints[edge.target] = self.compatible_version(edge.target, assignment)
            conflicts.add(
                ConflictReport(
                    dependent=edge.dependent,
                    target=edge.target,
                    constraint=edge.constraint,
                    version=str(version),
                    dependent_version=self._effective(edge.dependent, assignment),
                    compatible_version=hints[edge.target],
                )
            )

        return sorted(conflicts), sorted(problems)

    def _effective(self, key: str, assignment: Mapping[str, str]) -> Optional[str]:
        if key == MANIFEST_DEPENDENT:
            return None
        return assignment.get(key) or self.current_version(key)

    def _unfetched_release(self, key: str, assignment: Mapping[str, str]) -> Optional[str]:
        """Effective version of ``key`` when its dependencies were never fetched."""
        version = self._effective(key, assignment)
        if version is None:
            return None
        record = self._records.get(key)
        known = (record.current_version, record.latest_version) if record else ()
        if any(versions_equal(version, release) for release in known):
            return None
        return version

    def _applies(self, edge: Edge, assignment: Mapping[str, str]) -> bool:
        if edge.source_version is None:
            return True
        return versions_equal(self._effective(edge.dependent, assignment), edge.source_version)


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def _metadata_edges(
    dependent: str,
    dependencies: Iterable[str],
    source_version: Optional[str],
    governing: Mapping[str, Requirement],
) -> List[Edge]:
    """Edges for the declared dependencies of one release of ``dependent``."""
    if source_version is None:
        return []

    edges: List[Edge] = []
    for dep in dependencies:
        try:
            req = PkgRequirement(dep)
        except InvalidRequirement:
            logger.debug("Skipping unparseable dependency %r of %s", dep, dependent)
            continue

        target = canonicalize_name(req.name)
        if target == dependent or target not in governing or not str(req.specifier):
            continue
        edges.append(
            Edge(
                dependent=dependent,
                target=target,
                constraint=str(req.specifier),
                source_version=source_version,
            )
        )
    return edges


def _valid_specifier(text: str) -> Optional[SpecifierSet]:
    try:
        return SpecifierSet(text)
    except InvalidSpecifier:
        return None


def _normalize_candidate(candidate: Mapping[str, str]) -> Dict[str, str]:
    return {canonicalize_name(name): version for name, version in candidate.items()}


def _edge_sort_key(edge: Edge) -> Tuple[str, str, str, str, int]:
    return (
        edge.dependent,
        edge.target,
        edge.constraint,
        edge.source_version or "",
        edge.line_number or 0,
    )
