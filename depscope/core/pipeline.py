"""End-to-end analysis run for depscope.

:func:`analyze` is the single coordinating flow of a run: read and parse
the manifest, fan out the metadata fetches, fan back in, then build the
constraint graph and the simulator.  Everything after the fan-in is
synchronous and never touches the network.

Typical usage::

    analysis = asyncio.run(analyze("requirements.txt"))
    for record in analysis.ordered_records():
        print(record.name, record.severity.value)
    report = analysis.simulator.simulate(analysis.simulator.upgradable())
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Union

from depscope.config import DepScopeConfig
from depscope.utils.http import HTTPClient
from depscope.core.graph import DependencyGraph
from depscope.utils.logger import get_logger
from depscope.core.registry import RegistryClient
from depscope.core.data_store import MetadataCache
from depscope.utils.filesystem import safe_read_file
from depscope.core.simulator import UpgradeSimulator
from depscope.models.conflict import ConflictReport
from depscope.core.parser import ManifestParser, ParseResult
from depscope.models.package import PackageRecord, SortKey, sort_records

logger = get_logger("pipeline")

PathLike = Union[str, Path]

# Public API
__all__ = ["Analysis", "analyze"]


@dataclass(frozen=True)
class Analysis:
    """Everything one run produced.

    Attributes:
        text: The manifest text that was parsed.
        parse_result: Parser output, including per-line errors.
        records: One record per distinct package, keyed by normalized name.
        graph: The one-hop constraint graph.
        simulator: Simulator bound to ``records`` and ``graph``.
    """

    text: str
    parse_result: ParseResult
    records: Mapping[str, PackageRecord]
    graph: DependencyGraph
    simulator: UpgradeSimulator

    def ordered_records(self, by: SortKey = SortKey.MANIFEST) -> List[PackageRecord]:
        return sort_records(self.records.values(), by)

    def latest_targets(self) -> Dict[str, str]:
        """Latest version of every package that has an update."""
        return {
            key: record.latest_version
            for key, record in self.records.items()
            if record.has_update and record.latest_version
        }

    def conflicts_at_latest(self) -> List[ConflictReport]:
        """Conflicts that upgrading everything to latest would cause."""
        return self.graph.detect_conflicts(self.latest_targets())


async def analyze(
    source: Optional[PathLike] = None,
    *,
    text: Optional[str] = None,
    config: Optional[DepScopeConfig] = None,
) -> Analysis:
    """Run a full analysis of a manifest file or manifest text.

    Args:
        source: Manifest path; ignored for reading when ``text`` is given
            but still used to resolve relative local paths.
        text: Manifest text to analyze instead of reading ``source``.
        config: Effective configuration; defaults when omitted.

    Returns:
        The frozen :class:`Analysis` of the run.

    Raises:
        FileOperationError: The manifest cannot be read.
        ValueError: Neither ``source`` nor ``text`` was given.
    """
    if source is None and text is None:
        raise ValueError("analyze() needs a manifest path or manifest text")

    config = config or DepScopeConfig()
    path = Path(source) if source is not None else None

    if text is None:
        assert path is not None
        text = await asyncio.to_thread(safe_read_file, path)

    parse_result = ManifestParser().parse_string(
        text,
        source_file_path=str(path) if path else None,
        base_directory=path.parent if path else None,
    )

    async with HTTPClient(
        timeout=config.timeout,
        max_retries=config.max_retries,
        max_concurrency=config.max_concurrency,
    ) as http_client, MetadataCache() as cache:
        client = RegistryClient(
            http_client,
            cache,
            include_prereleases=config.include_prereleases,
            infer_version_from_constraints=config.infer_version_from_constraints,
            fetch_popularity=config.fetch_popularity,
            fetch_changelogs=config.fetch_changelogs,
            fetch_advisories=config.fetch_advisories,
            evidence_limit=config.evidence_limit,
        )
        records = await client.fetch_all(parse_result.requirements)
        logger.debug("Cache: %d hit(s), %d miss(es)", cache.hits, cache.misses)

    graph = DependencyGraph.build(parse_result, records)
    simulator = UpgradeSimulator(records, graph)

    failed = sum(1 for record in records.values() if record.fetch_failed)
    if failed:
        logger.warning("%d package(s) could not be fetched", failed)

    return Analysis(
        text=text,
        parse_result=parse_result,
        records=records,
        graph=graph,
        simulator=simulator,
    )
