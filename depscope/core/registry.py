"""Concurrent metadata fetching for depscope.

:class:`RegistryClient` turns parsed requirements into frozen
:class:`~depscope.models.package.PackageRecord` objects.  Every remote
lookup goes through the run's :class:`~depscope.core.data_store.MetadataCache`,
so a package is fetched at most once per run, and through the shared
:class:`~depscope.utils.http.HTTPClient`, which caps the number of
requests in flight.

Per source kind:

* **registry**: PyPI JSON metadata (versions, summary, license, repository
  URL, upload times, declared dependencies), plus per-version dependency
  lookups when the current or latest release is not the one PyPI reports.
* **git**: GitHub repository metadata and tags when the host is
  ``github.com``; other hosts are structural only.
* **local** / **url**: structural only, no network call.

Popularity, release notes and advisories are separate calls.  Each one can
fail on its own; the failure lands in ``record.field_errors`` and the rest
of the record is unaffected.  A failure of the primary metadata sets
``record.error`` and severity ``ERROR`` for that package only.

Typical usage::

    async with HTTPClient() as http, MetadataCache() as cache:
        client = RegistryClient(http, cache)
        records = await client.fetch_all(parse_result.requirements)
"""

from __future__ import annotations

import re
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import httpx
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, parse
from packaging.requirements import InvalidRequirement, Requirement as PkgRequirement

from depscope.utils.http import HTTPClient
from depscope.exceptions import DepScopeError
from depscope.utils.logger import get_logger
from depscope.core.data_store import MetadataCache
from depscope.core.advisories import AdvisoryCorrelator
from depscope.core.changelog import ChangelogRiskClassifier
from depscope.core.classifier import classify_record, select_latest
from depscope.utils.version_utils import parse_version, sort_versions
from depscope.models.advisory import AdvisoryResult
from depscope.models.changelog import ChangelogRisk, ReleaseNotes
from depscope.models.package import PackageRecord, PopularityData
from depscope.models.requirement import Requirement, SourceKind, split_git_url
from depscope.constants import (
    DEFAULT_EVIDENCE_LIMIT,
    DEFAULT_FETCH_ADVISORIES,
    DEFAULT_FETCH_CHANGELOGS,
    DEFAULT_FETCH_POPULARITY,
    DEFAULT_INCLUDE_PRERELEASES,
    DEFAULT_INFER_VERSION_FROM_CONSTRAINTS,
    GITHUB_RELEASES_API,
    GITHUB_REPO_API,
    GITHUB_TAGS_API,
    OSV_ECOSYSTEM,
    OSV_QUERY_API,
    PYPI_JSON_API,
    PYPI_RELEASE_API,
    PYPISTATS_RECENT_API,
    REPOSITORY_URL_KEYS,
)

logger = get_logger("registry")

#: Failures a single lookup may raise without aborting the run.
FETCH_ERRORS = (
    DepScopeError,
    httpx.HTTPError,
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
)

_GITHUB_PATH_RE = re.compile(r"^/?([\w.-]+)/([\w.-]+?)(?:\.git)?/?$")

# Public API
__all__ = [
    "FETCH_ERRORS",
    "RegistryClient",
    "RegistryMetadata",
    "extract_dependencies",
    "github_slug",
    "parse_registry_metadata",
]


# ---------------------------------------------------------------------------
# Data container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegistryMetadata:
    """Parsed snapshot of one PyPI project.

    Attributes:
        name: Normalized project name.
        reported_version: ``info.version``, PyPI's own idea of latest.
        versions: Releases that have files and parse as PEP 440, ascending.
        summary: One-line project summary.
        license: Declared license text or SPDX expression.
        repo_url: Source repository URL, if one can be found.
        upload_times: Version to earliest upload time (ISO 8601).
        dependencies: Base dependencies of ``reported_version``.
        description: Long description of ``reported_version``.
    """

    name: str
    reported_version: Optional[str] = None
    versions: Tuple[str, ...] = ()
    summary: Optional[str] = None
    license: Optional[str] = None
    repo_url: Optional[str] = None
    upload_times: Mapping[str, str] = field(default_factory=dict)
    dependencies: Tuple[str, ...] = ()
    description: Optional[str] = None


def parse_registry_metadata(name: str, data: Dict[str, Any]) -> RegistryMetadata:
    """Transform a raw PyPI JSON response into :class:`RegistryMetadata`.

    Releases with no uploaded files and versions that ``packaging``
    rejects are skipped.  The upload time of a release is its earliest
    file upload.
    """
    info = data.get("info") or {}
    releases = data.get("releases") or {}

    parsed_versions = []
    upload_times: Dict[str, str] = {}

    for version_str, files in releases.items():
        # Skip phantom versions that have no uploaded files
        if not files:
            continue
        try:
            parsed = parse(version_str)
        except InvalidVersion:
            continue
        parsed_versions.append((parsed, version_str))

        times = [f.get("upload_time_iso_8601") or f.get("upload_time") for f in files]
        times = [t for t in times if t]
        if times:
            upload_times[version_str] = min(times)

    parsed_versions.sort()

    return RegistryMetadata(
        name=canonicalize_name(name),
        reported_version=info.get("version"),
        versions=tuple(v for _, v in parsed_versions),
        summary=(info.get("summary") or "").strip() or None,
        license=_license_of(info),
        repo_url=_repository_url(info),
        upload_times=upload_times,
        dependencies=extract_dependencies(info),
        description=info.get("description") or None,
    )


def extract_dependencies(info: Dict[str, Any]) -> Tuple[str, ...]:
    """Pull the unconditional dependency specifiers from ``info``.

    Each ``requires_dist`` entry's marker is evaluated against the running
    interpreter with no extra selected, so extras and platform-gated
    requirements that do not apply here are dropped.  The marker is
    stripped from the entries that remain.

    Returns:
        Specifiers like ``("requests>=2.25", "click")``.
    """
    requires_dist: List[str] = info.get("requires_dist") or []
    deps: List[str] = []

    for dep in requires_dist:
        base = dep.split(";")[0].strip()
        if not base:
            continue
        try:
            marker = PkgRequirement(dep).marker
        except InvalidRequirement:
            # Left to the graph, which skips unparseable entries.
            deps.append(base)
            continue
        if marker is not None and not marker.evaluate({"extra": ""}):
            continue
        deps.append(base)

    return tuple(deps)


def github_slug(url: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return ``(owner, repo)`` for a github.com URL, else ``None``.

    Accepts ``https://github.com/o/r``, ``git+https://github.com/o/r.git@v1``
    and ``git+ssh://git@github.com/o/r.git``.
    """
    if not url:
        return None
    base, _, _ = split_git_url(url.strip())
    if base.startswith("git+"):
        base = base[4:]
    if base.startswith("git@github.com:"):
        base = "ssh://git@github.com/" + base[len("git@github.com:") :]

    parts = urlsplit(base)
    if (parts.hostname or "").lower() not in ("github.com", "www.github.com"):
        return None

    segments = [s for s in parts.path.split("/") if s][:2]
    match = _GITHUB_PATH_RE.match("/".join(segments))
    if not match:
        return None
    return match.group(1), match.group(2)


def _license_of(info: Dict[str, Any]) -> Optional[str]:
    expression = info.get("license_expression")
    if expression:
        return expression
    text = (info.get("license") or "").strip()
    if text and len(text) <= 80 and "\n" not in text:
        return text
    for classifier in info.get("classifiers") or []:
        if classifier.startswith("License ::"):
            return classifier.rsplit("::", 1)[-1].strip()
    return None


def _repository_url(info: Dict[str, Any]) -> Optional[str]:
    urls = {str(k).strip().lower(): v for k, v in (info.get("project_urls") or {}).items() if v}

    for key in REPOSITORY_URL_KEYS:
        url = urls.get(key)
        if url and github_slug(url):
            return url
    for url in urls.values():
        if github_slug(url):
            return url
    for key in REPOSITORY_URL_KEYS:
        if urls.get(key):
            return urls[key]
    return info.get("home_page") or None


def _tag_version(tag: str, package: str) -> Optional[str]:
    """Version named by a git tag such as ``v1.2.0`` or ``demo-1.2.0``."""
    text = tag.strip()
    for prefix in (f"{package}-", f"{package}_", "release-", "version-"):
        if text.lower().startswith(prefix):
            text = text[len(prefix) :]
            break
    parsed = parse_version(text)
    return str(parsed) if parsed is not None else None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RegistryClient:
    """Fetch and assemble package records with per-package failure isolation.

    Args:
        http_client: Shared HTTP client; its semaphore bounds concurrency.
        cache: The run's metadata cache.
        include_prereleases: Let pre-releases count as latest for every
            package, not only those pinned to a pre-release.
        infer_version_from_constraints: Read a current version from
            ``>=``/``~=``/``>`` lower bounds of unpinned lines.
        fetch_popularity: Look up download counts.
        fetch_changelogs: Look up release notes and score them.
        fetch_advisories: Correlate security advisories.
        evidence_limit: Changelog evidence lines kept per category.
    """

    def __init__(
        self,
        http_client: HTTPClient,
        cache: MetadataCache,
        *,
        include_prereleases: bool = DEFAULT_INCLUDE_PRERELEASES,
        infer_version_from_constraints: bool = DEFAULT_INFER_VERSION_FROM_CONSTRAINTS,
        fetch_popularity: bool = DEFAULT_FETCH_POPULARITY,
        fetch_changelogs: bool = DEFAULT_FETCH_CHANGELOGS,
        fetch_advisories: bool = DEFAULT_FETCH_ADVISORIES,
        evidence_limit: int = DEFAULT_EVIDENCE_LIMIT,
    ) -> None:
        self.http_client = http_client
        self.cache = cache
        self.include_prereleases = include_prereleases
        self.infer_version_from_constraints = infer_version_from_constraints
        self.fetch_popularity_enabled = fetch_popularity
        self.fetch_changelogs_enabled = fetch_changelogs
        self.fetch_advisories_enabled = fetch_advisories
        self.changelog_classifier = ChangelogRiskClassifier(evidence_limit)
        self.advisory_correlator = AdvisoryCorrelator(self.fetch_advisories)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def fetch_all(
        self,
        requirements: Iterable[Requirement],
    ) -> Dict[str, PackageRecord]:
        """Build one record per distinct package, concurrently.

        The last occurrence of a package governs, matching upgrade
        targeting.  The returned mapping is keyed by normalized name;
        its order carries no meaning.
        """
        governing: Dict[str, Requirement] = {}
        for req in requirements:
            governing[req.key] = req

        logger.info("Fetching metadata for %d package(s)", len(governing))
        records = await asyncio.gather(*(self.fetch_record(req) for req in governing.values()))
        return {record.key: record for record in records}

    async def fetch_record(self, req: Requirement) -> PackageRecord:
        """Build the record for one requirement; never raises fetch errors."""
        return await self.cache.get_or_fetch("record", req.key, lambda: self._build_record(req))

    async def _build_record(self, req: Requirement) -> PackageRecord:
        if req.source is SourceKind.REGISTRY:
            return await self._build_registry_record(req)
        if req.source is SourceKind.GIT:
            return await self._build_git_record(req)
        return await self._build_structural_record(req)

    async def _build_registry_record(self, req: Requirement) -> PackageRecord:
        current = req.current_version(infer_from_constraints=self.infer_version_from_constraints)
        try:
            metadata = await self.fetch_registry_metadata(req.key)
        except FETCH_ERRORS as exc:
            logger.warning("Failed to fetch metadata for %s: %s", req.name, exc)
            return PackageRecord(
                requirement=req,
                current_version=current,
                severity=classify_record(current, None, fetch_failed=True),
                error=str(exc),
            )

        latest = select_latest(
            metadata.versions,
            include_prereleases=self.include_prereleases or req.is_prerelease_pin,
            fallback=metadata.reported_version,
        )
        field_errors: Dict[str, str] = {}

        (
            dependencies,
            latest_dependencies,
            popularity,
            changelog_risk,
            advisories,
        ) = await asyncio.gather(
            self._dependencies_for(req.key, current, metadata, "dependencies", field_errors),
            self._dependencies_for(req.key, latest, metadata, "latest_dependencies", field_errors),
            self._popularity_for(req.key, field_errors),
            self._changelog_for(req.key, metadata.repo_url, current, latest, field_errors),
            self._advisories_for(req.key, current, metadata.versions, field_errors),
        )

        return PackageRecord(
            requirement=req,
            current_version=current,
            latest_version=latest,
            available_versions=metadata.versions,
            description=metadata.summary,
            license=metadata.license,
            repo_url=metadata.repo_url,
            popularity=popularity,
            dependencies=dependencies,
            latest_dependencies=latest_dependencies,
            upload_times=metadata.upload_times,
            severity=classify_record(current, latest),
            advisories=advisories,
            changelog_risk=changelog_risk,
            field_errors=field_errors,
        )

    async def _build_git_record(self, req: Requirement) -> PackageRecord:
        current = req.current_version()
        slug = github_slug(req.url)
        if slug is None:
            return await self._build_structural_record(req)

        owner, repo = slug
        try:
            repository, tags = await asyncio.gather(
                self.fetch_repository_metadata(owner, repo),
                self.fetch_repository_tags(owner, repo),
            )
        except FETCH_ERRORS as exc:
            logger.warning("Failed to fetch repository %s/%s: %s", owner, repo, exc)
            return PackageRecord(
                requirement=req,
                current_version=current,
                repo_url=f"https://github.com/{owner}/{repo}",
                severity=classify_record(current, None, fetch_failed=True),
                error=str(exc),
            )

        versions = tuple(sort_versions(v for v in (_tag_version(t, req.key) for t in tags) if v))
        latest = select_latest(
            versions,
            include_prereleases=self.include_prereleases or req.is_prerelease_pin,
        )
        field_errors: Dict[str, str] = {}
        repo_url = repository.get("html_url") or f"https://github.com/{owner}/{repo}"
        changelog_risk = await self._changelog_for(
            req.key, repo_url, current, latest, field_errors, pypi_fallback=False
        )

        license_info = repository.get("license") or {}
        return PackageRecord(
            requirement=req,
            current_version=current,
            latest_version=latest,
            available_versions=versions,
            description=repository.get("description"),
            license=license_info.get("spdx_id") or license_info.get("name"),
            repo_url=repo_url,
            severity=classify_record(current, latest),
            advisories=self._not_a_registry_package(req, current),
            changelog_risk=changelog_risk,
            field_errors=field_errors,
        )

    async def _build_structural_record(self, req: Requirement) -> PackageRecord:
        current = req.current_version()
        return PackageRecord(
            requirement=req,
            current_version=current,
            severity=classify_record(current, None),
            advisories=self._not_a_registry_package(req, current),
            changelog_risk=(
                ChangelogRisk.unknown_risk() if self.fetch_changelogs_enabled else None
            ),
        )

    def _not_a_registry_package(
        self,
        req: Requirement,
        current: Optional[str],
    ) -> Optional[AdvisoryResult]:
        if not self.fetch_advisories_enabled:
            return None
        return AdvisoryResult.unchecked_result(
            req.key, current, f"{req.source.value} source has no advisory feed"
        )

    # ------------------------------------------------------------------
    # Secondary fields (each independently fallible)
    # ------------------------------------------------------------------

    async def _dependencies_for(
        self,
        key: str,
        version: Optional[str],
        metadata: RegistryMetadata,
        field_name: str,
        field_errors: Dict[str, str],
    ) -> Tuple[str, ...]:
        if version is None:
            return ()
        if version == metadata.reported_version:
            return metadata.dependencies
        release = _matching_release(version, metadata.versions)
        if release is None:
            field_errors[field_name] = f"{version} is not a published release"
            return ()
        if release == metadata.reported_version:
            return metadata.dependencies
        try:
            return await self.fetch_version_dependencies(key, release)
        except FETCH_ERRORS as exc:
            logger.warning("Failed to fetch dependencies of %s==%s: %s", key, version, exc)
            field_errors[field_name] = str(exc)
            return ()

    async def _popularity_for(
        self,
        key: str,
        field_errors: Dict[str, str],
    ) -> Optional[PopularityData]:
        if not self.fetch_popularity_enabled:
            return None
        try:
            return await self.fetch_popularity(key)
        except FETCH_ERRORS as exc:
            logger.warning("Failed to fetch popularity for %s: %s", key, exc)
            field_errors["popularity"] = str(exc)
            return None

    async def _changelog_for(
        self,
        key: str,
        repo_url: Optional[str],
        current: Optional[str],
        latest: Optional[str],
        field_errors: Dict[str, str],
        *,
        pypi_fallback: bool = True,
    ) -> Optional[ChangelogRisk]:
        if not self.fetch_changelogs_enabled:
            return None
        try:
            notes = await self.fetch_release_notes(
                key, repo_url, latest, pypi_fallback=pypi_fallback
            )
        except FETCH_ERRORS as exc:
            logger.warning("Failed to fetch release notes for %s: %s", key, exc)
            field_errors["changelog"] = str(exc)
            return ChangelogRisk.unknown_risk()
        return self.changelog_classifier.classify(notes, current, latest)

    async def _advisories_for(
        self,
        key: str,
        current: Optional[str],
        available: Tuple[str, ...],
        field_errors: Dict[str, str],
    ) -> Optional[AdvisoryResult]:
        if not self.fetch_advisories_enabled:
            return None
        result = await self.advisory_correlator.correlate(key, current, available)
        if result.unchecked and current is not None and result.reason:
            field_errors["advisories"] = result.reason
        return result

    # ------------------------------------------------------------------
    # Cached remote lookups
    # ------------------------------------------------------------------

    async def fetch_registry_metadata(self, name: str) -> RegistryMetadata:
        """Fetch and parse ``/pypi/{name}/json`` once per run."""
        key = canonicalize_name(name)

        async def fetch() -> RegistryMetadata:
            data = await self.http_client.get_json(PYPI_JSON_API.format(package=key))
            return parse_registry_metadata(key, data)

        return await self.cache.get_or_fetch("registry", key, fetch)

    async def fetch_version_dependencies(self, name: str, version: str) -> Tuple[str, ...]:
        """Base dependencies declared by one release."""
        key = canonicalize_name(name)

        async def fetch() -> Tuple[str, ...]:
            url = PYPI_RELEASE_API.format(package=key, version=version)
            data = await self.http_client.get_json(url)
            return extract_dependencies(data.get("info") or {})

        return await self.cache.get_or_fetch("dependencies", (key, version), fetch)

    async def fetch_release_description(self, name: str, version: str) -> Optional[str]:
        """Long description PyPI stores for one release."""
        key = canonicalize_name(name)

        async def fetch() -> Optional[str]:
            url = PYPI_RELEASE_API.format(package=key, version=version)
            data = await self.http_client.get_json(url)
            return (data.get("info") or {}).get("description") or None

        return await self.cache.get_or_fetch("description", (key, version), fetch)

    async def fetch_repository_metadata(self, owner: str, repo: str) -> Dict[str, Any]:
        """GitHub repository document for ``owner/repo``."""

        async def fetch() -> Dict[str, Any]:
            return await self.http_client.get_json(GITHUB_REPO_API.format(owner=owner, repo=repo))

        return await self.cache.get_or_fetch("repository", f"{owner}/{repo}".lower(), fetch)

    async def fetch_repository_tags(self, owner: str, repo: str) -> Tuple[str, ...]:
        """Tag names of ``owner/repo`` (first page)."""

        async def fetch() -> Tuple[str, ...]:
            url = GITHUB_TAGS_API.format(owner=owner, repo=repo)
            tags = await self.http_client.get_json_list(url)
            return tuple(t["name"] for t in tags if isinstance(t, dict) and t.get("name"))

        return await self.cache.get_or_fetch("tags", f"{owner}/{repo}".lower(), fetch)

    async def fetch_github_releases(self, owner: str, repo: str) -> Dict[str, str]:
        """Published release notes of ``owner/repo``, keyed by tag name."""

        async def fetch() -> Dict[str, str]:
            url = GITHUB_RELEASES_API.format(owner=owner, repo=repo)
            releases = await self.http_client.get_json_list(url)
            return {
                release["tag_name"]: release.get("body") or ""
                for release in releases
                if isinstance(release, dict)
                and release.get("tag_name")
                and not release.get("draft")
            }

        return await self.cache.get_or_fetch("releases", f"{owner}/{repo}".lower(), fetch)

    async def fetch_popularity(self, name: str) -> PopularityData:
        """Recent download counts from pypistats."""
        key = canonicalize_name(name)

        async def fetch() -> PopularityData:
            data = await self.http_client.get_json(PYPISTATS_RECENT_API.format(package=key))
            counts = data.get("data")
            if not isinstance(counts, dict):
                counts = {}
            return PopularityData(
                last_day=_as_count(counts.get("last_day")),
                last_week=_as_count(counts.get("last_week")),
                last_month=_as_count(counts.get("last_month")),
            )

        return await self.cache.get_or_fetch("popularity", key, fetch)

    async def fetch_release_notes(
        self,
        name: str,
        repo_url: Optional[str],
        latest: Optional[str],
        *,
        pypi_fallback: bool = True,
    ) -> ReleaseNotes:
        """Release notes per version: GitHub releases first, then PyPI.

        The PyPI fallback is the long description of the latest release,
        which is all the registry offers.

        Raises:
            DepScopeError: Neither source could be read.
        """
        key = canonicalize_name(name)
        slug = github_slug(repo_url)
        github_error: Optional[BaseException] = None

        if slug is not None:
            try:
                releases = await self.fetch_github_releases(*slug)
            except FETCH_ERRORS as exc:
                logger.debug("GitHub releases unavailable for %s: %s", key, exc)
                github_error = exc
            else:
                entries = {}
                for tag, body in releases.items():
                    version = _tag_version(tag, key)
                    if version and body.strip():
                        entries[version] = body
                if entries:
                    return ReleaseNotes(package=key, entries=entries, source="github")

        if not pypi_fallback or latest is None:
            if github_error is not None:
                raise github_error
            return ReleaseNotes(package=key)

        description = await self.fetch_release_description(key, latest)
        entries = {latest: description} if description else {}
        return ReleaseNotes(package=key, entries=entries, source="pypi")

    async def fetch_advisories(self, name: str) -> List[Dict[str, Any]]:
        """Every OSV advisory for the package, following pagination."""
        key = canonicalize_name(name)

        async def fetch() -> List[Dict[str, Any]]:
            payload: Dict[str, Any] = {"package": {"name": key, "ecosystem": OSV_ECOSYSTEM}}
            vulns: List[Dict[str, Any]] = []
            while True:
                data = await self.http_client.post_json(OSV_QUERY_API, payload)
                vulns.extend(v for v in data.get("vulns") or [] if isinstance(v, dict))
                token = data.get("next_page_token")
                if not token:
                    return vulns
                payload = {**payload, "page_token": token}

        return await self.cache.get_or_fetch("advisories", key, fetch)


def _matching_release(version: str, versions: Tuple[str, ...]) -> Optional[str]:
    """The published release string equal to ``version`` (``3.2`` finds ``3.2.0``)."""
    if version in versions:
        return version
    parsed = parse_version(version)
    if parsed is None:
        return None
    for candidate in versions:
        if parse_version(candidate) == parsed:
            return candidate
    return None


def _as_count(value: Any) -> Optional[int]:
    return int(value) if isinstance(value, (int, float)) else None
