"""
Centralized constants for depscope.

This module defines immutable configuration values used across depscope,
including remote endpoints, network settings, manifest directives, and
logging formats. All values are intended to be treated as read-only.
"""

from typing import Final, Tuple

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = "depscope/{version} (+https://pypi.org/project/depscope)"

# ---------------------------------------------------------------------------
# Remote endpoints
# ---------------------------------------------------------------------------

#: PyPI JSON API for a project (all releases).
PYPI_JSON_API: Final[str] = "https://pypi.org/pypi/{package}/json"

#: PyPI JSON API for a single release of a project.
PYPI_RELEASE_API: Final[str] = "https://pypi.org/pypi/{package}/{version}/json"

#: Recent download counts from pypistats.
PYPISTATS_RECENT_API: Final[str] = "https://pypistats.org/api/packages/{package}/recent"

#: OSV vulnerability query endpoint.
OSV_QUERY_API: Final[str] = "https://api.osv.dev/v1/query"

#: Human-facing advisory page for an OSV identifier.
OSV_ADVISORY_URL: Final[str] = "https://osv.dev/vulnerability/{id}"

#: Ecosystem name used for OSV queries.
OSV_ECOSYSTEM: Final[str] = "PyPI"

#: GitHub REST endpoints for git-sourced requirements and release notes.
GITHUB_REPO_API: Final[str] = "https://api.github.com/repos/{owner}/{repo}"
GITHUB_TAGS_API: Final[str] = "https://api.github.com/repos/{owner}/{repo}/tags?per_page=100"
GITHUB_RELEASES_API: Final[str] = (
    "https://api.github.com/repos/{owner}/{repo}/releases?per_page=100"
)

# ---------------------------------------------------------------------------
# HTTP configuration
# ---------------------------------------------------------------------------

#: Default network timeout in seconds.
DEFAULT_TIMEOUT: Final[float] = 10.0

#: Maximum number of retries for failed HTTP requests.
DEFAULT_MAX_RETRIES: Final[int] = 2

#: Maximum number of requests in flight at once.
DEFAULT_MAX_CONCURRENCY: Final[int] = 10

# ---------------------------------------------------------------------------
# Analysis defaults
# ---------------------------------------------------------------------------

#: Consider prerelease versions when picking the latest release.
DEFAULT_INCLUDE_PRERELEASES: Final[bool] = False

#: Infer a current version from ``>=``/``~=``/``>`` lower bounds.
DEFAULT_INFER_VERSION_FROM_CONSTRAINTS: Final[bool] = True

#: Toggle the secondary, independently fallible fetches.
DEFAULT_FETCH_POPULARITY: Final[bool] = True
DEFAULT_FETCH_CHANGELOGS: Final[bool] = True
DEFAULT_FETCH_ADVISORIES: Final[bool] = True

#: Maximum number of evidence lines kept per changelog category.
DEFAULT_EVIDENCE_LIMIT: Final[int] = 5

#: Keys under ``project_urls`` that usually point at the source repository.
REPOSITORY_URL_KEYS: Final[Tuple[str, ...]] = (
    "source",
    "source code",
    "repository",
    "code",
    "github",
    "homepage",
    "home",
)

# ---------------------------------------------------------------------------
# Manifest directives
# ---------------------------------------------------------------------------

#: Short editable-install directive.
EDITABLE_DIRECTIVE: Final[str] = "-e"

#: Long editable-install directive.
EDITABLE_DIRECTIVE_LONG: Final[str] = "--editable"

#: Hash-checking directive.
HASH_DIRECTIVE: Final[str] = "--hash"

#: pip options that may appear on their own line and carry no requirement.
OPTION_DIRECTIVES: Final[Tuple[str, ...]] = (
    "-r",
    "--requirement",
    "-c",
    "--constraint",
    "-i",
    "--index-url",
    "--extra-index-url",
    "-f",
    "--find-links",
    "--trusted-host",
    "--no-binary",
    "--only-binary",
    "--pre",
    "--prefer-binary",
    "--no-index",
)

#: URL schemes recognized for direct references.
URL_SCHEMES: Final[Tuple[str, ...]] = ("http://", "https://", "ftp://", "file:")

#: Prefixes recognized for VCS references.
GIT_PREFIXES: Final[Tuple[str, ...]] = ("git+",)

# ---------------------------------------------------------------------------
# Security constraints
# ---------------------------------------------------------------------------

#: Maximum allowed file size (in bytes) when reading manifests.
MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024  # 10 MB

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for verbose logging.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format (non-verbose).
LOG_DEFAULT_FORMAT: Final[str] = "%(levelname)s: %(message)s"

#: Verbose log format including timestamp and logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
