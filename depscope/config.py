"""Settings for depscope runs.

Settings come from a TOML file, looked up in this order:

1. the path given with ``--config`` (or ``DEPSCOPE_CONFIG``);
2. ``depscope.toml`` in the working directory, table ``[depscope]``;
3. ``pyproject.toml`` in the working directory, but only when it has a
   ``[tool.depscope]`` table.

No file means defaults. Command-line options override file values.

Example ``depscope.toml``::

    [depscope]
    max_concurrency = 16
    timeout = 5
    fetch_popularity = false
"""

from __future__ import annotations

import tomli as tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass, field, fields

from depscope.exceptions import ConfigError
from depscope.utils.logger import get_logger
from depscope.constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_EVIDENCE_LIMIT,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_FETCH_ADVISORIES,
    DEFAULT_FETCH_CHANGELOGS,
    DEFAULT_FETCH_POPULARITY,
    DEFAULT_INCLUDE_PRERELEASES,
    DEFAULT_INFER_VERSION_FROM_CONSTRAINTS,
)

logger = get_logger("config")

# File name -> key path of the depscope table inside it.
_SECTIONS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("depscope.toml", ("depscope",)),
    ("pyproject.toml", ("tool", "depscope")),
)


@dataclass
class DepScopeConfig:
    """Effective depscope settings. Every option has a default.

    Attributes:
        max_concurrency: HTTP requests allowed in flight.
        timeout: Seconds before a single request times out.
        max_retries: Extra attempts for timeouts, network errors and 5xx.
        include_prereleases: Let pre-releases count as the latest version.
        infer_version_from_constraints: Use the lower bound of ``>=``,
            ``~=`` or ``>`` as the current version of unpinned lines.
        fetch_popularity: Look up download counts.
        fetch_changelogs: Fetch release notes and score their risk.
        fetch_advisories: Look up known vulnerabilities.
        evidence_limit: Changelog lines kept per category.
        source_path: File the settings came from, if any.
    """

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    include_prereleases: bool = DEFAULT_INCLUDE_PRERELEASES
    infer_version_from_constraints: bool = DEFAULT_INFER_VERSION_FROM_CONSTRAINTS
    fetch_popularity: bool = DEFAULT_FETCH_POPULARITY
    fetch_changelogs: bool = DEFAULT_FETCH_CHANGELOGS
    fetch_advisories: bool = DEFAULT_FETCH_ADVISORIES
    evidence_limit: int = DEFAULT_EVIDENCE_LIMIT

    source_path: Optional[Path] = field(default=None, repr=False)

    def to_log_dict(self) -> Dict[str, Any]:
        """User-facing options as a dict, without ``source_path``."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "source_path"}


def _read_toml(path: Path) -> Dict[str, Any]:
    """Parse a TOML file, reporting any failure as :class:`ConfigError`."""
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path.name}: {exc}", config_path=str(path)) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}", config_path=str(path)
        ) from exc


def _section_of(raw: Dict[str, Any], path: Path) -> Any:
    """Return the depscope table of a parsed file, or ``None``."""
    keys = dict(_SECTIONS).get(path.name, ("depscope",))
    node: Any = raw
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _pyproject_has_depscope_section(path: Path) -> bool:
    """Whether a pyproject.toml carries ``[tool.depscope]``.

    An unreadable or invalid file counts as not having one.
    """
    try:
        raw = _read_toml(path)
    except ConfigError as exc:
        logger.debug("Skipping %s: %s", path, exc)
        return False
    return _section_of(raw, path) is not None


def discover_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Locate the configuration file to use, or ``None`` for defaults.

    Raises:
        ConfigError: ``explicit_path`` was given but is not a file.
    """
    if explicit_path is not None:
        resolved = explicit_path.resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        return resolved

    cwd = Path.cwd()
    for name, _ in _SECTIONS:
        candidate = cwd / name
        if not candidate.is_file():
            continue
        if name == "pyproject.toml" and not _pyproject_has_depscope_section(candidate):
            continue
        logger.debug("Discovered configuration file %s", candidate)
        return candidate
    return None


def load_config(config_path: Optional[Path] = None) -> DepScopeConfig:
    """Discover, read and validate the configuration.

    Args:
        config_path: Explicit file; auto-discovery when ``None``.

    Raises:
        ConfigError: Unreadable file, invalid TOML, unknown option, or an
            option with the wrong type or an out-of-range value.
    """
    path = discover_config_file(config_path)
    if path is None:
        logger.debug("No configuration file, using defaults")
        return DepScopeConfig()

    logger.info("Loading configuration from %s", path)
    section = _section_of(_read_toml(path), path)

    if section is None or section == {}:
        config = DepScopeConfig()
    elif isinstance(section, dict):
        config = _parse_section(section, config_path=str(path))
    else:
        raise ConfigError("The depscope configuration must be a table", config_path=str(path))

    config.source_path = path
    return config


# Option name → expected kind.
_BOOL_OPTIONS = (
    "include_prereleases",
    "infer_version_from_constraints",
    "fetch_popularity",
    "fetch_changelogs",
    "fetch_advisories",
)
_POSITIVE_INT_OPTIONS = ("max_concurrency", "evidence_limit")
_NON_NEGATIVE_INT_OPTIONS = ("max_retries",)
_POSITIVE_NUMBER_OPTIONS = ("timeout",)


def _parse_section(
    section: Dict[str, Any],
    *,
    config_path: str,
) -> DepScopeConfig:
    """Parse and validate a ``[depscope]`` or ``[tool.depscope]`` table.

    Rejects unknown keys, type mismatches and out-of-range values.
    Booleans are never accepted where numbers are expected.
    """
    config = DepScopeConfig()

    known = set(
        _BOOL_OPTIONS
        + _POSITIVE_INT_OPTIONS
        + _NON_NEGATIVE_INT_OPTIONS
        + _POSITIVE_NUMBER_OPTIONS
    )
    unknown = set(section.keys()) - known
    if unknown:
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            config_path=config_path,
        )

    for name, val in section.items():
        if name in _BOOL_OPTIONS:
            if not isinstance(val, bool):
                raise _type_error(name, "a boolean", val, config_path)

        elif name in _POSITIVE_INT_OPTIONS or name in _NON_NEGATIVE_INT_OPTIONS:
            if isinstance(val, bool) or not isinstance(val, int):
                raise _type_error(name, "an integer", val, config_path)
            minimum = 1 if name in _POSITIVE_INT_OPTIONS else 0
            if val < minimum:
                raise ConfigError(
                    f"{name} must be at least {minimum}, got {val}",
                    config_path=config_path,
                    option=name,
                )

        else:
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                raise _type_error(name, "a number", val, config_path)
            if val <= 0:
                raise ConfigError(
                    f"{name} must be greater than 0, got {val}",
                    config_path=config_path,
                    option=name,
                )
            val = float(val)

        setattr(config, name, val)

    return config


def _type_error(name: str, expected: str, val: Any, config_path: str) -> ConfigError:
    return ConfigError(
        f"{name} must be {expected}, got {type(val).__name__}",
        config_path=config_path,
        option=name,
    )
