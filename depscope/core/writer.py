"""Manifest rewriting and lock file rendering for depscope.

Both renderers are pure: they take text and data and return text.  File
I/O (atomic writes and timestamped backups) lives in
:mod:`depscope.utils.filesystem` and is driven by the ``upgrade`` command.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from packaging.utils import canonicalize_name

from depscope.__version__ import __version__
from depscope.core.parser import ParseResult
from depscope.exceptions import SelectionError
from depscope.models.package import PackageRecord
from depscope.models.requirement import Requirement, SourceKind

__all__ = ["render_lock", "render_manifest"]

_REWRITABLE = (SourceKind.REGISTRY, SourceKind.GIT)


def render_manifest(
    text: str,
    parse_result: ParseResult,
    targets: Mapping[str, str],
) -> str:
    """Rewrite the governing line of each targeted package.

    The new line comes from :meth:`Requirement.with_version`, so extras,
    markers and comments survive while hashes are dropped.  Every line
    that is not rewritten is returned byte for byte, including its line
    ending.  Local and archive requirements are left alone.

    Args:
        text: The manifest text that ``parse_result`` was parsed from.
        parse_result: Parse output for ``text``.
        targets: Package name → new version.

    Raises:
        SelectionError: A target is not declared in the manifest.
    """
    governing = parse_result.governing()
    wanted = {canonicalize_name(name): version for name, version in targets.items()}

    missing = sorted(key for key in wanted if key not in governing)
    if missing:
        raise SelectionError(
            f"Not declared in the manifest: {', '.join(missing)}",
            package_names=missing,
        )

    lines = text.splitlines(keepends=True)
    replacements: Dict[int, Tuple[int, str]] = {}

    for key, version in wanted.items():
        req = governing[key]
        if req.source not in _REWRITABLE or req.line_number < 1:
            continue
        start = req.line_number - 1
        end = _continuation_end(lines, start)
        indent = lines[start][: len(lines[start]) - len(lines[start].lstrip())]
        ending = _line_ending(lines[end])
        replacements[start] = (end, f"{indent}{req.with_version(version).to_string()}{ending}")

    output: List[str] = []
    index = 0
    while index < len(lines):
        if index in replacements:
            end, new_line = replacements[index]
            output.append(new_line)
            index = end + 1
            continue
        output.append(lines[index])
        index += 1
    return "".join(output)


def render_lock(
    records: Iterable[PackageRecord],
    targets: Mapping[str, str],
    generated_at: datetime,
) -> str:
    """Render a lock file pinning every package to its resolved version.

    Registry packages become ``name[extras]==version`` (markers kept),
    resolved to the upgrade target when there is one, else to the current
    version.  Other sources keep their original spec.  Entries are sorted
    by normalized name.
    """
    wanted = {canonicalize_name(name): version for name, version in targets.items()}
    if generated_at.tzinfo is None:
        generated_at = generated_at.replace(tzinfo=timezone.utc)
    stamp = generated_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    lines = [
        f"# Generated by depscope {__version__}",
        f"# Generated at: {stamp}",
        "",
    ]
    for record in sorted(records, key=lambda r: r.key):
        version = wanted.get(record.key) or record.current_version
        lines.append(_lock_line(record.requirement, version))
    return "\n".join(lines) + "\n"


def _lock_line(req: Requirement, version: Optional[str]) -> str:
    if req.source is SourceKind.GIT and version:
        return req.with_version(version).to_string(include_hashes=False, include_comment=False)
    if req.source is not SourceKind.REGISTRY:
        return req.to_string(include_hashes=False, include_comment=False)
    if not version:
        return f"# {req.name}: no resolved version"

    extras = f"[{','.join(req.extras)}]" if req.extras else ""
    line = f"{req.name}{extras}=={version}"
    if req.markers:
        line += f"; {req.markers}"
    return line


def _continuation_end(lines: List[str], start: int) -> int:
    end = start
    while end < len(lines) - 1:
        body = lines[end].rstrip()
        if not body.endswith("\\") or body.endswith("\\\\"):
            break
        end += 1
    return end


def _line_ending(line: str) -> str:
    stripped = line.rstrip("\r\n")
    return line[len(stripped) :]
