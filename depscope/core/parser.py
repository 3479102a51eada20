"""Manifest parser for ``requirements.txt``-style files.

Each non-blank line becomes a :class:`Requirement` or a :class:`ParseError`;
a bad line never stops the rest of the file from parsing. Recognized forms:

- Registry specs: ``requests[socks,security]>=2.25,<3 ; python_version>"3.8"``
- Git references: ``git+https://github.com/org/repo.git@v1.2#egg=repo``
- Local paths and editables: ``-e ./pkg``, ``../other``, ``/abs/path``,
  ``file:///abs/path``
- Direct archives: ``https://host/pkg-1.0.tar.gz`` or ``pkg @ https://...``
- Hashes (``--hash=sha256:...``) and inline comments (after an unescaped
  ``#`` that is not a URL fragment)

pip option lines (``--index-url``, ``-r other.txt`` and friends) are
recorded as directives and otherwise skipped.

Typical usage::

    parser = ManifestParser()
    result = parser.parse_file("requirements.txt")
    for req in result.requirements:
        print(req.name, req.constraint)
    for error in result.errors:
        print(error.line_number, error.line_content)
"""

from __future__ import annotations

import re
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from packaging.requirements import InvalidRequirement, Requirement as PkgRequirement
from packaging.utils import (
    InvalidSdistFilename,
    InvalidWheelFilename,
    canonicalize_name,
    parse_sdist_filename,
    parse_wheel_filename,
)

from depscope.exceptions import ParseError
from depscope.utils import get_logger, safe_read_file
from depscope.models.requirement import Requirement, SourceKind, split_git_url
from depscope.constants import (
    GIT_PREFIXES,
    URL_SCHEMES,
    HASH_DIRECTIVE,
    OPTION_DIRECTIVES,
    EDITABLE_DIRECTIVE,
    EDITABLE_DIRECTIVE_LONG,
)

_NAME_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?$")
_LEADING_NAME_RE = re.compile(
    r"^\s*(?P<name>[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?)\s*"
    r"(?:\[(?P<extras>[^\]]*)\])?\s*(?P<rest>.*)$"
)
_SPEC_RE = re.compile(r"^(?P<op>===|~=|==|!=|<=|>=|<|>)\s*(?P<version>\S+)$")
_HASH_RE = re.compile(rf"{HASH_DIRECTIVE}(?:=|\s+)(\S+)")
_ARCHIVE_SUFFIXES = (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".zip", ".whl")

PathLike = Union[str, Path]
FieldMap = Dict[str, Any]
Failure = Callable[[str], ParseError]


@dataclass
class ParseResult:
    """Outcome of parsing one manifest.

    Attributes:
        requirements: Parsed requirements, in line order, duplicates kept.
        errors: One :class:`ParseError` per malformed line, in line order.
        directives: ``(line_number, text)`` for skipped pip option lines.
        source_path: File the manifest was read from, if any.
    """

    requirements: List[Requirement] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)
    directives: List[Tuple[int, str]] = field(default_factory=list)
    source_path: Optional[str] = None

    def governing(self) -> Dict[str, Requirement]:
        """Map each normalized name to its last declaration in the manifest."""
        latest: Dict[str, Requirement] = {}
        for requirement in self.requirements:
            latest[requirement.key] = requirement
        return latest

    def duplicates(self) -> Dict[str, List[Requirement]]:
        """Names declared more than once, with every declaration."""
        grouped: Dict[str, List[Requirement]] = {}
        for requirement in self.requirements:
            grouped.setdefault(requirement.key, []).append(requirement)
        return {key: reqs for key, reqs in grouped.items() if len(reqs) > 1}

    @property
    def ok(self) -> bool:
        return not self.errors


class ManifestParser:
    """Parser turning manifest text into :class:`Requirement` records.

    The parser is stateless between calls; one instance can parse any
    number of manifests.
    """

    def __init__(self) -> None:
        self.logger = get_logger("parser")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_file(self, file_path: PathLike) -> ParseResult:
        """Read and parse a manifest file.

        Raises:
            FileOperationError: The manifest cannot be read at all.
        """
        path = Path(file_path)
        content = safe_read_file(path)
        self.logger.debug("Parsing manifest %s", path)
        return self.parse_string(
            content,
            source_file_path=str(path),
            base_directory=path.parent,
        )

    def parse_string(
        self,
        content: str,
        *,
        source_file_path: Optional[str] = None,
        base_directory: Optional[Path] = None,
    ) -> ParseResult:
        """Parse manifest text, collecting per-line errors.

        Lines ending in a backslash continue on the next line; the joined
        line keeps the number of its first physical line.
        """
        result = ParseResult(source_path=source_file_path)

        for line_number, line_text in _logical_lines(content):
            if _option_name(line_text) is not None:
                result.directives.append((line_number, line_text.strip()))
                self.logger.debug("Line %d: skipping directive", line_number)
                continue

            try:
                requirement = self.parse_line(
                    line_text,
                    line_number,
                    source_file_path=source_file_path,
                    base_directory=base_directory,
                )
            except ParseError as exc:
                self.logger.warning("Line %d: %s", line_number, exc.message)
                result.errors.append(exc)
                continue

            if requirement is not None:
                result.requirements.append(requirement)

        duplicates = result.duplicates()
        if duplicates:
            self.logger.info(
                "Duplicate declarations for %s; the last occurrence wins",
                ", ".join(sorted(duplicates)),
            )

        self.logger.debug(
            "Parsed %d requirement(s), %d error(s)",
            len(result.requirements),
            len(result.errors),
        )
        return result

    def parse_line(
        self,
        line_text: str,
        line_number: int,
        *,
        source_file_path: Optional[str] = None,
        base_directory: Optional[Path] = None,
    ) -> Optional[Requirement]:
        """Parse one manifest line.

        Returns:
            ``None`` for blank, comment-only and directive lines, otherwise
            the parsed :class:`Requirement`.

        Raises:
            ParseError: The line is not a valid requirement.
        """
        stripped = line_text.strip()
        if not stripped or stripped.startswith("#"):
            return None

        spec, comment = _extract_inline_comment(stripped)
        if not spec:
            return None
        if _option_name(spec) is not None:
            return None

        def fail(message: str) -> ParseError:
            return ParseError(
                message,
                line_number=line_number,
                line_content=line_text.rstrip("\n"),
                file_path=source_file_path,
            )

        spec = _remove_surrounding_quotes(spec)

        editable = False
        for flag in (EDITABLE_DIRECTIVE_LONG, EDITABLE_DIRECTIVE):
            if spec == flag or spec.startswith((f"{flag} ", f"{flag}=")):
                editable = True
                spec = spec[len(flag) :].lstrip(" =")
                break
        if editable and not spec:
            raise fail("Editable directive without a target")

        hashes = tuple(_HASH_RE.findall(spec))
        if hashes:
            spec = _HASH_RE.sub("", spec).strip()

        if spec.startswith("-"):
            raise fail(f"Unsupported option: {spec.split()[0]}")

        common = {
            "editable": editable,
            "hashes": hashes,
            "comment": comment,
            "line_number": line_number,
            "raw_line": line_text.rstrip("\n"),
        }

        named = _LEADING_NAME_RE.match(spec)
        if named and named.group("rest").startswith("@"):
            return self._build_named_reference(spec, named, common, fail)

        location, markers = _split_url_markers(spec)
        if location.startswith(GIT_PREFIXES):
            return self._build_git_requirement(location, markers, None, (), common, fail)
        if location.startswith("file:") or _looks_like_local_path(location):
            return self._build_local_requirement(
                location, markers, None, (), base_directory, common, fail
            )
        if location.startswith(URL_SCHEMES):
            return self._build_archive_requirement(location, markers, None, (), common, fail)

        return self._build_registry_requirement(spec, common, fail)

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _build_registry_requirement(
        self,
        spec: str,
        common: FieldMap,
        fail: Failure,
    ) -> Requirement:
        try:
            parsed = PkgRequirement(spec)
        except InvalidRequirement as exc:
            raise fail(f"Invalid requirement syntax: {exc}") from exc

        leading = _LEADING_NAME_RE.match(spec)
        assert leading is not None  # packaging accepted a name
        extras = _ordered_extras(leading.group("extras"))

        constraint_text = leading.group("rest").split(";", 1)[0].strip()
        if constraint_text.startswith("(") and constraint_text.endswith(")"):
            constraint_text = constraint_text[1:-1]

        specs: List[Tuple[str, str]] = []
        for chunk in filter(None, (part.strip() for part in constraint_text.split(","))):
            match = _SPEC_RE.match(chunk)
            if not match:
                raise fail(f"Invalid version specifier: {chunk!r}")
            specs.append((match.group("op"), match.group("version")))

        return Requirement(
            name=parsed.name,
            specs=tuple(specs),
            extras=extras,
            source=SourceKind.REGISTRY,
            markers=str(parsed.marker) if parsed.marker else None,
            **common,
        )

    def _build_named_reference(
        self,
        spec: str,
        named: re.Match[str],
        common: FieldMap,
        fail: Failure,
    ) -> Requirement:
        """``name[extras] @ <url>``: the name is explicit, the URL picks the kind."""
        name = named.group("name")
        extras = _ordered_extras(named.group("extras"))
        location, markers = _split_url_markers(named.group("rest")[1:].strip())
        if not location:
            raise fail("Missing URL after '@'")

        if location.startswith(GIT_PREFIXES):
            built = self._build_git_requirement(
                location, markers, name, extras, common, fail
            )
        elif location.startswith("file:"):
            built = self._build_local_requirement(
                location, markers, name, extras, None, common, fail
            )
        elif location.startswith(URL_SCHEMES):
            built = self._build_archive_requirement(
                location, markers, name, extras, common, fail
            )
        else:
            raise fail(f"Unsupported URL in direct reference: {location}")

        return replace(built, named_reference=True)

    def _build_git_requirement(
        self,
        url: str,
        markers: Optional[str],
        name: Optional[str],
        extras: Tuple[str, ...],
        common: FieldMap,
        fail: Failure,
    ) -> Requirement:
        base, ref, fragment = split_git_url(url)
        egg_name, egg_extras = _egg_from_fragment(fragment)

        if not (name or egg_name):
            name = _name_from_url_path(base)
            self.logger.debug(
                "Line %d: no #egg= in git URL, inferred name %r",
                common["line_number"],
                name,
            )
        name = name or egg_name
        if not name or not _NAME_RE.match(name):
            raise fail(f"Cannot infer a package name from {url}")

        return Requirement(
            name=name,
            extras=extras or egg_extras,
            source=SourceKind.GIT,
            markers=markers,
            url=url,
            ref=ref,
            **common,
        )

    def _build_archive_requirement(
        self,
        url: str,
        markers: Optional[str],
        name: Optional[str],
        extras: Tuple[str, ...],
        common: FieldMap,
        fail: Failure,
    ) -> Requirement:
        location, _, fragment = url.partition("#")
        egg_name, egg_extras = _egg_from_fragment(f"#{fragment}" if fragment else "")
        filename = location.rstrip("/").rsplit("/", 1)[-1]

        name = name or egg_name or _name_from_filename(filename)
        if not name:
            raise fail(f"Cannot infer a package name from {url}; add '#egg=<name>'")

        return Requirement(
            name=name,
            extras=extras or egg_extras,
            source=SourceKind.URL,
            markers=markers,
            url=url,
            **common,
        )

    def _build_local_requirement(
        self,
        path_text: str,
        markers: Optional[str],
        name: Optional[str],
        extras: Tuple[str, ...],
        base_directory: Optional[Path],
        common: FieldMap,
        fail: Failure,
    ) -> Requirement:
        location, _, fragment = path_text.partition("#")
        egg_name, egg_extras = _egg_from_fragment(f"#{fragment}" if fragment else "")

        raw_path = location[len("file://") :] if location.startswith("file://") else location
        if raw_path.startswith("file:"):
            raw_path = raw_path[len("file:") :]
        path = Path(raw_path)
        if not path.is_absolute():
            path = (base_directory or Path.cwd()) / path

        name = name or egg_name or _name_from_filename(path.name) or path.resolve().name
        if not name or not _NAME_RE.match(name):
            raise fail(f"Cannot infer a package name from {path_text}")

        return Requirement(
            name=name,
            extras=extras or egg_extras,
            source=SourceKind.LOCAL,
            markers=markers,
            url=path_text,
            **common,
        )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def _logical_lines(content: str) -> List[Tuple[int, str]]:
    """Join backslash-continued lines; keep the first physical line number."""
    lines: List[Tuple[int, str]] = []
    pending: Optional[Tuple[int, str]] = None

    for number, text in enumerate(content.splitlines(), start=1):
        if pending is not None:
            start, buffered = pending
            text = buffered + text.lstrip()
            number = start
            pending = None
        if text.rstrip().endswith("\\") and not text.rstrip().endswith("\\\\"):
            pending = (number, text.rstrip()[:-1])
            continue
        lines.append((number, text))

    if pending is not None:
        lines.append(pending)
    return lines


def _extract_inline_comment(line: str) -> Tuple[str, Optional[str]]:
    """Split ``line`` into ``(spec, comment)``.

    A ``#`` starts a comment unless it is escaped as ``\\#`` or opens a URL
    fragment such as ``#egg=`` inside a URL token.
    """
    spec_chars: List[str] = []
    index = 0
    while index < len(line):
        char = line[index]
        if char == "\\" and line[index + 1 : index + 2] == "#":
            spec_chars.append("#")
            index += 2
            continue
        if char == "#":
            before = "".join(spec_chars)
            after = line[index + 1 :]
            scheme_at = before.rfind("://")
            inside_url = scheme_at != -1 and not any(c.isspace() for c in before[scheme_at:])
            if inside_url:
                spec_chars.append(char)
                index += 1
                continue
            return before.strip(), after.strip() or None
        spec_chars.append(char)
        index += 1
    return "".join(spec_chars).strip(), None


def _option_name(text: str) -> Optional[str]:
    """The pip option a line starts with, if it is a standalone directive."""
    stripped = text.strip()
    if not stripped.startswith("-"):
        return None
    token = stripped.split(None, 1)[0].split("=", 1)[0]
    return token if token in OPTION_DIRECTIVES else None


def _remove_surrounding_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1].strip()
    return text


def _split_url_markers(text: str) -> Tuple[str, Optional[str]]:
    """Split ``<url> ; <markers>``; a marker separator needs whitespace before ``;``."""
    match = re.search(r"\s;\s*", text)
    if not match:
        return text.strip(), None
    return text[: match.start()].strip(), text[match.end() :].strip() or None


def _looks_like_local_path(text: str) -> bool:
    if text == "." or text.startswith((".#", "./", "../", ".\\", "..\\", "/", "~")):
        return True
    return len(text) >= 3 and text[1] == ":" and text[2] in ("\\", "/")


def _ordered_extras(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    seen: Dict[str, str] = {}
    for extra in (part.strip() for part in raw.split(",")):
        if extra and canonicalize_name(extra) not in seen:
            seen[canonicalize_name(extra)] = extra
    return tuple(seen.values())


def _egg_from_fragment(fragment: str) -> Tuple[Optional[str], Tuple[str, ...]]:
    """Name and extras from ``#egg=name[extra]&subdirectory=...``."""
    if "egg=" not in fragment:
        return None, ()
    value = fragment.split("egg=", 1)[1].split("&", 1)[0].strip()
    match = _LEADING_NAME_RE.match(value)
    if not match:
        return None, ()
    return match.group("name"), _ordered_extras(match.group("extras"))


def _name_from_url_path(url: str) -> Optional[str]:
    path = url.split("://", 1)[-1].rstrip("/")
    segment = path.replace("\\", "/").rsplit("/", 1)[-1]
    if segment.endswith(".git"):
        segment = segment[: -len(".git")]
    return segment or None


def _name_from_filename(filename: str) -> Optional[str]:
    """Project name from an sdist/wheel filename, else the bare stem."""
    try:
        if filename.endswith(".whl"):
            return str(parse_wheel_filename(filename)[0])
        return str(parse_sdist_filename(filename)[0])
    except (InvalidSdistFilename, InvalidWheelFilename):
        pass

    for suffix in _ARCHIVE_SUFFIXES:
        if filename.endswith(suffix):
            filename = filename[: -len(suffix)]
            break
    return filename if filename and _NAME_RE.match(filename) else None
