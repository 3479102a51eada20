"""
Requirement data model for depscope.

A :class:`Requirement` is one dependency declaration parsed from a
manifest line. It is immutable; rewriting a requirement for an upgrade
produces a new instance via :meth:`Requirement.with_version`.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import (
    InvalidSdistFilename,
    InvalidWheelFilename,
    canonicalize_name,
    parse_sdist_filename,
    parse_wheel_filename,
)

from depscope.utils.version_utils import parse_version


class SourceKind(str, Enum):
    """Where a requirement is installed from."""

    REGISTRY = "registry"
    GIT = "git"
    LOCAL = "local"
    URL = "url"


@dataclass(frozen=True)
class Requirement:
    """
    One dependency declaration from a manifest.

    Attributes:
        name: Package name as written in the manifest.
        specs: Ordered ``(operator, version)`` pairs.
        extras: Ordered extras, as written, without duplicates.
        source: Source kind of the declaration.
        markers: Environment marker expression (PEP 508).
        url: Git/archive URL or local path for non-registry sources.
        ref: Git ref following ``@`` in a git URL.
        editable: Whether the line used ``-e``/``--editable``.
        named_reference: The line used the ``name @ url`` form.
        hashes: ``--hash=`` values.
        comment: Inline comment without the ``#`` prefix.
        line_number: 1-based line number in the manifest.
        raw_line: Original line text.
    """

    name: str
    specs: Tuple[Tuple[str, str], ...] = ()
    extras: Tuple[str, ...] = ()
    source: SourceKind = SourceKind.REGISTRY
    markers: Optional[str] = None
    url: Optional[str] = None
    ref: Optional[str] = None
    editable: bool = False
    named_reference: bool = False
    hashes: Tuple[str, ...] = ()
    comment: Optional[str] = None
    line_number: int = 0
    raw_line: Optional[str] = field(default=None, compare=False)

    # ------------------------------------------------------------------
    # Identity and constraint accessors
    # ------------------------------------------------------------------

    @property
    def key(self) -> str:
        """PEP 503 normalized name; requirement identity is case-insensitive."""
        return canonicalize_name(self.name)

    @property
    def operator(self) -> Optional[str]:
        """Operator of a single-specifier constraint, else ``None``."""
        return self.specs[0][0] if len(self.specs) == 1 else None

    @property
    def version(self) -> Optional[str]:
        """Version of a single-specifier constraint, else ``None``."""
        return self.specs[0][1] if len(self.specs) == 1 else None

    @property
    def constraint(self) -> str:
        """The constraint as written, e.g. ``">=1.0,<2.0"``."""
        return ",".join(f"{op}{ver}" for op, ver in self.specs)

    @property
    def specifier(self) -> SpecifierSet:
        try:
            return SpecifierSet(self.constraint)
        except InvalidSpecifier:
            return SpecifierSet()

    @property
    def pinned_version(self) -> Optional[str]:
        """The exact ``==`` version, ignoring wildcard pins."""
        for op, ver in self.specs:
            if op in ("==", "===") and "*" not in ver:
                return ver
        return None

    @property
    def is_prerelease_pin(self) -> bool:
        parsed = parse_version(self.pinned_version)
        return bool(parsed is not None and parsed.is_prerelease)

    def current_version(self, *, infer_from_constraints: bool = True) -> Optional[str]:
        """Best guess at the version this line currently selects.

        Exact pins win. With ``infer_from_constraints``, the lower bound of
        ``>=``, ``~=`` or ``>`` stands in for an unpinned registry line.
        Git lines use their ref; archive URLs use the version in the
        filename.
        """
        if self.source is SourceKind.GIT:
            return self.ref if parse_version(self.ref) is not None else None
        if self.source is SourceKind.URL:
            return _archive_version(self.url)
        if self.source is SourceKind.LOCAL:
            return None

        pinned = self.pinned_version
        if pinned is not None or not infer_from_constraints:
            return pinned

        for op, ver in self.specs:
            if op in (">=", "~=", ">") and parse_version(ver) is not None:
                return ver
        return None

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def to_string(
        self,
        *,
        include_hashes: bool = True,
        include_comment: bool = True,
    ) -> str:
        """Render the requirement back to manifest syntax."""
        extras = f"[{','.join(self.extras)}]" if self.extras else ""

        if self.source is SourceKind.REGISTRY:
            body = f"{self.name}{extras}{self.constraint}"
        elif self.named_reference:
            body = f"{self.name}{extras} @ {self.url}"
        else:
            body = self.url or self.name

        if self.editable:
            body = f"-e {body}"
        if self.markers:
            body += f" ; {self.markers}" if self.url else f"; {self.markers}"
        if include_hashes:
            body += "".join(f" --hash={value}" for value in self.hashes)
        if include_comment and self.comment:
            body += f"  # {self.comment}"
        return body

    def with_version(self, new_version: str) -> "Requirement":
        """Return a copy constrained to ``new_version``; hashes are dropped.

        ``==`` and ``~=`` keep their operator. Other registry constraints
        become ``>=new_version`` and keep any upper bound that still admits
        it. Git lines get a new ref. Local and archive lines are returned
        unchanged.
        """
        if self.source is SourceKind.GIT:
            return replace(
                self,
                url=_replace_git_ref(self.url or "", new_version),
                ref=new_version,
                hashes=(),
            )
        if self.source is not SourceKind.REGISTRY:
            return self

        operators = {op for op, _ in self.specs}
        if "==" in operators or not self.specs:
            specs: List[Tuple[str, str]] = [("==", new_version)]
        elif "~=" in operators:
            specs = [("~=", new_version)]
        else:
            target = parse_version(new_version)
            specs = [(">=", new_version)]
            for op, ver in self.specs:
                if op not in ("<", "<=", "!="):
                    continue
                bound = SpecifierSet(f"{op}{ver}")
                if target is None or bound.contains(target, prereleases=True):
                    specs.append((op, ver))

        return replace(self, specs=tuple(specs), hashes=())

    def __str__(self) -> str:
        return self.to_string()


def _archive_version(url: Optional[str]) -> Optional[str]:
    """Version embedded in an sdist or wheel filename, if any."""
    if not url:
        return None
    filename = url.split("#", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    try:
        if filename.endswith(".whl"):
            return str(parse_wheel_filename(filename)[1])
        return str(parse_sdist_filename(filename)[1])
    except (InvalidSdistFilename, InvalidWheelFilename):
        return None


def split_git_url(url: str) -> Tuple[str, Optional[str], str]:
    """Split a git URL into ``(base, ref, fragment)``.

    ``git+ssh://git@host/repo.git@v1#egg=repo`` gives
    ``("git+ssh://git@host/repo.git", "v1", "#egg=repo")``. An ``@`` in
    the host part is user info, not a ref.
    """
    location, hash_sign, fragment = url.partition("#")
    scheme_end = location.find("://")
    path_start = location.find("/", scheme_end + 3 if scheme_end >= 0 else 0)
    if path_start < 0:
        return location, None, hash_sign + fragment

    at = location.rfind("@", path_start)
    if at < 0:
        return location, None, hash_sign + fragment
    return location[:at], location[at + 1 :] or None, hash_sign + fragment


def _replace_git_ref(url: str, ref: str) -> str:
    base, _, fragment = split_git_url(url)
    return f"{base}@{ref}{fragment}"
