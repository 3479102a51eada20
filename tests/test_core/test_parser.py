"""Unit tests for depscope.core.parser.

Test Coverage:
- Registry specs: operators, extras, markers, comments, hashes
- Rendering with to_string() and parsing the result again
- Git, local, editable and archive references
- Directives and continuation lines
- Per-line error collection
- Duplicate declarations and the governing requirement
- parse_file with a real file
"""

from __future__ import annotations

from pathlib import Path

import pytest

from depscope.core.parser import ManifestParser, ParseResult
from depscope.exceptions import FileOperationError, ParseError
from depscope.models.requirement import SourceKind


@pytest.fixture
def parser() -> ManifestParser:
    return ManifestParser()


# ============================================================================
# Registry requirements
# ============================================================================


@pytest.mark.unit
class TestRegistryLines:
    """Tests for plain ``name[extras]<specs>; markers`` lines."""

    def test_pinned_with_comment(self, parser: ManifestParser) -> None:
        """Happy path: a pinned line keeps its inline comment."""
        req = parser.parse_line("django==3.2.0  # web framework", 1)

        assert req is not None
        assert req.name == "django"
        assert req.operator == "=="
        assert req.version == "3.2.0"
        assert req.extras == ()
        assert req.comment == "web framework"
        assert req.source is SourceKind.REGISTRY

    def test_multiple_specifiers_keep_order(self, parser: ManifestParser) -> None:
        req = parser.parse_line("requests>=2.25,<3,!=2.27.0", 3)

        assert req.specs == ((">=", "2.25"), ("<", "3"), ("!=", "2.27.0"))
        assert req.constraint == ">=2.25,<3,!=2.27.0"
        assert req.operator is None
        assert req.line_number == 3

    def test_extras_ordered_without_duplicates(self, parser: ManifestParser) -> None:
        req = parser.parse_line("requests[socks, security,SOCKS]==2.31.0", 1)

        assert req.extras == ("socks", "security")

    def test_markers(self, parser: ManifestParser) -> None:
        req = parser.parse_line('tomli>=1.1; python_version < "3.11"', 1)

        assert req.markers == 'python_version < "3.11"'
        assert req.constraint == ">=1.1"

    def test_hashes(self, parser: ManifestParser) -> None:
        req = parser.parse_line("six==1.16.0 --hash=sha256:abc --hash=sha256:def", 1)

        assert req.hashes == ("sha256:abc", "sha256:def")
        assert req.version == "1.16.0"

    def test_unconstrained(self, parser: ManifestParser) -> None:
        req = parser.parse_line("Flask", 1)

        assert req.name == "Flask"
        assert req.key == "flask"
        assert req.specs == ()

    @pytest.mark.parametrize("line", ["", "   ", "# only a comment", "  # indented"])
    def test_blank_and_comment_lines(self, parser: ManifestParser, line: str) -> None:
        assert parser.parse_line(line, 1) is None

    def test_invalid_line_raises(self, parser: ManifestParser) -> None:
        with pytest.raises(ParseError) as exc_info:
            parser.parse_line("???bad line", 5)

        assert exc_info.value.line_number == 5
        assert exc_info.value.line_content == "???bad line"

    def test_unsupported_option(self, parser: ManifestParser) -> None:
        with pytest.raises(ParseError, match="Unsupported option"):
            parser.parse_line("--frobnicate foo", 1)


# ============================================================================
# Non-registry sources
# ============================================================================


@pytest.mark.unit
class TestSourceKinds:
    """Tests for git, local and archive references."""

    def test_git_with_egg(self, parser: ManifestParser) -> None:
        req = parser.parse_line(
            "git+https://github.com/pallets/flask.git@2.0.1#egg=Flask[async]", 1
        )

        assert req.source is SourceKind.GIT
        assert req.name == "Flask"
        assert req.extras == ("async",)
        assert req.ref == "2.0.1"
        assert req.current_version() == "2.0.1"

    def test_git_name_from_path(self, parser: ManifestParser) -> None:
        req = parser.parse_line("git+ssh://git@github.com/acme/widget.git", 1)

        assert req.name == "widget"
        assert req.ref is None
        assert req.current_version() is None

    def test_named_git_reference(self, parser: ManifestParser) -> None:
        req = parser.parse_line("widget @ git+https://github.com/acme/widget@v1.0.0", 1)

        assert req.source is SourceKind.GIT
        assert req.named_reference
        assert req.ref == "v1.0.0"

    def test_editable_local(self, parser: ManifestParser, tmp_path: Path) -> None:
        req = parser.parse_line("-e ./libs/mylib", 1, base_directory=tmp_path)

        assert req.source is SourceKind.LOCAL
        assert req.editable
        assert req.name == "mylib"
        assert req.url == "./libs/mylib"

    def test_archive_url(self, parser: ManifestParser) -> None:
        req = parser.parse_line("https://example.com/dist/demo-1.2.0.tar.gz", 1)

        assert req.source is SourceKind.URL
        assert req.name == "demo"
        assert req.current_version() == "1.2.0"

    def test_url_fragment_is_not_a_comment(self, parser: ManifestParser) -> None:
        req = parser.parse_line(
            "git+https://github.com/acme/widget.git#egg=widget  # vendored", 1
        )

        assert req.name == "widget"
        assert req.comment == "vendored"


# ============================================================================
# Rendering
# ============================================================================


@pytest.mark.unit
class TestRoundTrip:
    """Rendering a requirement and parsing it again yields the same requirement."""

    @pytest.mark.parametrize(
        "line",
        [
            "django==3.2.0  # web framework",
            "requests[socks,security]>=2.25,<3,!=2.27.0",
            'tomli>=1.1; python_version < "3.11"',
            "six==1.16.0 --hash=sha256:abc --hash=sha256:def",
            "git+https://github.com/pallets/flask.git@2.0.1#egg=Flask[async]",
            "widget @ git+https://github.com/acme/widget@v1.0.0",
            "-e ./libs/mylib",
            "https://example.com/dist/demo-1.2.0.tar.gz  # pinned archive",
        ],
    )
    def test_to_string_reparses_equal(
        self, parser: ManifestParser, tmp_path: Path, line: str
    ) -> None:
        original = parser.parse_line(line, 7, base_directory=tmp_path)
        reparsed = parser.parse_line(original.to_string(), 7, base_directory=tmp_path)

        assert reparsed == original
        assert reparsed.extras == original.extras
        assert reparsed.comment == original.comment


# ============================================================================
# Whole manifests
# ============================================================================


@pytest.mark.unit
class TestParseString:
    """Tests for ManifestParser.parse_string."""

    def test_bad_line_does_not_hide_others(self, parser: ManifestParser) -> None:
        """Edge case: one malformed line yields exactly one error."""
        text = (
            "django==3.2.0  # web framework\n"
            "requests>=2.25\n"
            "\n"
            "# tooling\n"
            "???bad line\n"
            "click==8.1.7\n"
        )

        result = parser.parse_string(text)

        assert [e.line_number for e in result.errors] == [5]
        assert [r.name for r in result.requirements] == ["django", "requests", "click"]
        assert [r.line_number for r in result.requirements] == [1, 2, 6]
        assert not result.ok

    def test_directives_recorded(self, parser: ManifestParser) -> None:
        result = parser.parse_string(
            "--index-url https://pypi.example.org/simple\n-r base.txt\nclick\n"
        )

        assert [line for line, _ in result.directives] == [1, 2]
        assert [r.name for r in result.requirements] == ["click"]
        assert result.ok

    def test_continuation_lines(self, parser: ManifestParser) -> None:
        result = parser.parse_string(
            "six==1.16.0 \\\n    --hash=sha256:abc\nclick==8.1.7\n"
        )

        six, click = result.requirements
        assert six.line_number == 1
        assert six.hashes == ("sha256:abc",)
        assert click.line_number == 3

    def test_duplicates_and_governing(self, parser: ManifestParser) -> None:
        result = parser.parse_string("Django>=3.0\nclick\ndjango==3.2.0\n")

        assert list(result.duplicates()) == ["django"]
        assert result.governing()["django"].line_number == 3

    def test_empty_manifest(self, parser: ManifestParser) -> None:
        result = parser.parse_string("")

        assert result == ParseResult()


@pytest.mark.unit
class TestParseFile:
    """Tests for ManifestParser.parse_file."""

    def test_reads_file(self, parser: ManifestParser, tmp_path: Path) -> None:
        manifest = tmp_path / "requirements.txt"
        manifest.write_text("click==8.1.7\n./local\n", encoding="utf-8")

        result = parser.parse_file(manifest)

        assert result.source_path == str(manifest)
        assert [r.source for r in result.requirements] == [
            SourceKind.REGISTRY,
            SourceKind.LOCAL,
        ]

    def test_missing_file(self, parser: ManifestParser, tmp_path: Path) -> None:
        with pytest.raises(FileOperationError):
            parser.parse_file(tmp_path / "missing.txt")
