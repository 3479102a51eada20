"""Unit tests for depscope.models.requirement module.

Test Coverage:
- Identity: PEP 503 normalized key
- Constraint accessors (operator, version, constraint, specifier)
- Pinned and pre-release pins
- current_version() per source kind, with and without inference
- to_string() rendering for every source kind
- with_version() rewriting rules
- split_git_url() with refs, user info and fragments
"""

from __future__ import annotations

import pytest

from depscope.models.requirement import Requirement, SourceKind, split_git_url


# ============================================================================
# Accessors
# ============================================================================


@pytest.mark.unit
class TestAccessors:
    """Tests for identity and constraint accessors."""

    def test_minimal(self) -> None:
        """Happy path: a bare name has no constraint."""
        req = Requirement(name="requests")

        assert req.key == "requests"
        assert req.specs == ()
        assert req.extras == ()
        assert req.source is SourceKind.REGISTRY
        assert req.operator is None
        assert req.version is None
        assert req.constraint == ""
        assert str(req.specifier) == ""

    def test_key_is_normalized(self) -> None:
        assert Requirement(name="Django_REST.framework").key == "django-rest-framework"

    def test_single_spec(self) -> None:
        req = Requirement(name="django", specs=(("==", "3.2.0"),))

        assert req.operator == "=="
        assert req.version == "3.2.0"
        assert req.pinned_version == "3.2.0"

    def test_multiple_specs(self) -> None:
        req = Requirement(name="requests", specs=((">=", "2.25"), ("<", "3")))

        assert req.operator is None
        assert req.version is None
        assert req.constraint == ">=2.25,<3"
        assert req.specifier.contains("2.31.0")
        assert req.pinned_version is None

    def test_wildcard_is_not_a_pin(self) -> None:
        assert Requirement(name="django", specs=(("==", "3.2.*"),)).pinned_version is None

    def test_invalid_specifier_is_empty(self) -> None:
        """Edge case: an unparsable constraint yields an empty specifier set."""
        req = Requirement(name="demo", specs=(("==", "not valid!"),))

        assert str(req.specifier) == ""

    def test_prerelease_pin(self) -> None:
        assert Requirement(name="demo", specs=(("==", "2.0rc1"),)).is_prerelease_pin
        assert not Requirement(name="demo", specs=(("==", "2.0"),)).is_prerelease_pin
        assert not Requirement(name="demo", specs=((">=", "2.0rc1"),)).is_prerelease_pin

    def test_equality_ignores_raw_line(self) -> None:
        a = Requirement(name="demo", line_number=1, raw_line="demo")
        b = Requirement(name="demo", line_number=1, raw_line="demo  ")

        assert a == b


# ============================================================================
# current_version
# ============================================================================


@pytest.mark.unit
class TestCurrentVersion:
    """Tests for Requirement.current_version()."""

    @pytest.mark.parametrize(
        "specs,expected",
        [
            ((("==", "1.2.3"),), "1.2.3"),
            ((("===", "1.2.3"),), "1.2.3"),
            (((">=", "1.0"), ("<", "2")), "1.0"),
            ((("~=", "1.4"),), "1.4"),
            ((("<", "2"),), None),
            ((), None),
        ],
    )
    def test_registry(self, specs, expected) -> None:
        assert Requirement(name="demo", specs=specs).current_version() == expected

    def test_inference_disabled(self) -> None:
        req = Requirement(name="demo", specs=((">=", "1.0"),))

        assert req.current_version(infer_from_constraints=False) is None

    def test_git_ref(self) -> None:
        tagged = Requirement(name="demo", source=SourceKind.GIT, ref="v1.2.0")
        branch = Requirement(name="demo", source=SourceKind.GIT, ref="main")

        assert tagged.current_version() == "v1.2.0"
        assert branch.current_version() is None

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://example.com/demo-1.2.0.tar.gz", "1.2.0"),
            ("https://example.com/demo-1.2.0-py3-none-any.whl", "1.2.0"),
            ("https://example.com/demo-1.2.0.zip#sha256=abc", "1.2.0"),
            ("https://example.com/download", None),
        ],
    )
    def test_archive(self, url: str, expected) -> None:
        req = Requirement(name="demo", source=SourceKind.URL, url=url)

        assert req.current_version() == expected

    def test_local(self) -> None:
        req = Requirement(name="demo", source=SourceKind.LOCAL, url="./demo")

        assert req.current_version() is None


# ============================================================================
# Rendering
# ============================================================================


@pytest.mark.unit
class TestToString:
    """Tests for Requirement.to_string()."""

    def test_registry_full(self) -> None:
        req = Requirement(
            name="requests",
            specs=((">=", "2.25"), ("<", "3")),
            extras=("socks", "security"),
            markers='python_version >= "3.8"',
            hashes=("sha256:abc",),
            comment="http",
        )

        assert req.to_string() == (
            'requests[socks,security]>=2.25,<3; python_version >= "3.8"'
            " --hash=sha256:abc  # http"
        )
        assert req.to_string(include_hashes=False, include_comment=False) == (
            'requests[socks,security]>=2.25,<3; python_version >= "3.8"'
        )
        assert str(req) == req.to_string()

    def test_editable_local(self) -> None:
        req = Requirement(
            name="mylib", source=SourceKind.LOCAL, url="./libs/mylib", editable=True
        )

        assert req.to_string() == "-e ./libs/mylib"

    def test_named_reference_with_markers(self) -> None:
        req = Requirement(
            name="widget",
            source=SourceKind.GIT,
            url="git+https://github.com/acme/widget@v1",
            ref="v1",
            named_reference=True,
            markers='sys_platform == "linux"',
        )

        assert req.to_string() == (
            'widget @ git+https://github.com/acme/widget@v1 ; sys_platform == "linux"'
        )


@pytest.mark.unit
class TestWithVersion:
    """Tests for Requirement.with_version()."""

    def test_pin_is_replaced(self) -> None:
        req = Requirement(
            name="django",
            specs=(("==", "3.2.0"),),
            hashes=("sha256:abc",),
            comment="web framework",
        )

        updated = req.with_version("4.2.0")

        assert updated.specs == (("==", "4.2.0"),)
        assert updated.hashes == ()
        assert updated.comment == "web framework"
        assert req.specs == (("==", "3.2.0"),)

    def test_compatible_release(self) -> None:
        req = Requirement(name="click", specs=(("~=", "8.0"),))

        assert req.with_version("8.1.7").specs == (("~=", "8.1.7"),)

    def test_range_keeps_admitting_bounds(self) -> None:
        req = Requirement(name="demo", specs=((">=", "1.0"), ("<", "3"), ("!=", "1.5")))

        assert req.with_version("2.0").specs == ((">=", "2.0"), ("<", "3"), ("!=", "1.5"))
        assert req.with_version("3.1").specs == ((">=", "3.1"), ("!=", "1.5"))

    def test_unconstrained_becomes_pin(self) -> None:
        assert Requirement(name="demo").with_version("1.0").specs == (("==", "1.0"),)

    def test_git_ref_replaced(self) -> None:
        req = Requirement(
            name="widget",
            source=SourceKind.GIT,
            url="git+https://github.com/acme/widget.git@v1.0#egg=widget",
            ref="v1.0",
        )

        updated = req.with_version("v1.1")

        assert updated.url == "git+https://github.com/acme/widget.git@v1.1#egg=widget"
        assert updated.ref == "v1.1"

    def test_git_without_ref(self) -> None:
        req = Requirement(
            name="widget",
            source=SourceKind.GIT,
            url="git+https://github.com/acme/widget.git",
        )

        assert req.with_version("v2").url == "git+https://github.com/acme/widget.git@v2"

    @pytest.mark.parametrize("source", [SourceKind.LOCAL, SourceKind.URL])
    def test_other_sources_unchanged(self, source: SourceKind) -> None:
        req = Requirement(name="demo", source=source, url="./demo")

        assert req.with_version("9.9") is req


@pytest.mark.unit
class TestSplitGitUrl:
    """Tests for split_git_url()."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            (
                "git+https://github.com/o/r.git@v1#egg=r",
                ("git+https://github.com/o/r.git", "v1", "#egg=r"),
            ),
            (
                "git+ssh://git@github.com/o/r.git",
                ("git+ssh://git@github.com/o/r.git", None, ""),
            ),
            (
                "git+ssh://git@github.com/o/r.git@main",
                ("git+ssh://git@github.com/o/r.git", "main", ""),
            ),
            ("git+https://host", ("git+https://host", None, "")),
            ("git+https://github.com/o/r@", ("git+https://github.com/o/r", None, "")),
        ],
    )
    def test_split(self, url: str, expected) -> None:
        assert split_git_url(url) == expected
