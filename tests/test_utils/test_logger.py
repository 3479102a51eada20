"""Unit tests for depscope.utils.logger module.

Test Coverage:
- get_logger naming inside the depscope hierarchy
- NullHandler before setup
- setup_logging formats, levels and handler replacement
- level_for_verbosity mapping
- ColoredFormatter colour rules (TTY, NO_COLOR, CI)
- disable_logging / is_logging_configured
"""

from __future__ import annotations

import io
import logging
from typing import Generator
from unittest.mock import MagicMock

import pytest

from depscope.utils.logger import (
    ROOT_LOGGER_NAME,
    ColoredFormatter,
    disable_logging,
    get_logger,
    is_logging_configured,
    level_for_verbosity,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Leave the depscope logger silent after each test."""
    disable_logging()
    yield
    disable_logging()


def _record(level: int = logging.WARNING, msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("depscope.test", level, __file__, 1, msg, None, None)


# ==============================================================================
# get_logger
# ==============================================================================


@pytest.mark.unit
class TestGetLogger:
    """Tests for get_logger()."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            (None, "depscope"),
            ("", "depscope"),
            ("depscope", "depscope"),
            ("http", "depscope.http"),
            ("depscope.http", "depscope.http"),
        ],
    )
    def test_names(self, name, expected: str) -> None:
        assert get_logger(name).name == expected

    def test_silent_before_setup(self) -> None:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.handlers.clear()

        get_logger("parser")

        assert any(isinstance(h, logging.NullHandler) for h in root.handlers)
        assert not is_logging_configured()


# ==============================================================================
# setup_logging
# ==============================================================================


@pytest.mark.unit
class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_default_format(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.INFO, stream=stream)

        get_logger("registry").info("Fetching metadata for %d package(s)", 3)
        get_logger("registry").debug("hidden")

        assert stream.getvalue() == "INFO: Fetching metadata for 3 package(s)\n"
        assert is_logging_configured()

    def test_verbose_format(self) -> None:
        stream = io.StringIO()
        setup_logging(level=logging.DEBUG, verbose=True, stream=stream)

        get_logger("graph").debug("Built graph")

        line = stream.getvalue().strip()
        assert line.endswith(" - depscope.graph - DEBUG - Built graph")

    def test_replaces_previous_handler(self) -> None:
        first, second = io.StringIO(), io.StringIO()
        setup_logging(stream=first)
        setup_logging(stream=second)

        get_logger().warning("once")

        assert first.getvalue() == ""
        assert second.getvalue() == "WARNING: once\n"
        assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1

    def test_does_not_propagate(self) -> None:
        setup_logging(stream=io.StringIO())

        assert logging.getLogger(ROOT_LOGGER_NAME).propagate is False

    def test_disable(self) -> None:
        stream = io.StringIO()
        setup_logging(stream=stream)
        disable_logging()

        get_logger().error("quiet")

        assert stream.getvalue() == ""
        assert not is_logging_configured()


@pytest.mark.unit
@pytest.mark.parametrize(
    "verbosity,level",
    [(-1, logging.WARNING), (0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG), (5, logging.DEBUG)],
)
def test_level_for_verbosity(verbosity: int, level: int) -> None:
    assert level_for_verbosity(verbosity) == level


# ==============================================================================
# ColoredFormatter
# ==============================================================================


@pytest.mark.unit
class TestColoredFormatter:
    """Tests for ColoredFormatter."""

    @pytest.fixture
    def tty(self, monkeypatch: pytest.MonkeyPatch) -> MagicMock:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("CI", raising=False)
        stream = MagicMock()
        stream.isatty.return_value = True
        return stream

    def test_colours_on_tty(self, tty: MagicMock) -> None:
        formatter = ColoredFormatter("%(levelname)s: %(message)s", stream=tty)

        assert formatter.format(_record()) == "\033[33mWARNING\033[0m: hello"

    def test_record_not_mutated(self, tty: MagicMock) -> None:
        formatter = ColoredFormatter("%(levelname)s", stream=tty)
        record = _record(logging.ERROR)

        formatter.format(record)

        assert record.levelname == "ERROR"

    def test_plain_when_disabled(self, tty: MagicMock) -> None:
        formatter = ColoredFormatter("%(levelname)s", stream=tty, use_color=False)

        assert formatter.format(_record()) == "WARNING"

    @pytest.mark.parametrize("variable", ["NO_COLOR", "CI"])
    def test_plain_under_environment(
        self, tty: MagicMock, monkeypatch: pytest.MonkeyPatch, variable: str
    ) -> None:
        monkeypatch.setenv(variable, "1")
        formatter = ColoredFormatter("%(levelname)s", stream=tty)

        assert formatter.format(_record()) == "WARNING"

    def test_plain_for_non_tty(self) -> None:
        formatter = ColoredFormatter("%(levelname)s", stream=io.StringIO())

        assert formatter.format(_record(logging.INFO)) == "INFO"
