"""
Command-line interface for depscope.

``depscope`` is a click group. The group callback runs before every
command: it sets up logging from ``-v``, loads the configuration (a bad
file is fatal here, before any network call), applies the colour choice
and hands a :class:`DepScopeContext` to the command.

:func:`main` is the console-script entry point and maps outcomes to exit
codes.
"""

from __future__ import annotations

import os
import sys
import logging
from pathlib import Path
from typing import Optional

import click

from depscope.config import load_config
from depscope.__version__ import __version__
from depscope.context import DepScopeContext
from depscope.commands.check import check
from depscope.commands.upgrade import upgrade
from depscope.commands.simulate import simulate
from depscope.exceptions import ConfigError, DepScopeError
from depscope.utils.logger import get_logger, level_for_verbosity, setup_logging
from depscope.utils.console import print_error, print_warning, reconfigure_console

logger = get_logger("cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="DEPSCOPE_CONFIG",
    help="Configuration file (depscope.toml or pyproject.toml).",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="More output: -v for progress, -vv for debug details.",
)
@click.option(
    "--color/--no-color",
    default=True,
    envvar="DEPSCOPE_COLOR",
    help="Colour the output.",
)
@click.version_option(__version__, prog_name="depscope", message="%(prog)s %(version)s")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: int,
    color: bool,
) -> None:
    """depscope: upgrade advisor for requirements.txt files.

    \b
    Commands:
      check     Report outdated, vulnerable and risky packages
      simulate  Preview the impact of upgrading a set of packages
      upgrade   Rewrite the manifest to the chosen versions

    \b
    Examples:
      depscope check --outdated-only
      depscope simulate -p django --pin celery==5.3.6
      depscope -v upgrade --dry-run
    """
    level = level_for_verbosity(verbose)
    setup_logging(level=level, verbose=verbose >= 2)
    logger.debug("depscope %s, log level %s", __version__, logging.getLevelName(level))

    try:
        settings = load_config(config)
    except ConfigError as exc:
        print_error(str(exc))
        raise SystemExit(EXIT_ERROR) from exc

    _apply_color(color)

    ctx.obj = DepScopeContext(
        config_path=config or settings.source_path,
        verbose=verbose,
        color=color,
        config=settings,
    )
    logger.debug("Configuration: %s", settings.to_log_dict())


def _apply_color(enabled: bool) -> None:
    """Export the colour choice as ``NO_COLOR`` and rebuild the console."""
    if enabled:
        os.environ.pop("NO_COLOR", None)
    else:
        os.environ["NO_COLOR"] = "1"
    reconfigure_console()


for _command in (check, simulate, upgrade):
    cli.add_command(_command)


def main() -> int:
    """Run the CLI and return its exit code.

    ``0`` success, ``1`` updates available or an application error,
    ``2`` (or click's own code) for usage errors, ``130`` when interrupted.
    """
    try:
        result = cli(standalone_mode=False)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_ERROR
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except (click.exceptions.Abort, KeyboardInterrupt):
        print_warning("\nOperation cancelled by user")
        return EXIT_INTERRUPTED
    except DepScopeError as exc:
        print_error(str(exc))
        logger.debug("Details: %s", exc.details or "<none>", exc_info=True)
        return EXIT_ERROR
    except Exception as exc:
        print_error(f"Unexpected error: {exc}")
        logger.exception("Unhandled exception in CLI")
        return EXIT_ERROR

    return result if isinstance(result, int) else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
