"""
Executable module for depscope.

Running ``python -m depscope`` is equivalent to running ``depscope``.
"""

from __future__ import annotations

import sys


def _print_startup_error(exc: ImportError) -> None:
    """Explain on stderr why the CLI could not be imported."""
    sys.stderr.write("depscope could not start: a dependency failed to import.\n")
    sys.stderr.write(f"Python version  : {sys.version}\n")
    try:
        from depscope.__version__ import __version__

        sys.stderr.write(f"depscope version: {__version__}\n")
    except ImportError:
        sys.stderr.write("depscope version: <unknown>\n")
    sys.stderr.write("\n")
    sys.stderr.write(f"ImportError: {exc}\n")


def main() -> int:
    """Entrypoint for ``python -m depscope``; returns the CLI exit code."""
    try:
        # Imported lazily so a broken install reports cleanly
        from depscope.cli import main as cli_main
    except ImportError as exc:
        _print_startup_error(exc)
        return 1

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
