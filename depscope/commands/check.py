"""Check command implementation for depscope.

Analyzes a requirements manifest and reports, per package, how far it is
behind its latest release, whether its current version has known
vulnerabilities, and how risky its changelog looks.  Conflicts that
upgrading everything to latest would introduce are listed after the
table.

The command drives :func:`depscope.core.analyze`, which parses the
manifest, fetches every package concurrently through one shared
:class:`~depscope.core.MetadataCache`, and builds the constraint graph.

Typical usage::

    # Show only packages with available updates
    $ depscope check requirements.txt --outdated-only

    # Most downloaded first
    $ depscope check --sort popularity

    # Machine-readable JSON output
    $ depscope check --format json > report.json
"""

from __future__ import annotations

import sys
import json
import click
import asyncio
from pathlib import Path
from typing import Any, Dict, List

from depscope.core import Analysis, analyze
from depscope.exceptions import DepScopeError, ParseError
from depscope.context import pass_context, DepScopeContext
from depscope.models import (
    ConflictReport,
    PackageRecord,
    SortKey,
    UpdateSeverity,
    count_by_severity,
)
from depscope.utils import (
    get_logger,
    print_success,
    print_error,
    print_warning,
    print_table,
    get_raw_console,
    colorize_label,
)

logger = get_logger("commands.check")


@click.command()
@click.argument(
    "file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default="requirements.txt",
)
@click.option(
    "--outdated-only",
    is_flag=True,
    help="Show only packages with available updates or fetch errors.",
)
@click.option(
    "--format",
    "-f",
    type=click.Choice(["table", "simple", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.option(
    "--sort",
    "sort_by",
    type=click.Choice([key.value for key in SortKey], case_sensitive=False),
    default=SortKey.MANIFEST.value,
    help="Row order.",
)
@pass_context
def check(
    ctx: DepScopeContext,
    file: Path,
    outdated_only: bool,
    format: str,
    sort_by: str,
) -> None:
    """Check requirements file for available updates.

    Exits with 0 when every package is up to date and 1 when updates are
    available or the run failed.
    """
    try:
        has_updates = asyncio.run(
            _check_async(ctx, file, outdated_only, format.lower(), SortKey(sort_by.lower()))
        )
        sys.exit(1 if has_updates else 0)

    except DepScopeError as e:
        print_error(f"{e}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Error in check command")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Async orchestration
# ---------------------------------------------------------------------------


async def _check_async(
    ctx: DepScopeContext,
    file: Path,
    outdated_only: bool,
    format: str,
    sort_by: SortKey,
) -> bool:
    """Run the analysis and render it.

    Returns:
        ``True`` if any displayed package has an update available.
    """
    show_progress = format == "table" or ctx.verbose > 0

    logger.info("Checking %s...", file)

    # ── Step 1: Parse, fetch and build the graph ─────────────────────
    analysis = await analyze(file, config=ctx.config)
    errors = analysis.parse_result.errors

    if format != "json":
        _display_parse_errors(errors)

    if not analysis.records:
        if format == "json":
            _display_json(analysis, [], [])
        elif show_progress:
            print_warning("No packages found in requirements file")
        return False

    logger.info("Found %d package(s)", len(analysis.records))

    # ── Step 2: Order and filter ──────────────────────────────────────
    records = analysis.ordered_records(sort_by)
    if outdated_only:
        records = [r for r in records if r.has_update or r.fetch_failed]

    conflicts = analysis.conflicts_at_latest()

    # ── Step 3: Display ───────────────────────────────────────────────
    if format == "json":
        _display_json(analysis, records, conflicts)
        return any(r.has_update for r in records)

    if not records:
        if show_progress:
            print_success("All packages are up to date!")
        return False

    if format == "table":
        _display_table(records)
    else:
        _display_simple(records)

    if conflicts:
        _display_conflicts(conflicts)

    # ── Final summary ─────────────────────────────────────────────────
    outdated = sum(1 for r in records if r.has_update)
    if show_progress:
        _display_summary(records)
        if outdated:
            print_warning(f"{outdated} package(s) have updates available")
        else:
            print_success("All packages are up to date!")

    return outdated > 0


# ---------------------------------------------------------------------------
# Display renderers
# ---------------------------------------------------------------------------


def _display_parse_errors(errors: List[ParseError]) -> None:
    for error in errors:
        print_warning(f"Line {error.line_number}: {error.message}")


def _display_table(records: List[PackageRecord]) -> None:
    """Render records as a Rich table, one row per package.

    Example::

        ┏━━━━━━━━━━━━┳━━━━━━━━━━┳━━━━━━━━━┳━━━━━━━━┳━━━━━━━━━━┳━━━━━━━━━━┓
        ┃ Status     ┃ Package  ┃ Current ┃ Latest ┃ Severity ┃ Security ┃
        ┡━━━━━━━━━━━━╇━━━━━━━━━━╇━━━━━━━━━╇━━━━━━━━╇━━━━━━━━━━╇━━━━━━━━━━┩
        │ ⬆ OUTDATED │ django   │ 3.2.0   │ 5.0.1  │ major    │ 2 (high) │
        │ ✓ OK       │ requests │ 2.31.0  │ 2.31.0 │ -        │ clean    │
        └────────────┴──────────┴─────────┴────────┴──────────┴──────────┘
    """
    data = [_create_table_row(record) for record in records]

    column_styles: Dict[str, Dict[str, Any]] = {
        "Status": {"justify": "center", "no_wrap": True, "width": 10},
        "Package": {"style": "bold cyan", "no_wrap": True},
        "Current": {"justify": "center", "style": "dim"},
        "Latest": {"justify": "center", "style": "bold green"},
        "Severity": {"justify": "center"},
        "Security": {"justify": "center"},
        "Changelog": {"justify": "center"},
        "Downloads/month": {"justify": "right"},
    }

    print_table(
        data,
        title="Dependency Status",
        column_styles=column_styles,
        show_row_lines=True,
    )


def _create_table_row(record: PackageRecord) -> Dict[str, str]:
    """Build the Rich-markup cells for one record."""
    display = record.get_display_data()
    dash = "[dim]-[/dim]"

    if record.fetch_failed:
        status = "[red]✗ ERROR[/red]"
    elif record.has_update:
        status = "[yellow]⬆ OUTDATED[/yellow]"
    elif record.severity is UpdateSeverity.UP_TO_DATE:
        status = "[green]✓ OK[/green]"
    else:
        status = "[dim]? UNKNOWN[/dim]"

    security = display["security"]
    if record.advisories is not None and record.advisories.vulnerabilities:
        worst = record.advisories.highest_severity
        security = colorize_label(worst.value) if worst else security
        security = f"{record.vulnerability_count} {security}"
    elif security != "-":
        security = colorize_label(security)

    return {
        "Status": status,
        "Package": display["package"],
        "Current": display["current"] if display["current"] != "-" else dash,
        "Latest": (
            "[red]error[/red]" if record.fetch_failed else display["latest"]
        ),
        "Severity": (
            colorize_label(display["severity"]) if record.has_update or record.fetch_failed else dash
        ),
        "Security": security if security != "-" else dash,
        "Changelog": (
            colorize_label(display["changelog"]) if display["changelog"] != "-" else dash
        ),
        "Downloads/month": display["downloads"] if display["downloads"] != "-" else dash,
    }


def _display_simple(records: List[PackageRecord]) -> None:
    """Render records one per line, with errors and advisories indented.

    Example::

        [MAJOR] django               3.2.0      → 5.0.1
               Security: 2 (high)
        [UP-TO-DATE] requests             2.31.0     → 2.31.0
    """
    console = get_raw_console()

    for record in records:
        display = record.get_display_data()
        console.print(
            f"[{display['severity'].upper()}] {display['package']:20} "
            f"{display['current']:10} → {display['latest']:10}",
            markup=False,
        )
        if record.error:
            console.print(f"       Error: {record.error}", markup=False)
        if display["security"] not in ("-", "clean"):
            console.print(f"       Security: {display['security']}", markup=False)
        if display["changelog"] not in ("-", "unknown", "low"):
            console.print(f"       Changelog: {display['changelog']}", markup=False)


def _display_conflicts(conflicts: List[ConflictReport]) -> None:
    console = get_raw_console()
    console.print("\n[bold]Conflicts when upgrading everything to latest:[/bold]")
    for conflict in conflicts:
        hint = (
            f" (highest compatible: {conflict.compatible_version})"
            if conflict.compatible_version
            else ""
        )
        console.print(f"  [red]⚠[/red] {conflict.to_display_string()}{hint}")
    console.print("")


def _display_summary(records: List[PackageRecord]) -> None:
    counts = count_by_severity(records)
    parts = [
        f"{colorize_label(severity.value)}: {count}"
        for severity, count in sorted(counts.items(), key=lambda item: item[0].priority)
        if count
    ]
    get_raw_console().print("Summary: " + ", ".join(parts))


def _display_json(
    analysis: Analysis,
    records: List[PackageRecord],
    conflicts: List[ConflictReport],
) -> None:
    """Print the whole report as one JSON document.

    Example::

        {
          "source": "requirements.txt",
          "packages": [{"name": "django", "severity": "major", ...}],
          "parse_errors": [{"line": 5, "content": "???bad line", ...}],
          "conflicts": [],
          "summary": {"major": 1, "up-to-date": 3, ...}
        }
    """
    data = {
        "source": analysis.parse_result.source_path,
        "packages": [record.to_json() for record in records],
        "parse_errors": [
            {
                "line": error.line_number,
                "content": error.line_content,
                "message": error.message,
            }
            for error in analysis.parse_result.errors
        ],
        "conflicts": [conflict.to_json() for conflict in conflicts],
        "summary": {
            severity.value: count for severity, count in count_by_severity(records).items()
        },
    }
    print(json.dumps(data, indent=2))
