"""Simulate command implementation for depscope.

Answers "what happens if I upgrade these?" without touching the
manifest.  The selected packages move to their latest release, or to an
explicit ``--pin``, and the resulting :class:`SimulationReport` is
rendered as a table or as JSON.

Typical usage::

    # Everything that has an update
    $ depscope simulate requirements.txt

    # Only Django, with Celery held at a chosen release
    $ depscope simulate -p django --pin celery==5.3.6

    # Every patch and minor update
    $ depscope simulate --severity patch --severity minor

    $ depscope simulate --format json
"""

from __future__ import annotations

import sys
import json
import click
import asyncio
from pathlib import Path
from typing import Dict, List, Mapping, Tuple

from depscope.core import analyze
from depscope.exceptions import DepScopeError
from depscope.core.simulator import UpgradeSimulator
from depscope.models import PackageRecord, SimulationReport, UpdateSeverity
from depscope.context import pass_context, DepScopeContext
from depscope.utils import (
    get_logger,
    print_error,
    print_table,
    get_raw_console,
    colorize_label,
)
from depscope.utils.version_utils import parse_version

logger = get_logger("commands.simulate")


def parse_pins(
    ctx: click.Context,
    param: click.Parameter,
    value: Tuple[str, ...],
) -> Dict[str, str]:
    """Click callback turning ``NAME==VERSION`` options into a mapping."""
    pins: Dict[str, str] = {}
    for raw in value:
        name, sep, version = raw.partition("==")
        name, version = name.strip(), version.strip()
        if not sep or not name or not version:
            raise click.BadParameter(f"expected NAME==VERSION, got {raw!r}", ctx, param)
        if parse_version(version) is None:
            raise click.BadParameter(f"invalid version in {raw!r}", ctx, param)
        pins[name] = version
    return pins


#: Update kinds ``--severity`` can select.
SEVERITY_CHOICES = ("major", "minor", "patch", "prerelease")

severity_option = click.option(
    "--severity",
    "-s",
    "severities",
    multiple=True,
    type=click.Choice(SEVERITY_CHOICES, case_sensitive=False),
    help="Also select every package with an update of this kind (repeatable).",
)


def resolve_selection(
    simulator: UpgradeSimulator,
    packages: Tuple[str, ...],
    pins: Mapping[str, str],
    severities: Tuple[str, ...],
) -> List[str]:
    """Packages named with ``-p`` plus those picked by ``--severity``.

    With no ``-p``, ``--pin`` or ``--severity`` every outdated package is
    selected.
    """
    if not (packages or pins or severities):
        return simulator.upgradable()
    selection = list(packages)
    if severities:
        kinds = {UpdateSeverity(value.lower()) for value in severities}
        selection.extend(simulator.upgradable(kinds))
    return selection


@click.command()
@click.argument(
    "file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default="requirements.txt",
)
@click.option(
    "--package",
    "-p",
    "packages",
    multiple=True,
    help="Package to upgrade (repeatable). Defaults to every outdated package.",
)
@click.option(
    "--pin",
    "pins",
    multiple=True,
    callback=parse_pins,
    metavar="NAME==VERSION",
    help="Upgrade a package to an explicit version instead of latest (repeatable).",
)
@severity_option
@click.option(
    "--format",
    "-f",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@pass_context
def simulate(
    ctx: DepScopeContext,
    file: Path,
    packages: Tuple[str, ...],
    pins: Dict[str, str],
    severities: Tuple[str, ...],
    format: str,
) -> None:
    """Simulate the impact of an upgrade without applying it."""
    try:
        asyncio.run(_simulate_async(ctx, file, packages, pins, severities, format.lower()))

    except DepScopeError as e:
        print_error(f"{e}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Error in simulate command")
        sys.exit(1)


async def _simulate_async(
    ctx: DepScopeContext,
    file: Path,
    packages: Tuple[str, ...],
    pins: Dict[str, str],
    severities: Tuple[str, ...],
    format: str,
) -> None:
    analysis = await analyze(file, config=ctx.config)
    simulator = analysis.simulator

    selection = resolve_selection(simulator, packages, pins, severities)
    report = simulator.simulate(selection, pins=pins)

    if format == "json":
        print(json.dumps(report.to_json(), indent=2))
    else:
        display_report(report, records=analysis.records)


def display_report(
    report: SimulationReport,
    *,
    records: Mapping[str, PackageRecord],
    title: str = "Upgrade Simulation",
) -> None:
    """Render a simulation report for humans.

    Prints the planned version moves as a table, then the aggregate
    counts, conflicts and the overall risk with its reasons.

    Example::

        Risk: high
          • 1 version conflict(s)
          • 1 major version upgrade(s)
    """
    console = get_raw_console()

    if not report.selection:
        console.print("Nothing selected; no packages would change.")
        console.print(f"Risk: {colorize_label(report.risk_level.value)}")
        return

    rows = [
        {
            "Package": key,
            "Current": _current(records, key),
            "Target": (
                f"[bold green]{report.targets[key]}[/bold green]"
                if key in report.targets
                else "[dim]-[/dim]"
            ),
        }
        for key in report.selection
    ]
    print_table(
        rows,
        title=title,
        column_styles={
            "Package": {"style": "bold cyan", "no_wrap": True},
            "Current": {"justify": "center", "style": "dim"},
            "Target": {"justify": "center"},
        },
    )

    if report.severity_counts:
        parts = [
            f"{colorize_label(severity.value)}: {count}"
            for severity, count in report.severity_counts.items()
        ]
        console.print("Changes: " + ", ".join(parts))

    console.print(
        f"Vulnerabilities: {report.vulnerabilities_confirmed} known, "
        f"{report.vulnerabilities_fixed} fixed by upgrade, "
        f"{report.advisories_unchecked} package(s) unchecked"
    )

    tiers = ", ".join(
        f"{colorize_label(tier.value)}: {count}"
        for tier, count in report.changelog_tiers.items()
    )
    console.print(
        f"Changelogs: {tiers or 'none assessed'}"
        f" ({report.changelog_unknown} unknown, {report.deprecations} with deprecations)"
    )

    if report.conflicts:
        console.print("\n[bold]Conflicts:[/bold]")
        for conflict in report.conflicts:
            console.print(f"  [red]⚠[/red] {conflict.to_display_string()}")

    if report.inconsistencies:
        console.print("\n[bold]Not evaluated:[/bold]")
        for item in report.inconsistencies:
            console.print(f"  [dim]{item.dependent} → {item.target}: {item.reason}[/dim]")

    console.print(f"\nRisk: {colorize_label(report.risk_level.value)}")
    for reason in report.reasons:
        console.print(f"  • {reason}")


def _current(records: Mapping[str, PackageRecord], key: str) -> str:
    record = records.get(key)
    if record is None or not record.current_version:
        return "[dim]-[/dim]"
    return record.current_version
