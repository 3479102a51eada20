"""Upgrade command implementation for depscope.

Rewrites the manifest so the selected packages point at their new
versions.  The command always simulates first and shows the plan with
its risk, then asks for confirmation (unless ``-y``), backs the manifest
up with a timestamp, and rewrites only the governing line of each
upgraded package.  Extras, markers and comments survive the rewrite.

Typical usage::

    # Preview upgrading everything that is outdated
    $ depscope upgrade --dry-run

    # Upgrade two packages and write a lock file, no prompt
    $ depscope upgrade -p flask -p click --lock requirements.lock -y

    # Apply only patch updates
    $ depscope upgrade --severity patch -y
"""

from __future__ import annotations

import sys
import click
import asyncio
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple

from depscope.core import Analysis, analyze, render_lock, render_manifest
from depscope.exceptions import DepScopeError
from depscope.models import RiskLevel, SourceKind
from depscope.context import pass_context, DepScopeContext
from depscope.commands.simulate import (
    display_report,
    parse_pins,
    resolve_selection,
    severity_option,
)
from depscope.utils import (
    confirm,
    get_logger,
    print_success,
    print_error,
    print_warning,
    restore_backup,
    safe_write_file,
)
from depscope.utils.version_utils import versions_equal

logger = get_logger("commands.upgrade")

_REWRITABLE = (SourceKind.REGISTRY, SourceKind.GIT)


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
    "--dry-run",
    is_flag=True,
    help="Show the plan without modifying any file.",
)
@click.option(
    "--lock",
    "lock_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write a lock file pinning every package.",
)
@click.option(
    "--yes",
    "-y",
    is_flag=True,
    help="Skip confirmation prompt.",
)
@pass_context
def upgrade(
    ctx: DepScopeContext,
    file: Path,
    packages: Tuple[str, ...],
    pins: Dict[str, str],
    severities: Tuple[str, ...],
    dry_run: bool,
    lock_path: Optional[Path],
    yes: bool,
) -> None:
    """Upgrade packages in a requirements file.

    Args:
        ctx: depscope context with configuration and verbosity settings.
        file: Manifest to rewrite (default: ``requirements.txt``).
        packages: Packages to upgrade; every outdated package when empty.
        pins: Explicit target versions, which also join the selection.
        severities: Update kinds whose packages join the selection.
        dry_run: Preview changes without modifying the file.
        lock_path: Where to write a lock file, if anywhere.
        yes: Skip the confirmation prompt.

    Example::

        $ depscope upgrade -p flask --pin click==8.1.7 --dry-run
    """
    try:
        asyncio.run(
            _upgrade_async(
                ctx, file, packages, pins, severities, dry_run, lock_path, skip_confirm=yes
            )
        )

    except DepScopeError as e:
        print_error(f"{e}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        logger.exception("Error in upgrade command")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Async orchestration
# ---------------------------------------------------------------------------


async def _upgrade_async(
    ctx: DepScopeContext,
    file: Path,
    packages: Tuple[str, ...],
    pins: Dict[str, str],
    severities: Tuple[str, ...],
    dry_run: bool,
    lock_path: Optional[Path],
    *,
    skip_confirm: bool,
) -> None:
    # ── Step 1: Analyze ───────────────────────────────────────────────
    analysis = await analyze(file, config=ctx.config)
    simulator = analysis.simulator

    # ── Step 2: Simulate the selection ────────────────────────────────
    selection = resolve_selection(simulator, packages, pins, severities)
    report = simulator.simulate(selection, pins=pins)
    changes = _planned_changes(analysis, report.targets)

    if not changes:
        print_success("All packages are up to date!")
        return

    # ── Step 3: Display plan ──────────────────────────────────────────
    display_report(
        report,
        records=analysis.records,
        title="Upgrade Plan (Dry Run)" if dry_run else "Upgrade Plan",
    )

    if dry_run:
        print_warning("Dry run mode - no changes applied")
        return

    # ── Step 4: Confirm (unless -y) ───────────────────────────────────
    if not skip_confirm:
        if report.risk_level is RiskLevel.HIGH:
            print_warning("This upgrade is rated high risk")
        if not confirm(f"Upgrade {len(changes)} package(s)?"):
            logger.info("Upgrade cancelled by user")
            return

    # ── Step 5: Rewrite the manifest, backing it up first ─────────────
    new_text = render_manifest(analysis.text, analysis.parse_result, changes)
    backup_path = safe_write_file(file, new_text, create_backup=True)
    if backup_path is not None:
        logger.info("Created backup: %s", backup_path)

    for key, version in sorted(changes.items()):
        logger.debug("  %s: %s → %s", key, analysis.records[key].current_version, version)

    # ── Step 6: Lock file ─────────────────────────────────────────────
    if lock_path is not None:
        try:
            lock_text = render_lock(
                analysis.records.values(), changes, datetime.now(timezone.utc)
            )
            safe_write_file(lock_path, lock_text, create_backup=False)
        except DepScopeError as e:
            if backup_path is not None:
                print_error(f"Error writing lock file: {e}")
                logger.info("Restoring from backup...")
                restore_backup(backup_path, file)
                print_success("Restored original file from backup")
            raise DepScopeError(f"Failed to apply upgrade: {e}") from e
        print_success(f"Wrote lock file {lock_path}")

    print_success(f"Successfully upgraded {len(changes)} package(s)")


def _planned_changes(analysis: Analysis, targets: Mapping[str, str]) -> Dict[str, str]:
    """Targets that actually move a rewritable package off its current version."""
    changes: Dict[str, str] = {}
    for key, version in targets.items():
        record = analysis.records.get(key)
        if record is None:
            continue
        if record.source not in _REWRITABLE:
            print_warning(f"Skipping {record.name}: {record.source.value} requirements are not rewritten")
            continue
        if versions_equal(record.current_version, version):
            continue
        changes[key] = version
    return changes
