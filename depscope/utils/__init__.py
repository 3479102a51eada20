"""
Utility helpers for depscope.

Console output (Rich), logging, filesystem safety, the async HTTP client,
and version parsing helpers. Only symbols listed in ``__all__`` are
considered part of the public API.
"""

from __future__ import annotations

from depscope.utils.filesystem import (
    create_timestamped_backup,
    restore_backup,
    safe_read_file,
    safe_write_file,
)
from depscope.utils.logger import (
    disable_logging,
    get_logger,
    is_logging_configured,
    level_for_verbosity,
    setup_logging,
)
from depscope.utils.console import (
    colorize_label,
    confirm,
    get_raw_console,
    print_error,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)
from depscope.utils.http import HTTPClient
from depscope.utils.version_utils import (
    is_prerelease,
    parse_any,
    parse_version,
    sort_versions,
    version_sort_key,
)

__all__ = [
    # Console
    "confirm",
    "print_error",
    "print_table",
    "print_success",
    "print_warning",
    "get_raw_console",
    "reconfigure_console",
    "colorize_label",
    # Logging
    "get_logger",
    "setup_logging",
    "disable_logging",
    "level_for_verbosity",
    "is_logging_configured",
    # Filesystem
    "safe_read_file",
    "safe_write_file",
    "restore_backup",
    "create_timestamped_backup",
    # HTTP
    "HTTPClient",
    # Versions
    "parse_any",
    "parse_version",
    "is_prerelease",
    "sort_versions",
    "version_sort_key",
]
