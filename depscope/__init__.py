"""
depscope: upgrade advice for pinned Python requirements files.

depscope reads a ``requirements.txt``-style manifest and reports, for every
declared package, how far behind it is, which known vulnerabilities affect
the pinned version, whether the release notes announce breaking changes,
and which upgrades would clash with constraints declared by other packages
in the same manifest. It can simulate an upgrade set before applying it.

depscope never installs anything and never resolves conflicts on its own.
"""

from __future__ import annotations

from depscope.__version__ import __version__

# ---------------------------------------------------------------------------
# Package Metadata
# ---------------------------------------------------------------------------

__author__ = "depscope Contributors"
__license__ = "Apache-2.0"
__description__ = "Upgrade advisor for pinned Python requirements files."

__all__ = [
    "__version__",
]
