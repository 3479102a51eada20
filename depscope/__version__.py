"""
depscope version information.

Single source of truth for the package version. The CLI and the HTTP
User-Agent both read it from here.
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Union

__version__ = "0.1.0.dev0"


def _split_version(version: str) -> Dict[str, Union[int, Optional[str], bool]]:
    """Break ``MAJOR.MINOR.PATCH[.SUFFIX]`` into its components.

    Raises:
        ValueError: The version string does not follow that layout.
    """
    match = re.match(r"^(\d+)\.(\d+)\.(\d+)(?:[.-]([a-zA-Z0-9]+))?$", version)
    if not match:
        raise ValueError(f"Invalid version string: {version}")

    major, minor, patch, suffix = match.groups()
    return {
        "major": int(major),
        "minor": int(minor),
        "patch": int(patch),
        "prerelease": suffix,
        "is_dev": suffix is not None and suffix.startswith("dev"),
    }


VERSION_INFO = _split_version(__version__)

VERSION_STRING = f"depscope {__version__}"
