"""
Per-invocation state shared by the depscope group and its commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from depscope.config import DepScopeConfig


class DepScopeContext:
    """What the ``depscope`` group resolved before a command runs.

    Commands built outside the group (for example in tests) get a context
    with default settings.

    Attributes:
        config_path: Configuration file in effect, or ``None``.
        config: Effective settings.
        verbose: ``-v`` count (0 warnings only, 1 info, 2+ debug).
        color: Whether terminal output is coloured.
    """

    __slots__ = ("config_path", "config", "verbose", "color")

    def __init__(
        self,
        *,
        config_path: Optional[Path] = None,
        config: Optional[DepScopeConfig] = None,
        verbose: int = 0,
        color: bool = True,
    ) -> None:
        self.config_path = config_path
        self.config = config if config is not None else DepScopeConfig()
        self.verbose = verbose
        self.color = color

    def __repr__(self) -> str:
        return (
            f"DepScopeContext(config_path={self.config_path!r}, "
            f"verbose={self.verbose}, color={self.color})"
        )


pass_context = click.make_pass_decorator(DepScopeContext, ensure=True)
