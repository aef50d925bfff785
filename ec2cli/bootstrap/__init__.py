"""Declarative first-boot script DSL.

Example:
    >>> from ec2cli.bootstrap import BootstrapScriptBuilder, VcsIdentity
    >>>
    >>> script = BootstrapScriptBuilder().build(
    ...     profile,
    ...     "ubuntu",
    ...     project_name="my-app",
    ...     vcs_identity=VcsIdentity(name="Alice", email="alice@example.com"),
    ... )
"""

from __future__ import annotations

from .builder import (
    STAGES,
    BootstrapScript,
    BootstrapScriptBuilder,
    Stage,
    VcsIdentity,
)
from .compose import HEADER, Op, bootstrap, compose, resolve

__all__ = [
    "HEADER",
    "STAGES",
    "BootstrapScript",
    "BootstrapScriptBuilder",
    "Op",
    "Stage",
    "VcsIdentity",
    "bootstrap",
    "compose",
    "resolve",
]
