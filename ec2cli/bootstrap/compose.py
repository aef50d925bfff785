"""Bootstrap script composition.

Core types and composition functions for the declarative bootstrap DSL.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Final

from ec2cli.constants import INIT_LOG_PATH

# =============================================================================
# Core Types
# =============================================================================

type Op = str | Callable[[], str] | list[Op]
"""Operation type: either a literal string or a function returning a string."""


def resolve(op: Op | None) -> str:
    """Resolve an operation to its string representation."""
    match op:
        case str(op):
            return op
        case list(op):
            return "\n".join(resolve(o) for o in op)
        case None:
            return ""
        case _:
            return op()


# =============================================================================
# Header
# =============================================================================

HEADER: Final = f"""#!/bin/bash
set -e

exec > >(tee {INIT_LOG_PATH}) 2>&1

export DEBIAN_FRONTEND=noninteractive"""


# =============================================================================
# Composition
# =============================================================================


def compose(*ops: Op | None) -> str:
    """Compose operations into one block, dropping empty ones.

    Example:
        >>> compose("echo a", None, lambda: "echo b")
        'echo a\\necho b'
    """
    parts = (resolve(op) for op in ops)
    return "\n".join(p for p in parts if p)


def bootstrap(*blocks: str, header: str = HEADER) -> str:
    """Join resolved blocks under the header into a complete script."""
    return "\n\n".join((header, *blocks)) + "\n"


__all__ = ["HEADER", "Op", "bootstrap", "compose", "resolve"]
