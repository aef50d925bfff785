"""SSH public key discovery."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from ec2cli.exceptions import ConfigurationError, NotFoundError
from ec2cli.validation import validate_ssh_public_key

STANDARD_KEY_NAMES = ("id_ed25519", "id_rsa", "id_ecdsa")


def default_key_candidates(project_dir: Path | None = None, home: Path | None = None) -> list[Path]:
    """Project override first, then the usual ~/.ssh public keys."""
    project = (project_dir or Path.cwd()) / ".ec2-cli" / "ssh_public_key"
    ssh_dir = (home or Path.home()) / ".ssh"
    return [project, *(ssh_dir / f"{name}.pub" for name in STANDARD_KEY_NAMES)]


def load_public_key(candidates: Sequence[Path] | None = None) -> str:
    """Return the first candidate key, validated.

    The first file that exists wins; an invalid key there is an error
    rather than a reason to try the next candidate.

    Raises:
        ValidationError: The first existing key is malformed.
        ConfigurationError: The first existing key cannot be read.
        NotFoundError: No candidate exists.
    """
    paths = list(candidates) if candidates is not None else default_key_candidates()
    for path in paths:
        if not path.is_file():
            continue
        try:
            content = path.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read SSH key from {path}: {e}") from e
        logger.debug(f"Using SSH public key {path}")
        return validate_ssh_public_key(content)

    raise NotFoundError(
        f"No SSH public key found. Checked: {', '.join(str(p) for p in paths)}"
    )


__all__ = ["default_key_candidates", "load_public_key"]
