"""Core bootstrap operations.

Declarative operations for system setup: packages, files, services.
Each operation is a function returning an Op (string or callable).

None of these functions validate their arguments; callers pass values
that already went through ec2cli.validation.
"""

from __future__ import annotations

from ec2cli.bootstrap.compose import Op, compose, resolve

# =============================================================================
# Package Operations
# =============================================================================

INSTALL_COMMANDS = {
    "apt": "apt-get install -y",
    "dnf": "dnf install -y",
    "yum": "yum install -y",
}

DOCKER_PACKAGES = {
    "apt": "docker.io",
    "dnf": "docker",
    "yum": "docker",
}

_RPM_BUILD_TOOLS = ("gcc", "gcc-c++", "make")

PACKAGE_NAMES: dict[str, dict[str, tuple[str, ...]]] = {
    "dnf": {
        "build-essential": _RPM_BUILD_TOOLS,
        "libssl-dev": ("openssl-devel",),
        "pkg-config": ("pkgconf-pkg-config",),
    },
    "yum": {
        "build-essential": _RPM_BUILD_TOOLS,
        "libssl-dev": ("openssl-devel",),
        "pkg-config": ("pkgconfig",),
    },
}
"""Debian package names and their RPM equivalents. Unlisted names pass through."""


def package_names(manager: str, packages: tuple[str, ...] | list[str]) -> list[str]:
    """Translate Debian package names for ``manager``, keeping order and dropping repeats.

    Example:
        >>> package_names("dnf", ["build-essential", "git"])
        ['gcc', 'gcc-c++', 'make', 'git']
    """
    table = PACKAGE_NAMES.get(manager, {})
    names: list[str] = []
    for pkg in packages:
        for name in table.get(pkg, (pkg,)):
            if name not in names:
                names.append(name)
    return names


def install(manager: str, *packages: str, update: bool = True) -> Op:
    """Install system packages with the distribution's package manager.

    Example:
        >>> install("apt", "git", "jq")()
        'apt-get update\\napt-get install -y git jq'
    """

    def generate() -> str:
        lines = []
        if update and manager == "apt":
            lines.append("apt-get update")
        if packages:
            lines.append(f"{INSTALL_COMMANDS[manager]} {' '.join(package_names(manager, packages))}")
        return "\n".join(lines)

    return generate


def docker(manager: str) -> Op:
    """Install the container runtime and start it."""
    return lambda: "\n".join([
        f"{INSTALL_COMMANDS[manager]} {DOCKER_PACKAGES[manager]}",
        "systemctl enable docker",
        "systemctl start docker",
    ])


def ssm_agent() -> Op:
    """Make sure the SSM agent is enabled and running (snap or deb/rpm)."""
    return lambda: """if snap list amazon-ssm-agent 2>/dev/null; then
    snap start amazon-ssm-agent 2>/dev/null || true
    systemctl enable snap.amazon-ssm-agent.amazon-ssm-agent.service 2>/dev/null || true
    systemctl start snap.amazon-ssm-agent.amazon-ssm-agent.service 2>/dev/null || true
else
    systemctl enable amazon-ssm-agent 2>/dev/null || true
    systemctl start amazon-ssm-agent 2>/dev/null || true
fi"""


# =============================================================================
# File Operations
# =============================================================================


def echo(message: str) -> Op:
    return lambda: f"echo '{message}'"


def mkdir(*paths: str) -> Op:
    return lambda: f"mkdir -p {' '.join(paths)}"


def chown(owner: str, *paths: str, recursive: bool = True) -> Op:
    flag = "-R " if recursive else ""
    return lambda: f"chown {flag}{owner}:{owner} {' '.join(paths)}"


def touch(path: str) -> Op:
    return lambda: f"touch {path}"


def file(
    path: str,
    content: str,
    *,
    mode: str | None = None,
    append: bool = False,
    delimiter: str = "EOF",
) -> Op:
    """Write content to a file using a quoted heredoc.

    The delimiter is quoted, so nothing inside ``content`` is expanded by
    the shell that runs the bootstrap script.

    Example:
        >>> file("/etc/test.conf", "key=value")()
        "cat > /etc/test.conf << 'EOF'\\nkey=value\\nEOF"
    """
    redirect = ">>" if append else ">"

    def generate() -> str:
        lines = [f"cat {redirect} {path} << '{delimiter}'", content, delimiter]
        if mode:
            lines.append(f"chmod {mode} {path}")
        return "\n".join(lines)

    return generate


# =============================================================================
# Shell Operations
# =============================================================================


def su(user: str, *ops: Op) -> Op:
    """Run operations as ``user`` through a login shell.

    The inner script is wrapped in single quotes. Callers must not pass
    single quotes inside it.
    """

    def generate() -> str:
        inner = "\n".join(resolve(op) for op in ops)
        if "\n" in inner:
            return f"su - {user} -c '\n{inner}\n'"
        return f"su - {user} -c '{inner}'"

    return generate


def git_config(git_dir: str, key: str, value: str) -> Op:
    return lambda: f"git --git-dir={git_dir} config {key} {value}"


def section(title: str, *ops: Op | None) -> Op:
    """Prefix a group of operations with a progress message."""
    return lambda: compose(echo(title), *ops)


__all__ = [
    "chown",
    "docker",
    "echo",
    "file",
    "git_config",
    "install",
    "mkdir",
    "package_names",
    "section",
    "ssm_agent",
    "su",
    "touch",
]
