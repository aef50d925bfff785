"""First-boot script synthesis.

The script runs as root via cloud-init. It is assembled from an ordered
tuple of named stages; each stage is a pure function from validated input
to a text fragment, and ordering is a property of STAGES alone.

Order matters: SSH keys and the push target must be usable within seconds
of boot, while package and toolchain installation take minutes. The final
readiness marker is written last so that, under ``set -e``, its presence
means every earlier command succeeded.
"""

from __future__ import annotations

import posixpath
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Final

from loguru import logger

from ec2cli.bootstrap import ops
from ec2cli.bootstrap.compose import HEADER, Op, bootstrap, resolve
from ec2cli.constants import GIT_READY_MARKER, MOTD_SCRIPT_PATH, READY_MARKER
from ec2cli.exceptions import ValidationError
from ec2cli.profile import Profile
from ec2cli.validation import (
    validate_env_key,
    validate_identity_value,
    validate_project_name,
    validate_shell_safe,
    validate_ssh_public_key,
    validate_username,
)

ZERO_REV: Final = "0" * 40
RUSTUP_URL: Final = "https://sh.rustup.rs"
MOTD_DIR: Final = posixpath.dirname(MOTD_SCRIPT_PATH)


@dataclass(frozen=True, slots=True)
class VcsIdentity:
    """Git author identity copied onto the instance. Either part may be missing."""

    name: str | None = None
    email: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.name and not self.email


@dataclass(frozen=True, slots=True)
class Stage:
    name: str
    text: str


@dataclass(frozen=True, slots=True)
class BootstrapScript:
    """Immutable first-boot script plus the stages it was built from."""

    text: str
    stages: tuple[Stage, ...]

    @property
    def stage_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.stages)

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class _Input:
    profile: Profile
    user: str
    package_manager: str
    project: str | None
    ssh_key: str | None
    identity: VcsIdentity | None
    environment: tuple[tuple[str, str], ...]

    @property
    def home(self) -> str:
        return f"/home/{self.user}"


# =============================================================================
# Stages
# =============================================================================


def _ssh_key(i: _Input) -> Op | None:
    if i.ssh_key is None:
        return None
    ssh_dir = f"{i.home}/.ssh"
    return ops.section(
        "Configuring SSH public key...",
        ops.mkdir(ssh_dir),
        ops.file(f"{ssh_dir}/authorized_keys", i.ssh_key, append=True, delimiter="SSHEOF"),
        f"chmod 700 {ssh_dir}",
        f"chmod 600 {ssh_dir}/authorized_keys",
        ops.chown(i.user, ssh_dir),
    )


def _post_receive_hook(i: _Input, project: str) -> str:
    return f"""#!/bin/bash
while read oldrev newrev refname; do
    if [ "$newrev" = "{ZERO_REV}" ]; then
        continue
    fi
    case "$refname" in
        refs/heads/*)
            branch="${{refname#refs/heads/}}"
            GIT_WORK_TREE={i.home}/work/{project} git checkout -f "$branch"
            ;;
    esac
done"""


def _vcs_prerequisites(i: _Input) -> Op | None:
    # Ubuntu cloud images ship git; Amazon Linux images do not.
    if i.package_manager == "apt":
        return None
    return ops.section("Installing git...", ops.install(i.package_manager, "git"))


def _vcs(i: _Input) -> Op:
    repos, work = f"{i.home}/repos", f"{i.home}/work"

    identity: list[Op] = []
    if i.identity is not None and not i.identity.is_empty:
        identity.append(ops.echo("Configuring git user identity..."))
        if i.identity.name:
            identity.append(ops.su(i.user, f'git config --global user.name "{i.identity.name}"'))
        if i.identity.email:
            identity.append(ops.su(i.user, f'git config --global user.email "{i.identity.email}"'))

    repo: list[Op] = []
    if i.project is not None:
        git_dir = f"{repos}/{i.project}.git"
        tree = f"{work}/{i.project}"
        hook = f"{git_dir}/hooks/post-receive"
        repo = [
            ops.echo(f"Setting up git repo for {i.project}..."),
            ops.su(i.user, f"git init --bare {git_dir}"),
            ops.file(hook, _post_receive_hook(i, i.project), mode="+x", delimiter="HOOKEOF"),
            ops.chown(i.user, git_dir),
            ops.mkdir(tree),
            ops.git_config(git_dir, "core.bare", "false"),
            ops.git_config(git_dir, "core.worktree", tree),
            ops.git_config(git_dir, "receive.denyCurrentBranch", "updateInstead"),
            f"echo 'gitdir: {git_dir}' > {tree}/.git",
            ops.chown(i.user, tree),
        ]

    return [
        *identity,
        ops.section("Setting up git directories...", ops.mkdir(repos, work), ops.chown(i.user, repos, work)),
        *repo,
        ops.touch(f"{i.home}/{GIT_READY_MARKER}"),
    ]


def _groups(i: _Input) -> Op:
    return ops.section(
        "Setting up docker group...",
        "groupadd -f docker",
        f"usermod -aG docker {i.user}",
    )


def _motd(i: _Input) -> Op | None:
    if i.project is None:
        return None
    return ops.section(
        "Configuring login message...",
        ops.mkdir(MOTD_DIR),
        f"chmod -x {MOTD_DIR}/* 2>/dev/null || true",
        ops.file(MOTD_SCRIPT_PATH, _motd_script(i.project), mode="+x", delimiter="MOTDEOF"),
    )


def _motd_script(project: str) -> str:
    return f"""#!/bin/bash
LOAD=$(awk '{{print $1}}' /proc/loadavg)
MEM_TOTAL=$(grep MemTotal /proc/meminfo | awk '{{print $2}}')
MEM_AVAIL=$(grep MemAvailable /proc/meminfo | awk '{{print $2}}')
MEM_PCT=$((100 - (MEM_AVAIL * 100 / MEM_TOTAL)))
DISK_PCT=$(df / | awk 'NR==2 {{gsub(/%/,""); print $5}}')
IP_ADDR=$(hostname -I | awk '{{print $1}}')

cat << EOF

  ec2-cli development instance

  System    Load: $LOAD  Memory: $MEM_PCT%  Disk: $DISK_PCT%
  Network   $IP_ADDR
  Project   ~/work/{project}

  Logs      cat /var/log/ec2-cli-init.log
  Ready?    ls ~/{READY_MARKER}

EOF"""


def _ssm_agent(i: _Input) -> Op:
    return ops.section("Ensuring SSM agent is running...", ops.ssm_agent())


def _packages(i: _Input) -> Op:
    return ops.section(
        "Installing system packages...",
        ops.install(i.package_manager, *i.profile.system_packages),
    )


def _container_runtime(i: _Input) -> Op:
    return ops.section("Installing Docker...", ops.docker(i.package_manager))


def _toolchain(i: _Input) -> Op | None:
    tc = i.profile.toolchain
    if not tc.enabled:
        return None

    rustup = f'curl --proto "=https" --tlsv1.2 -sSf {RUSTUP_URL} | sh -s -- -y'
    if tc.channel != "stable":
        rustup += f" --default-toolchain {tc.channel}"

    inner: list[Op] = [rustup, "source ~/.cargo/env"]
    if tc.components:
        inner.append(f"rustup component add {' '.join(tc.components)}")
    return ops.section("Installing Rust...", ops.su(i.user, *inner))


def _toolchain_packages(i: _Input) -> Op | None:
    tc = i.profile.toolchain
    if not tc.enabled or not tc.packages:
        return None
    return ops.section(
        "Installing cargo packages...",
        ops.su(i.user, "source ~/.cargo/env", *(f"cargo install {p}" for p in tc.packages)),
    )


def _environment(i: _Input) -> Op | None:
    if not i.environment:
        return None
    exports = "\n".join(f'export {k}="{v}"' for k, v in i.environment)
    return ops.section(
        "Setting environment variables...",
        ops.file(f"{i.home}/.bashrc", exports, append=True, delimiter="ENVEOF"),
    )


def _ready(i: _Input) -> Op:
    return [ops.echo("ec2-cli initialization complete!"), ops.touch(f"{i.home}/{READY_MARKER}")]


type StageFn = Callable[[_Input], Op | None]

STAGES: Final[tuple[tuple[str, StageFn], ...]] = (
    ("ssh_key", _ssh_key),
    ("vcs_prerequisites", _vcs_prerequisites),
    ("vcs", _vcs),
    ("groups", _groups),
    ("motd", _motd),
    ("ssm_agent", _ssm_agent),
    ("packages", _packages),
    ("container_runtime", _container_runtime),
    ("toolchain", _toolchain),
    ("toolchain_packages", _toolchain_packages),
    ("environment", _environment),
    ("ready", _ready),
)
"""Stage order. ``header`` always precedes these and ``ready`` is always last."""


# =============================================================================
# Builder
# =============================================================================


class BootstrapScriptBuilder:
    """Validates user-controlled input and renders the first-boot script.

    Example:
        >>> script = BootstrapScriptBuilder().build(
        ...     DEFAULT_PROFILE,
        ...     "ubuntu",
        ...     project_name="my-app",
        ...     ssh_public_key=key,
        ... )
        >>> script.text.splitlines()[-1]
        'touch /home/ubuntu/.ec2-cli-ready'
    """

    def build(
        self,
        profile: Profile,
        login_user: str,
        project_name: str | None = None,
        ssh_public_key: str | None = None,
        vcs_identity: VcsIdentity | None = None,
        *,
        package_manager: str = "apt",
    ) -> BootstrapScript:
        """Build the script.

        Raises:
            ValidationError: If any interpolated value is unsafe. Nothing is
                rendered in that case.
        """
        inputs = self._validate(
            profile, login_user, project_name, ssh_public_key, vcs_identity, package_manager
        )

        stages = [Stage("header", HEADER)]
        for name, fn in STAGES:
            text = resolve(fn(inputs))
            if text:
                stages.append(Stage(name, text))

        text = bootstrap(*(s.text for s in stages[1:]))
        logger.debug(f"Built bootstrap script: {len(text)} bytes, stages={[s.name for s in stages]}")
        return BootstrapScript(text=text, stages=tuple(stages))

    def _validate(
        self,
        profile: Profile,
        login_user: str,
        project_name: str | None,
        ssh_public_key: str | None,
        vcs_identity: VcsIdentity | None,
        package_manager: str,
    ) -> _Input:
        validate_username(login_user)
        if package_manager not in ops.INSTALL_COMMANDS:
            raise ValidationError(f"Unknown package manager: {package_manager}")
        if project_name is not None:
            validate_project_name(project_name)
        if ssh_public_key is not None:
            ssh_public_key = validate_ssh_public_key(ssh_public_key)
        if vcs_identity is not None:
            if vcs_identity.name:
                validate_identity_value(vcs_identity.name, "git user.name")
            if vcs_identity.email:
                validate_identity_value(vcs_identity.email, "git user.email")

        for pkg in profile.system_packages:
            validate_shell_safe(pkg, "system package name")
        tc = profile.toolchain
        if tc.enabled:
            validate_shell_safe(tc.channel, "toolchain channel")
            for component in tc.components:
                validate_shell_safe(component, "toolchain component")
            for pkg in tc.packages:
                validate_shell_safe(pkg, "toolchain package name")

        environment = _validated_environment(profile.environment)

        return _Input(
            profile=profile,
            user=login_user,
            package_manager=package_manager,
            project=project_name,
            ssh_key=ssh_public_key,
            identity=vcs_identity,
            environment=environment,
        )


def _validated_environment(env: Mapping[str, str]) -> tuple[tuple[str, str], ...]:
    for key, value in env.items():
        validate_env_key(key)
        validate_shell_safe(value, f"environment variable value for {key!r}")
    return tuple(sorted(env.items()))


__all__ = [
    "STAGES",
    "BootstrapScript",
    "BootstrapScriptBuilder",
    "Stage",
    "VcsIdentity",
]
