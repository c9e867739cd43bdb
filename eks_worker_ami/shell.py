"""External command execution.

Steps drive apt, systemctl, snap and friends through a CommandRunner so
that every command is logged, optionally prefixed with sudo, and turned
into a CommandError on failure. In dry-run mode commands are logged and
recorded but not executed.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from collections.abc import Mapping, Sequence

from eks_worker_ami.errors import CommandError

logger = logging.getLogger(__name__)


class CommandRunner:
    """Run external commands for provisioning steps.

    Attributes:
        use_sudo: Prefix commands with sudo when not running as root.
        dry_run: Log commands instead of running them.
        history: Every command requested, in order, as a shell string.
    """

    def __init__(
        self,
        use_sudo: bool = True,
        dry_run: bool = False,
        env_override: Mapping[str, str] | None = None,
    ) -> None:
        self.use_sudo = use_sudo
        self.dry_run = dry_run
        self.env_override = dict(env_override) if env_override else {}
        self.history: list[str] = []

    def _needs_sudo(self) -> bool:
        return self.use_sudo and os.geteuid() != 0

    def compose(self, cmd: Sequence[str], sudo: bool = True) -> list[str]:
        """Return the argv that will actually be executed."""
        argv = list(cmd)
        if sudo and self._needs_sudo():
            argv = ["sudo", *argv]
        return argv

    def run(
        self,
        cmd: Sequence[str],
        *,
        sudo: bool = True,
        input: str | None = None,
        capture: bool = False,
        timeout: int | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run a command.

        Args:
            cmd: Command as list of strings.
            sudo: Whether the command needs root.
            input: Optional text passed on stdin.
            capture: Capture stdout/stderr instead of inheriting them.
            timeout: Timeout in seconds (None = no timeout).
            check: Raise CommandError on non-zero exit.

        Returns:
            Completed process. In dry-run mode a successful empty result.

        Raises:
            CommandError: If the command fails to start, times out, or
                exits non-zero while check is True.
        """
        argv = self.compose(cmd, sudo=sudo)
        cmd_str = shlex.join(argv)
        self.history.append(shlex.join(cmd))

        if self.dry_run:
            logger.info("[dry-run] %s", cmd_str)
            return subprocess.CompletedProcess(argv, 0, stdout="", stderr="")

        logger.info("Executing: %s", cmd_str)

        env: dict[str, str] | None = None
        if self.env_override:
            env = dict(os.environ)
            env.update(self.env_override)

        try:
            result = subprocess.run(
                argv,
                input=input,
                capture_output=capture,
                text=True,
                timeout=timeout,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(
                f"Command timed out after {timeout}s: {cmd_str}",
                exit_code=-1,
                code="command_timeout",
            ) from e
        except OSError as e:
            raise CommandError(
                f"Failed to execute {cmd_str}: {e}",
                code="execution_error",
            ) from e

        if check and result.returncode != 0:
            detail = f": {result.stderr.strip()}" if capture and result.stderr else ""
            raise CommandError(
                f"Command failed with exit code {result.returncode}: {cmd_str}{detail}",
                exit_code=result.returncode,
            )

        return result

    def output(self, cmd: Sequence[str], *, sudo: bool = False) -> str:
        """Run a command and return its stripped stdout."""
        result = self.run(cmd, sudo=sudo, capture=True)
        return (result.stdout or "").strip()

    @staticmethod
    def available(program: str) -> bool:
        """Return True if a program is on PATH."""
        return shutil.which(program) is not None


__all__ = ["CommandRunner"]
