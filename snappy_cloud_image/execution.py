"""External command execution.

This module handles:
- Running external tools (openstack, ubuntu-device-flash, qemu-img)
- Merging stderr into the captured output
- Enforcing command timeouts

Collaborators receive a runner through their constructor so tests can
substitute a fake without patching module state.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Sequence

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when an external command fails."""

    def __init__(
        self,
        message: str,
        command: Sequence[str] = (),
        exit_code: int | None = None,
        output: str = "",
        code: str = "command_failed",
    ) -> None:
        super().__init__(message)
        self.command = list(command)
        self.exit_code = exit_code
        self.output = output
        self.code = code


class SubprocessRunner:
    """Run commands with subprocess, without a shell.

    Args:
        timeout: Default timeout in seconds applied when a call does not
            pass its own (None = no timeout).
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def run(self, args: Sequence[str], timeout: float | None = None) -> str:
        """Execute a command and return its combined stdout/stderr.

        Args:
            args: Command and arguments.
            timeout: Per-call timeout overriding the runner default.

        Returns:
            Command output as text.

        Raises:
            CommandError: If the command exits non-zero, times out or
                cannot be started.
        """
        cmd = list(args)
        cmd_str = shlex.join(cmd)
        effective_timeout = timeout if timeout is not None else self.timeout
        logger.info("Executing: %s", cmd_str)

        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=effective_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(
                f"Command timed out after {effective_timeout} seconds: {cmd_str}",
                command=cmd,
                exit_code=-1,
                code="command_timeout",
            ) from e
        except OSError as e:
            raise CommandError(
                f"Failed to execute {cmd_str}: {e}",
                command=cmd,
                code="execution_error",
            ) from e

        output = result.stdout or ""
        if output:
            logger.debug(output)

        if result.returncode != 0:
            details = output.strip() or f"exit code {result.returncode}"
            raise CommandError(
                f"Command failed: {cmd_str}\n{details}",
                command=cmd,
                exit_code=result.returncode,
                output=output,
            )

        return output


__all__ = ["CommandError", "SubprocessRunner"]
