"""
Post-install command adapter: run renew commands through the shell.

Implements the CommandRunner port. Commands run one after another via
`sh -c`; stdout and stderr are merged and logged line by line. The first
command that cannot be started or exits non-zero stops the sequence.
Commands that already ran are not undone.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence

import structlog
from structlog.typing import FilteringBoundLogger

from certdist.result import ErrorCode, Result

_log = structlog.get_logger()


class ShellCommandRunner:
    """Implements the CommandRunner port."""

    def __init__(self, shell: str = "sh", log: FilteringBoundLogger | None = None) -> None:
        self._shell = shell
        self._log = log or _log

    def run(self, commands: Sequence[str]) -> Result[int]:
        """
        Execute commands in order.

        Returns Result[int] with the number of commands run, or
        Failure(COMMAND_ERROR) naming the first failing command.
        """
        executed = 0
        for command in commands:
            result = self._run_one(command)
            if result.is_failure():
                return Result.failure_from(result.error())
            executed += 1
        return Result.success(executed)

    def _run_one(self, command: str) -> Result[str]:
        self._log.info("command.executing", command=command)
        return (
            Result.from_computation(
                lambda: subprocess.run(
                    [self._shell, "-c", command],
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    errors="replace",
                    check=False,
                ),
                ErrorCode.COMMAND_ERROR,
                f"Failed to start command {command!r}",
            )
            .peek(lambda completed: self._log_output(command, completed.stdout))
            .flat_map(lambda completed: self._check_exit(command, completed.returncode))
            .peek(lambda _: self._log.info("command.succeeded", command=command))
        )

    @staticmethod
    def _check_exit(command: str, returncode: int) -> Result[str]:
        if returncode == 0:
            return Result.success(command)
        return Result.failure(
            ErrorCode.COMMAND_ERROR,
            f"Command {command!r} exited with status {returncode}",
        )

    def _log_output(self, command: str, output: str) -> None:
        for line in output.splitlines():
            if line.strip():
                self._log.info("command.output", command=command, line=line)
