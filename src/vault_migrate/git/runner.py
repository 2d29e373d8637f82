"""Synchronous runner for external version control command-line tools."""

import os
import subprocess
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from loguru import logger


class CommandError(Exception):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        args: Sequence[str] = (),
        returncode: Optional[int] = None,
        stderr: str = '',
    ):
        """Initialize command error.

        Args:
            message: Error message
            args: Command line that failed
            returncode: Process exit code
            stderr: Captured standard error
        """
        super().__init__(message)
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr


@dataclass
class CommandResult:
    """Result of a command execution."""

    lines: List[str] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def first_line(self) -> str:
        return self.lines[0] if self.lines else ''


class CommandRunner:
    """Runs one executable in a fixed working directory."""

    def __init__(
        self,
        executable: str,
        cwd: Optional[str] = None,
        timeout: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
        masked: Sequence[str] = (),
    ):
        """Initialize command runner.

        Args:
            executable: Program to run, e.g. ``git``
            cwd: Working directory for every invocation
            timeout: Seconds before a command is killed
            env: Extra environment variables
            masked: Secret values replaced by ``***`` in log output
        """
        self.executable = executable
        self.cwd = cwd
        self.timeout = timeout
        self.env = env
        self.masked = [m for m in masked if m]
        self.logger = logger.bind(component='CommandRunner')

    def run(self, args: Sequence[str], stdin: str = '') -> CommandResult:
        """Run the executable and wait for it to exit.

        Args:
            args: Arguments passed after the executable
            stdin: Text written to the process standard input

        Returns:
            Captured standard output lines and elapsed milliseconds

        Raises:
            CommandError: If the process cannot be started, times out or
                exits with a non-zero status
        """
        cmd = [self.executable, *args]
        printable = self._mask(' '.join(cmd))
        self.logger.debug(f'Running: {printable}')

        env = None
        if self.env:
            env = {**os.environ, **self.env}

        started = time.monotonic()
        try:
            process = subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                encoding='utf-8',
                errors='replace',
                cwd=self.cwd,
                env=env,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(
                f'Command timed out after {self.timeout} seconds: {printable}',
                args=cmd,
            ) from e
        except OSError as e:
            raise CommandError(f'Cannot run {printable}: {e}', args=cmd) from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        lines = process.stdout.splitlines()

        if process.stderr:
            self.logger.debug(f'stderr: {self._mask(process.stderr.strip())}')

        if process.returncode != 0:
            stderr = self._mask(process.stderr.strip())
            raise CommandError(
                f'Command failed with exit code {process.returncode}: {printable}'
                + (f': {stderr}' if stderr else ''),
                args=cmd,
                returncode=process.returncode,
                stderr=stderr,
            )

        return CommandResult(lines=lines, elapsed_ms=elapsed_ms)

    def _mask(self, text: str) -> str:
        for secret in self.masked:
            text = text.replace(secret, '***')
        return text
