from __future__ import annotations

import subprocess
from collections.abc import Sequence


class StackRunnerError(Exception):
    """Base class for all errors raised by stackrunner."""


class CommandFailed(StackRunnerError, subprocess.CalledProcessError):
    """
    A synchronous command exited with a non-zero code.

    Still a subprocess.CalledProcessError, so code that catches the standard
    exception keeps working. The message carries the command and everything
    it printed, which is usually enough to diagnose a broken install.
    """

    def __init__(
        self,
        command: str | Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        subprocess.CalledProcessError.__init__(self, returncode, command, stdout, stderr)

    @property
    def command(self) -> str:
        if isinstance(self.cmd, str):
            return self.cmd
        return " ".join(str(a) for a in self.cmd)

    def __str__(self) -> str:
        return (
            f"Failed to run command '{self.command}', return code {self.returncode}."
            f"\nSTDOUT: {self.stdout or ''}\nSTDERR: {self.stderr or ''}"
        )


class InstallationFailed(StackRunnerError):
    """Cloning or building the emulator failed. The underlying error is in __cause__."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message if cause is None else f"{message}: {cause}")
        self.cause = cause


class StartupFailed(StackRunnerError):
    """The emulator did not reach the ready state."""

    def __init__(self, reason: str, cause: BaseException | None = None) -> None:
        super().__init__(reason if cause is None else f"{reason}: {cause}")
        self.reason = reason
        self.cause = cause


class StartupTimeout(StartupFailed, TimeoutError):
    """The ready marker was not observed within the configured timeout."""


class EndpointNotFound(StackRunnerError, LookupError):
    """The configuration artifact has no port assignment for the service."""

    def __init__(self, service: str) -> None:
        super().__init__(f"No port configured for service '{service}'")
        self.service = service


class NotReady(StackRunnerError, RuntimeError):
    """An endpoint was requested before the emulator became ready."""


__all__ = [
    "StackRunnerError",
    "CommandFailed",
    "InstallationFailed",
    "StartupFailed",
    "StartupTimeout",
    "EndpointNotFound",
    "NotReady",
]
