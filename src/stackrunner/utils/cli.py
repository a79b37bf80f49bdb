from __future__ import annotations

import atexit
import os
import shlex
import signal
import subprocess
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import IO

from ..errors import CommandFailed
from .logging import get_logger

# Prepended to PATH for every command so tools installed there (make, git, pip)
# are found even when the test runner starts with a minimal environment.
DEFAULT_EXTRA_PATH = "/usr/local/bin/"

_log = get_logger(__name__)


class Completed:
    """
    Wrapper around subprocess.CompletedProcess that decodes stdout and stderr into strings.
    """

    def __init__(self, proc: subprocess.CompletedProcess):
        """
        Initialize a Completed object based on subprocess.CompletedProcess.

        Args:
            proc (subprocess.CompletedProcess): The completed process instance.
        """
        self.args = proc.args
        self.returncode = proc.returncode
        self.stdout = (
            proc.stdout.decode(errors="replace")
            if isinstance(proc.stdout, bytes | bytearray)
            else (proc.stdout or "")
        )
        self.stderr = (
            proc.stderr.decode(errors="replace")
            if isinstance(proc.stderr, bytes | bytearray)
            else (proc.stderr or "")
        )


def shell_args(command: str | Sequence[str]) -> list[str]:
    """
    Turn a command into an argv list.

    A plain string is a shell command line and is run through bash; a sequence
    is executed as-is.
    """
    if isinstance(command, str):
        return ["/bin/bash", "-c", command]
    return [str(a) for a in command]


def command_env(extra_path: str | None = DEFAULT_EXTRA_PATH) -> dict[str, str]:
    """Return a copy of the current environment with `extra_path` prepended to PATH."""
    env = os.environ.copy()
    if extra_path:
        current = env.get("PATH", "")
        env["PATH"] = f"{extra_path}{os.pathsep}{current}" if current else extra_path
    return env


def _display(command: str | Sequence[str]) -> str:
    return command if isinstance(command, str) else shlex.join(str(a) for a in command)


def run_cmd(
    command: str | Sequence[str],
    *,
    check: bool = True,
    cwd: str | Path | None = None,
    timeout: float | None = None,
    extra_path: str | None = DEFAULT_EXTRA_PATH,
) -> Completed:
    """
    Execute a command and wait for it to finish.

    Args:
        command: Shell command line (run via bash) or argv sequence.
        check: If True, raise CommandFailed on a nonzero exit code.
        cwd: Working directory for the command.
        timeout: Optional timeout in seconds for waiting for completion.
        extra_path: Directory prepended to PATH for the child process.

    Returns:
        Completed: Result with stdout/stderr as strings.

    Raises:
        CommandFailed: If `check=True` and the process exits with a nonzero code.
        subprocess.TimeoutExpired: If the command outlives `timeout`.
    """
    _log.debug("Running command", action="cmd_run", cmd=_display(command), cwd=str(cwd or ""))
    proc = subprocess.run(
        shell_args(command),
        capture_output=True,
        timeout=timeout,
        check=False,
        cwd=cwd,
        env=command_env(extra_path),
    )
    result = Completed(proc)

    if check and result.returncode != 0:
        _log.error(
            "Command failed",
            action="cmd_failed",
            cmd=_display(command),
            returncode=result.returncode,
        )
        raise CommandFailed(command, result.returncode, result.stdout, result.stderr)

    return result


class ProcessHandle:
    """
    A background process started by spawn_cmd.

    The process runs in its own session so kill() can signal the whole group
    (a `make` target and everything it forked). kill() runs at most once, no
    matter how many times it is called or whether the interpreter exit hook
    gets there first.
    """

    def __init__(self, proc: subprocess.Popen, command: str, kill_timeout: float = 5.0) -> None:
        self._proc = proc
        self.command = command
        self.kill_timeout = kill_timeout
        self._lock = threading.Lock()
        self._killed = False
        atexit.register(self._kill_at_exit)

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def stdout(self) -> IO[str]:
        assert self._proc.stdout is not None, "process was started without a stdout pipe"
        return self._proc.stdout

    @property
    def running(self) -> bool:
        return self._proc.poll() is None

    @property
    def killed(self) -> bool:
        return self._killed

    def poll(self) -> int | None:
        return self._proc.poll()

    def wait(self, timeout: float | None = None) -> int:
        return self._proc.wait(timeout=timeout)

    def kill(self) -> None:
        """Terminate the process group: SIGTERM first, SIGKILL after kill_timeout."""
        atexit.unregister(self._kill_at_exit)
        self._terminate()

    def _kill_at_exit(self) -> None:
        if not self._killed and self._proc.poll() is None:
            _log.warning(
                "Killing background process left running at interpreter exit",
                action="process_exit_hook",
                pid=self.pid,
            )
        self._terminate()

    def _terminate(self) -> None:
        with self._lock:
            if self._killed:
                return
            self._killed = True

        if self._proc.poll() is not None:
            return

        _log.info("Stopping background process", action="process_kill", pid=self.pid)
        if not self._signal(signal.SIGTERM):
            return
        try:
            self._proc.wait(timeout=self.kill_timeout)
            return
        except subprocess.TimeoutExpired:
            _log.warning(
                "Process did not exit in time, sending SIGKILL",
                action="process_force_kill",
                pid=self.pid,
                timeout=self.kill_timeout,
            )
        if self._signal(signal.SIGKILL):
            try:
                self._proc.wait(timeout=self.kill_timeout)
            except subprocess.TimeoutExpired:
                _log.error("Process survived SIGKILL", action="process_kill_failed", pid=self.pid)

    def _signal(self, sig: signal.Signals) -> bool:
        try:
            os.killpg(self._proc.pid, sig)
        except ProcessLookupError:
            # already gone
            return False
        except PermissionError:
            # group not ours to signal, fall back to the leader only
            try:
                self._proc.send_signal(sig)
            except ProcessLookupError:
                return False
        return True


def spawn_cmd(
    command: str | Sequence[str],
    *,
    cwd: str | Path | None = None,
    extra_path: str | None = DEFAULT_EXTRA_PATH,
    kill_timeout: float = 5.0,
) -> ProcessHandle:
    """
    Start a command in the background and return immediately.

    stderr is merged into stdout, which is exposed as a line-buffered text
    stream. The returned handle registers an interpreter exit hook that kills
    the process unless kill() has been called explicitly.
    """
    display = _display(command)
    proc = subprocess.Popen(
        shell_args(command),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
        cwd=cwd,
        env=command_env(extra_path),
        text=True,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
        start_new_session=True,
    )
    _log.info("Background process started", action="process_spawn", cmd=display, pid=proc.pid)
    return ProcessHandle(proc, display, kill_timeout=kill_timeout)
