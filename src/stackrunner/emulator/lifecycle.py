from __future__ import annotations

import contextlib
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import IO

from ..config.models import Settings
from ..errors import (
    CommandFailed,
    InstallationFailed,
    NotReady,
    StartupFailed,
    StartupTimeout,
)
from ..services import Service
from ..utils.cli import ProcessHandle, spawn_cmd
from ..utils.logging import get_logger
from .base import EmulatorManager
from .endpoints import ServiceEndpoints
from .installer import Installer


class LifecycleState(str, Enum):
    """Where a LocalStackManager is in its single start-up run."""

    NOT_STARTED = "not_started"
    INSTALLING = "installing"
    STARTING = "starting"
    WAITING_READY = "waiting_ready"
    READY = "ready"
    FAILED = "failed"
    TORN_DOWN = "torn_down"


@dataclass(slots=True, frozen=True)
class _Registry:
    """Everything captured from a successful start, published as one reference."""

    process: ProcessHandle
    config_text: str
    endpoints: ServiceEndpoints


class _OutputPump:
    """
    Reads the emulator's stdout in a daemon thread.

    Flags readiness when the marker line shows up and keeps draining the pipe
    afterwards so the emulator never blocks on a full buffer. Every line is
    mirrored into `log_path` (if set) and the debug log.
    """

    def __init__(
        self,
        stream: IO[str],
        marker: str,
        log_path: Path | None = None,
        pid: int | None = None,
    ) -> None:
        self._stream = stream
        self._marker = marker
        self._log_path = log_path
        self._pid = pid
        self._log = get_logger(__name__)
        self.ready = threading.Event()
        self.closed = threading.Event()
        self._changed = threading.Event()
        self._thread = threading.Thread(target=self._run, name="localstack-output", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def wait(self, timeout: float | None = None) -> bool | None:
        """True once ready, False if the stream closed first, None on timeout."""
        if not self._changed.wait(timeout):
            return None
        return self.ready.is_set()

    def _open_sink(self) -> IO[str] | None:
        if self._log_path is None:
            return None
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            # One file per run: output of earlier sessions is discarded
            return self._log_path.open("w", encoding="utf-8")
        except OSError as e:
            self._log.warning(
                "Cannot write emulator output log", path=str(self._log_path), error=str(e)
            )
            return None

    def _mirror(self, sink: IO[str] | None, line: str) -> IO[str] | None:
        """Write one line to the log copy; on failure close it and stop mirroring."""
        if sink is None:
            return None
        try:
            sink.write(line + "\n")
            sink.flush()
            return sink
        except OSError as e:
            self._log.warning(
                "Emulator output log is no longer written",
                path=str(self._log_path),
                error=str(e),
            )
            self._close_sink(sink)
            return None

    @staticmethod
    def _close_sink(sink: IO[str] | None) -> None:
        if sink is None:
            return
        with contextlib.suppress(OSError):
            sink.close()

    def _run(self) -> None:
        sink = self._open_sink()
        try:
            for raw in self._stream:
                line = raw.rstrip("\r\n")
                sink = self._mirror(sink, line)
                self._log.debug("emulator output", action="emulator_output", pid=self._pid, line=line)
                if line == self._marker and not self.ready.is_set():
                    self.ready.set()
                    self._changed.set()
        except (OSError, ValueError) as e:
            # pipe torn down underneath us by a kill
            self._log.debug("Emulator output stream closed", pid=self._pid, error=str(e))
        finally:
            self.closed.set()
            self._changed.set()
            self._close_sink(sink)


class LocalStackManager(EmulatorManager):
    """
    Installs, starts, and stops one LocalStack instance for a test run.

    ensure_running() is the only entry point callers need: the first call
    installs the emulator if needed, spawns it, waits for the ready marker, and
    captures the port table; concurrent callers block on the same lock and then
    see the published result. A run gets exactly one start attempt: after a
    failure or teardown the manager never spawns again.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        installer: Installer | None = None,
        spawner: Callable[..., ProcessHandle] = spawn_cmd,
    ) -> None:
        self.settings = settings or Settings()
        self.installer = installer or Installer(self.settings)
        self._spawn = spawner
        self._lock = threading.RLock()
        # Guards state transitions; teardown() takes only this one
        self._state_lock = threading.RLock()
        self._state = LifecycleState.NOT_STARTED
        self._registry: _Registry | None = None
        self._process: ProcessHandle | None = None
        self._pump: _OutputPump | None = None
        self._failure: Exception | None = None
        self._log = get_logger(__name__)

    # ------------------------
    # State
    # ------------------------
    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is LifecycleState.READY

    @property
    def process(self) -> ProcessHandle | None:
        """The process spawned by this manager, published or not."""
        return self._process

    @property
    def config_text(self) -> str | None:
        registry = self._registry
        return registry.config_text if registry is not None else None

    def _set_state(self, state: LifecycleState) -> None:
        """Move to `state`. TORN_DOWN is final and is never left."""
        with self._state_lock:
            if self._state is LifecycleState.TORN_DOWN or self._state is state:
                return
            self._log.debug(
                "Lifecycle transition",
                action="lifecycle_state",
                previous=self._state.value,
                state=state.value,
            )
            self._state = state

    def _ensure_not_torn_down(self) -> None:
        if self._state is LifecycleState.TORN_DOWN:
            raise StartupFailed("emulator was torn down during startup")

    # ------------------------
    # Public API
    # ------------------------
    def ensure_running(self) -> None:
        """
        Make sure the emulator is up and its endpoints are known.

        Raises:
            InstallationFailed: Clone or build failed.
            StartupFailed: The emulator did not become ready, its config could
                not be read, or a previous attempt in this run already failed.
            StartupTimeout: The ready marker did not appear within startup_timeout.
        """
        if self._state is LifecycleState.READY:
            return

        with self._lock:
            if self._state is LifecycleState.READY:
                return
            if self._state is LifecycleState.FAILED:
                raise StartupFailed(
                    "emulator startup already failed in this run", self._failure
                ) from self._failure
            if self._state is LifecycleState.TORN_DOWN:
                raise StartupFailed("emulator has been torn down and is not restarted in this run")

            try:
                self._set_state(LifecycleState.INSTALLING)
                self.installer.ensure_installed()
                self.start()
                self.wait_until_ready(self.settings.startup_timeout)
                self._publish()
            except (InstallationFailed, StartupFailed) as e:
                self._fail(e)
                raise
            except (CommandFailed, OSError) as e:
                failure = StartupFailed("failed to start emulator", e)
                self._fail(failure)
                raise failure from e

    def start(self) -> None:
        """Spawn the emulator's start command inside the install directory."""
        with self._lock:
            if self._process is not None:
                return
            self._set_state(LifecycleState.STARTING)
            self._ensure_not_torn_down()
            self._log.info(
                "Starting LocalStack infrastructure",
                action="emulator_start",
                cmd=self.settings.start_command,
                install_dir=self.settings.install_dir,
            )
            handle = self._spawn(
                self.settings.start_command,
                cwd=self.settings.install_dir,
                extra_path=self.settings.extra_path,
                kill_timeout=self.settings.kill_timeout,
            )
            with self._state_lock:
                torn_down = self._state is LifecycleState.TORN_DOWN
                self._process = handle
            if torn_down:
                handle.kill()
                raise StartupFailed("emulator was torn down during startup")
            log_path = Path(self.settings.output_log) if self.settings.output_log else None
            self._pump = _OutputPump(handle.stdout, self.settings.ready_marker, log_path, handle.pid)
            self._pump.start()

    def wait_until_ready(self, timeout: float | None = None) -> None:
        """
        Block until the ready marker is printed by the emulator.

        Raises:
            StartupFailed: The output stream closed before the marker appeared.
            StartupTimeout: The marker did not appear within `timeout` seconds.
        """
        with self._lock:
            pump = self._pump
            if pump is None:
                raise NotReady("emulator process has not been started")
            self._set_state(LifecycleState.WAITING_READY)
            self._log.info(
                "Waiting for infrastructure to be spun up",
                action="emulator_wait_ready",
                marker=self.settings.ready_marker,
                timeout=timeout,
            )
            outcome = pump.wait(timeout)
            if outcome is None:
                raise StartupTimeout(
                    f"ready marker {self.settings.ready_marker!r} not seen within {timeout} seconds"
                )
            if outcome is False:
                raise StartupFailed("process exited before signaling readiness")
            self._log.info("Infrastructure signalled readiness", action="emulator_ready_marker")

    def stop(self) -> None:
        self.teardown()

    def teardown(self) -> None:
        """
        Kill the emulator if this manager started one.

        Safe before startup, after a failed startup, and when called repeatedly.
        Once a start has begun, teardown is final: a startup still in progress
        kills what it spawned and fails instead of becoming READY.
        """
        with self._state_lock:
            proc = self._process
            if proc is None and self._state is LifecycleState.NOT_STARTED:
                self._log.debug("Nothing to tear down", action="emulator_teardown_skip")
                return
            self._set_state(LifecycleState.TORN_DOWN)
        if proc is None:
            return
        if not proc.killed:
            self._log.info("Stopping LocalStack infrastructure", action="emulator_stop", pid=proc.pid)
        proc.kill()
        if self._pump is not None:
            self._pump.join(timeout=self.settings.kill_timeout)

    def resolve(self, service: str | Service) -> str:
        """
        Base URL of `service` on the running emulator, without starting it.

        Raises:
            NotReady: The emulator is not in the READY state.
            EndpointNotFound: The config has no port for `service`.
        """
        registry = self._registry
        if registry is None or self._state is not LifecycleState.READY:
            name = getattr(service, "value", service)
            raise NotReady(f"endpoint for '{name}' requested before the emulator was ready")
        return registry.endpoints.resolve(service)

    def endpoint(self, service: str | Service) -> str:
        """Start the emulator if needed and return the base URL of `service`."""
        self.ensure_running()
        return self.resolve(service)

    def endpoints(self) -> dict[str, str]:
        """Start the emulator if needed and return the base URL of every configured service."""
        self.ensure_running()
        registry = self._registry
        if registry is None or self._state is not LifecycleState.READY:
            raise NotReady("endpoints requested before the emulator was ready")
        return registry.endpoints.as_urls()

    # ------------------------
    # Service endpoints
    # ------------------------
    def endpoint_s3(self) -> str:
        return self.endpoint(Service.S3)

    def endpoint_kinesis(self) -> str:
        return self.endpoint(Service.KINESIS)

    def endpoint_lambda(self) -> str:
        return self.endpoint(Service.LAMBDA)

    def endpoint_dynamodb(self) -> str:
        return self.endpoint(Service.DYNAMODB)

    def endpoint_dynamodb_streams(self) -> str:
        return self.endpoint(Service.DYNAMODB_STREAMS)

    def endpoint_apigateway(self) -> str:
        return self.endpoint(Service.API_GATEWAY)

    def endpoint_elasticsearch(self) -> str:
        return self.endpoint(Service.ELASTICSEARCH)

    def endpoint_firehose(self) -> str:
        return self.endpoint(Service.FIREHOSE)

    def endpoint_sns(self) -> str:
        return self.endpoint(Service.SNS)

    def endpoint_sqs(self) -> str:
        return self.endpoint(Service.SQS)

    def endpoint_redshift(self) -> str:
        return self.endpoint(Service.REDSHIFT)

    # ------------------------
    # Helper methods
    # ------------------------
    def _publish(self) -> None:
        """Read the config artifact and publish (process, config, endpoints) at once."""
        proc = self._process
        if proc is None:
            raise StartupFailed("emulator process has not been started")
        path = self.settings.config_path
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StartupFailed(f"could not read emulator config {path}", e) from e

        endpoints = ServiceEndpoints.from_config(text, host=self.settings.host)
        with self._state_lock:
            self._ensure_not_torn_down()
            self._registry = _Registry(process=proc, config_text=text, endpoints=endpoints)
            self._set_state(LifecycleState.READY)
        self._log.info(
            "LocalStack is ready",
            action="emulator_ready",
            pid=proc.pid,
            ports=dict(endpoints.ports),
        )

    def _fail(self, error: Exception) -> None:
        torn_down = self._state is LifecycleState.TORN_DOWN
        self._set_state(LifecycleState.FAILED)
        self._failure = error
        self._log.error("LocalStack startup failed", action="emulator_start_failed", error=str(error))

        proc = self._process
        if proc is None:
            return
        if torn_down or isinstance(error, StartupTimeout) or self.settings.kill_on_startup_failure:
            proc.kill()
        else:
            self._log.warning(
                "Leaving emulator running for inspection; teardown() or interpreter exit kills it",
                action="emulator_left_running",
                pid=proc.pid,
            )

    def __enter__(self) -> LocalStackManager:
        self.ensure_running()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.teardown()

