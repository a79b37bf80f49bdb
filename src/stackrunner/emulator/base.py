from __future__ import annotations

from abc import ABC, abstractmethod


class EmulatorManager(ABC):
    """
    Abstract base class for emulator managers.

    Defines the interface to start, stop, and wait for readiness of a
    background emulator process.
    """

    @abstractmethod
    def start(self) -> None:
        """
        Start the emulator process.

        Must return as soon as the process is spawned; readiness is awaited
        separately by wait_until_ready().
        """
        ...

    @abstractmethod
    def stop(self) -> None:
        """
        Stop the running emulator instance.

        Must be safe to call when nothing is running and when called repeatedly.
        """
        ...

    @abstractmethod
    def wait_until_ready(self, timeout: float | None = None) -> None:
        """
        Wait until the emulator is fully ready for use.

        Args:
            timeout: Maximum wait time in seconds, None to wait without limit.
        """
        ...
