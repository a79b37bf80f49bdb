from __future__ import annotations

import shutil
from collections.abc import Callable
from typing import Any

from ..config.models import Settings
from ..errors import CommandFailed, InstallationFailed
from ..utils.cli import run_cmd
from ..utils.logging import get_logger


class Installer:
    """
    Makes sure a local copy of the emulator exists at `settings.install_dir`.

    The directory itself is the install marker: if it exists, the emulator is
    considered installed and nothing is checked further. A failed clone or
    build removes the directory again so the next run starts from scratch.
    """

    def __init__(self, settings: Settings, runner: Callable[..., Any] = run_cmd) -> None:
        """
        Args:
            settings: Emulator settings (install_dir, repo_url, install_command, extra_path).
            runner: Synchronous command executor, `run_cmd` unless replaced in tests.
        """
        self.settings = settings
        self._run = runner
        self._log = get_logger(__name__)

    @property
    def installed(self) -> bool:
        return self.settings.install_path.exists()

    def ensure_installed(self) -> None:
        """
        Clone and build the emulator unless the install directory already exists.

        Raises:
            InstallationFailed: If cloning or building fails.
        """
        install_dir = self.settings.install_path
        if self.installed:
            self._log.debug(
                "Emulator already installed", action="install_skip", install_dir=str(install_dir)
            )
            return

        self._log.info(
            "Installing LocalStack to temporary directory (this might take a while)",
            action="install_start",
            install_dir=str(install_dir),
            repo=self.settings.repo_url,
        )
        try:
            self._run(
                ["git", "clone", self.settings.repo_url, str(install_dir)],
                extra_path=self.settings.extra_path,
            )
            self._run(
                self.settings.install_command,
                cwd=str(install_dir),
                extra_path=self.settings.extra_path,
            )
        except (CommandFailed, OSError) as e:
            self._log.error(
                "Emulator installation failed",
                action="install_failed",
                install_dir=str(install_dir),
                error=str(e),
            )
            shutil.rmtree(install_dir, ignore_errors=True)
            raise InstallationFailed(f"Failed to install emulator into {install_dir}", e) from e

        self._log.info("Emulator installed", action="install_done", install_dir=str(install_dir))
