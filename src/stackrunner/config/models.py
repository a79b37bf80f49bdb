from __future__ import annotations

import os
import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from stackrunner.utils.cli import DEFAULT_EXTRA_PATH


def _default_install_dir() -> str:
    return os.path.join(tempfile.gettempdir(), "localstack_install_dir")


class Settings(BaseSettings):
    """
    Main configuration for the emulator lifecycle.

    Loads values from the following sources:
    - Environment variables (with prefix STACKRUNNER_)
    - Initialization values (e.g., from YAML)
    - .env file
    - Secret files
    """

    model_config = SettingsConfigDict(env_prefix="STACKRUNNER_", env_nested_delimiter="__")

    install_dir: str = Field(default_factory=_default_install_dir)  # Local checkout/build cache
    repo_url: str = "https://github.com/atlassian/localstack"  # Where the emulator is cloned from
    install_command: str = "make install"  # Build step, run inside install_dir
    start_command: str = "exec make infra"  # Long-running start step, run inside install_dir
    ready_marker: str = "Ready."  # Exact stdout line signalling readiness
    config_file: str = "localstack/constants.py"  # Port assignments, relative to install_dir
    extra_path: str | None = DEFAULT_EXTRA_PATH  # Prepended to PATH for every command
    host: str = "localhost"  # Host used when rendering endpoint URLs
    startup_timeout: float | None = 600.0  # Seconds to wait for the ready marker (None = forever)
    kill_timeout: float = 5.0  # Grace period between SIGTERM and SIGKILL
    kill_on_startup_failure: bool = True  # Kill the emulator if startup fails after spawning
    output_log: str | None = "artifacts/logs/localstack.log"  # Emulator output mirror

    @property
    def install_path(self) -> Path:
        return Path(self.install_dir)

    @property
    def config_path(self) -> Path:
        return self.install_path / self.config_file

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,  # type: type[BaseSettings]
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Configure the order of configuration sources.

        Loading priority:
        1. Environment variables
        2. Initialization values (e.g., from YAML)
        3. .env file
        4. Secret files
        """
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)
