from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from stackrunner.config.loader import load_settings
from stackrunner.config.models import Settings


def test_load_settings_yaml_and_env_override(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """
    Settings are loaded from YAML and environment variables take precedence.

    Steps:
    1. Create a temporary YAML configuration file.
    2. Override the start command and timeout via environment variables.
    3. Verify that environment variables win over YAML and YAML over defaults.
    """
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text(
        dedent(
            """
            install_dir: /opt/localstack
            start_command: exec make infra
            startup_timeout: 120
            kill_on_startup_failure: false
            """
        ),
        encoding="utf-8",
    )

    monkeypatch.setenv("STACKRUNNER_START_COMMAND", "exec localstack start")
    monkeypatch.setenv("STACKRUNNER_STARTUP_TIMEOUT", "30")

    s: Settings = load_settings(str(cfg))

    assert s.start_command == "exec localstack start"  # env variable overrides YAML value
    assert s.startup_timeout == 30
    assert s.install_dir == "/opt/localstack"  # comes from YAML
    assert s.kill_on_startup_failure is False
    assert s.config_path == Path("/opt/localstack/localstack/constants.py")
    assert s.ready_marker == "Ready."  # default


def test_missing_file_gives_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STACKRUNNER_CONFIG", raising=False)
    s = load_settings(str(tmp_path / "absent.yaml"))

    assert s.install_path.name == "localstack_install_dir"
    assert s.repo_url == "https://github.com/atlassian/localstack"
    assert s.install_command == "make install"
    assert s.start_command == "exec make infra"
    assert s.extra_path == "/usr/local/bin/"
    assert s.kill_on_startup_failure is True


def test_config_path_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """STACKRUNNER_CONFIG points load_settings() at a file when no path is given."""
    cfg = tmp_path / "env.yaml"
    cfg.write_text("host: 127.0.0.1\n", encoding="utf-8")
    monkeypatch.setenv("STACKRUNNER_CONFIG", str(cfg))

    assert load_settings().host == "127.0.0.1"


def test_empty_yaml_is_ignored(tmp_path: Path) -> None:
    cfg = tmp_path / "empty.yaml"
    cfg.write_text("", encoding="utf-8")
    assert load_settings(str(cfg)).host == "localhost"
