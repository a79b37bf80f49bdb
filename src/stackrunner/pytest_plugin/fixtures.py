from __future__ import annotations

from collections.abc import Callable, Generator

import allure
import pytest

from ..config.loader import load_settings
from ..config.models import Settings
from ..emulator.lifecycle import LocalStackManager
from ..services import Service
from ..utils.logging import bind_context, clear_contextvars, get_logger, setup_logging
from .hooks import SETTINGS_KEY

_logger = get_logger(__name__)


@pytest.fixture(scope="session")
def stackrunner_settings(pytestconfig: pytest.Config) -> Settings:
    """
    Load emulator configuration once per session.

    Supports overriding the configuration file path and the startup timeout
    via command-line options:
      --stackrunner-config <path>
      --localstack-startup-timeout <seconds>
    """
    with allure.step("Load LocalStack configuration"):
        cfg_path: str | None = pytestconfig.getoption("--stackrunner-config")
        s: Settings = load_settings(cfg_path)

        override_timeout: float | None = pytestconfig.getoption("--localstack-startup-timeout")
        if override_timeout is not None:
            s.startup_timeout = override_timeout

        pytestconfig.stash[SETTINGS_KEY] = s
        return s


@pytest.fixture(scope="session")
def localstack(stackrunner_settings: Settings) -> Generator[LocalStackManager, None, None]:
    """
    Own the LocalStackManager for the whole pytest session.

    The emulator is started lazily, by the first test that is marked with
    `localstack` or asks for an endpoint, and stopped when the session ends.
    """
    manager = LocalStackManager(stackrunner_settings)
    try:
        yield manager
    finally:
        if manager.process is not None:
            with allure.step("Stop LocalStack"):
                manager.teardown()
                _logger.info("LocalStack stopped")


@pytest.fixture(autouse=True)
def _localstack_for_marked_tests(request: pytest.FixtureRequest) -> None:
    """Start LocalStack before any test carrying the `localstack` marker."""
    if request.node.get_closest_marker("localstack") is None:
        return
    manager: LocalStackManager = request.getfixturevalue("localstack")
    bind_context(install_dir=manager.settings.install_dir)
    if manager.ready:
        return
    with allure.step("Start LocalStack"):
        manager.ensure_running()


@pytest.fixture
def localstack_endpoint(localstack: LocalStackManager) -> Callable[[str | Service], str]:
    """
    Resolve a service name to its base URL, starting LocalStack if needed.

    Usage:
        def test_bucket(localstack_endpoint):
            s3 = boto3.client("s3", endpoint_url=localstack_endpoint("s3"))
    """
    bind_context(install_dir=localstack.settings.install_dir)
    return localstack.endpoint


# ----- Logging: initialization and context -----
@pytest.fixture(scope="session", autouse=True)
def _setup_structlog() -> None:
    """One-time structured logging setup for the entire test session."""
    setup_logging()


@pytest.fixture(autouse=True)
def _bind_test_logging_context(request: pytest.FixtureRequest) -> Generator[None, None, None]:
    """
    Bind the test name to the logging context.

    Updates contextvars at the start of each test and clears them afterwards.
    """
    bind_context(test_name=request.node.name)
    try:
        yield
    finally:
        clear_contextvars()
