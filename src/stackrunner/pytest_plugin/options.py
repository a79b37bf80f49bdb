import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    """
    Registers custom command-line (CLI) options for pytest.

    Adds options to configure the emulator lifecycle:
      --stackrunner-config <path>          : Path to the YAML configuration file.
      --localstack-startup-timeout <sec>   : Override for settings.startup_timeout.

    These options are used by the session fixtures to build the LocalStackManager.
    """
    g = parser.getgroup("stackrunner")
    g.addoption(
        "--stackrunner-config",
        action="store",
        default=None,
        help="Path to YAML configuration file",
    )
    g.addoption(
        "--localstack-startup-timeout",
        action="store",
        type=float,
        default=None,
        help="Seconds to wait for LocalStack to print its ready marker",
    )
