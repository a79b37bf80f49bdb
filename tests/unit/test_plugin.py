from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def fake_install(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the plugin at a pre-installed fake emulator through STACKRUNNER_* variables."""
    install = tmp_path / "localstack_install_dir"
    (install / "localstack").mkdir(parents=True)
    (install / "localstack" / "constants.py").write_text(
        "DEFAULT_PORT_S3 = 4572\nDEFAULT_PORT_SQS = 4576\n", encoding="utf-8"
    )
    monkeypatch.delenv("STACKRUNNER_CONFIG", raising=False)
    monkeypatch.setenv("STACKRUNNER_INSTALL_DIR", str(install))
    monkeypatch.setenv("STACKRUNNER_START_COMMAND", "echo Ready.; exec sleep 60")
    monkeypatch.setenv("STACKRUNNER_OUTPUT_LOG", str(tmp_path / "localstack.log"))
    monkeypatch.setenv("STACKRUNNER_STARTUP_TIMEOUT", "10")
    monkeypatch.setenv("STACKRUNNER_KILL_TIMEOUT", "1")
    return install


def test_marker_and_endpoint_fixture(pytester: pytest.Pytester, fake_install: Path) -> None:
    """A `localstack`-marked test finds the emulator ready; endpoints resolve through the fixture."""
    pytester.makepyfile(
        """
        import pytest
        from structlog.contextvars import get_contextvars

        @pytest.mark.localstack
        class TestWithLocalStack:
            def test_ready(self, localstack):
                assert localstack.ready
                assert get_contextvars()["install_dir"] == localstack.settings.install_dir

            def test_same_process(self, localstack):
                assert localstack.process.running

        def test_endpoint(localstack_endpoint):
            assert localstack_endpoint("sqs") == "http://localhost:4576/"
            assert localstack_endpoint("S3") == "http://localhost:4572/"

        def test_settings_from_environment(stackrunner_settings):
            assert stackrunner_settings.startup_timeout == 10
        """
    )

    result = pytester.runpytest("-p", "no:cacheprovider")

    result.assert_outcomes(passed=4)


def test_startup_timeout_option(pytester: pytest.Pytester, fake_install: Path) -> None:
    pytester.makepyfile(
        """
        def test_timeout(stackrunner_settings):
            assert stackrunner_settings.startup_timeout == 2.5
        """
    )

    result = pytester.runpytest("-p", "no:cacheprovider", "--localstack-startup-timeout", "2.5")

    result.assert_outcomes(passed=1)


def test_failed_start_errors_marked_tests(
    pytester: pytest.Pytester, fake_install: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """An emulator that dies before readiness turns marked tests into setup errors."""
    monkeypatch.setenv("STACKRUNNER_START_COMMAND", "echo 'no luck'; exit 1")
    pytester.makepyfile(
        """
        import pytest

        @pytest.mark.localstack
        def test_needs_localstack():
            pass

        def test_plain():
            pass
        """
    )

    result = pytester.runpytest("-p", "no:cacheprovider")

    result.assert_outcomes(passed=1, errors=1)
    result.stdout.fnmatch_lines(["*process exited before signaling readiness*"])
