from __future__ import annotations

import os
from typing import Any

import allure
import pytest

from ..config.models import Settings

# Session settings, shared between the fixtures and the reporting hook
SETTINGS_KEY = pytest.StashKey[Settings]()


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "localstack: start LocalStack (once per session) before the marked test runs",
    )


def pytest_runtest_makereport(item: Any, call: Any) -> None:
    """
    Pytest hook: called after each test phase (setup, call, teardown).

    When a LocalStack-backed test fails (including a failed emulator start in
    setup), attaches the tail of the emulator output log to the Allure report.
    """
    try:
        if getattr(call, "excinfo", None) is None:
            return
        if getattr(call, "when", None) not in ("setup", "call"):
            return
        if item.get_closest_marker("localstack") is None and "localstack" not in getattr(
            item, "fixturenames", ()
        ):
            return

        settings = item.config.stash.get(SETTINGS_KEY, None)
        path = getattr(settings, "output_log", None)
        content = ""
        try:
            if path and os.path.exists(path):
                with open(path, encoding="utf-8", errors="ignore") as f:
                    lines = f.readlines()
                    # Take last 200 lines to avoid overloading the report
                    content = "".join(lines[-200:])
        except OSError:
            content = ""

        if content:
            allure.attach(
                content,
                name="LocalStack output",
                attachment_type=allure.attachment_type.TEXT,
            )
    except Exception:
        # Never fail due to errors inside the hook itself
        pass
