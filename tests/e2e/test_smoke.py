from __future__ import annotations

import os

import pytest

from stackrunner.emulator.lifecycle import LocalStackManager

pytestmark = [
    pytest.mark.e2e,
    pytest.mark.skipif(
        os.getenv("STACKRUNNER_E2E") != "1", reason="needs a real LocalStack (STACKRUNNER_E2E=1)"
    ),
    pytest.mark.localstack,
]


def test_core_service_endpoints(localstack: LocalStackManager) -> None:
    """
    Smoke test against a real LocalStack: every core service gets a localhost endpoint.
    """
    for url in (
        localstack.endpoint_s3(),
        localstack.endpoint_sqs(),
        localstack.endpoint_sns(),
        localstack.endpoint_kinesis(),
        localstack.endpoint_dynamodb(),
        localstack.endpoint_lambda(),
    ):
        assert url.startswith("http://localhost:")
        assert url.endswith("/")
