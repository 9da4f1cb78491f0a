import os

import pytest

from ddtesting.ext import ci
from ddtesting.internal import env_tags
from ddtesting.internal.context import TestingContext
from ddtesting.internal.logger import ddtesting_logger
from tests.utils import RecordingSink


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Run every test as if outside of any CI provider and without Datadog settings."""
    for key, _ in ci.PROVIDERS:
        monkeypatch.delenv(key, raising=False)
    for key in list(os.environ):
        if key.startswith("DD_"):
            monkeypatch.delenv(key, raising=False)

    env_tags.reset_ci_tags()
    yield
    env_tags.reset_ci_tags()
    TestingContext.set_default(None)


@pytest.fixture(autouse=True)
def propagate_ddtesting_logs():
    # setup_logging() turns propagation off, caplog needs it on
    propagate = ddtesting_logger.propagate
    ddtesting_logger.propagate = True
    yield
    ddtesting_logger.propagate = propagate


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def context(sink):
    ctx = TestingContext(sink=sink, service="test-service")
    ctx.start()
    yield ctx
    ctx.shutdown()
