from doctest import DocTest
import signal
import typing as t

import pytest

from ddtesting.contrib.pytest.constants import FRAMEWORK
from ddtesting.contrib.pytest.constants import HELP_MSG
from ddtesting.internal.classification import FailureKind
from ddtesting.internal.classification import classify_exception
from ddtesting.internal.context import TestingContext
from ddtesting.internal.context import resolve_service
from ddtesting.internal.logger import get_logger
from ddtesting.internal.logger import setup_logging
from ddtesting.internal.settings import testing_config
from ddtesting.testing import TestSpan
from ddtesting.testing import start_test


log = get_logger(__name__)

OUTCOME_FAILURES = (AssertionError, pytest.fail.Exception)


def is_enabled(config):
    """Check if the ddtesting plugin is enabled."""
    return config.getoption("ddtesting") or config.getini("ddtesting") or testing_config().enabled


def _extract_context(config) -> t.Optional[TestingContext]:
    return getattr(config, "_ddtesting_context", None)


def _store_context(config, context):
    setattr(config, "_ddtesting_context", context)


def _extract_span(item) -> t.Optional[TestSpan]:
    """Extract span from `pytest.Item` instance."""
    return getattr(item, "_ddtesting_span", None)


def _store_span(item, span):
    """Store span at `pytest.Item` instance."""
    setattr(item, "_ddtesting_span", span)


def _get_suite(item) -> str:
    if getattr(item, "module", None) is not None:
        return item.module.__name__
    if hasattr(item, "dtest") and isinstance(item.dtest, DocTest):
        return item.dtest.globs["__name__"]
    return item.nodeid.partition("::")[0]


def _get_name(item) -> str:
    cls = getattr(item, "cls", None)
    if cls is not None:
        return "{}.{}".format(cls.__name__, item.name)
    return item.name


class PytestTB(object):
    """The outcome of a pytest item, learned from the reports of its setup, call and teardown phases."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.exception: t.Optional[BaseException] = None
        self._failed = False
        self._skipped = False
        self._message = ""
        self._skip_reason: t.Optional[str] = None
        self._kind = FailureKind.CONTINUED

    def failed(self) -> bool:
        return self._failed

    def skipped(self) -> bool:
        return self._skipped

    def failure_message(self) -> str:
        return self._message

    def failure_kind(self) -> FailureKind:
        return self._kind

    def skip_reason(self) -> t.Optional[str]:
        return self._skip_reason

    def add_report(self, call, report) -> None:
        if self._failed:
            return

        excinfo = call.excinfo
        if report.skipped:
            # xfailed tests are reported skipped by pytest but behaved as expected
            if hasattr(report, "wasxfail"):
                return
            self._skipped = True
            if excinfo is not None:
                self._skip_reason = str(excinfo.value) or None
        elif report.failed:
            self._failed = True
            if excinfo is None:
                # strict xpass
                self._message = report.longreprtext
                return
            self._message = str(excinfo.value)
            if isinstance(excinfo.value, OUTCOME_FAILURES):
                self._kind = classify_exception(excinfo.value)
            else:
                self.exception = excinfo.value


def pytest_addoption(parser):
    """Add ddtesting options."""
    group = parser.getgroup("ddtesting")

    group._addoption(
        "--ddtesting",
        action="store_true",
        dest="ddtesting",
        default=False,
        help=HELP_MSG,
    )

    parser.addini("ddtesting", HELP_MSG, type="bool")


def pytest_configure(config):
    config.addinivalue_line("markers", "dd_tags(**kwargs): add tags to the record of the test")
    if not is_enabled(config):
        return

    settings = testing_config()
    setup_logging(debug=settings.debug)
    # pytest keeps running the session after an uncaught exception in a test
    settings.stop_on_panic = False
    context = TestingContext(service=resolve_service(), config=settings)
    TestingContext.set_default(context)
    _store_context(config, context)


def pytest_sessionstart(session):
    context = _extract_context(session.config)
    if context is None:
        return
    context.start()
    context.install_signal_handlers((signal.SIGTERM,))


def pytest_sessionfinish(session, exitstatus):
    context = _extract_context(session.config)
    if context is None:
        return
    context.shutdown()
    context.uninstall_signal_handlers()
    TestingContext.set_default(None)


@pytest.fixture(scope="function")
def ddtesting_span(request):
    return _extract_span(request.node)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_protocol(item, nextitem):
    context = _extract_context(item.config)
    if context is None:
        yield
        return

    tags = {}
    for marker in item.iter_markers(name="dd_tags"):
        tags.update(marker.kwargs)

    tb = PytestTB(_get_name(item))
    span = start_test(
        tb,
        context=context,
        suite=_get_suite(item),
        framework=FRAMEWORK,
        tags=tags,
        failure_exceptions=(pytest.fail.Exception,),
        skip_exceptions=(pytest.skip.Exception,),
    )
    _store_span(item, span)

    try:
        yield
    finally:
        span.finish(tb.exception, reraise=False)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Store outcome for recording."""
    outcome = yield

    span = _extract_span(item)
    if span is None:
        return

    tb = span.tb
    if isinstance(tb, PytestTB):
        tb.add_report(call, outcome.get_result())
