"""
Test lifecycle tracking.

Each test or benchmark gets one record, opened by :func:`start_test` and closed exactly once by
:meth:`TestSpan.finish` with its outcome::

    from ddtesting.testing import TestState
    from ddtesting.testing import start_test

    def test_addition():
        state = TestState("test_addition")
        with start_test(state):
            if 1 + 1 != 2:
                state.fatal("arithmetic is broken")

The outcome is read from the test handle (anything implementing :class:`TB`) and from the exception escaping the
body, if any. An exception that is neither a failure nor a skip is reported as a panic: the record is closed, the
context flushes right away and the exception keeps propagating.
"""
import typing as t
import unittest

from ddtesting.ext import ERROR
from ddtesting.ext import ERROR_MSG
from ddtesting.ext import ERROR_STACK
from ddtesting.ext import ERROR_TYPE
from ddtesting.ext import ORIGIN_KEY
from ddtesting.ext import SPAN_KIND
from ddtesting.ext import test
from ddtesting.internal import env_tags
from ddtesting.internal import stack
from ddtesting.internal.classification import DEFAULT_SIGNATURES
from ddtesting.internal.classification import FailureKind
from ddtesting.internal.classification import FrameSignature
from ddtesting.internal.classification import classify_exception
from ddtesting.internal.classification import classify_stack
from ddtesting.internal.classification import error_type
from ddtesting.internal.context import TestingContext
from ddtesting.internal.context import resolve_service
from ddtesting.internal.logger import catch_and_log_exceptions
from ddtesting.internal.logger import get_logger


log = get_logger(__name__)

PANIC = "panic"

FAILURE_EXCEPTIONS: t.Tuple[t.Type[BaseException], ...] = (AssertionError,)
SKIP_EXCEPTIONS: t.Tuple[t.Type[BaseException], ...] = (unittest.SkipTest,)


class TB(t.Protocol):
    """
    The test handle a record is built from.

    Handles may also provide ``failure_kind() -> FailureKind`` when they know how the test stopped, and
    ``skip_reason() -> Optional[str]``.
    """

    name: str

    def failed(self) -> bool: ...

    def skipped(self) -> bool: ...

    def failure_message(self) -> str: ...


class TestFailed(AssertionError):
    """Raised by :meth:`TestState.fail_now` to stop the current test."""

    __test__ = False


class TestState(object):
    """A :class:`TB` for tests instrumented by hand."""

    __test__ = False

    def __init__(self, name: str) -> None:
        self.name = name
        self._failed = False
        self._skipped = False
        self._skip_reason: t.Optional[str] = None
        self._kind = FailureKind.CONTINUED
        self._messages: t.List[str] = []
        self.logs: t.List[str] = []

    def __repr__(self) -> str:
        return "TestState(name={!r}, failed={}, skipped={})".format(self.name, self._failed, self._skipped)

    def failed(self) -> bool:
        return self._failed

    def skipped(self) -> bool:
        return self._skipped

    def failure_message(self) -> str:
        return "\n".join(self._messages)

    def failure_kind(self) -> FailureKind:
        return self._kind

    def skip_reason(self) -> t.Optional[str]:
        return self._skip_reason

    def log(self, msg: t.Any) -> None:
        self.logs.append(str(msg))

    def fail(self) -> None:
        self._failed = True

    def error(self, msg: t.Any) -> None:
        self._messages.append(str(msg))
        self.fail()

    def fail_now(self) -> t.NoReturn:
        self.fail()
        if self._kind is FailureKind.CONTINUED:
            self._kind = FailureKind.FAIL_NOW
        raise TestFailed(self.failure_message())

    def fatal(self, msg: t.Any) -> t.NoReturn:
        self.error(msg)
        self._kind = FailureKind.FATAL
        self.fail_now()

    def skip(self, reason: t.Optional[str] = None) -> t.NoReturn:
        self._skipped = True
        self._skip_reason = reason
        raise unittest.SkipTest(reason or "")


def _structured_kind(tb: TB) -> t.Optional[FailureKind]:
    failure_kind = getattr(tb, "failure_kind", None)
    if not callable(failure_kind):
        return None
    return failure_kind()


def _skip_reason(tb: TB, exc: t.Optional[BaseException]) -> t.Optional[str]:
    skip_reason = getattr(tb, "skip_reason", None)
    reason = skip_reason() if callable(skip_reason) else None
    if not reason and exc is not None:
        reason = str(exc)
    return reason or None


class TestSpan(object):
    """The record of a running test. Use it as a context manager, or call :meth:`finish` once the test is over."""

    __test__ = False

    def __init__(
        self,
        tb: TB,
        context: TestingContext,
        record: t.Any,
        name: str,
        suite: str,
        full_suite: str,
        kind: str = test.TestType.TEST,
        signatures: t.Sequence[FrameSignature] = DEFAULT_SIGNATURES,
        failure_exceptions: t.Tuple[t.Type[BaseException], ...] = FAILURE_EXCEPTIONS,
        skip_exceptions: t.Tuple[t.Type[BaseException], ...] = SKIP_EXCEPTIONS,
    ) -> None:
        self.tb = tb
        self.context = context
        self.record = record
        self.name = name
        self.suite = suite
        self.full_suite = full_suite
        self.kind = kind
        self.signatures = signatures
        self.failure_exceptions = failure_exceptions
        self.skip_exceptions = skip_exceptions
        self._tags: t.Dict[str, t.Any] = {}
        self._finished = False

    def __repr__(self) -> str:
        return "TestSpan(fqn={!r}, kind={!r}, finished={})".format(self.fqn, self.kind, self._finished)

    def __enter__(self) -> "TestSpan":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self._finish(exc_val)
        return False

    @property
    def fqn(self) -> str:
        return "{}.{}".format(self.full_suite, self.name)

    @property
    def finished(self) -> bool:
        return self._finished

    def set_tag(self, key: str, value: t.Any) -> None:
        """Attach a tag written when the record is closed."""
        self._tags[key] = value

    def finish(self, exc: t.Optional[BaseException] = None, reraise: bool = True) -> None:
        """
        Close the record with the outcome of the test.

        ``exc`` is the exception that ended the test body, if any. It is raised again once the record is closed
        unless ``reraise`` is false.
        """
        self._finish(exc)
        if exc is not None and reraise:
            raise exc

    def _finish(self, exc: t.Optional[BaseException]) -> None:
        if self._finished:
            log.debug("%r is already finished", self)
            return
        self._finished = True

        tags = dict(self._tags)
        panic = self._outcome(exc, tags)

        try:
            self.context.sink.finish(self.record, tags)
        except Exception:
            log.warning("Error while finishing the record of %s", self.fqn, exc_info=True)

        if panic:
            log.debug("Uncaught exception in %s, flushing test records", self.fqn)
            self.context.emergency_shutdown()

    def _outcome(self, exc: t.Optional[BaseException], tags: t.Dict[str, t.Any]) -> bool:
        """Write the outcome tags of the test and return whether it panicked."""
        if exc is not None and not isinstance(exc, self.skip_exceptions + self.failure_exceptions):
            tags[test.STATUS] = test.Status.FAIL.value
            tags[ERROR] = True
            tags[ERROR_MSG] = str(exc)
            tags[ERROR_STACK] = stack.format_exception(exc)
            tags[ERROR_TYPE] = PANIC
            return True

        if exc is not None and isinstance(exc, self.failure_exceptions):
            tags[test.STATUS] = test.Status.FAIL.value
            tags[ERROR] = True
            tags[ERROR_MSG] = self.tb.failure_message() or str(exc)
            tags[ERROR_STACK] = stack.format_exception(exc)
            self._set_error_type(tags, self._escaped_failure_kind(exc))
        elif self.tb.failed():
            stack_text = stack.format_stack()
            tags[test.STATUS] = test.Status.FAIL.value
            tags[ERROR] = True
            tags[ERROR_MSG] = self.tb.failure_message()
            tags[ERROR_STACK] = stack_text
            self._set_error_type(tags, self._failure_kind(stack_text))
        elif exc is not None or self.tb.skipped():
            tags[test.STATUS] = test.Status.SKIP.value
            tags[ERROR] = False
            reason = _skip_reason(self.tb, exc)
            if reason:
                tags[test.SKIP_REASON] = reason
        else:
            tags[test.STATUS] = test.Status.PASS.value
            tags[ERROR] = False
        return False

    @staticmethod
    def _set_error_type(tags: t.Dict[str, t.Any], kind: t.Optional[FailureKind]) -> None:
        value = error_type(kind) if kind is not None else None
        if value is not None:
            tags[ERROR_TYPE] = value

    @catch_and_log_exceptions()
    def _escaped_failure_kind(self, exc: BaseException) -> FailureKind:
        kind = _structured_kind(self.tb)
        if kind is None or kind is FailureKind.CONTINUED:
            kind = classify_exception(exc)
        return kind

    @catch_and_log_exceptions()
    def _failure_kind(self, stack_text: str) -> FailureKind:
        kind = _structured_kind(self.tb)
        if kind is None:
            kind = classify_stack(stack_text, self.signatures)
            log.debug("Failure of %s classified from the stack as %s", self.fqn, kind)
        return kind


def start_test(
    tb: TB,
    *,
    context: t.Optional[TestingContext] = None,
    kind: str = test.TestType.TEST,
    skip_frames: int = 0,
    tags: t.Optional[t.Dict[str, str]] = None,
    ignored_suite_prefix: t.Optional[str] = None,
    framework: str = test.DEFAULT_FRAMEWORK,
    suite: t.Optional[str] = None,
    signatures: t.Sequence[FrameSignature] = DEFAULT_SIGNATURES,
    failure_exceptions: t.Tuple[t.Type[BaseException], ...] = (),
    skip_exceptions: t.Tuple[t.Type[BaseException], ...] = (),
) -> TestSpan:
    """
    Open the record of the test ``tb``.

    The suite is the module of the caller, ``skip_frames`` frames further up the stack when ``start_test`` is called
    through helpers, unless given explicitly with ``suite``. ``failure_exceptions`` and ``skip_exceptions`` extend the
    exception types reported as a failure or a skip instead of a panic.
    """
    if context is None:
        context = TestingContext.default()
    if ignored_suite_prefix is None:
        ignored_suite_prefix = context.config.ignored_suite_prefix

    if suite is None:
        full_suite, displayed_suite = stack.get_suite(stack.caller_frame(skip_frames), ignored_suite_prefix)
    else:
        full_suite = suite
        displayed_suite = suite
        if ignored_suite_prefix and suite.startswith(ignored_suite_prefix):
            displayed_suite = suite[len(ignored_suite_prefix) :].lstrip(".")

    name = tb.name
    start_tags = env_tags.ci_tags()
    start_tags.update(
        {
            test.NAME: name,
            test.SUITE: displayed_suite,
            test.FRAMEWORK: framework,
            test.TYPE: kind,
            ORIGIN_KEY: test.ORIGIN,
            SPAN_KIND: test.KIND,
        }
    )
    if tags:
        start_tags.update(tags)

    span = TestSpan(
        tb,
        context,
        None,
        name,
        displayed_suite,
        full_suite,
        kind=kind,
        signatures=signatures,
        failure_exceptions=FAILURE_EXCEPTIONS + tuple(failure_exceptions),
        skip_exceptions=SKIP_EXCEPTIONS + tuple(skip_exceptions),
    )
    span.record = context.sink.start(test.OPERATION_NAME, context.service, span.fqn, start_tags)
    return span


def start_benchmark(tb: TB, *, skip_frames: int = 0, **kwargs: t.Any) -> TestSpan:
    """Open the record of the benchmark ``tb``; takes the same options as :func:`start_test`."""
    return start_test(tb, kind=test.TestType.BENCHMARK, skip_frames=skip_frames + 1, **kwargs)


def run(
    main: t.Callable[..., t.Optional[int]],
    *args: t.Any,
    context: t.Optional[TestingContext] = None,
    **kwargs: t.Any,
) -> int:
    """
    Run a whole test program with the process-wide instrumentation set up around it.

    CI tags are collected before ``main`` starts, exit signals shut the context down, and the context is always
    shut down once ``main`` returns or raises. Returns the exit code of ``main``.
    """
    env_tags.ci_tags()
    if context is None:
        context = TestingContext(service=resolve_service())
        TestingContext.set_default(context)
    elif context.service is None:
        context.service = resolve_service()

    context.start()
    context.install_signal_handlers()
    try:
        code = main(*args, **kwargs)
    finally:
        context.shutdown()
    return 0 if code is None else code
