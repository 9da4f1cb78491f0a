import threading
import unittest

import mock
import pytest

from ddtesting.ext import ERROR
from ddtesting.ext import ERROR_MSG
from ddtesting.ext import ERROR_STACK
from ddtesting.ext import ERROR_TYPE
from ddtesting.ext import ORIGIN_KEY
from ddtesting.ext import SPAN_KIND
from ddtesting.ext import git
from ddtesting.ext import test
from ddtesting.internal import env_tags
from ddtesting.internal.classification import FailureKind
from ddtesting.internal.context import TestingContext
from ddtesting.internal.settings import testing_config
from ddtesting.testing import TestFailed
from ddtesting.testing import TestState
from ddtesting.testing import run
from ddtesting.testing import start_benchmark
from ddtesting.testing import start_test
from tests.utils import RecordingSink
from tests.utils import start_from_helper


class RunnerTB(object):
    """A runner handle that finishes the record from inside its own stop helpers."""

    def __init__(self, name):
        self.name = name
        self.span = None
        self._failed = False

    def failed(self):
        return self._failed

    def skipped(self):
        return False

    def failure_message(self):
        return "stopped by the runner"

    def fail_now(self):
        self._failed = True
        self.span.finish()

    def fatal(self, msg):
        self.fail_now()


class StructuredRunnerTB(RunnerTB):
    def __init__(self, name, kind):
        super(StructuredRunnerTB, self).__init__(name)
        self.kind = kind

    def failure_kind(self):
        return self.kind


class BrokenRunnerTB(RunnerTB):
    def failure_kind(self):
        raise RuntimeError("cannot tell")


class SuiteFailure(Exception):
    pass


class SuiteSkip(Exception):
    pass


def _record(sink):
    assert len(sink.records) == 1
    record = sink.records[0]
    assert record.finish_count == 1
    return record


def test_passed(context, sink):
    state = TestState("test_passed")
    with start_test(state, context=context) as span:
        assert not span.finished
    assert span.finished

    record = _record(sink)
    assert record.name == "test"
    assert record.service == "test-service"
    assert record.resource == __name__ + ".test_passed"
    assert record.start_tags == {
        test.NAME: "test_passed",
        test.SUITE: __name__,
        test.FRAMEWORK: "ddtesting",
        test.TYPE: "test",
        ORIGIN_KEY: "ciapp-test",
        SPAN_KIND: "test",
    }
    assert record.finish_tags == {test.STATUS: "pass", ERROR: False}


def test_skip(context, sink):
    state = TestState("test_skip")
    with pytest.raises(unittest.SkipTest):
        with start_test(state, context=context):
            state.skip("not today")

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "skip"
    assert record.get_tag(test.SKIP_REASON) == "not today"
    assert record.get_tag(ERROR) is False


def test_skipped_without_exception(context, sink):
    class SkippedTB(RunnerTB):
        def skipped(self):
            return True

    with start_test(SkippedTB("test_skipped"), context=context):
        pass

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "skip"
    assert test.SKIP_REASON not in record.tags


def test_failed_and_continued(context, sink):
    state = TestState("test_failed")
    with start_test(state, context=context):
        state.error("first")
        state.error("second")
        state.log("still running")

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert record.get_tag(ERROR) is True
    assert record.get_tag(ERROR_MSG) == "first\nsecond"
    assert "test_failed_and_continued" in record.get_tag(ERROR_STACK)
    assert ERROR_TYPE not in record.tags
    assert state.logs == ["still running"]


def test_fail_without_message(context, sink):
    state = TestState("test_fail")
    with start_test(state, context=context):
        state.fail()

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert record.get_tag(ERROR_MSG) == ""
    assert ERROR_TYPE not in record.tags


def test_fail_now(context, sink):
    state = TestState("test_fail_now")
    with pytest.raises(TestFailed):
        with start_test(state, context=context):
            state.fail_now()

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert record.get_tag(ERROR) is True
    assert record.get_tag(ERROR_TYPE) == "FailNow"
    assert "TestFailed" in record.get_tag(ERROR_STACK)
    assert sink.calls == ["start", "finish"]


def test_fatal(context, sink):
    state = TestState("test_fatal")
    with pytest.raises(TestFailed, match="boom"):
        with start_test(state, context=context):
            state.fatal("boom")

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert record.get_tag(ERROR_MSG) == "boom"
    assert record.get_tag(ERROR_TYPE) == "Fatal"


def test_fail_now_after_error_stays_fail_now(context, sink):
    state = TestState("test_fail_now")
    with pytest.raises(TestFailed):
        with start_test(state, context=context):
            state.error("recorded")
            state.fail_now()

    record = _record(sink)
    assert record.get_tag(ERROR_MSG) == "recorded"
    assert record.get_tag(ERROR_TYPE) == "FailNow"


@pytest.mark.parametrize(
    "exc,expected_type,expected_message",
    [
        (AssertionError(), "FailNow", ""),
        (AssertionError("values differ"), "Fatal", "values differ"),
    ],
)
def test_assertion_error(context, sink, exc, expected_type, expected_message):
    with pytest.raises(AssertionError):
        with start_test(TestState("test_assertion"), context=context):
            raise exc

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert record.get_tag(ERROR_TYPE) == expected_type
    assert record.get_tag(ERROR_MSG) == expected_message
    assert "AssertionError" in record.get_tag(ERROR_STACK)
    assert not context.stopped


def test_panic(context, sink):
    with pytest.raises(ValueError, match="kaboom"):
        with start_test(TestState("test_panic"), context=context):
            raise ValueError("kaboom")

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert record.get_tag(ERROR) is True
    assert record.get_tag(ERROR_MSG) == "kaboom"
    assert record.get_tag(ERROR_TYPE) == "panic"
    assert "ValueError: kaboom" in record.get_tag(ERROR_STACK)
    assert sink.calls == ["start", "finish", "flush", "stop"]
    assert context.stopped

    # completion after a panic does not flush or stop again
    assert context.shutdown() is False
    assert sink.calls == ["start", "finish", "flush", "stop"]


def test_panic_without_stop(sink):
    config = testing_config()
    config.stop_on_panic = False
    context = TestingContext(sink=sink, config=config).start()

    with pytest.raises(KeyError):
        with start_test(TestState("test_panic"), context=context):
            {}["missing"]

    assert sink.calls == ["start", "finish", "flush"]
    assert not context.stopped

    context.shutdown()
    assert sink.calls == ["start", "finish", "flush", "flush", "stop"]


def test_panic_keeps_exception_identity(context):
    error = RuntimeError("original")
    with pytest.raises(RuntimeError) as excinfo:
        with start_test(TestState("test_panic"), context=context):
            raise error
    assert excinfo.value is error


def test_finish_reraises(context, sink):
    span = start_test(TestState("test_finish"), context=context)
    error = ValueError("from the body")
    with pytest.raises(ValueError) as excinfo:
        span.finish(error)
    assert excinfo.value is error
    assert _record(sink).get_tag(ERROR_TYPE) == "panic"


def test_finish_without_reraise(context, sink):
    span = start_test(TestState("test_finish"), context=context)
    span.finish(ValueError("from the body"), reraise=False)
    assert _record(sink).get_tag(ERROR_TYPE) == "panic"


def test_finish_only_once(context, sink):
    state = TestState("test_finish_once")
    span = start_test(state, context=context)
    span.finish()
    state.error("too late")
    span.finish()
    with span:
        pass

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "pass"


def test_benchmark(context, sink):
    with start_benchmark(TestState("BenchmarkSort"), context=context):
        pass

    record = _record(sink)
    assert record.get_tag(test.TYPE) == "benchmark"
    assert record.get_tag(test.SUITE) == __name__
    assert record.resource == __name__ + ".BenchmarkSort"


def test_skip_frames(context, sink):
    start_from_helper(TestState("test_helper"), context).finish()
    start_from_helper(TestState("test_caller"), context, skip_frames=1).finish()

    helper, caller = sink.records
    assert helper.get_tag(test.SUITE) == "tests.utils"
    assert caller.get_tag(test.SUITE) == __name__


def test_ignored_suite_prefix(context, sink):
    prefix, _, module = __name__.rpartition(".")
    start_test(TestState("test_prefix"), context=context, ignored_suite_prefix=prefix).finish()

    record = _record(sink)
    assert record.get_tag(test.SUITE) == module
    assert record.resource == __name__ + ".test_prefix"


def test_ignored_suite_prefix_from_config(sink):
    config = testing_config()
    config.ignored_suite_prefix = __name__.rpartition(".")[0] + "."
    context = TestingContext(sink=sink, config=config).start()
    try:
        start_test(TestState("test_prefix"), context=context).finish()
    finally:
        context.shutdown()

    assert sink.records[0].get_tag(test.SUITE) == __name__.rpartition(".")[2]


def test_explicit_suite(context, sink):
    start_test(TestState("test_x"), context=context, suite="pkg.module", ignored_suite_prefix="pkg").finish()

    record = _record(sink)
    assert record.get_tag(test.SUITE) == "module"
    assert record.resource == "pkg.module.test_x"


def test_start_tags(monkeypatch, context, sink):
    monkeypatch.setenv("GITHUB_SHA", "abc")
    monkeypatch.setenv("GITHUB_REPOSITORY", "org/repo")

    start_test(TestState("test_tags"), context=context, tags={"team": "ci", test.FRAMEWORK: "custom"}).finish()

    record = _record(sink)
    assert record.get_tag(git.COMMIT_SHA) == "abc"
    assert record.get_tag(git.REPOSITORY_URL) == "https://github.com/org/repo.git"
    assert record.get_tag("team") == "ci"
    assert record.get_tag(test.FRAMEWORK) == "custom"


def test_set_tag(context, sink):
    with start_test(TestState("test_set_tag"), context=context) as span:
        span.set_tag("answer", 42)

    assert _record(sink).finish_tags["answer"] == 42


def test_stack_classification_fail_now(context, sink):
    tb = RunnerTB("test_runner")
    tb.span = start_test(tb, context=context)
    tb.fail_now()

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert record.get_tag(ERROR_MSG) == "stopped by the runner"
    assert record.get_tag(ERROR_TYPE) == "FailNow"


def test_stack_classification_fatal(context, sink):
    tb = RunnerTB("test_runner")
    tb.span = start_test(tb, context=context)
    tb.fatal("boom")

    assert _record(sink).get_tag(ERROR_TYPE) == "Fatal"


def test_stack_classification_custom_signatures(context, sink):
    tb = RunnerTB("test_runner")
    tb.span = start_test(tb, context=context, signatures=())
    tb.fail_now()

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert ERROR_TYPE not in record.tags


@pytest.mark.parametrize(
    "kind,expected",
    [
        (FailureKind.FATAL, "Fatal"),
        (FailureKind.CONTINUED, None),
    ],
)
def test_structured_kind_wins_over_stack(context, sink, kind, expected):
    tb = StructuredRunnerTB("test_runner", kind)
    tb.span = start_test(tb, context=context)
    tb.fail_now()

    assert _record(sink).get_tag(ERROR_TYPE) == expected


def test_classification_error_is_logged(context, sink, caplog):
    tb = BrokenRunnerTB("test_runner")
    tb.span = start_test(tb, context=context)
    tb.fail_now()

    record = _record(sink)
    assert record.get_tag(test.STATUS) == "fail"
    assert ERROR_TYPE not in record.tags
    assert "Error while calling _failure_kind" in caplog.text


def test_configured_outcome_exceptions(context, sink):
    with pytest.raises(SuiteFailure):
        with start_test(TestState("test_failure"), context=context, failure_exceptions=(SuiteFailure,)):
            raise SuiteFailure("custom failure")

    with pytest.raises(SuiteSkip):
        with start_test(TestState("test_skip"), context=context, skip_exceptions=(SuiteSkip,)):
            raise SuiteSkip("custom skip")

    failure, skip = sink.records
    assert failure.get_tag(ERROR_TYPE) == "Fatal"
    assert failure.get_tag(ERROR_MSG) == "custom failure"
    assert skip.get_tag(test.STATUS) == "skip"
    assert skip.get_tag(test.SKIP_REASON) == "custom skip"
    assert not context.stopped


def test_sink_finish_error_is_logged(context, sink, caplog):
    with mock.patch.object(sink, "finish", side_effect=RuntimeError("sink is down")):
        with start_test(TestState("test_sink_error"), context=context):
            pass

    assert "Error while finishing the record of {}.test_sink_error".format(__name__) in caplog.text


def test_default_context(sink):
    with mock.patch("ddtesting.internal.context.DDTraceSink", return_value=sink):
        with start_test(TestState("test_default")):
            pass
        context = TestingContext.default()

    assert context.sink is sink
    assert _record(sink).get_tag(test.STATUS) == "pass"
    context.shutdown()


def test_state_repr():
    state = TestState("test_repr")
    assert repr(state) == "TestState(name='test_repr', failed=False, skipped=False)"
    assert state.failure_kind() is FailureKind.CONTINUED
    assert state.skip_reason() is None


def test_run(sink):
    context = TestingContext(sink=sink)
    main = mock.Mock(return_value=None)
    with mock.patch.object(context, "install_signal_handlers") as install:
        assert run(main, 1, context=context, flag=True) == 0

    main.assert_called_once_with(1, flag=True)
    install.assert_called_once_with()
    assert sink.calls == ["flush", "stop"]
    assert context.stopped


def test_run_exit_code(sink):
    context = TestingContext(sink=sink)
    with mock.patch.object(context, "install_signal_handlers"):
        assert run(lambda: 3, context=context) == 3


def test_run_shuts_down_on_error(sink):
    context = TestingContext(sink=sink)

    def main():
        raise RuntimeError("main failed")

    with mock.patch.object(context, "install_signal_handlers"):
        with pytest.raises(RuntimeError):
            run(main, context=context)
    assert sink.calls == ["flush", "stop"]


def test_run_derives_service(monkeypatch):
    monkeypatch.setenv("GITHUB_SHA", "abc")
    monkeypatch.setenv("GITHUB_REPOSITORY", "org/my-service")
    sink = RecordingSink()

    def main():
        start_test(TestState("test_in_main")).finish()

    with mock.patch("ddtesting.internal.context.DDTraceSink", return_value=sink):
        with mock.patch("ddtesting.internal.context.handle_signal"):
            run(main)

    assert sink.records[0].service == "my-service"
    assert TestingContext.default().stopped


def test_run_explicit_service(monkeypatch, sink):
    monkeypatch.setenv("DD_SERVICE", "explicit")
    context = TestingContext(sink=sink)
    with mock.patch.object(context, "install_signal_handlers"):
        run(lambda: 0, context=context)
    assert context.service == "explicit"


def test_concurrent_tests_share_ci_tags(monkeypatch, context, sink):
    monkeypatch.setenv("GITHUB_SHA", "abc")
    monkeypatch.setenv("GITHUB_REPOSITORY", "org/repo")
    barrier = threading.Barrier(8)
    errors = []

    def worker(i):
        state = TestState("test_worker_{}".format(i))
        try:
            barrier.wait()
            with start_test(state, context=context):
                state.log("running")
                if i % 2:
                    state.error("odd worker")
        except Exception as e:
            errors.append(e)

    with mock.patch("ddtesting.internal.env_tags.get_env_tags", wraps=env_tags.get_env_tags) as get_env_tags:
        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    assert errors == []
    get_env_tags.assert_called_once_with()
    assert len(sink.records) == 8
    for record in sink.records:
        assert record.finish_count == 1
        assert record.get_tag(git.COMMIT_SHA) == "abc"
        assert record.get_tag(git.REPOSITORY_URL) == "https://github.com/org/repo.git"
        worker_index = int(record.get_tag(test.NAME).rsplit("_", 1)[1])
        expected_status = "fail" if worker_index % 2 else "pass"
        assert record.get_tag(test.STATUS) == expected_status
