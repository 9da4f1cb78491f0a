"""
Application-lifetime state of an instrumented test run.

A :class:`TestingContext` owns the sink test records are written to and the one flush/stop sequence that ends the
run. The sequence may be triggered by normal completion, by an exit signal, by ``atexit`` or by an uncaught
exception in a test; whatever the number of triggers, the sink is flushed and stopped at most once.
"""
import atexit
import os
import signal
import threading
import typing as t

from ddtesting.ext import git
from ddtesting.internal import env_tags
from ddtesting.internal.logger import get_logger
from ddtesting.internal.settings import TestingConfig
from ddtesting.internal.settings import service_config
from ddtesting.internal.settings import testing_config
from ddtesting.internal.signals import handle_signal
from ddtesting.internal.sink import DDTraceSink
from ddtesting.internal.sink import Sink


log = get_logger(__name__)

EXIT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def resolve_service(tags: t.Optional[t.Dict[str, str]] = None) -> t.Optional[str]:
    """Return ``DD_SERVICE``, or a name derived from the repository URL tag."""
    service = service_config().service
    if service:
        return service

    tags = env_tags.ci_tags() if tags is None else tags
    repository_url = tags.get(git.REPOSITORY_URL)
    if repository_url:
        return env_tags.service_from_repository_url(repository_url) or None
    return None


class TestingContext(object):
    __test__ = False

    _default: t.Optional["TestingContext"] = None
    _default_lock = threading.Lock()

    def __init__(
        self,
        sink: t.Optional[Sink] = None,
        service: t.Optional[str] = None,
        config: t.Optional[TestingConfig] = None,
    ) -> None:
        self.config = config if config is not None else testing_config()
        self.service = service
        self._sink = sink
        # reentrant: an exit signal can interrupt the main thread while it holds the lock
        self._lock = threading.RLock()
        self._started = False
        self._stopping = False
        self._stopped = False
        # true while the sink is flushing or stopping, an exit signal received meanwhile is deferred
        self._busy = False
        self._pending_signal: t.Optional[t.Tuple[int, t.Any]] = None
        self._previous_handlers: t.Dict[int, t.Any] = {}

    def __repr__(self) -> str:
        return "{}(service={!r}, started={}, stopped={})".format(
            self.__class__.__name__, self.service, self._started, self._stopped
        )

    @classmethod
    def default(cls) -> "TestingContext":
        """Return the process-wide context, created and started on first use."""
        with cls._default_lock:
            if cls._default is None:
                cls._default = cls(service=resolve_service()).start()
            return cls._default

    @classmethod
    def set_default(cls, context: t.Optional["TestingContext"]) -> None:
        with cls._default_lock:
            cls._default = context

    @property
    def sink(self) -> Sink:
        if self._sink is None:
            self.start()
        return t.cast(Sink, self._sink)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> "TestingContext":
        with self._lock:
            if self._started:
                return self
            if self._sink is None:
                self._sink = DDTraceSink()
            self._started = True

        atexit.register(self.shutdown)
        log.debug("Testing context started: %r", self)
        return self

    def install_signal_handlers(self, signals: t.Iterable[int] = EXIT_SIGNALS) -> None:
        """
        Shut down and terminate the process when one of ``signals`` is received.

        Once the sink is stopped, the handler previously installed for the signal is called, then the process
        exits with status 1. A signal received while the sink is flushing is handled when the flush is over.
        """
        for sig in signals:
            previous = handle_signal(sig, self._on_exit_signal)
            if previous is not None:
                self._previous_handlers.setdefault(sig, previous)

    def uninstall_signal_handlers(self) -> None:
        """Put back the handlers replaced by :meth:`install_signal_handlers`."""
        while self._previous_handlers:
            sig, previous = self._previous_handlers.popitem()
            try:
                signal.signal(sig, previous)
            except (OSError, ValueError):
                log.debug("Could not restore handler of signal %s", sig, exc_info=True)

    def _on_exit_signal(self, signum: int, frame: t.Any) -> None:
        if self._busy or (self._stopping and not self._stopped):
            log.debug("Received signal %s while flushing test records, exiting once done", signum)
            self._pending_signal = (signum, frame)
            return

        log.debug("Received signal %s, shutting down", signum)
        self.shutdown()
        self._terminate(signum, frame)

    def _handle_pending_signal(self) -> None:
        pending, self._pending_signal = self._pending_signal, None
        if pending is not None:
            self.shutdown()
            self._terminate(*pending)

    def _terminate(self, signum: int, frame: t.Any) -> None:
        previous = self._previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
        os._exit(1)

    def _flush(self) -> None:
        if self._sink is None:
            return
        self._busy = True
        try:
            self._sink.flush()
        except Exception:
            log.warning("Error while flushing test records", exc_info=True)
        finally:
            self._busy = False

    def _stop(self) -> None:
        self._stopping = True
        self._busy = True
        try:
            if self._sink is not None:
                self._sink.stop()
        except Exception:
            log.warning("Error while stopping the test records sink", exc_info=True)
        finally:
            self._stopped = True
            self._busy = False

    def flush(self) -> None:
        with self._lock:
            if not self._stopping:
                self._flush()
        self._handle_pending_signal()

    def shutdown(self) -> bool:
        """Flush and stop the sink. Only the first call has an effect, it returns ``True``."""
        with self._lock:
            if self._stopping:
                return False
            self._stopping = True
            self._flush()
            self._stop()

        atexit.unregister(self.shutdown)
        log.debug("Testing context stopped: %r", self)
        self._handle_pending_signal()
        return True

    stop = shutdown

    def emergency_shutdown(self) -> None:
        """Flush right away after an uncaught exception, and stop too when configured to."""
        with self._lock:
            if self._stopping:
                return
            if self.config.stop_on_panic:
                self._stopping = True
            self._flush()
            if self.config.stop_on_panic:
                self._stop()
                log.debug("Testing context stopped after an uncaught exception: %r", self)

        if self._stopped:
            atexit.unregister(self.shutdown)
        self._handle_pending_signal()
