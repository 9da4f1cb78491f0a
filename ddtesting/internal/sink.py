"""
Destination of test records.

The lifecycle tracker only needs to open a record with tags, close it with more tags, and flush or stop the
destination at the end of the run. :class:`DDTraceSink` maps these calls to a ``ddtrace`` tracer, one span per
test.
"""
import typing as t

from ddtesting.ext import ERROR
from ddtesting.ext import test
from ddtesting.internal.logger import get_logger


if t.TYPE_CHECKING:  # pragma: no cover
    from ddtrace.trace import Span
    from ddtrace.trace import Tracer


log = get_logger(__name__)


class Sink(t.Protocol):
    def start(self, name: str, service: t.Optional[str], resource: str, tags: t.Dict[str, str]) -> t.Any: ...

    def finish(self, record: t.Any, tags: t.Dict[str, t.Any]) -> None: ...

    def flush(self) -> None: ...

    def stop(self) -> None: ...


class DDTraceSink(object):
    def __init__(self, tracer: t.Optional["Tracer"] = None) -> None:
        if tracer is None:
            from ddtrace.trace import tracer as global_tracer

            tracer = global_tracer
        self.tracer = tracer

    def start(self, name: str, service: t.Optional[str], resource: str, tags: t.Dict[str, str]) -> "Span":
        span = self.tracer.trace(name, service=service, resource=resource, span_type=test.SPAN_TYPE)
        span.set_tags(tags)
        return span

    def finish(self, record: "Span", tags: t.Dict[str, t.Any]) -> None:
        tags = dict(tags)
        record.error = 1 if tags.pop(ERROR, False) else 0
        record.set_tags(tags)
        record.finish()

    def flush(self) -> None:
        log.debug("Flushing tracer")
        self.tracer.flush()

    def stop(self) -> None:
        log.debug("Shutting down tracer")
        self.tracer.shutdown()
