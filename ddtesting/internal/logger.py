"""
Logging utilities for internal use.

Usage::

    from ddtesting.internal.logger import get_logger

    log = get_logger(__name__)

All loggers live under the ``ddtesting`` logger, which :func:`setup_logging` configures once per process with its own
handler so test runner output capture does not swallow it.
"""
from functools import wraps
import logging
import typing as t


ddtesting_logger = logging.getLogger("ddtesting")

F = t.TypeVar("F", bound=t.Callable[..., t.Any])

LOG_FORMAT = "[Datadog Testing] %(levelname)-8s %(name)s:%(filename)s:%(lineno)d %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Retrieve or create a ``Logger`` below the ``ddtesting`` logger."""
    if name != "ddtesting" and not name.startswith("ddtesting."):
        name = "ddtesting." + name
    return logging.getLogger(name)


def setup_logging(debug: bool = False) -> None:
    ddtesting_logger.propagate = False
    ddtesting_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    for handler in list(ddtesting_logger.handlers):
        ddtesting_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    ddtesting_logger.addHandler(handler)


def catch_and_log_exceptions(default: t.Any = None) -> t.Callable[[F], F]:
    """Log and swallow any exception raised by the decorated function, returning ``default`` instead."""

    def decorator(f: F) -> F:
        @wraps(f)
        def wrapper(*args: t.Any, **kwargs: t.Any) -> t.Any:
            try:
                return f(*args, **kwargs)
            except Exception:
                ddtesting_logger.exception("Error while calling %s", f.__name__)
                return default

        return t.cast(F, wrapper)

    return decorator
