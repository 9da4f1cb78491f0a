import signal
import sys
import threading
import typing as t

from ddtesting.internal.logger import get_logger


log = get_logger(__name__)

SignalHandler = t.Callable[[int, t.Any], t.Any]


def _is_interpreter_finalizing() -> bool:
    # Calling signal.signal() while the interpreter shuts down can crash it
    return sys.is_finalizing()


def handle_signal(sig: int, f: SignalHandler) -> t.Optional[t.Any]:
    """
    Install ``f`` as the handler of ``sig``.

    Returns the replaced handler, which ``f`` is in charge of calling, or ``None`` when the signal could not be
    handled.
    """
    if _is_interpreter_finalizing():
        return None

    if threading.current_thread() is not threading.main_thread():
        log.debug("Signal handlers can only be installed from the main thread")
        return None

    try:
        return signal.signal(sig, f)
    except (OSError, ValueError):
        log.debug("Could not install handler for signal %s", sig, exc_info=True)
        return None
