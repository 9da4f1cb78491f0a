import sys
import traceback
from types import FrameType
import typing as t


def caller_frame(skip: int = 0) -> t.Optional[FrameType]:
    """Return the frame of the caller of the function calling this one, ``skip`` frames further up."""
    try:
        return sys._getframe(skip + 2)
    except ValueError:
        return None


def get_suite(frame: t.Optional[FrameType], ignored_prefix: str = "") -> t.Tuple[str, str]:
    """
    Return the full and the displayed suite of a frame.

    The suite is the module the frame executes in; the displayed suite has ``ignored_prefix`` removed.
    """
    if frame is None:
        return "", ""
    full_suite = frame.f_globals.get("__name__") or ""
    suite = full_suite
    if ignored_prefix and suite.startswith(ignored_prefix):
        suite = suite[len(ignored_prefix) :].lstrip(".")
    return full_suite, suite


def format_stack(skip: int = 0) -> str:
    """Capture the current stack, innermost frame last, without this helper and ``skip`` callers."""
    frames = traceback.format_stack(sys._getframe(skip + 1))
    return "".join(frames)


def format_exception(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
