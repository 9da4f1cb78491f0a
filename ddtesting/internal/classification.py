"""
Failure classification of finished tests.

A failed test either recorded its failure and kept running, or stopped right away. Runners that know which one
happened expose it through ``failure_kind()``; for the others the stack captured at finish time is matched against
an explicit list of frame signatures::

    classify_stack(stack)                         # default signatures
    classify_stack(stack, (FrameSignature(FailureKind.FAIL_NOW, r"in abort_test$"),))
"""
from enum import Enum
import re
import typing as t


class FailureKind(Enum):
    # failure recorded, execution continued
    CONTINUED = "continued"
    # failure that stopped the test immediately
    FAIL_NOW = "FailNow"
    # immediate stop carrying an explicit message
    FATAL = "Fatal"


class FrameSignature(object):
    """A pattern matched against the text of a captured stack, and the failure kind it reveals."""

    __slots__ = ("kind", "pattern")

    def __init__(self, kind: FailureKind, pattern: t.Union[str, t.Pattern[str]]) -> None:
        self.kind = kind
        self.pattern = re.compile(pattern, re.MULTILINE) if isinstance(pattern, str) else pattern

    def __repr__(self) -> str:
        return "FrameSignature({!r}, {!r})".format(self.kind, self.pattern.pattern)

    def matches(self, stack: str) -> bool:
        return self.pattern.search(stack) is not None


# Evaluated broadest first, a later match refines an earlier one. ``fatal`` helpers stop the test through
# ``fail_now`` so both frames are on the stack when a fatal failure is finished.
DEFAULT_SIGNATURES: t.Tuple[FrameSignature, ...] = (
    FrameSignature(FailureKind.FAIL_NOW, r"\bin (?:fail_now|FailNow)$"),
    FrameSignature(FailureKind.FATAL, r"\bin (?:fatal|fatalf|Fatal|Fatalf)$"),
)


def classify_stack(stack: str, signatures: t.Sequence[FrameSignature] = DEFAULT_SIGNATURES) -> FailureKind:
    """Return the most specific failure kind whose signature appears in ``stack``."""
    kind = FailureKind.CONTINUED
    for signature in signatures:
        if signature.matches(stack):
            kind = signature.kind
        elif kind is FailureKind.CONTINUED:
            # refinements only apply once a broader signature matched
            break
    return kind


def classify_exception(exc: BaseException) -> FailureKind:
    """An outcome exception stopped the test: it is fatal when it carries a message."""
    return FailureKind.FATAL if str(exc) else FailureKind.FAIL_NOW


def error_type(kind: FailureKind) -> t.Optional[str]:
    if kind is FailureKind.CONTINUED:
        return None
    return kind.value
