from .ext.ci import detect
from .internal.classification import FailureKind
from .internal.context import TestingContext
from .internal.env_tags import ci_tags
from .internal.env_tags import get_env_tags
from .testing import TestFailed
from .testing import TestSpan
from .testing import TestState
from .testing import run
from .testing import start_benchmark
from .testing import start_test
from .version import __version__


__all__ = [
    "FailureKind",
    "TestFailed",
    "TestSpan",
    "TestState",
    "TestingContext",
    "__version__",
    "ci_tags",
    "detect",
    "get_env_tags",
    "run",
    "start_benchmark",
    "start_test",
]
