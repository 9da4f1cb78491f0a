import typing as t

from envier import En


class ServiceConfig(En):
    __prefix__ = "dd"

    service = En.v(
        t.Optional[str],
        "service",
        default=None,
        help_type="String",
        help="Service name of the test records. Derived from the repository URL when unset.",
    )


class TestingConfig(En):
    __prefix__ = "dd.testing"
    __test__ = False

    enabled = En.v(
        bool,
        "enabled",
        default=False,
        help_type="Boolean",
        help="Enable the pytest plugin without passing --ddtesting.",
    )

    debug = En.v(
        bool,
        "debug",
        default=False,
        help_type="Boolean",
        help="Enable debug logging of the ddtesting logger.",
    )

    stop_on_panic = En.v(
        bool,
        "stop_on_panic",
        default=True,
        help_type="Boolean",
        help="Stop the tracer after the emergency flush triggered by an uncaught exception in a test.",
    )

    ignored_suite_prefix = En.v(
        str,
        "ignored_suite_prefix",
        default="",
        help_type="String",
        help="Module prefix removed from the displayed test suite name.",
    )


def service_config() -> ServiceConfig:
    return ServiceConfig()


def testing_config() -> TestingConfig:
    return TestingConfig()
