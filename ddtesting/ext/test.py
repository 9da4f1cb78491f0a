"""
tags for common test attributes
"""
from enum import Enum


# Test Framework
FRAMEWORK = TEST_FRAMEWORK = "test.framework"

# Test Suite
SUITE = TEST_SUITE = "test.suite"

# Test Name
NAME = TEST_NAME = "test.name"

# Skip Reason
SKIP_REASON = TEST_SKIP_REASON = "test.skip_reason"

# Test Status
STATUS = TEST_STATUS = "test.status"

# Test Type
TYPE = TEST_TYPE = "test.type"

# Span kind and span type of test records
KIND = "test"
SPAN_TYPE = "test"

# Operation name of test records
OPERATION_NAME = "test"

# Origin marker of every test record
ORIGIN = "ciapp-test"

# Framework marker used when the host runner does not provide one
DEFAULT_FRAMEWORK = "ddtesting"


class Status(Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class TestType:
    TEST = "test"
    BENCHMARK = "benchmark"
    __test__ = False
