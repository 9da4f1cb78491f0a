"""
Tag vocabularies shared by the provider extractors and the test lifecycle.
"""

# Error flag
ERROR = "error"

# Error message, type and human readable stack
ERROR_MSG = "error.message"
ERROR_TYPE = "error.type"
ERROR_STACK = "error.stack"

# Origin of the record
ORIGIN_KEY = "_dd.origin"

# Kind of the record
SPAN_KIND = "span.kind"
