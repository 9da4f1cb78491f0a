FRAMEWORK = "pytest"

HELP_MSG = "Record the outcome of every test with Datadog."
