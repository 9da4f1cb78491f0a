import os
import subprocess
import sys
import typing as t

from ddtesting.testing import start_test


REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def call_program(*args, **kwargs):
    timeout = kwargs.pop("timeout", None)
    env = dict(os.environ)
    env.update(kwargs.pop("env", {}))
    env["PYTHONPATH"] = os.pathsep.join(p for p in (REPO_ROOT, env.get("PYTHONPATH")) if p)
    subp = subprocess.Popen(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE, env=env, **kwargs)
    try:
        stdout, stderr = subp.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        subp.terminate()
        stdout, stderr = subp.communicate(timeout=timeout)
    return stdout, stderr, subp.wait(), subp.pid


def run_python_code(code, **kwargs):
    return call_program(sys.executable, "-c", code, **kwargs)


class Record(object):
    """A test record captured by :class:`RecordingSink`."""

    def __init__(self, name, service, resource, tags):
        self.name = name
        self.service = service
        self.resource = resource
        self.start_tags = dict(tags)
        self.finish_tags: t.Dict[str, t.Any] = {}
        self.finish_count = 0

    def __repr__(self):
        return "Record({!r}, finished={})".format(self.resource, self.finish_count)

    @property
    def tags(self):
        tags = dict(self.start_tags)
        tags.update(self.finish_tags)
        return tags

    def get_tag(self, key):
        return self.tags.get(key)


class RecordingSink(object):
    """Sink keeping records in memory, and the order of the calls it received."""

    def __init__(self):
        self.records: t.List[Record] = []
        self.calls: t.List[str] = []

    def start(self, name, service, resource, tags):
        record = Record(name, service, resource, tags)
        self.records.append(record)
        self.calls.append("start")
        return record

    def finish(self, record, tags):
        record.finish_tags.update(tags)
        record.finish_count += 1
        self.calls.append("finish")

    def flush(self):
        self.calls.append("flush")

    def stop(self):
        self.calls.append("stop")

    @property
    def flush_count(self):
        return self.calls.count("flush")

    @property
    def stop_count(self):
        return self.calls.count("stop")


def start_from_helper(tb, context, skip_frames=0):
    """Start a test from this module, as test helpers do."""
    return start_test(tb, context=context, skip_frames=skip_frames)
