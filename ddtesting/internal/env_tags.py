import os
import re
import threading
import typing as t

from ddtesting.ext import ci
from ddtesting.ext import git
from ddtesting.internal import environ
from ddtesting.internal.environ import Environment
from ddtesting.internal.logger import get_logger


log = get_logger(__name__)

_TagDict = t.Dict[str, t.Optional[str]]

_RE_REPOSITORY_NAME = re.compile(r"/([a-zA-Z0-9\\\-_.]*)$", re.MULTILINE)

_cache_lock = threading.Lock()
_cached_tags: t.Optional[t.Dict[str, str]] = None


def replace_with_user_tags(tags: _TagDict, env: Environment) -> None:
    """Overwrite tags with the ``DD_GIT_*`` variables the user set to a non-empty value."""
    for tag, variable in git.USER_OVERRIDES:
        value = env.non_empty(variable)
        if value is not None:
            tags[tag] = value


def normalize_tags(tags: _TagDict) -> None:
    branch = tags.get(git.BRANCH)
    if branch:
        # a branch-shaped value pointing at a tag fills both fields
        if git.is_ref_a_tag(branch):
            tags[git.TAG] = git.normalize_ref(branch)
        tags[git.BRANCH] = git.normalize_ref(branch)

    tag = tags.get(git.TAG)
    if tag:
        tags[git.TAG] = git.normalize_ref(tag)

    repository_url = tags.get(git.REPOSITORY_URL)
    if repository_url:
        tags[git.REPOSITORY_URL] = git.filter_sensitive_info(repository_url)


def expand_workspace_path(tags: _TagDict) -> None:
    workspace_path = tags.get(ci.WORKSPACE_PATH)
    if not workspace_path:
        return
    try:
        tags[ci.WORKSPACE_PATH] = os.path.expanduser(workspace_path)
    except Exception:
        log.debug("Could not expand workspace path %r", workspace_path, exc_info=True)


def get_env_tags(env: t.Optional[t.Mapping[str, t.Optional[str]]] = None) -> t.Dict[str, str]:
    """Detect the CI provider and return its normalized tags, without empty values."""
    env = environ.snapshot(env)
    tags: _TagDict = dict(ci.detect(env))

    replace_with_user_tags(tags, env)
    normalize_tags(tags)
    expand_workspace_path(tags)

    return {k: v for k, v in tags.items() if v}


def ci_tags() -> t.Dict[str, str]:
    """Return a copy of the process-wide CI tags, computed from ``os.environ`` on first use."""
    global _cached_tags

    with _cache_lock:
        if _cached_tags is None:
            _cached_tags = get_env_tags()
            log.debug("CI tags: %r", _cached_tags)
        return dict(_cached_tags)


def reset_ci_tags() -> None:
    global _cached_tags

    with _cache_lock:
        _cached_tags = None


def service_from_repository_url(repository_url: str) -> str:
    """Derive a service name from the last path segment of a repository URL."""
    match = _RE_REPOSITORY_NAME.search(repository_url)
    if match is None:
        return repository_url
    name = match.group(1)
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name
