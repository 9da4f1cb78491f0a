"""
tags for common git attributes
"""
import re
import typing as t


# Git Branch
BRANCH = "git.branch"

# Git Commit SHA
COMMIT_SHA = "git.commit.sha"

# Git Repository URL
REPOSITORY_URL = "git.repository_url"

# Git Tag
TAG = "git.tag"

# Git Commit Author Name
COMMIT_AUTHOR_NAME = "git.commit.author.name"

# Git Commit Author Email
COMMIT_AUTHOR_EMAIL = "git.commit.author.email"

# Git Commit Author Date (UTC)
COMMIT_AUTHOR_DATE = "git.commit.author.date"

# Git Commit Committer Name
COMMIT_COMMITTER_NAME = "git.commit.committer.name"

# Git Commit Committer Email
COMMIT_COMMITTER_EMAIL = "git.commit.committer.email"

# Git Commit Committer Date (UTC)
COMMIT_COMMITTER_DATE = "git.commit.committer.date"

# Git Commit Message
COMMIT_MESSAGE = "git.commit.message"

# Environment variables a user can set to override what the CI provider reports
USER_OVERRIDES: t.Tuple[t.Tuple[str, str], ...] = (
    (BRANCH, "DD_GIT_BRANCH"),
    (TAG, "DD_GIT_TAG"),
    (REPOSITORY_URL, "DD_GIT_REPOSITORY_URL"),
    (COMMIT_SHA, "DD_GIT_COMMIT_SHA"),
    (COMMIT_MESSAGE, "DD_GIT_COMMIT_MESSAGE"),
    (COMMIT_AUTHOR_NAME, "DD_GIT_COMMIT_AUTHOR_NAME"),
    (COMMIT_AUTHOR_EMAIL, "DD_GIT_COMMIT_AUTHOR_EMAIL"),
    (COMMIT_AUTHOR_DATE, "DD_GIT_COMMIT_AUTHOR_DATE"),
    (COMMIT_COMMITTER_NAME, "DD_GIT_COMMIT_COMMITTER_NAME"),
    (COMMIT_COMMITTER_EMAIL, "DD_GIT_COMMIT_COMMITTER_EMAIL"),
    (COMMIT_COMMITTER_DATE, "DD_GIT_COMMIT_COMMITTER_DATE"),
)

_RE_REFS = re.compile(r"^refs/(heads/)?")
_RE_ORIGIN = re.compile(r"^origin/")
_RE_TAGS = re.compile(r"^tags/")
_RE_URL = re.compile(r"([A-Za-z][A-Za-z0-9+.\-]*://)[^/]*@")

# Substrings marking a branch-shaped value that actually points at a tag
_TAG_REF_MARKERS = ("refs/tags", "origin/tags", "refs/heads/tags")


def normalize_ref(name: str) -> str:
    """Strip ``refs/heads/`` or ``refs/``, then ``origin/``, then ``tags/`` from a reference name."""
    return _RE_TAGS.sub("", _RE_ORIGIN.sub("", _RE_REFS.sub("", name)))


def is_ref_a_tag(ref: t.Optional[str]) -> bool:
    if not ref:
        return False
    return any(marker in ref for marker in _TAG_REF_MARKERS)


def filter_sensitive_info(url: str) -> str:
    """Remove the ``user:password@`` part of a ``scheme://`` URL."""
    return _RE_URL.sub("\\1", url)
