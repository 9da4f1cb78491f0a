"""
Tags for common CI attributes
"""
import re
import typing as t

from ddtesting.ext import git
from ddtesting.internal import environ
from ddtesting.internal.environ import Environment
from ddtesting.internal.logger import get_logger


# Stage Name
STAGE_NAME = "ci.stage.name"

# Job Name
JOB_NAME = "ci.job.name"

# Job URL
JOB_URL = "ci.job.url"

# Pipeline ID
PIPELINE_ID = "ci.pipeline.id"

# Pipeline Name
PIPELINE_NAME = "ci.pipeline.name"

# Pipeline Number
PIPELINE_NUMBER = "ci.pipeline.number"

# Pipeline URL
PIPELINE_URL = "ci.pipeline.url"

# Provider
PROVIDER_NAME = "ci.provider.name"

# Workspace Path
WORKSPACE_PATH = "ci.workspace_path"

# CI Visibility env vars used for pipeline correlation ID
_CI_ENV_VARS = "_dd.ci.env_vars"

_RE_AUTHOR = re.compile(r"^\s*(.*?)\s*<\s*([^<>]*?)\s*>\s*$")
_RE_AUTHOR_DELIMITERS = re.compile(r"[<>]")
_RE_JOB_NAME_VARS = re.compile(r"/[^/]+=[^/]*")

log = get_logger(__name__)

TProviderFunction = t.Callable[[Environment], t.Dict[str, str]]
PROVIDERS: t.List[t.Tuple[str, TProviderFunction]] = []


def register_provider(key: str) -> t.Callable[[TProviderFunction], TProviderFunction]:
    """
    Register a handler to extract tags from the environment for a given CI provider.

    The handler is used if the environment contains a variable named by `key`, whatever its value. Handlers are
    evaluated in registration order and the first match wins.
    """

    def decorator(f: TProviderFunction) -> TProviderFunction:
        PROVIDERS.append((key, f))
        return f

    return decorator


def detect(env: t.Optional[t.Mapping[str, t.Optional[str]]] = None) -> t.Dict[str, str]:
    """Extract raw tags from the first CI provider whose trigger variable is present."""
    env = environ.snapshot(env)
    for key, extract in PROVIDERS:
        if key in env:
            log.debug("CI provider detected from %s", key)
            return extract(env)

    log.debug("No CI provider detected")
    return {}


def split_author(author: str) -> t.Tuple[str, str]:
    """Split a ``Name <email>`` string, a part that cannot be found comes back empty."""
    match = _RE_AUTHOR.match(author)
    if match:
        return match.group(1), match.group(2)

    parts = [part for part in _RE_AUTHOR_DELIMITERS.split(author) if part]
    if "<" in author or ">" in author:
        log.debug("Malformed commit author %r", author)
    name = parts[0].strip() if parts else ""
    email = parts[1].strip() if len(parts) > 1 else ""
    return name, email


def _split_branch_or_tag(branch_or_tag: str) -> t.Tuple[str, str]:
    if "tags/" in branch_or_tag:
        return "", branch_or_tag
    return branch_or_tag, ""


@register_provider("APPVEYOR")
def extract_appveyor(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Appveyor environ."""
    url = "https://ci.appveyor.com/project/{0}/builds/{1}".format(
        env.get("APPVEYOR_REPO_NAME"), env.get("APPVEYOR_BUILD_ID")
    )
    if env.get("APPVEYOR_REPO_PROVIDER") == "github":
        repository = "https://github.com/{0}.git".format(env.get("APPVEYOR_REPO_NAME"))
    else:
        repository = env.get("APPVEYOR_REPO_NAME")

    commit_message = env.get("APPVEYOR_REPO_COMMIT_MESSAGE")
    extended = env.get("APPVEYOR_REPO_COMMIT_MESSAGE_EXTENDED")
    if commit_message and extended:
        commit_message += "\n" + extended

    return {
        PROVIDER_NAME: "appveyor",
        git.REPOSITORY_URL: repository,
        git.COMMIT_SHA: env.get("APPVEYOR_REPO_COMMIT"),
        git.BRANCH: env.first("APPVEYOR_PULL_REQUEST_HEAD_REPO_BRANCH", "APPVEYOR_REPO_BRANCH"),
        git.TAG: env.get("APPVEYOR_REPO_TAG_NAME"),
        WORKSPACE_PATH: env.get("APPVEYOR_BUILD_FOLDER"),
        PIPELINE_ID: env.get("APPVEYOR_BUILD_ID"),
        PIPELINE_NAME: env.get("APPVEYOR_REPO_NAME"),
        PIPELINE_NUMBER: env.get("APPVEYOR_BUILD_NUMBER"),
        PIPELINE_URL: url,
        JOB_URL: url,
        git.COMMIT_MESSAGE: commit_message,
        git.COMMIT_AUTHOR_NAME: env.get("APPVEYOR_REPO_COMMIT_AUTHOR"),
        git.COMMIT_AUTHOR_EMAIL: env.get("APPVEYOR_REPO_COMMIT_AUTHOR_EMAIL"),
    }


@register_provider("TF_BUILD")
def extract_azure_pipelines(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Azure pipelines environ."""
    if env.get("SYSTEM_TEAMFOUNDATIONSERVERURI") and env.get("SYSTEM_TEAMPROJECTID") and env.get("BUILD_BUILDID"):
        pipeline_url = "{0}{1}/_build/results?buildId={2}".format(
            env.get("SYSTEM_TEAMFOUNDATIONSERVERURI"), env.get("SYSTEM_TEAMPROJECTID"), env.get("BUILD_BUILDID")
        )
        job_url = pipeline_url + "&view=logs&j={0}&t={1}".format(
            env.get("SYSTEM_JOBID"), env.get("SYSTEM_TASKINSTANCEID")
        )
    else:
        pipeline_url = job_url = ""

    branch, tag = _split_branch_or_tag(
        env.first("SYSTEM_PULLREQUEST_SOURCEBRANCH", "BUILD_SOURCEBRANCH", "BUILD_SOURCEBRANCHNAME")
    )

    return {
        PROVIDER_NAME: "azurepipelines",
        WORKSPACE_PATH: env.get("BUILD_SOURCESDIRECTORY"),
        PIPELINE_ID: env.get("BUILD_BUILDID"),
        PIPELINE_NAME: env.get("BUILD_DEFINITIONNAME"),
        PIPELINE_NUMBER: env.get("BUILD_BUILDID"),
        PIPELINE_URL: pipeline_url,
        STAGE_NAME: env.get("SYSTEM_STAGEDISPLAYNAME"),
        JOB_NAME: env.get("SYSTEM_JOBDISPLAYNAME"),
        JOB_URL: job_url,
        git.REPOSITORY_URL: env.first("SYSTEM_PULLREQUEST_SOURCEREPOSITORYURI", "BUILD_REPOSITORY_URI"),
        git.COMMIT_SHA: env.first("SYSTEM_PULLREQUEST_SOURCECOMMITID", "BUILD_SOURCEVERSION"),
        git.BRANCH: branch,
        git.TAG: tag,
        git.COMMIT_MESSAGE: env.get("BUILD_SOURCEVERSIONMESSAGE"),
        git.COMMIT_AUTHOR_NAME: env.get("BUILD_REQUESTEDFORID"),
        git.COMMIT_AUTHOR_EMAIL: env.get("BUILD_REQUESTEDFOREMAIL"),
        _CI_ENV_VARS: env.json("SYSTEM_TEAMPROJECTID", "BUILD_BUILDID", "SYSTEM_JOBID"),
    }


@register_provider("BITBUCKET_COMMIT")
def extract_bitbucket(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Bitbucket environ."""
    url = "https://bitbucket.org/{0}/addon/pipelines/home#!/results/{1}".format(
        env.get("BITBUCKET_REPO_FULL_NAME"), env.get("BITBUCKET_BUILD_NUMBER")
    )
    return {
        PROVIDER_NAME: "bitbucket",
        git.REPOSITORY_URL: env.first("BITBUCKET_GIT_SSH_ORIGIN", "BITBUCKET_GIT_HTTP_ORIGIN"),
        git.COMMIT_SHA: env.get("BITBUCKET_COMMIT"),
        git.BRANCH: env.get("BITBUCKET_BRANCH"),
        git.TAG: env.get("BITBUCKET_TAG"),
        WORKSPACE_PATH: env.get("BITBUCKET_CLONE_DIR"),
        PIPELINE_ID: env.get("BITBUCKET_PIPELINE_UUID").strip("{}"),
        PIPELINE_NAME: env.get("BITBUCKET_REPO_FULL_NAME"),
        PIPELINE_NUMBER: env.get("BITBUCKET_BUILD_NUMBER"),
        PIPELINE_URL: url,
        JOB_URL: url,
    }


@register_provider("BITRISE_BUILD_SLUG")
def extract_bitrise(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Bitrise environ."""
    return {
        PROVIDER_NAME: "bitrise",
        git.REPOSITORY_URL: env.get("GIT_REPOSITORY_URL"),
        git.COMMIT_SHA: env.first("BITRISE_GIT_COMMIT", "GIT_CLONE_COMMIT_HASH"),
        git.BRANCH: env.first("BITRISEIO_GIT_BRANCH_DEST", "BITRISE_GIT_BRANCH"),
        git.TAG: env.get("BITRISE_GIT_TAG"),
        WORKSPACE_PATH: env.get("BITRISE_SOURCE_DIR"),
        PIPELINE_ID: env.get("BITRISE_BUILD_SLUG"),
        PIPELINE_NAME: env.get("BITRISE_TRIGGERED_WORKFLOW_ID"),
        PIPELINE_NUMBER: env.get("BITRISE_BUILD_NUMBER"),
        PIPELINE_URL: env.get("BITRISE_BUILD_URL"),
        git.COMMIT_MESSAGE: env.get("BITRISE_GIT_MESSAGE"),
    }


@register_provider("BUDDY")
def extract_buddy(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Buddy environ."""
    return {
        PROVIDER_NAME: "buddy",
        PIPELINE_ID: "{0}/{1}".format(env.get("BUDDY_PIPELINE_ID"), env.get("BUDDY_EXECUTION_ID")),
        PIPELINE_NAME: env.get("BUDDY_PIPELINE_NAME"),
        PIPELINE_NUMBER: env.get("BUDDY_EXECUTION_ID"),
        PIPELINE_URL: env.get("BUDDY_EXECUTION_URL"),
        git.COMMIT_SHA: env.get("BUDDY_EXECUTION_REVISION"),
        git.REPOSITORY_URL: env.get("BUDDY_SCM_URL"),
        git.BRANCH: env.get("BUDDY_EXECUTION_BRANCH"),
        git.TAG: env.get("BUDDY_EXECUTION_TAG"),
        git.COMMIT_MESSAGE: env.get("BUDDY_EXECUTION_REVISION_MESSAGE"),
        git.COMMIT_COMMITTER_NAME: env.get("BUDDY_EXECUTION_REVISION_COMMITTER_NAME"),
        git.COMMIT_COMMITTER_EMAIL: env.get("BUDDY_EXECUTION_REVISION_COMMITTER_EMAIL"),
    }


@register_provider("BUILDKITE")
def extract_buildkite(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Buildkite environ."""
    return {
        PROVIDER_NAME: "buildkite",
        git.BRANCH: env.get("BUILDKITE_BRANCH"),
        git.COMMIT_SHA: env.get("BUILDKITE_COMMIT"),
        git.REPOSITORY_URL: env.get("BUILDKITE_REPO"),
        git.TAG: env.get("BUILDKITE_TAG"),
        PIPELINE_ID: env.get("BUILDKITE_BUILD_ID"),
        PIPELINE_NAME: env.get("BUILDKITE_PIPELINE_SLUG"),
        PIPELINE_NUMBER: env.get("BUILDKITE_BUILD_NUMBER"),
        PIPELINE_URL: env.get("BUILDKITE_BUILD_URL"),
        JOB_URL: "{0}#{1}".format(env.get("BUILDKITE_BUILD_URL"), env.get("BUILDKITE_JOB_ID")),
        WORKSPACE_PATH: env.get("BUILDKITE_BUILD_CHECKOUT_PATH"),
        git.COMMIT_MESSAGE: env.get("BUILDKITE_MESSAGE"),
        git.COMMIT_AUTHOR_NAME: env.get("BUILDKITE_BUILD_AUTHOR"),
        git.COMMIT_AUTHOR_EMAIL: env.get("BUILDKITE_BUILD_AUTHOR_EMAIL"),
        _CI_ENV_VARS: env.json("BUILDKITE_BUILD_ID", "BUILDKITE_JOB_ID"),
    }


@register_provider("CIRCLECI")
def extract_circle_ci(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from CircleCI environ."""
    return {
        PROVIDER_NAME: "circleci",
        git.REPOSITORY_URL: env.get("CIRCLE_REPOSITORY_URL"),
        git.COMMIT_SHA: env.get("CIRCLE_SHA1"),
        git.TAG: env.get("CIRCLE_TAG"),
        git.BRANCH: env.get("CIRCLE_BRANCH"),
        WORKSPACE_PATH: env.get("CIRCLE_WORKING_DIRECTORY"),
        PIPELINE_ID: env.get("CIRCLE_WORKFLOW_ID"),
        PIPELINE_NAME: env.get("CIRCLE_PROJECT_REPONAME"),
        PIPELINE_NUMBER: env.get("CIRCLE_BUILD_NUM"),
        PIPELINE_URL: "https://app.circleci.com/pipelines/workflows/{0}".format(env.get("CIRCLE_WORKFLOW_ID")),
        JOB_NAME: env.get("CIRCLE_JOB"),
        JOB_URL: env.get("CIRCLE_BUILD_URL"),
        _CI_ENV_VARS: env.json("CIRCLE_BUILD_NUM", "CIRCLE_WORKFLOW_ID"),
    }


@register_provider("GITHUB_SHA")
def extract_github_actions(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Github environ."""
    branch, tag = _split_branch_or_tag(env.first("GITHUB_HEAD_REF", "GITHUB_REF"))

    server_url = (env.get("GITHUB_SERVER_URL") or "https://github.com").rstrip("/")
    repository = "{0}/{1}".format(server_url, env.get("GITHUB_REPOSITORY"))
    run_id = env.get("GITHUB_RUN_ID")
    commit_sha = env.get("GITHUB_SHA")

    pipeline_url = "{0}/actions/runs/{1}".format(repository, run_id)
    attempt = env.get("GITHUB_RUN_ATTEMPT")
    if attempt:
        pipeline_url += "/attempts/{0}".format(attempt)

    return {
        PROVIDER_NAME: "github",
        git.REPOSITORY_URL: repository + ".git",
        git.COMMIT_SHA: commit_sha,
        git.BRANCH: branch,
        git.TAG: tag,
        WORKSPACE_PATH: env.get("GITHUB_WORKSPACE"),
        PIPELINE_ID: run_id,
        PIPELINE_NAME: env.get("GITHUB_WORKFLOW"),
        PIPELINE_NUMBER: env.get("GITHUB_RUN_NUMBER"),
        PIPELINE_URL: pipeline_url,
        JOB_NAME: env.get("GITHUB_JOB"),
        JOB_URL: "{0}/commit/{1}/checks".format(repository, commit_sha),
        _CI_ENV_VARS: env.json("GITHUB_SERVER_URL", "GITHUB_REPOSITORY", "GITHUB_RUN_ID", "GITHUB_RUN_ATTEMPT"),
    }


@register_provider("GITLAB_CI")
def extract_gitlab(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Gitlab environ."""
    url = env.get("CI_PIPELINE_URL").replace("/-/pipelines/", "/pipelines/")
    author_name, author_email = split_author(env.get("CI_COMMIT_AUTHOR"))
    return {
        PROVIDER_NAME: "gitlab",
        git.REPOSITORY_URL: env.get("CI_REPOSITORY_URL"),
        git.COMMIT_SHA: env.get("CI_COMMIT_SHA"),
        git.BRANCH: env.first("CI_COMMIT_BRANCH", "CI_COMMIT_REF_NAME"),
        git.TAG: env.get("CI_COMMIT_TAG"),
        WORKSPACE_PATH: env.get("CI_PROJECT_DIR"),
        PIPELINE_ID: env.get("CI_PIPELINE_ID"),
        PIPELINE_NAME: env.get("CI_PROJECT_PATH"),
        PIPELINE_NUMBER: env.get("CI_PIPELINE_IID"),
        PIPELINE_URL: url,
        JOB_URL: env.get("CI_JOB_URL"),
        JOB_NAME: env.get("CI_JOB_NAME"),
        STAGE_NAME: env.get("CI_JOB_STAGE"),
        git.COMMIT_MESSAGE: env.get("CI_COMMIT_MESSAGE"),
        git.COMMIT_AUTHOR_NAME: author_name,
        git.COMMIT_AUTHOR_EMAIL: author_email,
        git.COMMIT_AUTHOR_DATE: env.get("CI_COMMIT_TIMESTAMP"),
        _CI_ENV_VARS: env.json("CI_PROJECT_URL", "CI_PIPELINE_ID", "CI_JOB_ID"),
    }


@register_provider("JENKINS_URL")
def extract_jenkins(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Jenkins environ."""
    branch, tag = _split_branch_or_tag(env.get("GIT_BRANCH"))
    name = env.get("JOB_NAME")
    if name and branch:
        # multibranch pipelines append the branch to the job name
        name = re.sub("/" + re.escape(git.normalize_ref(branch)), "", name)
    if name:
        name = _RE_JOB_NAME_VARS.sub("", name)

    return {
        PROVIDER_NAME: "jenkins",
        git.REPOSITORY_URL: env.first("GIT_URL", "GIT_URL_1"),
        git.COMMIT_SHA: env.get("GIT_COMMIT"),
        git.BRANCH: branch,
        git.TAG: tag,
        WORKSPACE_PATH: env.get("WORKSPACE"),
        PIPELINE_ID: env.get("BUILD_TAG"),
        PIPELINE_NAME: name,
        PIPELINE_NUMBER: env.get("BUILD_NUMBER"),
        PIPELINE_URL: env.get("BUILD_URL"),
        _CI_ENV_VARS: env.json("DD_CUSTOM_TRACE_ID"),
    }


@register_provider("TEAMCITY_VERSION")
def extract_teamcity(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Teamcity environ."""
    if env.get("SERVER_URL") and env.get("BUILD_ID"):
        pipeline_url = "{0}/viewLog.html?buildId={1}".format(env.get("SERVER_URL"), env.get("BUILD_ID"))
    else:
        pipeline_url = ""

    return {
        PROVIDER_NAME: "teamcity",
        git.REPOSITORY_URL: env.get("BUILD_VCS_URL"),
        git.COMMIT_SHA: env.get("BUILD_VCS_NUMBER"),
        WORKSPACE_PATH: env.get("BUILD_CHECKOUTDIR"),
        PIPELINE_ID: env.get("BUILD_ID"),
        PIPELINE_NUMBER: env.get("BUILD_NUMBER"),
        PIPELINE_URL: pipeline_url,
    }


@register_provider("TRAVIS")
def extract_travis(env: Environment) -> t.Dict[str, str]:
    """Extract CI tags from Travis environ."""
    repo_slug = env.get("TRAVIS_PULL_REQUEST_SLUG")
    if not repo_slug.strip():
        repo_slug = env.get("TRAVIS_REPO_SLUG")
    return {
        PROVIDER_NAME: "travisci",
        git.REPOSITORY_URL: "https://github.com/{0}.git".format(repo_slug),
        git.COMMIT_SHA: env.get("TRAVIS_COMMIT"),
        git.TAG: env.get("TRAVIS_TAG"),
        git.BRANCH: env.first("TRAVIS_PULL_REQUEST_BRANCH", "TRAVIS_BRANCH"),
        WORKSPACE_PATH: env.get("TRAVIS_BUILD_DIR"),
        PIPELINE_ID: env.get("TRAVIS_BUILD_ID"),
        PIPELINE_NAME: repo_slug,
        PIPELINE_NUMBER: env.get("TRAVIS_BUILD_NUMBER"),
        PIPELINE_URL: env.get("TRAVIS_BUILD_WEB_URL"),
        JOB_URL: env.get("TRAVIS_JOB_WEB_URL"),
        git.COMMIT_MESSAGE: env.get("TRAVIS_COMMIT_MESSAGE"),
    }
