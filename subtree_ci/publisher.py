"""
Subtree publishing.

Stages the changes below a subtree, commits them and pushes them to the
remote. CI builds commit with the configured identity and retry the
pull/push cycle; local builds ask the operator first and push once.
"""

import shlex
from collections.abc import Mapping
from dataclasses import dataclass

import click
from git.exc import GitCommandError

from .ci import (
    SILENT,
    can_fail_without_private,
    has_gh_token,
    is_ci_build,
    prompt_key_local,
)
from .config import CIEnvironment, ConfigurationError, SubtreeConfig, resolve
from .console import log_error, log_info
from .git_ops import SubtreeRepository, inject_token_into_url
from .retry import RetryPolicy

DEFAULT_ATTEMPTS = 4

# Push arguments that publish every ref, so no single branch is targeted
FULL_HISTORY_FLAGS = ("--all", "--mirror")
# Push arguments that overwrite the remote, so pulling first is pointless
NO_PULL_FLAGS = ("--force",) + FULL_HISTORY_FLAGS

COMMIT_TEMPLATE = (
    "\n"
    "# Enter the commit message for the subtree update.\n"
    "# Lines starting with '#' are ignored, an empty message skips the commit.\n"
)


def requests_full_history(push_args: str) -> bool:
    """Check if the push arguments publish all refs (--all or --mirror)."""
    return any(flag in push_args for flag in FULL_HISTORY_FLAGS)


def skips_pull(push_args: str) -> bool:
    """Check if the push arguments make pulling before the push unnecessary."""
    return any(flag in push_args for flag in NO_PULL_FLAGS)


def automatic_commit_message(ci_target: str) -> str:
    """Commit message used for CI updates, e.g. "docs publish: Automatic update"."""
    return f"{ci_target.replace('-', ' ')}: Automatic update"


@dataclass
class PublishResult:
    """Result of a publish operation."""

    exit_code: int
    iterations: int = 0
    pull_attempts: int = 0
    push_attempts: int = 0
    pushed: bool = False
    commit: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class SubtreePublisher:
    """Commits and pushes a subtree checked out by SubtreeSynchronizer."""

    def __init__(
        self,
        config: SubtreeConfig,
        env: CIEnvironment,
        attempts: int = DEFAULT_ATTEMPTS,
        retry_policy: RetryPolicy | None = None,
    ):
        """Initialize the publisher; attempts is ignored when a policy is given."""
        self.config = config
        self.env = env
        self.retry_policy = retry_policy or RetryPolicy(attempts=attempts, delay=1.0)

    def _push_branch(self, push_args: str) -> str | None:
        # --all and --mirror cannot be combined with a refspec
        if requests_full_history(push_args):
            return None
        return self.config.branch

    @property
    def target(self) -> str:
        return f"{self.config.repo} {self.config.branch_label}"

    def _push_url(self) -> str:
        url = self.env.push_url_for(self.config.repo)
        if self.env.gh_token:
            url = inject_token_into_url(url, self.env.gh_token)
        return url

    def publish(self, push_args: str = "") -> PublishResult:
        """
        Stage, commit and push the subtree.

        Args:
            push_args: Extra arguments for `git push`. With --force, --all or
                --mirror no pull is attempted; with --all or --mirror no
                branch is required.

        Returns:
            PublishResult whose exit_code is 0 on success and 1 on failure

        Raises:
            ConfigurationError: if a required setting is missing
            ValueError: if the directory is not a repository
            GitCommandError: if staging, committing or a local push fails
        """
        self.env.require("ci_target", "git_name", "git_email")
        if not requests_full_history(push_args) and not self.config.branch:
            raise ConfigurationError(
                f"missing branch for subtree {self.config.subtree}"
            )

        repo = SubtreeRepository(self.config.dir)
        repo.stage_subtree(self.config.subtree)

        if is_ci_build(self.env, SILENT):
            return self._publish_ci(repo, push_args)
        return self._publish_local(repo, push_args)

    def _publish_ci(self, repo: SubtreeRepository, push_args: str) -> PublishResult:
        config = self.config
        env = self.env
        args = shlex.split(push_args)
        pull = not skips_pull(push_args)
        pull_url = env.pull_url_for(config.repo)
        push_url = self._push_url()

        repo.set_identity(env.git_name, env.git_email)
        result = PublishResult(exit_code=1)
        result.commit = repo.commit(automatic_commit_message(env.ci_target))

        # Returns the exit status once the loop is over, None to go again
        def attempt(number: int) -> int | None:
            result.iterations += 1
            if pull:
                result.pull_attempts += 1
                try:
                    repo.pull_rebase(pull_url, config.branch)
                except GitCommandError as e:
                    log_error(f"Pull failed: {config.repo} {config.branch}: {e.stderr.strip()}")
                    raise

            if not has_gh_token(env):
                log_info("GH_TOKEN not set; push skipped")
                log_info("To test pull requests, see instructions in README.md")
                return can_fail_without_private(env)

            result.push_attempts += 1
            try:
                repo.push(push_url, self._push_branch(push_args), args)
            except GitCommandError as e:
                log_error(f"Push failed: {self.target}: {e.stderr.strip()}")
                raise
            log_info(f"Pushed to: {self.target}")
            result.pushed = True
            return 0

        outcome = self.retry_policy.run(attempt, description=f"push to: {self.target}")
        if outcome.succeeded:
            result.exit_code = outcome.value
        else:
            log_error(f"Giving up push to: {self.target}")
        return result

    def _publish_local(self, repo: SubtreeRepository, push_args: str) -> PublishResult:
        prompt_key_local(
            self.env,
            f"Build finished; commit and push to "
            f"{self.config.repo}:{self.config.branch_label} ?",
        )

        result = PublishResult(exit_code=0)
        message = click.edit(COMMIT_TEMPLATE)
        lines = [
            line for line in (message or "").splitlines() if not line.startswith("#")
        ]
        message = "\n".join(lines).strip()
        if message:
            result.commit = repo.commit(message)
        else:
            log_info("Empty commit message; nothing committed")

        result.push_attempts = 1
        repo.push(
            self._push_url(), self._push_branch(push_args), shlex.split(push_args)
        )
        log_info(f"Pushed to: {self.target}")
        result.pushed = True
        return result


def publish_subtree(
    prefix: str,
    attempts: int = DEFAULT_ATTEMPTS,
    push_args: str = "",
    environ: Mapping[str, str] | None = None,
    retry_policy: RetryPolicy | None = None,
) -> PublishResult:
    """Resolve the configuration for a prefix and publish its subtree."""
    env = CIEnvironment.from_environ(environ)
    env.require("ci_target", "git_name", "git_email")
    config = resolve(prefix, environ, require_branch=not requests_full_history(push_args))
    publisher = SubtreePublisher(config, env, attempts=attempts, retry_policy=retry_policy)
    return publisher.publish(push_args)
