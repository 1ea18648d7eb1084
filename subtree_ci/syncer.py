"""
Subtree synchronization.

Brings a local working directory to a clean checkout of one subtree of a
remote repository: initialize if needed, discard local modifications, restrict
the working tree to the subtree in CI builds, and pull the configured branch.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from .ci import is_ci_build
from .config import CIEnvironment, ConfigurationError, SubtreeConfig, resolve
from .console import log_info
from .git_ops import SubtreeRepository
from .retry import RetryPolicy


@dataclass
class SyncResult:
    """Result of a sync operation."""

    head: str | None
    branch: str
    sparse: bool
    pull_attempts: int


class SubtreeSynchronizer:
    """Keeps a local checkout of one subtree in step with its remote."""

    def __init__(
        self,
        config: SubtreeConfig,
        env: CIEnvironment,
        retry_policy: RetryPolicy | None = None,
    ):
        """Initialize the synchronizer with configuration."""
        self.config = config
        self.env = env
        self.retry_policy = retry_policy or RetryPolicy(attempts=1)

    def sync(self) -> SyncResult:
        """
        Perform the synchronization.

        Returns:
            SyncResult describing the resulting checkout

        Raises:
            ConfigurationError: if no branch is configured
            ValueError: if the directory cannot be opened as a repository
            GitCommandError: if any git command fails
        """
        config = self.config
        if not config.branch:
            raise ConfigurationError(f"missing branch for subtree {config.subtree}")

        repo = SubtreeRepository.ensure(config.dir)

        if repo.has_head():
            repo.reset_hard()

        sparse = is_ci_build(self.env, "Git subtree")
        if sparse:
            repo.enable_sparse_checkout(config.subtree)

        repo.checkout_branch(config.branch)

        url = self.env.pull_url_for(config.repo)

        def pull(attempt: int) -> bool:
            repo.pull_rebase(url, config.branch, force=True)
            return True

        outcome = self.retry_policy.run(
            pull, description=f"pull from: {config.repo} {config.branch}"
        )
        if not outcome.succeeded:
            if outcome.errors:
                raise outcome.errors[-1]
            raise ConfigurationError("retry policy allows no pull attempts")

        head = repo.get_current_commit() if repo.has_head() else None
        log_info(f"Synced {config.repo} {config.branch} into {config.dir}")
        return SyncResult(
            head=head,
            branch=config.branch,
            sparse=sparse,
            pull_attempts=outcome.attempts,
        )


def sync_subtree(
    prefix: str,
    environ: Mapping[str, str] | None = None,
    retry_policy: RetryPolicy | None = None,
) -> SyncResult:
    """Resolve the configuration for a prefix and synchronize its subtree."""
    config = resolve(prefix, environ)
    env = CIEnvironment.from_environ(environ)
    return SubtreeSynchronizer(config, env, retry_policy).sync()
