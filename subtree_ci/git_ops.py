"""
Git operations for subtree checkouts.

Provides a wrapper around a local working directory using GitPython. Every
command runs with the repository as its working directory, so the caller's
current directory is never changed.
"""

import re
from pathlib import Path

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .console import log_info


class GitHelperError(RuntimeError):
    """A history helper (truncate, tag lookup) could not complete."""


def inject_token_into_url(url: str, token: str) -> str:
    """
    Inject a token into a git URL for authentication.

    Converts SSH URLs to HTTPS and adds the token. Other URLs (local paths,
    git://) are returned unchanged.
    """
    # If already HTTPS with credentials, return as-is
    if "@" in url and url.startswith("https://"):
        return url

    # git@github.com:org/repo.git -> https://x-access-token:<token>@github.com/org/repo.git
    ssh_match = re.match(r"git@([^:]+):(.+)", url)
    if ssh_match:
        host, path = ssh_match.groups()
        return f"https://x-access-token:{token}@{host}/{path}"

    https_match = re.match(r"https://([^/]+)/(.+)", url)
    if https_match:
        host, path = https_match.groups()
        return f"https://x-access-token:{token}@{host}/{path}"

    return url


class SubtreeRepository:
    """Wrapper around the local working directory of a subtree checkout."""

    def __init__(self, path: Path):
        """Initialize repository wrapper."""
        self.path = Path(path).resolve()
        try:
            self.repo = Repo(self.path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise ValueError(f"Not a valid git repository: {self.path}") from e

    @classmethod
    def ensure(cls, path: Path) -> "SubtreeRepository":
        """Open the repository at path, running `git init` first if it has no .git."""
        path = Path(path)
        if path.exists() and not path.is_dir():
            raise ValueError(f"Not a directory: {path}")
        if not (path / ".git").is_dir():
            log_info(f"Initializing repository in {path}")
            Repo.init(path, mkdir=True)
        return cls(path)

    def has_head(self) -> bool:
        """Check if HEAD points to a commit."""
        return self.repo.head.is_valid()

    def get_current_commit(self) -> str:
        """Get the current HEAD commit hash."""
        return self.repo.head.commit.hexsha

    def get_current_branch(self) -> str:
        """Get the current branch name."""
        return self.repo.active_branch.name

    def reset_hard(self) -> None:
        """Discard local modifications of the index and working tree."""
        self.repo.git.reset("--hard", "HEAD")

    def enable_sparse_checkout(self, *patterns: str) -> None:
        """Restrict the working tree to the given patterns."""
        with self.repo.config_writer(config_level="repository") as writer:
            writer.set_value("core", "sparsecheckout", "true")

        sparse_file = Path(self.repo.git_dir) / "info" / "sparse-checkout"
        sparse_file.parent.mkdir(parents=True, exist_ok=True)
        sparse_file.write_text("".join(f"{pattern}\n" for pattern in patterns))

    def checkout_branch(self, branch: str) -> None:
        """Create or reset a local branch at the current HEAD and switch to it."""
        self.repo.git.checkout("-B", branch)

    def pull_rebase(self, url: str, branch: str | None, force: bool = False) -> None:
        """Pull a branch from a URL, rebasing local commits on top."""
        args = ["--rebase"]
        if force:
            args.append("--force")
        args.append(url)
        if branch:
            args.append(branch)
        self.repo.git.pull(*args)

    def stage_subtree(self, subtree: str) -> None:
        """Stage every change (including deletions) below the subtree path."""
        self.repo.git.add("--all", f"./{subtree}")

    def set_identity(self, name: str, email: str) -> None:
        """Set the committer identity for this repository only."""
        with self.repo.config_writer(config_level="repository") as writer:
            writer.set_value("user", "name", name)
            writer.set_value("user", "email", email)

    def commit(self, message: str) -> str | None:
        """
        Create a commit with the staged changes.

        Returns:
            The new commit hash, or None when there was nothing to commit
        """
        try:
            self.repo.git.commit("-m", message)
        except GitCommandError as e:
            if "nothing to commit" in str(e).lower() or "nothing added" in str(e).lower():
                return None
            raise
        return self.repo.head.commit.hexsha

    def has_staged_changes(self) -> bool:
        """Check if the index differs from HEAD."""
        if not self.has_head():
            return bool(self.repo.index.entries)
        return len(self.repo.index.diff("HEAD")) > 0

    def push(
        self,
        url: str,
        branch: str | None = None,
        push_args: list[str] | None = None,
    ) -> None:
        """Push to a URL, optionally restricted to one branch."""
        args = list(push_args or [])
        args.append(url)
        if branch:
            args.append(branch)
        self.repo.git.push(*args)

    def truncate_history(self, branch: str, new_root: str) -> str:
        """
        Rewrite a branch so that its history starts at new_root.

        The tree of new_root becomes a parentless commit and every commit after
        new_root is rebased onto it.

        Returns:
            The new HEAD commit hash

        Raises:
            GitHelperError: if either revision is invalid
        """
        try:
            old_head = self.repo.git.rev_parse(branch)
        except GitCommandError as e:
            raise GitHelperError(f"git_truncate: invalid branch: {branch}") from e
        try:
            root = self.repo.git.rev_parse(new_root)
        except GitCommandError as e:
            raise GitHelperError(f"git_truncate: invalid branch: {new_root}") from e

        self.repo.git.checkout("--orphan", "temp", root)
        self.repo.git.commit("-m", "truncate history")
        self.repo.git.rebase("--onto", "temp", root, branch)
        self.repo.git.branch("-D", "temp")

        new_head = self.repo.git.rev_parse("HEAD")
        log_info(f"git_truncate: new_root: {root}")
        log_info(f"git_truncate: old HEAD: {old_head}")
        log_info(f"git_truncate: new HEAD: {new_head}")
        return new_head

    def last_tag(self) -> str:
        """
        Get the most recent tag reachable from HEAD, ignoring "nightly".

        Raises:
            GitHelperError: if no tag is reachable
        """
        try:
            return self.repo.git.describe("--abbrev=0", "--exclude=nightly")
        except GitCommandError as e:
            raise GitHelperError("git_last_tag: 'git describe' failed") from e

    def commits_since_tag(self, tag: str, ref: str) -> int:
        """
        Count the commits in tag..ref.

        Raises:
            GitHelperError: if either revision is invalid
        """
        try:
            count = int(self.repo.git.rev_list(f"{tag}..{ref}", "--count"))
        except GitCommandError as e:
            raise GitHelperError("git_commits_since_tag: 'git rev-list' failed") from e
        log_info(f"git_commits_since_tag: tag={tag} commits_since={count}")
        return count
