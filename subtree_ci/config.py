"""
Configuration handling for subtree_ci.

Defines the per-subtree configuration record, the registry that maps a
configuration prefix to it, and the ambient CI build environment. Values are
read from the process environment (or any mapping standing in for it) or from
a YAML file.
"""

import inspect
import os
import platform
import sys
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import ClassVar

import yaml
from pydantic import BaseModel, Field


DEFAULT_PULL_URL = "git://github.com/{repo}"
DEFAULT_PUSH_URL = "https://github.com/{repo}"

# Suffixes of the four variables that make up one subtree configuration
SUBTREE_SUFFIXES = ("SUBTREE", "DIR", "REPO", "BRANCH")


class ConfigurationError(ValueError):
    """A required setting is missing or empty."""


def _call_site(stacklevel: int) -> str:
    frame = inspect.currentframe()
    for _ in range(stacklevel + 1):
        if frame is None or frame.f_back is None:
            break
        frame = frame.f_back
    if frame is None:
        return "<unknown>"
    return f"{Path(frame.f_code.co_filename).name}:{frame.f_lineno}"


def require_environment_variable(
    name: str,
    environ: Mapping[str, str] | None = None,
    stacklevel: int = 1,
) -> str:
    """
    Return the value of an environment variable, failing if it is unset or empty.

    Args:
        name: Variable name
        environ: Mapping to read from (defaults to os.environ)
        stacklevel: Which caller to report as the call site (1 = direct caller)

    Raises:
        ConfigurationError: naming the variable and the calling file:line
    """
    environ = os.environ if environ is None else environ
    value = environ.get(name, "")
    if not value:
        site = _call_site(stacklevel)
        raise ConfigurationError(
            f"{site}: missing env var: {name}\n"
            "    Maybe you need to export it in the CI job environment?"
        )
    return value


def get_os() -> str:
    """Get the current OS, either "osx" or "linux"."""
    if platform.system() == "Darwin":
        return "osx"
    return "linux"


def default_ci_target() -> str:
    """Get the base name of the invoking script, without a .sh suffix."""
    return Path(sys.argv[0]).name.removesuffix(".sh") if sys.argv else ""


class SubtreeConfig(BaseModel):
    """Configuration for one subtree, identified by its prefix."""

    # Path of the subtree inside the repository
    subtree: str = Field(..., description="Path prefix synchronized inside the repo")
    # Local working directory holding the checkout
    dir: Path = Field(..., description="Local working directory for the checkout")
    # Remote repository identifier, e.g. org/docs
    repo: str = Field(..., description="Remote repository identifier (owner/name)")
    # Branch to check out and publish to
    branch: str | None = Field(
        None,
        description="Branch name (may be omitted for --all/--mirror pushes)",
    )

    @property
    def branch_label(self) -> str:
        """Branch name for display, "*" when no single branch is targeted."""
        return self.branch or "*"


def resolve(
    prefix: str,
    environ: Mapping[str, str] | None = None,
    require_branch: bool = True,
) -> SubtreeConfig:
    """
    Resolve the configuration for a prefix from the environment.

    Reads {prefix}_SUBTREE, {prefix}_DIR, {prefix}_REPO and {prefix}_BRANCH.
    Every variable must be set and non-empty; the branch may be left out when
    require_branch is False.

    Raises:
        ConfigurationError: for the first missing variable
    """
    environ = os.environ if environ is None else environ
    values: dict[str, str | None] = {}
    for suffix in SUBTREE_SUFFIXES:
        name = f"{prefix}_{suffix}"
        if suffix == "BRANCH" and not require_branch:
            values[suffix] = environ.get(name) or None
            continue
        values[suffix] = require_environment_variable(name, environ, stacklevel=2)

    return SubtreeConfig(
        subtree=values["SUBTREE"],
        dir=Path(values["DIR"]),
        repo=values["REPO"],
        branch=values["BRANCH"],
    )


class SubtreeRegistry(BaseModel):
    """Mapping of configuration prefix to subtree configuration."""

    subtrees: dict[str, SubtreeConfig] = Field(
        default_factory=dict, description="Subtree configurations by prefix"
    )

    @classmethod
    def from_environment(
        cls,
        prefixes: Iterable[str],
        environ: Mapping[str, str] | None = None,
        require_branch: bool = True,
    ) -> "SubtreeRegistry":
        """Build a registry by resolving each prefix from the environment."""
        return cls(
            subtrees={
                prefix: resolve(prefix, environ, require_branch=require_branch)
                for prefix in prefixes
            }
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "SubtreeRegistry":
        """Load the registry from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def to_yaml(self, path: Path) -> None:
        """Save the registry to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(
                self.model_dump(mode="json"),
                f,
                default_flow_style=False,
                sort_keys=False,
            )

    def get(self, prefix: str, require_branch: bool = True) -> SubtreeConfig:
        """
        Look up the configuration for a prefix.

        Raises:
            ConfigurationError: if the prefix is unknown or its branch is
                required but not set
        """
        config = self.subtrees.get(prefix)
        if config is None:
            raise ConfigurationError(f"unknown subtree prefix: {prefix}")
        if require_branch and not config.branch:
            raise ConfigurationError(f"missing branch for subtree prefix: {prefix}")
        return config


class CIEnvironment(BaseModel):
    """Ambient settings of the current build."""

    build_dir: Path = Field(..., description="Build output directory (BUILD_DIR)")
    ci_target: str = Field(
        default_factory=default_ci_target,
        description="Name of the CI target (CI_TARGET)",
    )
    ci_os: str = Field(default_factory=get_os, description="Build OS (CI_OS)")
    make_cmd: str = Field(default="make -j2", description="Make command (MAKE_CMD)")
    git_name: str = Field(default="marvim", description="Committer name (GIT_NAME)")
    git_email: str = Field(
        default="marvim@users.noreply.github.com",
        description="Committer email (GIT_EMAIL)",
    )
    ci: bool = Field(default=False, description="Whether this is a CI build (CI)")
    github_event_name: str | None = Field(
        None, description="Event that triggered the build (GITHUB_EVENT_NAME)"
    )
    gh_token: str | None = Field(
        None, description="Token used to publish (GH_TOKEN)", repr=False
    )
    pull_url: str = Field(
        default=DEFAULT_PULL_URL,
        description="Template of the URL pulled from (SUBTREE_CI_PULL_URL)",
    )
    push_url: str = Field(
        default=DEFAULT_PUSH_URL,
        description="Template of the URL pushed to (SUBTREE_CI_PUSH_URL)",
    )

    # Environment variable backing each required field
    VARIABLES: ClassVar[dict[str, str]] = {
        "ci_target": "CI_TARGET",
        "git_name": "GIT_NAME",
        "git_email": "GIT_EMAIL",
    }

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> "CIEnvironment":
        """
        Load the build environment.

        BUILD_DIR is required; every other value falls back to its default when
        unset or empty.
        """
        environ = os.environ if environ is None else environ
        build_dir = require_environment_variable("BUILD_DIR", environ, stacklevel=2)

        data: dict[str, object] = {"build_dir": build_dir}
        optional = {
            "ci_target": "CI_TARGET",
            "ci_os": "TRAVIS_OS_NAME",
            "make_cmd": "MAKE_CMD",
            "git_name": "GIT_NAME",
            "git_email": "GIT_EMAIL",
            "github_event_name": "GITHUB_EVENT_NAME",
            "gh_token": "GH_TOKEN",
            "pull_url": "SUBTREE_CI_PULL_URL",
            "push_url": "SUBTREE_CI_PUSH_URL",
        }
        for field, variable in optional.items():
            if value := environ.get(variable):
                data[field] = value
        data["ci"] = environ.get("CI") == "true"
        return cls.model_validate(data)

    def require(self, *fields: str) -> None:
        """
        Fail if any of the named settings is empty.

        Raises:
            ConfigurationError: naming the backing environment variable
        """
        for field in fields:
            if not getattr(self, field):
                site = _call_site(1)
                variable = self.VARIABLES.get(field, field.upper())
                raise ConfigurationError(f"{site}: missing env var: {variable}")

    @property
    def is_pull_request(self) -> bool:
        """Whether the build was triggered by a pull request."""
        return self.github_event_name == "pull_request"

    @property
    def has_gh_token(self) -> bool:
        """Whether a publish token is configured."""
        return bool(self.gh_token)

    def pull_url_for(self, repo: str) -> str:
        """Get the URL pulled from for a repository."""
        return self.pull_url.format(repo=repo)

    def push_url_for(self, repo: str) -> str:
        """Get the URL pushed to for a repository."""
        return self.push_url.format(repo=repo)
