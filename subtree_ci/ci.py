"""Helpers describing the build context (CI or local) and its capabilities."""

import os
import shutil

import click

from .config import CIEnvironment
from .console import log_info

SILENT = "--silent"


def is_ci_build(env: CIEnvironment, msg: str = "installing dependencies") -> bool:
    """
    Check if currently performing a CI or a local build.

    Args:
        env: Build environment
        msg: Task that is NOT executed when building locally. Not reported
            if equal to "--silent".

    Returns:
        True for a CI build
    """
    if not env.ci:
        if msg != SILENT:
            log_info(f"Local build, skip {msg}")
        return False
    return True


def can_fail_without_private(env: CIEnvironment) -> int:
    """
    Exit status to use when private data (tokens) is unavailable.

    Pull request builds have no access to secrets, so they pass (0); every
    other build fails (1).
    """
    return 0 if env.is_pull_request else 1


def has_gh_token(env: CIEnvironment) -> bool:
    """Check if a GitHub token is available for pushing."""
    return env.has_gh_token


def prompt_key_local(env: CIEnvironment, message: str) -> None:
    """
    Ask the operator to press a key before continuing a local build.

    CI builds continue without prompting.

    Raises:
        click.Abort: if the operator presses Ctrl-C
    """
    if is_ci_build(env, SILENT):
        return
    log_info(message)
    log_info("Press a key to continue, CTRL-C to abort...")
    try:
        click.getchar()
    except (KeyboardInterrupt, EOFError):
        raise click.Abort() from None


def check_executable(name: str) -> bool:
    """Check whether a program is on PATH and executable."""
    path = shutil.which(name)
    return path is not None and os.access(path, os.X_OK)
