"""
CLI entry point for subtree_ci.

Provides the command-line interface that CI build scripts call to synchronize
and publish subtrees.
"""

import functools
from pathlib import Path

import click
from git.exc import GitCommandError

from .ci import is_ci_build
from .config import (
    CIEnvironment,
    ConfigurationError,
    SubtreeConfig,
    SubtreeRegistry,
    get_os,
    resolve,
)
from .console import console, log_error
from .git_ops import GitHelperError, SubtreeRepository
from .publisher import DEFAULT_ATTEMPTS, SubtreePublisher, requests_full_history
from .retry import RetryPolicy
from .syncer import SubtreeSynchronizer


def fail_on_errors(func):
    """Report configuration and git failures and exit with status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ConfigurationError, GitHelperError, GitCommandError, ValueError) as e:
            log_error(str(e))
            raise SystemExit(1)

    return wrapper


def lookup_subtree(
    ctx: click.Context, prefix: str, require_branch: bool = True
) -> SubtreeConfig:
    """Get the configuration of a prefix from the --config file or the environment."""
    registry: SubtreeRegistry | None = ctx.obj.get("registry")
    if registry is not None:
        return registry.get(prefix, require_branch=require_branch)
    return resolve(prefix, require_branch=require_branch)


@click.group()
@click.version_option(package_name="subtree-ci")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file mapping prefixes to subtree settings (defaults to {PREFIX}_* env vars)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None):
    """Subtree CI - Synchronize and publish repository subtrees from CI builds."""
    ctx.ensure_object(dict)
    if config_path is not None:
        try:
            ctx.obj["registry"] = SubtreeRegistry.from_yaml(config_path)
        except Exception as e:
            log_error(f"Error loading config: {e}")
            raise SystemExit(1)


@cli.command()
@click.argument("prefix")
@click.option(
    "--attempts",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Number of times the pull is attempted",
)
@click.pass_context
@fail_on_errors
def sync(ctx: click.Context, prefix: str, attempts: int):
    """Check out the subtree configured by PREFIX and pull its branch."""
    config = lookup_subtree(ctx, prefix)
    env = CIEnvironment.from_environ()
    SubtreeSynchronizer(config, env, RetryPolicy(attempts=attempts)).sync()


@cli.command()
@click.argument("prefix")
@click.option(
    "--attempts",
    type=click.IntRange(min=0),
    default=DEFAULT_ATTEMPTS,
    show_default=True,
    help="Number of pull/push cycles before giving up",
)
@click.option(
    "--push-args",
    default="",
    help='Extra arguments to "git push"; with --force no pull is attempted',
)
@click.pass_context
@fail_on_errors
def publish(ctx: click.Context, prefix: str, attempts: int, push_args: str):
    """Commit and push the subtree configured by PREFIX."""
    env = CIEnvironment.from_environ()
    env.require("ci_target", "git_name", "git_email")
    config = lookup_subtree(
        ctx, prefix, require_branch=not requests_full_history(push_args)
    )
    result = SubtreePublisher(config, env, attempts=attempts).publish(push_args)
    ctx.exit(result.exit_code)


@cli.command()
@click.argument("branch")
@click.argument("new_root")
@click.option(
    "--repo",
    "repo_path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Repository to operate on",
)
@fail_on_errors
def truncate(branch: str, new_root: str, repo_path: Path):
    """Rewrite BRANCH so that its history starts at NEW_ROOT."""
    SubtreeRepository(repo_path).truncate_history(branch, new_root)


@cli.command(name="last-tag")
@click.option(
    "--repo",
    "repo_path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Repository to operate on",
)
@fail_on_errors
def last_tag(repo_path: Path):
    """Print the most recent tag, ignoring "nightly"."""
    click.echo(SubtreeRepository(repo_path).last_tag())


@cli.command(name="commits-since-tag")
@click.argument("tag")
@click.argument("ref")
@click.option(
    "--repo",
    "repo_path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Repository to operate on",
)
@fail_on_errors
def commits_since_tag(tag: str, ref: str, repo_path: Path):
    """Print the number of commits between TAG and REF."""
    click.echo(SubtreeRepository(repo_path).commits_since_tag(tag, ref))


@cli.command(name="os")
def os_name():
    """Print the current OS ("osx" or "linux")."""
    click.echo(get_os())


@cli.command(name="is-ci")
@click.argument("task", default="installing dependencies")
@click.pass_context
@fail_on_errors
def is_ci(ctx: click.Context, task: str):
    """Exit 0 for a CI build, 1 for a local build (skipping TASK)."""
    env = CIEnvironment.from_environ()
    ctx.exit(0 if is_ci_build(env, task) else 1)


@cli.command()
@click.pass_context
def show(ctx: click.Context):
    """Show the subtrees of the --config file."""
    registry: SubtreeRegistry | None = ctx.obj.get("registry")
    if registry is None or not registry.subtrees:
        console.print("[yellow]No subtrees configured.[/yellow]")
        return

    console.print("\n[bold]Configured Subtrees:[/bold]\n")
    for prefix, config in registry.subtrees.items():
        console.print(f"  • [cyan]{prefix}[/cyan]: {config.repo}:{config.branch_label}")
        console.print(f"      Subtree: {config.subtree}")
        console.print(f"      Directory: {config.dir}")


if __name__ == "__main__":
    cli()
