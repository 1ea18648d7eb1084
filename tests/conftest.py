"""Pytest configuration and fixtures for subtree_ci tests."""

import tempfile
from pathlib import Path

import pytest
from git import Repo


# Variables that change how a build behaves; cleared so the host CI does not leak in
BUILD_VARIABLES = (
    "CI",
    "CI_TARGET",
    "GH_TOKEN",
    "GITHUB_EVENT_NAME",
    "TRAVIS_OS_NAME",
    "SUBTREE_CI_PULL_URL",
    "SUBTREE_CI_PUSH_URL",
    "DOCS_SUBTREE",
    "DOCS_DIR",
    "DOCS_REPO",
    "DOCS_BRANCH",
)


@pytest.fixture(autouse=True)
def git_environment(monkeypatch):
    """Give git a fixed identity and isolate tests from the host build."""
    for name in BUILD_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def upstream_repo(temp_dir: Path):
    """Create a repository with a site/ subtree on a gh-pages branch."""
    repo_path = temp_dir / "upstream"
    repo_path.mkdir()

    repo = Repo.init(repo_path)

    # Configure git user
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    (repo_path / "site").mkdir()
    (repo_path / "site" / "index.html").write_text("<h1>Docs</h1>\n")
    (repo_path / "README.md").write_text("# Upstream\n")
    repo.index.add(["site/index.html", "README.md"])
    repo.index.commit("Initial commit")
    repo.git.checkout("-B", "gh-pages")

    yield repo_path


@pytest.fixture
def remote_repo(temp_dir: Path, upstream_repo: Path):
    """Create a bare repository holding the upstream gh-pages branch."""
    repo_path = temp_dir / "remote.git"
    Repo.init(repo_path, bare=True)
    Repo(upstream_repo).git.push(str(repo_path), "gh-pages")

    yield repo_path


@pytest.fixture
def docs_environ(temp_dir: Path, remote_repo: Path):
    """Environment configuring the DOCS subtree against the local bare remote."""
    return {
        "BUILD_DIR": str(temp_dir / "build"),
        "CI_TARGET": "docs-publish",
        "DOCS_SUBTREE": "site",
        "DOCS_DIR": str(temp_dir / "docs"),
        "DOCS_REPO": str(remote_repo),
        "DOCS_BRANCH": "gh-pages",
        # Local paths stand in for GitHub URLs
        "SUBTREE_CI_PULL_URL": "{repo}",
        "SUBTREE_CI_PUSH_URL": "{repo}",
    }
