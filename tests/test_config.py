"""Tests for configuration module."""

from pathlib import Path

import pytest

from subtree_ci.config import (
    DEFAULT_PULL_URL,
    DEFAULT_PUSH_URL,
    CIEnvironment,
    ConfigurationError,
    SubtreeConfig,
    SubtreeRegistry,
    get_os,
    require_environment_variable,
    resolve,
)

DOCS = {
    "DOCS_SUBTREE": "site",
    "DOCS_DIR": "/tmp/docs",
    "DOCS_REPO": "org/docs",
    "DOCS_BRANCH": "gh-pages",
}


class TestRequireEnvironmentVariable:
    """Tests for require_environment_variable."""

    def test_returns_value(self):
        assert require_environment_variable("NAME", {"NAME": "value"}) == "value"

    def test_missing_names_variable_and_call_site(self):
        """Test that the error names the variable and the calling file:line."""
        with pytest.raises(ConfigurationError) as excinfo:
            require_environment_variable("NAME", {})
        message = str(excinfo.value)
        assert "missing env var: NAME" in message
        assert "test_config.py:" in message

    def test_empty_is_missing(self):
        with pytest.raises(ConfigurationError, match="missing env var: NAME"):
            require_environment_variable("NAME", {"NAME": ""})

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("SUBTREE_CI_TEST_VAR", "from-env")
        assert require_environment_variable("SUBTREE_CI_TEST_VAR") == "from-env"


class TestResolve:
    """Tests for resolving a prefix."""

    def test_resolve(self):
        config = resolve("DOCS", DOCS)
        assert config.subtree == "site"
        assert config.dir == Path("/tmp/docs")
        assert config.repo == "org/docs"
        assert config.branch == "gh-pages"

    @pytest.mark.parametrize("suffix", ["SUBTREE", "DIR", "REPO", "BRANCH"])
    def test_missing_variable(self, suffix: str):
        """Test that each of the four variables is required."""
        environ = {k: v for k, v in DOCS.items() if k != f"DOCS_{suffix}"}
        with pytest.raises(ConfigurationError, match=f"missing env var: DOCS_{suffix}"):
            resolve("DOCS", environ)

    @pytest.mark.parametrize("suffix", ["SUBTREE", "DIR", "REPO", "BRANCH"])
    def test_empty_variable(self, suffix: str):
        environ = {**DOCS, f"DOCS_{suffix}": ""}
        with pytest.raises(ConfigurationError, match=f"DOCS_{suffix}"):
            resolve("DOCS", environ)

    def test_call_site_is_caller_of_resolve(self):
        with pytest.raises(ConfigurationError, match=r"test_config\.py:\d+"):
            resolve("DOCS", {})

    def test_branch_optional(self):
        environ = {k: v for k, v in DOCS.items() if k != "DOCS_BRANCH"}
        config = resolve("DOCS", environ, require_branch=False)
        assert config.branch is None
        assert config.branch_label == "*"

    def test_prefixes_are_independent(self):
        environ = {**DOCS, "API_SUBTREE": "api", "API_DIR": "/tmp/api",
                   "API_REPO": "org/api", "API_BRANCH": "main"}
        assert resolve("API", environ).repo == "org/api"
        assert resolve("DOCS", environ).repo == "org/docs"


class TestSubtreeRegistry:
    """Tests for SubtreeRegistry."""

    def test_from_environment(self):
        registry = SubtreeRegistry.from_environment(["DOCS"], DOCS)
        assert registry.get("DOCS").subtree == "site"

    def test_unknown_prefix(self):
        registry = SubtreeRegistry()
        with pytest.raises(ConfigurationError, match="unknown subtree prefix: DOCS"):
            registry.get("DOCS")

    def test_branch_required_by_default(self):
        registry = SubtreeRegistry(
            subtrees={"DOCS": SubtreeConfig(subtree="site", dir="/tmp/docs", repo="org/docs")}
        )
        with pytest.raises(ConfigurationError, match="missing branch"):
            registry.get("DOCS")
        assert registry.get("DOCS", require_branch=False).branch is None

    def test_yaml_roundtrip(self, temp_dir: Path):
        """Test saving and loading from YAML."""
        registry = SubtreeRegistry.from_environment(["DOCS"], DOCS)

        yaml_path = temp_dir / "subtrees.yaml"
        registry.to_yaml(yaml_path)

        loaded = SubtreeRegistry.from_yaml(yaml_path)
        assert loaded.get("DOCS") == registry.get("DOCS")

    def test_from_yaml_file(self, temp_dir: Path):
        yaml_path = temp_dir / "subtrees.yaml"
        yaml_path.write_text(
            "subtrees:\n"
            "  DOCS:\n"
            "    subtree: site\n"
            "    dir: /tmp/docs\n"
            "    repo: org/docs\n"
            "    branch: gh-pages\n"
        )
        config = SubtreeRegistry.from_yaml(yaml_path).get("DOCS")
        assert config.dir == Path("/tmp/docs")
        assert config.branch == "gh-pages"

    def test_empty_yaml_file(self, temp_dir: Path):
        yaml_path = temp_dir / "subtrees.yaml"
        yaml_path.write_text("")
        assert SubtreeRegistry.from_yaml(yaml_path).subtrees == {}


class TestCIEnvironment:
    """Tests for CIEnvironment."""

    def test_build_dir_required(self):
        with pytest.raises(ConfigurationError, match="missing env var: BUILD_DIR"):
            CIEnvironment.from_environ({})

    def test_defaults(self):
        env = CIEnvironment.from_environ({"BUILD_DIR": "/tmp/build", "CI_TARGET": "docs"})
        assert env.build_dir == Path("/tmp/build")
        assert env.make_cmd == "make -j2"
        assert env.git_name == "marvim"
        assert env.git_email == "marvim@users.noreply.github.com"
        assert env.ci is False
        assert env.gh_token is None
        assert env.pull_url == DEFAULT_PULL_URL
        assert env.push_url == DEFAULT_PUSH_URL
        assert env.ci_os in ("osx", "linux")

    def test_empty_values_fall_back_to_defaults(self):
        env = CIEnvironment.from_environ(
            {"BUILD_DIR": "/tmp/build", "GIT_NAME": "", "MAKE_CMD": ""}
        )
        assert env.git_name == "marvim"
        assert env.make_cmd == "make -j2"

    def test_ci_target_defaults_to_script_name(self, monkeypatch):
        monkeypatch.setattr("sys.argv", ["/ci/build-docs.sh"])
        env = CIEnvironment.from_environ({"BUILD_DIR": "/tmp/build"})
        assert env.ci_target == "build-docs"

    def test_values_from_environment(self):
        env = CIEnvironment.from_environ(
            {
                "BUILD_DIR": "/tmp/build",
                "CI": "true",
                "TRAVIS_OS_NAME": "osx",
                "GITHUB_EVENT_NAME": "pull_request",
                "GH_TOKEN": "secret",
            }
        )
        assert env.ci is True
        assert env.ci_os == "osx"
        assert env.is_pull_request is True
        assert env.has_gh_token is True

    def test_ci_must_be_true(self):
        env = CIEnvironment.from_environ({"BUILD_DIR": "/tmp/build", "CI": "1"})
        assert env.ci is False

    def test_token_hidden_from_repr(self):
        env = CIEnvironment(build_dir="/tmp/build", gh_token="secret")
        assert "secret" not in repr(env)

    def test_require(self):
        env = CIEnvironment(build_dir="/tmp/build", ci_target="")
        with pytest.raises(ConfigurationError, match="missing env var: CI_TARGET"):
            env.require("git_name", "ci_target")

    def test_url_templates(self):
        env = CIEnvironment(build_dir="/tmp/build")
        assert env.pull_url_for("org/docs") == "git://github.com/org/docs"
        assert env.push_url_for("org/docs") == "https://github.com/org/docs"


class TestGetOs:
    """Tests for OS detection."""

    def test_darwin(self, monkeypatch):
        monkeypatch.setattr("platform.system", lambda: "Darwin")
        assert get_os() == "osx"

    def test_other(self, monkeypatch):
        monkeypatch.setattr("platform.system", lambda: "Linux")
        assert get_os() == "linux"
