"""
Tests for environment-driven configuration.
"""

from pathlib import Path

from gee_rebase.config import GeeConfig


class TestGeeConfig:
    def test_defaults_from_gee_dir_and_repo(self, tmp_path):
        config = GeeConfig.from_env({"GEE_DIR": str(tmp_path), "GEE_REPO": "proj"})
        assert config.repo_dir == (tmp_path / "proj").resolve()
        assert config.main_branch == "main"
        assert config.parents_file == config.repo_dir / ".gee" / "parents"
        assert not config.non_interactive

    def test_repo_dir_overrides_everything(self, tmp_path):
        config = GeeConfig.from_env({"GEE_REPO_DIR": str(tmp_path / "a"), "GEE_REPO": "b"})
        assert config.repo_dir == (tmp_path / "a").resolve()

    def test_explicit_arguments_win_over_environment(self, tmp_path):
        config = GeeConfig.from_env(
            {"GEE_REPO_DIR": str(tmp_path / "env"), "GEE_MAIN": "trunk", "YESYESYES": "1"},
            repo_dir=tmp_path / "arg",
            main_branch="develop",
            non_interactive=False,
        )
        assert config.repo_dir == (tmp_path / "arg").resolve()
        assert config.main_branch == "develop"
        assert not config.non_interactive

    def test_yesyesyes_enables_non_interactive(self, tmp_path):
        assert GeeConfig.from_env({"GEE_REPO_DIR": str(tmp_path), "YESYESYES": "1"}).non_interactive

    def test_master_worktree_is_detected(self, tmp_path):
        (tmp_path / "master").mkdir()
        config = GeeConfig.from_env({"GEE_REPO_DIR": str(tmp_path)})
        assert config.main_branch == "master"
        assert config.upstream_main == "upstream/master"
        assert config.main_dir == tmp_path.resolve() / "master"

    def test_branch_dir(self, tmp_path):
        config = GeeConfig(repo_dir=tmp_path)
        assert config.branch_dir("feature") == Path(tmp_path).resolve() / "feature"
