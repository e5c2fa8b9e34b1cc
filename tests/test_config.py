import pytest

from speclife.config_loader import load_config
from speclife.errors import ConfigInvalid


def test_defaults():
    config = load_config()
    assert config.git.base_branch == "main"
    assert config.git.branch_prefix == "spec/"
    assert config.git.worktree_dir == "worktrees"
    assert config.github.merge_method == "squash"
    assert not config.release.auto_release.patch
    assert not config.release.auto_release.major
    assert config.release.version_files == []


def test_repo_overrides_deep_merge(tmp_path):
    (tmp_path / ".speclife").mkdir()
    (tmp_path / ".speclife" / "config.yaml").write_text(
        "release:\n  auto_release:\n    minor: true\n"
    )
    config = load_config(tmp_path)
    assert config.release.auto_release.minor
    assert not config.release.auto_release.patch
    assert config.release.changelog


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("SPECLIFE_BASE_BRANCH", "develop")
    config = load_config(tmp_path)
    assert config.git.base_branch == "develop"
    assert "develop" in config.reserved_ids


def test_invalid_yaml(tmp_path):
    (tmp_path / ".speclife").mkdir()
    (tmp_path / ".speclife" / "config.yaml").write_text("git: [unclosed\n")
    with pytest.raises(ConfigInvalid):
        load_config(tmp_path)


def test_invalid_values(tmp_path):
    (tmp_path / ".speclife").mkdir()
    (tmp_path / ".speclife" / "config.yaml").write_text("github:\n  merge_method: octopus\n")
    with pytest.raises(ConfigInvalid) as exc:
        load_config(tmp_path)
    assert exc.value.hint == "check .speclife/config.yaml"
