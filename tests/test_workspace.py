import pytest

from conftest import git, requires_git
from speclife.config_loader import GitConfig
from speclife.errors import BranchExists, PartialCleanup
from speclife.git import GitRepo
from speclife.workspace import WorktreeManager

pytestmark = requires_git


@pytest.fixture
def manager(repo):
    return WorktreeManager(GitRepo(repo), GitConfig())


def test_create_worktree(manager, repo):
    wt = manager.create("add-oauth", "main")

    assert wt.path == repo / "worktrees" / "add-oauth"
    assert wt.branch == "spec/add-oauth"
    assert wt.change_id == "add-oauth"
    assert (wt.path / "pyproject.toml").exists()
    assert git(wt.path, "rev-parse", "--abbrev-ref", "HEAD") == "spec/add-oauth"


def test_list_excludes_main_checkout(manager):
    manager.create("one", "main")
    manager.create("two", "main")
    assert sorted(wt.change_id for wt in manager.list()) == ["one", "two"]


def test_create_refuses_existing_branch(manager, repo):
    git(repo, "branch", "spec/taken")
    with pytest.raises(BranchExists) as exc:
        manager.create("taken", "main")
    assert exc.value.context["branch"] == "spec/taken"


def test_create_refuses_second_worktree(manager):
    manager.create("add-oauth", "main")
    with pytest.raises(BranchExists):
        manager.create("add-oauth", "main")


def test_branch_only_mode(manager, repo):
    branch = manager.create_branch_only("quick-fix", "main")
    assert branch == "spec/quick-fix"
    assert git(repo, "rev-parse", "--abbrev-ref", "HEAD") == "spec/quick-fix"
    assert manager.find(branch) is None


def test_remove_from_main_checkout(manager, repo):
    wt = manager.create("add-oauth", "main")

    result = manager.remove("add-oauth")

    assert result.worktree_removed and result.branch_deleted
    assert not wt.path.exists()
    assert not GitRepo(repo).branch_exists("spec/add-oauth")


def test_remove_from_inside_worktree(manager, repo):
    wt = manager.create("add-oauth", "main")
    inside = WorktreeManager(GitRepo(wt.path), GitConfig())

    result = inside.remove("add-oauth")

    assert result.worktree_removed and result.branch_deleted
    assert not wt.path.exists()
    assert not GitRepo(repo).branch_exists("spec/add-oauth")


def test_remove_without_worktree_is_already_clean(manager):
    result = manager.remove("never-started")
    assert result.already_clean
    assert result.path is None


def test_remove_branch_without_worktree(manager, repo):
    git(repo, "branch", "spec/branch-only")
    result = manager.remove("branch-only")
    assert not result.worktree_removed
    assert result.branch_deleted


def test_keep_branch(manager, repo):
    manager.create("add-oauth", "main")
    result = manager.remove("add-oauth", delete_branch=False)
    assert result.worktree_removed and not result.branch_deleted
    assert GitRepo(repo).branch_exists("spec/add-oauth")


def test_half_failed_removal_is_reported(manager, repo, monkeypatch):
    wt = manager.create("add-oauth", "main")
    monkeypatch.setattr(GitRepo, "delete_branch", lambda self, name, force=True: None)

    with pytest.raises(PartialCleanup) as exc:
        manager.remove("add-oauth")

    assert "branch" in exc.value.context["leftovers"]
    assert "worktree" not in exc.value.context["leftovers"]
    assert not wt.path.exists()
