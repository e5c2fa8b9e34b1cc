from typer.testing import CliRunner

from conftest import commit_file, git, requires_git
from speclife import __version__
from speclife.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"SpecLife v{__version__}" in result.stdout


def test_init(tmp_path):
    result = runner.invoke(app, ["init", str(tmp_path)])

    assert result.exit_code == 0
    assert (tmp_path / ".speclife" / "config.yaml").exists()
    assert (tmp_path / "openspec" / "changes").is_dir()
    assert "worktrees/" in (tmp_path / ".gitignore").read_text()


def test_init_does_not_duplicate_gitignore_entries(tmp_path):
    (tmp_path / ".gitignore").write_text("worktrees/\n")
    runner.invoke(app, ["init", str(tmp_path)])
    runner.invoke(app, ["init", str(tmp_path)])
    assert (tmp_path / ".gitignore").read_text().count("worktrees/") == 1


@requires_git
def test_start_and_list(repo):
    result = runner.invoke(app, ["start", "Add OAuth login", "--repo", str(repo)])
    assert result.exit_code == 0
    assert "add-oauth-login" in result.stdout
    assert (repo / "worktrees" / "add-oauth-login").is_dir()

    listed = runner.invoke(app, ["list", "--repo", str(repo)])
    assert listed.exit_code == 0
    assert "add-oauth-login" in listed.stdout
    assert "created" in listed.stdout

    events = repo / ".speclife" / "logs" / "events.jsonl"
    assert "change_started" in events.read_text()


@requires_git
def test_start_with_invalid_description(repo):
    result = runner.invoke(app, ["start", "!!!", "--repo", str(repo)])
    assert result.exit_code == 1
    assert "InvalidIdentifier" in result.stdout


@requires_git
def test_worktree_remove(repo):
    runner.invoke(app, ["start", "quick-fix", "--repo", str(repo)])

    result = runner.invoke(app, ["worktree", "remove", "quick-fix", "--repo", str(repo)])

    assert result.exit_code == 0
    assert "Deleted branch spec/quick-fix" in result.stdout
    assert not (repo / "worktrees" / "quick-fix").exists()

    again = runner.invoke(app, ["worktree", "remove", "quick-fix", "--repo", str(repo)])
    assert again.exit_code == 0
    assert "nothing to remove" in again.stdout


@requires_git
def test_release_dry_run(repo):
    commit_file(repo, "login.py", "x = 1\n", "feat: login")

    result = runner.invoke(app, ["release", "--dry-run", "--repo", str(repo)])

    assert result.exit_code == 0
    assert "0.2.0" in result.stdout
    assert "Dry run" in result.stdout


@requires_git
def test_release_rejects_conflicting_bumps(repo):
    result = runner.invoke(app, ["release", "--minor", "--major", "--repo", str(repo)])
    assert result.exit_code == 1
    assert "at most one" in result.stdout


@requires_git
def test_release_off_base_branch(repo):
    git(repo, "checkout", "-b", "feature/x")
    result = runner.invoke(app, ["release", "--repo", str(repo)])
    assert result.exit_code == 1
    assert "InvalidBranch" in result.stdout


@requires_git
def test_ship_ready_overrides_draft_default(repo, github, monkeypatch):
    monkeypatch.setattr("speclife.controller.GitHubClient", lambda path: github)
    commit_file(repo, ".speclife/config.yaml", "github:\n  draft: true\n", "chore: draft PRs by default")

    git(repo, "checkout", "-b", "fix/typo")
    (repo / "README.md").write_text("# demo, fixed\n")
    result = runner.invoke(app, ["ship", "--ready", "--repo", str(repo)])
    assert result.exit_code == 0
    assert not github.prs[1].is_draft

    git(repo, "checkout", "-b", "fix/other", "main")
    (repo / "README.md").write_text("# demo, other\n")
    result = runner.invoke(app, ["ship", "--repo", str(repo)])
    assert result.exit_code == 0
    assert github.prs[2].is_draft
