"""
Shared fixtures: throwaway git repositories with a bare `origin`, and an
in-memory stand-in for the GitHub CLI.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from speclife.errors import GitHubError
from speclife.github import PRState, PullRequest
from speclife.openspec import OpenSpec

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

PYPROJECT = """[project]
name = "demo"
version = "0.1.0"
"""


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str) -> str:
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", "-A")
    git(repo, "commit", "-m", message)
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.com")
    monkeypatch.delenv("SPECLIFE_BASE_BRANCH", raising=False)
    monkeypatch.delenv("SPECLIFE_REMOTE", raising=False)
    # Validation always uses the built-in checks, even where the openspec CLI is installed.
    monkeypatch.setattr(OpenSpec, "_validate_cli", lambda self, change_id, strict: None)


@pytest.fixture
def origin(tmp_path) -> Path:
    path = tmp_path / "origin.git"
    git(tmp_path, "init", "--bare", "--quiet", str(path))
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    return path


@pytest.fixture
def repo(tmp_path, origin) -> Path:
    """A checkout on `main` with one commit, tracking origin/main."""
    path = tmp_path / "repo"
    path.mkdir()
    git(path, "init", "--quiet")
    git(path, "symbolic-ref", "HEAD", "refs/heads/main")
    git(path, "remote", "add", "origin", str(origin))

    (path / ".gitignore").write_text("worktrees/\n.speclife/changes/\n.speclife/logs/\n")
    (path / "pyproject.toml").write_text(PYPROJECT)
    (path / "README.md").write_text("# demo\n")
    git(path, "add", "-A")
    git(path, "commit", "-m", "chore: initial commit")
    git(path, "push", "--quiet", "-u", "origin", "main")
    return path.resolve()


# ---------------------------------------------------------------------------
# GitHub stand-in
# ---------------------------------------------------------------------------

class FakeGitHub:
    """
    Mirrors GitHubClient over an in-memory PR table. Merges are applied
    to the bare origin as real squash commits.
    """

    def __init__(self, origin: Path):
        self.origin = origin
        self.prs: dict[int, PullRequest] = {}
        self.calls: list[tuple[str, dict]] = []
        self._next = 1

    def _remote_sha(self, branch: str) -> str:
        return git(self.origin, "rev-parse", f"refs/heads/{branch}")

    def update(self, number: int, **fields) -> PullRequest:
        self.prs[number] = self.prs[number].model_copy(update=fields)
        return self.prs[number]

    def get_pull_request(self, ref, state: str = "open") -> PullRequest | None:
        self.calls.append(("get", {"ref": ref, "state": state}))
        if isinstance(ref, int) or str(ref).isdigit():
            return self.prs.get(int(ref))

        prs = [pr for pr in self.prs.values() if pr.head_branch == ref]
        for wanted in (PRState.OPEN, PRState.MERGED):
            if state == "open" and wanted is not PRState.OPEN:
                continue
            for pr in prs:
                if pr.state is wanted:
                    return pr
        return None

    def wait_for_mergeable(self, number: int, attempts: int = 5) -> PullRequest | None:
        return self.prs.get(number)

    def create_pull_request(self, title: str, body: str, head: str, base: str, draft: bool = False) -> PullRequest:
        number = self._next
        self._next += 1
        self.prs[number] = PullRequest(
            number=number,
            title=title,
            body=body,
            url=f"https://github.test/demo/pull/{number}",
            head_branch=head,
            head_sha=self._remote_sha(head),
            base_branch=base,
            is_draft=draft,
            mergeable=True,
        )
        self.calls.append(("create", {"number": number, "head": head, "title": title}))
        return self.prs[number]

    def mark_ready(self, number: int) -> PullRequest:
        self.calls.append(("ready", {"number": number}))
        return self.update(number, is_draft=False)

    def merge_pull_request(self, number, method="squash", subject=None, body=None, match_head_commit=None) -> None:
        pr = self.prs[number]
        head_sha = self._remote_sha(pr.head_branch)
        self.calls.append(("merge", {
            "number": number,
            "method": method,
            "subject": subject,
            "body": body,
            "match_head_commit": match_head_commit,
            "remote_head": head_sha,
        }))
        if match_head_commit and match_head_commit != head_sha:
            raise GitHubError(f"Head branch was modified. Review and try the merge again. ({number})")

        tree = git(self.origin, "rev-parse", f"{head_sha}^{{tree}}")
        parent = self._remote_sha(pr.base_branch)
        message = subject or pr.title
        if body:
            message += f"\n\n{body}"
        squash = git(self.origin, "commit-tree", tree, "-p", parent, "-m", message)
        git(self.origin, "update-ref", f"refs/heads/{pr.base_branch}", squash)
        self.update(number, state=PRState.MERGED)

    def calls_named(self, name: str) -> list[dict]:
        return [payload for call, payload in self.calls if call == name]


@pytest.fixture
def github(origin) -> FakeGitHub:
    return FakeGitHub(origin)
