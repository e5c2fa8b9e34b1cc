"""
SpecLife Git — Version-Control Collaborator

Thin subprocess wrapper around the git CLI. No lifecycle decisions
are made here; every call goes straight to the repository so callers
always see the current registry state.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from speclife.errors import GitError

_RECORD_SEP = "\x1e"
_FIELD_SEP = "\x1f"


@dataclass(frozen=True)
class RawCommit:
    sha: str
    message: str


@dataclass(frozen=True)
class WorktreeEntry:
    path: Path
    branch: str | None
    head: str = ""


class GitRepo:
    """
    Git operations rooted at one checkout (main repo or any worktree).
    """

    def __init__(self, path: Path, timeout: int = 60):
        self.path = Path(path).resolve()
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def current_branch(self) -> str:
        """Current branch name, or 'HEAD' when detached."""
        return self._git("rev-parse", "--abbrev-ref", "HEAD", capture=True).strip()

    def branch_exists(self, name: str) -> bool:
        res = self._git("branch", "--list", "--format=%(refname:short)", name, capture=True)
        return name in res.split()

    def create_branch(self, name: str, base: str) -> None:
        self._git("checkout", "-b", name, base)

    def checkout(self, branch: str) -> None:
        self._git("checkout", branch)

    def delete_branch(self, name: str, force: bool = True) -> None:
        self._git("branch", "-D" if force else "-d", name)

    # ------------------------------------------------------------------
    # Worktrees
    # ------------------------------------------------------------------

    def list_worktrees(self) -> list[WorktreeEntry]:
        """Parse `git worktree list --porcelain`. The first entry is the main checkout."""
        out = self._git("worktree", "list", "--porcelain", capture=True)
        entries: list[WorktreeEntry] = []
        path: Path | None = None
        branch: str | None = None
        head = ""

        for line in out.splitlines() + [""]:
            if line.startswith("worktree "):
                path = Path(line[len("worktree "):])
                branch, head = None, ""
            elif line.startswith("HEAD "):
                head = line[len("HEAD "):]
            elif line.startswith("branch "):
                branch = line[len("branch "):].removeprefix("refs/heads/")
            elif not line and path is not None:
                entries.append(WorktreeEntry(path=path, branch=branch, head=head))
                path = None

        return entries

    def main_worktree_path(self) -> Path:
        entries = self.list_worktrees()
        if entries:
            return entries[0].path.resolve()
        return self.toplevel()

    def create_worktree(self, path: Path, branch: str, base: str) -> None:
        self._git("worktree", "add", "-b", branch, str(path), base)

    def add_detached_worktree(self, path: Path, ref: str) -> None:
        self._git("worktree", "add", "--detach", str(path), ref)

    def remove_worktree(self, path: Path, force: bool = True) -> None:
        args = ["worktree", "remove", str(path)]
        if force:
            args.append("--force")
        self._git(*args)

    def prune_worktrees(self) -> None:
        self._git("worktree", "prune", check=False)

    # ------------------------------------------------------------------
    # Working tree
    # ------------------------------------------------------------------

    def toplevel(self) -> Path:
        return Path(self._git("rev-parse", "--show-toplevel", capture=True).strip()).resolve()

    def common_dir(self) -> Path:
        """The .git directory shared by the main checkout and all its worktrees."""
        out = self._git("rev-parse", "--git-common-dir", capture=True).strip()
        path = Path(out)
        return (path if path.is_absolute() else self.path / path).resolve()

    def status_porcelain(self) -> list[str]:
        out = self._git("status", "--porcelain", capture=True)
        return [line for line in out.splitlines() if line.strip()]

    def is_clean(self) -> bool:
        return not self.status_porcelain()

    def add_all(self) -> None:
        self._git("add", "-A")

    def commit(self, message: str) -> str:
        self._git("commit", "-m", message)
        return self.head_sha()

    def head_sha(self, ref: str = "HEAD") -> str:
        return self._git("rev-parse", ref, capture=True).strip()

    def commit_message(self, ref: str = "HEAD") -> str:
        return self._git("log", "-1", "--format=%B", ref, capture=True).strip()

    def show_file(self, ref: str, path: str) -> str | None:
        """File content at a ref, None when the file does not exist there."""
        try:
            return self._git("show", f"{ref}:{path}", capture=True)
        except GitError:
            return None

    # ------------------------------------------------------------------
    # Remote
    # ------------------------------------------------------------------

    def push(self, remote: str, refspec: str, set_upstream: bool = True) -> None:
        args = ["push"]
        if set_upstream:
            args.append("--set-upstream")
        self._git(*args, remote, refspec)
        logger.info(f"[GIT] Pushed {refspec} → {remote}")

    def pull(self, remote: str, branch: str) -> None:
        self._git("pull", "--ff-only", remote, branch)

    def fetch(self, remote: str, *refspecs: str, tags: bool = False) -> None:
        args = ["fetch", "--quiet"]
        if tags:
            args.append("--tags")
        self._git(*args, remote, *refspecs)

    def has_upstream(self) -> bool:
        res = self._git("rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}", capture=True, check=False)
        return bool(res.strip())

    def commits_ahead(self, base_ref: str, ref: str = "HEAD") -> int:
        """Commits reachable from ref but not from base_ref."""
        out = self._git("rev-list", "--count", f"{base_ref}..{ref}", capture=True, check=False).strip()
        return int(out) if out.isdigit() else 0

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self._run(["git", "merge-base", "--is-ancestor", ancestor, descendant], check=False)
        return result.returncode == 0

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def latest_tag(self, prefix: str = "v", merged: str | None = None) -> str | None:
        """Highest version tag by version sort, or None. With merged, only tags reachable from that ref."""
        args = ["tag", "--list", f"{prefix}*", "--sort=-v:refname"]
        if merged:
            args += ["--merged", merged]
        out = self._git(*args, capture=True, check=False)
        tags = [t for t in out.splitlines() if t.strip()]
        return tags[0] if tags else None

    def commits_since(self, tag: str | None, ref: str = "HEAD") -> list[RawCommit]:
        """Full messages (subject + body) of commits in tag..ref, newest first."""
        rev_range = f"{tag}..{ref}" if tag else ref
        out = self._git(
            "log", f"--format=%H{_FIELD_SEP}%B{_RECORD_SEP}", rev_range,
            capture=True,
        )
        commits: list[RawCommit] = []
        for record in out.split(_RECORD_SEP):
            record = record.strip("\n")
            if not record.strip():
                continue
            sha, _, message = record.partition(_FIELD_SEP)
            commits.append(RawCommit(sha=sha.strip(), message=message.strip()))
        return commits

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _git(self, *args: str, check: bool = True, capture: bool = False) -> str:
        result = self._run(["git", *args], check=check)
        return result.stdout if capture else ""

    def _run(self, cmd: list[str], check: bool = True) -> subprocess.CompletedProcess:
        logger.debug(f"[GIT] {' '.join(cmd)} (cwd={self.path})")
        try:
            result = subprocess.run(
                cmd, cwd=self.path, capture_output=True, text=True, timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise GitError(f"Git failed to run: {' '.join(cmd)}: {e}", context={"command": cmd})
        if check and result.returncode != 0:
            raise GitError(
                f"Git failed: {' '.join(cmd)}\n{result.stderr.strip()}",
                context={"command": cmd, "stderr": result.stderr, "returncode": result.returncode},
            )
        return result
