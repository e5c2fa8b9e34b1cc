"""
SpecLife Workspace — Worktree Manager

One change, one branch, at most one live worktree. Uses 'git worktree'
so each change gets an isolated checkout under <main>/worktrees/<id>/.

Lookup is always by branch name over a fresh `git worktree list`,
never by comparing against the caller's working directory, so cleanup
behaves the same from the main checkout and from inside the worktree.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from speclife.config_loader import GitConfig
from speclife.errors import BranchExists, GitError, PartialCleanup
from speclife.git import GitRepo
from speclife.naming import branch_for, change_id_from_branch


@dataclass(frozen=True)
class Worktree:
    path: Path
    branch: str
    head: str = ""
    change_id: str | None = None


@dataclass(frozen=True)
class RemovalResult:
    branch: str
    path: Path | None
    worktree_removed: bool
    branch_deleted: bool

    @property
    def already_clean(self) -> bool:
        return not (self.worktree_removed or self.branch_deleted)


class WorktreeManager:
    """
    Creates and removes the branch + worktree pair for a change.
    """

    def __init__(self, git: GitRepo, config: GitConfig | None = None):
        self.git = git
        self.config = config or GitConfig()

    @property
    def main_path(self) -> Path:
        return self.git.main_worktree_path()

    def branch_for(self, change_id: str) -> str:
        return branch_for(change_id, self.config.branch_prefix)

    def path_for(self, change_id: str) -> Path:
        return self.main_path / self.config.worktree_dir / change_id

    # ------------------------------------------------------------------
    # Registry reads
    # ------------------------------------------------------------------

    def list(self, git: GitRepo | None = None) -> list[Worktree]:
        """
        Every linked worktree that has a branch checked out. The main
        checkout (first registry entry) is never a removable worktree.
        """
        entries = (git or self.git).list_worktrees()
        return [
            Worktree(
                path=entry.path,
                branch=entry.branch,
                head=entry.head,
                change_id=change_id_from_branch(entry.branch, self.config.branch_prefix),
            )
            for entry in entries[1:]
            if entry.branch
        ]

    def find(self, branch: str, git: GitRepo | None = None) -> Worktree | None:
        for wt in self.list(git):
            if wt.branch == branch:
                return wt
        return None

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _ensure_branch_free(self, branch: str) -> None:
        bound = self.find(branch)
        if self.git.branch_exists(branch) or bound is not None:
            raise BranchExists(
                f"Branch '{branch}' already exists",
                context={"branch": branch, "worktree": str(bound.path) if bound else None},
                hint="the change was already started; cd into its worktree or pick another name",
            )

    def create(self, change_id: str, base_branch: str) -> Worktree:
        branch = self.branch_for(change_id)
        self._ensure_branch_free(branch)

        path = self.path_for(change_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.git.create_worktree(path, branch, base_branch)
        logger.info(f"[WORKTREE] Created {path} on {branch} (from {base_branch})")

        return Worktree(path=path, branch=branch, head=self.git.head_sha(branch), change_id=change_id)

    def create_branch_only(self, change_id: str, base_branch: str) -> str:
        """Branch-only mode: switch the current checkout to a new change branch."""
        branch = self.branch_for(change_id)
        self._ensure_branch_free(branch)
        self.git.create_branch(branch, base_branch)
        logger.info(f"[WORKTREE] Created branch {branch} in {self.git.path} (no worktree)")
        return branch

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    def remove(self, change_id: str, delete_branch: bool = True) -> RemovalResult:
        """
        Remove the worktree bound to the change branch and, by default, the branch.

        A missing worktree is already-clean, not an error. A half-finished
        removal raises PartialCleanup naming whichever half survived.
        """
        branch = self.branch_for(change_id)
        return self.remove_branch(branch, delete_branch=delete_branch)

    def remove_branch(self, branch: str, delete_branch: bool = True) -> RemovalResult:
        # Run from the main checkout: the caller may be standing in the worktree we delete.
        main = GitRepo(self.main_path, self.git.timeout)
        bound = self.find(branch, main)
        worktree_removed = False
        branch_deleted = False
        errors: list[str] = []

        if bound is not None:
            try:
                main.remove_worktree(bound.path, force=True)
            except GitError as e:
                errors.append(e.message)
            if bound.path.exists():
                shutil.rmtree(bound.path, ignore_errors=True)
            main.prune_worktrees()
            worktree_removed = True
            logger.info(f"[WORKTREE] Removed {bound.path}")
        else:
            logger.debug(f"[WORKTREE] No worktree bound to {branch}; nothing to remove")

        if delete_branch and main.branch_exists(branch):
            try:
                main.delete_branch(branch, force=True)
                branch_deleted = True
                logger.info(f"[WORKTREE] Deleted branch {branch}")
            except GitError as e:
                errors.append(e.message)

        self._verify_removed(branch, bound, delete_branch, main, errors)

        return RemovalResult(
            branch=branch,
            path=bound.path if bound else None,
            worktree_removed=worktree_removed,
            branch_deleted=branch_deleted,
        )

    def _verify_removed(
        self,
        branch: str,
        bound: Worktree | None,
        delete_branch: bool,
        main: GitRepo,
        errors: list[str],
    ) -> None:
        leftovers: dict[str, str] = {}

        if bound is not None:
            if self.find(branch, main) is not None:
                leftovers["worktree"] = f"still registered at {bound.path}"
            elif bound.path.exists():
                leftovers["worktree"] = f"directory orphaned at {bound.path}"

        if delete_branch and main.branch_exists(branch):
            leftovers["branch"] = f"{branch} still exists"

        if leftovers:
            raise PartialCleanup(
                f"Cleanup of {branch} incomplete: " + "; ".join(f"{k} {v}" for k, v in leftovers.items()),
                context={"branch": branch, "leftovers": leftovers, "errors": errors},
                hint="remove the leftovers by hand (git worktree remove / git branch -D) and re-run",
            )
