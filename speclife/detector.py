"""
SpecLife Branch Type Detector

Classifies the current branch into one of three fixed kinds. The kind
depends on the branch name alone; a bound worktree is reported for
display but never changes the classification.

    spec/<id>        → MANAGED   (full validate/archive sequence on ship)
    any other branch → AD_HOC    (reduced step set, commit type inferred)
    base / detached  → INVALID   (operations refuse to run)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from speclife.config_loader import GitConfig
from speclife.git import GitRepo
from speclife.naming import change_id_from_branch


class BranchKind(str, Enum):
    MANAGED = "managed"
    AD_HOC = "ad-hoc"
    INVALID = "invalid"


@dataclass(frozen=True)
class BranchInfo:
    branch: str
    kind: BranchKind
    change_id: str | None = None
    worktree_path: Path | None = None

    @property
    def is_managed(self) -> bool:
        return self.kind is BranchKind.MANAGED


def classify(branch: str | None, base_branch: str = "main", prefix: str = "spec/") -> BranchKind:
    if not branch or branch == "HEAD" or branch == base_branch:
        return BranchKind.INVALID
    if change_id_from_branch(branch, prefix) is not None:
        return BranchKind.MANAGED
    return BranchKind.AD_HOC


def describe(branch: str, config: GitConfig, worktree_path: Path | None = None) -> BranchInfo:
    kind = classify(branch, config.base_branch, config.branch_prefix)
    change_id = change_id_from_branch(branch, config.branch_prefix) if kind is BranchKind.MANAGED else None
    return BranchInfo(branch=branch, kind=kind, change_id=change_id, worktree_path=worktree_path)


def detect(git: GitRepo, config: GitConfig) -> BranchInfo:
    """Read the current branch and its worktree binding fresh from git."""
    branch = git.current_branch()
    bound = next((wt.path for wt in git.list_worktrees() if wt.branch == branch), None)
    return describe(branch, config, bound)


# ---------------------------------------------------------------------------
# Commit type inference
# ---------------------------------------------------------------------------

UNKNOWN_TYPE = "unknown"

# Order matters: first match wins.
BRANCH_TYPE_PATTERNS: list[tuple[str, str]] = [
    ("fix/", "fix"),
    ("bugfix/", "fix"),
    ("hotfix/", "fix"),
    ("feat/", "feat"),
    ("feature/", "feat"),
    ("docs/", "docs"),
    ("doc/", "docs"),
    ("chore/", "chore"),
    ("refactor/", "refactor"),
    ("test/", "test"),
    ("tests/", "test"),
    ("perf/", "perf"),
    ("ci/", "ci"),
    ("build/", "build"),
    ("style/", "style"),
]

CHANGE_ID_TYPE_PREFIXES: list[tuple[str, str]] = [
    ("fix-", "fix"),
    ("refactor-", "refactor"),
    ("docs-", "docs"),
    ("test-", "test"),
    ("chore-", "chore"),
    ("perf-", "perf"),
]

COMMIT_TYPES = ["feat", "fix", "docs", "chore", "refactor", "test", "perf", "ci", "build", "style"]


def infer_commit_type(branch: str) -> str:
    """Conventional-commit type for an ad-hoc branch name, or 'unknown'."""
    lowered = branch.lower()
    for prefix, commit_type in BRANCH_TYPE_PATTERNS:
        if lowered.startswith(prefix):
            return commit_type
    return UNKNOWN_TYPE


def infer_change_type(change_id: str) -> str:
    """Managed changes default to feat unless the id says otherwise."""
    for prefix, commit_type in CHANGE_ID_TYPE_PREFIXES:
        if change_id.startswith(prefix):
            return commit_type
    return "feat"
