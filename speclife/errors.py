"""
SpecLife Errors — Structured Failure Taxonomy

Every failure carries a kind, a machine-checkable context payload
and, where one exists, the corrective next action for the operator.
"""

from __future__ import annotations

from typing import Any


class SpecLifeError(Exception):
    """Base class for every lifecycle failure."""

    kind: str = "SpecLifeError"

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        hint: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}
        self.hint = hint

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "context": self.context,
            "hint": self.hint,
        }

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} ({self.hint})"
        return self.message


# ---------------------------------------------------------------------------
# Lifecycle taxonomy
# ---------------------------------------------------------------------------

class InvalidIdentifier(SpecLifeError):
    kind = "InvalidIdentifier"


class BranchExists(SpecLifeError):
    kind = "BranchExists"


class NotFound(SpecLifeError):
    """A PR or change could not be located."""
    kind = "NotFound"


class NotReady(SpecLifeError):
    """The PR has outstanding blockers. ``context["blockers"]`` lists them."""
    kind = "NotReady"

    @property
    def blockers(self) -> list[str]:
        return list(self.context.get("blockers", []))


class NothingToCommit(SpecLifeError):
    kind = "NothingToCommit"


class MergeConflict(SpecLifeError):
    kind = "MergeConflict"


class PartialCleanup(SpecLifeError):
    """Cleanup removed one half of a worktree/branch pair but not the other."""
    kind = "PartialCleanup"


class PolicyViolation(SpecLifeError):
    kind = "PolicyViolation"


# ---------------------------------------------------------------------------
# Preconditions and collaborators
# ---------------------------------------------------------------------------

class InvalidBranch(SpecLifeError):
    """Operation refused on the base branch, a detached HEAD, or the wrong branch."""
    kind = "InvalidBranch"


class DirtyWorkingTree(SpecLifeError):
    kind = "DirtyWorkingTree"


class ValidationFailed(SpecLifeError):
    kind = "ValidationFailed"


class NeedsInput(SpecLifeError):
    """The operation needs a decision only the caller can make."""
    kind = "NeedsInput"


class ConfigInvalid(SpecLifeError):
    kind = "ConfigInvalid"


class GitError(SpecLifeError):
    kind = "GitError"


class GitHubError(SpecLifeError):
    kind = "GitHubError"
