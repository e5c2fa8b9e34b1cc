"""
SpecLife GitHub — Code-Hosting Collaborator

Drives the `gh` CLI and mirrors pull requests into a read-only
PullRequest model. This module observes and triggers transitions
(create, ready, merge); it never decides whether they should happen.
"""

from __future__ import annotations

import json
import subprocess
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field
from tenacity import RetryError, retry, retry_if_result, stop_after_attempt, wait_exponential

from speclife.errors import GitHubError, MergeConflict

PR_FIELDS = ",".join([
    "number",
    "title",
    "url",
    "body",
    "state",
    "isDraft",
    "headRefName",
    "headRefOid",
    "baseRefName",
    "reviewDecision",
    "mergeable",
    "statusCheckRollup",
    "isCrossRepository",
])

_FAILING_CHECK_STATES = {"FAILURE", "ERROR", "CANCELLED", "TIMED_OUT", "ACTION_REQUIRED", "STARTUP_FAILURE"}
_PENDING_CHECK_STATES = {"PENDING", "IN_PROGRESS", "QUEUED", "EXPECTED", "WAITING", "REQUESTED"}


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class PRState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class ReviewDecision(str, Enum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    REVIEW_REQUIRED = "review_required"
    NONE = "none"


class ChecksStatus(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILURE = "failure"


class PullRequest(BaseModel):
    """Snapshot of a pull request as reported by the hosting platform."""
    number: int
    title: str = ""
    url: str = ""
    body: str = ""
    state: PRState = PRState.OPEN
    is_draft: bool = False
    head_branch: str = ""
    head_sha: str = ""
    base_branch: str = ""
    review_decision: ReviewDecision = ReviewDecision.NONE
    checks_status: ChecksStatus = ChecksStatus.SUCCESS
    failing_checks: list[str] = Field(default_factory=list)
    mergeable: bool | None = None
    is_cross_repository: bool = False

    @classmethod
    def from_gh(cls, data: dict[str, Any]) -> "PullRequest":
        checks_status, failing = summarize_checks(data.get("statusCheckRollup"))
        return cls(
            number=data["number"],
            title=data.get("title") or "",
            url=data.get("url") or "",
            body=data.get("body") or "",
            state=PRState((data.get("state") or "OPEN").lower()),
            is_draft=bool(data.get("isDraft")),
            head_branch=data.get("headRefName") or "",
            head_sha=data.get("headRefOid") or "",
            base_branch=data.get("baseRefName") or "",
            review_decision=_review_decision(data.get("reviewDecision")),
            checks_status=checks_status,
            failing_checks=failing,
            mergeable=_mergeable(data.get("mergeable")),
            is_cross_repository=bool(data.get("isCrossRepository")),
        )


def _review_decision(value: str | None) -> ReviewDecision:
    # An empty decision means the repository requires no review.
    if not value:
        return ReviewDecision.NONE
    try:
        return ReviewDecision(value.lower())
    except ValueError:
        return ReviewDecision.REVIEW_REQUIRED


def _mergeable(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return {"MERGEABLE": True, "CONFLICTING": False}.get(value.upper())
    return None


def summarize_checks(rollup: Any) -> tuple[ChecksStatus, list[str]]:
    """Collapse a statusCheckRollup into one status plus the failing check names."""
    if not isinstance(rollup, list):
        return ChecksStatus.SUCCESS, []

    failing: list[str] = []
    pending = False
    for item in rollup:
        if not isinstance(item, dict):
            continue
        # Check runs report status + conclusion, status contexts report state.
        state = (item.get("conclusion") or item.get("state") or item.get("status") or "").upper()
        if state in _FAILING_CHECK_STATES:
            failing.append(item.get("name") or item.get("context") or "unknown")
        elif state in _PENDING_CHECK_STATES or (item.get("status") or "").upper() in _PENDING_CHECK_STATES:
            pending = True

    if failing:
        return ChecksStatus.FAILURE, sorted(set(failing))
    if pending:
        return ChecksStatus.PENDING, []
    return ChecksStatus.SUCCESS, []


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GitHubClient:
    """
    `gh`-backed pull request operations for the repository at repo_path.
    """

    def __init__(self, repo_path: Path, timeout: int = 60):
        self.repo_path = Path(repo_path).resolve()
        self.timeout = timeout

    def get_pull_request(self, ref: int | str, state: str = "open") -> PullRequest | None:
        """
        Look up a PR by number or head branch.

        For branches, state="open" ignores closed/merged PRs; state="all"
        prefers an open PR and falls back to a merged one.
        """
        if isinstance(ref, int) or str(ref).isdigit():
            data = self._gh_json("pr", "view", str(ref), "--json", PR_FIELDS, allow_missing=True)
            return PullRequest.from_gh(data) if data else None

        rows = self._gh_json(
            "pr", "list", "--head", str(ref), "--state", state,
            "--json", PR_FIELDS, "--limit", "10",
        ) or []
        prs = [PullRequest.from_gh(row) for row in rows]
        for wanted in (PRState.OPEN, PRState.MERGED):
            for pr in prs:
                if pr.state is wanted:
                    return pr
        return None

    def wait_for_mergeable(self, number: int, attempts: int = 5) -> PullRequest | None:
        """
        Re-read a PR while GitHub is still computing its mergeability.

        Read-only polling; gives back the last snapshot when the state
        never settles.
        """
        @retry(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_result(lambda pr: pr is not None and pr.state is PRState.OPEN and pr.mergeable is None),
        )
        def _poll() -> PullRequest | None:
            return self.get_pull_request(number)

        try:
            return _poll()
        except RetryError as e:
            logger.warning(f"[GH] Mergeability of #{number} still unknown after {attempts} reads")
            return e.last_attempt.result()

    def create_pull_request(self, title: str, body: str, head: str, base: str, draft: bool = False) -> PullRequest:
        args = ["pr", "create", "--title", title, "--body", body, "--head", head, "--base", base]
        if draft:
            args.append("--draft")
        self._gh(*args)
        logger.info(f"[GH] Created PR for {head} → {base}")

        pr = self.get_pull_request(head)
        if pr is None:
            raise GitHubError(f"PR for '{head}' was created but cannot be read back", context={"head": head})
        return pr

    def mark_ready(self, number: int) -> PullRequest:
        self._gh("pr", "ready", str(number))
        pr = self.get_pull_request(number)
        if pr is None:
            raise GitHubError(f"PR #{number} disappeared after marking it ready", context={"number": number})
        return pr

    def merge_pull_request(
        self,
        number: int,
        method: str = "squash",
        subject: str | None = None,
        body: str | None = None,
        match_head_commit: str | None = None,
    ) -> None:
        args = ["pr", "merge", str(number), f"--{method}"]
        if subject:
            args += ["--subject", subject]
        if body is not None:
            args += ["--body", body]
        if match_head_commit:
            args += ["--match-head-commit", match_head_commit]

        result = self._run(["gh", *args])
        if result.returncode != 0:
            stderr = result.stderr.strip()
            context = {"number": number, "stderr": stderr}
            if "conflict" in stderr.lower() or "not mergeable" in stderr.lower():
                raise MergeConflict(
                    f"PR #{number} cannot be merged: {stderr}",
                    context=context,
                    hint="rebase the branch on the base branch, push, and re-run land",
                )
            raise GitHubError(f"Merging PR #{number} failed: {stderr}", context=context, hint="re-run land once the cause is fixed")
        logger.info(f"[GH] Merged PR #{number} ({method})")

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _gh(self, *args: str) -> str:
        result = self._run(["gh", *args])
        if result.returncode != 0:
            raise GitHubError(
                f"gh failed: gh {' '.join(args[:3])}: {result.stderr.strip()}",
                context={"command": ["gh", *args], "stderr": result.stderr},
            )
        return result.stdout

    def _gh_json(self, *args: str, allow_missing: bool = False) -> Any:
        result = self._run(["gh", *args])
        if result.returncode != 0:
            stderr = result.stderr.lower()
            if allow_missing and ("no pull requests found" in stderr or "could not resolve" in stderr):
                return None
            raise GitHubError(
                f"gh failed: gh {' '.join(args[:3])}: {result.stderr.strip()}",
                context={"command": ["gh", *args], "stderr": result.stderr},
            )
        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as e:
            raise GitHubError(f"gh returned invalid JSON: {e}", context={"stdout": result.stdout[:500]})

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess:
        logger.debug(f"[GH] {' '.join(cmd[:4])}")
        try:
            return subprocess.run(
                cmd, cwd=self.repo_path, capture_output=True, text=True, timeout=self.timeout,
            )
        except FileNotFoundError:
            raise GitHubError(
                "GitHub CLI 'gh' not found",
                hint="install it from https://cli.github.com and run `gh auth login`",
            )
        except subprocess.TimeoutExpired:
            raise GitHubError(f"gh timed out: {' '.join(cmd[:4])}", context={"command": cmd})
