"""
SpecLife PR Readiness

Pure classification of a pull request snapshot into ready / blocked.
Each failing predicate becomes its own blocker line so the caller can
report exactly what is outstanding.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from speclife.github import ChecksStatus, PRState, PullRequest, ReviewDecision

ACCEPTED_REVIEW_DECISIONS = {ReviewDecision.APPROVED, ReviewDecision.NONE}


@dataclass(frozen=True)
class Readiness:
    ready: bool
    blockers: list[str] = field(default_factory=list)


def evaluate(pr: PullRequest) -> Readiness:
    blockers: list[str] = []

    if pr.state is not PRState.OPEN:
        blockers.append(f"state: {pr.state.value}")

    if pr.is_draft:
        blockers.append("draft: pull request is still a draft")

    if pr.review_decision not in ACCEPTED_REVIEW_DECISIONS:
        blockers.append(f"review: {pr.review_decision.value.replace('_', ' ')}")

    if pr.checks_status is not ChecksStatus.SUCCESS:
        detail = f" ({', '.join(pr.failing_checks)})" if pr.failing_checks else ""
        blockers.append(f"checks: {pr.checks_status.value}{detail}")

    if pr.mergeable is None:
        blockers.append("mergeable: not yet computed")
    elif not pr.mergeable:
        blockers.append("mergeable: conflicting")

    return Readiness(ready=not blockers, blockers=blockers)
