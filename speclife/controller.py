"""
SpecLife Controller — The Lifecycle Orchestrator

It is NOT smart. It is deterministic.

Composes naming, worktrees, branch detection, PR readiness and the
version policy into the public operations:

  - start    derive id → branch + worktree → scaffold proposal      → created
  - ship     classify → validate + archive (managed) → commit/push/PR → submitted
  - land     readiness → version bump on the PR head → squash merge
             → sync base → cleanup                                   → merged / released
  - release  manual version bump on the base branch
  - status / list_changes   read-only reporting

Every operation is safe to re-run. Nothing irreversible (push, merge)
happens until the local preconditions for that step have passed, and
nothing is retried here: a re-invocation picks up where the last one
stopped.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from speclife.config_loader import SpecLifeConfig, load_config
from speclife.detector import (
    COMMIT_TYPES,
    UNKNOWN_TYPE,
    BranchInfo,
    BranchKind,
    classify,
    detect,
    infer_change_type,
    infer_commit_type,
)
from speclife.errors import (
    DirtyWorkingTree,
    GitError,
    InvalidBranch,
    NeedsInput,
    NotFound,
    NothingToCommit,
    NotReady,
    PolicyViolation,
    SpecLifeError,
    ValidationFailed,
)
from speclife.event_bus import EventBus, bus as default_bus
from speclife.git import GitRepo
from speclife.github import GitHubClient, PRState, PullRequest
from speclife.naming import branch_for, change_id_from_branch, resolve_id
from speclife.openspec import ChangeProposal, OpenSpec, ValidationReport
from speclife.readiness import Readiness, evaluate
from speclife.state import Change, ChangeLedger, ChangeState
from speclife.tasks import TaskProgress
from speclife.version_files import (
    KNOWN_VERSION_FILES,
    detect_version_files,
    has_changelog_entry,
    prepend_changelog,
    read_version,
    read_version_text,
    write_version,
)
from speclife.versioning import (
    BUMP_TYPES,
    CommitInfo,
    VersionAnalysis,
    bump_version,
    generate_changelog,
    is_auto_release_allowed,
    is_release_commit,
    is_valid_version,
    parse_conventional_commit,
    parse_version,
    release_commit_message,
    suggest_bump,
)
from speclife.workspace import RemovalResult, WorktreeManager

# (branch, allowed types) -> chosen conventional-commit type
AskCallback = Callable[[str, list[str]], str]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class StartResult:
    change_id: str
    branch: str
    base_branch: str
    worktree_path: Path | None
    proposal_path: Path
    tasks_path: Path


@dataclass
class ShipResult:
    branch: str
    kind: BranchKind
    pr: PullRequest | None = None
    change_id: str | None = None
    commit_sha: str | None = None
    pushed: bool = False
    pr_created: bool = False
    marked_ready: bool = False
    archived_to: Path | None = None
    validation: ValidationReport | None = None


@dataclass
class LandResult:
    pr_number: int
    branch: str
    kind: BranchKind
    change_id: str | None = None
    already_merged: bool = False
    analysis: VersionAnalysis | None = None
    released: bool = False
    version: str | None = None
    release_declined: str | None = None
    bump_sha: str | None = None
    base_synced: bool = False
    cleanup: RemovalResult | None = None


@dataclass
class ReleaseResult:
    analysis: VersionAnalysis
    version: str
    dry_run: bool = False
    commit_sha: str | None = None
    files_updated: list[str] = field(default_factory=list)


@dataclass
class StatusResult:
    branch: str
    kind: BranchKind
    change_id: str | None = None
    change: Change | None = None
    worktree_path: Path | None = None
    progress: TaskProgress | None = None
    pr: PullRequest | None = None
    readiness: Readiness | None = None


@dataclass
class ChangeSummary:
    change_id: str
    branch: str
    state: ChangeState | None = None
    worktree_path: Path | None = None
    progress: TaskProgress | None = None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class LifecycleOrchestrator:
    """
    Drives one change through its lifecycle. One operation per call,
    one change per operation.
    """

    def __init__(
        self,
        repo_path: Path,
        config: SpecLifeConfig | None = None,
        git: GitRepo | None = None,
        github: GitHubClient | None = None,
        bus: EventBus | None = None,
        ask: AskCallback | None = None,
    ):
        self.repo_path = Path(repo_path).resolve()
        self.git = git or GitRepo(self.repo_path)
        self.main_path = self.git.main_worktree_path()
        self.config = config or load_config(self.main_path)
        self.github = github or GitHubClient(self.repo_path)
        self.bus = bus or default_bus
        self.ask = ask

        self.worktrees = WorktreeManager(self.git, self.config.git)
        self.ledger = ChangeLedger(self.main_path)

    @property
    def base_branch(self) -> str:
        return self.config.git.base_branch

    @property
    def remote(self) -> str:
        return self.config.git.remote

    def _spec(self, root: Path) -> OpenSpec:
        return OpenSpec(root, self.config.spec.spec_dir)

    # -----------------------------------------------------------------------
    # start
    # -----------------------------------------------------------------------

    def start(
        self,
        description_or_id: str,
        base_branch: str | None = None,
        no_worktree: bool = False,
    ) -> StartResult:
        base = base_branch or self.base_branch
        change_id = resolve_id(description_or_id, self.config.reserved_ids)
        description = description_or_id.strip() if description_or_id.strip() != change_id else None
        self._ensure_local_excludes()

        if no_worktree:
            if not self.git.is_clean():
                raise DirtyWorkingTree(
                    "Cannot switch branches with uncommitted changes",
                    context={"path": str(self.git.path)},
                    hint="commit or stash your changes, or start with a worktree",
                )
            branch = self.worktrees.create_branch_only(change_id, base)
            checkout, worktree_path = self.git.path, None
        else:
            wt = self.worktrees.create(change_id, base)
            branch, checkout, worktree_path = wt.branch, wt.path, wt.path

        try:
            proposal_path, tasks_path = self._spec(checkout).scaffold(change_id, description)
        except (SpecLifeError, OSError):
            logger.warning(f"[START] Scaffolding {change_id} failed; rolling back {branch}")
            self._rollback_start(change_id, branch, base, worktree_path)
            raise

        self.ledger.create(change_id, branch, worktree_path, description or "")
        self._emit("change_started", "start", {
            "id": change_id,
            "branch": branch,
            "worktree": str(worktree_path) if worktree_path else None,
        })
        logger.info(f"[START] {change_id} on {branch}")

        return StartResult(
            change_id=change_id,
            branch=branch,
            base_branch=base,
            worktree_path=worktree_path,
            proposal_path=proposal_path,
            tasks_path=tasks_path,
        )

    def _rollback_start(self, change_id: str, branch: str, base: str, worktree_path: Path | None) -> None:
        if worktree_path is not None:
            self.worktrees.remove(change_id)
            return
        self.git.checkout(base)
        self.git.delete_branch(branch, force=True)

    # -----------------------------------------------------------------------
    # ship
    # -----------------------------------------------------------------------

    def ship(
        self,
        message: str | None = None,
        draft: bool | None = None,
        strict: bool | None = None,
        skip_validation: bool = False,
        commit_type: str | None = None,
    ) -> ShipResult:
        info = detect(self.git, self.config.git)
        if info.kind is BranchKind.INVALID:
            raise InvalidBranch(
                f"Cannot ship from '{info.branch}'",
                context={"branch": info.branch, "base_branch": self.base_branch},
                hint="switch to a change branch, or run `speclife start` first",
            )

        draft = self.config.github.draft if draft is None else draft
        strict = self.config.spec.strict if strict is None else strict
        self._ensure_local_excludes()

        result = ShipResult(branch=info.branch, kind=info.kind, change_id=info.change_id)
        proposal: ChangeProposal | None = None

        # --- Managed: validate + archive, so the archive rides in the same PR ---
        if info.is_managed:
            proposal, result.validation, result.archived_to = self._prepare_managed(
                info.change_id, strict, skip_validation,
            )

        dirty = not self.git.is_clean()
        existing = self.github.get_pull_request(info.branch)
        unpushed = self._has_unpushed()
        needs_ready = existing is not None and existing.is_draft and not draft

        if not dirty and not unpushed and existing is not None and not needs_ready:
            raise NothingToCommit(
                f"Nothing to ship: {info.branch} is clean and PR #{existing.number} is up to date",
                context={"branch": info.branch, "pr": existing.number, "url": existing.url},
                hint="make changes first, or run `speclife land` when the PR is ready",
            )
        if not dirty and self.git.commits_ahead(self.base_branch) == 0:
            raise NothingToCommit(
                f"Nothing to ship: {info.branch} has no changes relative to {self.base_branch}",
                context={"branch": info.branch, "base_branch": self.base_branch},
                hint="commit some work on the branch first",
            )

        # --- Commit + push ---
        title = None
        if dirty:
            title = message or self._commit_message(info, proposal, commit_type)
            self.git.add_all()
            result.commit_sha = self.git.commit(title)
            logger.info(f"[SHIP] Committed {result.commit_sha[:7]}: {title.splitlines()[0]}")
            self._emit("changes_committed", "ship", {"branch": info.branch, "sha": result.commit_sha})

        if dirty or unpushed:
            self.git.push(self.remote, info.branch, set_upstream=True)
            result.pushed = True

        # --- PR: reuse, never duplicate ---
        if existing is None:
            pr_title = title or self._pr_title(info, proposal, message, commit_type)
            result.pr = self.github.create_pull_request(
                title=pr_title.splitlines()[0],
                body=self._pr_body(info, proposal),
                head=info.branch,
                base=self.base_branch,
                draft=draft,
            )
            result.pr_created = True
            self._emit("pr_created", "ship", {"number": result.pr.number, "url": result.pr.url})
        elif needs_ready:
            result.pr = self.github.mark_ready(existing.number)
            result.marked_ready = True
            logger.info(f"[SHIP] PR #{existing.number} marked ready for review")
        else:
            result.pr = existing
            logger.info(f"[SHIP] Updated existing PR #{existing.number}")

        if info.is_managed:
            self._ensure_change(info)
            self.ledger.advance(info.change_id, ChangeState.SUBMITTED, "ship", pr_number=result.pr.number)

        self._emit("change_shipped", "ship", {
            "branch": info.branch,
            "kind": info.kind.value,
            "pr": result.pr.number,
            "created": result.pr_created,
        })
        return result

    def _prepare_managed(
        self,
        change_id: str,
        strict: bool,
        skip_validation: bool,
    ) -> tuple[ChangeProposal, ValidationReport | None, Path | None]:
        spec = self._spec(self.git.path)
        # Read before archiving: raises NotFound when the proposal is neither active nor archived.
        proposal = spec.read_proposal(change_id)

        if not spec.change_exists(change_id):
            logger.info(f"[SHIP] {change_id} already archived; skipping validation")
            return proposal, None, None

        report = None
        if not skip_validation:
            report = spec.validate(change_id, strict=strict)
            if report.status == "fail" or (strict and report.warnings):
                raise ValidationFailed(
                    f"Proposal '{change_id}' failed validation",
                    context=report.to_dict(),
                    hint="fix the proposal, or re-run with --skip-validation",
                )
            for warning in report.warnings:
                logger.warning(f"[SHIP] {change_id}: {warning}")

        archived = spec.archive(change_id)
        self._emit("proposal_archived", "ship", {"id": change_id, "path": str(archived)})
        return proposal, report, archived

    def _has_unpushed(self) -> bool:
        if not self.git.has_upstream():
            return True
        return self.git.commits_ahead("@{u}") > 0

    def _commit_message(self, info: BranchInfo, proposal: ChangeProposal | None, commit_type: str | None) -> str:
        if info.is_managed:
            kind = commit_type or infer_change_type(info.change_id)
            subject = (proposal.title if proposal else "") or info.change_id.replace("-", " ")
            return f"{kind}: {subject}"

        kind = self._resolve_commit_type(info.branch, commit_type)
        tail = info.branch.split("/", 1)[-1]
        return f"{kind}: {tail.replace('-', ' ').replace('_', ' ')}"

    def _resolve_commit_type(self, branch: str, commit_type: str | None) -> str:
        if commit_type:
            return commit_type

        inferred = infer_commit_type(branch)
        if inferred != UNKNOWN_TYPE:
            return inferred

        if self.ask is None:
            raise NeedsInput(
                f"Cannot infer a commit type from branch '{branch}'",
                context={"branch": branch, "choices": COMMIT_TYPES},
                hint="pass --type or --message",
            )
        chosen = self.ask(branch, list(COMMIT_TYPES))
        logger.debug(f"[SHIP] Commit type for {branch}: {chosen} (asked)")
        return chosen

    def _pr_title(
        self,
        info: BranchInfo,
        proposal: ChangeProposal | None,
        message: str | None,
        commit_type: str | None,
    ) -> str:
        if message:
            return message
        if info.is_managed:
            return self._commit_message(info, proposal, commit_type)
        # Clean tree: title the PR after the newest commit on the branch.
        commits = self.git.commits_since(self.base_branch, "HEAD")
        return commits[0].message if commits else self._commit_message(info, proposal, commit_type)

    @staticmethod
    def _pr_body(info: BranchInfo, proposal: ChangeProposal | None) -> str:
        if proposal is None:
            return f"Changes from `{info.branch}`.\n"

        body = f"## Why\n{proposal.why or '_No rationale given._'}\n"
        if proposal.what_changes:
            body += "\n## What Changes\n"
            body += "".join(f"- {item}\n" for item in proposal.what_changes)
        body += f"\nChange: `{info.change_id}`\n"
        return body

    # -----------------------------------------------------------------------
    # land
    # -----------------------------------------------------------------------

    def land(
        self,
        target: str | int | None = None,
        method: str | None = None,
        skip_release: bool = False,
    ) -> LandResult:
        pr = self._resolve_pr(target)
        head = pr.head_branch
        prefix = self.config.git.branch_prefix
        kind = BranchKind.AD_HOC if pr.is_cross_repository else classify(head, self.base_branch, prefix)
        change_id = change_id_from_branch(head, prefix) if kind is BranchKind.MANAGED else None

        result = LandResult(pr_number=pr.number, branch=head, kind=kind, change_id=change_id)

        if pr.state is PRState.MERGED:
            # Completes an interrupted land: only sync + cleanup remain.
            result.already_merged = True
            logger.info(f"[LAND] PR #{pr.number} already merged; finishing sync and cleanup")
        else:
            pr = self._ensure_ready(pr)
            self._check_cleanup_safe(pr)

            pin = pr.head_sha or None
            if not skip_release:
                ref = self._fetch_pr_head(pr)
                analysis, commits = self._analyze(ref)
                result.analysis = analysis
                result.release_declined = self._release_decline(analysis, pr)
                if result.release_declined is None:
                    # The bump commit must exist on the head before the merge, never after.
                    pin = self._bump_pr_head(pr, ref, analysis, commits)
                    result.bump_sha = pin
                    result.released = True
                    result.version = analysis.next_version
                else:
                    logger.info(f"[LAND] No auto-release: {result.release_declined}")

            self._merge(pr, method, pin, result.version if result.released else None)

        if change_id:
            self._ensure_change_for(change_id, head)
            self.ledger.advance(change_id, ChangeState.MERGED, "land", pr_number=pr.number)
            if result.released:
                self.ledger.advance(change_id, ChangeState.RELEASED, "land", version=result.version)

        result.base_synced = self._sync_base(None if pr.is_cross_repository else head)
        result.cleanup = self._cleanup(head, kind, change_id, pr.is_cross_repository)

        self._emit("change_landed", "land", {
            "pr": pr.number,
            "branch": head,
            "released": result.released,
            "version": result.version,
            "base_synced": result.base_synced,
        })
        return result

    def _resolve_pr(self, target: str | int | None) -> PullRequest:
        if target is None:
            branch = self.git.current_branch()
            if classify(branch, self.base_branch, self.config.git.branch_prefix) is BranchKind.INVALID:
                raise InvalidBranch(
                    f"Cannot land from '{branch}'",
                    context={"branch": branch},
                    hint="pass a PR number, branch name or change id",
                )
            ref: str | int = branch
        elif isinstance(target, int) or str(target).isdigit():
            ref = int(target)
        elif "/" in str(target) or self.git.branch_exists(str(target)):
            ref = str(target)
        else:
            ref = branch_for(str(target), self.config.git.branch_prefix)

        pr = self.github.get_pull_request(ref, state="all")
        if pr is None:
            raise NotFound(
                f"No pull request found for {ref}",
                context={"ref": ref},
                hint="run `speclife ship` first",
            )
        if pr.state is PRState.CLOSED:
            raise NotReady(
                f"PR #{pr.number} is closed",
                context={"number": pr.number, "blockers": ["state: closed"]},
                hint="reopen the pull request, or ship again",
            )
        return pr

    def _ensure_ready(self, pr: PullRequest) -> PullRequest:
        if pr.mergeable is None:
            pr = self.github.wait_for_mergeable(pr.number) or pr

        readiness = evaluate(pr)
        if not readiness.ready:
            self._emit("pr_blocked", "land", {"number": pr.number, "blockers": readiness.blockers})
            raise NotReady(
                f"PR #{pr.number} is not ready to land",
                context={"number": pr.number, "url": pr.url, "blockers": readiness.blockers},
                hint="resolve the blockers and re-run land",
            )
        return pr

    def _check_cleanup_safe(self, pr: PullRequest) -> None:
        """Refuse to merge when cleanup would throw away local work."""
        if pr.is_cross_repository:
            return
        head = pr.head_branch
        bound = self.worktrees.find(head)
        if bound is not None and not GitRepo(bound.path).is_clean():
            raise DirtyWorkingTree(
                f"Worktree for {head} has uncommitted changes",
                context={"branch": head, "path": str(bound.path)},
                hint="run `speclife ship` or discard the changes before landing",
            )

        main = GitRepo(self.main_path, self.git.timeout)
        if main.current_branch() == head and not main.is_clean():
            raise DirtyWorkingTree(
                f"{self.main_path} has uncommitted changes on {head}",
                context={"branch": head, "path": str(self.main_path)},
                hint="commit and ship, or discard the changes before landing",
            )

        if main.branch_exists(head) and self._remote_ref_exists(main, head):
            ahead = main.commits_ahead(f"refs/remotes/{self.remote}/{head}", head)
            if ahead:
                raise DirtyWorkingTree(
                    f"{head} has {ahead} unpushed commit(s)",
                    context={"branch": head, "unpushed": ahead},
                    hint="run `speclife ship` so the PR carries them",
                )

    def _remote_ref_exists(self, repo: GitRepo, branch: str) -> bool:
        try:
            repo.head_sha(f"refs/remotes/{self.remote}/{branch}")
        except GitError:
            return False
        return True

    def _fetch_pr_head(self, pr: PullRequest) -> str:
        """Fetch the PR head into a local ref and return that ref."""
        if pr.is_cross_repository:
            ref = f"refs/remotes/{self.remote}/pr/{pr.number}"
            self.git.fetch(self.remote, f"+refs/pull/{pr.number}/head:{ref}")
        else:
            ref = f"refs/remotes/{self.remote}/{pr.head_branch}"
            self.git.fetch(self.remote, f"+refs/heads/{pr.head_branch}:{ref}")
        return ref

    def _release_decline(self, analysis: VersionAnalysis, pr: PullRequest) -> str | None:
        if not is_auto_release_allowed(analysis.bump, self.config.release.auto_release):
            if analysis.bump == "major":
                return "major bumps are manual: run `speclife release --major` after landing"
            return f"auto-release is not enabled for {analysis.bump} bumps"
        if pr.is_cross_repository:
            return "cross-repository PR: the head branch cannot be pushed to"
        return None

    def _merge(self, pr: PullRequest, method: str | None, pin: str | None, version: str | None) -> None:
        method = method or self.config.github.merge_method
        subject = body = None
        if method != "rebase":
            subject = f"{pr.title} (#{pr.number})"
            body = release_commit_message(version) if version else None

        self.github.merge_pull_request(pr.number, method=method, subject=subject, body=body, match_head_commit=pin)
        self._emit("pr_merged", "land", {"number": pr.number, "method": method, "head": pin})

    # --- version analysis + bump ---

    def _analyze(self, ref: str) -> tuple[VersionAnalysis, list[CommitInfo]]:
        """Analyze ref against the freshly fetched remote base branch and its tags."""
        base_ref = f"refs/remotes/{self.remote}/{self.base_branch}"
        self.git.fetch(self.remote, f"+refs/heads/{self.base_branch}:{base_ref}", tags=True)

        prefix = self.config.release.tag_prefix
        tag = self.git.latest_tag(prefix, merged=base_ref)
        commits = [parse_conventional_commit(c.message, c.sha) for c in self.git.commits_since(tag, ref)]
        current = self._current_version(tag, base_ref)
        analysis = suggest_bump(commits, current)
        logger.info(f"[LAND] {current} → {analysis.next_version} ({analysis.reasoning})")
        return analysis, commits

    def _current_version(self, tag: str | None, ref: str) -> str:
        """Highest of the latest release tag and the version file on ref."""
        candidates: list[str] = []
        prefix = self.config.release.tag_prefix
        if tag and tag.startswith(prefix):
            candidates.append(tag[len(prefix):])

        for name in self.config.release.version_files or KNOWN_VERSION_FILES:
            content = self.git.show_file(ref, name)
            version = read_version_text(name, content) if content else None
            if version:
                candidates.append(version)
                break

        valid = [c for c in candidates if is_valid_version(c)]
        return max(valid, key=parse_version, default="0.0.0")

    def _bump_pr_head(
        self,
        pr: PullRequest,
        ref: str,
        analysis: VersionAnalysis,
        commits: list[CommitInfo],
    ) -> str:
        """
        Commit the version bump on the PR head and push it. Returns the
        new head sha the merge must be pinned to.
        """
        head_sha = self.git.head_sha(ref)
        bound = self.worktrees.find(pr.head_branch)
        if bound is not None:
            repo = GitRepo(bound.path, self.git.timeout)
            if repo.is_clean() and repo.head_sha() == head_sha:
                return self._apply_bump(repo, pr.head_branch, analysis, commits)

        main = GitRepo(self.main_path, self.git.timeout)
        scratch = Path(tempfile.mkdtemp(prefix="speclife-release-"))
        checkout = scratch / "checkout"
        main.add_detached_worktree(checkout, head_sha)
        try:
            return self._apply_bump(GitRepo(checkout, self.git.timeout), pr.head_branch, analysis, commits)
        finally:
            main.remove_worktree(checkout, force=True)
            shutil.rmtree(scratch, ignore_errors=True)
            main.prune_worktrees()

    def _apply_bump(self, repo: GitRepo, branch: str, analysis: VersionAnalysis, commits: list[CommitInfo]) -> str:
        version = analysis.next_version
        files = detect_version_files(repo.path, self.config.release.version_files)

        if self._already_bumped(repo, files, version):
            logger.info(f"[LAND] {branch} already carries v{version}; not bumping again")
            return repo.head_sha()

        touched = write_version(repo.path, files, version)
        if self.config.release.changelog:
            prepend_changelog(repo.path, generate_changelog(commits, version))

        if repo.is_clean():
            logger.warning(f"[LAND] Nothing to bump on {branch}: no version files or changelog")
            return repo.head_sha()

        repo.add_all()
        sha = repo.commit(release_commit_message(version))
        repo.push(self.remote, f"HEAD:refs/heads/{branch}", set_upstream=False)
        self._emit("version_bumped", "land", {"branch": branch, "version": version, "sha": sha, "files": touched})
        logger.info(f"[LAND] Bumped {branch} to v{version} ({sha[:7]})")
        return sha

    def _already_bumped(self, repo: GitRepo, files: list[str], version: str) -> bool:
        if is_release_commit(repo.commit_message()) == version:
            return True
        if files:
            return read_version(repo.path, files) == version
        return self.config.release.changelog and has_changelog_entry(repo.path, version)

    # --- after the merge ---

    def _sync_base(self, leaving_branch: str | None) -> bool:
        """
        Bring the local base branch up to date in the main checkout.

        The merge has already happened, so a failure here is reported
        rather than raised.
        """
        main = GitRepo(self.main_path, self.git.timeout)
        base = self.base_branch
        try:
            current = main.current_branch()
            if leaving_branch and current == leaving_branch:
                main.checkout(base)
                current = base
            if current == base:
                main.pull(self.remote, base)
            else:
                main.fetch(self.remote, f"{base}:{base}")
        except GitError as e:
            logger.warning(f"[LAND] Could not sync {base}: {e.message}")
            return False

        self._emit("base_synced", "land", {"branch": base})
        return True

    def _cleanup(
        self,
        head: str,
        kind: BranchKind,
        change_id: str | None,
        cross_repository: bool,
    ) -> RemovalResult | None:
        if cross_repository or kind is BranchKind.INVALID:
            logger.debug(f"[LAND] No local state to clean up for {head}")
            return None

        if kind is BranchKind.MANAGED:
            removal = self.worktrees.remove(change_id)
        else:
            removal = self.worktrees.remove_branch(head)

        self._emit("cleanup_done", "land", {
            "branch": head,
            "worktree_removed": removal.worktree_removed,
            "branch_deleted": removal.branch_deleted,
        })
        return removal

    # -----------------------------------------------------------------------
    # release
    # -----------------------------------------------------------------------

    def release(
        self,
        bump: str | None = None,
        version: str | None = None,
        dry_run: bool = False,
    ) -> ReleaseResult:
        branch = self.git.current_branch()
        if branch != self.base_branch:
            raise InvalidBranch(
                f"Releases are cut from {self.base_branch}, not '{branch}'",
                context={"branch": branch, "base_branch": self.base_branch},
                hint=f"git checkout {self.base_branch} && git pull",
            )
        if not self.git.is_clean():
            raise DirtyWorkingTree(
                "Working tree has uncommitted changes",
                context={"changes": self.git.status_porcelain()[:10]},
                hint="commit or stash them before releasing",
            )
        if bump is not None and bump not in BUMP_TYPES:
            raise PolicyViolation(f"Unknown bump type '{bump}'", context={"bump": bump, "allowed": list(BUMP_TYPES)})

        tag = self.git.latest_tag(self.config.release.tag_prefix)
        raw = self.git.commits_since(tag, "HEAD")
        if not raw:
            raise NothingToCommit(
                f"No commits since {tag or 'the beginning of history'}",
                context={"tag": tag},
                hint="there is nothing to release",
            )
        pending = is_release_commit(raw[0].message)
        if pending:
            raise NothingToCommit(
                f"HEAD is already the release commit for v{pending}",
                context={"version": pending, "sha": raw[0].sha},
                hint="wait for CI to tag it",
            )

        commits = [parse_conventional_commit(c.message, c.sha) for c in raw]
        current = self._current_version(tag, "HEAD")
        analysis = self._release_analysis(commits, current, bump, version)

        if dry_run:
            return ReleaseResult(analysis=analysis, version=analysis.next_version, dry_run=True)

        root = self.git.path
        files = write_version(root, detect_version_files(root, self.config.release.version_files), analysis.next_version)
        if self.config.release.changelog:
            prepend_changelog(root, generate_changelog(commits, analysis.next_version))
        if self.git.is_clean():
            raise NothingToCommit(
                "No version file or changelog to update",
                hint="configure release.version_files or enable release.changelog",
            )

        self.git.add_all()
        sha = self.git.commit(release_commit_message(analysis.next_version))
        self.git.push(self.remote, self.base_branch, set_upstream=False)

        for change in self.ledger.list():
            if change.state is ChangeState.MERGED:
                self.ledger.advance(change.id, ChangeState.RELEASED, "release", version=analysis.next_version)

        self._emit("release_committed", "release", {"version": analysis.next_version, "sha": sha, "files": files})
        logger.info(f"[RELEASE] v{analysis.next_version} committed ({sha[:7]})")
        return ReleaseResult(
            analysis=analysis,
            version=analysis.next_version,
            commit_sha=sha,
            files_updated=files,
        )

    @staticmethod
    def _release_analysis(
        commits: list[CommitInfo],
        current: str,
        bump: str | None,
        version: str | None,
    ) -> VersionAnalysis:
        analysis = suggest_bump(commits, current)

        if version:
            version = version.lstrip("v")
            if parse_version(version) <= parse_version(current):
                raise PolicyViolation(
                    f"Version {version} does not advance {current}",
                    context={"version": version, "current_version": current},
                    hint="pick a version above the current one",
                )
            return replace(
                analysis,
                bump=_bump_between(current, version),
                next_version=version,
                reasoning=f"explicit version {version} (analysis suggested {analysis.bump})",
            )

        if bump:
            return replace(
                analysis,
                bump=bump,
                next_version=bump_version(current, bump),
                reasoning=f"explicit --{bump} (analysis suggested {analysis.bump})",
            )

        if analysis.bump == "major":
            raise PolicyViolation(
                f"Analysis suggests a major bump: {analysis.reasoning}",
                context={"bump": "major", "current_version": current, "counts": analysis.counts},
                hint="re-run with explicit --major",
            )
        return analysis

    # -----------------------------------------------------------------------
    # status / list
    # -----------------------------------------------------------------------

    def status(self, change_id: str | None = None) -> StatusResult:
        prefix = self.config.git.branch_prefix
        if change_id is None:
            info = detect(self.git, self.config.git)
            if not info.is_managed:
                pr = None
                if info.kind is BranchKind.AD_HOC:
                    pr = self.github.get_pull_request(info.branch, state="all")
                return StatusResult(
                    branch=info.branch,
                    kind=info.kind,
                    worktree_path=info.worktree_path,
                    pr=pr,
                    readiness=evaluate(pr) if pr and pr.state is PRState.OPEN else None,
                )
            change_id = info.change_id

        branch = branch_for(change_id, prefix)
        bound = self.worktrees.find(branch)
        checkout = bound.path if bound else self.main_path
        change = self.ledger.get(change_id)
        spec = self._spec(checkout)

        if change is None and bound is None and not spec.change_exists(change_id) and not self.git.branch_exists(branch):
            raise NotFound(
                f"Change '{change_id}' not found",
                context={"id": change_id},
                hint="run `speclife list` to see known changes",
            )

        progress = spec.read_tasks(change_id)
        if change is not None and change.state is ChangeState.CREATED and progress.completed:
            change = self.ledger.advance(change_id, ChangeState.IMPLEMENTING, "tasks")

        pr = self.github.get_pull_request(branch, state="all")
        return StatusResult(
            branch=branch,
            kind=BranchKind.MANAGED,
            change_id=change_id,
            change=change,
            worktree_path=bound.path if bound else None,
            progress=progress,
            pr=pr,
            readiness=evaluate(pr) if pr and pr.state is PRState.OPEN else None,
        )

    def list_changes(self) -> list[ChangeSummary]:
        prefix = self.config.git.branch_prefix
        worktrees = {wt.change_id: wt for wt in self.worktrees.list() if wt.change_id}
        records = {change.id: change for change in self.ledger.list()}
        active = set(self._spec(self.main_path).list_changes())

        summaries = []
        for change_id in sorted(set(worktrees) | set(records) | active):
            wt = worktrees.get(change_id)
            change = records.get(change_id)
            checkout = wt.path if wt else self.main_path
            summaries.append(ChangeSummary(
                change_id=change_id,
                branch=branch_for(change_id, prefix),
                state=change.state if change else None,
                worktree_path=wt.path if wt else None,
                progress=self._spec(checkout).read_tasks(change_id),
            ))
        return summaries

    # -----------------------------------------------------------------------
    # Utilities
    # -----------------------------------------------------------------------

    def _ensure_change(self, info: BranchInfo) -> None:
        self._ensure_change_for(info.change_id, info.branch, info.worktree_path)

    def _ensure_change_for(self, change_id: str, branch: str, worktree_path: Path | None = None) -> None:
        """Adopt a managed branch that was not started through this tool."""
        if not self.ledger.exists(change_id):
            logger.debug(f"[STATE] Adopting {branch} into the ledger")
            self.ledger.create(change_id, branch, worktree_path)

    def _ensure_local_excludes(self) -> None:
        """Keep worktrees and local bookkeeping out of every commit."""
        exclude = self.git.common_dir() / "info" / "exclude"
        wanted = [f"/{self.config.git.worktree_dir}/", "/.speclife/changes/", "/.speclife/logs/"]
        existing = exclude.read_text().splitlines() if exclude.exists() else []
        missing = [line for line in wanted if line not in existing]
        if not missing:
            return
        exclude.parent.mkdir(parents=True, exist_ok=True)
        with open(exclude, "a") as f:
            if existing and existing[-1].strip():
                f.write("\n")
            f.write("\n".join(missing) + "\n")

    def _emit(self, event_type: str, operation: str, payload: dict[str, Any]) -> None:
        self.bus.emit(event_type=event_type, operation=operation, payload=payload)
        logger.debug(f"[EVENT] {event_type}: {payload}")


def _bump_between(current: str, target: str) -> str:
    old, new = parse_version(current), parse_version(target)
    if new[0] != old[0]:
        return "major"
    if new[1] != old[1]:
        return "minor"
    return "patch"
