"""
SpecLife OpenSpec — Proposal/Spec Collaborator

Reads and writes the change proposal artifacts:

    <spec_dir>/changes/<id>/proposal.md
    <spec_dir>/changes/<id>/tasks.md
    <spec_dir>/changes/archive/<YYYY-MM-DD>-<id>/   (after ship)

Validation goes through the `openspec` CLI when it is installed and
falls back to built-in structural checks otherwise.
"""

from __future__ import annotations

import json
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Literal

from loguru import logger

from speclife.errors import NotFound, SpecLifeError
from speclife.tasks import TaskProgress, parse_tasks

ValidationStatus = Literal["pass", "pass_with_warnings", "fail"]

_SECTION_RE = r"^## {title}\s*\n(?P<body>.*?)(?=^## |\Z)"
_PLACEHOLDER_RE = re.compile(r"\[(?! |x\]|X\])[^\]]+\]")


class ChangeExists(SpecLifeError):
    kind = "ChangeExists"


@dataclass
class ChangeProposal:
    why: str = ""
    what_changes: list[str] = field(default_factory=list)
    affected_specs: list[str] = field(default_factory=list)
    affected_code: list[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.why.strip().splitlines()[0].strip() if self.why.strip() else ""


@dataclass
class ValidationReport:
    status: ValidationStatus
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    source: str = "builtin"
    output: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "errors": self.errors,
            "warnings": self.warnings,
            "source": self.source,
        }


def _status(errors: list[str], warnings: list[str]) -> ValidationStatus:
    if errors:
        return "fail"
    if warnings:
        return "pass_with_warnings"
    return "pass"


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def proposal_template(description: str | None = None) -> str:
    return f"""## Why
{description or '[Describe the problem or opportunity]'}

## What Changes
- [List the changes to be made]

## Impact
- Affected specs: [list capabilities]
- Affected code: [key files/systems]
"""


TASKS_TEMPLATE = """## 1. Implementation
- [ ] 1.1 [First task]
- [ ] 1.2 [Second task]

## 2. Testing
- [ ] 2.1 Add unit tests
- [ ] 2.2 Add integration tests
"""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _section(content: str, title: str) -> str | None:
    match = re.search(_SECTION_RE.format(title=re.escape(title)), content, re.MULTILINE | re.DOTALL)
    return match.group("body").strip() if match else None


def _impact_items(impact: str, label: str) -> list[str]:
    match = re.search(rf"{re.escape(label)}\s*(.+)", impact)
    if not match:
        return []
    return [item.strip() for item in match.group(1).split(",") if item.strip()]


def parse_proposal(content: str) -> ChangeProposal:
    what = _section(content, "What Changes") or ""
    impact = _section(content, "Impact") or ""
    return ChangeProposal(
        why=_section(content, "Why") or "",
        what_changes=[line.lstrip("-* ").strip() for line in what.splitlines() if line.lstrip().startswith(("-", "*"))],
        affected_specs=_impact_items(impact, "Affected specs:"),
        affected_code=_impact_items(impact, "Affected code:"),
    )


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class OpenSpec:
    """
    Proposal artifacts of one checkout (main repo or a change worktree).
    """

    def __init__(self, project_root: Path, spec_dir: str = "openspec"):
        self.project_root = Path(project_root)
        self.spec_dir = spec_dir
        self.changes_dir = self.project_root / spec_dir / "changes"
        self.archive_dir = self.changes_dir / "archive"

    def change_dir(self, change_id: str) -> Path:
        return self.changes_dir / change_id

    def change_exists(self, change_id: str) -> bool:
        return self.change_dir(change_id).is_dir()

    def archived_path(self, change_id: str) -> Path | None:
        if not self.archive_dir.is_dir():
            return None
        pattern = re.compile(rf"^\d{{4}}-\d{{2}}-\d{{2}}-{re.escape(change_id)}$")
        matches = sorted(p for p in self.archive_dir.iterdir() if p.is_dir() and pattern.match(p.name))
        return matches[-1] if matches else None

    def is_archived(self, change_id: str) -> bool:
        return self.archived_path(change_id) is not None

    def list_changes(self) -> list[str]:
        if not self.changes_dir.is_dir():
            return []
        return sorted(p.name for p in self.changes_dir.iterdir() if p.is_dir() and p.name != "archive")

    # ------------------------------------------------------------------
    # Scaffold / read
    # ------------------------------------------------------------------

    def scaffold(self, change_id: str, description: str | None = None) -> tuple[Path, Path]:
        change_dir = self.change_dir(change_id)
        if change_dir.exists():
            raise ChangeExists(
                f"Change '{change_id}' already exists",
                context={"id": change_id, "path": str(change_dir)},
            )
        change_dir.mkdir(parents=True)
        proposal = change_dir / "proposal.md"
        tasks = change_dir / "tasks.md"
        proposal.write_text(proposal_template(description))
        tasks.write_text(TASKS_TEMPLATE)
        logger.info(f"[SPEC] Scaffolded {change_dir}")
        return proposal, tasks

    def _locate(self, change_id: str) -> Path:
        """Active change directory, or its archived copy."""
        if self.change_exists(change_id):
            return self.change_dir(change_id)
        archived = self.archived_path(change_id)
        if archived is not None:
            return archived
        raise NotFound(
            f"Change '{change_id}' not found",
            context={"id": change_id, "changes_dir": str(self.changes_dir)},
            hint="run `speclife start` first",
        )

    def read_proposal(self, change_id: str) -> ChangeProposal:
        path = self._locate(change_id) / "proposal.md"
        if not path.is_file():
            raise NotFound(f"Proposal for change '{change_id}' not found", context={"path": str(path)})
        return parse_proposal(path.read_text())

    def read_tasks(self, change_id: str) -> TaskProgress:
        try:
            path = self._locate(change_id) / "tasks.md"
        except NotFound:
            return TaskProgress(completed=0, total=0)
        if not path.is_file():
            return TaskProgress(completed=0, total=0)
        return parse_tasks(path.read_text()).progress

    # ------------------------------------------------------------------
    # Validate / archive
    # ------------------------------------------------------------------

    def validate(self, change_id: str, strict: bool = False) -> ValidationReport:
        if shutil.which("openspec"):
            report = self._validate_cli(change_id, strict)
            if report is not None:
                return report
        return self._validate_builtin(change_id)

    def _validate_cli(self, change_id: str, strict: bool) -> ValidationReport | None:
        cmd = ["openspec", "validate", change_id, "--json", "--no-interactive"]
        if strict:
            cmd.append("--strict")
        try:
            result = subprocess.run(cmd, cwd=self.project_root, capture_output=True, text=True, timeout=120)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[SPEC] openspec validate unavailable ({e}); using built-in checks")
            return None

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            errors = [] if result.returncode == 0 else [result.stdout.strip() or result.stderr.strip() or "Validation failed"]
            return ValidationReport(status=_status(errors, []), errors=errors, source="openspec", output=result.stdout)

        errors = [str(e) for e in data.get("errors", [])] if isinstance(data, dict) else []
        warnings = [str(w) for w in data.get("warnings", [])] if isinstance(data, dict) else []
        if isinstance(data, dict) and data.get("valid") is False and not errors:
            errors.append("openspec reported the change as invalid")
        return ValidationReport(status=_status(errors, warnings), errors=errors, warnings=warnings, source="openspec", output=result.stdout)

    def _validate_builtin(self, change_id: str) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []
        change_dir = self.change_dir(change_id)

        proposal_path = change_dir / "proposal.md"
        if not proposal_path.is_file():
            errors.append("proposal.md is missing")
        else:
            content = proposal_path.read_text()
            proposal = parse_proposal(content)
            if not proposal.why:
                errors.append("proposal.md: '## Why' section is empty")
            if not proposal.what_changes:
                errors.append("proposal.md: '## What Changes' lists no changes")
            if _PLACEHOLDER_RE.search(content):
                warnings.append("proposal.md still contains template placeholders")

        tasks_path = change_dir / "tasks.md"
        if not tasks_path.is_file():
            errors.append("tasks.md is missing")
        else:
            progress = parse_tasks(tasks_path.read_text()).progress
            if progress.total == 0:
                warnings.append("tasks.md has no tasks")
            elif progress.completed < progress.total:
                warnings.append(f"{progress.total - progress.completed} of {progress.total} tasks still open")

        return ValidationReport(status=_status(errors, warnings), errors=errors, warnings=warnings)

    def archive(self, change_id: str, on: date | None = None) -> Path:
        source = self.change_dir(change_id)
        if not source.is_dir():
            raise NotFound(f"Change '{change_id}' not found", context={"id": change_id})

        target = self.archive_dir / f"{(on or date.today()).isoformat()}-{change_id}"
        if target.exists():
            raise ChangeExists(
                f"Archive target {target} already exists",
                context={"id": change_id, "path": str(target)},
                hint="remove the stale archive entry and re-run ship",
            )
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        source.rename(target)
        logger.info(f"[SPEC] Archived {change_id} → {target}")
        return target
