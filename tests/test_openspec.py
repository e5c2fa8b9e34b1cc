from datetime import date

import pytest

from speclife.errors import NotFound
from speclife.openspec import ChangeExists, OpenSpec, parse_proposal

PROPOSAL = """## Why
Users need to sign in with their existing accounts.
More context here.

## What Changes
- Add an OAuth callback endpoint
- Store provider tokens

## Impact
- Affected specs: auth, sessions
- Affected code: app/auth.py
"""

TASKS = """## 1. Implementation
- [x] 1.1 Callback endpoint
- [ ] 1.2 Token storage
"""


def _write_change(spec: OpenSpec, change_id: str, proposal: str = PROPOSAL, tasks: str | None = TASKS):
    change_dir = spec.change_dir(change_id)
    change_dir.mkdir(parents=True)
    (change_dir / "proposal.md").write_text(proposal)
    if tasks is not None:
        (change_dir / "tasks.md").write_text(tasks)
    return change_dir


def test_parse_proposal():
    proposal = parse_proposal(PROPOSAL)
    assert proposal.title == "Users need to sign in with their existing accounts."
    assert proposal.what_changes == ["Add an OAuth callback endpoint", "Store provider tokens"]
    assert proposal.affected_specs == ["auth", "sessions"]
    assert proposal.affected_code == ["app/auth.py"]


def test_scaffold_creates_templates(tmp_path):
    spec = OpenSpec(tmp_path)
    proposal, tasks = spec.scaffold("add-oauth-login", "Add OAuth login")

    assert proposal == tmp_path / "openspec" / "changes" / "add-oauth-login" / "proposal.md"
    assert "## Why\nAdd OAuth login" in proposal.read_text()
    assert "- [ ] 1.1" in tasks.read_text()
    assert spec.change_exists("add-oauth-login")
    assert spec.list_changes() == ["add-oauth-login"]


def test_scaffold_refuses_existing_change(tmp_path):
    spec = OpenSpec(tmp_path)
    spec.scaffold("x")
    with pytest.raises(ChangeExists):
        spec.scaffold("x")


def test_fresh_scaffold_warns_about_placeholders(tmp_path):
    spec = OpenSpec(tmp_path)
    spec.scaffold("x")
    report = spec.validate("x")
    assert report.status == "pass_with_warnings"
    assert "proposal.md still contains template placeholders" in report.warnings
    assert "4 of 4 tasks still open" in report.warnings


def test_complete_proposal_passes_with_open_task_warning(tmp_path):
    spec = OpenSpec(tmp_path)
    _write_change(spec, "add-oauth")
    report = spec.validate("add-oauth")
    assert report.status == "pass_with_warnings"
    assert report.errors == []
    assert report.warnings == ["1 of 2 tasks still open"]
    assert report.source == "builtin"


def test_missing_sections_are_errors(tmp_path):
    spec = OpenSpec(tmp_path)
    _write_change(spec, "bare", proposal="## Why\n\n## What Changes\n", tasks=None)
    report = spec.validate("bare")
    assert report.status == "fail"
    assert "proposal.md: '## Why' section is empty" in report.errors
    assert "proposal.md: '## What Changes' lists no changes" in report.errors
    assert "tasks.md is missing" in report.errors


def test_archive_moves_change(tmp_path):
    spec = OpenSpec(tmp_path)
    _write_change(spec, "add-oauth")
    target = spec.archive("add-oauth", on=date(2026, 3, 4))

    assert target == spec.archive_dir / "2026-03-04-add-oauth"
    assert (target / "proposal.md").exists()
    assert not spec.change_exists("add-oauth")
    assert spec.is_archived("add-oauth")
    assert spec.list_changes() == []


def test_archived_change_still_readable(tmp_path):
    spec = OpenSpec(tmp_path)
    _write_change(spec, "add-oauth")
    spec.archive("add-oauth")

    assert spec.read_proposal("add-oauth").what_changes[0] == "Add an OAuth callback endpoint"
    progress = spec.read_tasks("add-oauth")
    assert (progress.completed, progress.total) == (1, 2)


def test_archive_unknown_change(tmp_path):
    with pytest.raises(NotFound):
        OpenSpec(tmp_path).archive("ghost")


def test_read_proposal_unknown_change(tmp_path):
    with pytest.raises(NotFound) as exc:
        OpenSpec(tmp_path).read_proposal("ghost")
    assert "speclife start" in exc.value.hint


def test_read_tasks_unknown_change_is_empty(tmp_path):
    progress = OpenSpec(tmp_path).read_tasks("ghost")
    assert progress.total == 0
