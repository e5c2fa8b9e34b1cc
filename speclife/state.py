"""
SpecLife State — Change Ledger

The durable record of each change's lifecycle position, one JSON file
per change under <main>/.speclife/changes/<id>.json.

States only move forward:
    created → implementing → submitted → merged → released
Re-running an operation that has already taken effect is a no-op.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from speclife.errors import ConfigInvalid, NotFound


class ChangeState(str, Enum):
    CREATED = "created"
    IMPLEMENTING = "implementing"
    SUBMITTED = "submitted"
    MERGED = "merged"
    RELEASED = "released"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)


_ORDER = list(ChangeState)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateTransition(BaseModel):
    """One recorded step along the lifecycle."""
    state: ChangeState
    trigger: str
    at: str = Field(default_factory=_now)


class Change(BaseModel):
    """A named unit of work, from proposal to release."""
    id: str
    branch: str
    worktree_path: str | None = None
    state: ChangeState = ChangeState.CREATED
    description: str = ""
    pr_number: int | None = None
    version: str | None = None
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)
    transitions: list[StateTransition] = Field(default_factory=list)

    def advance(self, state: ChangeState, trigger: str) -> bool:
        """Move forward to `state`. Returns False (and changes nothing) otherwise."""
        if state.rank <= self.state.rank:
            return False
        self.state = state
        self.updated_at = _now()
        self.transitions.append(StateTransition(state=state, trigger=trigger, at=self.updated_at))
        return True

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


class ChangeLedger:
    """
    File-backed store of Change records.

    Always rooted at the main checkout so every worktree sees the same
    ledger.
    """

    def __init__(self, root: Path):
        self.dir = Path(root) / ".speclife" / "changes"

    def _path(self, change_id: str) -> Path:
        return self.dir / f"{change_id}.json"

    def exists(self, change_id: str) -> bool:
        return self._path(change_id).is_file()

    def get(self, change_id: str) -> Change | None:
        path = self._path(change_id)
        if not path.is_file():
            return None
        try:
            return Change.model_validate_json(path.read_text())
        except ValidationError as e:
            raise ConfigInvalid(
                f"Corrupt ledger entry {path}: {e.error_count()} error(s)",
                context={"path": str(path)},
                hint="delete the file to let speclife recreate it",
            )

    def require(self, change_id: str) -> Change:
        change = self.get(change_id)
        if change is None:
            raise NotFound(f"No ledger entry for change '{change_id}'", context={"id": change_id})
        return change

    def save(self, change: Change) -> Path:
        self.dir.mkdir(parents=True, exist_ok=True)
        path = self._path(change.id)
        path.write_text(change.to_json())
        return path

    def create(
        self,
        change_id: str,
        branch: str,
        worktree_path: Path | None = None,
        description: str = "",
    ) -> Change:
        change = Change(
            id=change_id,
            branch=branch,
            worktree_path=str(worktree_path) if worktree_path else None,
            description=description,
            transitions=[StateTransition(state=ChangeState.CREATED, trigger="start")],
        )
        self.save(change)
        logger.debug(f"[STATE] {change_id}: created")
        return change

    def advance(self, change_id: str, state: ChangeState, trigger: str, **fields) -> Change | None:
        """
        Advance a recorded change and persist it. Extra fields (pr_number,
        version, worktree_path) are updated alongside.

        Changes without a ledger entry (ad-hoc branches) are skipped.
        """
        change = self.get(change_id)
        if change is None:
            return None

        moved = change.advance(state, trigger)
        for key, value in fields.items():
            if value is not None:
                setattr(change, key, value)
        if moved or fields:
            self.save(change)
        if moved:
            logger.info(f"[STATE] {change_id}: → {state.value} ({trigger})")
        return change

    def list(self) -> list[Change]:
        if not self.dir.is_dir():
            return []
        changes = []
        for path in sorted(self.dir.glob("*.json")):
            change = self.get(path.stem)
            if change is not None:
                changes.append(change)
        return changes
