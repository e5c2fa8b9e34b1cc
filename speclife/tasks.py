"""
Task progress parsing for tasks.md checklists.

    ## 1. Implementation
    - [x] 1.1 Add the model
    - [ ] 1.2 Wire the CLI

Only used for progress reporting; the lifecycle state machine never
depends on it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_TASK_RE = re.compile(r"^\s*[-*]\s*\[(?P<mark>[ xX])\]\s*(?:(?P<id>\d+(?:\.\d+)*)\s+)?(?P<text>.+?)\s*$")
_SECTION_RE = re.compile(r"^##\s*(?P<number>\d+)\.\s*(?P<name>.+?)\s*$")


@dataclass(frozen=True)
class Task:
    id: str | None
    content: str
    completed: bool
    section: str | None = None


@dataclass(frozen=True)
class TaskProgress:
    completed: int
    total: int

    @property
    def percentage(self) -> int:
        return round(self.completed * 100 / self.total) if self.total else 0


@dataclass
class TaskFile:
    tasks: list[Task] = field(default_factory=list)
    sections: dict[str, list[Task]] = field(default_factory=dict)

    @property
    def progress(self) -> TaskProgress:
        return TaskProgress(completed=sum(1 for t in self.tasks if t.completed), total=len(self.tasks))

    def next_task(self) -> Task | None:
        return next((t for t in self.tasks if not t.completed), None)


def parse_task_line(line: str, section: str | None = None) -> Task | None:
    match = _TASK_RE.match(line)
    if not match:
        return None
    return Task(
        id=match.group("id"),
        content=match.group("text"),
        completed=match.group("mark").lower() == "x",
        section=section,
    )


def parse_tasks(content: str) -> TaskFile:
    parsed = TaskFile()
    section: str | None = None

    for line in content.splitlines():
        header = _SECTION_RE.match(line)
        if header:
            section = header.group("name")
            parsed.sections.setdefault(section, [])
            continue

        task = parse_task_line(line, section)
        if task:
            parsed.tasks.append(task)
            if section is not None:
                parsed.sections[section].append(task)

    return parsed
