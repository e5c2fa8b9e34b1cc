"""
SpecLife Version Policy Engine

Turns commit history since the last release tag into a semantic
version bump. Parsing never raises: noisy human-written history must
not break a release.

Semver Rules (with the pre-1.0 exception):
  - breaking, >= 1.0.0 : major
  - breaking,  < 1.0.0 : minor
  - feat               : minor
  - fix / perf         : patch
  - anything else      : patch (every release advances the version)
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

from speclife.config_loader import ReleasePolicy
from speclife.errors import InvalidIdentifier

BumpType = Literal["patch", "minor", "major"]
BUMP_TYPES: tuple[str, ...] = ("patch", "minor", "major")

UNKNOWN_TYPE = "unknown"

_HEADER_RE = re.compile(r"^(?P<type>[A-Za-z]+)(?:\((?P<scope>[^)]*)\))?(?P<bang>!)?:\s*(?P<description>.+)$")
_BREAKING_FOOTER_RE = re.compile(r"^BREAKING[ -]CHANGE:", re.MULTILINE)
_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)")

RELEASE_MARKER = re.compile(r"^chore\(release\): v(?P<version>\d+\.\d+\.\d+\S*)\s*$", re.MULTILINE)


# ---------------------------------------------------------------------------
# Commit parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CommitInfo:
    sha: str
    message: str
    type: str = UNKNOWN_TYPE
    scope: str | None = None
    description: str = ""
    is_breaking: bool = False


def parse_conventional_commit(message: str, sha: str = "") -> CommitInfo:
    """Extract type / scope / breaking flag from a conventional commit message."""
    text = message or ""
    lines = text.strip().splitlines()
    header = lines[0].strip() if lines else ""
    footer_breaking = bool(_BREAKING_FOOTER_RE.search(text))

    match = _HEADER_RE.match(header)
    if not match:
        return CommitInfo(sha=sha, message=text, description=header)

    return CommitInfo(
        sha=sha,
        message=text,
        type=match.group("type").lower(),
        scope=match.group("scope") or None,
        description=match.group("description").strip(),
        is_breaking=bool(match.group("bang")) or footer_breaking,
    )


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------

def is_valid_version(version: str | None) -> bool:
    return bool(version and _VERSION_RE.match(version.strip()))


def parse_version(version: str) -> tuple[int, int, int]:
    match = _VERSION_RE.match(version.strip())
    if not match:
        raise InvalidIdentifier(
            f"Invalid version format: {version!r}",
            context={"version": version},
            hint="versions look like 1.2.3 or v1.2.3",
        )
    major, minor, patch = (int(g) for g in match.groups())
    return major, minor, patch


def bump_version(version: str, bump: str) -> str:
    major, minor, patch = parse_version(version)
    if bump == "major":
        return f"{major + 1}.0.0"
    if bump == "minor":
        return f"{major}.{minor + 1}.0"
    if bump == "patch":
        return f"{major}.{minor}.{patch + 1}"
    raise InvalidIdentifier(f"Unknown bump type: {bump!r}", context={"bump": bump, "allowed": list(BUMP_TYPES)})


# ---------------------------------------------------------------------------
# Bump policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VersionAnalysis:
    bump: str
    reasoning: str
    current_version: str = "0.0.0"
    next_version: str = ""
    counts: dict[str, int] = field(default_factory=dict)


def suggest_bump(commits: list[CommitInfo], current_version: str) -> VersionAnalysis:
    major, _, _ = parse_version(current_version)
    counts = Counter(c.type for c in commits)
    breaking = sum(1 for c in commits if c.is_breaking)

    if breaking and major >= 1:
        bump = "major"
        reasoning = f"{breaking} breaking change(s) on {current_version}: major"
    elif breaking:
        bump = "minor"
        reasoning = f"{breaking} breaking change(s) before 1.0 ({current_version}): minor, not major"
    elif counts.get("feat"):
        bump = "minor"
        reasoning = f"{counts['feat']} feat commit(s): minor"
    elif counts.get("fix") or counts.get("perf"):
        bump = "patch"
        n = counts.get("fix", 0) + counts.get("perf", 0)
        reasoning = f"{n} fix/perf commit(s): patch"
    else:
        bump = "patch"
        dominant = _dominant(counts)
        reasoning = f"no feat/fix commits (mostly {dominant}): default patch"

    return VersionAnalysis(
        bump=bump,
        reasoning=reasoning,
        current_version=current_version,
        next_version=bump_version(current_version, bump),
        counts=dict(counts),
    )


def is_auto_release_allowed(bump: str, policy: ReleasePolicy) -> bool:
    return policy.allows(bump)


def _dominant(counts: Counter) -> str:
    if not counts:
        return "nothing"
    commit_type, n = counts.most_common(1)[0]
    return f"{commit_type} x{n}"


# ---------------------------------------------------------------------------
# Release trigger + changelog
# ---------------------------------------------------------------------------

def release_commit_message(version: str) -> str:
    return f"chore(release): v{version}"


def is_release_commit(message: str) -> str | None:
    """Version named by a release marker anywhere in the message, or None."""
    match = RELEASE_MARKER.search(message or "")
    return match.group("version") if match else None


def generate_changelog(commits: list[CommitInfo], version: str, on: date | None = None) -> str:
    day = (on or date.today()).isoformat()
    lines = [f"## [{version}](../../releases/tag/v{version}) ({day})", ""]

    relevant = [c for c in commits if not is_release_commit(c.message)]
    breaking = [c for c in relevant if c.is_breaking]
    features = [c for c in relevant if c.type == "feat" and not c.is_breaking]
    fixes = [c for c in relevant if c.type == "fix" and not c.is_breaking]
    other = [c for c in relevant if c.type not in ("feat", "fix") and not c.is_breaking]

    for title, group in (
        ("⚠ BREAKING CHANGES", breaking),
        ("Features", features),
        ("Bug Fixes", fixes),
        ("Other Changes", other),
    ):
        if not group:
            continue
        lines += [f"### {title}", ""]
        for commit in group:
            text = commit.description or commit.sha[:7]
            scope = f"**{commit.scope}:** " if commit.scope else ""
            lines.append(f"* {scope}{text}")
        lines.append("")

    return "\n".join(lines)
