"""
Version files: where a project keeps its version number.

Supports pyproject.toml (first top-level `version = "..."`), package.json
and a plain VERSION file. Edits are surgical so formatting survives.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

from loguru import logger

KNOWN_VERSION_FILES = ("pyproject.toml", "package.json", "VERSION")

_TOML_VERSION_RE = re.compile(r'^(version\s*=\s*")([^"]+)(")', re.MULTILINE)
CHANGELOG_HEADER = "# Changelog"


def detect_version_files(root: Path, configured: list[str] | None = None) -> list[str]:
    if configured:
        return list(configured)
    return [name for name in KNOWN_VERSION_FILES if (root / name).is_file()]


def read_version_text(name: str, content: str) -> str | None:
    """Pull the version out of a version file's content."""
    if name.endswith(".toml"):
        match = _TOML_VERSION_RE.search(content)
        return match.group(2) if match else None
    if name.endswith(".json"):
        try:
            value = json.loads(content).get("version")
        except (json.JSONDecodeError, AttributeError):
            return None
        return value if isinstance(value, str) else None
    return content.strip() or None


def read_version(root: Path, files: list[str]) -> str | None:
    for name in files:
        path = root / name
        if path.is_file():
            version = read_version_text(name, path.read_text())
            if version:
                return version
    return None


def write_version(root: Path, files: list[str], version: str) -> list[str]:
    """Set the version in every listed file that exists. Returns the files touched."""
    touched: list[str] = []
    for name in files:
        path = root / name
        if not path.is_file():
            logger.warning(f"[RELEASE] Version file {name} not found in {root}")
            continue

        content = path.read_text()
        if name.endswith(".toml"):
            updated, n = _TOML_VERSION_RE.subn(lambda m: f"{m.group(1)}{version}{m.group(3)}", content, count=1)
            if not n:
                logger.warning(f"[RELEASE] No version key in {name}")
                continue
        elif name.endswith(".json"):
            data = json.loads(content)
            data["version"] = version
            updated = json.dumps(data, indent=2) + "\n"
        else:
            updated = version + "\n"

        path.write_text(updated)
        touched.append(name)
    return touched


def prepend_changelog(root: Path, entry: str, filename: str = "CHANGELOG.md") -> Path:
    """Insert a release entry right below the changelog title."""
    path = root / filename
    if path.exists():
        content = path.read_text()
    else:
        content = f"{CHANGELOG_HEADER}\n"

    if content.startswith(CHANGELOG_HEADER):
        head, _, rest = content.partition("\n")
        content = f"{head}\n\n{entry.rstrip()}\n\n{rest.lstrip()}"
    else:
        content = f"{entry.rstrip()}\n\n{content}"

    path.write_text(content.rstrip() + "\n")
    return path


def has_changelog_entry(root: Path, version: str, filename: str = "CHANGELOG.md") -> bool:
    path = root / filename
    if not path.exists():
        return False
    heading = f"## [{version}]"
    return any(line.startswith(heading) for line in path.read_text().splitlines())
