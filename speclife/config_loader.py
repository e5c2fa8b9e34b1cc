"""
Configuration loader for SpecLife.
Merges defaults with per-repo .speclife/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from speclife.errors import ConfigInvalid


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class GitConfig(BaseModel):
    base_branch: str = "main"
    branch_prefix: str = "spec/"
    worktree_dir: str = "worktrees"
    remote: str = "origin"


class GitHubConfig(BaseModel):
    merge_method: Literal["squash", "merge", "rebase"] = "squash"
    draft: bool = False


class SpecConfig(BaseModel):
    spec_dir: str = "openspec"
    strict: bool = False


class ReleasePolicy(BaseModel):
    """Which bump tiers may be released automatically on land."""
    patch: bool = False
    minor: bool = False
    major: bool = False

    def allows(self, bump: str) -> bool:
        return bool(getattr(self, bump, False))


class ReleaseConfig(BaseModel):
    auto_release: ReleasePolicy = Field(default_factory=ReleasePolicy)
    version_files: list[str] = Field(default_factory=list)
    changelog: bool = True
    tag_prefix: str = "v"


class SpecLifeConfig(BaseModel):
    git: GitConfig = Field(default_factory=GitConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    spec: SpecConfig = Field(default_factory=SpecConfig)
    release: ReleaseConfig = Field(default_factory=ReleaseConfig)

    @property
    def reserved_ids(self) -> set[str]:
        return {"main", "archive", self.git.base_branch}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

_ENV_OVERRIDES = {
    "SPECLIFE_BASE_BRANCH": ("git", "base_branch"),
    "SPECLIFE_REMOTE": ("git", "remote"),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigInvalid(f"Cannot parse {path}: {e}", context={"path": str(path)})
    if not isinstance(data, dict):
        raise ConfigInvalid(f"{path} must contain a mapping", context={"path": str(path)})
    return data


def load_config(repo_path: Path | None = None) -> SpecLifeConfig:
    """
    Load config by merging:
      1. Built-in defaults (speclife/config.yaml)
      2. Repo-level overrides (<repo>/.speclife/config.yaml)
      3. Environment variable overrides
    """
    # 1. Built-in defaults
    base = _read_yaml(_DEFAULT_CONFIG_PATH)

    # 2. Repo overrides
    if repo_path:
        repo_config = repo_path / ".speclife" / "config.yaml"
        if repo_config.exists():
            base = _deep_merge(base, _read_yaml(repo_config))

    # 3. Env overrides
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            base.setdefault(section, {})[key] = value

    try:
        return SpecLifeConfig(**base)
    except ValidationError as e:
        raise ConfigInvalid(
            f"Invalid configuration: {e.error_count()} error(s)",
            context={"errors": [str(err["loc"]) + ": " + err["msg"] for err in e.errors()]},
            hint="check .speclife/config.yaml",
        )
