from pathlib import Path

import pytest

from speclife.config_loader import GitConfig
from speclife.detector import (
    BranchKind,
    classify,
    describe,
    infer_change_type,
    infer_commit_type,
)


@pytest.mark.parametrize(
    "branch, expected",
    [
        ("spec/add-oauth", BranchKind.MANAGED),
        ("feature/x", BranchKind.AD_HOC),
        ("fix-typo", BranchKind.AD_HOC),
        ("main", BranchKind.INVALID),
        ("HEAD", BranchKind.INVALID),
        ("", BranchKind.INVALID),
        (None, BranchKind.INVALID),
    ],
)
def test_classify(branch, expected):
    assert classify(branch) is expected


def test_classification_ignores_worktree_binding():
    config = GitConfig()
    assert describe("spec/x", config, worktree_path=None).kind is BranchKind.MANAGED
    assert describe("feature/x", config, worktree_path=Path("/tmp/wt")).kind is BranchKind.AD_HOC


def test_describe_managed_branch_carries_change_id():
    info = describe("spec/add-oauth", GitConfig())
    assert info.is_managed
    assert info.change_id == "add-oauth"


def test_custom_base_branch_is_invalid():
    assert classify("develop", base_branch="develop") is BranchKind.INVALID
    assert classify("main", base_branch="develop") is BranchKind.AD_HOC


@pytest.mark.parametrize(
    "branch, expected",
    [
        ("fix/crash", "fix"),
        ("hotfix/prod", "fix"),
        ("feature/login", "feat"),
        ("feat/login", "feat"),
        ("docs/readme", "docs"),
        ("Chore/deps", "chore"),
        ("wip-stuff", "unknown"),
        ("alice/experiment", "unknown"),
    ],
)
def test_infer_commit_type(branch, expected):
    assert infer_commit_type(branch) == expected


def test_infer_change_type():
    assert infer_change_type("add-oauth-login") == "feat"
    assert infer_change_type("fix-login-redirect") == "fix"
    assert infer_change_type("docs-update-readme") == "docs"
