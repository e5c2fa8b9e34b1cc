from datetime import date

import pytest

from speclife.config_loader import ReleasePolicy
from speclife.errors import InvalidIdentifier
from speclife.versioning import (
    bump_version,
    generate_changelog,
    is_auto_release_allowed,
    is_release_commit,
    parse_conventional_commit,
    release_commit_message,
    suggest_bump,
)


def _commits(*messages):
    return [parse_conventional_commit(m, sha=f"{i:07d}") for i, m in enumerate(messages)]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def test_parse_type_and_scope():
    commit = parse_conventional_commit("feat(auth): add OAuth login")
    assert commit.type == "feat"
    assert commit.scope == "auth"
    assert commit.description == "add OAuth login"
    assert not commit.is_breaking


def test_parse_bang_is_breaking():
    assert parse_conventional_commit("feat!: drop legacy API").is_breaking
    assert parse_conventional_commit("refactor(core)!: rename config").is_breaking


@pytest.mark.parametrize("footer", ["BREAKING CHANGE: config moved", "BREAKING-CHANGE: config moved"])
def test_parse_breaking_footer(footer):
    commit = parse_conventional_commit(f"fix: move config\n\n{footer}")
    assert commit.type == "fix"
    assert commit.is_breaking


@pytest.mark.parametrize("message", ["", "Merge branch 'x'", "WIP", "feat add thing", "\n\n"])
def test_unparseable_messages_never_raise(message):
    commit = parse_conventional_commit(message)
    assert commit.type == "unknown"
    assert not commit.is_breaking


# ---------------------------------------------------------------------------
# Bump rules
# ---------------------------------------------------------------------------

def test_pre_1_0_breaking_change_is_minor():
    analysis = suggest_bump(_commits("feat!: new API"), "0.4.2")
    assert analysis.bump == "minor"
    assert analysis.next_version == "0.5.0"
    assert "before 1.0" in analysis.reasoning


def test_post_1_0_breaking_change_is_major():
    analysis = suggest_bump(_commits("feat!: new API"), "1.2.0")
    assert analysis.bump == "major"
    assert analysis.next_version == "2.0.0"


def test_feat_is_minor():
    assert suggest_bump(_commits("fix: a", "feat: b"), "1.0.0").bump == "minor"


def test_fix_and_perf_are_patch():
    assert suggest_bump(_commits("fix: a"), "1.0.0").bump == "patch"
    assert suggest_bump(_commits("perf: faster"), "1.0.0").bump == "patch"


def test_default_is_patch():
    analysis = suggest_bump(_commits("docs: readme", "docs: more", "WIP"), "1.0.0")
    assert analysis.bump == "patch"
    assert analysis.next_version == "1.0.1"
    assert "docs x2" in analysis.reasoning
    assert analysis.counts == {"docs": 2, "unknown": 1}


def test_bump_version():
    assert bump_version("1.2.3", "patch") == "1.2.4"
    assert bump_version("v1.2.3", "minor") == "1.3.0"
    assert bump_version("1.2.3", "major") == "2.0.0"
    with pytest.raises(InvalidIdentifier):
        bump_version("1.2.3", "huge")
    with pytest.raises(InvalidIdentifier):
        bump_version("one.two", "patch")


def test_auto_release_policy_lookup():
    policy = ReleasePolicy(minor=True)
    assert is_auto_release_allowed("minor", policy)
    assert not is_auto_release_allowed("patch", policy)
    assert not is_auto_release_allowed("major", ReleasePolicy())


# ---------------------------------------------------------------------------
# Release marker + changelog
# ---------------------------------------------------------------------------

def test_release_marker():
    message = release_commit_message("1.4.0")
    assert message == "chore(release): v1.4.0"
    assert is_release_commit(message) == "1.4.0"


def test_release_marker_found_inside_squash_body():
    message = "feat: add login (#12)\n\nchore(release): v0.2.0"
    assert is_release_commit(message) == "0.2.0"


def test_non_release_commits():
    assert is_release_commit("chore: release notes") is None
    assert is_release_commit("chore(release): prepare") is None


def test_changelog_groups_commits():
    commits = _commits("feat(auth): login", "fix: crash", "feat!: new API", "docs: readme", "chore(release): v0.1.0")
    text = generate_changelog(commits, "0.2.0", on=date(2026, 1, 2))

    assert text.startswith("## [0.2.0](../../releases/tag/v0.2.0) (2026-01-02)")
    assert "### ⚠ BREAKING CHANGES\n\n* new API" in text
    assert "### Features\n\n* **auth:** login" in text
    assert "### Bug Fixes\n\n* crash" in text
    assert "* readme" in text
    assert "v0.1.0" not in text.split("\n", 1)[1]
