"""
SpecLife Naming — Change Identifiers and Branch Names

The id → branch mapping lives here and only here. Every other
component calls branch_for() / change_id_from_branch() instead of
concatenating the prefix itself.
"""

from __future__ import annotations

import re

from speclife.errors import InvalidIdentifier

DEFAULT_PREFIX = "spec/"
RESERVED_IDS = frozenset({"main", "archive"})
MAX_ID_WORDS = 5

_ID_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def is_valid_id(change_id: str) -> bool:
    """Kebab-case: lowercase alphanumeric words joined by single hyphens."""
    return bool(_ID_RE.match(change_id))


def derive_id(description: str, reserved: frozenset[str] | set[str] = RESERVED_IDS) -> str:
    """
    Turn a free-form description into a change id.

    "Add OAuth login"  →  "add-oauth-login"
    """
    slug = _NON_ALNUM_RE.sub("-", description.lower()).strip("-")
    words = [w for w in slug.split("-") if w]
    change_id = "-".join(words[:MAX_ID_WORDS])

    if not change_id:
        raise InvalidIdentifier(
            f"Cannot derive a change id from {description!r}",
            context={"description": description},
            hint="use a description with at least one letter or digit",
        )
    _check_reserved(change_id, reserved)
    return change_id


def resolve_id(description_or_id: str, reserved: frozenset[str] | set[str] = RESERVED_IDS) -> str:
    """Use a ready-made id verbatim, derive one from anything else."""
    candidate = description_or_id.strip()
    if is_valid_id(candidate):
        _check_reserved(candidate, reserved)
        return candidate
    return derive_id(candidate, reserved)


def branch_for(change_id: str, prefix: str = DEFAULT_PREFIX) -> str:
    return f"{prefix}{change_id}"


def change_id_from_branch(branch: str | None, prefix: str = DEFAULT_PREFIX) -> str | None:
    """Inverse of branch_for(); None for anything that is not a managed branch."""
    if not branch or not branch.startswith(prefix):
        return None
    change_id = branch[len(prefix):]
    return change_id or None


def _check_reserved(change_id: str, reserved: frozenset[str] | set[str]) -> None:
    if change_id in reserved:
        raise InvalidIdentifier(
            f"'{change_id}' is a reserved name",
            context={"id": change_id, "reserved": sorted(reserved)},
            hint="pick a more specific description",
        )
