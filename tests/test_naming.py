import pytest

from speclife.errors import InvalidIdentifier
from speclife.naming import branch_for, change_id_from_branch, derive_id, is_valid_id, resolve_id


def test_derive_id_from_description():
    assert derive_id("Add OAuth login") == "add-oauth-login"


def test_derive_id_strips_punctuation_and_truncates():
    assert derive_id("Fix: the   crash when *saving* files on Windows!") == "fix-the-crash-when-saving"


def test_derive_id_rejects_empty_result():
    with pytest.raises(InvalidIdentifier) as exc:
        derive_id("!!! ???")
    assert exc.value.kind == "InvalidIdentifier"


@pytest.mark.parametrize("description", ["main", "Archive", "  MAIN  "])
def test_derive_id_rejects_reserved_names(description):
    with pytest.raises(InvalidIdentifier):
        derive_id(description)


def test_resolve_id_uses_valid_id_verbatim():
    # Longer than the derived-id word limit, but already an id.
    assert resolve_id("add-a-very-long-change-id-here") == "add-a-very-long-change-id-here"


def test_resolve_id_derives_from_description():
    assert resolve_id("Add OAuth login") == "add-oauth-login"


def test_is_valid_id():
    assert is_valid_id("add-oauth-login")
    assert not is_valid_id("Add-OAuth")
    assert not is_valid_id("double--hyphen")
    assert not is_valid_id("-leading")


def test_branch_mapping_round_trips():
    assert branch_for("add-oauth-login") == "spec/add-oauth-login"
    assert change_id_from_branch("spec/add-oauth-login") == "add-oauth-login"


def test_change_id_from_unmanaged_branch():
    assert change_id_from_branch("feature/x") is None
    assert change_id_from_branch("spec/") is None
    assert change_id_from_branch(None) is None


def test_custom_prefix():
    assert branch_for("x", prefix="change/") == "change/x"
    assert change_id_from_branch("change/x", prefix="change/") == "x"
