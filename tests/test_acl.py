import pytest

from schedcore.acl import ACLError, parse_acl
from schedcore.usergroup import UserGroup


@pytest.mark.parametrize(
    "acl_str",
    [
        "",
        " ",
        "user1",
        "user1,user2",
        "user1,user2 ",
        "user1,user2 group1",
        "user1,user2 group1,group2",
        "user2 group1,group2",
        " group1,group2",
        "* group1,group2",
        "user1,user2 *",
        "*",
        "* ",
        " *",
    ],
)
def test_acl_create(acl_str):
    acl = parse_acl(acl_str)
    assert acl.all_allowed in (True, False)
    assert isinstance(acl.users, frozenset)


def test_acl_create_wildcards_allow_all():
    for acl_str in ["* group1,group2", "user1,user2 *", "*", "* ", " *"]:
        assert parse_acl(acl_str).all_allowed is True
    assert parse_acl("user1,user2 *").users == frozenset()


def test_acl_special_case_double_space_fails():
    with pytest.raises(ACLError):
        parse_acl("  ")


def test_acl_special_case_dotted_user_ignored():
    acl = parse_acl("dotted.user")
    assert len(acl.users) == 0


def test_acl_special_case_duplicate_user():
    acl = parse_acl("user,user")
    assert len(acl.users) == 1


def test_acl_special_case_duplicate_group():
    acl = parse_acl(" group,group")
    assert len(acl.groups) == 1


def test_acl_access_lists():
    acl = parse_acl("user1,user2 group1,group2")
    assert not acl.check_access(UserGroup(user="", groups=[]))
    assert acl.check_access(UserGroup(user="user1", groups=[]))
    assert acl.check_access(UserGroup(user="user3", groups=["group1"]))
    assert acl.check_access(UserGroup(user="user3", groups=["group3", "group1"]))
    assert not acl.check_access(UserGroup(user="user3", groups=["group3"]))


def test_acl_access_wildcard():
    acl = parse_acl("*")
    assert acl.check_access(UserGroup(user="", groups=[]))
    assert acl.check_access(UserGroup(user="user1", groups=["group1"]))


def test_acl_access_empty_denies():
    acl = parse_acl("")
    assert not acl.check_access(UserGroup(user="", groups=[]))
    assert not acl.check_access(UserGroup(user="user1", groups=["group1"]))


def test_acl_parsed_users_and_groups():
    acl = parse_acl("user1,user2 group1,group2")
    assert acl.users == frozenset({"user1", "user2"})
    assert acl.groups == frozenset({"group1", "group2"})
    assert acl.all_allowed is False