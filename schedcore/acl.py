"""Access control lists of users and groups."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from schedcore.usergroup import UserGroup

logger = logging.getLogger(__name__)

WILDCARD = "*"
SEPARATOR = ","
SPACE = " "

USER_NAME_PATTERN = re.compile(r"[a-z_]([a-z0-9_-]{0,31}|[a-z0-9_-]{0,30}\$)")


class ACLError(ValueError):
    """Raised when an ACL string cannot be parsed."""


@dataclass(frozen=True)
class ACL:
    """Users and groups granted access; an empty ACL denies everyone."""

    users: frozenset[str] = frozenset()
    groups: frozenset[str] = frozenset()
    all_allowed: bool = False

    def check_access(self, user_group: UserGroup) -> bool:
        """Check whether the user, or one of its groups, is granted access."""
        if self.all_allowed:
            return True
        if user_group.user in self.users:
            return True
        return any(group in self.groups for group in user_group.groups or ())


def _valid_names(names: Sequence[str], kind: str) -> frozenset[str]:
    valid = set()
    for name in names:
        if USER_NAME_PATTERN.fullmatch(name):
            valid.add(name)
        else:
            logger.info("ignoring %s in ACL definition: %s", kind, name)
    return frozenset(valid)


def parse_acl(acl_str: str) -> ACL:
    """Parse "user1,user2 group1,group2"; "*" allows everyone, "" denies everyone.

    Invalid user or group names are ignored; more than one space is an error.
    """
    if acl_str == "":
        return ACL()
    fields = acl_str.split(SPACE)
    if len(fields) > 2:
        raise ACLError(f"multiple spaces found in ACL: '{acl_str}'")

    all_allowed = acl_str.strip() == WILDCARD

    user_list = fields[0].split(SEPARATOR)
    users: frozenset[str] = frozenset()
    if user_list == [WILDCARD]:
        logger.info("user list is wildcard, allowing all access")
        all_allowed = True
    else:
        users = _valid_names(user_list, "user")

    groups: frozenset[str] = frozenset()
    if len(fields) == 2:
        group_list = fields[1].split(SEPARATOR)
        if all_allowed:
            logger.info("ignoring group list in ACL: wildcard set")
        elif group_list == [WILDCARD]:
            logger.info("group list is wildcard, allowing all access")
            users = frozenset()
            all_allowed = True
        else:
            groups = _valid_names(group_list, "group")

    return ACL(users=users, groups=groups, all_allowed=all_allowed)