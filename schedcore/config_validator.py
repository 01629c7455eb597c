"""Validation and normalisation of a scheduler configuration."""

from __future__ import annotations

import logging
import re
from typing import Optional

from schedcore.acl import WILDCARD
from schedcore.config import (
    ConfigError,
    Filter,
    PartitionConfig,
    PlacementRule,
    QueueConfig,
    Resources,
    SchedulerConfig,
)
from schedcore.resources import Resource

logger = logging.getLogger(__name__)

ROOT_QUEUE = "root"
DEFAULT_PARTITION = "default"

# A queue name may be a user name with dots replaced, so allow for at least 32 characters.
QUEUE_NAME_PATTERN = re.compile(r"[a-zA-Z0-9_-]{1,64}")
USER_PATTERN = re.compile(r"[_a-zA-Z][a-zA-Z0-9_.@-]*[$]?")
GROUP_PATTERN = re.compile(r"[_a-zA-Z][a-zA-Z0-9_-]*")
# Characters that make a name a regular expression.
SPECIAL_PATTERN = re.compile(r"[\^$*+?()\[{}|]")
RULE_NAME_PATTERN = re.compile(r"[_a-zA-Z][a-zA-Z0-9_]*")


def check_acl(acl: str) -> None:
    """Reject an ACL with more than two whitespace separated fields."""
    acl = acl.strip()
    if not acl or acl == WILDCARD:
        return
    if len(acl.split()) > 2:
        raise ConfigError(f"multiple spaces found in ACL: '{acl}'")


def _check_resource(res: dict[str, str]) -> None:
    try:
        Resource.from_conf(res)
    except ValueError as exc:
        raise ConfigError(f"resource parsing failed: {exc}") from exc


def check_resources(resources: Resources) -> None:
    """Check that every guaranteed and max value is a 64-bit integer."""
    if resources.guaranteed:
        _check_resource(resources.guaranteed)
    if resources.max:
        _check_resource(resources.max)


def _check_placement_rules(partition: PartitionConfig) -> None:
    if not partition.placement_rules:
        return
    logger.debug("checking placement rule config for partition %s", partition.name)
    for rule in partition.placement_rules:
        check_placement_rule(rule)


def check_placement_rule(rule: PlacementRule) -> None:
    """Check the rule name, its parent rules and its filter."""
    if not RULE_NAME_PATTERN.fullmatch(rule.name):
        raise ConfigError(f"invalid rule name {rule.name}, a name must be a valid identifier")
    if rule.parent is not None:
        try:
            check_placement_rule(rule.parent)
        except ConfigError:
            logger.debug("parent placement rule %s of %s failed", rule.parent.name, rule.name)
            raise
    try:
        check_placement_filter(rule.filter)
    except ConfigError:
        logger.debug("placement rule filter failed for rule %s: %r", rule.name, rule.filter)
        raise


def _is_regexp(text: str) -> bool:
    try:
        re.compile(text)
    except re.error:
        return False
    return SPECIAL_PATTERN.search(text) is not None


def check_placement_filter(filter: Filter) -> None:
    """Check the filter type and, for single entry lists, the name or regexp."""
    if filter.type and filter.type.lower() not in ("allow", "deny"):
        raise ConfigError(
            f"invalid rule filter type {filter.type}, filter type  must be either '', allow or deny"
        )
    if len(filter.users) == 1:
        entry = filter.users[0]
        if not USER_PATTERN.fullmatch(entry) and not _is_regexp(entry):
            raise ConfigError(
                f"invalid rule filter user list is not a proper list or regexp: {filter.users}"
            )
    if len(filter.groups) == 1:
        entry = filter.groups[0]
        if not GROUP_PATTERN.fullmatch(entry) and not _is_regexp(entry):
            raise ConfigError(
                f"invalid rule filter group list is not a proper list or regexp: {filter.groups}"
            )


def _check_user_definition(partition: PartitionConfig) -> None:
    if partition.users:
        logger.debug("checking partition user config for partition %s", partition.name)


def check_queues(queue: QueueConfig, level: int) -> None:
    """Check a queue's resources and ACLs, then its children's names, recursively."""
    check_resources(queue.resources)
    check_acl(queue.admin_acl)
    check_acl(queue.submit_acl)

    seen: set[str] = set()
    for child in queue.queues:
        if not QUEUE_NAME_PATTERN.fullmatch(child.name):
            raise ConfigError(
                f"invalid queue name {child.name}, a name must only have alphanumeric characters,"
                " - or _, and be no longer than 64 characters"
            )
        key = child.name.lower()
        if key in seen:
            raise ConfigError(f"duplicate queue name found with name {child.name}, level {level}")
        seen.add(key)

    for child in queue.queues:
        check_queues(child, level + 1)


def check_queues_structure(partition: PartitionConfig) -> None:
    """Make sure there is exactly one root parent queue, inserting it if missing, then check the tree."""
    if partition.queues is None:
        raise ConfigError("queue config is not set")
    logger.debug("checking partition queue config for partition %s", partition.name)

    queues = partition.queues
    if len(queues) == 1 and queues[0].name.lower() == ROOT_QUEUE:
        queues[0].parent = True
    else:
        logger.debug("inserting root queue above %d queues", len(queues))
        partition.queues = [QueueConfig(name=ROOT_QUEUE, parent=True, queues=queues)]

    root = partition.queues[0]
    if not root.resources.is_unset():
        raise ConfigError("root queue must not have resource limits set")
    check_queues(root, 1)


def validate(config: Optional[SchedulerConfig]) -> None:
    """Check the configuration and normalise it in place.

    Unnamed partitions and any spelling of "default" become "default"; only one
    may exist. Every partition gets a root queue.
    """
    if config is None:
        raise ConfigError("scheduler config is not set")

    seen_default = False
    for partition in config.partitions:
        if partition.name == "" or partition.name.lower() == DEFAULT_PARTITION:
            if seen_default:
                raise ConfigError("multiple default partitions defined")
            seen_default = True
            partition.name = DEFAULT_PARTITION
        logger.debug("checking partition %s", partition.name)
        check_queues_structure(partition)
        _check_placement_rules(partition)
        _check_user_definition(partition)