"""The scheduler configuration model: partitions, queues, placement rules and users."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

_UINT64_MAX = 2**64 - 1


class ConfigError(ValueError):
    """Raised when a configuration cannot be parsed or fails validation."""


@dataclass
class Resources:
    """Guaranteed and maximum resources of a queue, as name to decimal string.

    None means the limit is not set at all, which differs from an empty map.
    """

    guaranteed: Optional[dict[str, str]] = None
    max: Optional[dict[str, str]] = None

    def is_unset(self) -> bool:
        return self.guaranteed is None and self.max is None


@dataclass
class Filter:
    """User and group filter of a placement rule; an empty type means allow."""

    type: str = ""
    users: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)


@dataclass
class PlacementRule:
    """A queue placement rule, optionally with a rule that generates its parent."""

    name: str = ""
    create: bool = False
    filter: Filter = field(default_factory=Filter)
    parent: Optional["PlacementRule"] = None
    value: str = ""


@dataclass
class User:
    """Limits for a user in a partition."""

    name: str = ""
    max_resources: dict[str, str] = field(default_factory=dict)
    max_applications: int = 0


@dataclass
class QueueConfig:
    """A queue with its limits, properties, ACLs and child queues."""

    name: str = ""
    parent: bool = False
    resources: Resources = field(default_factory=Resources)
    properties: dict[str, str] = field(default_factory=dict)
    admin_acl: str = ""
    submit_acl: str = ""
    max_applications: int = 0
    queues: list["QueueConfig"] = field(default_factory=list)


@dataclass
class PartitionPreemptionConfig:
    enabled: bool = False


@dataclass
class PartitionConfig:
    """A partition: a queue hierarchy over a logical set of resources.

    ``queues`` is None when the configuration does not define any.
    """

    name: str = ""
    queues: Optional[list[QueueConfig]] = None
    placement_rules: list[PlacementRule] = field(default_factory=list)
    users: list[User] = field(default_factory=list)
    preemption: PartitionPreemptionConfig = field(default_factory=PartitionPreemptionConfig)


@dataclass
class SchedulerConfig:
    """The whole scheduler configuration with the checksum of its source."""

    partitions: list[PartitionConfig] = field(default_factory=list)
    checksum: bytes = b""

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SchedulerConfig":
        """Build a configuration from parsed YAML; unknown keys are ignored."""
        top = _mapping(data, "configuration")
        return cls(
            partitions=[_partition_from_dict(p) for p in _sequence(top.get("partitions"), "partitions")],
            checksum=_checksum(top.get("checksum")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as plain data, leaving out unset fields."""
        out: dict[str, Any] = {"partitions": [_partition_to_dict(p) for p in self.partitions]}
        if self.checksum:
            out["checksum"] = list(self.checksum)
        return out


# Parsing helpers

def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{what} must be a mapping, got {type(value).__name__}")
    return value


def _sequence(value: Any, what: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _scalar_str(value: Any, what: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"{what} must be a scalar, got {type(value).__name__}")


def _string_map(value: Any, what: str) -> Optional[dict[str, str]]:
    if value is None:
        return None
    return {
        _scalar_str(k, f"{what} key"): _scalar_str(v, f"{what}.{k}")
        for k, v in _mapping(value, what).items()
    }


def _string_list(value: Any, what: str) -> list[str]:
    return [_scalar_str(item, what) for item in _sequence(value, what)]


def _bool(value: Any, what: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"{what} must be a boolean, got {value!r}")
    return value


def _uint(value: Any, what: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _UINT64_MAX:
        raise ConfigError(f"{what} must be an unsigned integer, got {value!r}")
    return value


def _checksum(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, list):
        try:
            return bytes(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid checksum: {exc}") from exc
    raise ConfigError(f"checksum must be bytes, got {type(value).__name__}")


def _filter_from_dict(data: Any) -> Filter:
    d = _mapping(data, "filter")
    return Filter(
        type=_scalar_str(d.get("type"), "filter type"),
        users=_string_list(d.get("users"), "filter users"),
        groups=_string_list(d.get("groups"), "filter groups"),
    )


def _rule_from_dict(data: Any) -> PlacementRule:
    d = _mapping(data, "placement rule")
    parent = d.get("parent")
    return PlacementRule(
        name=_scalar_str(d.get("name"), "rule name"),
        create=_bool(d.get("create"), "rule create"),
        filter=_filter_from_dict(d.get("filter")),
        parent=_rule_from_dict(parent) if parent is not None else None,
        value=_scalar_str(d.get("value"), "rule value"),
    )


def _user_from_dict(data: Any) -> User:
    d = _mapping(data, "user")
    return User(
        name=_scalar_str(d.get("name"), "user name"),
        max_resources=_string_map(d.get("maxresources"), "maxresources") or {},
        max_applications=_uint(d.get("maxapplications"), "maxapplications"),
    )


def _queue_from_dict(data: Any) -> QueueConfig:
    d = _mapping(data, "queue")
    res = _mapping(d.get("resources"), "resources")
    return QueueConfig(
        name=_scalar_str(d.get("name"), "queue name"),
        parent=_bool(d.get("parent"), "queue parent"),
        resources=Resources(
            guaranteed=_string_map(res.get("guaranteed"), "guaranteed"),
            max=_string_map(res.get("max"), "max"),
        ),
        properties=_string_map(d.get("properties"), "properties") or {},
        admin_acl=_scalar_str(d.get("adminacl"), "adminacl"),
        submit_acl=_scalar_str(d.get("submitacl"), "submitacl"),
        max_applications=_uint(d.get("maxapplications"), "maxapplications"),
        queues=[_queue_from_dict(q) for q in _sequence(d.get("queues"), "queues")],
    )


def _partition_from_dict(data: Any) -> PartitionConfig:
    d = _mapping(data, "partition")
    queues = d.get("queues")
    preemption = _mapping(d.get("preemption"), "preemption")
    return PartitionConfig(
        name=_scalar_str(d.get("name"), "partition name"),
        queues=None if queues is None else [_queue_from_dict(q) for q in _sequence(queues, "queues")],
        placement_rules=[_rule_from_dict(r) for r in _sequence(d.get("placementrules"), "placementrules")],
        users=[_user_from_dict(u) for u in _sequence(d.get("users"), "users")],
        preemption=PartitionPreemptionConfig(enabled=_bool(preemption.get("enabled"), "preemption enabled")),
    )


# Serialising helpers

def _filter_to_dict(flt: Filter) -> dict[str, Any]:
    out: dict[str, Any] = {"type": flt.type}
    if flt.users:
        out["users"] = list(flt.users)
    if flt.groups:
        out["groups"] = list(flt.groups)
    return out


def _rule_to_dict(rule: PlacementRule) -> dict[str, Any]:
    out: dict[str, Any] = {"name": rule.name}
    if rule.create:
        out["create"] = True
    if rule.filter != Filter():
        out["filter"] = _filter_to_dict(rule.filter)
    if rule.parent is not None:
        out["parent"] = _rule_to_dict(rule.parent)
    if rule.value:
        out["value"] = rule.value
    return out


def _user_to_dict(user: User) -> dict[str, Any]:
    out: dict[str, Any] = {"name": user.name}
    if user.max_resources:
        out["maxresources"] = dict(user.max_resources)
    if user.max_applications:
        out["maxapplications"] = user.max_applications
    return out


def _queue_to_dict(queue: QueueConfig) -> dict[str, Any]:
    out: dict[str, Any] = {"name": queue.name}
    if queue.parent:
        out["parent"] = True
    if not queue.resources.is_unset():
        res: dict[str, Any] = {}
        if queue.resources.guaranteed is not None:
            res["guaranteed"] = dict(queue.resources.guaranteed)
        if queue.resources.max is not None:
            res["max"] = dict(queue.resources.max)
        out["resources"] = res
    if queue.properties:
        out["properties"] = dict(queue.properties)
    if queue.admin_acl:
        out["adminacl"] = queue.admin_acl
    if queue.submit_acl:
        out["submitacl"] = queue.submit_acl
    if queue.max_applications:
        out["maxapplications"] = queue.max_applications
    if queue.queues:
        out["queues"] = [_queue_to_dict(q) for q in queue.queues]
    return out


def _partition_to_dict(partition: PartitionConfig) -> dict[str, Any]:
    out: dict[str, Any] = {"name": partition.name}
    if partition.queues is not None:
        out["queues"] = [_queue_to_dict(q) for q in partition.queues]
    if partition.placement_rules:
        out["placementrules"] = [_rule_to_dict(r) for r in partition.placement_rules]
    if partition.users:
        out["users"] = [_user_to_dict(u) for u in partition.users]
    if partition.preemption.enabled:
        out["preemption"] = {"enabled": True}
    return out