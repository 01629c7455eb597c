"""Multi-dimensional resource quantities and the arithmetic used for scheduling."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

MEMORY = "memory"
VCORE = "vcore"

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_DECIMAL_INT = re.compile(r"[+-]?[0-9]+")


def _parse_quantity(value: object) -> int:
    """Parse a configured quantity as a signed 64-bit decimal integer."""
    if isinstance(value, bool):
        raise ValueError(f"invalid resource quantity: {value!r}")
    if isinstance(value, int):
        number = value
    else:
        text = str(value)
        if not _DECIMAL_INT.fullmatch(text):
            raise ValueError(f"invalid resource quantity: {text!r}")
        number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"resource quantity out of range: {value!r}")
    return number


@dataclass(eq=False)
class Resource:
    """A set of named integer quantities; a missing name counts as zero."""

    resources: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_conf(cls, config_map: Mapping[str, object]) -> "Resource":
        """Build a resource from a configuration map of name to decimal string."""
        return cls({key: _parse_quantity(value) for key, value in config_map.items()})

    def clone(self) -> "Resource":
        """Return a copy without the zero-valued entries."""
        return Resource({k: v for k, v in self.resources.items() if v != 0})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return equals(self, other)

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        return str(self.resources)


def _values(res: Optional[Resource]) -> dict[str, int]:
    return res.resources if res is not None else {}


def add(left: Optional[Resource], right: Optional[Resource]) -> Resource:
    """Return left + right; None counts as an empty resource."""
    out = dict(_values(right))
    for k, v in _values(left).items():
        out[k] = out.get(k, 0) + v
    return Resource(out)


def sub(left: Optional[Resource], right: Optional[Resource]) -> Resource:
    """Return left - right; values may become negative."""
    out = dict(_values(left))
    for k, v in _values(right).items():
        out[k] = out.get(k, 0) - v
    return Resource(out)


def sub_eliminate_negative(left: Optional[Resource], right: Optional[Resource]) -> Resource:
    """Return left - right with negative values clamped to zero."""
    result = sub(left, right)
    result.resources = {k: max(v, 0) for k, v in result.resources.items()}
    return result


def add_to(base: Optional[Resource], additional: Optional[Resource]) -> None:
    """Add additional into base in place; None for either leaves base unchanged."""
    if base is None or additional is None:
        return
    for k, v in additional.resources.items():
        base.resources[k] = base.resources.get(k, 0) + v


def sub_from(base: Optional[Resource], subtract: Optional[Resource]) -> None:
    """Subtract from base in place; None for either leaves base unchanged."""
    if base is None or subtract is None:
        return
    for k, v in subtract.resources.items():
        base.resources[k] = base.resources.get(k, 0) - v


def fit_in(larger: Optional[Resource], smaller: Optional[Resource]) -> bool:
    """Check that smaller fits in larger; negative values of larger count as zero."""
    larger_values = _values(larger)
    return all(v <= max(larger_values.get(k, 0), 0) for k, v in _values(smaller).items())


def _get_shares(partition: Optional[Resource], res: Optional[Resource]) -> list[float]:
    """Sorted shares of res relative to partition; zero entries contribute 0."""
    shares: list[float] = []
    for k, v in _values(res).items():
        if v == 0:
            shares.append(0.0)
            continue
        pv = 1.0
        if partition is not None:
            pv = float(partition.resources.get(k, 0)) + 1e-4
        shares.append(float(v) / pv if pv > 1e-8 else math.inf)
    shares.sort()
    return shares


def _compare_shares(lshares: list[float], rshares: list[float]) -> int:
    for lv, rv in zip(reversed(lshares), reversed(rshares)):
        if lv > rv:
            return 1
        if lv < rv:
            return -1
    extra = len(lshares) - len(rshares)
    if extra > 0:
        for v in reversed(lshares[:extra]):
            if v > 0:
                return 1
            if v < 0:
                return -1
    elif extra < 0:
        for v in reversed(rshares[:-extra]):
            if v > 0:
                return -1
            if v < 0:
                return 1
    return 0


def comp_fairness_ratio(
    a1: Optional[Resource], b1: Optional[Resource], a2: Optional[Resource], b2: Optional[Resource]
) -> int:
    """Compare a1 / b1 with a2 / b2, returning -1, 0 or 1."""
    return _compare_shares(_get_shares(b1, a1), _get_shares(b2, a2))


def comp_fairness_ratio_assumes_unit_partition(a1: Optional[Resource], a2: Optional[Resource]) -> int:
    """Compare two resources against a partition of one unit of everything."""
    return _compare_shares(_get_shares(None, a1), _get_shares(None, a2))


def fairness_ratio(
    a1: Optional[Resource], b1: Optional[Resource], a2: Optional[Resource], b2: Optional[Resource]
) -> float:
    """Return the ratio of the dominant share of a1/b1 to that of a2/b2."""
    lshares = _get_shares(b1, a1)
    rshares = _get_shares(b2, a2)
    lshare = lshares[-1] if lshares else 0.0
    rshare = rshares[-1] if rshares else 0.0
    if abs(rshare) < 1e-8:
        return 1.0 if abs(lshare) < 1e-8 else math.inf
    return lshare / rshare


def comp(partition: Optional[Resource], left: Optional[Resource], right: Optional[Resource]) -> int:
    """Compare left / partition with right / partition."""
    return comp_fairness_ratio(left, partition, right, partition)


def equals(left: Optional[Resource], right: Optional[Resource]) -> bool:
    """Compare quantities; None equals only None, missing entries count as zero."""
    if left is right:
        return True
    if left is None or right is None:
        return False
    keys = left.resources.keys() | right.resources.keys()
    return all(left.resources.get(k, 0) == right.resources.get(k, 0) for k in keys)


def multiply_to(left: Optional[Resource], ratio: float) -> None:
    """Multiply every quantity in place, truncating towards zero."""
    if left is not None:
        left.resources = {k: int(float(v) * ratio) for k, v in left.resources.items()}


def multiply_by(left: Optional[Resource], ratio: float) -> Resource:
    """Return a new resource with every quantity multiplied and truncated."""
    return Resource({k: int(float(v) * ratio) for k, v in _values(left).items()})


def strictly_greater_than_or_equals(larger: Optional[Resource], smaller: Optional[Resource]) -> bool:
    """Check that every quantity of larger is at least that of smaller."""
    lv, sv = _values(larger), _values(smaller)
    return all(lv.get(k, 0) >= sv.get(k, 0) for k in lv.keys() | sv.keys())


def strictly_greater_than(larger: Optional[Resource], smaller: Optional[Resource]) -> bool:
    """Check that larger >= smaller everywhere and the two are not equal."""
    if not strictly_greater_than_or_equals(larger, smaller):
        return False
    lv, sv = _values(larger), _values(smaller)
    return any(lv.get(k, 0) > sv.get(k, 0) for k in lv.keys() | sv.keys())


def strictly_greater_than_zero(larger: Optional[Resource]) -> bool:
    """Check for at least one positive and no negative quantity; None is not."""
    values = list(_values(larger).values())
    return any(v > 0 for v in values) and not any(v < 0 for v in values)


def _component_wise(left: Optional[Resource], right: Optional[Resource], pick) -> Resource:
    if left is None or right is None:
        return Resource()
    lv, rv = left.resources, right.resources
    return Resource({k: pick(lv.get(k, 0), rv.get(k, 0)) for k in lv.keys() | rv.keys()})


def component_wise_min(left: Optional[Resource], right: Optional[Resource]) -> Resource:
    """Per-entry minimum; if either side is None an empty resource is returned."""
    return _component_wise(left, right, min)


def component_wise_max(left: Optional[Resource], right: Optional[Resource]) -> Resource:
    """Per-entry maximum; if either side is None an empty resource is returned."""
    return _component_wise(left, right, max)


def is_zero(zero: Optional[Resource]) -> bool:
    """Check that every quantity is zero; None is zero."""
    return all(v == 0 for v in _values(zero).values())


def min_quantity(left: int, right: int) -> int:
    """Return the smaller quantity."""
    return left if left < right else right


def max_quantity(left: int, right: int) -> int:
    """Return the larger quantity."""
    return right if left < right else left


def mock_resource(*args: int) -> Resource:
    """Build a resource named a, b, c, ... from the values, skipping zeros."""
    return Resource({chr(97 + i): num for i, num in enumerate(args) if num != 0})


def compare_mock_resource(left: Optional[Resource], *args: int) -> bool:
    """Check left against a mock resource built from the values."""
    return equals(left, mock_resource(*args))


def _iter_names(res: Resource) -> Iterable[str]:
    return iter(res.resources)