"""Events passed between the scheduler's services and the resource manager proxy."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional, Protocol, runtime_checkable

from schedcore.resources import Resource


class TerminationType(IntEnum):
    """Why an allocation was released."""

    STOPPED_BY_RM = 0
    TIMEOUT = 1
    PREEMPTED_BY_SCHEDULER = 2


class Result:
    """A one-shot outcome that a handler resolves and a requester waits on."""

    def __init__(self) -> None:
        self._done = threading.Event()
        self._lock = threading.Lock()
        self.succeeded = False
        self.reason = ""

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def resolve(self, succeeded: bool, reason: str = "") -> None:
        """Record the outcome and wake any waiter; a result resolves only once."""
        with self._lock:
            if self._done.is_set():
                raise RuntimeError("result already resolved")
            self.succeeded = succeeded
            self.reason = reason
            self._done.set()

    def wait(self, timeout: Optional[float] = None) -> "Result":
        """Block until resolved and return self; raise TimeoutError if it is not in time."""
        if not self._done.wait(timeout):
            raise TimeoutError("timed out waiting for result")
        return self

    def __repr__(self) -> str:
        if not self.done:
            return "Result(pending)"
        return f"Result(succeeded={self.succeeded!r}, reason={self.reason!r})"


@runtime_checkable
class EventHandler(Protocol):
    """Anything that accepts events."""

    def handle_event(self, ev: Any) -> None: ...


@dataclass
class RemoveRMPartitionsEvent:
    rm_id: str
    result: Result = field(default_factory=Result)


@dataclass
class RegisterRMEvent:
    request: Any
    result: Result = field(default_factory=Result)


@dataclass
class ConfigUpdateRMEvent:
    rm_id: str
    result: Result = field(default_factory=Result)


@dataclass
class AllocationProposal:
    node_id: str
    application_id: str
    queue_name: str
    allocated_resource: Optional[Resource]
    allocation_key: str
    tags: dict[str, str] = field(default_factory=dict)
    priority: Any = None
    partition_name: str = ""


@dataclass
class ReleaseAllocation:
    """Request from the scheduler to release allocations.

    With a uuid only that allocation is released; with only an application id
    all of that application's allocations are released.
    """

    uuid: str
    application_id: str
    partition_name: str
    message: str
    release_type: TerminationType


@dataclass
class RMNewAllocationsEvent:
    rm_id: str
    allocations: list[Any] = field(default_factory=list)


@dataclass
class RMApplicationUpdateEvent:
    rm_id: str
    accepted_applications: list[Any] = field(default_factory=list)
    rejected_applications: list[Any] = field(default_factory=list)


@dataclass
class RMRejectedAllocationAskEvent:
    rm_id: str
    rejected_allocation_asks: list[Any] = field(default_factory=list)


@dataclass
class RMReleaseAllocationEvent:
    rm_id: str
    released_allocations: list[Any] = field(default_factory=list)


@dataclass
class RMNodeUpdateEvent:
    rm_id: str
    accepted_nodes: list[Any] = field(default_factory=list)
    rejected_nodes: list[Any] = field(default_factory=list)


@dataclass
class EventHandlers:
    """The handlers of the three services, wired together at start-up."""

    rm_proxy_event_handler: Optional[EventHandler] = None
    cache_event_handler: Optional[EventHandler] = None
    scheduler_event_handler: Optional[EventHandler] = None