import threading

import pytest

from schedcore.events import (
    ConfigUpdateRMEvent,
    EventHandler,
    EventHandlers,
    RegisterRMEvent,
    ReleaseAllocation,
    RemoveRMPartitionsEvent,
    Result,
    RMNodeUpdateEvent,
    TerminationType,
)
from schedcore.resources import Resource


class _Recorder:
    def __init__(self):
        self.events = []

    def handle_event(self, ev):
        self.events.append(ev)
        if hasattr(ev, "result"):
            ev.result.resolve(True, "ok")


def test_result_resolved_from_other_thread():
    result = Result()
    thread = threading.Thread(target=result.resolve, args=(False, "no partition"))
    thread.start()
    waited = result.wait(5.0)
    thread.join()
    assert waited is result
    assert result.succeeded is False
    assert result.reason == "no partition"
    assert result.done


def test_result_wait_times_out():
    with pytest.raises(TimeoutError):
        Result().wait(0.01)


def test_result_resolves_once():
    result = Result()
    result.resolve(True)
    with pytest.raises(RuntimeError):
        result.resolve(False, "again")
    assert result.succeeded is True


def test_each_event_gets_its_own_result():
    first = RemoveRMPartitionsEvent(rm_id="rm")
    second = RemoveRMPartitionsEvent(rm_id="rm")
    first.result.resolve(True)
    assert first.result.done
    assert not second.result.done


def test_handler_round_trip():
    handler = _Recorder()
    assert isinstance(handler, EventHandler)
    handlers = EventHandlers(cache_event_handler=handler)
    event = ConfigUpdateRMEvent(rm_id="rm-1")
    handlers.cache_event_handler.handle_event(event)
    assert handler.events == [event]
    assert event.result.wait(1.0).succeeded is True


def test_register_event_carries_request():
    request = {"rm_id": "rm:123", "policy_group": "policygroup"}
    event = RegisterRMEvent(request=request)
    assert event.request is request
    assert not event.result.done


def test_event_handlers_default_empty():
    handlers = EventHandlers()
    assert handlers.rm_proxy_event_handler is None
    assert handlers.cache_event_handler is None
    assert handlers.scheduler_event_handler is None


def test_release_allocation_fields():
    release = ReleaseAllocation(
        uuid="u-1",
        application_id="app-1",
        partition_name="[rm]default",
        message="done",
        release_type=TerminationType.STOPPED_BY_RM,
    )
    assert release.uuid == "u-1"
    assert release.application_id == "app-1"
    assert release.release_type is TerminationType.STOPPED_BY_RM


def test_node_update_lists_independent():
    first = RMNodeUpdateEvent(rm_id="rm")
    second = RMNodeUpdateEvent(rm_id="rm")
    first.accepted_nodes.append("node-1")
    assert second.accepted_nodes == []


def test_scheduler_handler_resolves_remove_partitions():
    recorder = _Recorder()
    handlers = EventHandlers(scheduler_event_handler=recorder)
    event = RemoveRMPartitionsEvent(rm_id="rm-2")
    handlers.scheduler_event_handler.handle_event(event)
    result = event.result.wait(1.0)
    assert result.succeeded is True
    assert result.reason == "ok"
    assert not isinstance(Resource(), EventHandler)