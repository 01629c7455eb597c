"""Optional plugins a resource manager can provide to the scheduler."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class PredicatesPlugin(Protocol):
    """Checks whether a proposed allocation may be placed on a node; raises if not."""

    def predicates(self, args: Any) -> None: ...


@runtime_checkable
class VolumesPlugin(Protocol):
    """Volume handling after an allocation is confirmed; declares no operations yet."""


@runtime_checkable
class ReconcilePlugin(Protocol):
    """Syncs state held by the scheduler, such as assumed allocations, back to the RM."""

    def re_sync_scheduler_cache(self, args: Any) -> None: ...


_lock = threading.Lock()
_predicates_plugin: Optional[PredicatesPlugin] = None
_volumes_plugin: Optional[VolumesPlugin] = None
_reconcile_plugin: Optional[ReconcilePlugin] = None


def register_scheduler_plugin(plugin: Any) -> None:
    """Register the plugin for every plugin interface it implements."""
    global _predicates_plugin, _volumes_plugin, _reconcile_plugin
    if plugin is None:
        logger.debug("no scheduler plugin implemented, none registered")
        return
    with _lock:
        if isinstance(plugin, PredicatesPlugin):
            logger.debug("register scheduler plugin: PredicatesPlugin")
            _predicates_plugin = plugin
        if isinstance(plugin, VolumesPlugin):
            logger.debug("register scheduler plugin: VolumesPlugin")
            _volumes_plugin = plugin
        if isinstance(plugin, ReconcilePlugin):
            logger.debug("register scheduler plugin: ReconcilePlugin")
            _reconcile_plugin = plugin


def get_predicates_plugin() -> Optional[PredicatesPlugin]:
    with _lock:
        return _predicates_plugin


def get_volumes_plugin() -> Optional[VolumesPlugin]:
    with _lock:
        return _volumes_plugin


def get_reconcile_plugin() -> Optional[ReconcilePlugin]:
    with _lock:
        return _reconcile_plugin