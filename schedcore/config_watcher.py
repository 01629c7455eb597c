"""Watching a policy group's configuration for changes and triggering reloads."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Protocol, runtime_checkable

from schedcore.config_loader import CONFIG_CONTEXT, load_scheduler_config

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_SECONDS = 60.0
DEFAULT_TICK_SECONDS = 1.0


@runtime_checkable
class ConfigReloader(Protocol):
    """Performs the actual reload; raises if the reload fails."""

    def do_reload_configuration(self) -> None: ...


class ConfigWatcher:
    """Polls a policy group's configuration until it changes or the watch expires.

    A change triggers the registered reloader once and ends the watch.
    """

    def __init__(
        self,
        rm_id: str = "",
        policy_group: str = "",
        expiration: float = DEFAULT_EXPIRATION_SECONDS,
        tick: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        self.rm_id = rm_id
        self.policy_group = policy_group
        self.expiration = expiration
        self.tick = tick
        self.reloader: Optional[ConfigReloader] = None
        self._lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def register_callback(self, reloader: ConfigReloader) -> None:
        """Set the reloader called when the configuration changes."""
        with self._lock:
            self.reloader = reloader

    def run_once(self) -> bool:
        """Check once; True if the configuration is unchanged, False otherwise.

        A configuration that cannot be loaded also returns False, without a reload.
        """
        with self._lock:
            try:
                new_config = load_scheduler_config(self.policy_group)
            except (ValueError, OSError) as exc:
                logger.warning(
                    "failed to load configuration for policy group %s, ignoring reload: %s",
                    self.policy_group,
                    exc,
                )
                return False

            current = CONFIG_CONTEXT.get(self.policy_group)
            if current is not None and new_config.checksum == current.checksum:
                logger.debug("configuration file unchanged")
                return True

            logger.debug("configuration file changed")
            if self.reloader is None:
                logger.warning("configuration changed but no reloader is registered")
                return False
            try:
                self.reloader.do_reload_configuration()
            except Exception:  # the reloader is a callback; its failure must not kill the watcher
                logger.exception("configuration reload failed")
            else:
                logger.debug("configuration is successfully reloaded")
            return False

    def run(self) -> None:
        """Start watching in the background; a no-op if already watching."""
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                logger.info("config watcher is already running")
                return
            self._thread = threading.Thread(
                target=self._watch, name=f"config-watcher-{self.policy_group}", daemon=True
            )
            self._thread.start()

    def is_running(self) -> bool:
        """Check whether a background watch is in progress."""
        with self._state_lock:
            return self._thread is not None and self._thread.is_alive()

    def _watch(self) -> None:
        deadline = time.monotonic() + self.expiration
        while True:
            remaining = deadline - time.monotonic()
            if remaining < self.tick:
                if remaining > 0:
                    time.sleep(remaining)
                return
            time.sleep(self.tick)
            if not self.run_once():
                return


_instance: Optional[ConfigWatcher] = None
_instance_lock = threading.Lock()


def get_instance() -> ConfigWatcher:
    """Return the process-wide watcher, creating it on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = ConfigWatcher(expiration=DEFAULT_EXPIRATION_SECONDS)
        return _instance