"""Partition name helpers, polling and parallel work distribution."""

from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

DEFAULT_PARTITION = "default"


def get_normalized_partition_name(partition_name: str, rm_id: str) -> str:
    """Prefix the partition with the RM id; an empty name becomes "default"."""
    return f"[{rm_id}]{partition_name or DEFAULT_PARTITION}"


def get_rm_id_from_partition_name(partition_name: str) -> str:
    """Return the RM id of a normalized partition name, or "" if there is none."""
    idx = partition_name.find("]")
    return partition_name[1:idx] if idx > 0 else ""


def get_partition_name_without_cluster_id(partition_name: str) -> str:
    """Strip the "[rmId]" prefix from a normalized partition name."""
    idx = partition_name.find("]")
    return partition_name[idx + 1:] if idx > 0 else partition_name


def wait_for(interval: float, timeout: float, condition: Callable[[], bool]) -> None:
    """Poll the condition every interval seconds until true; raise TimeoutError past timeout."""
    deadline = time.monotonic() + timeout
    while True:
        if time.monotonic() > deadline:
            raise TimeoutError("timeout waiting for condition")
        if condition():
            return
        time.sleep(interval)


def parallelize_until(
    stop_event: Optional[threading.Event],
    workers: int,
    pieces: int,
    do_work_piece: Callable[[int], None],
) -> None:
    """Run do_work_piece for pieces 0..pieces-1 on up to `workers` threads.

    Workers stop taking new pieces once stop_event is set. An exception raised
    by a piece is re-raised here after all workers have finished.
    """
    todo: "queue.SimpleQueue[int]" = queue.SimpleQueue()
    for piece in range(pieces):
        todo.put(piece)
    workers = min(workers, pieces)
    if workers <= 0:
        return

    def worker() -> None:
        while True:
            try:
                piece = todo.get_nowait()
            except queue.Empty:
                return
            if stop_event is not None and stop_event.is_set():
                return
            do_work_piece(piece)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(worker) for _ in range(workers)]
    for future in futures:
        future.result()