"""DecisionSampleRecorder: fire-and-forget persistence of routing decisions.

Samples are pushed onto a bounded queue and written by a single daemon
thread. ``submit()`` never blocks and never raises; a full queue or a
failing sink only produces a log line.
"""

from __future__ import annotations

import logging
import queue
import threading

from ..types import DecisionSample, DecisionSampleSink

logger = logging.getLogger(__name__)

_STOP = object()


class DecisionSampleRecorder:
    """Background writer for :class:`DecisionSample` records."""

    def __init__(self, sink: DecisionSampleSink, max_queue: int = 256) -> None:
        self._sink = sink
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, max_queue))
        self._closed = False
        self._pending = 0
        # Guards _closed and _pending; submit and close never interleave
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="tc-decision-samples",
        )
        self._thread.start()

    def submit(self, sample: DecisionSample) -> bool:
        """Enqueue a sample. Returns False if it was dropped."""
        with self._lock:
            if self._closed:
                logger.warning("Decision sample recorder closed; dropping sample %s", sample.id)
                return False
            try:
                self._queue.put_nowait(sample)
            except queue.Full:
                logger.warning("Decision sample queue full; dropping sample %s", sample.id)
                return False
            self._pending += 1
        return True

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every accepted sample has been handed to the sink.

        Returns False if *timeout* elapsed first.
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def close(self, timeout: float = 5.0) -> None:
        """Drain outstanding samples and stop the worker."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_STOP)
        self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._sink.record_decision_sample(item)
            except Exception as e:
                logger.warning(f"Decision sample write failed: {e}")
            finally:
                with self._idle:
                    self._pending -= 1
                    if self._pending == 0:
                        self._idle.notify_all()
