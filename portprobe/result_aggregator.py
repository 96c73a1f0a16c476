"""
Result Aggregator - Collects per-port results from the workers

Workers only ever append. Counting happens once, in finalize(), after the
pool has joined, so nothing in the hot path touches shared counters.
"""

import time
import logging
import threading
from typing import List, Optional, Tuple

from portprobe.models import ScanResult, ScanSummary

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Append-only, lock-guarded result collection for a single scan."""

    def __init__(self, hostname: str, start_port: int, end_port: int):
        """
        Start the scan clock and create an empty collection.

        Args:
            hostname: The target being scanned
            start_port: First port of the scanned range
            end_port: Last port of the scanned range
        """
        self.hostname = hostname
        self.start_port = start_port
        self.end_port = end_port
        self._lock = threading.Lock()
        # Pre-sized for the whole range; entries are filled in arrival order
        self._results: List[Optional[ScanResult]] = [None] * (end_port - start_port + 1)
        self._count = 0
        self._started = time.perf_counter()

    def append(self, result: ScanResult) -> None:
        """Record one result. Safe to call from any number of threads."""
        with self._lock:
            if self._count < len(self._results):
                self._results[self._count] = result
            else:
                self._results.append(result)
            self._count += 1

    def __len__(self) -> int:
        with self._lock:
            return self._count

    @property
    def results(self) -> Tuple[ScanResult, ...]:
        """Snapshot of the results received so far, in arrival order."""
        with self._lock:
            return tuple(self._results[: self._count])

    def finalize(self) -> ScanSummary:
        """
        Count open and closed ports and stamp the elapsed time.

        Must only be called once every worker has finished.

        Returns:
            ScanSummary: The totals and the full result collection
        """
        results = self.results
        open_ports = sum(1 for r in results if r.is_open)
        closed_ports = len(results) - open_ports
        elapsed = time.perf_counter() - self._started

        expected = self.end_port - self.start_port + 1
        if len(results) != expected:
            logger.warning(f"Expected {expected} results for {self.hostname}, got {len(results)}")

        return ScanSummary(
            hostname=self.hostname,
            start_port=self.start_port,
            end_port=self.end_port,
            open_ports=open_ports,
            closed_ports=closed_ports,
            total_time=elapsed,
            results=results,
        )
