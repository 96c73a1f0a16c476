"""
Threading Module - Bounded worker pool for the port scanner

A fixed number of workers share one PortSource and one result sink. The
worker count is also the cap on simultaneous outbound connection attempts.
"""

import logging
from typing import Callable, Optional
from concurrent.futures import ThreadPoolExecutor, wait

from portprobe.models import ScanResult, STATUS_CLOSED
from portprobe.port_source import PortSource

logger = logging.getLogger(__name__)

PortHandler = Callable[[int], ScanResult]
ResultSink = Callable[[ScanResult], None]


class WorkerPool:
    """
    Runs exactly `workers` worker loops until the port source is drained.
    """

    def __init__(self, workers: int, hostname: str = ""):
        """
        Initialize the pool.

        Args:
            workers: Number of concurrent workers (at least 1)
            hostname: Target name, used for results built from unexpected failures
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.workers = workers
        self.hostname = hostname

    def _worker(
        self,
        worker_id: int,
        source: PortSource,
        handler: PortHandler,
        sink: ResultSink,
        progress_callback: Optional[Callable[[ScanResult], None]],
    ) -> int:
        processed = 0
        for port in source:
            try:
                result = handler(port)
            except Exception as e:
                # One bad port must not take the worker down with it
                logger.exception(f"Worker {worker_id} failed on port {port}")
                result = ScanResult(
                    hostname=self.hostname,
                    port=port,
                    status=STATUS_CLOSED,
                    error=str(e) or e.__class__.__name__,
                )
            sink(result)
            processed += 1
            if progress_callback:
                try:
                    progress_callback(result)
                except Exception:
                    logger.exception("Progress callback raised")
        logger.debug(f"Worker {worker_id} finished after {processed} ports")
        return processed

    def run(
        self,
        source: PortSource,
        handler: PortHandler,
        sink: ResultSink,
        progress_callback: Optional[Callable[[ScanResult], None]] = None,
    ) -> int:
        """
        Drain the source with the worker pool and block until every worker returns.

        Args:
            source: Shared supply of ports
            handler: Scans one port and returns its result
            sink: Receives every result (must be thread-safe)
            progress_callback: Optional callback invoked after each result is stored

        Returns:
            int: Total number of ports processed
        """
        logger.info(f"Starting {self.workers} workers for {len(source)} ports")

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="portprobe") as executor:
            futures = [
                executor.submit(self._worker, i, source, handler, sink, progress_callback)
                for i in range(self.workers)
            ]
            wait(futures)

        total = sum(f.result() for f in futures)
        logger.info(f"Worker pool drained: {total} ports processed")
        return total
