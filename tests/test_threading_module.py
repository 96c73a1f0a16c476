import threading
import time

import pytest

from portprobe.models import STATUS_CLOSED, STATUS_OPEN, ScanResult
from portprobe.port_source import PortSource
from portprobe.result_aggregator import ResultAggregator
from portprobe.threading_module import WorkerPool


def fake_handler(port):
    status = STATUS_OPEN if port % 10 == 0 else STATUS_CLOSED
    return ScanResult(hostname="test", port=port, status=status)


@pytest.mark.parametrize("workers", [1, 4, 64])
def test_every_port_processed_exactly_once(workers):
    agg = ResultAggregator("test", 1, 500)
    total = WorkerPool(workers).run(PortSource(1, 500), fake_handler, agg.append)

    assert total == 500
    ports = [r.port for r in agg.results]
    assert len(ports) == 500
    assert sorted(ports) == list(range(1, 501))


def test_worker_count_bounds_concurrency():
    lock = threading.Lock()
    active = 0
    peak = 0

    def slow_handler(port):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with lock:
            active -= 1
        return fake_handler(port)

    agg = ResultAggregator("test", 1, 60)
    WorkerPool(5).run(PortSource(1, 60), slow_handler, agg.append)

    assert len(agg) == 60
    assert 1 < peak <= 5


def test_failing_port_does_not_abort_the_pool():
    def flaky_handler(port):
        if port == 13:
            raise RuntimeError("unlucky")
        return fake_handler(port)

    agg = ResultAggregator("test", 1, 30)
    WorkerPool(3, hostname="test").run(PortSource(1, 30), flaky_handler, agg.append)

    results = {r.port: r for r in agg.results}
    assert sorted(results) == list(range(1, 31))
    assert results[13].status == STATUS_CLOSED
    assert results[13].error == "unlucky"
    assert results[13].hostname == "test"
    assert results[20].status == STATUS_OPEN


def test_progress_callback_sees_every_result():
    seen = []
    lock = threading.Lock()

    def record(result):
        with lock:
            seen.append(result.port)

    agg = ResultAggregator("test", 100, 149)
    WorkerPool(8).run(PortSource(100, 149), fake_handler, agg.append, progress_callback=record)

    assert sorted(seen) == list(range(100, 150))


def test_rejects_zero_workers():
    with pytest.raises(ValueError):
        WorkerPool(0)
