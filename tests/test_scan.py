"""End-to-end scans of a small loopback port range."""

import pytest

from portprobe.config import ScanConfig
from portprobe.models import STATUS_OPEN
from portprobe.scanner_engine import ScannerEngine, run_scan


def scan_range(ports, workers):
    config = ScanConfig(
        hostname="127.0.0.1",
        start_port=max(1, min(ports) - 5),
        end_port=min(65535, max(ports) + 5),
        timeout=0.3,
        workers=workers,
    )
    return config, run_scan(config)


@pytest.fixture
def services(tcp_server):
    ssh = tcp_server(greeting=b"SSH-2.0-OpenSSH_8.0\r\n")
    # Keep both listeners close together so the scanned range stays small
    for offset in range(1, 20):
        if ssh.port + offset > 65535:
            break
        try:
            return ssh, tcp_server(port=ssh.port + offset)
        except OSError:
            continue
    pytest.skip("no free port next to the first listener")


@pytest.mark.parametrize("workers", [1, 8, 500])
def test_scan_covers_every_port_once(services, workers):
    ssh, silent = services
    config, summary = scan_range([ssh.port, silent.port], workers)

    ports = [r.port for r in summary.results]
    assert len(ports) == config.port_count
    assert sorted(ports) == list(range(config.start_port, config.end_port + 1))
    assert summary.open_ports + summary.closed_ports == config.port_count

    by_port = {r.port: r for r in summary.results}
    assert by_port[ssh.port].status == STATUS_OPEN
    assert by_port[ssh.port].service == "SSH"
    assert by_port[ssh.port].banner == "SSH-2.0-OpenSSH_8.0"
    assert by_port[silent.port].status == STATUS_OPEN
    assert by_port[silent.port].banner is None


def test_open_iff_connection_succeeded(services):
    ssh, silent = services
    _, summary = scan_range([ssh.port, silent.port], 16)

    for result in summary.results:
        if result.is_open:
            assert result.error is None
        else:
            assert result.error
            assert result.service is None and result.banner is None


def test_worker_count_does_not_change_open_set(services):
    ssh, silent = services
    _, one = scan_range([ssh.port, silent.port], 1)
    _, many = scan_range([ssh.port, silent.port], 500)

    open_one = {r.port for r in one.results if r.is_open}
    open_many = {r.port for r in many.results if r.is_open}
    assert open_one == open_many
    assert {ssh.port, silent.port} <= open_one


def test_independent_engines_do_not_share_results(services):
    ssh, _ = services
    first = ScannerEngine(ScanConfig("127.0.0.1", ssh.port, ssh.port, 0.3, 1)).scan()
    second = ScannerEngine(ScanConfig("127.0.0.1", ssh.port - 2, ssh.port, 0.3, 2)).scan()
    assert len(first.results) == 1
    assert len(second.results) == 3
    assert first.results[0].service == "SSH"
