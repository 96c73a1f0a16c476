"""
Scanner Engine Module - Core scanning functionality

This module tests whether ports are open, reads the greeting line an open
service sends unprompted, and guesses which service is listening. The
ScannerEngine ties these together with the worker pool and the result
aggregator to scan a whole port range.
"""

import socket
import time
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, List, Optional, Tuple

from portprobe.config import ScanConfig, format_duration
from portprobe.models import ScanResult, ScanSummary, STATUS_OPEN, STATUS_CLOSED
from portprobe.port_source import PortSource
from portprobe.result_aggregator import ResultAggregator
from portprobe.threading_module import WorkerPool

logger = logging.getLogger(__name__)

# Well-known ports. A match here wins over anything the banner says.
SERVICE_MAP = {
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    80: "HTTP",
    110: "POP3",
    143: "IMAP",
    443: "HTTPS",
    993: "IMAPS",
    995: "POP3S",
    3306: "MySQL",
    5432: "PostgreSQL",
    6379: "Redis",
    8080: "HTTP-Alt",
    8443: "HTTPS-Alt",
}

# Banner substrings, checked in this order against the lower-cased banner
BANNER_SIGNATURES = (
    ("ssh", "SSH"),
    ("http", "HTTP"),
    ("ftp", "FTP"),
    ("smtp", "SMTP"),
    ("pop3", "POP3"),
    ("imap", "IMAP"),
    ("mysql", "MySQL"),
    ("postgresql", "PostgreSQL"),
    ("redis", "Redis"),
)

UNKNOWN_SERVICE = "Unknown"

# Longest greeting we wait for before giving up on finding a newline
MAX_BANNER_BYTES = 4096

# One getaddrinfo() entry: (family, type, proto, canonname, sockaddr)
Address = Tuple[int, int, int, str, Tuple[Any, ...]]


@dataclass
class DialOutcome:
    """Result of one connection attempt. `sock` is set only when the port is open."""

    is_open: bool
    sock: Optional[socket.socket] = None
    error: Optional[str] = None


def _error_text(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


def resolve(host: str, timeout: float) -> List[Address]:
    """
    Look up the TCP addresses of a host, giving up after `timeout` seconds.

    getaddrinfo() has no timeout of its own, so the lookup runs on a helper
    thread. A lookup still running at the deadline is abandoned, not cancelled.

    Args:
        host: The hostname or IP address to resolve
        timeout: Time allowed for the lookup, in seconds

    Returns:
        List[Address]: getaddrinfo() entries for stream sockets

    Raises:
        OSError: If the lookup fails or times out
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="portprobe-dns")
    try:
        future = executor.submit(socket.getaddrinfo, host, None, 0, socket.SOCK_STREAM)
        try:
            addresses = future.result(timeout=timeout)
        except FutureTimeoutError:
            raise socket.timeout(f"lookup {host}: timed out") from None
    finally:
        executor.shutdown(wait=False)

    if not addresses:
        raise socket.gaierror(f"lookup {host}: no addresses found")
    return addresses


def dial(host: str, port: int, timeout: float, addresses: Optional[List[Address]] = None) -> DialOutcome:
    """
    Attempt a TCP connection to host:port.

    One deadline covers the whole attempt: the lookup (unless `addresses` is
    given) and every resolved address in turn. Once connected the socket is
    put back into blocking mode; later reads set their own deadline.

    Args:
        host: The hostname or IP address to connect to
        port: The port number to connect to
        timeout: Connection timeout in seconds
        addresses: Pre-resolved getaddrinfo() entries for the host

    Returns:
        DialOutcome: The open socket on success, otherwise the error text
    """
    deadline = time.monotonic() + timeout

    if addresses is None:
        try:
            addresses = resolve(host, timeout)
        except OSError as e:
            # DNS failures mean "closed" too
            return DialOutcome(is_open=False, error=_error_text(e))

    last_error: Optional[OSError] = None
    for family, socktype, proto, _, sockaddr in addresses:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            last_error = socket.timeout("timed out")
            break

        sock = None
        try:
            sock = socket.socket(family, socktype, proto)
            sock.settimeout(remaining)
            sock.connect((sockaddr[0], port) + tuple(sockaddr[2:]))
            sock.settimeout(None)
            return DialOutcome(is_open=True, sock=sock)
        except OSError as e:
            # Refused, timed out and unreachable all mean "closed"
            last_error = e
            if sock is not None:
                sock.close()

    if last_error is None:
        last_error = socket.gaierror(f"lookup {host}: no addresses found")
    return DialOutcome(is_open=False, error=_error_text(last_error))


def read_banner(sock: socket.socket, timeout: float) -> Optional[str]:
    """
    Read the first line a service sends without being prompted.

    Bytes received before a timeout, reset or EOF are discarded: without a
    newline there is no banner.

    Args:
        sock: A connected socket
        timeout: Time allowed for the whole line to arrive, in seconds

    Returns:
        Optional[str]: The stripped line, or None when nothing usable arrived
    """
    deadline = time.monotonic() + timeout
    buffer = b""
    try:
        while b"\n" not in buffer:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            sock.settimeout(remaining)
            chunk = sock.recv(1024)
            if not chunk:
                return None
            buffer += chunk
            if b"\n" not in buffer and len(buffer) >= MAX_BANNER_BYTES:
                return None
    except OSError as e:
        logger.debug(f"No banner: {e!r}")
        return None

    line = buffer.split(b"\n", 1)[0]
    return line.decode("utf-8", errors="ignore").strip()


def identify_service(port: int, banner: Optional[str] = None) -> str:
    """
    Guess the service from the port number, falling back to the banner.

    Args:
        port: The port number
        banner: Greeting line read from the port, if any

    Returns:
        str: The service label, "Unknown" when nothing matches
    """
    if port in SERVICE_MAP:
        return SERVICE_MAP[port]

    text = (banner or "").lower()
    for needle, service in BANNER_SIGNATURES:
        if needle in text:
            return service

    return UNKNOWN_SERVICE


class ScannerEngine:
    """
    Scans the port range of one ScanConfig.

    The engine holds no state beyond its config, so several engines can scan
    independently in the same process.
    """

    def __init__(self, config: ScanConfig):
        self.config = config

    def scan_port(self, port: int, addresses: Optional[List[Address]] = None) -> ScanResult:
        """
        Dial one port, and when it is open read its banner and classify it.

        Args:
            port: The port number to scan
            addresses: Pre-resolved addresses of the target, looked up per call if None

        Returns:
            ScanResult: The outcome for this port
        """
        host = self.config.hostname
        outcome = dial(host, port, self.config.timeout, addresses=addresses)
        if not outcome.is_open:
            logger.debug(f"Port {port} closed: {outcome.error}")
            return ScanResult(hostname=host, port=port, status=STATUS_CLOSED, error=outcome.error)

        try:
            banner = read_banner(outcome.sock, self.config.timeout)
        finally:
            outcome.sock.close()

        service = None
        if banner:
            service = identify_service(port, banner)
        else:
            banner = None

        service_info = f" ({service})" if service else ""
        logger.info(f"Port {port} is open{service_info}")
        return ScanResult(hostname=host, port=port, status=STATUS_OPEN, service=service, banner=banner)

    def _unresolved_port(self, port: int, error: str) -> ScanResult:
        return ScanResult(hostname=self.config.hostname, port=port, status=STATUS_CLOSED, error=error)

    def scan(self, progress_callback: Optional[Callable[[ScanResult], None]] = None) -> ScanSummary:
        """
        Scan the whole configured range and block until it is done.

        Args:
            progress_callback: Optional callback invoked with each result as it is stored

        Returns:
            ScanSummary: The finalized summary with every result
        """
        cfg = self.config
        logger.debug(
            f"Starting scan of {cfg.hostname} (ports {cfg.start_port}-{cfg.end_port}) "
            f"with {cfg.workers} workers"
        )

        aggregator = ResultAggregator(cfg.hostname, cfg.start_port, cfg.end_port)

        # Resolve once for the whole scan; a failed lookup closes every port
        try:
            addresses = resolve(cfg.hostname, cfg.timeout)
        except OSError as e:
            logger.info(f"Could not resolve {cfg.hostname}: {_error_text(e)}")
            handler = partial(self._unresolved_port, error=_error_text(e))
        else:
            handler = partial(self.scan_port, addresses=addresses)

        source = PortSource(cfg.start_port, cfg.end_port)
        pool = WorkerPool(cfg.workers, hostname=cfg.hostname)
        pool.run(source, handler, aggregator.append, progress_callback)

        summary = aggregator.finalize()
        logger.debug(
            f"Scan of {cfg.hostname} complete: {summary.open_ports} open, "
            f"{summary.closed_ports} closed in {format_duration(summary.total_time)}"
        )
        return summary


def run_scan(config: ScanConfig, progress_callback: Optional[Callable[[ScanResult], None]] = None) -> ScanSummary:
    """Convenience wrapper: scan with a fresh engine and return the summary."""
    return ScannerEngine(config).scan(progress_callback)
