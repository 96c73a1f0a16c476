"""
Data Models - Per-port results and the finalized scan summary
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"


@dataclass(frozen=True)
class ScanResult:
    """Outcome of probing a single port. Never mutated after a worker builds it."""

    hostname: str
    port: int
    status: str
    service: Optional[str] = None
    banner: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == STATUS_OPEN

    def to_dict(self) -> Dict[str, Any]:
        # Optional fields are omitted when unset
        data: Dict[str, Any] = {
            "hostname": self.hostname,
            "port": self.port,
            "status": self.status,
        }
        if self.service:
            data["service"] = self.service
        if self.banner:
            data["banner"] = self.banner
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ScanSummary:
    """
    Totals for one scan, built by ResultAggregator.finalize().

    open_ports + closed_ports always equals len(results), and for a completed
    scan both equal end_port - start_port + 1.
    """

    hostname: str
    start_port: int
    end_port: int
    open_ports: int
    closed_ports: int
    total_time: float
    results: Tuple[ScanResult, ...] = field(default_factory=tuple)

    @property
    def open_results(self) -> Tuple[ScanResult, ...]:
        return tuple(r for r in self.results if r.is_open)
