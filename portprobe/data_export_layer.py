"""
Data Export Layer - Renders finished scan results as text, JSON or CSV
"""

import sys
import csv
import json
import logging
from typing import Any, Dict, Optional, TextIO

from portprobe.config import format_duration
from portprobe.models import ScanSummary

logger = logging.getLogger(__name__)

CSV_HEADER = ["Hostname", "Port", "Status", "Service", "Banner", "Error"]


class ExportError(OSError):
    """Raised when results cannot be written to their destination."""


def summary_to_dict(summary: ScanSummary) -> Dict[str, Any]:
    """Convert a summary into the JSON document layout."""
    return {
        "hostname": summary.hostname,
        "start_port": summary.start_port,
        "end_port": summary.end_port,
        "open_ports": summary.open_ports,
        "closed_ports": summary.closed_ports,
        "total_time": format_duration(summary.total_time),
        "results": [r.to_dict() for r in summary.results],
    }


def render_text(summary: ScanSummary, stream: TextIO) -> None:
    """
    Write a human-readable report: the summary block, then the open ports.

    Args:
        summary: The finalized scan summary
        stream: Destination text stream
    """
    stream.write("Scan Summary\n")
    stream.write("============\n")
    stream.write(f"Target: {summary.hostname}\n")
    stream.write(f"Port Range: {summary.start_port}-{summary.end_port}\n")
    stream.write(f"Open Ports: {summary.open_ports}\n")
    stream.write(f"Closed Ports: {summary.closed_ports}\n")
    stream.write(f"Total Time: {format_duration(summary.total_time)}\n\n")

    open_results = sorted(summary.open_results, key=lambda r: r.port)
    if not open_results:
        stream.write("No open ports found.\n")
        return

    stream.write("Open Ports:\n")
    stream.write("===========\n")
    for result in open_results:
        line = f"{result.hostname}:{result.port}"
        if result.service:
            line += f" ({result.service})"
        if result.banner:
            line += f" - {result.banner}"
        stream.write(line + "\n")


def render_json(summary: ScanSummary, stream: TextIO) -> None:
    """Write the summary and its nested results as pretty-printed JSON."""
    json.dump(summary_to_dict(summary), stream, indent=2, ensure_ascii=False)
    stream.write("\n")


def render_csv(summary: ScanSummary, stream: TextIO) -> None:
    """Write one CSV row per result, in the order the results were collected."""
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADER)
    for result in summary.results:
        writer.writerow([
            result.hostname,
            result.port,
            result.status,
            result.service or "",
            result.banner or "",
            result.error or "",
        ])


RENDERERS = {
    "text": render_text,
    "json": render_json,
    "csv": render_csv,
}


def export_results(summary: ScanSummary, fmt: str = "text", output: Optional[str] = None) -> str:
    """
    Render the results to a file or to standard output.

    Args:
        summary: The finalized scan summary
        fmt: Output format (text, json or csv)
        output: File path to write, None for standard output

    Returns:
        str: The destination written to ("<stdout>" for standard output)

    Raises:
        ValueError: If the format is not supported
        ExportError: If the destination cannot be written
    """
    renderer = RENDERERS.get((fmt or "text").lower())
    if renderer is None:
        raise ValueError(f"Unsupported format: {fmt}")

    if not output:
        try:
            renderer(summary, sys.stdout)
            sys.stdout.flush()
        except (OSError, UnicodeError) as e:
            raise ExportError(f"failed to write results to stdout: {e}") from e
        return "<stdout>"

    try:
        with open(output, "w", newline="" if renderer is render_csv else None, encoding="utf-8") as f:
            renderer(summary, f)
    except (OSError, UnicodeError) as e:
        logger.error(f"Error exporting results to {output}: {e}")
        raise ExportError(f"failed to create output file: {e}") from e

    logger.info(f"Scan results exported to {fmt.upper()}: {output}")
    return output
