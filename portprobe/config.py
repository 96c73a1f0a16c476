"""
Configuration Module - Scan settings, duration strings and input validation

Everything in here runs before a scan starts. Any problem is raised as a
ConfigurationError and the scan never begins.
"""

import os
import re
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

MIN_PORT = 1
MAX_PORT = 65535
OUTPUT_FORMATS = ("text", "json", "csv")

DEFAULT_TIMEOUT = "1s"
DEFAULT_WORKERS = 100
DEFAULT_FORMAT = "text"
ENV_PREFIX = "PORTPROBE_"

# Seconds per duration unit
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
# Two-letter units come first in the alternation so "ms" is not read as "m"
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class ConfigurationError(ValueError):
    """Raised for invalid scan settings detected before scanning starts."""


def env_default(name: str, fallback):
    """Read a PORTPROBE_<NAME> override from the environment, coerced to the fallback's type."""
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return fallback
    try:
        return type(fallback)(raw)
    except ValueError:
        raise ConfigurationError(f"invalid value for {ENV_PREFIX}{name}: {raw!r}") from None


@dataclass(frozen=True)
class ScanConfig:
    """Immutable scan settings, shared read-only with every worker."""

    hostname: str
    start_port: int = 1
    end_port: int = 1024
    timeout: float = 1.0
    workers: int = 100
    verbose: bool = False
    output: Optional[str] = None
    output_format: str = "text"

    @property
    def port_count(self) -> int:
        return self.end_port - self.start_port + 1


def parse_duration(text: str) -> float:
    """
    Parse a duration string such as "1s", "500ms" or "1m30s" into seconds.

    Args:
        text: Duration made of one or more <number><unit> parts, units being
              ns, us, ms, s, m or h

    Returns:
        float: The duration in seconds

    Raises:
        ConfigurationError: If the string is empty or malformed
    """
    if text is None:
        raise ConfigurationError("invalid timeout format: empty duration")
    value = text.strip()
    if not value:
        raise ConfigurationError("invalid timeout format: empty duration")

    sign = 1.0
    if value[0] in "+-":
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]
        if not value:
            raise ConfigurationError(f"invalid timeout format: {text!r}")

    # A bare zero is the only unitless duration accepted
    if value == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if not match:
            raise ConfigurationError(f"invalid timeout format: {text!r}")
        number, unit = match.groups()
        total += float(number) * _UNIT_SECONDS[unit]
        pos = match.end()

    return sign * total


def format_duration(seconds: float) -> str:
    """Render elapsed seconds compactly, e.g. "850ms", "1.234s" or "2m3.5s"."""
    if seconds <= 0:
        return "0s"
    if seconds < 1e-3:
        return f"{_trim(seconds * 1e6)}µs"
    if seconds < 1.0:
        millis = round(seconds * 1e3, 3)
        if millis < 1000:
            return f"{_trim(millis)}ms"

    # Round to the millisecond first so the seconds part never shows as 60
    millis = int(round(seconds * 1000))
    if millis < 60000:
        return f"{_trim(millis / 1000)}s"

    minutes, rest = divmod(millis, 60000)
    hours, minutes = divmod(minutes, 60)
    text = f"{minutes}m{_trim(rest / 1000)}s"
    if hours:
        text = f"{hours}h{text}"
    return text


def _trim(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def build_config(
    hostname: str,
    start_port: int = 1,
    end_port: int = 1024,
    timeout: str = DEFAULT_TIMEOUT,
    workers: int = DEFAULT_WORKERS,
    verbose: bool = False,
    output: Optional[str] = None,
    output_format: str = DEFAULT_FORMAT,
) -> ScanConfig:
    """
    Validate raw settings and build a ScanConfig.

    Args:
        hostname: Target hostname or IP address
        start_port: First port of the range (inclusive)
        end_port: Last port of the range (inclusive)
        timeout: Per-connection timeout as a duration string
        workers: Number of concurrent workers
        verbose: Enable verbose output
        output: Output file path, None for stdout
        output_format: One of text, json or csv

    Returns:
        ScanConfig: The validated configuration

    Raises:
        ConfigurationError: If any setting is invalid
    """
    if not hostname or not hostname.strip():
        raise ConfigurationError("hostname is required")

    if start_port < MIN_PORT or start_port > MAX_PORT:
        raise ConfigurationError(f"start port must be between {MIN_PORT} and {MAX_PORT}")
    if end_port < MIN_PORT or end_port > MAX_PORT:
        raise ConfigurationError(f"end port must be between {MIN_PORT} and {MAX_PORT}")
    if start_port > end_port:
        raise ConfigurationError("start port cannot be greater than end port")

    timeout_s = parse_duration(timeout)
    if timeout_s <= 0:
        raise ConfigurationError(f"timeout must be positive: {timeout!r}")

    if workers < 1:
        raise ConfigurationError("workers must be at least 1")

    fmt = (output_format or "text").lower()
    if fmt not in OUTPUT_FORMATS:
        raise ConfigurationError(
            f"unsupported output format {output_format!r} (choose from {', '.join(OUTPUT_FORMATS)})"
        )

    config = ScanConfig(
        hostname=hostname.strip(),
        start_port=start_port,
        end_port=end_port,
        timeout=timeout_s,
        workers=workers,
        verbose=verbose,
        output=output or None,
        output_format=fmt,
    )
    logger.debug(f"Scan config: {config}")
    return config
