#!/usr/bin/env python3
"""
Port Probe - Command line entry point
A terminal-based TCP port scanner with a bounded pool of worker threads.
"""

import sys
import argparse
import logging
from typing import List, Optional

import colorama
from colorama import Fore
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn

from portprobe.config import (
    ConfigurationError,
    DEFAULT_FORMAT,
    DEFAULT_TIMEOUT,
    DEFAULT_WORKERS,
    OUTPUT_FORMATS,
    build_config,
    env_default,
    format_duration,
)
from portprobe.data_export_layer import ExportError, export_results
from portprobe.scanner_engine import ScannerEngine

# Initialize colorama for cross-platform color support
colorama.init(autoreset=True)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

EXAMPLES = """examples:
  # Scan common ports on localhost
  portprobe -H localhost -s 1 -e 1024

  # Scan specific ports with JSON output
  portprobe -H scanme.nmap.org -s 20 -e 25 -f json

  # Fast scan with more workers
  portprobe -H example.com -w 500 -t 500ms

  # Save results to file
  portprobe -H target.com -o results.txt

Use responsibly and only scan systems you own or have permission to test.
"""


def setup_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Setup and parse command line arguments.

    Defaults for timeout, workers and format can come from the environment
    (PORTPROBE_TIMEOUT, PORTPROBE_WORKERS, PORTPROBE_FORMAT).

    Args:
        argv: Argument list, defaults to sys.argv[1:]

    Returns:
        Namespace: The parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        prog="portprobe",
        description="Port Probe - A fast concurrent TCP port scanner",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("-H", "--hostname", required=True, help="Target hostname or IP address")
    parser.add_argument("-s", "--start-port", type=int, default=1, help="Start of port range. Default: 1")
    parser.add_argument("-e", "--end-port", type=int, default=1024, help="End of port range. Default: 1024")
    parser.add_argument(
        "-t", "--timeout",
        default=env_default("TIMEOUT", DEFAULT_TIMEOUT),
        help="Connection timeout (e.g., 1s, 500ms). Default: %(default)s",
    )
    parser.add_argument(
        "-w", "--workers",
        type=int,
        default=env_default("WORKERS", DEFAULT_WORKERS),
        help="Number of concurrent workers. Default: %(default)s",
    )
    parser.add_argument("-o", "--output", help="Output file (default: stdout)")
    parser.add_argument(
        "-f", "--format",
        default=env_default("FORMAT", DEFAULT_FORMAT),
        help=f"Output format ({', '.join(OUTPUT_FORMATS)}). Default: %(default)s",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version=f"Port Probe v{VERSION}")

    return parser.parse_args(argv)


def configure_logging(verbose: bool, console: Console) -> None:
    """
    Send the package's log records to `console`, the same console the progress
    bar draws on, so log lines print above the bar instead of through it.
    """
    package_logger = logging.getLogger("portprobe")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)

    handler = RichHandler(console=console, show_path=False)
    handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.INFO if verbose else logging.WARNING)


def error(message: str) -> None:
    print(f"{Fore.RED}[ERROR] {message}", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point of the application.

    Returns:
        int: Process exit code, 0 on success and 1 on configuration or output errors
    """
    load_dotenv()

    try:
        args = setup_args(argv)
    except ConfigurationError as e:
        error(str(e))
        return 1

    console = Console(stderr=True)
    configure_logging(args.verbose, console)

    try:
        config = build_config(
            hostname=args.hostname,
            start_port=args.start_port,
            end_port=args.end_port,
            timeout=args.timeout,
            workers=args.workers,
            verbose=args.verbose,
            output=args.output,
            output_format=args.format,
        )
    except ConfigurationError as e:
        error(str(e))
        return 1

    engine = ScannerEngine(config)

    if config.verbose:
        print(
            f"{Fore.CYAN}[INFO] Starting scan of {config.hostname} "
            f"(ports {config.start_port}-{config.end_port}) with {config.workers} workers",
            file=sys.stderr,
        )
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("[cyan]Scanning ports...", total=config.port_count)

            def update_progress(result):
                progress.update(task, advance=1)

            summary = engine.scan(progress_callback=update_progress)
        print(
            f"{Fore.CYAN}[INFO] Scan finished in {format_duration(summary.total_time)}: "
            f"{summary.open_ports} open, {summary.closed_ports} closed",
            file=sys.stderr,
        )
    else:
        summary = engine.scan()

    try:
        destination = export_results(summary, config.output_format, config.output)
    except ExportError as e:
        error(str(e))
        return 1

    if config.output:
        print(f"{Fore.GREEN}[SUCCESS] Results written to {destination}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
