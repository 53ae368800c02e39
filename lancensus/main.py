#!/usr/bin/env python3
"""
LanCensus - Local Network Discovery and Classification

Command-line entry point for the discovery engine.

Commands:
    interfaces   list the IPv4 networks attached to this host
    scan         run a discovery scan (waits for it by default)
    status       show one scan job
    history      show recent scan jobs
    devices      list discovered devices
    classify     classify a discovered device (optionally link it)
    map          print the network map as JSON or Mermaid
"""

import argparse
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from config import (
    APP_NAME,
    APP_VERSION,
    CLASSIFICATIONS,
    DATABASE_URL,
    DEBUG_MODE,
    DEFAULT_HISTORY_LIMIT,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILE,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    LOGS_DIR,
    SCAN_TYPES,
)

from modules import (
    DiscoveryEngine,
    LanCensusError,
    init_database,
    render_mermaid,
)


def setup_logging(verbose: bool = False) -> None:
    """
    Setup application logging.

    Args:
        verbose: Enable debug logging
    """
    level = logging.DEBUG if verbose else logging.WARNING

    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    # File handler with rotation
    LOGS_DIR.mkdir(exist_ok=True)
    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)

    # Console handler; stdout carries command output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Suppress noisy libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    logging.debug("Logging initialized")


logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


# ─── Commands ────────────────────────────────────────────────────────────────


def cmd_interfaces(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    _print_json([n.to_dict() for n in engine.list_local_networks()])
    return 0


def cmd_scan(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    scan_id = engine.start_scan(args.type, args.target)
    if args.no_wait:
        print(scan_id)
        return 0

    job = engine.wait_for_scan(scan_id)
    _print_json(job.to_dict())
    return 0 if job.status == "completed" else 1


def cmd_status(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    _print_json(engine.get_scan_status(args.scan_id).to_dict())
    return 0


def cmd_history(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    _print_json([job.to_dict() for job in engine.get_scan_history(args.limit)])
    return 0


def cmd_devices(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    devices = engine.list_discovered_devices(args.classification, only_new=args.new)
    _print_json([d.to_dict() for d in devices])
    return 0


def cmd_classify(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    device = engine.classify_device(
        args.device_id,
        args.classification,
        notes=args.notes,
        link_to=args.link,
    )
    _print_json(device.to_dict())
    return 0


def cmd_map(engine: DiscoveryEngine, args: argparse.Namespace) -> int:
    data = engine.get_network_map_data()
    if args.format == "mermaid":
        sys.stdout.write(render_mermaid(data))
    else:
        _print_json(data)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lancensus",
        description=f"{APP_NAME} - Local network discovery and classification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lancensus interfaces
  lancensus scan --type full --target 192.168.1.0/24
  lancensus devices --new
  lancensus classify 3f2a... authorized --notes "office printer"
  lancensus map --format mermaid
        """
    )

    parser.add_argument(
        '--database',
        type=str,
        default=DATABASE_URL,
        help='SQLAlchemy database URL (default: local SQLite file)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'{APP_NAME} {APP_VERSION}'
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("interfaces", help="List local IPv4 networks")
    p.set_defaults(func=cmd_interfaces)

    p = sub.add_parser("scan", help="Run a discovery scan")
    p.add_argument('--type', choices=SCAN_TYPES, default="arp", help='Scan type (default: arp)')
    p.add_argument('--target', type=str, default=None, help='CIDR to scan (default: first local network)')
    p.add_argument('--no-wait', action='store_true', help='Print the scan id and return immediately')
    p.set_defaults(func=cmd_scan)

    p = sub.add_parser("status", help="Show a scan job")
    p.add_argument('scan_id')
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("history", help="Show recent scan jobs")
    p.add_argument('--limit', type=int, default=DEFAULT_HISTORY_LIMIT,
                   help=f'Number of jobs (default: {DEFAULT_HISTORY_LIMIT})')
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("devices", help="List discovered devices")
    p.add_argument('--classification', choices=CLASSIFICATIONS, default=None)
    p.add_argument('--new', action='store_true', help='Only unclassified devices')
    p.set_defaults(func=cmd_devices)

    p = sub.add_parser("classify", help="Classify a discovered device")
    p.add_argument('device_id')
    p.add_argument('classification', choices=CLASSIFICATIONS)
    p.add_argument('--notes', type=str, default=None)
    p.add_argument('--link', type=str, default=None, help='Managed device id to link to')
    p.set_defaults(func=cmd_classify)

    p = sub.add_parser("map", help="Print the network map")
    p.add_argument('--format', choices=("json", "mermaid"), default="json")
    p.set_defaults(func=cmd_map)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose or DEBUG_MODE)

    try:
        engine = DiscoveryEngine(init_database(args.database))
        return args.func(engine, args)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except LanCensusError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
