"""
Content transfer command line interface.

Exports subtrees of a content store into portable bundles and imports such
bundles into another store, reconciling them with what is already there.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from . import __version__
from .config_loader import ConfigLoader, get_nested
from .exceptions import ConfigurationError, TransferError
from .logger import log_config, log_section, setup_logging
from .orchestrator import TransferOrchestrator, TransferReport
from .stores import StoreError

DEFAULT_CONFIG = 'config.yaml'


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='content-transfer',
        description="Export and import hierarchical content between content stores",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export a subtree into a bundle
  content-transfer export 3f2a9c... -o bundle.json

  # Export as JSON lines with files written next to the bundle
  content-transfer export 3f2a9c... -o bundle.jsonl --file-storage files/

  # Check a bundle against the destination without writing
  content-transfer import bundle.json --verify-only

  # Import below a given node, asking at each decision point
  content-transfer import bundle.json --start-node 5b1e... --interactive

  # Verbose logging
  content-transfer -vv import bundle.json
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help=f'Path to configuration YAML file (default: {DEFAULT_CONFIG} if present)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Also write log output to this file'
    )

    parser.add_argument(
        '--report',
        type=str,
        help='Write the JSON report to this path'
    )

    parser.add_argument(
        '--file-storage',
        type=str,
        help='Directory holding file data outside the bundle'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    export_parser = subparsers.add_parser('export', help='Export subtrees into a bundle')
    export_parser.add_argument('start_nodes', nargs='+', help='UUIDs of the nodes to export')
    export_parser.add_argument(
        '-o', '--output',
        type=str,
        required=True,
        help='Bundle path, .jsonl or .ndjson writes JSON lines'
    )
    export_parser.add_argument(
        '--embed-files',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Embed file data in the bundle (default: unless --file-storage is given)'
    )
    export_parser.add_argument('--include-owners', action='store_true', help='Also export owners of exported objects')
    export_parser.add_argument('--include-relations', action='store_true', help='Also export relation targets')
    export_parser.add_argument('--include-embeds', action='store_true', help='Also export embedded objects')
    export_parser.add_argument('--include-parents', action='store_true', help='Also export the parent chain')

    import_parser = subparsers.add_parser('import', help='Import a bundle into the destination')
    import_parser.add_argument('bundle', help='Bundle document or JSON-lines stream')
    import_parser.add_argument(
        '-i', '--interactive',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Ask at each decision point instead of applying policies'
    )
    import_parser.add_argument(
        '--start-node',
        type=str,
        help='UUID of the destination node that receives top-level nodes'
    )
    import_parser.add_argument(
        '--temp-directory',
        type=str,
        help='Directory for decoded file data'
    )
    import_parser.add_argument(
        '--verify-only',
        action='store_true',
        help='Stop after the verify pass'
    )
    import_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Preview the import without writing to the destination'
    )

    return parser


def load_configuration(args: argparse.Namespace) -> dict:
    """Load, merge and validate configuration."""
    config_path = args.config
    if config_path is None:
        config = ConfigLoader.load(DEFAULT_CONFIG) if os.path.exists(DEFAULT_CONFIG) else {}
    else:
        config = ConfigLoader.load(config_path)

    config = ConfigLoader.merge_with_args(config, args)
    ConfigLoader.validate(config)
    return config


def run(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Run the selected command and print its report."""
    orchestrator = TransferOrchestrator(config, logger, dry_run=getattr(args, 'dry_run', False))

    if args.command == 'export':
        log_section("Export")
        report = orchestrator.run_export(args.start_nodes, args.output)
    else:
        log_section("Import")
        report = orchestrator.run_import(args.bundle, verify_only=args.verify_only)

    report_generator = TransferReport(logger)
    print(report_generator.format_console_report(report))
    if args.report:
        report_generator.export_json_report(report, args.report)

    return 1 if report['summary']['failed'] else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        # Minimal logging until the configuration is known
        logger = setup_logging(verbosity=args.verbose)

        config = load_configuration(args)
        logger = setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=get_nested(config, 'logging.level')
        )
        log_section(f"content-transfer {__version__}")
        log_config(config)

        return run(config, args, logger)

    except ConfigurationError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nTransfer interrupted by user", file=sys.stderr)
        return 130
    except (TransferError, StoreError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"ERROR: File error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
