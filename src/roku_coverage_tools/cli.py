"""Command-line interface for Roku coverage tools."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import CAPTURE_TIMEOUT, CONSOLE_PORT, DEFAULT_BSCONFIG, ECP_PORT, REPORT_FILENAME
from .collector import CoverageCollector
from .config import CollectorSettings, resolve_credentials
from .deploy import DeploySupervisor, build_deploy_command
from .exceptions import DeployError, RokuCoverageToolsError
from .manifest import ManifestHook
from .normalizer import PathNormalizer


def create_settings(args) -> CollectorSettings:
    """Build collector settings from parsed arguments."""
    project_root = Path(args.project_root).resolve()
    report = getattr(args, "report", None)
    return CollectorSettings(
        project_root=project_root,
        bsconfig=getattr(args, "bsconfig", DEFAULT_BSCONFIG),
        report_path=Path(report).resolve() if report else None,
        console_port=getattr(args, "console_port", CONSOLE_PORT),
        ecp_port=getattr(args, "ecp_port", ECP_PORT),
        capture_timeout=getattr(args, "timeout", CAPTURE_TIMEOUT),
        manifest_hook=getattr(args, "manifest_hook", False),
    )


def command_collect(args) -> int:
    """Build, deploy, capture coverage from the debug console."""
    try:
        settings = create_settings(args)
        credentials = resolve_credentials(settings.project_root)
        collector = CoverageCollector(settings, credentials)
        print(f"Starting build and deploy to Roku device...\nTarget: {credentials.host}")
        result = asyncio.run(collector.run())

    except RokuCoverageToolsError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1

    flush = result.flush
    if flush is not None and flush.written:
        print(f"\nCoverage data written to: {flush.path}")
        print(f"Total lines captured: {flush.lines_written}")
    elif result.exit_code != 0:
        print("\nNo coverage data found between markers.", file=sys.stderr)
    return result.exit_code


def command_deploy(args) -> int:
    """Build and deploy the test channel with the manifest hook only."""
    try:
        settings = create_settings(args)
        credentials = resolve_credentials(settings.project_root)
        hook = ManifestHook()
        supervisor = DeploySupervisor(
            build_deploy_command(credentials, settings.bsconfig),
            cwd=settings.project_root,
            hook=hook,
            hook_root=settings.manifest_path.parent,
            secrets=[credentials.password],
        )
        outcome = asyncio.run(supervisor.run(context=f"deploy to {credentials.host}"))
        return outcome.exit_code

    except DeployError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return e.return_code
    except RokuCoverageToolsError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1


def command_fix_paths(args) -> int:
    """Drop generated-file records and map .brs paths back to .bs."""
    report = Path(args.report) if args.report else Path(args.project_root) / REPORT_FILENAME
    try:
        normalizer = PathNormalizer(report)
        result = normalizer.normalize(
            context=f"CLI fix-paths on {report}", show_progress=args.progress,
        )
        print(f"Skipped {result.skipped} generated file records")
        print(f"Processed {result.processed} records")
        print("Coverage file updated successfully!")
        return 0

    except RokuCoverageToolsError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1


def main(argv=None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Roku Coverage Tools - Collect lcov coverage from a Roku device"
    )

    parser.add_argument(
        "--project-root",
        default=".",
        help="Project directory holding bsconfig and src/ (default: .)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Collect coverage
    collect_parser = subparsers.add_parser(
        "collect", help="Deploy the test build and capture coverage",
    )
    collect_parser.add_argument(
        "--bsconfig", default=DEFAULT_BSCONFIG,
        help=f"bsc project file (default: {DEFAULT_BSCONFIG})",
    )
    collect_parser.add_argument(
        "--report", default=None,
        help=f"Output report path (default: <project>/{REPORT_FILENAME})",
    )
    collect_parser.add_argument(
        "--timeout", type=float, default=CAPTURE_TIMEOUT,
        help=f"Seconds to wait for the coverage report (default: {CAPTURE_TIMEOUT})",
    )
    collect_parser.add_argument(
        "--manifest-hook", action="store_true", default=False,
        help="Toggle the manifest only while the build runs",
    )
    collect_parser.add_argument(
        "--console-port", type=int, default=CONSOLE_PORT,
        help=f"Debug console port (default: {CONSOLE_PORT})",
    )
    collect_parser.add_argument(
        "--ecp-port", type=int, default=ECP_PORT,
        help=f"External Control Protocol port (default: {ECP_PORT})",
    )
    collect_parser.set_defaults(func=command_collect)

    # Deploy only
    deploy_parser = subparsers.add_parser(
        "deploy", help="Build and deploy the test build with the manifest hook",
    )
    deploy_parser.add_argument(
        "--bsconfig", default=DEFAULT_BSCONFIG,
        help=f"bsc project file (default: {DEFAULT_BSCONFIG})",
    )
    deploy_parser.set_defaults(func=command_deploy)

    # Fix report paths
    fix_parser = subparsers.add_parser(
        "fix-paths", help="Rewrite report paths to the .bs sources",
    )
    fix_parser.add_argument(
        "--report", default=None,
        help=f"Report to rewrite (default: <project>/{REPORT_FILENAME})",
    )
    fix_parser.add_argument(
        "--progress", action="store_true", default=False,
        help="Show a progress bar",
    )
    fix_parser.set_defaults(func=command_fix_paths)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
