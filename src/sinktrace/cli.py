"""
Command-line interface for sinktrace.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .batch_analyzer import BatchAnalyzer
from .config import config
from .detector import SinkTraceDetector


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = argparse.ArgumentParser(
        prog="sinktrace",
        description="Trace network requests and DOM sinks in client-side JavaScript bundles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s analyze path/to/bundle.js
  %(prog)s analyze path/to/site/ -o results.json
  %(prog)s analyze path/to/site/ -j 4 -o report.json
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Analyze local JavaScript/HTML files",
    )
    analyze_parser.add_argument(
        "path",
        type=str,
        help="Path to JavaScript/HTML file or directory to analyze",
    )
    analyze_parser.add_argument(
        "-o", "--output",
        type=str,
        help="Output file for JSON results (default: print to stdout)",
        default=None,
    )
    analyze_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output and debug logging",
    )
    analyze_parser.add_argument(
        "--module",
        action="store_true",
        help="Parse JavaScript files as ES modules first",
    )
    analyze_parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=1,
        help="Analyze files in N worker processes and print a merged report (default: 1)",
    )
    analyze_parser.add_argument(
        "--show-errors",
        action="store_true",
        help="List soft resolver errors in printed results",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args(argv)

    if args.command == "analyze":
        return handle_analyze(args)
    else:
        parser.print_help()
        return 1


def handle_analyze(args) -> int:
    """Handle the analyze command."""
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    validation = config.validate()
    for warning in validation["warnings"]:
        print(f"Warning: {warning}", file=sys.stderr)

    input_path = Path(args.path)
    if not input_path.exists():
        print(f"Error: Path '{args.path}' does not exist", file=sys.stderr)
        return 1

    try:
        if args.jobs > 1:
            batch = BatchAnalyzer(jobs=args.jobs, verbose=args.verbose, module=args.module)
            report = batch.analyze_paths([input_path])
            if args.output:
                batch.save_results(report, Path(args.output))
                print(f"Results saved to {args.output}")
            else:
                batch.print_summary(report)
            return 0

        detector = SinkTraceDetector(verbose=args.verbose, module=args.module)
        results = detector.analyze(input_path)

        if args.output:
            detector.save_results(results, Path(args.output))
            print(f"Results saved to {args.output}")
        else:
            detector.print_results(results, show_errors=args.show_errors)

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
