"""
Main detector module that coordinates parsing and analysis.

This module provides the high-level API for analyzing JavaScript files,
HTML pages with inline scripts, and directories of either.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional

from .analysis import BundleAnalyzer
from .config import Config
from .parser import HTML_SUFFIXES, JS_SUFFIXES, JavaScriptParser

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = JS_SUFFIXES | HTML_SUFFIXES


def find_source_files(dir_path: Path) -> List[Path]:
    """JavaScript and HTML files below a directory, sorted."""
    found = set()
    for suffix in SUPPORTED_SUFFIXES:
        found.update(dir_path.glob(f"**/*{suffix}"))
    return sorted(path for path in found if path.is_file())


class SinkTraceDetector:
    """
    Main detector class.

    Reads files, splits HTML pages into their inline scripts and runs a
    :class:`BundleAnalyzer` over every script.
    """

    def __init__(self, verbose: bool = False, module: bool = False, settings: Optional[Config] = None):
        """
        Initialize the detector.

        Args:
            verbose: Enable verbose output
            module: Parse JavaScript files as modules first
            settings: Analysis limits (module default when None)
        """
        self.verbose = verbose
        self.module = module
        self.parser = JavaScriptParser(verbose=verbose)
        self.analyzer = BundleAnalyzer(settings=settings, verbose=verbose)

    def analyze(self, path: Path) -> Dict[str, Any]:
        """
        Analyze a JavaScript/HTML file or a directory.

        Args:
            path: Path to a file or directory

        Returns:
            Dictionary containing analysis results

        Raises:
            ValueError: If the path is invalid
        """
        if path.is_file():
            return self._analyze_file(path)
        elif path.is_dir():
            return self._analyze_directory(path)
        else:
            raise ValueError(f"Invalid path: {path}")

    def _analyze_file(self, file_path: Path) -> Dict[str, Any]:
        """
        Analyze a single file.

        Failures are reported in the result instead of raised, so one broken
        file does not stop a directory run.
        """
        if self.verbose:
            print(f"Analyzing file: {file_path}")

        if file_path.suffix.lower() not in SUPPORTED_SUFFIXES:
            if self.verbose:
                print(f"Skipping unsupported file: {file_path}")
            return {
                "file": str(file_path),
                "skipped": True,
                "reason": "Not a JavaScript or HTML file",
            }

        try:
            records = []
            is_html = file_path.suffix.lower() in HTML_SUFFIXES
            for script in self.parser.parse_file(file_path, module=self.module):
                source_url = f"{file_path}#script-{script.index}" if is_html else str(file_path)
                record = self.analyzer.analyze(script.code, source_url, module=script.module)
                if is_html:
                    record["inlineScript"] = {"index": script.index, "line": script.line}
                records.append(record)
            return {
                "file": str(file_path),
                "records": records,
                "call_site_count": sum(len(r["fetchCallSites"]) for r in records),
                "sink_count": sum(len(r["securitySinks"]) for r in records),
            }
        except Exception as e:
            logger.debug("%s: analysis failed", file_path, exc_info=True)
            return {
                "file": str(file_path),
                "error": str(e),
            }

    def _analyze_directory(self, dir_path: Path) -> Dict[str, Any]:
        """
        Analyze all JavaScript and HTML files in a directory recursively.

        Returns:
            Dictionary with per-file results and totals
        """
        if self.verbose:
            print(f"Analyzing directory: {dir_path}")

        files = [self._analyze_file(path) for path in find_source_files(dir_path)]
        return {
            "directory": str(dir_path),
            "files": files,
            "total_call_sites": sum(f.get("call_site_count", 0) for f in files),
            "total_sinks": sum(f.get("sink_count", 0) for f in files),
        }

    def print_results(self, results: Dict[str, Any], show_errors: bool = False) -> None:
        """
        Print analysis results to stdout in a human-readable format.

        Args:
            results: Analysis results dictionary
            show_errors: Also list soft resolver errors
        """
        if "directory" in results:
            print(f"\n=== Analysis Results for {results['directory']} ===\n")
            print(f"Files analyzed: {len(results['files'])}")
            print(f"Network call sites: {results['total_call_sites']}")
            print(f"Security sinks: {results['total_sinks']}\n")

            for file_result in results["files"]:
                self._print_single_file_result(file_result, show_errors=show_errors)
        else:
            self._print_single_file_result(results, header=True, show_errors=show_errors)

    def _print_single_file_result(self, result: Dict[str, Any], header: bool = False,
                                  show_errors: bool = False) -> None:
        """Helper to print result for a single file."""
        file_path = result.get("file", "Unknown")

        if header:
            print(f"\n=== Analysis Results for {file_path} ===\n")

        if result.get("skipped"):
            if header:
                print(f"Skipped: {result['reason']}")
            return

        if "error" in result:
            print(f"[-] {file_path}: Error - {result['error']}")
            return

        sinks = result.get("sink_count", 0)
        status = "[!]" if sinks else "[+]"
        print(f"{status} {file_path}: {result.get('call_site_count', 0)} call site(s), {sinks} sink(s)")

        for record in result.get("records", []):
            if "parseError" in record:
                print(f"   [PARSE] {record['parseError']}")
            for site in record["fetchCallSites"]:
                print(f"   {site.get('method', 'GET'):6} {site.get('url')} ({site.get('type')})")
                for param in site.get("params", []):
                    values = f" = {param['values']}" if param.get("values") else ""
                    print(f"          {param.get('location', 'body')}:{param.get('name')}{values}")
            for sink in record["securitySinks"]:
                flag = " (sanitized)" if sink["sanitized"] else ""
                print(f"   [{sink['severity'].upper()}] Line {sink['location']['line']}: "
                      f"{sink['type']} via {sink['sink']} from {sink['taintSource']}{flag}")
                if header and sink["excerpt"]:
                    print(f"     Code:\n{sink['excerpt']}")
            for pattern in record["dangerousPatterns"]:
                print(f"   [{pattern['severity'].upper()}] Line {pattern['location']['line']}: {pattern['type']}")
            if record.get("sourceMapUrl"):
                print(f"   Source map: {record['sourceMapUrl']}")
            if show_errors:
                for err in record.get("resolverErrors", []):
                    print(f"   [SOFT] {err['label']}: {err['error']}")

    def save_results(self, results: Dict[str, Any], output_path: Path) -> None:
        """
        Save analysis results to a JSON file.

        Args:
            results: Analysis results dictionary
            output_path: Path to save the results
        """
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(results, f, indent=2, ensure_ascii=False)

        if self.verbose:
            print(f"Results saved to {output_path}")
