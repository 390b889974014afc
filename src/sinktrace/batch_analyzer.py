"""
Batch analyzer for many bundles.

This module analyzes a set of files (optionally in parallel worker
processes, each with its own analysis context) and merges the per-file
records into one report: endpoints across files, finding statistics, and
unique finding fingerprints.
"""

import hashlib
import json
from collections import defaultdict
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, List, Any, Iterable, Optional, Tuple

from .config import Config
from .detector import SinkTraceDetector, find_source_files

SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}


@dataclass
class BatchAnalysisResult:
    """Merged results of a batch run."""
    total_files: int
    failed_files: List[Dict[str, Any]]
    files: List[Dict[str, Any]]
    endpoints: List[Dict[str, Any]]
    statistics: Dict[str, Any]
    unique_findings: List[Dict[str, Any]]


def _analyze_one(args: Tuple[str, bool, Optional[Config]]) -> Dict[str, Any]:
    """Worker entry point; builds its own detector."""
    path, module, settings = args
    detector = SinkTraceDetector(module=module, settings=settings)
    return detector._analyze_file(Path(path))


def finding_fingerprint(finding: Dict[str, Any]) -> str:
    """SHA-1 of a finding's type, sink and excerpt."""
    key = "|".join((finding.get("type", ""), finding.get("sink", ""), finding.get("excerpt", "")))
    return hashlib.sha1(key.encode("utf-8")).hexdigest()


class BatchAnalyzer:
    """
    Batch analyzer for JavaScript bundles.

    Features:
    - Analyzes files sequentially or in a process pool
    - Merges endpoints found in several files
    - Aggregates finding counts by type and severity
    - Deduplicates findings by fingerprint
    """

    def __init__(self, jobs: int = 1, verbose: bool = False, module: bool = False,
                 settings: Optional[Config] = None):
        """
        Initialize the batch analyzer.

        Args:
            jobs: Worker processes (1 analyzes in-process)
            verbose: Enable verbose output
            module: Parse JavaScript files as modules first
            settings: Analysis limits (module default when None)
        """
        self.jobs = max(1, jobs)
        self.verbose = verbose
        self.module = module
        self.settings = settings

    def analyze_paths(self, paths: Iterable[Path]) -> BatchAnalysisResult:
        """
        Analyze files and directories.

        Args:
            paths: Files or directories (directories are searched recursively)

        Returns:
            BatchAnalysisResult with merged results
        """
        files: List[Path] = []
        for path in paths:
            if path.is_dir():
                files.extend(find_source_files(path))
            elif path.is_file():
                files.append(path)

        if self.verbose:
            print(f"Analyzing {len(files)} files with {self.jobs} job(s)")

        work = [(str(path), self.module, self.settings) for path in files]
        if self.jobs > 1 and len(work) > 1:
            with ProcessPoolExecutor(max_workers=self.jobs) as pool:
                results = list(pool.map(_analyze_one, work))
        else:
            detector = SinkTraceDetector(verbose=self.verbose, module=self.module, settings=self.settings)
            results = [detector._analyze_file(path) for path in files]

        return self.merge(results)

    def merge(self, results: List[Dict[str, Any]]) -> BatchAnalysisResult:
        """Merge per-file detector results into one report."""
        analyzed = [r for r in results if "records" in r]
        failed = [r for r in results if "error" in r]
        records = [record for result in analyzed for record in result["records"]]
        findings = [
            dict(finding, sourceUrl=record["sourceUrl"])
            for record in records for finding in record["securitySinks"]
        ]
        return BatchAnalysisResult(
            total_files=len(analyzed),
            failed_files=failed,
            files=analyzed,
            endpoints=self._merge_endpoints(records),
            statistics=self._compute_statistics(records, findings),
            unique_findings=self._identify_unique_findings(findings),
        )

    def _merge_endpoints(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Call sites grouped by ``(method, url)`` with the files they appear in."""
        endpoints: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for record in records:
            for site in record["fetchCallSites"]:
                key = (site.get("method") or "GET", site.get("url") or "")
                endpoint = endpoints.get(key)
                if endpoint is None:
                    endpoint = endpoints[key] = {
                        "method": key[0],
                        "url": key[1],
                        "types": [],
                        "params": [],
                        "sourceFiles": [],
                    }
                if site.get("type") not in endpoint["types"]:
                    endpoint["types"].append(site.get("type"))
                names = {param["name"] for param in endpoint["params"]}
                for param in site.get("params", []):
                    if param["name"] not in names:
                        endpoint["params"].append(dict(param))
                        names.add(param["name"])
                if record["sourceUrl"] not in endpoint["sourceFiles"]:
                    endpoint["sourceFiles"].append(record["sourceUrl"])
        return sorted(endpoints.values(), key=lambda e: (e["url"], e["method"]))

    def _compute_statistics(self, records: List[Dict[str, Any]],
                            findings: List[Dict[str, Any]]) -> Dict[str, Any]:
        type_counts: Dict[str, int] = defaultdict(int)
        severity_counts: Dict[str, int] = defaultdict(int)
        pattern_counts: Dict[str, int] = defaultdict(int)
        for finding in findings:
            type_counts[finding["type"]] += 1
            severity_counts[finding["severity"]] += 1
        for record in records:
            for pattern in record["dangerousPatterns"]:
                pattern_counts[pattern["type"]] += 1
        return {
            "total_records": len(records),
            "total_call_sites": sum(len(r["fetchCallSites"]) for r in records),
            "total_findings": len(findings),
            "finding_types": dict(type_counts),
            "severity_distribution": dict(severity_counts),
            "pattern_types": dict(pattern_counts),
            "parse_errors": sum(1 for r in records if "parseError" in r),
            "records_with_soft_errors": sum(1 for r in records if r.get("resolverErrors")),
        }

    def _identify_unique_findings(self, findings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Deduplicate findings across files by fingerprint.

        Returns:
            One entry per fingerprint with occurrence counts, most frequent first
        """
        groups: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for finding in findings:
            groups[finding_fingerprint(finding)].append(finding)

        unique = []
        for fingerprint, group in groups.items():
            first = group[0]
            unique.append({
                "fingerprint": fingerprint,
                "type": first["type"],
                "sink": first["sink"],
                "severity": max((f["severity"] for f in group), key=lambda s: SEVERITY_RANK.get(s, 0)),
                "occurrence_count": len(group),
                "example_files": sorted({f["sourceUrl"] for f in group})[:5],
            })
        unique.sort(key=lambda u: u["occurrence_count"], reverse=True)
        return unique

    def save_results(self, results: BatchAnalysisResult, output_file: Path) -> None:
        """
        Save batch analysis results to a JSON file.

        Args:
            results: BatchAnalysisResult to save
            output_file: Output file path
        """
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(asdict(results), f, indent=2, ensure_ascii=False)

        if self.verbose:
            print(f"Results saved to {output_file}")

    def print_summary(self, results: BatchAnalysisResult) -> None:
        """Print a summary of batch analysis results."""
        print("\n" + "=" * 80)
        print("Batch Analysis Summary")
        print("=" * 80)

        stats = results.statistics
        print(f"\nFiles analyzed: {results.total_files}")
        print(f"Failed files: {len(results.failed_files)}")
        print(f"Endpoints: {len(results.endpoints)}")
        print(f"Security findings: {stats['total_findings']}")

        if stats["severity_distribution"]:
            print("\nSeverity distribution:")
            for severity, count in sorted(stats["severity_distribution"].items(),
                                          key=lambda x: SEVERITY_RANK.get(x[0], 0), reverse=True):
                print(f"  {severity.upper()}: {count}")

        if results.endpoints:
            print("\nEndpoints:")
            for endpoint in results.endpoints:
                print(f"  {endpoint['method']:6} {endpoint['url']}  ({len(endpoint['sourceFiles'])} file(s))")

        if results.unique_findings:
            print("\nTop unique findings:")
            for i, finding in enumerate(results.unique_findings[:10], 1):
                print(f"{i}. {finding['type']} via {finding['sink']} "
                      f"[{finding['severity'].upper()}] x{finding['occurrence_count']}")

        for failed in results.failed_files:
            print(f"[-] {failed['file']}: {failed['error']}")
        print("\n" + "=" * 80)
