"""
Per-bundle analysis.

Runs every analysis pass over one script and assembles the result record:
network call sites, mined value constraints, protobuf patterns, security
sinks and dangerous patterns.
"""

import logging
from typing import Dict, Any, Optional

from .config import Config, config as default_config
from .constraints import ConstraintIndex
from .context import AnalysisContext
from .globals_index import GlobalBindingIndex
from .network import NetworkSinkExtractor, merge_call_sites
from .parser import JavaScriptParser, ParseError
from .patterns import extract_source_map_url, find_proto_patterns
from .resolver import ValueResolver
from .scope import ScopeModel
from .taint import TaintAnalyzer
from .types import TypeTracker

logger = logging.getLogger(__name__)


def empty_record(source_url: str, source: str = "") -> Dict[str, Any]:
    """Result record with nothing found."""
    return {
        "sourceUrl": source_url,
        "protoEnums": [],
        "protoFieldMaps": [],
        "fetchCallSites": [],
        "valueConstraints": [],
        "securitySinks": [],
        "dangerousPatterns": [],
        "sourceMapUrl": extract_source_map_url(source) if source else None,
    }


def build_context(source: str, source_url: str = "<inline>", module: bool = False,
                  settings: Optional[Config] = None,
                  parser: Optional[JavaScriptParser] = None) -> AnalysisContext:
    """
    Parse a script and build its analysis context with every index attached.

    Raises:
        ParseError: If the script parses in neither mode
    """
    parser = parser or JavaScriptParser()
    parsed = parser.parse_source(source, source_url, module=module)
    model = ScopeModel(parsed.ast, source, module=parsed.source_type == "module")
    ctx = AnalysisContext(model, source_url, settings or default_config)
    ctx.index = GlobalBindingIndex(model)
    ctx.types = TypeTracker(model)
    ctx.constraints = ConstraintIndex(model)
    return ctx


class BundleAnalyzer:
    """
    Analyzer for a single JavaScript bundle.

    Every call to :meth:`analyze` builds a fresh :class:`AnalysisContext`, so
    one analyzer can be reused across files without state bleeding between
    them.
    """

    def __init__(self, settings: Optional[Config] = None, verbose: bool = False):
        """
        Initialize the analyzer.

        Args:
            settings: Limits and excerpt sizes (module default when None)
            verbose: Enable verbose output
        """
        self.settings = settings or default_config
        self.verbose = verbose
        self.parser = JavaScriptParser(verbose=verbose)
        self.last_context: Optional[AnalysisContext] = None

    def analyze(self, source: str, source_url: str = "<inline>", module: bool = False) -> Dict[str, Any]:
        """
        Analyze JavaScript source text.

        Args:
            source: Script text
            source_url: Identifier reported as ``sourceUrl``
            module: Try module mode before script mode

        Returns:
            Result record; ``parseError`` is set when the text could not be
            parsed and ``resolverErrors`` when soft errors were recorded
        """
        try:
            ctx = build_context(source, source_url, module, self.settings, self.parser)
        except ParseError as e:
            logger.debug("%s: %s", source_url, e)
            record = empty_record(source_url, source)
            record["parseError"] = str(e)
            return record

        model = ctx.model
        self.last_context = ctx

        resolver = ValueResolver(ctx)
        sites = [record.to_dict() for record in NetworkSinkExtractor(ctx, resolver).extract()]

        taint = TaintAnalyzer(ctx, resolver)
        taint.analyze()
        sinks, patterns = taint.report()

        record = empty_record(source_url, source)
        record.update(find_proto_patterns(model.nodes))
        record["fetchCallSites"] = merge_call_sites(sites)
        record["valueConstraints"] = ctx.constraints.export()
        record["securitySinks"] = sinks
        record["dangerousPatterns"] = patterns

        errors = ctx.soft_errors()
        if errors:
            record["resolverErrors"] = errors

        if self.verbose:
            print(f"{source_url}: {len(record['fetchCallSites'])} call sites, "
                  f"{len(sinks)} sinks, {len(patterns)} patterns")
        logger.debug("[%s] stats %s, %d rejections, %d truncations",
                     source_url, ctx.stats, ctx.rejections, ctx.truncations)
        return record


def analyze_source(source: str, source_url: str = "<inline>", module: bool = False,
                   settings: Optional[Config] = None) -> Dict[str, Any]:
    """Convenience wrapper around :class:`BundleAnalyzer`."""
    return BundleAnalyzer(settings).analyze(source, source_url, module)

