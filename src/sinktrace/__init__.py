"""
sinktrace - static network-sink and taint tracing for JavaScript bundles

Recovers the requests a client-side bundle can issue (URLs, methods, headers,
parameters and their allowed values), even when the call sits behind wrapper
functions, callbacks or minified indirection, and reports user-controlled
values reaching dangerous DOM and code sinks.
"""

__version__ = "0.3.0"
__author__ = "Letao Zhao, Ethan Lee, Bingyan He, Qi Sun"

from .analysis import BundleAnalyzer, analyze_source
from .batch_analyzer import BatchAnalyzer, BatchAnalysisResult
from .config import Config, config
from .detector import SinkTraceDetector
from .parser import JavaScriptParser, ParseError

__all__ = [
    "BundleAnalyzer",
    "analyze_source",
    "BatchAnalyzer",
    "BatchAnalysisResult",
    "Config",
    "config",
    "SinkTraceDetector",
    "JavaScriptParser",
    "ParseError",
]
