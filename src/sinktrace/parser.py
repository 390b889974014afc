"""
JavaScript and HTML parser module.

This module turns source text into esprima dictionary trees and pulls
inline scripts out of HTML pages so they can be analyzed like bundles.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Any, Optional

import esprima
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

JS_SUFFIXES = frozenset({".js", ".jsx", ".mjs", ".cjs"})
HTML_SUFFIXES = frozenset({".html", ".htm"})

# <script type="..."> values that still hold JavaScript
SCRIPT_TYPES = frozenset({
    "",
    "text/javascript",
    "application/javascript",
    "application/x-javascript",
    "text/ecmascript",
    "application/ecmascript",
    "module",
})


class ParseError(Exception):
    """Raised when source text cannot be parsed as a script or a module."""


@dataclass
class ParsedScript:
    """A parsed program and the mode that produced it."""
    ast: Dict[str, Any]
    source_type: str
    errors: List[str] = field(default_factory=list)


@dataclass
class InlineScript:
    """JavaScript found inside an HTML <script> element."""
    index: int
    code: str
    line: Optional[int]
    module: bool = False


class JavaScriptParser:
    """
    Parser for JavaScript code and HTML files.

    Produces location-annotated dictionary trees (``loc`` and ``range`` on
    every node) which the scope model and analyzers walk directly.
    """

    PARSE_OPTIONS = {"loc": True, "range": True, "tolerant": True}

    def __init__(self, verbose: bool = False):
        """
        Initialize the parser.

        Args:
            verbose: Enable verbose output
        """
        self.verbose = verbose

    def parse_source(self, code: str, filename: str = "<string>",
                     module: bool = False) -> ParsedScript:
        """
        Parse JavaScript code from a string.

        The hinted mode is tried first; on failure the opposite mode is
        retried before giving up.

        Args:
            code: JavaScript code as a string
            filename: Name used in diagnostics
            module: Try module mode first instead of script mode

        Returns:
            ParsedScript holding the dictionary AST

        Raises:
            ParseError: If neither mode accepts the code
        """
        if self.verbose:
            print(f"Parsing code from {filename}")

        modes = ("module", "script") if module else ("script", "module")
        first_error: Optional[Exception] = None
        fallback: Optional[ParsedScript] = None
        for mode in modes:
            parse = esprima.parseModule if mode == "module" else esprima.parseScript
            try:
                program = parse(code, **self.PARSE_OPTIONS)
            except Exception as e:  # esprima raises its own Error type
                if first_error is None:
                    first_error = e
                logger.debug("%s: %s parse failed: %s", filename, mode, e)
                continue

            ast = program.toDict() if hasattr(program, "toDict") else program
            errors = [str(err) for err in (ast.pop("errors", None) or [])]
            parsed = ParsedScript(ast=ast, source_type=mode, errors=errors)
            if not errors:
                return parsed
            # Tolerant mode accepts the wrong mode with errors attached
            logger.debug("%s: %s parse recovered from %d errors", filename, mode, len(errors))
            if fallback is None:
                fallback = parsed

        if fallback is not None:
            return fallback
        raise ParseError(f"Could not parse {filename}: {first_error}")

    def extract_inline_scripts(self, html: str) -> List[InlineScript]:
        """
        Extract inline JavaScript from an HTML document.

        Scripts with a ``src`` attribute or a non-JavaScript ``type`` (JSON
        blobs, templates) are skipped.

        Args:
            html: HTML document text

        Returns:
            List of inline scripts in document order
        """
        soup = BeautifulSoup(html, "lxml")
        scripts: List[InlineScript] = []
        for script in soup.find_all("script"):
            if script.get("src"):
                continue
            script_type = (script.get("type") or "").strip().lower()
            if script_type not in SCRIPT_TYPES:
                continue
            content = script.string
            if not content or not content.strip():
                continue
            scripts.append(InlineScript(
                index=len(scripts),
                code=str(content),
                line=getattr(script, "sourceline", None),
                module=script_type == "module",
            ))
        return scripts

    def read_file(self, file_path: Path) -> str:
        """
        Read a source file as text.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        if self.verbose:
            print(f"Reading file: {file_path}")
        return file_path.read_text(encoding="utf-8", errors="ignore")

    def parse_file(self, file_path: Path, module: bool = False) -> List[InlineScript]:
        """
        Split a file into the script units to analyze.

        A JavaScript file is a single unit; an HTML page yields one unit per
        inline script. ``.mjs`` files are treated as modules.

        Args:
            file_path: Path to a JavaScript or HTML file
            module: Module hint for JavaScript files

        Returns:
            List of script units (empty for unsupported file types)
        """
        suffix = file_path.suffix.lower()
        if suffix in HTML_SUFFIXES:
            scripts = self.extract_inline_scripts(self.read_file(file_path))
            logger.debug("%s: %d inline scripts", file_path, len(scripts))
            return scripts
        if suffix in JS_SUFFIXES:
            code = self.read_file(file_path)
            return [InlineScript(index=0, code=code, line=1, module=module or suffix == ".mjs")]
        return []


def source_excerpt(source: str, line: Optional[int], column: Optional[int],
                   context: int = 3, width: int = 160) -> str:
    """
    Build a short excerpt around a 1-based line.

    Long lines (typical for minified bundles) are cut to ``width`` characters
    centred on ``column``.

    Args:
        source: Full source text
        line: 1-based line number
        column: 0-based column on that line
        context: Number of lines to show, centred on ``line``
        width: Maximum characters per line

    Returns:
        Excerpt text, empty when the line is unknown
    """
    if not line:
        return ""
    lines = source.splitlines()
    if line > len(lines):
        return ""

    before = (context - 1) // 2
    start = max(1, line - before)
    end = min(len(lines), start + context - 1)
    column = column or 0

    out = []
    for number in range(start, end + 1):
        text = lines[number - 1]
        if len(text) > width:
            anchor = column if number == line else 0
            left = max(0, min(anchor - width // 2, len(text) - width))
            text = ("..." if left > 0 else "") + text[left:left + width] + (
                "..." if left + width < len(text) else "")
        out.append(f"{number}: {text}")
    return "\n".join(out)
