"""
Tests for the parser module.
"""

import unittest
from pathlib import Path
import tempfile

from sinktrace.parser import JavaScriptParser, ParseError, source_excerpt


class TestJavaScriptParser(unittest.TestCase):
    """Test cases for the JavaScript parser."""

    def setUp(self):
        """Set up test fixtures."""
        self.parser = JavaScriptParser()

    def test_parser_initialization(self):
        """Test parser can be initialized."""
        parser = JavaScriptParser(verbose=True)
        self.assertTrue(parser.verbose)

    def test_parse_script(self):
        """Test parsing plain script code."""
        parsed = self.parser.parse_source("var x = 1;", "test.js")
        self.assertEqual(parsed.source_type, "script")
        self.assertEqual(parsed.ast["type"], "Program")

    def test_nodes_carry_locations(self):
        """Test that nodes carry loc and range information."""
        parsed = self.parser.parse_source("var x = 1;", "test.js")
        declaration = parsed.ast["body"][0]
        self.assertIn("range", declaration)
        self.assertEqual(declaration["loc"]["start"]["line"], 1)

    def test_module_retry(self):
        """Test that module syntax is accepted when script mode fails."""
        parsed = self.parser.parse_source('import x from "y";\nfetch(x);', "test.js")
        self.assertEqual(parsed.source_type, "module")

    def test_module_retry_after_recovered_errors(self):
        """Test that a script parse with recovered errors falls through to module mode."""
        code = 'import x from "y";\nexport const u = "/m";\nfetch(u);'
        parsed = self.parser.parse_source(code, "test.js")
        self.assertEqual(parsed.source_type, "module")
        self.assertEqual(parsed.errors, [])
        self.assertEqual(parsed.ast["sourceType"], "module")

    def test_module_hint_first(self):
        """Test that the module hint is tried first."""
        parsed = self.parser.parse_source("var x = 1;", "test.js", module=True)
        self.assertEqual(parsed.source_type, "module")

    def test_parse_error(self):
        """Test that unparseable code raises ParseError."""
        with self.assertRaises(ParseError):
            self.parser.parse_source("}}} {{{ var", "broken.js")

    def test_read_file_not_found(self):
        """Test reading a non-existent file raises error."""
        with self.assertRaises(FileNotFoundError):
            self.parser.read_file(Path("/nonexistent/file.js"))


class TestInlineScripts(unittest.TestCase):
    """Test cases for HTML inline script extraction."""

    HTML = """<html><head>
<script src="/static/app.js"></script>
<script type="application/json">{"a": 1}</script>
<script>fetch("/api/inline");</script>
</head><body>
<script type="module">import x from "./x.js";</script>
<script>   </script>
</body></html>"""

    def setUp(self):
        """Set up test fixtures."""
        self.parser = JavaScriptParser()

    def test_extract_inline_scripts(self):
        """Test that only inline JavaScript is extracted."""
        scripts = self.parser.extract_inline_scripts(self.HTML)
        self.assertEqual(len(scripts), 2)
        self.assertIn('fetch("/api/inline")', scripts[0].code)
        self.assertFalse(scripts[0].module)
        self.assertTrue(scripts[1].module)
        self.assertEqual([s.index for s in scripts], [0, 1])

    def test_parse_file_html(self):
        """Test that HTML files yield one unit per inline script."""
        with tempfile.TemporaryDirectory() as temp_dir:
            page = Path(temp_dir) / "index.html"
            page.write_text(self.HTML)
            scripts = self.parser.parse_file(page)
        self.assertEqual(len(scripts), 2)

    def test_parse_file_javascript(self):
        """Test that JavaScript files are a single unit."""
        with tempfile.TemporaryDirectory() as temp_dir:
            bundle = Path(temp_dir) / "bundle.mjs"
            bundle.write_text("export const x = 1;")
            scripts = self.parser.parse_file(bundle)
        self.assertEqual(len(scripts), 1)
        self.assertTrue(scripts[0].module)
        self.assertEqual(scripts[0].code, "export const x = 1;")

    def test_parse_file_unsupported(self):
        """Test that unsupported files yield nothing."""
        with tempfile.TemporaryDirectory() as temp_dir:
            notes = Path(temp_dir) / "notes.txt"
            notes.write_text("fetch('/nope')")
            self.assertEqual(self.parser.parse_file(notes), [])


class TestSourceExcerpt(unittest.TestCase):
    """Test cases for source excerpts."""

    def test_context_lines(self):
        """Test that the excerpt is centred on the line."""
        excerpt = source_excerpt("a\nb\nc\nd", 2, 0)
        self.assertEqual(excerpt, "1: a\n2: b\n3: c")

    def test_long_line_truncated(self):
        """Test that long lines are cut around the column."""
        line = "x" * 45 + "TARGET" + "y" * 49
        excerpt = source_excerpt(line, 1, 45, context=1, width=10)
        self.assertEqual(excerpt, "1: ..." + line[40:50] + "...")

    def test_unknown_line(self):
        """Test that unknown lines give an empty excerpt."""
        self.assertEqual(source_excerpt("a", None, None), "")
        self.assertEqual(source_excerpt("a", 5, 0), "")


if __name__ == "__main__":
    unittest.main()
