"""
Tests for the analysis module.
"""

import unittest
from sinktrace.analysis import BundleAnalyzer, analyze_source, empty_record
from sinktrace.config import Config


RECORD_KEYS = {
    "sourceUrl", "protoEnums", "protoFieldMaps", "fetchCallSites", "valueConstraints",
    "securitySinks", "dangerousPatterns", "sourceMapUrl",
}


class TestBundleAnalyzer(unittest.TestCase):
    """Test cases for the bundle analyzer."""

    def setUp(self):
        """Set up test fixtures."""
        self.analyzer = BundleAnalyzer()

    def test_analyzer_initialization(self):
        """Test analyzer can be initialized."""
        analyzer = BundleAnalyzer(settings=Config(max_values=5), verbose=True)
        self.assertTrue(analyzer.verbose)
        self.assertEqual(analyzer.settings.max_values, 5)
        self.assertIsNone(analyzer.last_context)

    def test_record_shape(self):
        """Test that every record carries the expected keys."""
        record = self.analyzer.analyze("var a = 1;", "a.js")
        self.assertEqual(set(record), RECORD_KEYS)
        self.assertEqual(record["sourceUrl"], "a.js")
        self.assertIsNone(record["sourceMapUrl"])

    def test_parse_error(self):
        """Test that unparseable input yields an empty record with parseError."""
        record = self.analyzer.analyze("function (", "broken.js")
        self.assertIn("parseError", record)
        self.assertEqual(record["fetchCallSites"], [])
        self.assertEqual(record["securitySinks"], [])

    def test_wrapper_with_body(self):
        """Test a wrapper whose URL and body come from its caller."""
        code = ('function save(id, name) {'
                ' fetch("/api/users/" + id, {method: "POST", body: JSON.stringify({name: name})}); }'
                ' var userId = "42"; save(userId, "Alice");')
        record = self.analyzer.analyze(code, "save.js")
        sites = record["fetchCallSites"]
        self.assertEqual(len(sites), 1)
        self.assertEqual(sites[0]["url"], "/api/users/42")
        self.assertEqual(sites[0]["method"], "POST")
        name = [p for p in sites[0]["params"] if p["name"] == "name"][0]
        self.assertEqual(name["location"], "body")
        self.assertEqual(name["values"], ["Alice"])

    def test_global_wrapper(self):
        """Test a wrapper published on the global object."""
        record = self.analyzer.analyze('window.doFetch = function (u) { fetch(u); }; doFetch("/ping");')
        self.assertEqual([s["url"] for s in record["fetchCallSites"]], ["/ping"])

    def test_guarded_message_handler(self):
        """Test a message handler with an exact origin check."""
        code = ('addEventListener("message", function (e) {'
                ' if (e.origin === "https://x.com") eval(e.data); });')
        record = self.analyzer.analyze(code)
        types = [p["type"] for p in record["dangerousPatterns"]]
        self.assertNotIn("missing_origin_check", types)
        self.assertEqual(len(record["securitySinks"]), 1)
        sink = record["securitySinks"][0]
        self.assertEqual(sink["type"], "code_injection")
        self.assertEqual(sink["sink"], "eval")
        self.assertEqual(sink["taintSource"], "event.data")
        self.assertEqual(sink["severity"], "high")
        self.assertFalse(sink["sanitized"])

    def test_duplicate_call_sites_merged(self):
        """Test that repeated requests to one endpoint are merged."""
        code = 'fetch("/a", {headers: {"X-A": "1"}}); fetch("/a", {headers: {"X-B": "2"}}); fetch("/b");'
        sites = self.analyzer.analyze(code)["fetchCallSites"]
        self.assertEqual([s["url"] for s in sites], ["/a", "/b"])
        self.assertEqual(sites[0]["headers"], {"X-A": "1", "X-B": "2"})

    def test_constraints_and_proto_patterns(self):
        """Test that constraints and protobuf shapes are reported."""
        code = ("var Status = {UNKNOWN: 0, ACTIVE: 1};"
                "M.prototype.getId = function () { return p.get(this, 1); };"
                "switch (mode) { case 'list': break; case 'grid': break; }")
        record = self.analyzer.analyze(code)
        self.assertEqual(record["protoEnums"], [{"values": {"UNKNOWN": 0, "ACTIVE": 1}}])
        self.assertEqual(record["protoFieldMaps"][0]["fieldNumber"], 1)
        self.assertEqual(record["valueConstraints"],
                         [{"variable": "mode", "values": ["list", "grid"], "sources": ["switch"]}])

    def test_source_map_url(self):
        """Test the trailing sourceMappingURL comment."""
        record = self.analyzer.analyze("var a = 1;\n//# sourceMappingURL=main.js.map")
        self.assertEqual(record["sourceMapUrl"], "main.js.map")

    def test_module_source(self):
        """Test module syntax."""
        record = self.analyzer.analyze('import x from "./x.js"; export const u = "/m"; fetch(u);', module=True)
        self.assertNotIn("parseError", record)
        self.assertEqual(record["fetchCallSites"][0]["url"], "/m")

    def test_fresh_context_per_file(self):
        """Test that state does not leak between analyses."""
        self.analyzer.analyze('var base = "/one"; fetch(base);', "one.js")
        first = self.analyzer.last_context
        record = self.analyzer.analyze("fetch(base);", "two.js")
        self.assertIsNot(self.analyzer.last_context, first)
        self.assertEqual(record["fetchCallSites"][0]["url"], "${base}")

    def test_analyze_source(self):
        """Test the convenience wrapper."""
        record = analyze_source('fetch("/x");', "x.js")
        self.assertEqual(record["fetchCallSites"][0]["url"], "/x")

    def test_empty_record(self):
        """Test the empty record helper."""
        record = empty_record("e.js")
        self.assertEqual(set(record), RECORD_KEYS)
        self.assertEqual(record["protoEnums"], [])


if __name__ == '__main__':
    unittest.main()
