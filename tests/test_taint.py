"""
Tests for taint classification, sinks and message handler checks.
"""

import unittest

from sinktrace.analysis import build_context
from sinktrace.resolver import ValueResolver
from sinktrace.taint import DYNAMIC, LITERAL, TaintAnalyzer, TaintClassification, TaintKind, combine


def run(code):
    ctx = build_context(code, "test.js")
    analyzer = TaintAnalyzer(ctx, ValueResolver(ctx))
    analyzer.analyze()
    findings, patterns = analyzer.report()
    return findings, patterns, analyzer


def of_type(entries, entry_type):
    return [entry for entry in entries if entry["type"] == entry_type]


class TestClassification(unittest.TestCase):
    """Test cases for value source classification."""

    def test_combine(self):
        """Test that user control dominates."""
        user = TaintClassification(TaintKind.USER_CONTROLLED, "location.hash")
        self.assertIs(combine(LITERAL, DYNAMIC, user), user)
        self.assertIs(combine(LITERAL, DYNAMIC), DYNAMIC)
        self.assertIs(combine(), LITERAL)

    def test_to_dict(self):
        """Test the report form of a classification."""
        cls = TaintClassification(TaintKind.USER_CONTROLLED, "window.name", (3, 4))
        self.assertEqual(cls.to_dict(), {"kind": "user_controlled", "label": "window.name",
                                         "location": {"line": 3, "column": 4}})

    def test_literals_and_unknowns(self):
        """Test literal and dynamic classifications."""
        _, _, analyzer = run('var a = "x"; var b = a + "y"; var c = f();')
        inits = {d["id"]["name"]: d["init"] for d in analyzer.model.nodes if d.get("type") == "VariableDeclarator"}
        self.assertEqual(analyzer.trace_value_source(inits["a"]).kind, TaintKind.LITERAL)
        self.assertEqual(analyzer.trace_value_source(inits["b"]).kind, TaintKind.LITERAL)
        self.assertEqual(analyzer.trace_value_source(inits["c"]).kind, TaintKind.DYNAMIC)


class TestSinks(unittest.TestCase):
    """Test cases for reported findings."""

    def test_inner_html_from_hash(self):
        """Test the classic DOM XSS."""
        findings, _, _ = run("el.innerHTML = location.hash;")
        self.assertEqual(len(findings), 1)
        finding = findings[0]
        self.assertEqual(finding["type"], "xss")
        self.assertEqual(finding["sink"], "innerHTML")
        self.assertEqual(finding["taintSource"], "location.hash")
        self.assertEqual(finding["severity"], "high")
        self.assertFalse(finding["sanitized"])
        self.assertEqual(finding["location"], {"line": 1, "column": 0})
        self.assertIn("innerHTML", finding["excerpt"])

    def test_non_user_values_not_reported(self):
        """Test that literal and unknown values are not findings."""
        findings, _, _ = run('el.innerHTML = "<b>hi</b>"; el.innerHTML = data;')
        self.assertEqual(findings, [])

    def test_flow_through_variables_and_decoders(self):
        """Test taint through bindings and pass-through functions."""
        code = "var h = decodeURIComponent(location.hash.slice(1)); document.write(h);"
        findings, _, _ = run(code)
        self.assertEqual([(f["sink"], f["taintSource"]) for f in findings], [("write", "location.hash")])

    def test_write_needs_document_receiver(self):
        """Test that write() on other objects is ignored."""
        findings, _, _ = run("stream.write(location.hash);")
        self.assertEqual(findings, [])

    def test_sanitizer_downgrades(self):
        """Test that a dominating sanitizer marks the finding sanitized."""
        code = ("function f() { var h = location.hash; h = encodeURIComponent(h);"
                " el.innerHTML = h; }")
        findings, _, _ = run(code)
        self.assertEqual(len(findings), 1)
        self.assertTrue(findings[0]["sanitized"])
        self.assertEqual(findings[0]["severity"], "low")

    def test_shadowed_sanitizer_ignored(self):
        """Test that a local function named like a sanitizer does not sanitize."""
        code = ("function f(el) { function encodeURIComponent(s) { return s; }"
                " var h = location.hash; h = encodeURIComponent(h); el.innerHTML = h; }")
        findings, _, _ = run(code)
        self.assertEqual([(f["type"], f["sanitized"], f["severity"]) for f in findings],
                         [("xss", False, "high")])

    def test_local_identity_sanitize_traced(self):
        """Test that a user-defined sanitize() is followed through its returns."""
        code = "function sanitize(s) { return s; } document.body.innerHTML = sanitize(location.hash);"
        findings, _, _ = run(code)
        self.assertEqual(len(findings), 1)
        self.assertEqual(findings[0]["taintSource"], "location.hash")
        self.assertEqual(findings[0]["severity"], "high")
        self.assertFalse(findings[0]["sanitized"])

    def test_library_sanitizer(self):
        """Test that a global sanitizer library counts."""
        code = "function f(el) { var h = location.hash; h = DOMPurify.sanitize(h); el.innerHTML = h; }"
        findings, _, _ = run(code)
        self.assertEqual([(f["sanitized"], f["severity"]) for f in findings], [(True, "low")])

    def test_sanitizer_on_other_access_path(self):
        """Test that sanitizing location.search does not cover location.hash."""
        code = "function f(el) { encodeURIComponent(location.search); el.innerHTML = location.hash; }"
        findings, _, _ = run(code)
        self.assertEqual([(f["sanitized"], f["severity"]) for f in findings], [(False, "high")])

    def test_sanitizer_on_other_binding(self):
        """Test that a same-named variable in another scope is a different value."""
        code = ("function f(el) { var h = location.hash;"
                " { let h = 'x'; h = encodeURIComponent(h); } el.innerHTML = h; }")
        findings, _, _ = run(code)
        self.assertEqual([f["sanitized"] for f in findings], [False])

    def test_code_sinks(self):
        """Test eval-like sinks and function callbacks."""
        code = ("setTimeout(function () {}, 10);"
                "setTimeout(location.hash.slice(1), 10);"
                "new Function(window.name);")
        findings, _, _ = run(code)
        self.assertEqual([(f["type"], f["sink"]) for f in findings],
                         [("code_injection", "setTimeout"), ("code_injection", "new Function")])
        self.assertEqual(findings[1]["taintSource"], "window.name")

    def test_open_redirect(self):
        """Test location assignments and redirect methods."""
        code = ('location.href = new URLSearchParams(location.search).get("next");'
                "window.location = document.referrer;"
                "location.replace(localStorage.getItem('to'));")
        findings, _, _ = run(code)
        self.assertEqual([(f["sink"], f["taintSource"]) for f in of_type(findings, "open_redirect")], [
            ("location.href", "location.search"),
            ("window.location", "document.referrer"),
            ("location.replace", "localStorage.getItem"),
        ])

    def test_set_attribute(self):
        """Test dangerous attribute writes."""
        code = 'a.setAttribute("onclick", location.hash); a.setAttribute("href", location.hash);'
        findings, _, _ = run(code)
        self.assertEqual([(f["sink"], f["severity"]) for f in findings],
                         [("setAttribute(onclick)", "high"), ("setAttribute(href)", "medium")])

    def test_computed_assignment_with_tainted_key(self):
        """Test prototype pollution through user-controlled keys."""
        findings, _, _ = run("var k = location.hash.slice(1); obj[k] = 1; obj['fixed'] = 2;")
        pollution = of_type(findings, "prototype_pollution")
        self.assertEqual(len(pollution), 1)
        self.assertEqual(pollution[0]["sink"], "computed assignment")
        self.assertEqual(pollution[0]["severity"], "medium")

    def test_caller_arguments(self):
        """Test taint arriving through a function parameter."""
        findings, _, _ = run("function show(v) { el.innerHTML = v; } show(location.hash);")
        self.assertEqual([f["taintSource"] for f in findings], ["location.hash"])

    def test_iteration_callback_element(self):
        """Test that forEach callbacks inherit the receiver's taint."""
        code = 'location.hash.split(",").forEach(function (x, i) { document.write(x); document.write(i); });'
        findings, _, _ = run(code)
        self.assertEqual(len(findings), 1)
        self.assertEqual(findings[0]["taintSource"], "location.hash")


class TestMessageHandlers(unittest.TestCase):
    """Test cases for message event handlers."""

    def test_strong_origin_check(self):
        """Test an exact origin comparison guarding eval."""
        code = ('addEventListener("message", function (e) {'
                ' if (e.origin === "https://x.com") eval(e.data); });')
        findings, patterns, analyzer = run(code)
        self.assertEqual(of_type(patterns, "missing_origin_check"), [])
        self.assertEqual(analyzer.handlers[0].origin_check, "strong")
        self.assertEqual(len(findings), 1)
        self.assertEqual(findings[0]["type"], "code_injection")
        self.assertEqual(findings[0]["sink"], "eval")
        self.assertEqual(findings[0]["taintSource"], "event.data")
        self.assertEqual(findings[0]["severity"], "high")
        self.assertFalse(findings[0]["sanitized"])

    def test_missing_origin_check_upgraded(self):
        """Test that a missing check is high when the handler reaches a high sink."""
        code = 'window.addEventListener("message", function (e) { document.body.innerHTML = e.data; });'
        findings, patterns, _ = run(code)
        missing = of_type(patterns, "missing_origin_check")
        self.assertEqual(len(missing), 1)
        self.assertEqual(missing[0]["severity"], "high")
        self.assertEqual(findings[0]["taintSource"], "event.data")

    def test_missing_origin_check_without_sink(self):
        """Test that a handler without sinks keeps medium severity."""
        _, patterns, _ = run('window.onmessage = function (e) { console.log(e.data); };')
        self.assertEqual([(p["type"], p["severity"]) for p in patterns], [("missing_origin_check", "medium")])

    def test_weak_origin_check(self):
        """Test substring origin checks."""
        code = ('addEventListener("message", function (e) {'
                ' if (e.origin.indexOf("x.com") > -1) { go(e.data); } });')
        _, patterns, _ = run(code)
        self.assertEqual([(p["type"], p["severity"]) for p in patterns], [("weak_origin_check", "low")])

    def test_allow_list_is_strong(self):
        """Test membership in a literal allow-list."""
        code = ('var ALLOWED = ["https://a.example"];'
                'addEventListener("message", function (e) { if (!ALLOWED.includes(e.origin)) return; });')
        _, patterns, analyzer = run(code)
        self.assertEqual(patterns, [])
        self.assertEqual(analyzer.handlers[0].origin_check, "strong")

    def test_destructured_event(self):
        """Test handlers destructuring origin and data."""
        code = ('addEventListener("message", function ({origin, data}) {'
                ' if (origin !== "https://a.example") return; eval(data); });')
        findings, patterns, _ = run(code)
        self.assertEqual(patterns, [])
        self.assertEqual([f["taintSource"] for f in findings], ["event.data"])

    def test_aliased_origin(self):
        """Test origin copied into a local before comparison."""
        code = ('addEventListener("message", function (e) { const o = e.origin;'
                ' if (o == "https://a.example") {} });')
        _, patterns, _ = run(code)
        self.assertEqual(patterns, [])


class TestPatterns(unittest.TestCase):
    """Test cases for dangerous patterns."""

    def test_wildcard_post_message(self):
        """Test postMessage to any origin."""
        _, patterns, _ = run('parent.postMessage(msg, "*"); parent.postMessage(msg, "https://a");')
        self.assertEqual([p["type"] for p in patterns], ["wildcard_postmessage"])
        self.assertIsNone(patterns[0]["taintSource"])

    def test_trusted_types_passthrough(self):
        """Test policies that return their input unchanged."""
        code = ('trustedTypes.createPolicy("p", {createHTML: s => s});'
                'trustedTypes.createPolicy("q", {createHTML: s => clean(s)});')
        _, patterns, _ = run(code)
        self.assertEqual([p["sink"] for p in patterns], ["createPolicy.createHTML"])


if __name__ == "__main__":
    unittest.main()
