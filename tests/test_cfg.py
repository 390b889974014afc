"""
Tests for the control flow graph and sanitizer dominance.
"""

import unittest

from sinktrace.cfg import ControlFlowGraph, is_sanitized
from sinktrace.parser import JavaScriptParser
from sinktrace.scope import ScopeModel


def build(code):
    """Parse the code and build the graph of its first function."""
    parsed = JavaScriptParser().parse_source(code, "test.js")
    model = ScopeModel(parsed.ast, code)
    func = model.functions[0]
    return ControlFlowGraph(func["body"], model.parents), model


def check(code):
    """Build the graph of the first function and answer the dominance question."""
    graph, model = build(code)
    calls = {}
    for call in model.calls:
        calls.setdefault(call["callee"].get("name"), []).append(call)
    return is_sanitized(graph, calls["sink"][0], calls.get("clean", [])), graph


class TestControlFlowGraph(unittest.TestCase):
    """Test cases for graph construction."""

    def test_straight_line(self):
        """Test one block per statement between entry and exit."""
        graph, _ = build("function f() { a(); b(); }")
        # entry, exit and two statement blocks
        self.assertEqual(len(graph.blocks), 4)
        self.assertTrue(graph.reachable_avoiding(graph.exit.id, set()))

    def test_return_ends_path(self):
        """Test that code after a return is unreachable."""
        sanitized, graph = check("function f() { return 1; sink(); }")
        self.assertEqual(len(graph.blocks), 3)
        self.assertFalse(sanitized)


class TestSanitizerDominance(unittest.TestCase):
    """Test cases for is_sanitized."""

    def test_sanitizer_before_sink(self):
        """Test a sanitizer on the only path."""
        sanitized, _ = check("function f(x) { x = clean(x); sink(x); }")
        self.assertTrue(sanitized)

    def test_sanitizer_after_sink(self):
        """Test a sanitizer that runs too late."""
        sanitized, _ = check("function f(x) { sink(x); x = clean(x); }")
        self.assertFalse(sanitized)

    def test_sanitizer_on_one_branch(self):
        """Test a sanitizer that a branch can bypass."""
        sanitized, _ = check("function f(x) { if (c) { x = clean(x); } sink(x); }")
        self.assertFalse(sanitized)

    def test_sanitizer_on_both_branches(self):
        """Test sanitizers covering every branch."""
        code = "function f(x) { if (c) { x = clean(x); } else { x = clean(x, 1); } sink(x); }"
        sanitized, _ = check(code)
        self.assertTrue(sanitized)

    def test_bypassing_branch_returns(self):
        """Test that a branch which returns cannot bypass the sanitizer."""
        code = "function f(x) { if (c) { return; } else { x = clean(x); } sink(x); }"
        sanitized, _ = check(code)
        self.assertTrue(sanitized)

    def test_sanitizer_in_same_statement(self):
        """Test a sanitizer wrapping the sink argument."""
        sanitized, _ = check("function f(x) { sink(clean(x)); }")
        self.assertTrue(sanitized)

    def test_no_sanitizers(self):
        """Test that no sanitizer means not sanitized."""
        sanitized, _ = check("function f(x) { sink(x); }")
        self.assertFalse(sanitized)

    def test_loop_is_opaque(self):
        """Test that a loop statement is a single block."""
        sanitized, _ = check("function f(xs) { for (var i = 0; i < 3; i++) { clean(xs); } sink(xs); }")
        self.assertTrue(sanitized)


if __name__ == "__main__":
    unittest.main()
