"""
Tests for the value resolver, global index and type tracker.
"""

import unittest

from sinktrace.analysis import build_context
from sinktrace.config import Config
from sinktrace.context import ResolutionKind
from sinktrace.resolver import ValueResolver


def init_of(ctx, name):
    for node in ctx.model.nodes:
        if node.get("type") == "VariableDeclarator" and (node.get("id") or {}).get("name") == name:
            return node.get("init")
    raise AssertionError(f"no declaration of {name}")


class TestValueResolver(unittest.TestCase):
    """Test cases for static value resolution."""

    def resolve(self, code, name, **settings):
        ctx = build_context(code, "test.js", settings=Config(**settings) if settings else None)
        resolver = ValueResolver(ctx)
        return resolver.resolve(init_of(ctx, name)), ctx

    def test_literals(self):
        """Test string and number literals."""
        self.assertEqual(self.resolve('var u = "/api";', "u")[0], ["/api"])
        self.assertEqual(self.resolve("var n = 42;", "n")[0], ["42"])

    def test_concatenation(self):
        """Test concatenation through constant bindings."""
        values, _ = self.resolve('var base = "/api"; var u = base + "/users/" + 7;', "u")
        self.assertEqual(values, ["/api/users/7"])

    def test_concatenation_zips_candidates(self):
        """Test that concatenation combines candidates positionally."""
        code = 'var p = c ? "a" : "b"; var u = "/" + p + "/z";'
        self.assertEqual(self.resolve(code, "u")[0], ["/a/z", "/b/z"])

    def test_zip_broadcasts_shorter_column(self):
        """Test that a single-valued column is repeated."""
        code = 'var p = c ? "a" : "b"; var q = c ? "x" : "y"; var u = p + "-" + q;'
        self.assertEqual(self.resolve(code, "u")[0], ["a-x", "b-y"])

    def test_branch_union(self):
        """Test that conditional and logical branches are unioned."""
        values, _ = self.resolve('var m = c ? "GET" : "POST"; var n = x || "PUT";', "m")
        self.assertEqual(values, ["GET", "POST"])
        values, _ = self.resolve('var n = x || "PUT";', "n")
        self.assertEqual(values, ["PUT"])

    def test_union_deduplicates(self):
        """Test that equal branch values appear once."""
        values, _ = self.resolve('var m = c ? "GET" : d ? "GET" : "POST";', "m")
        self.assertEqual(values, ["GET", "POST"])

    def test_template_literal(self):
        """Test template literals with resolvable expressions."""
        values, _ = self.resolve('var id = "7"; var u = `/u/${id}/x`;', "u")
        self.assertEqual(values, ["/u/7/x"])

    def test_unresolved_concatenation_is_empty(self):
        """Test that an unknown term makes the whole concatenation unknown."""
        self.assertEqual(self.resolve("var u = '/u/' + unknown;", "u")[0], [])

    def test_object_property(self):
        """Test reading properties of object literals."""
        values, _ = self.resolve('var cfg = {base: "/v1"}; var u = cfg.base + "/x";', "u")
        self.assertEqual(values, ["/v1/x"])

    def test_computed_property(self):
        """Test computed member access with a resolvable key."""
        code = 'var routes = {a: "/a", b: "/b"}; var k = "b"; var u = routes[k];'
        self.assertEqual(self.resolve(code, "u")[0], ["/b"])

    def test_array_join(self):
        """Test Array.prototype.join over literal elements."""
        self.assertEqual(self.resolve('var u = ["api", "v2"].join("/");', "u")[0], ["api/v2"])

    def test_string_methods(self):
        """Test simple string transforms."""
        self.assertEqual(self.resolve('var m = "post".toUpperCase();', "m")[0], ["POST"])
        self.assertEqual(self.resolve('var u = "/a/b".replace("a", "z");', "u")[0], ["/z/b"])

    def test_function_return(self):
        """Test values returned by a called function with bound arguments."""
        code = 'function path(x) { return "/api/" + x; } var u = path("k");'
        self.assertEqual(self.resolve(code, "u")[0], ["/api/k"])

    def test_parameter_values_from_callers(self):
        """Test parameter values gathered from every call site."""
        code = 'function f(p) { var u = p; } f("a"); f("b");'
        self.assertEqual(self.resolve(code, "u")[0], ["a", "b"])

    def test_reassignments_are_unioned(self):
        """Test that a reassigned variable yields every assigned value."""
        code = 'var u = "/a"; if (c) { u = "/b"; } var v = u;'
        self.assertEqual(self.resolve(code, "v")[0], ["/a", "/b"])

    def test_global_property(self):
        """Test names defined through the global object."""
        code = 'window.base = "/v2"; var u = base + "/x";'
        self.assertEqual(self.resolve(code, "u")[0], ["/v2/x"])

    def test_cycle_terminates(self):
        """Test that mutually dependent bindings resolve to nothing."""
        values, ctx = self.resolve("var a = b; var b = a;", "a")
        self.assertEqual(values, [])
        self.assertGreater(ctx.rejections, 0)

    def test_value_cap(self):
        """Test that value sets are capped."""
        code = 'var m = a ? "1" : b ? "2" : c ? "3" : "4";'
        values, _ = self.resolve(code, "m", max_values=2)
        self.assertEqual(values, ["1", "2"])

    def test_idempotent(self):
        """Test that resolving twice gives the same answer."""
        ctx = build_context('var p = c ? "a" : "b"; var u = "/" + p;', "test.js")
        resolver = ValueResolver(ctx)
        first = resolver.resolve(init_of(ctx, "u"))
        second = resolver.resolve(init_of(ctx, "u"))
        self.assertEqual(first, second)
        self.assertEqual(ctx.visited, set())

    def test_functions(self):
        """Test resolving callees to function nodes."""
        ctx = build_context("var api = {get: function () {}}; var g = api.get;", "test.js")
        resolver = ValueResolver(ctx)
        functions = resolver.resolve_functions(init_of(ctx, "g"))
        self.assertEqual(len(functions), 1)
        self.assertEqual(functions[0]["type"], "FunctionExpression")


class TestAnalysisContext(unittest.TestCase):
    """Test cases for the per-file context."""

    def test_enter_rejects_reentry(self):
        """Test that the cycle guard rejects a repeated question."""
        ctx = build_context("var a = 1;", "test.js")
        node = ctx.model.root
        key = ctx.enter(ResolutionKind.VALUES, node)
        self.assertIsNotNone(key)
        self.assertIsNone(ctx.enter(ResolutionKind.VALUES, node))
        self.assertIsNotNone(ctx.enter(ResolutionKind.OBJECT, node))
        ctx.leave(key)
        self.assertEqual(ctx.rejections, 1)

    def test_soft_errors_capped(self):
        """Test that soft errors stop accumulating at the cap."""
        ctx = build_context("var a = 1;", "test.js", settings=Config(max_errors=2))
        for i in range(4):
            ctx.record_error(f"label{i}", RecursionError("too deep"))
        self.assertEqual(len(ctx.soft_errors()), 2)
        self.assertEqual(ctx.dropped_errors, 2)
        self.assertEqual(ctx.soft_errors()[0]["label"], "label0")

    def test_bind_arguments(self):
        """Test binding parameters to call arguments."""
        ctx = build_context('function f(a, b) {} f("x");', "test.js")
        func = ctx.model.functions[0]
        call = ctx.model.calls[0]
        a, b = ctx.model.params_of(func)
        with ctx.bind_arguments(func, call):
            self.assertTrue(ctx.is_bound(func))
            index, argument, key = ctx.bound_argument(a)
            self.assertEqual(argument["value"], "x")
            self.assertIsNone(ctx.bound_argument(b))
        self.assertFalse(ctx.is_bound(func))


class TestGlobalBindingIndex(unittest.TestCase):
    """Test cases for the global-binding index."""

    def test_property_and_implicit_entries(self):
        """Test global property assignments and implicit globals."""
        ctx = build_context("window.api = 1; leaked = 2; var top1 = 3;", "test.js")
        index = ctx.index
        self.assertEqual(index.lookup("api")[0].via, "property")
        self.assertEqual(index.lookup("leaked")[0].via, "implicit")
        self.assertEqual(index.lookup("top1")[0].via, "declaration")

    def test_global_object_aliases(self):
        """Test locals and IIFE parameters holding the global object."""
        code = "var g = window; (function (w) { w.x = 1; })(this); g.y = 2;"
        index = build_context(code, "test.js").index
        self.assertIn("x", index.entries)
        self.assertIn("y", index.entries)

    def test_exports(self):
        """Test module exports."""
        ctx = build_context("export const url = '/a'; export function f() {}", "test.js", module=True)
        self.assertIn("url", ctx.index.exports)
        self.assertIn("f", ctx.index.exports)

    def test_is_global_name(self):
        """Test matching unbound names and global members."""
        ctx = build_context("location.href; window.location; var location2 = 1;", "test.js")
        first, second = (s["expression"] for s in ctx.model.root["body"][:2])
        self.assertTrue(ctx.index.is_global_name(first["object"], "location"))
        self.assertTrue(ctx.index.is_global_name(second, "location"))


class TestTypeTracker(unittest.TestCase):
    """Test cases for coarse variable types."""

    def test_constructor_tags(self):
        """Test tags from constructor calls."""
        ctx = build_context("var x = new XMLHttpRequest(); var l = [1, 2]; use(x, l);", "test.js")
        call = ctx.model.calls[-1]
        x, l = call["arguments"]
        self.assertEqual(ctx.types.type_of(x), "XMLHttpRequest")
        self.assertTrue(ctx.types.is_non_iterable(x))
        self.assertFalse(ctx.types.is_non_iterable(l))

    def test_conflicting_tags_forgotten(self):
        """Test that variables given two types lose their tag."""
        ctx = build_context("var x = new Image(); x = []; use(x);", "test.js")
        arg = ctx.model.calls[-1]["arguments"][0]
        self.assertIsNone(ctx.types.type_of(arg))


if __name__ == "__main__":
    unittest.main()
