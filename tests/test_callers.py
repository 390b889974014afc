"""
Tests for caller-argument tracing.
"""

import unittest

from sinktrace.analysis import build_context
from sinktrace.callers import BindingRoute
from sinktrace.config import Config
from sinktrace.resolver import ValueResolver


def tracer_for(code, **settings):
    ctx = build_context(code, "test.js", settings=Config(**settings) if settings else None)
    resolver = ValueResolver(ctx)
    return resolver.callers, ctx


def function_with_param(ctx, name):
    """The function declaring a parameter called ``name``, with that binding."""
    for func in ctx.model.functions:
        for binding in ctx.model.params_of(func):
            if binding.name == name:
                return func, binding
    raise AssertionError(f"no parameter {name}")


def argument_texts(ctx, sites):
    return [[ctx.model.text(arg) for arg in site.call.get("arguments") or []] for site in sites]


class TestBindingRoutes(unittest.TestCase):
    """Test cases for classifying function definitions."""

    def route_of(self, code, param="u"):
        tracer, ctx = tracer_for(code)
        func, _ = function_with_param(ctx, param)
        return tracer.binding_route(func)

    def test_declaration(self):
        """Test plain declarations."""
        self.assertEqual(self.route_of("function f(u) {}"), BindingRoute.DIRECT_NAME)

    def test_object_property(self):
        """Test functions defined in object literals."""
        self.assertEqual(self.route_of("var api = {save: function (u) {}};"), BindingRoute.OBJECT_PROPERTY)

    def test_member_assignments(self):
        """Test functions assigned to members, prototypes and globals."""
        self.assertEqual(self.route_of("api.save = function (u) {};"), BindingRoute.ASSIGNED_MEMBER)
        self.assertEqual(self.route_of("C.prototype.go = function (u) {};"), BindingRoute.PROTOTYPE_METHOD)
        self.assertEqual(self.route_of("window.go = function (u) {};"), BindingRoute.GLOBAL_ALIAS)
        self.assertEqual(self.route_of("api[k] = function (u) {};"), BindingRoute.COMPUTED_MEMBER)

    def test_class_method(self):
        """Test methods of classes."""
        self.assertEqual(self.route_of("class C { go(u) {} }"), BindingRoute.CLASS_METHOD)

    def test_callback_and_factory(self):
        """Test functions passed as arguments or returned."""
        self.assertEqual(self.route_of("run(function (u) {});"), BindingRoute.CALLBACK_ARGUMENT)
        self.assertEqual(self.route_of("function make() { return function (u) {}; }"),
                         BindingRoute.RETURNED_FROM_FACTORY)


class TestCallSites(unittest.TestCase):
    """Test cases for call site discovery."""

    def sites(self, code, param="u", **settings):
        tracer, ctx = tracer_for(code, **settings)
        func, _ = function_with_param(ctx, param)
        return tracer.call_sites(func), ctx

    def test_direct_calls(self):
        """Test calls through the declared name."""
        sites, ctx = self.sites('function f(u) {} f("/a"); f("/b");')
        self.assertEqual(argument_texts(ctx, sites), [['"/a"'], ['"/b"']])
        self.assertTrue(all(site.offset == 0 for site in sites))

    def test_call_method_shifts_arguments(self):
        """Test that fn.call(thisArg, ...) offsets arguments by one."""
        sites, _ = self.sites('function f(u) {} f.call(null, "/a");')
        self.assertEqual(len(sites), 1)
        self.assertEqual(sites[0].offset, 1)

    def test_object_property_calls(self):
        """Test calls through an object literal member."""
        sites, _ = self.sites('var api = {save: function (u) {}}; api.save("/a");')
        self.assertEqual(len(sites), 1)
        self.assertEqual(sites[0].route, BindingRoute.OBJECT_PROPERTY)

    def test_class_instance_calls(self):
        """Test calls on instances of a class."""
        sites, _ = self.sites('class C { go(u) {} } var c = new C(); c.go("/x");')
        self.assertEqual(len(sites), 1)
        self.assertEqual(sites[0].route, BindingRoute.CLASS_METHOD)

    def test_callback_parameter_calls(self):
        """Test calls of a callback through the receiving parameter."""
        sites, ctx = self.sites('function run(cb) { cb("/x"); } run(function (u) {});')
        self.assertEqual(argument_texts(ctx, sites), [['"/x"']])
        self.assertEqual(sites[0].route, BindingRoute.CALLBACK_ARGUMENT)

    def test_factory_result_calls(self):
        """Test calls of a function returned by a factory."""
        sites, ctx = self.sites('function make() { return function (u) {}; } var h = make(); h("/z");')
        self.assertEqual(argument_texts(ctx, sites), [['"/z"']])
        self.assertEqual(sites[0].route, BindingRoute.RETURNED_FROM_FACTORY)

    def test_global_alias_calls(self):
        """Test calls of functions stored on the global object."""
        sites, ctx = self.sites('window.doFetch = function (u) {}; doFetch("/ping");')
        self.assertEqual(argument_texts(ctx, sites), [['"/ping"']])
        self.assertEqual(sites[0].route, BindingRoute.GLOBAL_ALIAS)

    def test_stored_callbacks(self):
        """Test callbacks stored in a queue and invoked later."""
        code = ("var q = []; function add(f) { q.push(f); }"
                "function flush() { q.forEach(function (g) { g('/later'); }); }"
                "add(function (u) {});")
        sites, ctx = self.sites(code)
        self.assertEqual(argument_texts(ctx, sites), [["'/later'"]])

    def test_caller_cap(self):
        """Test that call sites stop at the configured maximum."""
        sites, _ = self.sites('function f(u) {} f(1); f(2); f(3);', max_callers=2)
        self.assertEqual(len(sites), 2)


class TestParameterValues(unittest.TestCase):
    """Test cases for argument paths and caller values."""

    def test_values_union_over_callers(self):
        """Test that every caller contributes values."""
        tracer, ctx = tracer_for('function f(u) {} f("/a"); f("/b"); f("/a");')
        _, binding = function_with_param(ctx, "u")
        self.assertEqual(tracer.values_for_parameter(binding), ["/a", "/b"])

    def test_property_of_argument(self):
        """Test reading one property of the caller's argument."""
        tracer, ctx = tracer_for('function f(opts) {} f({url: "/a", method: "GET"});')
        _, binding = function_with_param(ctx, "opts")
        self.assertEqual(tracer.values_for_parameter(binding, "url"), ["/a"])

    def test_destructured_parameter(self):
        """Test destructured parameters read their key."""
        tracer, ctx = tracer_for('function f({url}) {} f({url: "/d"});')
        _, binding = function_with_param(ctx, "url")
        self.assertEqual(tracer.values_for_parameter(binding), ["/d"])

    def test_overloaded_call(self):
        """Test callers that pass fewer arguments than the parameter position."""
        tracer, ctx = tracer_for('function g(a, opts) {} g({url: "/o"});')
        _, binding = function_with_param(ctx, "opts")
        paths = tracer.argument_paths(binding, "url")
        self.assertTrue(all(path.overloaded for path in paths))
        self.assertEqual(tracer.values_for_parameter(binding, "url"), ["/o"])

    def test_spread_arguments_skipped(self):
        """Test that spread arguments hide the parameter position."""
        tracer, ctx = tracer_for("function f(u) {} f(...xs);")
        _, binding = function_with_param(ctx, "u")
        self.assertEqual(tracer.argument_paths(binding), [])

    def test_rest_parameter_has_no_paths(self):
        """Test that rest parameters are not traced."""
        tracer, ctx = tracer_for("function f(...u) {} f(1, 2);")
        _, binding = function_with_param(ctx, "u")
        self.assertEqual(tracer.argument_paths(binding), [])


if __name__ == "__main__":
    unittest.main()
