"""
Tests for network sink extraction.
"""

import unittest

from sinktrace.analysis import build_context
from sinktrace.network import NetworkSinkExtractor, function_params, merge_call_sites
from sinktrace.resolver import ValueResolver


def extract(code, module=False):
    ctx = build_context(code, "test.js", module=module)
    extractor = NetworkSinkExtractor(ctx, ValueResolver(ctx))
    return [record.to_dict() for record in extractor.extract()]


def param(site, name):
    for entry in site.get("params") or []:
        if entry["name"] == name:
            return entry
    raise AssertionError(f"no parameter {name} in {site}")


class TestFetchSinks(unittest.TestCase):
    """Test cases for fetch calls."""

    def test_literal_url(self):
        """Test a plain fetch with a literal URL."""
        sites = extract('fetch("/api/items");')
        self.assertEqual(len(sites), 1)
        self.assertEqual(sites[0]["url"], "/api/items")
        self.assertEqual(sites[0]["method"], "GET")
        self.assertEqual(sites[0]["type"], "fetch")
        self.assertEqual(sites[0]["headers"], {})

    def test_window_fetch(self):
        """Test fetch reached through the global object."""
        sites = extract('window.fetch("/w");')
        self.assertEqual([s["url"] for s in sites], ["/w"])

    def test_local_fetch_is_not_a_sink(self):
        """Test that a locally declared fetch is ignored."""
        self.assertEqual(extract('function fetch(u) {} fetch("/local");'), [])

    def test_method_and_headers(self):
        """Test options with method and headers."""
        code = ('fetch("/x", {method: "put", headers: '
                '{"Content-Type": "application/json", "X-Token": token}});')
        site = extract(code)[0]
        self.assertEqual(site["method"], "PUT")
        self.assertEqual(site["headers"], {"Content-Type": "application/json", "X-Token": "(dynamic)"})

    def test_options_variable(self):
        """Test options passed through a variable."""
        code = 'var opts = {method: "DELETE"}; fetch("/d", opts);'
        self.assertEqual(extract(code)[0]["method"], "DELETE")

    def test_json_body_params(self):
        """Test parameters of a JSON.stringify body."""
        code = ('var page = 2; fetch("/search", {method: "POST", body: JSON.stringify('
                '{q: query, page: page, limit: 10, strict: true, sort: order || "asc"})});')
        site = extract(code)[0]
        self.assertEqual(param(site, "q")["source"], "query")
        self.assertEqual(param(site, "page")["values"], ["2"])
        self.assertEqual(param(site, "limit")["defaultValue"], 10)
        self.assertEqual(param(site, "limit")["type"], "number")
        self.assertEqual(param(site, "strict")["type"], "boolean")
        self.assertFalse(param(site, "sort")["required"])
        self.assertEqual(param(site, "sort")["defaultValue"], "asc")
        self.assertTrue(all(p["location"] == "body" for p in site["params"]))

    def test_response_type_from_then(self):
        """Test response parsing in a .then callback."""
        site = extract('fetch("/j").then(function (r) { return r.json(); });')[0]
        self.assertEqual(site["responseType"], "json")

    def test_unresolved_url_placeholders(self):
        """Test readable placeholders for unknown URL parts."""
        self.assertEqual(extract('fetch("/u/" + userId);')[0]["url"], "/u/{userId}")
        site = extract("fetch(`/t/${id}/v`);")[0]
        self.assertEqual(site["url"], "/t/{id}/v")
        self.assertEqual(param(site, "id")["location"], "path")
        self.assertEqual(extract("fetch(endpoint);")[0]["url"], "${endpoint}")


class TestOtherSinks(unittest.TestCase):
    """Test cases for XHR, beacons, streams and pixels."""

    def test_xhr(self):
        """Test an XMLHttpRequest with headers, body and response type."""
        code = ('var x = new XMLHttpRequest(); x.open("POST", "/submit");'
                'x.setRequestHeader("X-Requested-With", "XMLHttpRequest");'
                'x.responseType = "json"; x.send(JSON.stringify({a: 1}));')
        site = extract(code)[0]
        self.assertEqual(site["type"], "xhr")
        self.assertEqual(site["method"], "POST")
        self.assertEqual(site["url"], "/submit")
        self.assertEqual(site["headers"], {"x-requested-with": "XMLHttpRequest"})
        self.assertEqual(site["responseType"], "json")
        self.assertEqual(param(site, "a")["location"], "body")

    def test_open_on_unknown_receiver(self):
        """Test that open() needs an XHR receiver or a literal HTTP method."""
        self.assertEqual(extract('win.open(mode, "/popup");'), [])
        self.assertEqual(extract('req.open("GET", "/g");')[0]["url"], "/g")

    def test_beacon(self):
        """Test navigator.sendBeacon."""
        site = extract('navigator.sendBeacon("/log", JSON.stringify({e: "click"}));')[0]
        self.assertEqual(site["type"], "beacon")
        self.assertEqual(site["method"], "POST")
        self.assertEqual(param(site, "e")["location"], "body")

    def test_streams(self):
        """Test EventSource and WebSocket constructors."""
        sites = extract('new EventSource("/events"); new WebSocket("wss://h.example/s");')
        self.assertEqual([(s["type"], s["url"]) for s in sites],
                         [("eventsource", "/events"), ("websocket", "wss://h.example/s")])

    def test_image_pixel(self):
        """Test image beacons."""
        sites = extract('var img = new Image(); img.src = "/pixel.gif?e=1";')
        self.assertEqual([(s["type"], s["url"]) for s in sites], [("image", "/pixel.gif?e=1")])


class TestWrappers(unittest.TestCase):
    """Test cases for sinks inside wrapper functions."""

    def test_caller_arguments_flow_into_url(self):
        """Test that each caller yields its own record."""
        code = 'function get(path) { return fetch("/api" + path); } get("/a"); get("/b");'
        self.assertEqual([s["url"] for s in extract(code)], ["/api/a", "/api/b"])

    def test_method_stays_correlated(self):
        """Test that method and URL come from the same caller."""
        code = ('function req(m, u) { var x = new XMLHttpRequest(); x.open(m, u); x.send(); }'
                'req("GET", "/a"); req("DELETE", "/b");')
        pairs = [(s["method"], s["url"]) for s in extract(code)]
        self.assertEqual(pairs, [("GET", "/a"), ("DELETE", "/b")])

    def test_body_from_caller(self):
        """Test body values bound from the caller's arguments."""
        code = ('function save(id, name) { fetch("/api/users/" + id, '
                '{method: "POST", body: JSON.stringify({name: name})}); }'
                'var userId = "42"; save(userId, "Alice");')
        site = extract(code)[0]
        self.assertEqual(site["url"], "/api/users/42")
        self.assertEqual(site["method"], "POST")
        self.assertEqual(param(site, "name")["values"], ["Alice"])
        self.assertEqual(param(site, "id")["location"], "path")
        self.assertEqual(site["enclosingFunction"], "save")

    def test_global_wrapper(self):
        """Test a wrapper stored on the global object."""
        sites = extract('window.doFetch = function (u) { fetch(u); }; doFetch("/ping");')
        self.assertEqual([s["url"] for s in sites], ["/ping"])

    def test_wrapper_without_callers_falls_back(self):
        """Test the untraced record when no caller is found."""
        sites = extract("function get(path) { fetch(path); }")
        self.assertEqual([s["url"] for s in sites], ["${path}"])
        self.assertEqual(param(sites[0], "path")["source"], "function_param")

    def test_valid_values_from_constraints(self):
        """Test allowed values attached to parameters."""
        code = ('function load(kind) { if (kind === "a" || kind === "b") {'
                ' fetch("/k", {method: "POST", body: JSON.stringify({kind: kind})}); } }')
        site = extract(code)[0]
        self.assertEqual(param(site, "kind")["validValues"], ["a", "b"])


class TestWrapperRoutes(unittest.TestCase):
    """Test cases for wrappers reached through less direct call routes."""

    def test_prototype_wrapper_with_serialized_body(self):
        """Test a body serialized by the caller and read through an options object."""
        code = ('function Transport() {}'
                'Transport.prototype.send = function (opts) {'
                ' var x = new XMLHttpRequest(); x.open(opts.type, opts.url); x.send(opts.data); };'
                'var t = new Transport();'
                't.send({type: "POST", url: "/deep", data: JSON.stringify({a: 1})});')
        sites = extract(code)
        self.assertEqual([(s["method"], s["url"]) for s in sites], [("POST", "/deep")])
        self.assertEqual([(p["name"], p["location"]) for p in sites[0]["params"]], [("a", "body")])
        self.assertEqual(param(sites[0], "a")["defaultValue"], 1)

    def test_deep_sink_in_nested_closure(self):
        """Test a sink inside a closure reading the outer wrapper's options."""
        code = ('function request(opts) { return new Promise(function (resolve) {'
                ' var x = new XMLHttpRequest(); x.open(opts.method, opts.url);'
                ' x.send(JSON.stringify(opts.payload)); }); }'
                'request({method: "PUT", url: "/c", payload: {id: 7}});'
                'request({timeout: 1});')
        sites = extract(code)
        self.assertEqual([(s["method"], s["url"]) for s in sites], [("PUT", "/c")])
        self.assertEqual(param(sites[0], "id")["location"], "body")

    def test_chained_wrapper_forwarding(self):
        """Test one wrapper forwarding its parameter into another."""
        code = ('function send(method, url) { var x = new XMLHttpRequest(); x.open(method, url); x.send(); }'
                'function getJSON(path) { return send("GET", "/v1" + path); }'
                'getJSON("/items");')
        sites = extract(code)
        self.assertEqual([(s["method"], s["url"]) for s in sites], [("GET", "/v1/items")])

    def test_computed_member_wrapper(self):
        """Test a wrapper stored under a computed key and called by name."""
        code = 'var api = {}; var k = "get"; api[k] = function (u) { fetch(u); }; api.get("/k");'
        self.assertEqual([s["url"] for s in extract(code)], ["/k"])

    def test_extend_copies_wrapper(self):
        """Test methods copied onto a namespace with extend()."""
        code = 'X.extend({load: function (u) { fetch(u); }}); X.load("/e");'
        self.assertEqual([s["url"] for s in extract(code)], ["/e"])

    def test_umd_factory_result(self):
        """Test a wrapper returned by a factory passed into a module wrapper."""
        code = ('var api = (function (factory) { return factory(); })(function () {'
                ' return {get: function (u) { return fetch(u); }}; });'
                'api.get("/umd");')
        self.assertEqual([s["url"] for s in extract(code)], ["/umd"])

    def test_constructor_field_read_in_method(self):
        """Test a base URL stored by the constructor and read by a method."""
        code = ('function Client(base) { this.base = base; }'
                'Client.prototype.get = function (path) { return fetch(this.base + path); };'
                'var c = new Client("/api"); c.get("/z");')
        self.assertEqual([s["url"] for s in extract(code)], ["/api/z"])


class TestHelpers(unittest.TestCase):
    """Test cases for module-level helpers."""

    def test_merge_call_sites(self):
        """Test deduplication by method and URL."""
        sites = [
            {"url": "/a", "method": "GET", "headers": {"A": "1"},
             "params": [{"name": "q", "values": ["x"]}]},
            {"url": "/a", "method": "GET", "headers": {"A": "2", "B": "3"},
             "params": [{"name": "q", "values": ["y", "x"]}, {"name": "r"}], "responseType": "json"},
            {"url": "/a", "method": "POST", "headers": {}},
        ]
        merged = merge_call_sites(sites)
        self.assertEqual(len(merged), 2)
        first = merged[0]
        self.assertEqual(first["headers"], {"A": "1", "B": "3"})
        self.assertEqual([p["name"] for p in first["params"]], ["q", "r"])
        self.assertEqual(first["params"][0]["values"], ["x", "y"])
        self.assertEqual(first["responseType"], "json")
        self.assertEqual(sites[0]["params"][0]["values"], ["x"])

    def test_function_params(self):
        """Test declared parameter metadata."""
        ctx = build_context("function f(a, b = 2, {c, d = 'x'}, ...rest) {}", "test.js")
        params = function_params(ctx.model.functions[0])
        self.assertEqual(params, [
            {"name": "a", "required": True},
            {"name": "b", "required": False, "defaultValue": 2},
            {"name": "c", "required": True},
            {"name": "d", "required": False, "defaultValue": "x"},
            {"name": "rest", "required": False, "rest": True},
        ])


if __name__ == "__main__":
    unittest.main()
