"""
Network sink extraction.

Finds the outbound requests a script can make (``fetch``, XMLHttpRequest,
``navigator.sendBeacon``, EventSource, WebSocket and image pixels) and
describes each one as a SinkRecord: URL, HTTP method, headers, parameters
and response type. Sinks that sit inside wrapper functions are resolved once
per caller with the wrapper's parameters bound to that caller's arguments,
so method and URL stay correlated.
"""

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Set, Tuple

from .context import AnalysisContext, ResolutionKind
from .resolver import ValueResolver, flatten_branches, flatten_concat, template_placeholder
from .scope import (
    FUNCTION_TYPES, describe, literal_text, literal_value, member_name,
    property_key, walk,
)

logger = logging.getLogger(__name__)

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})
XHR_CONSTRUCTORS = ("XMLHttpRequest", "XDomainRequest", "ActiveXObject")
RESPONSE_PARSERS = ("json", "text", "arrayBuffer", "blob")
STREAM_CONSTRUCTORS = {"EventSource": "eventsource", "WebSocket": "websocket"}


@dataclass
class NetworkSink:
    """A matched request-issuing expression and its argument nodes."""
    node: Dict[str, Any]
    kind: str  # fetch, xhr, beacon, eventsource, websocket, image
    url: Dict[str, Any]
    options: Optional[Dict[str, Any]] = None
    method: Optional[Dict[str, Any]] = None
    receiver: Optional[Dict[str, Any]] = None


@dataclass
class SinkRecord:
    """One request a script can issue."""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    params: List[Dict[str, Any]] = field(default_factory=list)
    type: str = "fetch"
    enclosing_function: Optional[str] = None
    response_type: Optional[str] = None

    def key(self) -> Tuple[str, str]:
        return self.method, self.url

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "url": self.url,
            "method": self.method,
            "headers": dict(self.headers),
            "type": self.type,
        }
        if self.params:
            out["params"] = [dict(param) for param in self.params]
        out["responseType"] = self.response_type
        out["enclosingFunction"] = self.enclosing_function
        return out


def merge_call_sites(sites: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Deduplicate call-site records by ``(method, url)``.

    The first record for a key is kept; later duplicates contribute headers
    it lacks and parameters it does not name. Observed ``values`` of a shared
    parameter are unioned.

    Args:
        sites: Call-site dictionaries in discovery order

    Returns:
        Merged call-site dictionaries in first-seen order
    """
    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for site in sites:
        key = (site.get("method") or "GET", site.get("url") or "")
        current = merged.get(key)
        if current is None:
            current = dict(site)
            current["headers"] = dict(site.get("headers") or {})
            if site.get("params"):
                current["params"] = [dict(param) for param in site["params"]]
            merged[key] = current
            continue
        for name, value in (site.get("headers") or {}).items():
            current["headers"].setdefault(name, value)
        if not site.get("params"):
            continue
        params = current.setdefault("params", [])
        by_name = {param.get("name"): param for param in params}
        for param in site["params"]:
            existing = by_name.get(param.get("name"))
            if existing is None:
                params.append(dict(param))
                by_name[param.get("name")] = params[-1]
            elif param.get("values"):
                values = list(existing.get("values") or [])
                values.extend(v for v in param["values"] if v not in values)
                existing["values"] = values
        if current.get("responseType") is None and site.get("responseType"):
            current["responseType"] = site["responseType"]
    return list(merged.values())


def collect_identifiers(node: Optional[Dict[str, Any]], members: bool = True) -> Set[str]:
    """
    Names of identifiers that flow into an expression's value.

    With ``members`` off, objects read only through ``obj.prop`` are left out.
    """
    names: Set[str] = set()
    stack = [node] if node else []
    while stack:
        current = stack.pop()
        ctype = current.get("type")
        if ctype == "Identifier":
            names.add(current["name"])
        elif ctype in ("BinaryExpression", "LogicalExpression"):
            stack.extend([current.get("left") or {}, current.get("right") or {}])
        elif ctype == "ConditionalExpression":
            stack.extend([current.get("test") or {}, current.get("consequent") or {},
                          current.get("alternate") or {}])
        elif ctype in ("CallExpression", "NewExpression"):
            stack.extend(current.get("arguments") or [])
        elif ctype == "TemplateLiteral":
            stack.extend(current.get("expressions") or [])
        elif ctype == "MemberExpression" and members:
            stack.append(current.get("object") or {})
    return names


def function_params(func: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Declared parameters with required/default/rest metadata."""
    if not func:
        return []
    params: List[Dict[str, Any]] = []
    for param in func.get("params") or []:
        ptype = param.get("type")
        if ptype == "Identifier":
            params.append({"name": param["name"], "required": True})
        elif ptype == "AssignmentPattern":
            left = param.get("left") or {}
            if left.get("type") == "Identifier":
                params.append({"name": left["name"], "required": False,
                               "defaultValue": literal_value(param.get("right") or {})})
        elif ptype == "ObjectPattern":
            for prop in param.get("properties") or []:
                if prop.get("type") == "RestElement":
                    arg = prop.get("argument") or {}
                    params.append({"name": arg.get("name", "rest"), "required": False, "rest": True})
                    continue
                name = property_key(prop)
                if name is None:
                    continue
                value = prop.get("value") or {}
                if value.get("type") == "AssignmentPattern":
                    params.append({"name": name, "required": False,
                                   "defaultValue": literal_value(value.get("right") or {})})
                else:
                    params.append({"name": name, "required": True})
        elif ptype == "RestElement":
            arg = param.get("argument") or {}
            params.append({"name": arg.get("name", "rest"), "required": False, "rest": True})
    return params


class NetworkSinkExtractor:
    """
    Extracts SinkRecords from one program.

    Args:
        ctx: Analysis context of the program
        resolver: Value resolver sharing that context
    """

    def __init__(self, ctx: AnalysisContext, resolver: ValueResolver):
        self.ctx = ctx
        self.resolver = resolver
        self.model = ctx.model
        self.config = ctx.config
        self._xhr_cache: Dict[int, bool] = {}

    def extract(self) -> List[SinkRecord]:
        """Every sink record in the program, in source order (not deduplicated)."""
        records: List[SinkRecord] = []
        for node in self.model.nodes:
            records.extend(self.visit(node))
        return records

    def visit(self, node: Dict[str, Any]) -> List[SinkRecord]:
        sink = self.match_sink(node)
        if sink is None:
            return []
        return self.sink_records(sink)

    # ---------------------------------------------------------------- matching

    def match_sink(self, node: Dict[str, Any]) -> Optional[NetworkSink]:
        """Recognize a request-issuing expression."""
        ntype = node.get("type")
        index = self.ctx.index
        args = node.get("arguments") or []
        if ntype == "CallExpression" and args:
            callee = node.get("callee") or {}
            if self.is_fetch_callee(callee):
                return NetworkSink(node, "fetch", args[0], options=args[1] if len(args) > 1 else None)
            name = member_name(callee)
            receiver = callee.get("object") or {}
            if name == "open" and len(args) >= 2 and self._is_xhr_open(receiver, args[0]):
                return NetworkSink(node, "xhr", args[1], method=args[0], receiver=receiver)
            if name == "sendBeacon" and index is not None and index.is_global_name(receiver, "navigator"):
                return NetworkSink(node, "beacon", args[0], options=args[1] if len(args) > 1 else None)
        elif ntype == "NewExpression" and args and index is not None:
            callee = node.get("callee") or {}
            for ctor, kind in STREAM_CONSTRUCTORS.items():
                if index.is_global_name(callee, ctor):
                    return NetworkSink(node, kind, args[0])
        elif ntype == "AssignmentExpression" and node.get("operator") == "=":
            left = node.get("left") or {}
            if member_name(left) == "src" and self._is_image(left.get("object") or {}):
                return NetworkSink(node, "image", node.get("right") or {})
        return None

    def is_fetch_callee(self, callee: Dict[str, Any]) -> bool:
        """Global ``fetch``, ``window.fetch`` or a ``||``-guarded variant."""
        index = self.ctx.index
        if index is None:
            return False
        return any(index.is_global_name(branch, "fetch") for branch in flatten_branches(callee))

    def _is_xhr_open(self, receiver: Dict[str, Any], method: Dict[str, Any]) -> bool:
        text = literal_text(method)
        if text is not None and text.upper() in HTTP_METHODS:
            return True
        return self.is_xhr(receiver)

    def _is_image(self, node: Dict[str, Any]) -> bool:
        index = self.ctx.index
        if node.get("type") == "NewExpression":
            return index is not None and index.is_global_name(node.get("callee") or {}, "Image")
        if node.get("type") == "Identifier" and self.ctx.types is not None:
            return self.ctx.types.type_of(node) == "Image"
        return False

    def is_xhr(self, node: Optional[Dict[str, Any]], depth: int = 0) -> bool:
        """True when ``node`` provably holds an XMLHttpRequest-like instance."""
        if not node or depth > self.config.max_depth:
            return False
        cached = self._xhr_cache.get(id(node))
        if cached is not None:
            return cached
        key = self.ctx.enter(ResolutionKind.XHR, node)
        if key is None:
            return False
        snapshot = self.ctx.snapshot()
        try:
            result = self._is_xhr(node, depth)
        finally:
            self.ctx.leave(key)
        if self.ctx.cacheable(snapshot, frames_matter=False):
            self._xhr_cache[id(node)] = result
        return result

    def _is_xhr(self, node: Dict[str, Any], depth: int) -> bool:
        ntype = node.get("type")
        index = self.ctx.index
        if ntype == "NewExpression":
            callee = node.get("callee") or {}
            return index is not None and any(index.is_global_name(callee, name) for name in XHR_CONSTRUCTORS)
        if ntype in ("ConditionalExpression", "LogicalExpression"):
            return any(self.is_xhr(branch, depth + 1) for branch in flatten_branches(node))
        if ntype == "AssignmentExpression":
            return self.is_xhr(node.get("right"), depth + 1)
        if ntype == "SequenceExpression":
            return self.is_xhr((node.get("expressions") or [None])[-1], depth + 1)
        if ntype == "CallExpression":
            return any(self.is_xhr(returned, depth + 1)
                       for func, _ in self.resolver.call_targets(node, depth + 1)
                       for returned in self.model.returns_of(func))
        if ntype == "MemberExpression":
            name = member_name(node)
            if name is None:
                return False
            return any(self.is_xhr(value, depth + 1)
                       for value in self.resolver.assigned_members(node.get("object") or {}, name))
        if ntype != "Identifier":
            return False
        binding = self.model.binding_for(node)
        if binding is None:
            return index is not None and any(self.is_xhr(entry.definition, depth + 1)
                                             for entry in index.lookup(node["name"]))
        if self.ctx.types is not None and self.ctx.types.type_of(node) in XHR_CONSTRUCTORS:
            return True
        if binding.init is not None and self.is_xhr(binding.init, depth + 1):
            return True
        for writer in binding.violations:
            if writer.get("type") == "AssignmentExpression" and self.is_xhr(writer.get("right"), depth + 1):
                return True
        if binding.is_param:
            return any(self.is_xhr(path.argument, depth + 1)
                       for path in self.resolver.callers.argument_paths(binding))
        return False

    # ------------------------------------------------------- per-caller frames

    def sink_records(self, sink: NetworkSink) -> List[SinkRecord]:
        """
        Records for one sink.

        When the sink's URL, method or options read parameters of an
        enclosing wrapper, each discovered caller of the wrapper is resolved
        separately with the parameters bound to its arguments; otherwise (or
        when no caller yields a URL) the sink is resolved once.
        """
        records: List[SinkRecord] = []
        for plan in self._caller_plans(sink):
            with ExitStack() as stack:
                for func, call, offset in plan:
                    stack.enter_context(self.ctx.bind_arguments(func, call, offset))
                traced = self.build(sink, traced=True)
            if traced:
                self.ctx.stats["wrappers"] += 1
                records.extend(traced)
        if records:
            return records
        return self.build(sink)

    def _dependencies(self, sink: NetworkSink) -> Dict[int, Tuple[Dict[str, Any], Set[str]]]:
        """Enclosing functions whose parameters the sink reads, with the properties read."""
        out: Dict[int, Tuple[Dict[str, Any], Set[str]]] = {}
        roots = [node for node in (sink.url, sink.method, sink.options) if node]
        seen: Set[int] = set()
        hops = 0
        while roots and hops < 3:
            following: List[Dict[str, Any]] = []
            for root in roots:
                for node in walk(root, skip_nested=True):
                    if node.get("type") != "Identifier":
                        continue
                    binding = self.model.binding_for(node)
                    if binding is None or id(binding) in seen:
                        continue
                    if binding.is_param and binding.function is not None:
                        func = binding.function
                        entry = out.setdefault(id(func), (func, set()))
                        parent = self.model.parent(node) or {}
                        if parent.get("type") == "MemberExpression" and parent.get("object") is node:
                            name = member_name(parent)
                            if name is not None:
                                entry[1].add(name)
                        if binding.param_key is not None:
                            entry[1].add(binding.param_key)
                        continue
                    seen.add(id(binding))
                    if binding.init is not None and binding.kind in ("var", "let", "const"):
                        following.append(binding.init)
            roots = following
            hops += 1
        return out

    def _caller_plans(self, sink: NetworkSink) -> List[List[Tuple[Dict[str, Any], Dict[str, Any], int]]]:
        deps = self._dependencies(sink)
        if not deps:
            return []
        owner = None
        for ancestor in self.model.ancestors(sink.node):
            if ancestor.get("type") in FUNCTION_TYPES and id(ancestor) in deps:
                owner = deps[id(ancestor)]
                break
        if owner is None:
            return []
        func, props = owner
        deep = func is not self.model.enclosing_function(sink.node)
        callers = self.resolver.callers
        plans: List[List[Tuple[Dict[str, Any], Dict[str, Any], int]]] = []
        for site in callers.call_sites(func):
            if deep and props and not self._matches_properties(site.call, props):
                continue
            chained = self._forwarding_plans(site)
            if chained:
                plans.extend(plan + [(func, site.call, site.offset)] for plan in chained)
            else:
                plans.append([(func, site.call, site.offset)])
            if len(plans) >= self.config.max_callers:
                break
        return plans[:self.config.max_callers]

    def _matches_properties(self, call: Dict[str, Any], props: Set[str]) -> bool:
        """True when one of the first arguments is an object naming one of ``props``."""
        for arg in (call.get("arguments") or [])[:self.config.max_call_args]:
            shape = self.resolver.resolve_to_object(arg)
            if shape is not None and props & set(shape.properties):
                return True
        return False

    def _forwarding_plans(self, site) -> List[List[Tuple[Dict[str, Any], Dict[str, Any], int]]]:
        """One level of wrapper-to-wrapper forwarding above ``site``."""
        outer = self.model.enclosing_function(site.call)
        if outer is None or self.ctx.is_bound(outer):
            return []
        params = {id(binding) for binding in self.model.params_of(outer)}
        forwards = False
        for arg in site.call.get("arguments") or []:
            for node in walk(arg, skip_nested=True):
                if node.get("type") == "Identifier" and id(self.model.binding_for(node)) in params:
                    forwards = True
                    break
            if forwards:
                break
        if not forwards:
            return []
        return [[(outer, outer_site.call, outer_site.offset)]
                for outer_site in self.resolver.callers.call_sites(outer)[:self.config.max_callers]]

    # ----------------------------------------------------------------- records

    def build(self, sink: NetworkSink, traced: bool = False) -> List[SinkRecord]:
        """
        Resolve one sink into records under the currently bound frames.

        Args:
            sink: Matched sink
            traced: Resolving for one caller; unresolved URLs yield nothing
                instead of a placeholder

        Returns:
            One record per URL value
        """
        urls = self.resolve_urls(sink.url, fallback=not traced)
        if not urls:
            return []
        func = self.model.enclosing_function(sink.node)
        method: Optional[str] = None
        methods: Dict[str, str] = {}
        headers: Dict[str, str] = {}
        body: List[Dict[str, Any]] = []
        # Objects such as ``opts`` in ``opts.url`` are not params once a caller resolved the URL
        members = not (traced and all("{" not in url for url in urls))
        usage: Dict[str, Set[str]] = {"path": collect_identifiers(sink.url, members), "method": set(),
                                      "body": set(), "options": set(), "header": set()}
        response_type = None

        if sink.kind == "fetch":
            method, headers, body = self._fetch_options(sink.options, usage, members)
        elif sink.kind == "beacon":
            method = "POST"
            if sink.options is not None:
                body = self.body_params(sink.options)
                usage["body"] |= collect_identifiers(sink.options)
        elif sink.kind == "xhr":
            methods = self._xhr_methods(sink, urls)
            usage["method"] |= collect_identifiers(sink.method, members)
            headers, body, response_type = self._xhr_usage(sink.receiver or {}, usage, members)

        if sink.kind in ("fetch", "beacon", "xhr") and response_type is None:
            response_type = self.response_type(sink.node, func)

        params = [{"name": name, "location": "path", "required": True}
                  for name in self.template_params(sink.url)]
        params.extend(body)
        params.extend(self._function_param_usage(func, body, usage))
        self._attach_valid_values(params, sink.node)

        name = self.model.function_name(func)
        records = []
        for url in urls:
            record = SinkRecord(
                url=url,
                method=methods.get(url) or method or "GET",
                headers=dict(headers),
                params=[dict(param) for param in params],
                type=sink.kind,
                enclosing_function=name,
                response_type=response_type,
            )
            logger.debug("[%s] %s %s%s", record.type, record.method, url,
                         f" in {name}()" if name else "")
            records.append(record)
        return records

    def resolve_urls(self, node: Dict[str, Any], fallback: bool = True) -> List[str]:
        """URL values of ``node``, falling back to a readable template."""
        values = self.resolver.resolve(node)
        if values:
            self.ctx.stats["resolved"] += 1
            return values
        if not fallback:
            return []
        ntype = node.get("type")
        if ntype == "TemplateLiteral" and node.get("expressions"):
            return [template_placeholder(node)]
        if ntype == "BinaryExpression" and node.get("operator") == "+":
            parts = []
            for i, term in enumerate(flatten_concat(node)):
                term_values = self.resolver.resolve(term)
                if len(term_values) == 1:
                    parts.append(term_values[0])
                else:
                    parts.append("{" + (describe(term) or f"param{i}") + "}")
            return ["".join(parts)]
        if ntype in ("Identifier", "MemberExpression"):
            name = describe(node)
            if name is not None:
                return ["${" + name + "}"]
        return ["(dynamic)"]

    def template_params(self, node: Dict[str, Any]) -> List[str]:
        if node.get("type") != "TemplateLiteral":
            return []
        names = []
        for expr in node.get("expressions") or []:
            etype = expr.get("type")
            if etype in ("Identifier", "MemberExpression"):
                name = describe(expr)
            elif etype == "CallExpression":
                args = expr.get("arguments") or []
                name = args[0].get("name") if args and args[0].get("type") == "Identifier" else None
            else:
                name = None
            if name:
                names.append(name)
        return names

    def _options_literal(self, options: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not options:
            return None
        if options.get("type") == "ObjectExpression":
            return options
        if options.get("type") == "Identifier":
            binding = self.model.binding_for(options)
            if binding is not None and binding.init is not None \
                    and binding.init.get("type") == "ObjectExpression":
                return binding.init
        return None

    def _fetch_options(self, options: Optional[Dict[str, Any]], usage: Dict[str, Set[str]],
                       members: bool = True) -> Tuple[Optional[str], Dict[str, str], List[Dict[str, Any]]]:
        if not options:
            return None, {}, []
        if options.get("type") == "Identifier":
            usage["options"].add(options["name"])
        literal = self._options_literal(options)
        if literal is not None:
            for prop in literal.get("properties") or []:
                key = property_key(prop) if prop.get("type") == "Property" else None
                value = prop.get("value")
                if key == "method":
                    usage["method"] |= collect_identifiers(value, members)
                elif key == "body":
                    usage["body"] |= collect_identifiers(value, members)
                elif key == "headers" and value and value.get("type") == "ObjectExpression":
                    for header in value.get("properties") or []:
                        usage["header"] |= collect_identifiers(header.get("value"))

        shape = self.resolver.resolve_to_object(options)
        if shape is None:
            return None, {}, []
        method = None
        if "method" in shape.properties:
            for value in self.resolver.resolve(shape.properties["method"]):
                if value.upper() in HTTP_METHODS:
                    method = value.upper()
                    break
        headers = self.headers(shape.properties.get("headers"))
        body = self.body_params(shape.properties["body"]) if "body" in shape.properties else []
        return method, headers, body

    def headers(self, node: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """Header name to first resolved value (``(dynamic)`` when unknown)."""
        if not node:
            return {}
        index = self.ctx.index
        if node.get("type") == "NewExpression" and index is not None \
                and index.is_global_name(node.get("callee") or {}, "Headers"):
            args = node.get("arguments") or []
            node = args[0] if args else None
            if not node:
                return {}
        shape = self.resolver.resolve_to_object(node)
        if shape is None:
            return {}
        out: Dict[str, str] = {}
        for name, value in shape.properties.items():
            values = self.resolver.resolve(value)
            out[name] = values[0] if values else "(dynamic)"
        return out

    def body_params(self, node: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Body parameters of a request body expression."""
        if not node:
            return []
        wrapped, target = self._unwrap_body(node)
        if not wrapped and node.get("type") in ("Identifier", "MemberExpression"):
            # A serialized body built elsewhere, such as a caller's ``data: JSON.stringify({...})``
            with ExitStack() as stack:
                definition = self._body_definition(node, stack)
                if definition is not None and self._unwrap_body(definition)[0]:
                    return self.body_params(definition)
        if not target:
            return []

        shape = None
        literal = target if target.get("type") == "ObjectExpression" else None
        if literal is None:
            shape = self.resolver.resolve_to_object(target)
            if shape is not None and shape.origin is not None \
                    and shape.origin.get("type") == "ObjectExpression":
                literal = shape.origin
        params = self.object_params(literal) if literal is not None else []
        if shape is not None:
            named = {param["name"] for param in params}
            for name in shape.properties:
                if name not in named:
                    params.append({"name": name, "required": True})
        for param in params:
            param["location"] = "body"
        return params

    def _unwrap_body(self, node: Dict[str, Any]) -> Tuple[bool, Optional[Dict[str, Any]]]:
        """``(True, payload)`` for ``JSON.stringify(payload)`` or ``new URLSearchParams(payload)``."""
        index = self.ctx.index
        callee = node.get("callee") or {}
        args = node.get("arguments") or []
        if index is None:
            return False, node
        if node.get("type") == "CallExpression" and member_name(callee) == "stringify" \
                and index.is_global_name(callee.get("object") or {}, "JSON"):
            return True, args[0] if args else None
        if node.get("type") == "NewExpression" and index.is_global_name(callee, "URLSearchParams"):
            return True, args[0] if args else None
        return False, node

    def _body_definition(self, node: Dict[str, Any], stack: ExitStack) -> Optional[Dict[str, Any]]:
        """
        Expression an identifier or ``obj.prop`` body stands for.

        When the value comes from a bound argument frame, the caller's frames
        are entered on ``stack`` so the definition is read in its own context.
        """
        if node.get("type") == "Identifier":
            binding = self.model.binding_for(node)
            if binding is None:
                return None
            bound = self.ctx.bound_argument(binding)
            if bound is not None:
                index, argument, key = bound
                stack.enter_context(self.ctx.outer_frames(index))
                if key is None:
                    return argument
                shape = self.resolver.resolve_to_object(argument)
                return shape.properties.get(key) if shape is not None else None
            if binding.constant and binding.init is not None:
                return binding.init
            return None

        prop = member_name(node)
        obj = node.get("object") or {}
        if prop is None:
            return None
        if obj.get("type") == "Identifier":
            binding = self.model.binding_for(obj)
            bound = self.ctx.bound_argument(binding) if binding is not None else None
            if bound is not None:
                index, argument, key = bound
                stack.enter_context(self.ctx.outer_frames(index))
                shape = self.resolver.resolve_to_object(argument)
                if shape is not None and key is not None:
                    inner = shape.properties.get(key)
                    shape = self.resolver.resolve_to_object(inner) if inner else None
                return shape.properties.get(prop) if shape is not None else None
        shape = self.resolver.resolve_to_object(obj)
        return shape.properties.get(prop) if shape is not None else None

    def object_params(self, literal: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Describe each property of an object literal as a request parameter."""
        params: List[Dict[str, Any]] = []
        for prop in literal.get("properties") or []:
            if prop.get("type") in ("SpreadElement", "ExperimentalSpreadProperty"):
                arg = prop.get("argument") or {}
                if arg.get("type") == "Identifier":
                    params.append({"name": "..." + arg["name"], "spread": True, "required": False})
                continue
            if prop.get("type") != "Property" or prop.get("computed"):
                continue
            name = property_key(prop)
            if name is None:
                continue
            value = prop.get("value") or {}
            vtype = value.get("type")
            param: Dict[str, Any] = {"name": name, "required": True}
            if vtype == "Identifier":
                param["source"] = value["name"]
            if vtype == "LogicalExpression" and value.get("operator") in ("||", "??"):
                param["required"] = False
                default = literal_value(value.get("right") or {})
                if default is not None:
                    param["defaultValue"] = default
                if (value.get("left") or {}).get("type") == "Identifier":
                    param["source"] = value["left"]["name"]
            elif vtype == "ConditionalExpression":
                param["required"] = False
                default = literal_value(value.get("alternate") or {})
                if default is not None:
                    param["defaultValue"] = default
            elif vtype == "Literal":
                if isinstance(value.get("value"), bool):
                    param["defaultValue"] = value["value"]
                    param["type"] = "boolean"
                else:
                    default = literal_value(value)
                    if default is not None:
                        param["defaultValue"] = default
                        param["type"] = "string" if isinstance(default, str) else "number"
            if vtype != "Literal":
                observed = self.resolver.resolve(value)
                if observed:
                    param["values"] = observed
            params.append(param)
        return params

    def _xhr_methods(self, sink: NetworkSink, urls: List[str]) -> Dict[str, str]:
        """URL -> method, correlated per caller when both read one parameter object."""
        method_node = sink.method or {}
        url_node = sink.url
        method_name, url_name = member_name(method_node), member_name(url_node)
        method_obj = method_node.get("object") or {}
        url_obj = url_node.get("object") or {}
        if method_name and url_name and method_obj.get("type") == "Identifier" \
                and url_obj.get("type") == "Identifier":
            binding = self.model.binding_for(method_obj)
            if binding is not None and binding.is_param and binding is self.model.binding_for(url_obj) \
                    and self.ctx.bound_argument(binding) is None:
                pairs: Dict[str, str] = {}
                for path in self.resolver.callers.argument_paths(binding):
                    if path.overloaded:
                        continue
                    site_methods = self.resolver.read_property(path.argument, method_name)
                    site_urls = self.resolver.read_property(path.argument, url_name)
                    for url in site_urls:
                        if site_methods and site_methods[0].upper() in HTTP_METHODS:
                            pairs.setdefault(url, site_methods[0].upper())
                if pairs:
                    return pairs
        methods = [value.upper() for value in self.resolver.resolve(method_node)
                   if value.upper() in HTTP_METHODS]
        if not methods:
            return {}
        return {url: methods[0] for url in urls}

    def _receiver_calls(self, receiver: Dict[str, Any]) -> List[Tuple[str, Dict[str, Any]]]:
        """``(method name, call)`` for every method call made on the receiver."""
        refs: List[Dict[str, Any]] = []
        if receiver.get("type") == "Identifier":
            binding = self.model.binding_for(receiver)
            if binding is not None:
                refs = list(binding.references)
        else:
            chain = describe(receiver)
            if chain is not None:
                refs = list(self.model.member_chains.get(chain, []))
        calls = []
        for ref in refs:
            member = self.model.parent(ref) or {}
            if member.get("type") != "MemberExpression" or member.get("object") is not ref:
                continue
            call = self.model.parent(member) or {}
            if call.get("type") == "CallExpression" and call.get("callee") is member:
                calls.append((member_name(member) or "", call))
        return calls

    def _xhr_usage(self, receiver: Dict[str, Any], usage: Dict[str, Set[str]], members: bool = True
                   ) -> Tuple[Dict[str, str], List[Dict[str, Any]], Optional[str]]:
        headers: Dict[str, str] = {}
        body: List[Dict[str, Any]] = []
        for name, call in self._receiver_calls(receiver):
            args = call.get("arguments") or []
            if name == "setRequestHeader" and len(args) >= 2:
                header_names = self.resolver.resolve(args[0])
                if header_names:
                    values = self.resolver.resolve(args[1])
                    headers[header_names[0].lower()] = values[0] if values else "(dynamic)"
                usage["header"] |= collect_identifiers(args[1])
            elif name == "send" and args:
                body = self.body_params(args[0])
                usage["body"] |= collect_identifiers(args[0], members or not body)
        response_type = None
        for value in self.resolver.assigned_members(receiver, "responseType"):
            values = self.resolver.resolve(value)
            if values:
                response_type = values[0]
                break
        return headers, body, response_type

    def response_type(self, node: Dict[str, Any], func: Optional[Dict[str, Any]]) -> Optional[str]:
        """How the response is parsed: in the enclosing function or a ``.then`` callback."""
        scopes: List[Dict[str, Any]] = []
        if func is not None:
            scopes.append(func.get("body") or {})
        current = node
        while True:
            member = self.model.parent(current) or {}
            if member.get("type") != "MemberExpression" or member.get("object") is not current:
                break
            call = self.model.parent(member) or {}
            if call.get("type") != "CallExpression" or call.get("callee") is not member:
                break
            if member_name(member) == "then":
                for arg in call.get("arguments") or []:
                    if arg.get("type") in FUNCTION_TYPES:
                        scopes.append(arg.get("body") or {})
            current = call
        found: Set[str] = set()
        for scope in scopes:
            for inner in walk(scope, skip_nested=True):
                if inner.get("type") == "CallExpression":
                    name = member_name(inner.get("callee") or {})
                    if name in RESPONSE_PARSERS:
                        found.add(name)
        for parser in RESPONSE_PARSERS:
            if parser in found:
                return parser
        return None

    def _function_param_usage(self, func: Optional[Dict[str, Any]], body: List[Dict[str, Any]],
                              usage: Dict[str, Set[str]]) -> List[Dict[str, Any]]:
        """Classify the enclosing function's parameters by how the sink uses them."""
        declared = function_params(func)
        if not declared:
            return []
        names = {param["name"] for param in declared}
        for used in usage.values():
            for name in list(used):
                if name in names or func is None:
                    continue
                binding = self.model.lookup(name, func.get("body") or func)
                if binding is not None and binding.init is not None \
                        and binding.kind in ("var", "let", "const"):
                    used |= collect_identifiers(binding.init)

        out = []
        for param in declared:
            matched = False
            for entry in body:
                if entry.get("source") == param["name"] or entry.get("name") == param["name"]:
                    if not param["required"]:
                        entry["required"] = False
                        if param.get("defaultValue") is not None:
                            entry["defaultValue"] = param["defaultValue"]
                    matched = True
            if matched or param.get("rest"):
                continue
            for location in ("path", "method", "body", "options", "header"):
                if param["name"] in usage[location]:
                    entry = {"name": param["name"], "location": location,
                             "required": param["required"], "source": "function_param"}
                    if param.get("defaultValue") is not None:
                        entry["defaultValue"] = param["defaultValue"]
                    out.append(entry)
                    break
        return out

    def _attach_valid_values(self, params: List[Dict[str, Any]], at: Dict[str, Any]) -> None:
        constraints = self.ctx.constraints
        if constraints is None:
            return
        for param in params:
            if param.get("spread"):
                continue
            source = param.get("source")
            name = source if source and source != "function_param" else param.get("name")
            constraint = constraints.lookup(name, at)
            if constraint is not None and 2 <= len(constraint.values) <= 50:
                param["validValues"] = list(constraint.values)
