"""
Taint and sanitizer analysis.

Classifies where the value reaching a dangerous operation comes from
(literal, dynamic, or user controlled through a browser source such as
``location.hash`` or a message event's ``data``) and reports DOM-XSS,
code-injection, open-redirect and prototype-pollution sinks fed by user
controlled values. Message handlers are additionally checked for missing or
weak origin validation, and ``postMessage`` calls for a wildcard target.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Any, Optional, Set, Tuple

from .callers import ITERATION_METHODS
from .cfg import ControlFlowGraph, is_sanitized
from .context import AnalysisContext, ResolutionKind
from .parser import source_excerpt
from .resolver import ValueResolver
from .scope import FUNCTION_TYPES, chain_root, describe, literal_text, member_name, position, property_key, walk

logger = logging.getLogger(__name__)

LOCATION_PROPERTIES = frozenset({"hash", "search", "href", "pathname"})
DOCUMENT_PROPERTIES = frozenset({"cookie", "URL", "documentURI", "referrer", "baseURI"})
STORAGE_OBJECTS = frozenset({"localStorage", "sessionStorage"})

# Global functions whose result carries their argument's taint
PASS_THROUGH_FUNCTIONS = frozenset({"decodeURIComponent", "decodeURI", "unescape", "atob", "String"})
PASS_THROUGH_CONSTRUCTORS = frozenset({"URL", "URLSearchParams", "String"})
TRUSTED_TYPES_METHODS = frozenset({"createHTML", "createScript", "createScriptURL"})

SANITIZER_FUNCTIONS = frozenset({
    "encodeURIComponent", "encodeURI", "escape", "parseInt", "parseFloat", "Number",
    "Boolean", "escapeHtml", "escapeHTML", "sanitize", "sanitizeHtml", "sanitizeHTML",
    "encodeHTML", "htmlEncode",
})
SANITIZER_METHODS = frozenset({"sanitize", "escape", "escapeHtml", "escapeHTML", "encode", "text"})
SANITIZER_LIBRARIES = frozenset({"DOMPurify", "$", "jQuery", "_", "he", "validator"})

# Property assignments: property -> (finding type, severity)
ASSIGNMENT_SINKS = {
    "innerHTML": ("xss", "high"),
    "outerHTML": ("xss", "high"),
    "srcdoc": ("xss", "high"),
}
# Method calls: method -> (finding type, severity, index of the dangerous argument)
METHOD_SINKS = {
    "write": ("xss", "high", 0),
    "writeln": ("xss", "high", 0),
    "insertAdjacentHTML": ("xss", "high", 1),
    "createContextualFragment": ("xss", "high", 0),
    "parseFromString": ("xss", "medium", 0),
    "html": ("xss", "medium", 0),
    "append": ("xss", "medium", 0),
    "prepend": ("xss", "medium", 0),
    "after": ("xss", "medium", 0),
    "before": ("xss", "medium", 0),
    "replaceWith": ("xss", "medium", 0),
}
CODE_SINKS = frozenset({"eval", "setTimeout", "setInterval", "setImmediate"})
URL_ATTRIBUTES = frozenset({"href", "src", "action", "formaction", "xlink:href", "data"})
REDIRECT_METHODS = frozenset({"assign", "replace"})
HTML_METHODS_NEED_RECEIVER = frozenset({"write", "writeln"})


class TaintKind(Enum):
    LITERAL = "literal"
    DYNAMIC = "dynamic"
    USER_CONTROLLED = "user_controlled"


@dataclass(frozen=True)
class TaintClassification:
    """Where a value comes from."""
    kind: TaintKind
    label: Optional[str] = None
    location: Optional[Tuple[Optional[int], Optional[int]]] = None

    @property
    def user_controlled(self) -> bool:
        return self.kind is TaintKind.USER_CONTROLLED

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind.value, "label": self.label}
        if self.location is not None:
            out["location"] = {"line": self.location[0], "column": self.location[1]}
        return out


LITERAL = TaintClassification(TaintKind.LITERAL)
DYNAMIC = TaintClassification(TaintKind.DYNAMIC)


def combine(*classes: TaintClassification) -> TaintClassification:
    """User controlled wins over dynamic, which wins over literal."""
    result = LITERAL
    for cls in classes:
        if cls.user_controlled:
            return cls
        if cls.kind is TaintKind.DYNAMIC:
            result = DYNAMIC
    return result


@dataclass(frozen=True)
class SecurityFinding:
    """A reported sink or dangerous pattern."""
    type: str
    sink: str
    location: Dict[str, Optional[int]]
    taint_source: Optional[str]
    severity: str
    sanitized: bool
    excerpt: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "sink": self.sink,
            "location": dict(self.location),
            "taintSource": self.taint_source,
            "severity": self.severity,
            "sanitized": self.sanitized,
            "excerpt": self.excerpt,
        }


@dataclass
class MessageHandler:
    """A function registered to receive ``message`` events."""
    function: Dict[str, Any]
    event: Optional[Any]  # Binding of the event parameter
    origin_check: str  # strong, weak, none


class TaintAnalyzer:
    """
    Finds user-controlled values reaching dangerous sinks.

    Args:
        ctx: Analysis context of the program
        resolver: Value resolver sharing that context
    """

    def __init__(self, ctx: AnalysisContext, resolver: ValueResolver):
        self.ctx = ctx
        self.resolver = resolver
        self.model = ctx.model
        self.config = ctx.config
        self.findings: List[SecurityFinding] = []
        self.patterns: List[SecurityFinding] = []
        self.handlers: List[MessageHandler] = []
        self._event_params: Set[int] = set()
        self._handler_functions: Set[int] = set()
        self._sink_ranges: List[Tuple[SecurityFinding, Tuple[int, int]]] = []
        self._graphs: Dict[int, ControlFlowGraph] = {}
        self._seen: Set[Tuple[str, str, Optional[int], Optional[int]]] = set()

    # ----------------------------------------------------------------- driver

    def analyze(self) -> None:
        """Scan the program for sinks and dangerous patterns."""
        self._collect_message_handlers()
        for node in self.model.nodes:
            ntype = node.get("type")
            if ntype == "AssignmentExpression":
                self._check_assignment(node)
            elif ntype == "CallExpression":
                self._check_call(node)
            elif ntype == "NewExpression":
                self._check_new(node)
        self.finalize()
        logger.debug("[%s] taint: %d findings, %d patterns, %d message handlers",
                     self.ctx.source_url, len(self.findings), len(self.patterns), len(self.handlers))

    def finalize(self) -> None:
        """Raise origin-check patterns whose handler contains a high-severity sink."""
        upgraded = []
        for pattern in self.patterns:
            if pattern.type in ("missing_origin_check", "weak_origin_check") and pattern.severity != "high":
                handler = self._handler_at(pattern.location)
                if handler is not None and self._has_high_sink(handler):
                    pattern = replace(pattern, severity="high")
            upgraded.append(pattern)
        self.patterns = upgraded

    def report(self) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Findings and dangerous patterns as report entries."""
        return [f.to_dict() for f in self.findings], [p.to_dict() for p in self.patterns]

    def _handler_at(self, location: Dict[str, Optional[int]]) -> Optional[MessageHandler]:
        for handler in self.handlers:
            if position(handler.function) == (location.get("line"), location.get("column")):
                return handler
        return None

    def _has_high_sink(self, handler: MessageHandler) -> bool:
        start, end = handler.function.get("range") or (None, None)
        if start is None:
            return False
        for finding, (sink_start, _) in self._sink_ranges:
            if finding.severity == "high" and start <= sink_start <= end:
                return True
        return False

    # -------------------------------------------------------- message handlers

    def _collect_message_handlers(self) -> None:
        index = self.ctx.index
        registered: List[Dict[str, Any]] = []
        for call in self.model.calls:
            callee = call.get("callee") or {}
            args = call.get("arguments") or []
            if call.get("type") != "CallExpression" or len(args) < 2:
                continue
            if literal_text(args[0]) != "message":
                continue
            if member_name(callee) == "addEventListener":
                receiver = callee.get("object") or {}
                if index is None or not index.is_global_object(receiver):
                    continue
            elif not (callee.get("type") == "Identifier" and callee.get("name") == "addEventListener"
                      and self.model.is_unbound(callee)):
                continue
            registered.extend(self.resolver.callable_functions(args[1]))
        for node in self.model.nodes:
            if node.get("type") != "AssignmentExpression" or node.get("operator") != "=":
                continue
            left = node.get("left") or {}
            if index is not None and index.is_global_name(left, "onmessage"):
                registered.extend(self.resolver.callable_functions(node.get("right")))

        seen: Set[int] = set()
        for func in registered:
            if id(func) in seen:
                continue
            seen.add(id(func))
            self._handler_functions.add(id(func))
            params = [b for b in self.model.params_of(func) if b.param_index == 0 and b.param_key is None]
            event = params[0] if params else None
            if event is not None:
                self._event_params.add(id(event))
            check = self.origin_check(func, event)
            self.handlers.append(MessageHandler(function=func, event=event, origin_check=check))
            if check == "none":
                self._add_pattern("missing_origin_check", "message handler", func, "medium")
            elif check == "weak":
                self._add_pattern("weak_origin_check", "message handler", func, "low")

    def origin_check(self, func: Dict[str, Any], event) -> str:
        """
        Classify how a message handler validates ``event.origin``.

        Returns:
            ``strong`` for exact comparison or membership in a known list,
            ``weak`` for substring, prefix or regex checks, ``none`` when the
            origin is never inspected
        """
        origins = []
        for node in walk(func.get("body") or {}):
            if node.get("type") != "MemberExpression" or member_name(node) != "origin":
                continue
            obj = node.get("object") or {}
            if event is not None and obj.get("type") == "Identifier" and self.model.binding_for(obj) is event:
                origins.append(node)
            elif obj.get("type") == "Identifier" and obj.get("name") == "event" and self.model.is_unbound(obj):
                origins.append(node)
        # function ({origin, data}) {...}
        for binding in self.model.params_of(func):
            if binding.param_index == 0 and binding.param_key == "origin":
                origins.extend(binding.references)
        if not origins:
            return "none"
        uses = []
        for origin in origins:
            parent = self.model.parent(origin) or {}
            # const origin = e.origin;
            if parent.get("type") == "VariableDeclarator" and self.model.parent_key(origin) == "init":
                binding = self.model.binding_for(parent.get("id") or {})
                if binding is not None and binding.references:
                    uses.extend(binding.references)
                    continue
            uses.append(origin)
        if any(self._origin_use(use) == "strong" for use in uses):
            return "strong"
        return "weak"

    def _origin_use(self, origin: Dict[str, Any]) -> str:
        parent = self.model.parent(origin) or {}
        ptype = parent.get("type")
        if ptype == "BinaryExpression" and parent.get("operator") in ("===", "==", "!==", "!="):
            return "strong"
        if ptype in ("CallExpression", "NewExpression") and self.model.parent_key(origin) == "arguments":
            callee = parent.get("callee") or {}
            if member_name(callee) in ("includes", "indexOf", "has"):
                elements = self.resolver.resolve_to_array(callee.get("object"))
                if elements:
                    return "strong"
                collection = callee.get("object") or {}
                if collection.get("type") == "Identifier" and self.ctx.types is not None \
                        and self.ctx.types.type_of(collection) == "Set":
                    return "strong"
            return "weak"
        return "weak"

    # ------------------------------------------------------------ sink checks

    def _check_assignment(self, node: Dict[str, Any]) -> None:
        operator = node.get("operator")
        left = node.get("left") or {}
        right = node.get("right") or {}
        if operator not in ("=", "+="):
            return
        if left.get("type") == "Identifier":
            index = self.ctx.index
            if left.get("name") == "location" and self.model.is_unbound(left):
                self._report("open_redirect", "location", node, right, "medium")
            elif index is not None and index.is_global_name(left, "location"):
                self._report("open_redirect", "location", node, right, "medium")
            return
        if left.get("type") != "MemberExpression":
            return
        name = member_name(left)
        obj = left.get("object") or {}
        if name in ASSIGNMENT_SINKS:
            finding_type, severity = ASSIGNMENT_SINKS[name]
            self._report(finding_type, name, node, right, severity)
        elif name in ("location", "href") and self._is_location_target(left):
            self._report("open_redirect", describe(left) or "location", node, right, "medium")
        elif name == "__proto__":
            self._report("prototype_pollution", "__proto__", node, right, "high")
        elif name is None and left.get("computed"):
            key = left.get("property") or {}
            if literal_text(key) is None:
                self._report("prototype_pollution", "computed assignment", node, key, "medium")

    def _is_location_target(self, left: Dict[str, Any]) -> bool:
        index = self.ctx.index
        obj = left.get("object") or {}
        if member_name(left) == "location":
            return index is not None and (index.is_global_object(obj) or index.is_global_name(obj, "document"))
        return index is not None and (index.is_global_name(obj, "location")
                                      or (member_name(obj) == "location" and self._is_location_target(obj)))

    def _check_call(self, node: Dict[str, Any]) -> None:
        callee = node.get("callee") or {}
        args = node.get("arguments") or []
        index = self.ctx.index
        name = member_name(callee)
        receiver = callee.get("object") or {}

        global_name = None
        if callee.get("type") == "Identifier" and self.model.is_unbound(callee):
            global_name = callee.get("name")
        elif index is not None:
            global_name = index.global_member(callee)
        if global_name is not None:
            if global_name in CODE_SINKS and args:
                if global_name != "eval" and self.resolver.callable_functions(args[0]):
                    return
                self._report("code_injection", global_name, node, args[0], "high")
                return
            if global_name == "Function" and args:
                self._report("code_injection", "Function", node, args[-1], "high")
                return

        if name is None:
            return
        if name == "postMessage" and len(args) >= 2:
            if "*" in self.resolver.resolve(args[1]):
                self._add_pattern("wildcard_postmessage", "postMessage", node, "medium")
            return
        if name == "createPolicy" and index is not None and index.is_global_name(receiver, "trustedTypes"):
            self._check_policy(node)
            return
        if name in REDIRECT_METHODS and args and self._is_location(receiver):
            self._report("open_redirect", f"location.{name}", node, args[0], "medium")
            return
        if name == "setAttribute" and len(args) >= 2:
            attribute = (self.resolver.resolve(args[0]) or [""])[0].lower()
            if attribute.startswith("on") or attribute == "srcdoc":
                self._report("xss", f"setAttribute({attribute})", node, args[1], "high")
            elif attribute in URL_ATTRIBUTES:
                self._report("xss", f"setAttribute({attribute})", node, args[1], "medium")
            return
        if name in ("defineProperty",) and len(args) >= 2 and index is not None \
                and index.is_global_name(receiver, "Object"):
            self._report("prototype_pollution", "Object.defineProperty", node, args[1], "high")
            return
        if name == "set" and len(args) >= 2 and index is not None and index.is_global_name(receiver, "Reflect"):
            self._report("prototype_pollution", "Reflect.set", node, args[1], "high")
            return
        if name in METHOD_SINKS:
            finding_type, severity, position_ = METHOD_SINKS[name]
            if name in HTML_METHODS_NEED_RECEIVER and not (index is not None and index.is_global_name(receiver, "document")):
                return
            if position_ < len(args):
                self._report(finding_type, name, node, args[position_], severity)

    def _check_new(self, node: Dict[str, Any]) -> None:
        callee = node.get("callee") or {}
        args = node.get("arguments") or []
        index = self.ctx.index
        if not args or index is None:
            return
        if index.is_global_name(callee, "Function"):
            self._report("code_injection", "new Function", node, args[-1], "high")
        elif index.is_global_name(callee, "RegExp") and literal_text(args[0]) is None:
            self._report("regex_injection", "new RegExp", node, args[0], "low")

    def _check_policy(self, node: Dict[str, Any]) -> None:
        """``trustedTypes.createPolicy(name, {createHTML: s => s})`` passthrough rules."""
        args = node.get("arguments") or []
        if len(args) < 2:
            return
        shape = self.resolver.resolve_to_object(args[1])
        if shape is None:
            return
        for rule, value in shape.properties.items():
            if rule not in TRUSTED_TYPES_METHODS:
                continue
            for func in self.resolver.callable_functions(value):
                params = self.model.params_of(func)
                returned = self.model.returns_of(func)
                if params and returned and all(
                        r.get("type") == "Identifier" and self.model.binding_for(r) is params[0]
                        for r in returned):
                    self._add_pattern("trusted_types_passthrough", f"createPolicy.{rule}", node, "medium")
                    return

    def _is_location(self, node: Dict[str, Any]) -> bool:
        index = self.ctx.index
        if index is None:
            return False
        if index.is_global_name(node, "location"):
            return True
        return member_name(node) == "location" and index.is_global_name(node.get("object") or {}, "document")

    # -------------------------------------------------------------- reporting

    def _report(self, finding_type: str, sink: str, node: Dict[str, Any],
                value: Optional[Dict[str, Any]], severity: str) -> None:
        if not value:
            return
        source = self.trace_value_source(value)
        if not source.user_controlled:
            return
        sanitized = self.sanitized(node, value)
        if sanitized:
            severity = "low"
        self._emit(self.findings, finding_type, sink, node, source.label, severity, sanitized)

    def _add_pattern(self, pattern_type: str, sink: str, node: Dict[str, Any], severity: str) -> None:
        self._emit(self.patterns, pattern_type, sink, node, None, severity, False)

    def _emit(self, target: List[SecurityFinding], finding_type: str, sink: str, node: Dict[str, Any],
              taint_source: Optional[str], severity: str, sanitized: bool) -> None:
        line, column = position(node)
        key = (finding_type, sink, line, column)
        if key in self._seen:
            return
        self._seen.add(key)
        excerpt = source_excerpt(self.model.source, line, column,
                                 self.config.excerpt_lines, self.config.excerpt_width)
        finding = SecurityFinding(
            type=finding_type,
            sink=sink,
            location={"line": line, "column": column},
            taint_source=taint_source,
            severity=severity,
            sanitized=sanitized,
            excerpt=excerpt,
        )
        target.append(finding)
        if "range" in node:
            self._sink_ranges.append((finding, tuple(node["range"])))
        logger.debug("[%s] %s via %s at %s:%s", finding_type, sink, taint_source, line, column)

    # ------------------------------------------------------------ sanitizers

    def sanitized(self, sink: Dict[str, Any], value: Dict[str, Any]) -> bool:
        """True when sanitizer calls on the sink's inputs dominate the sink."""
        func = self.model.enclosing_function(sink)
        body = func.get("body") if func is not None else self.model.root
        if not body:
            return False
        paths = self._access_paths(value)
        if not paths:
            return False
        sanitizers = []
        for node in walk(body, skip_nested=True):
            if node.get("type") != "CallExpression" or not self._is_sanitizer_call(node):
                continue
            if any(self._access_paths(arg, outermost=True) & paths for arg in node.get("arguments") or []):
                sanitizers.append(node)
        if not sanitizers:
            return False
        key = id(body)
        graph = self._graphs.get(key)
        if graph is None:
            graph = self._graphs[key] = ControlFlowGraph(body, self.model.parents)
        return is_sanitized(graph, sink, sanitizers)

    def _access_paths(self, root: Dict[str, Any], outermost: bool = False) -> Set[Tuple[int, str]]:
        """
        Binding-qualified member chains read by an expression.

        Each chain is keyed by the binding of its root identifier (0 for a
        global) and its dotted name, so ``location.search`` and
        ``location.hash`` differ while two reads of one local match. With
        ``outermost`` only the full chains are kept, not their prefixes.
        """
        paths: Set[Tuple[int, str]] = set()
        for node in walk(root, skip_nested=True):
            if node.get("type") not in ("Identifier", "MemberExpression"):
                continue
            parent = self.model.parents.get(id(node)) or {}
            if parent.get("type") in ("MemberExpression", "Property") and not parent.get("computed") \
                    and (parent.get("property") is node or parent.get("key") is node):
                continue
            if parent.get("type") in ("CallExpression", "NewExpression") and parent.get("callee") is node:
                continue
            if outermost and parent.get("type") == "MemberExpression" and parent.get("object") is node:
                grand = self.model.parents.get(id(parent)) or {}
                if grand.get("callee") is not parent:
                    continue
            chain = describe(node)
            if chain is None:
                continue
            head = chain_root(node)
            binding = self.model.binding_for(head) if head.get("type") == "Identifier" else None
            paths.add((id(binding) if binding is not None else 0, chain))
        return paths

    def _is_sanitizer_call(self, call: Dict[str, Any]) -> bool:
        """
        True for a call to a known sanitizer that the script does not shadow.

        Bare names must be unbound globals. Methods must hang off a global
        or imported root, or a well-known sanitizer library.
        """
        callee = call.get("callee") or {}
        if callee.get("type") == "Identifier":
            return callee.get("name") in SANITIZER_FUNCTIONS and self.model.is_unbound(callee)
        name = member_name(callee)
        if name not in SANITIZER_METHODS and name not in SANITIZER_FUNCTIONS:
            return False
        head = chain_root(callee)
        if head.get("type") == "CallExpression":
            head = chain_root(head.get("callee") or {})
        if head.get("type") != "Identifier":
            return False
        if head.get("name") not in SANITIZER_LIBRARIES and not self.model.is_unbound(head):
            binding = self.model.binding_for(head)
            if binding is None or binding.kind != "import":
                return False
        if name == "text":
            chain = describe(callee) or ""
            return chain.startswith("$") or chain.startswith("jQuery")
        return True

    # ------------------------------------------------------------ classification

    def trace_value_source(self, node: Optional[Dict[str, Any]], depth: int = 0) -> TaintClassification:
        """
        Classify where the value of ``node`` comes from.

        Memoized per run unless the answer depended on bound argument frames
        or a branch cut short by the cycle guard or depth cap.
        """
        if not node:
            return DYNAMIC
        if literal_text(node) is not None or node.get("type") == "Literal":
            return LITERAL
        if depth > self.config.max_depth:
            self.ctx.truncations += 1
            return DYNAMIC
        if not self.ctx.frames:
            cached = self.ctx.taint_cache.get(id(node))
            if cached is not None:
                return cached
        key = self.ctx.enter(ResolutionKind.TAINT, node)
        if key is None:
            return DYNAMIC
        snapshot = self.ctx.snapshot()
        try:
            result = self._classify(node, depth)
        except RecursionError as e:
            self.ctx.record_error(f"taint:{node.get('type')}", e)
            result = DYNAMIC
        finally:
            self.ctx.leave(key)
        if self.ctx.cacheable(snapshot):
            self.ctx.taint_cache[id(node)] = result
        return result

    def _source(self, label: str, node: Dict[str, Any]) -> TaintClassification:
        return TaintClassification(TaintKind.USER_CONTROLLED, label, position(node))

    def _classify(self, node: Dict[str, Any], depth: int) -> TaintClassification:
        ntype = node.get("type")
        trace = self.trace_value_source
        if ntype == "TemplateLiteral":
            return combine(*(trace(expr, depth + 1) for expr in node.get("expressions") or []))
        if ntype == "BinaryExpression":
            if node.get("operator") != "+":
                return DYNAMIC
            return combine(trace(node.get("left"), depth + 1), trace(node.get("right"), depth + 1))
        if ntype == "LogicalExpression":
            return combine(trace(node.get("left"), depth + 1), trace(node.get("right"), depth + 1))
        if ntype == "ConditionalExpression":
            return combine(trace(node.get("consequent"), depth + 1), trace(node.get("alternate"), depth + 1))
        if ntype in ("SpreadElement", "AwaitExpression"):
            return trace(node.get("argument"), depth + 1)
        if ntype == "SequenceExpression":
            return trace((node.get("expressions") or [None])[-1], depth + 1)
        if ntype == "AssignmentExpression":
            return trace(node.get("right"), depth + 1)
        if ntype == "ArrayExpression":
            return combine(*(trace(el, depth + 1) for el in node.get("elements") or [] if el))
        if ntype == "ObjectExpression":
            return combine(*(trace(prop.get("value") if prop.get("type") == "Property" else prop.get("argument"),
                                   depth + 1)
                             for prop in node.get("properties") or []))
        if ntype == "Identifier":
            return self._classify_identifier(node, depth)
        if ntype == "MemberExpression":
            return self._classify_member(node, depth)
        if ntype == "CallExpression":
            return self._classify_call(node, depth)
        if ntype == "NewExpression":
            index = self.ctx.index
            callee = node.get("callee") or {}
            if index is not None and any(index.is_global_name(callee, name) for name in PASS_THROUGH_CONSTRUCTORS):
                return combine(*(trace(arg, depth + 1) for arg in node.get("arguments") or []))
            return DYNAMIC
        return DYNAMIC

    def _classify_identifier(self, node: Dict[str, Any], depth: int) -> TaintClassification:
        binding = self.model.binding_for(node)
        if binding is None:
            if node.get("name") == "location" and self.model.is_unbound(node):
                return self._source("location", node)
            index = self.ctx.index
            if index is None:
                return DYNAMIC
            entries = index.lookup(node["name"])
            if not entries:
                return DYNAMIC
            return combine(*(self.trace_value_source(entry.definition, depth + 1) for entry in entries))

        bound = self.ctx.bound_argument(binding)
        if bound is not None:
            frame_index, argument, key = bound
            with self.ctx.outer_frames(frame_index):
                return self.trace_value_source(argument, depth + 1)

        if binding.kind in ("function", "class", "import"):
            return DYNAMIC
        if binding.is_param:
            return self._classify_param(binding, depth)

        groups = []
        if binding.init is not None:
            groups.append(self.trace_value_source(binding.init, depth + 1))
        if binding.pattern_source is not None:
            groups.append(self._classify_pattern(binding, depth))
        if len(binding.violations) > self.config.max_mutations:
            return combine(DYNAMIC, *groups)
        for writer in binding.violations:
            if writer.get("type") == "AssignmentExpression":
                groups.append(self.trace_value_source(writer.get("right"), depth + 1))
            elif writer.get("type") == "VariableDeclarator":
                groups.append(self.trace_value_source(writer.get("init"), depth + 1))
            elif writer.get("type") in ("ForInStatement", "ForOfStatement"):
                groups.append(self.trace_value_source(writer.get("right"), depth + 1))
        if not groups:
            declarator = binding.declarator or {}
            loop = self.model.parent(declarator) or {}
            loop = self.model.parent(loop) or {}
            if loop.get("type") == "ForOfStatement":
                return self.trace_value_source(loop.get("right"), depth + 1)
            return DYNAMIC
        return combine(*groups)

    def _classify_pattern(self, binding, depth: int) -> TaintClassification:
        source = binding.pattern_source
        key = binding.param_key
        if key is not None and self._is_location(source) and key in LOCATION_PROPERTIES:
            return self._source(f"location.{key}", binding.identifier)
        return self.trace_value_source(source, depth + 1)

    def _classify_param(self, binding, depth: int) -> TaintClassification:
        func = binding.function
        if func is None:
            return DYNAMIC
        if id(binding) in self._event_params:
            return DYNAMIC
        if id(func) in self._handler_functions and binding.param_index == 0 and binding.param_key == "data":
            return self._source("event.data", binding.identifier)
        # Iteration callbacks inherit the receiver's taint
        call = self.model.parent(func) or {}
        if call.get("type") == "CallExpression" and self.model.parent_key(func) == "arguments":
            callee = call.get("callee") or {}
            method = member_name(callee)
            element = 0 if method == "then" else ITERATION_METHODS.get(method)
            if element is not None and binding.param_index == element and binding.param_key is None:
                receiver = callee.get("object") or {}
                if method != "then" and self.ctx.types is not None and self.ctx.types.is_non_iterable(receiver):
                    return DYNAMIC
                return self.trace_value_source(receiver, depth + 1)
        paths = self.resolver.callers.argument_paths(binding)[:self.config.max_callers]
        classes = []
        for path in paths:
            if path.overloaded:
                continue
            if binding.param_key is not None:
                classes.append(self._classify_property(path.argument, binding.param_key, depth))
            else:
                classes.append(self.trace_value_source(path.argument, depth + 1))
        if binding.default is not None:
            classes.append(self.trace_value_source(binding.default, depth + 1))
        if not classes:
            return DYNAMIC
        return combine(*classes)

    def _classify_property(self, obj: Dict[str, Any], prop: str, depth: int) -> TaintClassification:
        """Taint of ``obj.prop`` without a member node to hang it on."""
        if self._is_location(obj) and prop in LOCATION_PROPERTIES:
            return self._source(f"location.{prop}", obj)
        shape = self.resolver.resolve_to_object(obj, depth + 1)
        if shape is not None and prop in shape.properties:
            return self.trace_value_source(shape.properties[prop], depth + 1)
        return self.trace_value_source(obj, depth + 1)

    def _classify_member(self, node: Dict[str, Any], depth: int) -> TaintClassification:
        index = self.ctx.index
        obj = node.get("object") or {}
        name = member_name(node)

        if name in LOCATION_PROPERTIES and self._is_location(obj):
            return self._source(f"location.{name}", node)
        if name == "location" and index is not None and (index.is_global_object(obj)
                                                         or index.is_global_name(obj, "document")):
            return self._source("location", node)
        if name in DOCUMENT_PROPERTIES and index is not None and index.is_global_name(obj, "document"):
            return self._source(f"document.{name}", node)
        if name == "name" and index is not None and index.is_global_object(obj):
            return self._source("window.name", node)
        if name == "data" and obj.get("type") == "Identifier":
            binding = self.model.binding_for(obj)
            if binding is not None and id(binding) in self._event_params:
                return self._source("event.data", node)

        if name is None:
            base = self.trace_value_source(obj, depth + 1)
            if base.user_controlled:
                return base
            shape = self.resolver.resolve_to_object(obj, depth + 1)
            if shape is None:
                return DYNAMIC
            keys = self.resolver.resolve(node.get("property"), depth + 1)
            return combine(DYNAMIC, *(self.trace_value_source(shape.properties[k], depth + 1)
                                      for k in keys if k in shape.properties))
        if name == "length":
            return DYNAMIC

        base = self.trace_value_source(obj, depth + 1)
        if base.user_controlled:
            return base
        classes = []
        shape = self.resolver.resolve_to_object(obj, depth + 1)
        if shape is not None and name in shape.properties:
            classes.append(self.trace_value_source(shape.properties[name], depth + 1))
        for value in self.resolver.assigned_members(obj, name):
            classes.append(self.trace_value_source(value, depth + 1))
        if classes:
            return combine(*classes)
        return DYNAMIC

    def _classify_call(self, node: Dict[str, Any], depth: int) -> TaintClassification:
        callee = node.get("callee") or {}
        args = node.get("arguments") or []
        index = self.ctx.index
        name = member_name(callee)
        receiver = callee.get("object") or {}

        if self._is_sanitizer_call(node):
            return DYNAMIC
        if name == "getItem" and index is not None and any(index.is_global_name(receiver, storage)
                                                          for storage in STORAGE_OBJECTS):
            return self._source(describe(callee) or "storage", node)
        if name in ("toString", "valueOf") and self._is_location(receiver):
            return self._source("location", node)
        if callee.get("type") == "Identifier" and self.model.is_unbound(callee):
            if callee.get("name") in PASS_THROUGH_FUNCTIONS:
                return combine(*(self.trace_value_source(arg, depth + 1) for arg in args))
        if name in TRUSTED_TYPES_METHODS and args:
            return self.trace_value_source(args[0], depth + 1)
        if name == "assign" and index is not None and index.is_global_name(receiver, "Object"):
            return combine(*(self.trace_value_source(arg, depth + 1) for arg in args))
        if name == "parse" and index is not None and index.is_global_name(receiver, "JSON") and args:
            return self.trace_value_source(args[0], depth + 1)

        classes = []
        for func, offset in self.resolver.call_targets(node, depth + 1):
            if self.ctx.is_bound(func):
                continue
            with self.ctx.bind_arguments(func, node, offset):
                for returned in self.model.returns_of(func):
                    classes.append(self.trace_value_source(returned, depth + 1))
        if classes:
            return combine(*classes)

        if name is not None:
            base = self.trace_value_source(receiver, depth + 1)
            if base.user_controlled:
                return base
        return DYNAMIC
