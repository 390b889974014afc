"""
Interprocedural value resolution.

Given an expression node, the resolver answers one of four questions about
it: which scalar values it can take, which object literal shape it holds,
which array elements it holds, or which functions it can evaluate to.
Every question is an explicit ResolutionRequest dispatched through a handler
table keyed by node type, guarded against cycles by the AnalysisContext and
bounded by the configured depth and size caps.

The rules deliberately over-approximate: concatenations zip the candidate
lists positionally (broadcasting the last value of a shorter list) and
conditional/logical branches are unioned.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Any, Iterable, Iterator, Optional
from urllib.parse import quote

from .context import AnalysisContext, ResolutionKind
from .scope import (
    FUNCTION_TYPES, Binding, chain_root, describe, iter_children, literal_text,
    literal_value, member_name, property_key, walk,
)

logger = logging.getLogger(__name__)

CLASS_TYPES = frozenset({"ClassDeclaration", "ClassExpression"})

STRING_TRANSFORMS: Dict[str, Callable[[str], str]] = {
    "toLowerCase": str.lower,
    "toLocaleLowerCase": str.lower,
    "toUpperCase": str.upper,
    "toLocaleUpperCase": str.upper,
    "trim": str.strip,
    "trimStart": str.lstrip,
    "trimLeft": str.lstrip,
    "trimEnd": str.rstrip,
    "trimRight": str.rstrip,
    "toString": str,
    "valueOf": str,
    "normalize": str,
}

# Global encoders whose output is the argument with URL escaping applied
URL_ENCODERS = {
    "encodeURIComponent": "-_.!~*'()",
    "encodeURI": "-_.!~*'();/?:@&=+$,#",
}

# Object merge helpers: Object.assign(target, ...), $.extend(target, ...)
MERGE_METHODS = frozenset({"assign", "extend", "merge", "defaults", "mixin", "assignIn"})


@dataclass(frozen=True, eq=False)
class ResolutionRequest:
    """One question about one node."""
    node: Dict[str, Any]
    kind: ResolutionKind = ResolutionKind.VALUES
    prop: Optional[str] = None
    depth: int = 0


@dataclass
class ObjectShape:
    """Statically known properties of an object: key -> value expression."""
    properties: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    origin: Optional[Dict[str, Any]] = None

    def merge(self, other: Optional["ObjectShape"], override: bool = True) -> None:
        """Shallow merge; keys from ``other`` win unless ``override`` is False."""
        if other is None:
            return
        for key, value in other.properties.items():
            if override or key not in self.properties:
                self.properties[key] = value
        if self.origin is None:
            self.origin = other.origin


@dataclass
class ThisOwner:
    """The functions that share one ``this`` and where its members are defined."""
    functions: List[Dict[str, Any]] = field(default_factory=list)
    literals: List[Dict[str, Any]] = field(default_factory=list)
    cls: Optional[Dict[str, Any]] = None
    constructor: Optional[Dict[str, Any]] = None
    prototype_chain: Optional[str] = None
    prototype_root: Optional[Binding] = None


def cooked(quasi: Dict[str, Any]) -> str:
    value = quasi.get("value") or {}
    text = value.get("cooked")
    if text is None:
        text = value.get("raw")
    return text or ""


def template_placeholder(node: Dict[str, Any]) -> str:
    """Render a template literal with ``{name}`` in place of each interpolation."""
    parts: List[str] = []
    quasis = node.get("quasis") or []
    expressions = node.get("expressions") or []
    for i, quasi in enumerate(quasis):
        value = quasi.get("value") or {}
        parts.append(value.get("raw") or value.get("cooked") or "")
        if i < len(expressions):
            expr = expressions[i]
            if expr.get("type") == "Identifier":
                name = expr["name"]
            else:
                name = describe(expr) or f"param{i}"
            parts.append("{" + name + "}")
    return "".join(parts)


def flatten_concat(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Terms of an ``a + b + c`` chain in source order, without recursion."""
    terms: List[Dict[str, Any]] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.get("type") == "BinaryExpression" and current.get("operator") == "+":
            stack.append(current.get("right") or {})
            stack.append(current.get("left") or {})
        else:
            terms.append(current)
    return terms


def flatten_branches(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Result branches of nested ternary and ``||``/``??``/``&&`` expressions."""
    branches: List[Dict[str, Any]] = []
    stack = [node]
    while stack:
        current = stack.pop()
        ctype = current.get("type")
        if ctype == "ConditionalExpression":
            stack.append(current.get("alternate") or {})
            stack.append(current.get("consequent") or {})
        elif ctype == "LogicalExpression" and current.get("operator") in ("||", "??"):
            stack.append(current.get("right") or {})
            stack.append(current.get("left") or {})
        elif ctype == "LogicalExpression" and current.get("operator") == "&&":
            stack.append(current.get("right") or {})
        else:
            branches.append(current)
    return branches


class ValueResolver:
    """
    Resolves expressions to value sets, object shapes, arrays and functions.

    Owns the CallerTracer used for parameters so the two can recurse into
    each other through the shared AnalysisContext.
    """

    def __init__(self, ctx: AnalysisContext):
        from .callers import CallerTracer

        self.ctx = ctx
        self.model = ctx.model
        self.config = ctx.config
        self.callers = CallerTracer(ctx, self)
        self._owners: Dict[int, ThisOwner] = {}

        self._handlers: Dict[ResolutionKind, Dict[str, Callable[[ResolutionRequest], Any]]] = {
            ResolutionKind.VALUES: {
                "TemplateLiteral": self._values_template,
                "BinaryExpression": self._values_binary,
                "ConditionalExpression": self._values_branches,
                "LogicalExpression": self._values_branches,
                "CallExpression": self._values_call,
                "Identifier": self._values_identifier,
                "MemberExpression": self._values_member,
                "AssignmentExpression": self._values_assignment,
                "SequenceExpression": self._values_sequence,
                "UnaryExpression": self._values_unary,
            },
            ResolutionKind.OBJECT: {
                "ObjectExpression": self._object_literal,
                "Identifier": self._object_identifier,
                "MemberExpression": self._object_member,
                "CallExpression": self._object_call,
                "ConditionalExpression": self._object_branches,
                "LogicalExpression": self._object_branches,
                "AssignmentExpression": self._object_assignment,
                "SequenceExpression": self._object_sequence,
                "ThisExpression": self._object_this,
            },
            ResolutionKind.ARRAY: {
                "ArrayExpression": self._array_literal,
                "Identifier": self._array_identifier,
                "MemberExpression": self._array_member,
                "CallExpression": self._array_call,
                "ConditionalExpression": self._array_branches,
                "LogicalExpression": self._array_branches,
            },
            ResolutionKind.FUNCTIONS: {
                "FunctionExpression": self._functions_self,
                "ArrowFunctionExpression": self._functions_self,
                "FunctionDeclaration": self._functions_self,
                "ClassExpression": self._functions_self,
                "ClassDeclaration": self._functions_self,
                "Identifier": self._functions_identifier,
                "MemberExpression": self._functions_member,
                "CallExpression": self._functions_call,
                "ConditionalExpression": self._functions_branches,
                "LogicalExpression": self._functions_branches,
                "AssignmentExpression": self._functions_assignment,
                "SequenceExpression": self._functions_sequence,
            },
        }

    # ------------------------------------------------------------ public API

    def resolve(self, node: Optional[Dict[str, Any]], depth: int = 0) -> List[str]:
        """Values ``node`` can statically take (empty when unknown)."""
        if not node:
            return []
        return self.dispatch(ResolutionRequest(node, ResolutionKind.VALUES, None, depth))

    def read_property(self, obj: Optional[Dict[str, Any]], prop: str, depth: int = 0) -> List[str]:
        """Values of ``obj.prop`` without materializing ``obj`` when it is a parameter."""
        if not obj:
            return []
        return self.dispatch(ResolutionRequest(obj, ResolutionKind.VALUES, prop, depth))

    def resolve_to_object(self, node: Optional[Dict[str, Any]], depth: int = 0) -> Optional[ObjectShape]:
        if not node:
            return None
        return self.dispatch(ResolutionRequest(node, ResolutionKind.OBJECT, None, depth))

    def resolve_to_array(self, node: Optional[Dict[str, Any]],
                         depth: int = 0) -> Optional[List[Dict[str, Any]]]:
        if not node:
            return None
        return self.dispatch(ResolutionRequest(node, ResolutionKind.ARRAY, None, depth))

    def resolve_functions(self, node: Optional[Dict[str, Any]], depth: int = 0) -> List[Dict[str, Any]]:
        """Function (or class) nodes ``node`` can evaluate to."""
        if not node:
            return []
        return self.dispatch(ResolutionRequest(node, ResolutionKind.FUNCTIONS, None, depth))

    def callable_functions(self, node: Optional[Dict[str, Any]], depth: int = 0) -> List[Dict[str, Any]]:
        """Like :meth:`resolve_functions` but classes are replaced by their constructors."""
        out: List[Dict[str, Any]] = []
        for func in self.resolve_functions(node, depth):
            if func.get("type") in CLASS_TYPES:
                func = self.class_constructor(func)
            if func is not None and func.get("type") in FUNCTION_TYPES and func not in out:
                out.append(func)
        return out

    def dispatch(self, request: ResolutionRequest) -> Any:
        """Answer ``request``; the single entry point for every rule."""
        node = request.node
        kind = request.kind
        if kind is ResolutionKind.VALUES and request.prop is None:
            text = literal_text(node)
            if text is not None:
                return [text]
            if node.get("type") == "TemplateLiteral" and not node.get("expressions"):
                return ["".join(cooked(q) for q in node.get("quasis") or [])]

        empty = self._empty(kind)
        if request.depth > self.config.max_depth:
            self.ctx.truncations += 1
            return empty

        if request.prop is not None:
            handler = self._values_property
        else:
            handler = self._handlers[kind].get(node.get("type"))
        if handler is None:
            return empty

        cache_key = (kind, id(node), request.prop)
        if not self.ctx.frames and cache_key in self.ctx.value_cache:
            return self.ctx.value_cache[cache_key]

        key = self.ctx.enter(kind, node, request.prop)
        if key is None:
            return empty
        snapshot = self.ctx.snapshot()
        try:
            result = handler(request)
        except RecursionError as e:
            self.ctx.record_error(f"{kind.value}:{node.get('type')}", e)
            result = empty
        finally:
            self.ctx.leave(key)

        if result is None:
            result = empty
        if self.ctx.cacheable(snapshot):
            self.ctx.value_cache[cache_key] = result
        return result

    def union(self, *groups: Iterable[str]) -> List[str]:
        """Ordered, de-duplicated union capped at ``max_values``."""
        out: List[str] = []
        seen = set()
        for group in groups:
            for value in group:
                if value in seen:
                    continue
                seen.add(value)
                out.append(value)
                if len(out) >= self.config.max_values:
                    return out
        return out

    def zip_columns(self, columns: List[List[str]]) -> List[str]:
        """
        Concatenate candidate lists positionally.

        Shorter lists broadcast their last value, so ``[a1, a2] + [b1]``
        gives ``[a1b1, a2b1]``.
        """
        if not columns:
            return []
        width = min(max(len(column) for column in columns), self.config.max_values)
        return [
            "".join(column[min(i, len(column) - 1)] for column in columns)
            for i in range(width)
        ]

    @staticmethod
    def _empty(kind: ResolutionKind) -> Any:
        if kind in (ResolutionKind.OBJECT, ResolutionKind.ARRAY):
            return None
        return []

    # ------------------------------------------------------------ value rules

    def _values_template(self, req: ResolutionRequest) -> List[str]:
        node = req.node
        quasis = node.get("quasis") or []
        expressions = node.get("expressions") or []
        columns: List[List[str]] = []
        for i, quasi in enumerate(quasis):
            columns.append([cooked(quasi)])
            if i < len(expressions):
                values = self.resolve(expressions[i], req.depth + 1)
                if not values:
                    return [template_placeholder(node)]
                columns.append(values)
        return self.zip_columns(columns)

    def _values_binary(self, req: ResolutionRequest) -> List[str]:
        if req.node.get("operator") != "+":
            return []
        columns: List[List[str]] = []
        for term in flatten_concat(req.node):
            values = self.resolve(term, req.depth)
            if not values:
                return []
            columns.append(values)
        return self.zip_columns(columns)

    def _values_branches(self, req: ResolutionRequest) -> List[str]:
        branches = flatten_branches(req.node)
        if len(branches) == 1 and branches[0] is req.node:
            return []
        return self.union(*(self.resolve(branch, req.depth + 1) for branch in branches))

    def _values_assignment(self, req: ResolutionRequest) -> List[str]:
        if req.node.get("operator") != "=":
            return []
        return self.resolve(req.node.get("right"), req.depth + 1)

    def _values_sequence(self, req: ResolutionRequest) -> List[str]:
        expressions = req.node.get("expressions") or []
        return self.resolve(expressions[-1], req.depth + 1) if expressions else []

    def _values_unary(self, req: ResolutionRequest) -> List[str]:
        node = req.node
        argument = node.get("argument") or {}
        if node.get("operator") == "-" and isinstance(literal_value(argument), (int, float)):
            return ["-" + literal_text(argument)]
        return []

    def _values_call(self, req: ResolutionRequest) -> List[str]:
        node = req.node
        callee = node.get("callee") or {}
        args = node.get("arguments") or []
        depth = req.depth

        values = self._returned_values(node, depth)
        if values:
            self.ctx.stats["interproc"] += 1
            return values

        if callee.get("type") == "Identifier" and self.model.is_unbound(callee):
            name = callee["name"]
            if name == "String" and args:
                return self.resolve(args[0], depth + 1)
            if name in URL_ENCODERS and args:
                safe = URL_ENCODERS[name]
                return [quote(value, safe=safe) for value in self.resolve(args[0], depth + 1)]
            return []

        method = member_name(callee)
        if method is None:
            return []
        receiver = callee.get("object") or {}

        if method in STRING_TRANSFORMS:
            transform = STRING_TRANSFORMS[method]
            return [transform(value) for value in self.resolve(receiver, depth + 1)]
        if method in ("replace", "replaceAll") and len(args) >= 2:
            base = self.resolve(receiver, depth + 1)
            pattern = literal_text(args[0])
            replacement = literal_text(args[1])
            if pattern is None or replacement is None:
                return base
            count = -1 if method == "replaceAll" else 1
            return [value.replace(pattern, replacement, count) for value in base]
        if method in ("slice", "substring", "substr") and args:
            bounds = [literal_value(arg) for arg in args[:2]]
            if not all(isinstance(b, int) and not isinstance(b, bool) for b in bounds):
                return []
            out = []
            for value in self.resolve(receiver, depth + 1):
                if method == "substr":
                    start = bounds[0]
                    end = start + bounds[1] if len(bounds) > 1 else None
                    out.append(value[start:end])
                elif method == "substring":
                    out.append(value[max(0, bounds[0]):bounds[1] if len(bounds) > 1 else None])
                else:
                    out.append(value[bounds[0]:bounds[1] if len(bounds) > 1 else None])
            return out
        if method == "concat" and receiver.get("type") != "ArrayExpression":
            columns = []
            for part in [receiver] + args:
                part_values = self.resolve(part, depth + 1)
                if not part_values:
                    return []
                columns.append(part_values)
            return self.zip_columns(columns)
        if method == "join":
            return self._values_join(receiver, args, depth)
        return []

    def _returned_values(self, call: Dict[str, Any], depth: int) -> List[str]:
        values: List[str] = []
        for func, offset in self.call_targets(call, depth + 1):
            if self.ctx.is_bound(func):
                continue
            with self.ctx.bind_arguments(func, call, offset):
                for returned in self.model.returns_of(func):
                    values = self.union(values, self.resolve(returned, depth + 1))
        return values

    def call_targets(self, call: Dict[str, Any], depth: int = 0) -> List[Any]:
        """``(function, argument offset)`` pairs a call can invoke."""
        callee = call.get("callee") or {}
        if member_name(callee) == "call" and call.get("type") == "CallExpression":
            return [(func, 1) for func in self.callable_functions(callee.get("object"), depth)]
        return [(func, 0) for func in self.callable_functions(callee, depth)]

    def _values_join(self, receiver: Dict[str, Any], args: List[Dict[str, Any]], depth: int) -> List[str]:
        elements = self.resolve_to_array(receiver, depth + 1)
        if elements is None:
            return []
        separator = ","
        if args:
            sep = literal_text(args[0])
            if sep is None:
                return []
            separator = sep
        columns: List[List[str]] = []
        for i, element in enumerate(elements):
            if i:
                columns.append([separator])
            element_values = self.resolve(element, depth + 1)
            if not element_values:
                return []
            columns.append(element_values)
        return self.zip_columns(columns) if columns else [""]

    def _values_identifier(self, req: ResolutionRequest) -> List[str]:
        node = req.node
        if node.get("name") == "undefined" and self.model.is_unbound(node):
            return []
        binding = self.model.binding_for(node)
        if binding is None:
            return self._values_global(node["name"], req.depth)
        return self._values_binding(binding, req.depth)

    def _values_binding(self, binding: Binding, depth: int) -> List[str]:
        bound = self.ctx.bound_argument(binding)
        if bound is not None:
            index, argument, key = bound
            with self.ctx.outer_frames(index):
                if key is not None:
                    values = self.read_property(argument, key, depth + 1)
                else:
                    values = self.resolve(argument, depth + 1)
            if not values and binding.default is not None:
                values = self.resolve(binding.default, depth + 1)
            return values

        if binding.kind in ("function", "class", "import"):
            return []

        if binding.constant:
            if binding.init is not None:
                values = self.resolve(binding.init, depth + 1)
                if values:
                    self.ctx.stats["resolved"] += 1
                    return values
            if binding.pattern_source is not None and binding.param_key is not None:
                values = self.read_property(binding.pattern_source, binding.param_key, depth + 1)
                if values:
                    return values

        if binding.is_param:
            values = self.callers.values_for_parameter(binding, None, depth + 1)
            if binding.default is not None:
                values = self.union(values, self.resolve(binding.default, depth + 1))
            if values:
                self.ctx.stats["interproc"] += 1
            return values

        if binding.violations and len(binding.violations) <= self.config.max_mutations:
            groups = []
            if binding.init is not None:
                groups.append(self.resolve(binding.init, depth + 1))
            for writer in binding.violations:
                if writer.get("type") == "AssignmentExpression" and writer.get("operator") == "=":
                    groups.append(self.resolve(writer.get("right"), depth + 1))
                elif writer.get("type") == "VariableDeclarator":
                    groups.append(self.resolve(writer.get("init"), depth + 1))
            return self.union(*groups)
        return []

    def _values_global(self, name: str, depth: int) -> List[str]:
        index = self.ctx.index
        if index is None:
            return []
        return self.union(*(self.resolve(entry.definition, depth + 1) for entry in index.lookup(name)))

    def _values_member(self, req: ResolutionRequest) -> List[str]:
        node = req.node
        obj = node.get("object") or {}
        prop = member_name(node)
        if prop is None:
            return self._values_computed(req)
        if self.ctx.index is not None:
            name = self.ctx.index.global_member(node)
            if name is not None:
                values = self._values_global(name, req.depth)
                if values:
                    return values
        if prop == "length":
            return []
        return self.read_property(obj, prop, req.depth + 1)

    def _values_computed(self, req: ResolutionRequest) -> List[str]:
        node = req.node
        obj = node.get("object") or {}
        keys = self.resolve(node.get("property"), req.depth + 1)
        if keys:
            return self.union(*(self.read_property(obj, key, req.depth + 1) for key in keys))
        shape = self.resolve_to_object(obj, req.depth + 1)
        if shape is not None and shape.properties:
            return self.union(*(self.resolve(value, req.depth + 1) for value in shape.properties.values()))
        elements = self.resolve_to_array(obj, req.depth + 1)
        if elements:
            return self.union(*(self.resolve(element, req.depth + 1) for element in elements))
        return []

    def _values_property(self, req: ResolutionRequest) -> List[str]:
        """``obj.prop`` for an arbitrary object expression (``req.prop`` set)."""
        obj = req.node
        prop = req.prop
        depth = req.depth

        if obj.get("type") == "ThisExpression":
            return self._values_this_property(obj, prop, depth)

        binding = self.model.binding_for(obj) if obj.get("type") == "Identifier" else None
        if binding is not None:
            bound = self.ctx.bound_argument(binding)
            if bound is not None:
                index, argument, key = bound
                with self.ctx.outer_frames(index):
                    if key is None:
                        return self.read_property(argument, prop, depth + 1)
                    shape = self.resolve_to_object(argument, depth + 1)
                    inner = shape.properties.get(key) if shape is not None else None
                    return self.read_property(inner, prop, depth + 1) if inner else []

        # Arrays indexed by a literal position
        if prop.isdigit():
            elements = self.resolve_to_array(obj, depth + 1)
            if elements is not None and int(prop) < len(elements):
                return self.resolve(elements[int(prop)], depth + 1)

        shape = self.resolve_to_object(obj, depth + 1)
        if shape is not None and prop in shape.properties:
            values = self.resolve(shape.properties[prop], depth + 1)
            if values:
                return values

        values = self.union(*(self.resolve(value, depth + 1)
                              for value in self.assigned_members(obj, prop)))
        if values:
            return values

        if binding is not None:
            if binding.is_param:
                return self.callers.values_for_parameter(binding, prop, depth + 1)
            init = binding.init
            if binding.constant and init is not None and init.get("type") == "NewExpression":
                return self._values_instance_property(init, prop, depth)
        elif obj.get("type") == "NewExpression":
            return self._values_instance_property(obj, prop, depth)
        return []

    def _values_instance_property(self, new_expr: Dict[str, Any], prop: str, depth: int) -> List[str]:
        """``prop`` of ``new Ctor(...)``: constructor assignments bound to this call."""
        values: List[str] = []
        for ctor in self.callable_functions(new_expr.get("callee"), depth + 1):
            if self.ctx.is_bound(ctor):
                continue
            owner = self.this_owner(ctor)
            with self.ctx.bind_arguments(ctor, new_expr):
                for value in self.owner_property(owner, prop):
                    values = self.union(values, self.resolve(value, depth + 1))
        return values

    def _values_this_property(self, this: Dict[str, Any], prop: str, depth: int) -> List[str]:
        func = self.model.this_function(this)
        if func is None:
            if self.ctx.index is not None and self.ctx.index.is_global_object(this):
                return self._values_global(prop, depth)
            return []
        owner = self.this_owner(func)
        return self.union(*(self.resolve(value, depth + 1) for value in self.owner_property(owner, prop)))

    # ------------------------------------------------------------ object rules

    def _object_literal(self, req: ResolutionRequest) -> ObjectShape:
        shape = ObjectShape(origin=req.node)
        for prop in req.node.get("properties") or []:
            if prop.get("type") in ("SpreadElement", "ExperimentalSpreadProperty"):
                shape.merge(self.resolve_to_object(prop.get("argument"), req.depth + 1))
                continue
            value = prop.get("value")
            if value is None:
                continue
            key = property_key(prop)
            if key is not None:
                shape.properties[key] = value
            elif prop.get("computed"):
                for name in self.resolve(prop.get("key"), req.depth + 1):
                    shape.properties[name] = value
        return shape

    def _object_identifier(self, req: ResolutionRequest) -> Optional[ObjectShape]:
        node = req.node
        depth = req.depth
        binding = self.model.binding_for(node)
        if binding is None:
            return self._object_global(node["name"], depth)

        bound = self.ctx.bound_argument(binding)
        if bound is not None:
            index, argument, key = bound
            with self.ctx.outer_frames(index):
                shape = self.resolve_to_object(argument, depth + 1)
                if key is not None:
                    inner = shape.properties.get(key) if shape is not None else None
                    return self.resolve_to_object(inner, depth + 1) if inner else None
                return shape

        shape: Optional[ObjectShape] = None
        if binding.init is not None and binding.kind in ("var", "let", "const"):
            shape = self.resolve_to_object(binding.init, depth + 1)
        elif binding.pattern_source is not None and binding.param_key is not None:
            outer = self.resolve_to_object(binding.pattern_source, depth + 1)
            inner = outer.properties.get(binding.param_key) if outer is not None else None
            shape = self.resolve_to_object(inner, depth + 1) if inner else None
        elif binding.is_param:
            for path in self.callers.argument_paths(binding):
                argument = path.argument
                if binding.param_key is not None:
                    outer = self.resolve_to_object(argument, depth + 1)
                    argument = outer.properties.get(binding.param_key) if outer is not None else None
                candidate = self.resolve_to_object(argument, depth + 1) if argument else None
                if candidate is not None:
                    if shape is None:
                        shape = ObjectShape(origin=candidate.origin)
                    shape.merge(candidate, override=False)
            if binding.default is not None:
                default = self.resolve_to_object(binding.default, depth + 1)
                if default is not None:
                    if shape is None:
                        shape = ObjectShape(origin=default.origin)
                    shape.merge(default, override=False)

        for writer in binding.violations:
            if writer.get("type") == "AssignmentExpression" and writer.get("operator") == "=":
                candidate = self.resolve_to_object(writer.get("right"), depth + 1)
                if candidate is not None:
                    if shape is None:
                        shape = ObjectShape(origin=candidate.origin)
                    shape.merge(candidate, override=False)

        # Properties added later with ``name.key = value``
        additions = self._member_assignments(node)
        if additions:
            if shape is None:
                shape = ObjectShape(origin=binding.init)
            for key, value in additions.items():
                shape.properties.setdefault(key, value)
        return shape

    def _object_global(self, name: str, depth: int) -> Optional[ObjectShape]:
        index = self.ctx.index
        if index is None:
            return None
        shape: Optional[ObjectShape] = None
        for entry in index.lookup(name):
            candidate = self.resolve_to_object(entry.definition, depth + 1)
            if candidate is not None:
                if shape is None:
                    shape = ObjectShape(origin=candidate.origin)
                shape.merge(candidate, override=False)
        return shape

    def _object_member(self, req: ResolutionRequest) -> Optional[ObjectShape]:
        node = req.node
        prop = member_name(node)
        if prop is None:
            return None
        if self.ctx.index is not None:
            name = self.ctx.index.global_member(node)
            if name is not None:
                return self._object_global(name, req.depth)
        obj = node.get("object") or {}
        if obj.get("type") == "ThisExpression":
            func = self.model.this_function(obj)
            if func is None:
                return None
            shape: Optional[ObjectShape] = None
            for value in self.owner_property(self.this_owner(func), prop):
                candidate = self.resolve_to_object(value, req.depth + 1)
                if candidate is not None:
                    if shape is None:
                        shape = ObjectShape(origin=candidate.origin)
                    shape.merge(candidate, override=False)
            return shape
        parent = self.resolve_to_object(obj, req.depth + 1)
        if parent is not None and prop in parent.properties:
            return self.resolve_to_object(parent.properties[prop], req.depth + 1)
        for value in self.assigned_members(obj, prop):
            candidate = self.resolve_to_object(value, req.depth + 1)
            if candidate is not None:
                return candidate
        return None

    def _object_call(self, req: ResolutionRequest) -> Optional[ObjectShape]:
        node = req.node
        callee = node.get("callee") or {}
        args = node.get("arguments") or []
        depth = req.depth

        if member_name(callee) in MERGE_METHODS and args:
            sources = list(args)
            if literal_value(sources[0]) is None and sources[0].get("type") == "Literal":
                sources = sources[1:]  # $.extend(true, target, ...)
            shape = ObjectShape(origin=node)
            found = False
            for source in sources:
                candidate = self.resolve_to_object(source, depth + 1)
                if candidate is not None:
                    shape.merge(candidate)
                    found = True
            if found:
                return shape

        shape = None
        for func, offset in self.call_targets(node, depth + 1):
            if self.ctx.is_bound(func):
                continue
            with self.ctx.bind_arguments(func, node, offset):
                for returned in self.model.returns_of(func):
                    candidate = self.resolve_to_object(returned, depth + 1)
                    if candidate is not None:
                        if shape is None:
                            shape = ObjectShape(origin=candidate.origin)
                        shape.merge(candidate, override=False)
        return shape

    def _object_branches(self, req: ResolutionRequest) -> Optional[ObjectShape]:
        shape: Optional[ObjectShape] = None
        for branch in flatten_branches(req.node):
            if branch is req.node:
                continue
            candidate = self.resolve_to_object(branch, req.depth + 1)
            if candidate is not None:
                if shape is None:
                    shape = ObjectShape(origin=candidate.origin)
                shape.merge(candidate, override=False)
        return shape

    def _object_assignment(self, req: ResolutionRequest) -> Optional[ObjectShape]:
        return self.resolve_to_object(req.node.get("right"), req.depth + 1)

    def _object_sequence(self, req: ResolutionRequest) -> Optional[ObjectShape]:
        expressions = req.node.get("expressions") or []
        return self.resolve_to_object(expressions[-1], req.depth + 1) if expressions else None

    def _object_this(self, req: ResolutionRequest) -> Optional[ObjectShape]:
        func = self.model.this_function(req.node)
        if func is None:
            return None
        owner = self.this_owner(func)
        if not owner.literals:
            return None
        shape = ObjectShape(origin=owner.literals[0])
        for literal in owner.literals:
            shape.merge(self.resolve_to_object(literal, req.depth + 1), override=False)
        return shape

    def _member_assignments(self, ident: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        """``key -> value`` for every ``ident.key = value`` on the same binding."""
        binding = self.model.binding_for(ident)
        if binding is None:
            return {}
        out: Dict[str, Dict[str, Any]] = {}
        for ref in binding.references:
            member = self.model.parent(ref)
            if not member or member.get("type") != "MemberExpression" or member.get("object") is not ref:
                continue
            key = member_name(member)
            assign = self.model.parent(member)
            if key is None or not assign or assign.get("type") != "AssignmentExpression":
                continue
            if assign.get("left") is member and assign.get("operator") == "=":
                out.setdefault(key, assign.get("right"))
        return out

    def assigned_members(self, obj: Dict[str, Any], prop: str) -> List[Dict[str, Any]]:
        """
        Right-hand sides of ``<obj>.prop = value`` assignments on the same object.

        ``obj`` may be an identifier or a static member chain; chains rooted at a
        different binding with the same name are ignored.
        """
        chain = describe(obj)
        if chain is None:
            return []
        root = chain_root(obj)
        root_binding = self.model.binding_for(root) if root.get("type") == "Identifier" else None
        out: List[Dict[str, Any]] = []
        for member in self.model.member_chains.get(f"{chain}.{prop}", []):
            if member is obj:
                continue
            assign = self.model.parent(member)
            if not assign or assign.get("type") != "AssignmentExpression" or assign.get("left") is not member:
                continue
            if assign.get("operator") != "=":
                continue
            other_root = chain_root(member)
            if other_root.get("type") == "Identifier":
                other_binding = self.model.binding_for(other_root)
                if other_binding is not root_binding:
                    continue
                if root.get("type") != "Identifier":
                    continue
            elif other_root.get("type") == "ThisExpression":
                if root.get("type") != "ThisExpression":
                    continue
                if self.model.this_function(other_root) is not self.model.this_function(root):
                    continue
            out.append(assign.get("right"))
        return out

    # ------------------------------------------------------------- array rules

    def _array_literal(self, req: ResolutionRequest) -> List[Dict[str, Any]]:
        elements: List[Dict[str, Any]] = []
        for element in req.node.get("elements") or []:
            if not element:
                continue
            if element.get("type") == "SpreadElement":
                spread = self.resolve_to_array(element.get("argument"), req.depth + 1)
                if spread:
                    elements.extend(spread)
                continue
            elements.append(element)
        return elements

    def _array_identifier(self, req: ResolutionRequest) -> Optional[List[Dict[str, Any]]]:
        node = req.node
        depth = req.depth
        binding = self.model.binding_for(node)
        if binding is None:
            index = self.ctx.index
            if index is None:
                return None
            for entry in index.lookup(node["name"]):
                elements = self.resolve_to_array(entry.definition, depth + 1)
                if elements is not None:
                    return elements
            return None

        bound = self.ctx.bound_argument(binding)
        if bound is not None:
            index, argument, key = bound
            with self.ctx.outer_frames(index):
                if key is not None:
                    shape = self.resolve_to_object(argument, depth + 1)
                    argument = shape.properties.get(key) if shape is not None else None
                return self.resolve_to_array(argument, depth + 1) if argument else None

        elements: Optional[List[Dict[str, Any]]] = None
        if binding.init is not None and binding.kind in ("var", "let", "const"):
            elements = self.resolve_to_array(binding.init, depth + 1)
        elif binding.is_param:
            for path in self.callers.argument_paths(binding):
                candidate = self.resolve_to_array(path.argument, depth + 1)
                if candidate is not None:
                    elements = (elements or []) + candidate
        if elements is None:
            return None
        # Elements appended later with name.push(...)
        for ref in binding.references:
            member = self.model.parent(ref)
            if not member or member.get("object") is not ref or member_name(member) not in ("push", "unshift"):
                continue
            call = self.model.parent(member)
            if call and call.get("type") == "CallExpression" and call.get("callee") is member:
                elements = elements + [arg for arg in call.get("arguments") or []
                                       if arg.get("type") != "SpreadElement"]
        return elements[:self.config.max_values * 5]

    def _array_member(self, req: ResolutionRequest) -> Optional[List[Dict[str, Any]]]:
        node = req.node
        prop = member_name(node)
        if prop is None:
            return None
        shape = self.resolve_to_object(node.get("object"), req.depth + 1)
        if shape is not None and prop in shape.properties:
            return self.resolve_to_array(shape.properties[prop], req.depth + 1)
        return None

    def _array_call(self, req: ResolutionRequest) -> Optional[List[Dict[str, Any]]]:
        node = req.node
        callee = node.get("callee") or {}
        args = node.get("arguments") or []
        method = member_name(callee)
        depth = req.depth
        if method == "concat":
            base = self.resolve_to_array(callee.get("object"), depth + 1)
            if base is None:
                return None
            out = list(base)
            for arg in args:
                extra = self.resolve_to_array(arg, depth + 1)
                out.extend(extra if extra is not None else [arg])
            return out
        if method == "split" and args:
            separator = literal_text(args[0])
            if separator is None:
                return None
            out = []
            for value in self.resolve(callee.get("object"), depth + 1)[:1]:
                pieces = value.split(separator) if separator else list(value)
                out.extend({"type": "Literal", "value": piece} for piece in pieces)
            return out or None
        elements: Optional[List[Dict[str, Any]]] = None
        for func, offset in self.call_targets(node, depth + 1):
            if self.ctx.is_bound(func):
                continue
            with self.ctx.bind_arguments(func, node, offset):
                for returned in self.model.returns_of(func):
                    candidate = self.resolve_to_array(returned, depth + 1)
                    if candidate is not None:
                        elements = (elements or []) + candidate
        return elements

    def _array_branches(self, req: ResolutionRequest) -> Optional[List[Dict[str, Any]]]:
        elements: Optional[List[Dict[str, Any]]] = None
        for branch in flatten_branches(req.node):
            if branch is req.node:
                continue
            candidate = self.resolve_to_array(branch, req.depth + 1)
            if candidate is not None:
                elements = (elements or []) + candidate
        return elements

    # ---------------------------------------------------------- function rules

    def _functions_self(self, req: ResolutionRequest) -> List[Dict[str, Any]]:
        return [req.node]

    def _merge_functions(self, *groups: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for group in groups:
            for func in group:
                if all(func is not seen for seen in out):
                    out.append(func)
                if len(out) >= self.config.max_callers:
                    return out
        return out

    def _functions_identifier(self, req: ResolutionRequest) -> List[Dict[str, Any]]:
        node = req.node
        depth = req.depth
        binding = self.model.binding_for(node)
        if binding is None:
            index = self.ctx.index
            if index is None:
                return []
            return self._merge_functions(*(self.resolve_functions(entry.definition, depth + 1)
                                           for entry in index.lookup(node["name"])))

        bound = self.ctx.bound_argument(binding)
        if bound is not None:
            index, argument, key = bound
            with self.ctx.outer_frames(index):
                if key is not None:
                    shape = self.resolve_to_object(argument, depth + 1)
                    argument = shape.properties.get(key) if shape is not None else None
                return self.resolve_functions(argument, depth + 1) if argument else []

        if binding.kind in ("function", "class"):
            return [binding.init] if binding.init is not None else []

        groups: List[List[Dict[str, Any]]] = []
        if binding.init is not None:
            groups.append(self.resolve_functions(binding.init, depth + 1))
        elif binding.pattern_source is not None and binding.param_key is not None:
            groups.append(self._functions_of_property(binding.pattern_source, binding.param_key, depth))
        if len(binding.violations) <= self.config.max_mutations:
            for writer in binding.violations:
                if writer.get("type") == "AssignmentExpression" and writer.get("operator") in ("=", "||="):
                    groups.append(self.resolve_functions(writer.get("right"), depth + 1))
        if binding.is_param and not groups:
            for path in self.callers.argument_paths(binding):
                if binding.param_key is not None:
                    groups.append(self._functions_of_property(path.argument, binding.param_key, depth))
                else:
                    groups.append(self.resolve_functions(path.argument, depth + 1))
        return self._merge_functions(*groups)

    def _functions_of_property(self, obj: Dict[str, Any], prop: str, depth: int) -> List[Dict[str, Any]]:
        shape = self.resolve_to_object(obj, depth + 1)
        if shape is not None and prop in shape.properties:
            return self.resolve_functions(shape.properties[prop], depth + 1)
        return []

    def _functions_member(self, req: ResolutionRequest) -> List[Dict[str, Any]]:
        node = req.node
        depth = req.depth
        prop = member_name(node)
        obj = node.get("object") or {}
        if prop is None:
            names = self.resolve(node.get("property"), depth + 1)
            shape = self.resolve_to_object(obj, depth + 1)
            if shape is None:
                return []
            return self._merge_functions(*(self.resolve_functions(shape.properties[name], depth + 1)
                                           for name in names if name in shape.properties))

        index = self.ctx.index
        if index is not None:
            name = index.global_member(node)
            if name is not None:
                return self._merge_functions(*(self.resolve_functions(entry.definition, depth + 1)
                                               for entry in index.lookup(name)))

        if obj.get("type") == "ThisExpression":
            func = self.model.this_function(obj)
            if func is None:
                return []
            owner = self.this_owner(func)
            return self._merge_functions(*(self.resolve_functions(value, depth + 1)
                                           for value in self.owner_property(owner, prop)))

        groups: List[List[Dict[str, Any]]] = []
        if member_name(obj) == "prototype":
            for ctor in self.resolve_functions(obj.get("object"), depth + 1):
                owner = self._owner_for_constructor(ctor)
                groups.append([value for value in self.owner_property(owner, prop, this_assignments=False)
                               if value.get("type") in FUNCTION_TYPES])
            return self._merge_functions(*groups)

        groups.append(self._functions_of_property(obj, prop, depth))
        groups.extend(self.resolve_functions(value, depth + 1) for value in self.assigned_members(obj, prop))

        # Methods of instances and static class members
        for target in self._instance_sources(obj, depth):
            if target.get("type") == "NewExpression":
                for ctor in self.resolve_functions(target.get("callee"), depth + 1):
                    owner = self._owner_for_constructor(ctor)
                    groups.append([value for value in self.owner_property(owner, prop)
                                   if value.get("type") in FUNCTION_TYPES | CLASS_TYPES])
            elif target.get("type") in CLASS_TYPES:
                groups.append(self._static_members(target, prop))
        return self._merge_functions(*groups)

    def _instance_sources(self, obj: Dict[str, Any], depth: int) -> List[Dict[str, Any]]:
        """``new`` expressions or class nodes ``obj`` refers to."""
        if obj.get("type") == "NewExpression":
            return [obj]
        if obj.get("type") in CLASS_TYPES:
            return [obj]
        if obj.get("type") != "Identifier":
            return []
        binding = self.model.binding_for(obj)
        if binding is None:
            return []
        if binding.kind == "class" and binding.init is not None:
            return [binding.init]
        out = []
        candidates = [binding.init] if binding.init is not None else []
        for writer in binding.violations:
            if writer.get("type") == "AssignmentExpression":
                candidates.append(writer.get("right"))
        for candidate in candidates:
            if candidate and candidate.get("type") in ("NewExpression", "ClassExpression"):
                out.append(candidate)
        return out

    def _static_members(self, cls: Dict[str, Any], prop: str) -> List[Dict[str, Any]]:
        out = []
        for method in (cls.get("body") or {}).get("body") or []:
            if method.get("static") and property_key(method) == prop and method.get("value"):
                out.append(method["value"])
        return out

    def _functions_call(self, req: ResolutionRequest) -> List[Dict[str, Any]]:
        node = req.node
        callee = node.get("callee") or {}
        depth = req.depth
        if member_name(callee) == "bind":
            return self.resolve_functions(callee.get("object"), depth + 1)
        groups: List[List[Dict[str, Any]]] = []
        for func, offset in self.call_targets(node, depth + 1):
            if self.ctx.is_bound(func):
                continue
            with self.ctx.bind_arguments(func, node, offset):
                for returned in self.model.returns_of(func):
                    groups.append(self.resolve_functions(returned, depth + 1))
        return self._merge_functions(*groups)

    def _functions_branches(self, req: ResolutionRequest) -> List[Dict[str, Any]]:
        return self._merge_functions(*(self.resolve_functions(branch, req.depth + 1)
                                       for branch in flatten_branches(req.node)
                                       if branch is not req.node))

    def _functions_assignment(self, req: ResolutionRequest) -> List[Dict[str, Any]]:
        return self.resolve_functions(req.node.get("right"), req.depth + 1)

    def _functions_sequence(self, req: ResolutionRequest) -> List[Dict[str, Any]]:
        expressions = req.node.get("expressions") or []
        return self.resolve_functions(expressions[-1], req.depth + 1) if expressions else []

    # ------------------------------------------------------------ ``this`` owners

    def class_constructor(self, cls: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Constructor function of a class node, if it declares one."""
        for method in (cls.get("body") or {}).get("body") or []:
            if method.get("kind") == "constructor":
                return method.get("value")
        return None

    def _owner_for_constructor(self, ctor: Dict[str, Any]) -> ThisOwner:
        if ctor.get("type") in CLASS_TYPES:
            owner = ThisOwner(cls=ctor, constructor=self.class_constructor(ctor))
            owner.functions = [m.get("value") for m in (ctor.get("body") or {}).get("body") or []
                               if m.get("value") and not m.get("static")]
            return owner
        return self.this_owner(ctor)

    def this_owner(self, func: Dict[str, Any]) -> ThisOwner:
        owner = self._owners.get(id(func))
        if owner is None:
            owner = self._build_owner(func)
            self._owners[id(func)] = owner
        return owner

    def _build_owner(self, func: Dict[str, Any]) -> ThisOwner:
        """
        Work out which functions share ``this`` with ``func``.

        Covers object-literal methods, class methods, ``Ctor.prototype.m``
        assignments, ``Ctor.prototype = {...}`` literals and plain constructor
        functions.
        """
        model = self.model
        owner = ThisOwner()
        parent = model.parent(func) or {}
        ptype = parent.get("type")

        if ptype == "MethodDefinition":
            body = model.parent(parent) or {}
            cls = model.parent(body) or {}
            owner.cls = cls
            static = bool(parent.get("static"))
            for method in body.get("body") or []:
                if bool(method.get("static")) == static and method.get("value"):
                    owner.functions.append(method["value"])
                if method.get("kind") == "constructor":
                    owner.constructor = method.get("value")
            return owner

        if ptype == "Property" and model.parent_key(func) == "value":
            literal = model.parent(parent) or {}
            if literal.get("type") == "ObjectExpression":
                owner.literals.append(literal)
                assign = model.parent(literal) or {}
                left = assign.get("left") or {}
                if assign.get("type") == "AssignmentExpression" and member_name(left) == "prototype":
                    self._attach_prototype(owner, left.get("object") or {})
                self._collect_literal_functions(owner)
                return owner

        if ptype == "AssignmentExpression" and parent.get("right") is func:
            left = parent.get("left") or {}
            target = left.get("object") or {}
            if left.get("type") == "MemberExpression" and member_name(target) == "prototype":
                self._attach_prototype(owner, target.get("object") or {})
                self._collect_literal_functions(owner)
                if func not in owner.functions:
                    owner.functions.append(func)
                return owner

        # A plain function used as a constructor
        owner.constructor = func
        name_node = self._constructor_name_node(func)
        if name_node is not None:
            self._attach_prototype(owner, name_node)
        self._collect_literal_functions(owner)
        if all(f is not func for f in owner.functions):
            owner.functions.insert(0, func)
        return owner

    def _constructor_name_node(self, func: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if func.get("type") == "FunctionDeclaration" and func.get("id"):
            return func["id"]
        parent = self.model.parent(func) or {}
        if parent.get("type") == "VariableDeclarator" and (parent.get("id") or {}).get("type") == "Identifier":
            return parent["id"]
        if parent.get("type") == "AssignmentExpression" and parent.get("right") is func:
            left = parent.get("left") or {}
            if describe(left) is not None:
                return left
        return None

    def _attach_prototype(self, owner: ThisOwner, ctor_expr: Dict[str, Any]) -> None:
        chain = describe(ctor_expr)
        if chain is None:
            return
        owner.prototype_chain = chain
        root = chain_root(ctor_expr)
        owner.prototype_root = self.model.binding_for(root) if root.get("type") == "Identifier" else None
        if owner.constructor is None:
            for ctor in self.resolve_functions(ctor_expr):
                if ctor.get("type") in FUNCTION_TYPES:
                    owner.constructor = ctor
                    break
        if owner.constructor is not None and all(f is not owner.constructor for f in owner.functions):
            owner.functions.append(owner.constructor)
        for proto in self._prototype_nodes(owner):
            parent = self.model.parent(proto) or {}
            if parent.get("type") == "AssignmentExpression" and parent.get("left") is proto:
                right = parent.get("right") or {}
                if right.get("type") == "ObjectExpression" and all(l is not right for l in owner.literals):
                    owner.literals.append(right)
            elif parent.get("type") == "MemberExpression" and parent.get("object") is proto:
                assign = self.model.parent(parent) or {}
                if assign.get("type") == "AssignmentExpression" and assign.get("left") is parent:
                    right = assign.get("right") or {}
                    if right.get("type") in FUNCTION_TYPES and all(f is not right for f in owner.functions):
                        owner.functions.append(right)

    def _prototype_nodes(self, owner: ThisOwner) -> List[Dict[str, Any]]:
        """``Ctor.prototype`` member nodes rooted at the owner's constructor binding."""
        if owner.prototype_chain is None:
            return []
        out = []
        for node in self.model.member_chains.get(owner.prototype_chain + ".prototype", []):
            root = chain_root(node)
            binding = self.model.binding_for(root) if root.get("type") == "Identifier" else None
            if binding is owner.prototype_root:
                out.append(node)
        return out

    def _collect_literal_functions(self, owner: ThisOwner) -> None:
        for literal in owner.literals:
            for prop in literal.get("properties") or []:
                value = prop.get("value") or {}
                if value.get("type") in FUNCTION_TYPES and all(f is not value for f in owner.functions):
                    owner.functions.append(value)

    def owner_property(self, owner: ThisOwner, prop: str,
                       this_assignments: bool = True) -> List[Dict[str, Any]]:
        """Every expression assigned to ``this.prop`` for the given owner."""
        values: List[Dict[str, Any]] = []
        for literal in owner.literals:
            for item in literal.get("properties") or []:
                if item.get("type") == "Property" and property_key(item) == prop and item.get("value"):
                    values.append(item["value"])
        if owner.cls is not None:
            for method in (owner.cls.get("body") or {}).get("body") or []:
                if not method.get("static") and property_key(method) == prop and method.get("value"):
                    values.append(method["value"])
        for proto in self._prototype_nodes(owner):
            parent = self.model.parent(proto) or {}
            if parent.get("type") == "MemberExpression" and parent.get("object") is proto \
                    and member_name(parent) == prop:
                assign = self.model.parent(parent) or {}
                if assign.get("type") == "AssignmentExpression" and assign.get("left") is parent:
                    values.append(assign.get("right"))
        if this_assignments:
            for this in self.this_nodes(owner.functions):
                member = self.model.parent(this) or {}
                if member.get("type") != "MemberExpression" or member.get("object") is not this:
                    continue
                if member_name(member) != prop:
                    continue
                assign = self.model.parent(member) or {}
                if assign.get("type") == "AssignmentExpression" and assign.get("left") is member \
                        and assign.get("operator") == "=":
                    values.append(assign.get("right"))
        return [value for value in values if value]

    def this_nodes(self, functions: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        """``this`` expressions bound by ``functions`` (arrow bodies included)."""
        for func in functions:
            body = func.get("body")
            if not isinstance(body, dict):
                continue
            stack = [body]
            while stack:
                current = stack.pop()
                ctype = current.get("type")
                if ctype == "ThisExpression":
                    yield current
                    continue
                if ctype in ("FunctionDeclaration", "FunctionExpression") or ctype in CLASS_TYPES:
                    continue
                stack.extend(child for _, child in iter_children(current))

    # ---------------------------------------------------------------- helpers

    def function_scope_walk(self, func: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        """Nodes of ``func``'s body, not descending into nested functions."""
        body = func.get("body")
        if isinstance(body, dict):
            yield from walk(body, skip_nested=True)
