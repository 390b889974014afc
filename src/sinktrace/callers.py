"""
Caller-argument tracing.

Finds the call sites of a function by following where the function value
flows: through variable and property bindings, prototype and class members,
callback parameters (including store-now-call-later containers), factory
return values and global aliases. Arguments at those sites answer questions
about the function's parameters.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Any, Optional, Set, Tuple

from .context import AnalysisContext, ResolutionKind
from .resolver import CLASS_TYPES, MERGE_METHODS
from .scope import CALL_TYPES, FUNCTION_TYPES, Binding, describe, literal_value, member_name, property_key

logger = logging.getLogger(__name__)

ITERATION_METHODS = {
    "forEach": 0, "map": 0, "filter": 0, "some": 0, "every": 0, "find": 0,
    "findIndex": 0, "flatMap": 0, "reduce": 1, "reduceRight": 1,
}
CONTAINER_ADDERS = frozenset({"push", "unshift", "add", "concat"})
CONTAINER_TAKERS = frozenset({"shift", "pop"})


class BindingRoute(Enum):
    """How a function value reaches the places that invoke it."""
    DIRECT_NAME = "direct_name"
    OBJECT_PROPERTY = "object_property"
    ASSIGNED_MEMBER = "assigned_member"
    COMPUTED_MEMBER = "computed_member"
    PROTOTYPE_METHOD = "prototype_method"
    CLASS_METHOD = "class_method"
    CALLBACK_ARGUMENT = "callback_argument"
    RETURNED_FROM_FACTORY = "returned_from_factory"
    GLOBAL_ALIAS = "global_alias"


@dataclass
class CallSite:
    """A call or ``new`` expression that invokes a traced function."""
    call: Dict[str, Any]
    offset: int
    route: BindingRoute


@dataclass
class ArgumentPath:
    """The argument expression a caller passes for one parameter."""
    argument: Dict[str, Any]
    call: Dict[str, Any]
    index: int
    route: BindingRoute
    overloaded: bool = False


Alias = Tuple[Dict[str, Any], BindingRoute]


class CallerTracer:
    """
    Discovers call sites and caller arguments for functions and parameters.

    Every public query is cycle-guarded through the shared context and
    memoized when the answer did not depend on bound frames or cut-off
    branches.
    """

    def __init__(self, ctx: AnalysisContext, resolver):
        self.ctx = ctx
        self.resolver = resolver
        self.model = ctx.model
        self.config = ctx.config

    # ------------------------------------------------------------ public API

    def binding_route(self, func: Dict[str, Any]) -> BindingRoute:
        """Classify how ``func`` is bound by the syntax around its definition."""
        parent = self.model.parent(func) or {}
        key = self.model.parent_key(func)
        ptype = parent.get("type")
        if ptype == "Property":
            return BindingRoute.OBJECT_PROPERTY
        if ptype == "MethodDefinition":
            return BindingRoute.CLASS_METHOD
        if ptype in CALL_TYPES and key == "arguments":
            return BindingRoute.CALLBACK_ARGUMENT
        if ptype == "ReturnStatement" or (ptype == "ArrowFunctionExpression" and key == "body"):
            return BindingRoute.RETURNED_FROM_FACTORY
        if ptype == "AssignmentExpression" and key == "right":
            left = parent.get("left") or {}
            if left.get("type") == "Identifier":
                if self.model.binding_for(left) is None:
                    return BindingRoute.GLOBAL_ALIAS
                return BindingRoute.DIRECT_NAME
            if left.get("type") == "MemberExpression":
                return self._member_route(left)
        return BindingRoute.DIRECT_NAME

    def _member_route(self, left: Dict[str, Any]) -> BindingRoute:
        obj = left.get("object") or {}
        if member_name(left) is None:
            return BindingRoute.COMPUTED_MEMBER
        if self.ctx.index is not None and self.ctx.index.is_global_object(obj):
            return BindingRoute.GLOBAL_ALIAS
        if member_name(obj) == "prototype":
            return BindingRoute.PROTOTYPE_METHOD
        return BindingRoute.ASSIGNED_MEMBER

    def call_sites(self, func: Dict[str, Any]) -> List[CallSite]:
        """Every discoverable call (or ``new``) that invokes ``func``."""
        cached = self.ctx.call_site_cache.get(id(func))
        if cached is not None:
            return cached
        key = self.ctx.enter(ResolutionKind.CALLERS, func)
        if key is None:
            return []
        snapshot = self.ctx.snapshot()
        sites: List[CallSite] = []
        try:
            seen: Set[int] = set()
            for alias, route in [(func, self.binding_route(func))] + self.value_aliases(func):
                site = self._invocation(alias, route)
                if site is None or id(site.call) in seen:
                    continue
                seen.add(id(site.call))
                sites.append(site)
                if len(sites) >= self.config.max_callers:
                    break
        except RecursionError as e:
            self.ctx.record_error("callers:call_sites", e)
        finally:
            self.ctx.leave(key)
        if self.ctx.cacheable(snapshot):
            self.ctx.call_site_cache[id(func)] = sites
        return sites

    def argument_paths(self, binding: Binding, prop: Optional[str] = None) -> List[ArgumentPath]:
        """
        Raw caller argument expressions for a parameter.

        When a property is wanted and a caller passes fewer arguments than the
        parameter position (an "overloaded" call), the caller's arguments are
        returned last-first with ``overloaded`` set so the reader can probe
        them for the property.

        Args:
            binding: Parameter binding
            prop: Property that will be read from the argument, if any

        Returns:
            Argument paths in call-site order
        """
        func = binding.function
        if func is None or binding.param_index is None or binding.rest:
            return []
        wants_property = prop is not None or binding.param_key is not None
        paths: List[ArgumentPath] = []
        for site in self.call_sites(func):
            args = site.call.get("arguments") or []
            position = binding.param_index + site.offset
            if any(arg.get("type") == "SpreadElement" for arg in args[:position + 1]):
                continue
            if position < len(args):
                paths.append(ArgumentPath(args[position], site.call, position, site.route))
            elif wants_property and len(args) > site.offset:
                for index in range(len(args) - 1, site.offset - 1, -1):
                    paths.append(ArgumentPath(args[index], site.call, index, site.route, overloaded=True))
        return paths

    def values_for_parameter(self, binding: Binding, prop: Optional[str] = None,
                             depth: int = 0) -> List[str]:
        """
        Union of the values every caller supplies for a parameter.

        Args:
            binding: Parameter binding
            prop: Read only this property of each caller's argument
            depth: Resolution depth of the request

        Returns:
            Value set (empty when no caller could be resolved)
        """
        keys = [k for k in (binding.param_key, prop) if k is not None]
        cache_key = (id(binding), ".".join(keys) if keys else None)
        cached = self.ctx.caller_cache.get(cache_key)
        if cached is not None and not self.ctx.frames:
            return cached
        guard = self.ctx.enter(ResolutionKind.CALLERS, binding.identifier, cache_key[1])
        if guard is None:
            return []
        snapshot = self.ctx.snapshot()
        groups: List[List[str]] = []
        try:
            probing: Optional[int] = None
            for path in self.argument_paths(binding, prop):
                if path.overloaded:
                    if probing is not None and id(path.call) == probing:
                        continue  # an earlier argument of this call already matched
                    values = self._read(path.argument, keys, depth)
                    if values:
                        probing = id(path.call)
                        groups.append(values)
                    continue
                groups.append(self._read(path.argument, keys, depth))
        except RecursionError as e:
            self.ctx.record_error("callers:values_for_parameter", e)
        finally:
            self.ctx.leave(guard)
        values = self.resolver.union(*groups)
        if self.ctx.cacheable(snapshot):
            self.ctx.caller_cache[cache_key] = values
        return values

    def _read(self, argument: Dict[str, Any], keys: List[str], depth: int) -> List[str]:
        if not keys:
            return self.resolver.resolve(argument, depth + 1)
        target: Optional[Dict[str, Any]] = argument
        for key in keys[:-1]:
            shape = self.resolver.resolve_to_object(target, depth + 1)
            target = shape.properties.get(key) if shape is not None else None
            if target is None:
                return []
        return self.resolver.read_property(target, keys[-1], depth + 1)

    # ------------------------------------------------------------ value flow

    def value_aliases(self, value: Dict[str, Any]) -> List[Alias]:
        """
        Expressions that evaluate to the same value as ``value``.

        Walks the value forward one syntactic step at a time (declarations,
        assignments, object properties, class and prototype members, callback
        parameters, factory returns, global aliases) with a worklist, tagging
        each alias with the route it was reached through.
        """
        cached = self.ctx.alias_cache.get(id(value))
        if cached is not None:
            return cached
        key = self.ctx.enter(ResolutionKind.RECEIVERS, value)
        if key is None:
            return []
        snapshot = self.ctx.snapshot()
        cap = self.config.max_callers * 4
        out: List[Alias] = []
        try:
            seen = {id(value)}
            work: List[Tuple[Dict[str, Any], BindingRoute, int]] = [
                (value, self.binding_route(value) if value.get("type") in FUNCTION_TYPES
                 else BindingRoute.DIRECT_NAME, 0)
            ]
            while work and len(out) < cap:
                node, route, depth = work.pop(0)
                for alias, alias_route in self._flow_step(node, route):
                    if id(alias) in seen:
                        continue
                    seen.add(id(alias))
                    out.append((alias, alias_route))
                    if depth + 1 < self.config.max_depth:
                        work.append((alias, alias_route, depth + 1))
                    if len(out) >= cap:
                        self.ctx.truncations += 1
                        break
        except RecursionError as e:
            self.ctx.record_error("callers:value_aliases", e)
        finally:
            self.ctx.leave(key)
        if self.ctx.cacheable(snapshot):
            self.ctx.alias_cache[id(value)] = out
        return out

    def _invocation(self, alias: Dict[str, Any], route: BindingRoute) -> Optional[CallSite]:
        parent = self.model.parent(alias) or {}
        key = self.model.parent_key(alias)
        if parent.get("type") in CALL_TYPES and key == "callee":
            return CallSite(parent, 0, route)
        if parent.get("type") == "MemberExpression" and parent.get("object") is alias \
                and member_name(parent) == "call":
            call = self.model.parent(parent) or {}
            if call.get("type") == "CallExpression" and call.get("callee") is parent:
                return CallSite(call, 1, route)
        return None

    @staticmethod
    def _route(route: BindingRoute, step: BindingRoute) -> BindingRoute:
        return step if route is BindingRoute.DIRECT_NAME else route

    def _flow_step(self, node: Dict[str, Any], route: BindingRoute) -> List[Alias]:
        """Aliases one step downstream of ``node``."""
        model = self.model
        out: List[Alias] = []
        ntype = node.get("type")
        if ntype in ("FunctionDeclaration", "ClassDeclaration") and node.get("id"):
            out.extend(self._binding_reads(model.binding_for(node["id"]), route))

        parent = model.parent(node)
        if parent is None:
            return out
        key = model.parent_key(node)
        ptype = parent.get("type")

        if ptype == "VariableDeclarator" and key == "init":
            target = parent.get("id") or {}
            if target.get("type") == "Identifier":
                out.extend(self._binding_reads(model.binding_for(target), route))
        elif ptype == "AssignmentExpression" and key == "right" and parent.get("operator") in ("=", "||=", "??="):
            out.append((parent, route))
            out.extend(self.location_reads(parent.get("left") or {}, route))
        elif ptype == "Property" and key == "value":
            literal = model.parent(parent) or {}
            name = property_key(parent)
            if literal.get("type") == "ObjectExpression" and name is not None:
                step = self._route(route, BindingRoute.OBJECT_PROPERTY)
                out.extend(self._value_member_reads(literal, name, step))
                owner = self.resolver.this_owner(node) if ntype in FUNCTION_TYPES else None
                if owner is not None:
                    out.extend(self._this_member_reads(owner, name, step))
        elif ptype == "MethodDefinition" and key == "value":
            body = model.parent(parent) or {}
            cls = model.parent(body) or {}
            step = self._route(route, BindingRoute.CLASS_METHOD)
            name = property_key(parent)
            if parent.get("kind") == "constructor":
                out.append((cls, step))
            elif name is not None and parent.get("static"):
                out.extend(self._value_member_reads(cls, name, step))
            elif name is not None:
                owner = self.resolver.this_owner(node)
                out.extend(self._owner_member_reads(owner, name, step))
        elif ptype in CALL_TYPES and key == "arguments":
            out.extend(self._callback_reads(node, parent, route))
            out.extend(self._merge_target_reads(node, parent, route))
        elif ptype == "ReturnStatement" or (ptype == "ArrowFunctionExpression" and key == "body"):
            func = parent if ptype == "ArrowFunctionExpression" else model.enclosing_function(node)
            if func is not None:
                step = self._route(route, BindingRoute.RETURNED_FROM_FACTORY)
                out.extend((site.call, step) for site in self.call_sites(func) if site.offset <= 1)
        elif ptype == "LogicalExpression" or (ptype == "ConditionalExpression" and key != "test"):
            out.append((parent, route))
        elif ptype == "SequenceExpression" and (parent.get("expressions") or [None])[-1] is node:
            out.append((parent, route))
        elif ptype == "MemberExpression" and key == "object" and member_name(parent) == "bind":
            call = model.parent(parent) or {}
            if call.get("type") == "CallExpression" and call.get("callee") is parent \
                    and len(call.get("arguments") or []) <= 1:
                out.append((call, route))
        return out

    def _binding_reads(self, binding: Optional[Binding], route: BindingRoute) -> List[Alias]:
        if binding is None:
            return []
        out: List[Alias] = [(ref, route) for ref in binding.references]
        if not self.model.module and binding.scope is self.model.program_scope \
                and binding.kind in ("var", "function") and self.ctx.index is not None:
            out.extend((node, route) for node in self.ctx.index.member_reads.get(binding.name, []))
        return out

    def location_reads(self, left: Dict[str, Any], route: BindingRoute) -> List[Alias]:
        """Reads of the storage location an assignment writes to."""
        ltype = left.get("type")
        if ltype == "Identifier":
            binding = self.model.binding_for(left)
            if binding is not None:
                return self._binding_reads(binding, route)
            step = self._route(route, BindingRoute.GLOBAL_ALIAS)
            return [(node, step) for node in self.global_reads(left["name"])]
        if ltype != "MemberExpression":
            return []
        obj = left.get("object") or {}
        name = member_name(left)
        if name is None:
            step = self._route(route, BindingRoute.COMPUTED_MEMBER)
            out: List[Alias] = []
            for candidate in self.resolver.resolve(left.get("property")):
                out.extend(self._expr_member_reads(obj, candidate, step))
            return out
        if member_name(obj) == "prototype":
            step = self._route(route, BindingRoute.PROTOTYPE_METHOD)
            return self._prototype_member_reads(obj.get("object") or {}, name, step)
        return self._expr_member_reads(obj, name, self._route(route, BindingRoute.ASSIGNED_MEMBER))

    # ----------------------------------------------------------- member reads

    def _reads_on(self, bases: List[Dict[str, Any]], name: str) -> List[Dict[str, Any]]:
        """``base.name`` reads (not assignment targets) for each base node."""
        out = []
        for base in bases:
            member = self.model.parent(base) or {}
            if member.get("type") != "MemberExpression" or member.get("object") is not base:
                continue
            if member_name(member) != name:
                continue
            assign = self.model.parent(member) or {}
            if assign.get("type") == "AssignmentExpression" and assign.get("left") is member:
                continue
            out.append(member)
        return out

    def _value_member_reads(self, value: Dict[str, Any], name: str, route: BindingRoute) -> List[Alias]:
        """``X.name`` reads where ``X`` evaluates to the object ``value``."""
        bases = [value] + [alias for alias, _ in self.value_aliases(value)]
        return [(member, route) for member in self._reads_on(bases, name)]

    def _expr_member_reads(self, obj: Dict[str, Any], name: str, route: BindingRoute) -> List[Alias]:
        """``X.name`` reads where ``X`` designates the same object as expression ``obj``."""
        index = self.ctx.index
        if index is not None and index.is_global_object(obj):
            step = self._route(route, BindingRoute.GLOBAL_ALIAS)
            return [(node, step) for node in self.global_reads(name)]
        if obj.get("type") == "Identifier" and self.model.binding_for(obj) is None:
            return [(node, route) for node in self.global_method_reads(obj["name"], name)]
        if index is not None:
            global_name = index.global_member(obj)
            if global_name is not None:
                return [(node, route) for node in self.global_method_reads(global_name, name)]
        if obj.get("type") == "ThisExpression":
            func = self.model.this_function(obj)
            if func is None:
                return []
            return self._owner_member_reads(self.resolver.this_owner(func), name, route)
        return [(member, route) for member in self._reads_on(self.expr_aliases(obj), name)]

    def expr_aliases(self, expr: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Nodes designating the same object as the reference expression ``expr``."""
        out = [expr]
        etype = expr.get("type")
        if etype == "Identifier":
            binding = self.model.binding_for(expr)
            if binding is None:
                out.extend(self.global_reads(expr["name"]))
                return out
            if binding.init is not None and binding.constant and binding.kind in ("var", "let", "const"):
                out.append(binding.init)
                out.extend(alias for alias, _ in self.value_aliases(binding.init))
            else:
                out.extend(alias for alias, _ in self._binding_reads(binding, BindingRoute.DIRECT_NAME))
            return out
        if etype == "MemberExpression":
            name = member_name(expr)
            if name is None:
                return out
            out.extend(alias for alias, _ in self._expr_member_reads(expr.get("object") or {}, name,
                                                                       BindingRoute.DIRECT_NAME))
            return out
        if etype == "ThisExpression":
            func = self.model.this_function(expr)
            if func is not None:
                owner = self.resolver.this_owner(func)
                out.extend(self.resolver.this_nodes(owner.functions))
                for literal in owner.literals:
                    out.extend(alias for alias, _ in self.value_aliases(literal))
            return out
        out.extend(alias for alias, _ in self.value_aliases(expr))
        return out

    def _this_member_reads(self, owner, name: str, route: BindingRoute) -> List[Alias]:
        nodes = list(self.resolver.this_nodes(owner.functions))
        return [(member, route) for member in self._reads_on(nodes, name)]

    def _owner_member_reads(self, owner, name: str, route: BindingRoute) -> List[Alias]:
        """``this.name`` inside the owner plus ``instance.name`` on every instance."""
        out = self._this_member_reads(owner, name, route)
        for literal in owner.literals:
            out.extend(self._value_member_reads(literal, name, route))
        for instance in self._instances(owner):
            out.extend(self._value_member_reads(instance, name, route))
        return out

    def _instances(self, owner) -> List[Dict[str, Any]]:
        """``new`` expressions constructing the owner's class or constructor."""
        if owner.cls is not None:
            candidates = [owner.cls] + [alias for alias, _ in self.value_aliases(owner.cls)]
            out = []
            for candidate in candidates:
                parent = self.model.parent(candidate) or {}
                if parent.get("type") == "NewExpression" and parent.get("callee") is candidate:
                    out.append(parent)
            return out
        if owner.constructor is not None:
            return [site.call for site in self.call_sites(owner.constructor)
                    if site.call.get("type") == "NewExpression"]
        return []

    def _prototype_member_reads(self, ctor_expr: Dict[str, Any], name: str,
                                route: BindingRoute) -> List[Alias]:
        out: List[Alias] = []
        chain = describe(ctor_expr)
        if chain is not None:
            out.extend((member, route) for member in self.model.member_chains.get(f"{chain}.prototype.{name}", [])
                       if not self._is_target(member))
        for ctor in self.resolver.resolve_functions(ctor_expr):
            if ctor.get("type") in CLASS_TYPES or ctor.get("type") in FUNCTION_TYPES:
                owner = self.resolver._owner_for_constructor(ctor)
                out.extend(self._owner_member_reads(owner, name, route))
        return out

    def _is_target(self, member: Dict[str, Any]) -> bool:
        assign = self.model.parent(member) or {}
        return assign.get("type") == "AssignmentExpression" and assign.get("left") is member

    # ------------------------------------------------------------- callbacks

    def _callback_reads(self, node: Dict[str, Any], call: Dict[str, Any], route: BindingRoute) -> List[Alias]:
        """Reads of the callee parameter that receives ``node`` as an argument."""
        args = call.get("arguments") or []
        position = next((i for i, arg in enumerate(args) if arg is node), None)
        if position is None:
            return []
        step = self._route(route, BindingRoute.CALLBACK_ARGUMENT)
        out: List[Alias] = []
        for func, offset in self.resolver.call_targets(call):
            index = position - offset
            if index < 0:
                continue
            for binding in self.model.params_of(func):
                if binding.param_index == index and binding.param_key is None and not binding.rest:
                    out.extend(self._binding_reads(binding, step))
                    out.extend(self._container_items(binding, step))
        return out

    def _container_items(self, binding: Binding, route: BindingRoute) -> List[Alias]:
        """Items read back out of containers the parameter was stored into."""
        out: List[Alias] = []
        for ref in binding.references:
            parent = self.model.parent(ref) or {}
            container = None
            if parent.get("type") == "CallExpression" and self.model.parent_key(ref) == "arguments":
                callee = parent.get("callee") or {}
                if member_name(callee) in CONTAINER_ADDERS:
                    container = callee.get("object")
            elif parent.get("type") == "AssignmentExpression" and parent.get("right") is ref:
                left = parent.get("left") or {}
                if left.get("type") == "MemberExpression" and left.get("computed"):
                    container = left.get("object")
            if container:
                out.extend(self._item_reads(container, route, hops=0))
        return out

    def _item_reads(self, container: Dict[str, Any], route: BindingRoute, hops: int) -> List[Alias]:
        nodes = self.expr_aliases(container)
        if container.get("type") == "Identifier" and hops < 2:
            binding = self.model.binding_for(container)
            if binding is not None and binding.is_param:
                for path in self.argument_paths(binding):
                    nodes.extend(self.expr_aliases(path.argument))
        out: List[Alias] = []
        for node in nodes:
            parent = self.model.parent(node) or {}
            ptype = parent.get("type")
            if ptype == "MemberExpression" and parent.get("object") is node:
                method = member_name(parent)
                if parent.get("computed") and method is None and not self._is_target(parent):
                    out.append((parent, route))
                    continue
                call = self.model.parent(parent) or {}
                if call.get("type") != "CallExpression" or call.get("callee") is not parent:
                    continue
                if method in CONTAINER_TAKERS:
                    out.append((call, route))
                elif method in ITERATION_METHODS:
                    args = call.get("arguments") or []
                    if not args:
                        continue
                    for func in self.resolver.callable_functions(args[0]):
                        for binding in self.model.params_of(func):
                            if binding.param_index == ITERATION_METHODS[method] and binding.param_key is None:
                                out.extend(self._binding_reads(binding, route))
            elif ptype == "ForOfStatement" and self.model.parent_key(node) == "right":
                left = parent.get("left") or {}
                if left.get("type") == "VariableDeclaration":
                    declarations = left.get("declarations") or []
                    left = (declarations[0].get("id") or {}) if declarations else {}
                if left.get("type") == "Identifier":
                    out.extend(self._binding_reads(self.model.binding_for(left), route))
        return out

    def _merge_target_reads(self, node: Dict[str, Any], call: Dict[str, Any],
                            route: BindingRoute) -> List[Alias]:
        """``X.extend(obj)`` / ``Object.assign(T, obj)`` copy ``obj``'s members onto a target."""
        callee = call.get("callee") or {}
        if member_name(callee) not in MERGE_METHODS:
            return []
        args = list(call.get("arguments") or [])
        if args and args[0].get("type") == "Literal" and literal_value(args[0]) is None:
            args = args[1:]
        if not args or all(arg is not node for arg in args):
            return []
        if len(args) == 1:
            target = callee.get("object") or {}
        elif args[0] is node:
            return []
        else:
            target = args[0]
        out: List[Alias] = [(alias, route) for alias in self.expr_aliases(target) if alias is not node]
        out.append((call, route))
        return out

    # ---------------------------------------------------------------- globals

    def global_reads(self, name: str) -> List[Dict[str, Any]]:
        """Unbound ``name`` references and ``window.name``-style members."""
        key = (name, "")
        cached = self.ctx.global_callers.get(key)
        if cached is None:
            index = self.ctx.index
            cached = index.reads(name) if index is not None else list(self.model.globals.get(name, []))
            self.ctx.global_callers[key] = cached
        return cached

    def global_method_reads(self, name: str, method: str) -> List[Dict[str, Any]]:
        """``name.method`` reads rooted at the global ``name``; cached per pair."""
        key = (name, method)
        cached = self.ctx.global_callers.get(key)
        if cached is None:
            cached = self._reads_on(self.global_reads(name), method)
            self.ctx.global_callers[key] = cached
        return cached
