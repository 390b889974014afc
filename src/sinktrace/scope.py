"""
Scope model over esprima dictionary trees.

Builds, in one iterative pass plus a resolution pass, everything the
analyzers need to navigate a program: parent pointers, lexical scopes,
bindings with their reference and write sites, unbound global references,
member-expression chains and the list of call sites.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Iterator, Optional, Set, Tuple

SKIP_KEYS = frozenset({"loc", "range", "leadingComments", "trailingComments",
                       "comments", "tokens", "errors"})

FUNCTION_TYPES = frozenset({"FunctionDeclaration", "FunctionExpression",
                            "ArrowFunctionExpression"})

BLOCK_SCOPE_TYPES = frozenset({"BlockStatement", "ForStatement", "ForInStatement",
                               "ForOfStatement", "SwitchStatement"})

CALL_TYPES = frozenset({"CallExpression", "NewExpression"})


def iter_children(node: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield ``(field, child)`` pairs for every child node, in source order."""
    shorthand_key = None
    if node.get("type") == "Property" and node.get("shorthand") and node.get("key") is node.get("value"):
        shorthand_key = node.get("key")
    for key, value in node.items():
        if key in SKIP_KEYS:
            continue
        if isinstance(value, dict):
            if "type" in value and value is not shorthand_key:
                yield key, value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, dict) and "type" in item:
                    yield key, item
    if shorthand_key is not None:
        yield "value", shorthand_key


def walk(node: Dict[str, Any], skip_nested: bool = False) -> Iterator[Dict[str, Any]]:
    """
    Iterate over a node and its descendants in pre-order.

    Args:
        node: Root of the walk
        skip_nested: Do not descend into functions nested below ``node``
    """
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if skip_nested and current is not node and current.get("type") in FUNCTION_TYPES:
            continue
        children = [child for _, child in iter_children(current)]
        stack.extend(reversed(children))


def property_key(prop: Dict[str, Any]) -> Optional[str]:
    """Static key name of a Property/MethodDefinition, or None when computed."""
    key = prop.get("key") or {}
    if prop.get("computed"):
        if key.get("type") == "Literal" and isinstance(key.get("value"), str):
            return key["value"]
        return None
    if key.get("type") == "Identifier":
        return key.get("name")
    if key.get("type") == "Literal":
        return literal_text(key)
    return None


def member_name(node: Dict[str, Any]) -> Optional[str]:
    """Property name read by a MemberExpression when it is static."""
    if node.get("type") != "MemberExpression":
        return None
    prop = node.get("property") or {}
    if not node.get("computed"):
        return prop.get("name")
    if prop.get("type") == "Literal" and isinstance(prop.get("value"), str):
        return prop["value"]
    return None


def literal_text(node: Dict[str, Any]) -> Optional[str]:
    """
    Scalar text of a string or number literal.

    Booleans, null and regular expressions are not scalar values here.
    """
    if node.get("type") != "Literal" or "regex" in node:
        return None
    value = node.get("value")
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    return None


def literal_value(node: Dict[str, Any]) -> Any:
    """Python value of a string/number literal (ints normalized), else None."""
    text = literal_text(node)
    if text is None:
        return None
    value = node.get("value")
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def describe(node: Dict[str, Any]) -> Optional[str]:
    """
    Dotted name of an identifier/member chain (``a.b.c``, ``this.x``).

    Returns None when any link is computed with a non-literal key.
    """
    parts: List[str] = []
    current = node
    while current.get("type") == "MemberExpression":
        name = member_name(current)
        if name is None:
            return None
        parts.append(name)
        current = current.get("object") or {}
    if current.get("type") == "Identifier":
        parts.append(current["name"])
    elif current.get("type") == "ThisExpression":
        parts.append("this")
    else:
        return None
    return ".".join(reversed(parts))


def chain_root(node: Dict[str, Any]) -> Dict[str, Any]:
    """Innermost object of a member chain."""
    current = node
    while current.get("type") == "MemberExpression":
        current = current.get("object") or {}
    return current


def position(node: Optional[Dict[str, Any]]) -> Tuple[Optional[int], Optional[int]]:
    """Return ``(line, column)`` for a node (1-based line, 0-based column)."""
    if not node:
        return None, None
    start = (node.get("loc") or {}).get("start") or {}
    return start.get("line"), start.get("column")


@dataclass(eq=False)
class Binding:
    """A declared name and everything known about where it is used."""
    name: str
    kind: str  # var, let, const, param, function, class, catch, import
    scope: "Scope"
    identifier: Dict[str, Any]
    declarator: Optional[Dict[str, Any]] = None
    init: Optional[Dict[str, Any]] = None
    function: Optional[Dict[str, Any]] = None
    param_index: Optional[int] = None
    param_key: Optional[str] = None
    default: Optional[Dict[str, Any]] = None
    pattern_source: Optional[Dict[str, Any]] = None
    rest: bool = False
    references: List[Dict[str, Any]] = field(default_factory=list)
    violations: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def constant(self) -> bool:
        return not self.violations

    @property
    def is_param(self) -> bool:
        return self.kind == "param"


@dataclass(eq=False)
class Scope:
    """A lexical scope."""
    uid: int
    kind: str  # program, function, block, catch
    node: Dict[str, Any]
    parent: Optional["Scope"] = None
    bindings: Dict[str, Binding] = field(default_factory=dict)

    def lookup(self, name: str) -> Optional[Binding]:
        scope: Optional[Scope] = self
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = scope.parent
        return None

    def var_scope(self) -> "Scope":
        scope = self
        while scope.kind not in ("function", "program") and scope.parent is not None:
            scope = scope.parent
        return scope

    def chain(self) -> Iterator["Scope"]:
        scope: Optional[Scope] = self
        while scope is not None:
            yield scope
            scope = scope.parent


class ScopeModel:
    """
    Navigable view of one parsed program.

    All lookups are keyed by node identity (``id(node)``); the model holds a
    reference to the tree so identities stay valid for its lifetime.
    """

    def __init__(self, ast: Dict[str, Any], source: str = "", module: bool = False):
        """
        Build the model.

        Args:
            ast: Program node from the parser
            source: Source text the tree was parsed from
            module: Whether the program was parsed as an ES module
        """
        self.root = ast
        self.source = source
        self.module = module

        self.parents: Dict[int, Optional[Dict[str, Any]]] = {}
        self.parent_keys: Dict[int, Optional[str]] = {}
        self.nodes: List[Dict[str, Any]] = []
        self.scopes: List[Scope] = []
        self.node_scopes: Dict[int, Scope] = {}
        self.bindings_by_ident: Dict[int, Binding] = {}
        self.globals: Dict[str, List[Dict[str, Any]]] = {}
        self.implicit_globals: Dict[str, List[Dict[str, Any]]] = {}
        self.member_chains: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.functions: List[Dict[str, Any]] = []
        self.function_params: Dict[int, List[Binding]] = {}
        self.function_scopes: Dict[int, Scope] = {}

        self._declared: Set[int] = set()
        self._writes: Dict[int, Dict[str, Any]] = {}
        self._scope_bodies: Set[int] = set()
        self._pending_refs: List[Tuple[Dict[str, Any], Scope]] = []
        self._pending_writes: List[Tuple[Dict[str, Any], Dict[str, Any], Scope]] = []
        self._returns: Dict[int, List[Dict[str, Any]]] = {}

        self.program_scope = self._new_scope("program", ast, None)
        self._build()
        self._resolve()

    # ------------------------------------------------------------------ build

    def _new_scope(self, kind: str, node: Dict[str, Any], parent: Optional[Scope]) -> Scope:
        scope = Scope(uid=len(self.scopes), kind=kind, node=node, parent=parent)
        self.scopes.append(scope)
        return scope

    def _build(self) -> None:
        seen: Set[int] = set()
        stack: List[Tuple[Dict[str, Any], Optional[Dict[str, Any]], Optional[str], Scope]] = [
            (self.root, None, None, self.program_scope)
        ]
        while stack:
            node, parent, key, scope = stack.pop()
            nid = id(node)
            if nid in seen:
                continue
            seen.add(nid)

            self.parents[nid] = parent
            self.parent_keys[nid] = key
            self.node_scopes[nid] = scope
            self.nodes.append(node)

            child_scope = self._enter(node, parent, key, scope)

            children = list(iter_children(node))
            for child_key, child in reversed(children):
                stack.append((child, node, child_key, child_scope))

    def _enter(self, node: Dict[str, Any], parent: Optional[Dict[str, Any]],
               key: Optional[str], scope: Scope) -> Scope:
        """Record declarations for ``node`` and return the scope for its children."""
        ntype = node.get("type")

        if ntype in FUNCTION_TYPES:
            self.functions.append(node)
            if ntype == "FunctionDeclaration" and node.get("id"):
                self._declare(scope.var_scope(), node["id"], "function",
                              declarator=node, init=node)
            fscope = self._new_scope("function", node, scope)
            self.function_scopes[id(node)] = fscope
            if ntype == "FunctionExpression" and node.get("id"):
                self._declare(fscope, node["id"], "function", declarator=node, init=node)
            params: List[Binding] = []
            for index, param in enumerate(node.get("params") or []):
                params.extend(self._declare_pattern(fscope, param, "param", declarator=node,
                                                    function=node, param_index=index))
            self.function_params[id(node)] = params
            body = node.get("body")
            if isinstance(body, dict) and body.get("type") == "BlockStatement":
                self._scope_bodies.add(id(body))
            return fscope

        if ntype in BLOCK_SCOPE_TYPES and id(node) not in self._scope_bodies:
            return self._new_scope("block", node, scope)

        if ntype == "CatchClause":
            cscope = self._new_scope("catch", node, scope)
            if node.get("param"):
                self._declare_pattern(cscope, node["param"], "catch", declarator=node)
            body = node.get("body")
            if isinstance(body, dict):
                self._scope_bodies.add(id(body))
            return cscope

        if ntype == "VariableDeclaration":
            kind = node.get("kind") or "var"
            target = scope if kind in ("let", "const") else scope.var_scope()
            for decl in node.get("declarations") or []:
                self._declare_pattern(target, decl.get("id"), kind, declarator=decl,
                                      init=decl.get("init"))
        elif ntype == "ClassDeclaration" and node.get("id"):
            self._declare(scope, node["id"], "class", declarator=node, init=node)
        elif ntype == "ImportDeclaration":
            for spec in node.get("specifiers") or []:
                if spec.get("local"):
                    self._declare(self.program_scope, spec["local"], "import", declarator=spec)
        elif ntype == "AssignmentExpression":
            for target in self._pattern_identifiers(node.get("left")):
                self._writes[id(target)] = node
                self._pending_writes.append((target, node, scope))
        elif ntype == "UpdateExpression":
            arg = node.get("argument") or {}
            if arg.get("type") == "Identifier":
                self._writes[id(arg)] = node
                self._pending_writes.append((arg, node, scope))
        elif ntype in ("ForInStatement", "ForOfStatement"):
            left = node.get("left") or {}
            if left.get("type") != "VariableDeclaration":
                for target in self._pattern_identifiers(left):
                    self._writes[id(target)] = node
                    self._pending_writes.append((target, node, scope))
        elif ntype == "Identifier":
            if self._is_reference(node, parent, key):
                self._pending_refs.append((node, scope))
        elif ntype == "MemberExpression":
            chain = describe(node)
            if chain is not None:
                self.member_chains.setdefault(chain, []).append(node)

        if ntype in CALL_TYPES:
            self.calls.append(node)
        return scope

    def _pattern_identifiers(self, pattern: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Identifiers bound or written by a pattern (not member targets)."""
        out: List[Dict[str, Any]] = []
        stack = [pattern] if pattern else []
        while stack:
            current = stack.pop()
            if not isinstance(current, dict):
                continue
            ctype = current.get("type")
            if ctype == "Identifier":
                out.append(current)
            elif ctype == "AssignmentPattern":
                stack.append(current.get("left"))
            elif ctype == "RestElement":
                stack.append(current.get("argument"))
            elif ctype == "ArrayPattern":
                stack.extend(current.get("elements") or [])
            elif ctype == "ObjectPattern":
                for prop in current.get("properties") or []:
                    if prop.get("type") == "RestElement":
                        stack.append(prop.get("argument"))
                    else:
                        stack.append(prop.get("value"))
        return out

    def _declare_pattern(self, scope: Scope, pattern: Optional[Dict[str, Any]], kind: str,
                         declarator: Optional[Dict[str, Any]] = None,
                         init: Optional[Dict[str, Any]] = None,
                         function: Optional[Dict[str, Any]] = None,
                         param_index: Optional[int] = None) -> List[Binding]:
        if not pattern:
            return []
        declared: List[Binding] = []
        # (node, property key at the first destructuring level, default, rest, depth)
        stack: List[Tuple[Dict[str, Any], Optional[str], Optional[Dict[str, Any]], bool, int]] = [
            (pattern, None, None, False, 0)
        ]
        while stack:
            current, pkey, default, rest, depth = stack.pop()
            ctype = current.get("type")
            if ctype == "Identifier":
                binding = self._declare(
                    scope, current, kind, declarator=declarator,
                    init=init if depth == 0 else None,
                    function=function, param_index=param_index,
                    param_key=pkey, default=default, rest=rest,
                    pattern_source=init if depth > 0 else None,
                )
                declared.append(binding)
            elif ctype == "AssignmentPattern":
                stack.append((current.get("left") or {}, pkey, current.get("right"), rest, depth))
            elif ctype == "RestElement":
                stack.append((current.get("argument") or {}, None, None, True, depth + 1))
            elif ctype == "ObjectPattern":
                for prop in reversed(current.get("properties") or []):
                    if prop.get("type") == "RestElement":
                        stack.append((prop.get("argument") or {}, None, None, True, depth + 1))
                        continue
                    name = property_key(prop) if depth == 0 else None
                    stack.append((prop.get("value") or {}, name, None, False, depth + 1))
            elif ctype == "ArrayPattern":
                for element in reversed(current.get("elements") or []):
                    if element:
                        stack.append((element, None, None, False, depth + 1))
        declared.reverse()
        return declared

    def _declare(self, scope: Scope, ident: Dict[str, Any], kind: str,
                 declarator: Optional[Dict[str, Any]] = None,
                 init: Optional[Dict[str, Any]] = None,
                 function: Optional[Dict[str, Any]] = None,
                 param_index: Optional[int] = None,
                 param_key: Optional[str] = None,
                 default: Optional[Dict[str, Any]] = None,
                 rest: bool = False,
                 pattern_source: Optional[Dict[str, Any]] = None) -> Binding:
        name = ident.get("name")
        self._declared.add(id(ident))
        existing = scope.bindings.get(name)
        if existing is not None and kind != "param":
            # Redeclaration: later initializers behave like assignments.
            if init is not None and kind != "function":
                existing.violations.append(declarator or ident)
            self.bindings_by_ident[id(ident)] = existing
            return existing
        binding = Binding(
            name=name, kind=kind, scope=scope, identifier=ident,
            declarator=declarator, init=init, function=function,
            param_index=param_index, param_key=param_key, default=default,
            rest=rest, pattern_source=pattern_source,
        )
        scope.bindings[name] = binding
        self.bindings_by_ident[id(ident)] = binding
        return binding

    def _is_reference(self, ident: Dict[str, Any], parent: Optional[Dict[str, Any]],
                      key: Optional[str]) -> bool:
        if id(ident) in self._declared or id(ident) in self._writes:
            return False
        if parent is None:
            return True
        ptype = parent.get("type")
        if ptype == "MemberExpression" and key == "property" and not parent.get("computed"):
            return False
        if ptype in ("Property", "MethodDefinition") and key == "key" and not parent.get("computed"):
            return False
        if ptype in ("LabeledStatement", "BreakStatement", "ContinueStatement"):
            return False
        if ptype in FUNCTION_TYPES and key == "id":
            return False
        if ptype in ("ClassExpression", "ClassDeclaration") and key == "id":
            return False
        if ptype == "MetaProperty":
            return False
        if ptype == "ImportSpecifier" and key == "imported":
            return False
        if ptype == "ExportSpecifier" and key == "exported":
            return False
        return True

    def _resolve(self) -> None:
        for ident, scope in self._pending_refs:
            binding = scope.lookup(ident["name"])
            if binding is not None:
                binding.references.append(ident)
                self.bindings_by_ident[id(ident)] = binding
            else:
                self.globals.setdefault(ident["name"], []).append(ident)
        for ident, writer, scope in self._pending_writes:
            binding = scope.lookup(ident["name"])
            if binding is not None:
                binding.violations.append(writer)
                self.bindings_by_ident[id(ident)] = binding
            else:
                self.implicit_globals.setdefault(ident["name"], []).append(writer)
        self._pending_refs = []
        self._pending_writes = []

    # ----------------------------------------------------------------- queries

    def parent(self, node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.parents.get(id(node))

    def parent_key(self, node: Dict[str, Any]) -> Optional[str]:
        return self.parent_keys.get(id(node))

    def ancestors(self, node: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        current = self.parents.get(id(node))
        while current is not None:
            yield current
            current = self.parents.get(id(current))

    def scope_for(self, node: Dict[str, Any]) -> Scope:
        return self.node_scopes.get(id(node), self.program_scope)

    def binding_for(self, ident: Dict[str, Any]) -> Optional[Binding]:
        """Binding an Identifier node refers to (or declares)."""
        return self.bindings_by_ident.get(id(ident))

    def lookup(self, name: str, at: Dict[str, Any]) -> Optional[Binding]:
        """Binding visible for ``name`` at the position of ``at``."""
        return self.scope_for(at).lookup(name)

    def is_unbound(self, ident: Dict[str, Any]) -> bool:
        """True for an identifier that resolves to no declaration in scope."""
        if ident.get("type") != "Identifier":
            return False
        if id(ident) in self.bindings_by_ident:
            return False
        return self.scope_for(ident).lookup(ident["name"]) is None

    def enclosing_function(self, node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for ancestor in self.ancestors(node):
            if ancestor.get("type") in FUNCTION_TYPES:
                return ancestor
        return None

    def this_function(self, node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Nearest enclosing non-arrow function (the one that owns ``this``)."""
        for ancestor in self.ancestors(node):
            if ancestor.get("type") in ("FunctionDeclaration", "FunctionExpression"):
                return ancestor
        return None

    def params_of(self, func: Dict[str, Any]) -> List[Binding]:
        return self.function_params.get(id(func), [])

    def returns_of(self, func: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Returned expressions of a function, not counting nested functions."""
        cached = self._returns.get(id(func))
        if cached is not None:
            return cached
        body = func.get("body")
        returned: List[Dict[str, Any]] = []
        if isinstance(body, dict) and body.get("type") != "BlockStatement":
            returned.append(body)
        elif isinstance(body, dict):
            for node in walk(body, skip_nested=True):
                if node.get("type") == "ReturnStatement" and node.get("argument"):
                    returned.append(node["argument"])
        self._returns[id(func)] = returned
        return returned

    def function_name(self, func: Optional[Dict[str, Any]]) -> Optional[str]:
        """Best-effort display name for a function node."""
        if not func:
            return None
        if func.get("id") and func["id"].get("name"):
            return func["id"]["name"]
        parent = self.parent(func) or {}
        ptype = parent.get("type")
        if ptype == "VariableDeclarator" and (parent.get("id") or {}).get("type") == "Identifier":
            return parent["id"]["name"]
        if ptype == "AssignmentExpression" and parent.get("right") is func:
            return describe(parent.get("left") or {})
        if ptype in ("Property", "MethodDefinition"):
            return property_key(parent)
        return None

    def text(self, node: Dict[str, Any]) -> str:
        if "range" in node and self.source:
            start, end = node["range"]
            return self.source[start:end]
        return ""
