"""
Global-binding index.

A pre-pass over the whole program that records names reachable through the
global object: ``window.x = ...``-style property assignments, implicit
globals, top-level script declarations, locals proven to alias the global
object, and module exports.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Any, Optional, Set

from .scope import ScopeModel, Binding, member_name

logger = logging.getLogger(__name__)

GLOBAL_OBJECT_NAMES = frozenset({"window", "self", "globalThis", "global", "top", "parent", "frames"})


@dataclass
class GlobalEntry:
    """A definition reachable by a global name."""
    name: str
    definition: Dict[str, Any]
    scope_path: List[int]
    via: str  # property, implicit, declaration, export


class GlobalBindingIndex:
    """
    Fallback lookup table for names that have no lexical binding.

    Built once per analysis; ``lookup`` returns every definition seen for
    a name in source order.
    """

    def __init__(self, model: ScopeModel):
        self.model = model
        self.entries: Dict[str, List[GlobalEntry]] = {}
        self.exports: Dict[str, List[GlobalEntry]] = {}
        self.aliases: Set[int] = set()  # id(Binding) of locals holding the global object
        self.member_reads: Dict[str, List[Dict[str, Any]]] = {}  # name -> <global>.name nodes
        self._build()

    def _build(self) -> None:
        self._collect_aliases()
        for node in self.model.nodes:
            ntype = node.get("type")
            if ntype == "AssignmentExpression" and node.get("operator") == "=":
                self._collect_assignment(node)
            elif ntype in ("ExportNamedDeclaration", "ExportDefaultDeclaration"):
                self._collect_export(node)
            elif ntype == "MemberExpression":
                name = member_name(node)
                if name is not None and self.is_global_object(node.get("object") or {}):
                    self.member_reads.setdefault(name, []).append(node)
        if not self.model.module:
            for name, binding in self.model.program_scope.bindings.items():
                if binding.kind in ("var", "function") and binding.init is not None:
                    self._add(self.entries, name, binding.init, "declaration")
        logger.debug("global index: %d names, %d aliases, %d exports",
                     len(self.entries), len(self.aliases), len(self.exports))

    def _collect_aliases(self) -> None:
        """Find parameters and variables that provably hold the global object."""
        for _ in range(2):  # a second round picks up aliases of aliases
            for call in self.model.calls:
                callee = call.get("callee") or {}
                if callee.get("type") not in ("FunctionExpression", "ArrowFunctionExpression"):
                    continue
                args = call.get("arguments") or []
                for binding in self.model.params_of(callee):
                    if binding.param_key is not None or binding.param_index is None:
                        continue
                    if binding.param_index < len(args) and self._is_global_expr(args[binding.param_index]):
                        self.aliases.add(id(binding))
            for scope in self.model.scopes:
                for binding in scope.bindings.values():
                    if binding.kind in ("var", "let", "const") and binding.constant and binding.init:
                        if self._is_global_expr(binding.init):
                            self.aliases.add(id(binding))

    def _is_global_expr(self, node: Dict[str, Any]) -> bool:
        ntype = node.get("type")
        if ntype == "ConditionalExpression":
            return self._is_global_expr(node.get("consequent") or {}) or \
                self._is_global_expr(node.get("alternate") or {})
        if ntype == "LogicalExpression":
            return self._is_global_expr(node.get("left") or {}) or \
                self._is_global_expr(node.get("right") or {})
        return self.is_global_object(node)

    def _collect_assignment(self, node: Dict[str, Any]) -> None:
        left = node.get("left") or {}
        right = node.get("right")
        if right is None:
            return
        if left.get("type") == "Identifier":
            if self.model.binding_for(left) is None:
                self._add(self.entries, left["name"], right, "implicit")
            return
        if left.get("type") != "MemberExpression":
            return
        name = member_name(left)
        if name is None:
            return
        obj = left.get("object") or {}
        if self.is_global_object(obj):
            self._add(self.entries, name, right, "property")
            return
        # module.exports.x = ..., exports.x = ...
        if obj.get("type") == "Identifier" and obj.get("name") == "exports" and self.model.is_unbound(obj):
            self._add(self.exports, name, right, "export")
        elif obj.get("type") == "MemberExpression" and member_name(obj) == "exports":
            root = obj.get("object") or {}
            if root.get("type") == "Identifier" and root.get("name") == "module" and self.model.is_unbound(root):
                self._add(self.exports, name, right, "export")

    def _collect_export(self, node: Dict[str, Any]) -> None:
        decl = node.get("declaration")
        if node.get("type") == "ExportDefaultDeclaration":
            if decl:
                self._add(self.exports, "default", decl, "export")
            return
        if decl:
            if decl.get("type") in ("FunctionDeclaration", "ClassDeclaration") and decl.get("id"):
                self._add(self.exports, decl["id"]["name"], decl, "export")
            elif decl.get("type") == "VariableDeclaration":
                for declarator in decl.get("declarations") or []:
                    ident = declarator.get("id") or {}
                    if ident.get("type") == "Identifier" and declarator.get("init"):
                        self._add(self.exports, ident["name"], declarator["init"], "export")
        for spec in node.get("specifiers") or []:
            local = spec.get("local") or {}
            exported = spec.get("exported") or local
            if local.get("type") == "Identifier":
                self._add(self.exports, exported.get("name"), local, "export")

    def _add(self, table: Dict[str, List[GlobalEntry]], name: Optional[str],
             definition: Dict[str, Any], via: str) -> None:
        if not name:
            return
        scope_path = [scope.uid for scope in self.model.scope_for(definition).chain()]
        table.setdefault(name, []).append(GlobalEntry(name, definition, scope_path, via))

    # ----------------------------------------------------------------- queries

    def lookup(self, name: str) -> List[GlobalEntry]:
        """Every global definition recorded for ``name``."""
        return self.entries.get(name, [])

    def reads(self, name: str) -> List[Dict[str, Any]]:
        """Unbound ``name`` identifiers plus ``<global object>.name`` members."""
        return list(self.model.globals.get(name, [])) + self.member_reads.get(name, [])

    def exported(self, name: str) -> List[GlobalEntry]:
        return self.exports.get(name, [])

    def is_alias(self, binding: Optional[Binding]) -> bool:
        return binding is not None and id(binding) in self.aliases

    def is_global_object(self, node: Dict[str, Any]) -> bool:
        """
        True when ``node`` evaluates to the global object.

        Accepts unbound ``window``/``self``/``globalThis``-style names, proven
        aliases, ``window.window``-style self references and top-level ``this``
        in scripts.
        """
        ntype = node.get("type")
        if ntype == "Identifier":
            binding = self.model.binding_for(node)
            if binding is None:
                return node.get("name") in GLOBAL_OBJECT_NAMES and self.model.is_unbound(node)
            return id(binding) in self.aliases
        if ntype == "ThisExpression":
            if self.model.module:
                return False
            for ancestor in self.model.ancestors(node):
                if ancestor.get("type") in ("FunctionDeclaration", "FunctionExpression",
                                            "ClassBody"):
                    return False
            return True
        if ntype == "MemberExpression":
            return member_name(node) in GLOBAL_OBJECT_NAMES and \
                self.is_global_object(node.get("object") or {})
        return False

    def global_member(self, node: Dict[str, Any]) -> Optional[str]:
        """Name ``x`` when ``node`` is ``<global object>.x``."""
        if node.get("type") != "MemberExpression":
            return None
        name = member_name(node)
        if name is None or not self.is_global_object(node.get("object") or {}):
            return None
        return name

    def is_global_name(self, node: Dict[str, Any], name: str) -> bool:
        """True when ``node`` is the unbound identifier ``name`` or ``<global>.name``."""
        if node.get("type") == "Identifier":
            return node.get("name") == name and self.model.is_unbound(node)
        return self.global_member(node) == name
