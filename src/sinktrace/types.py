"""
Coarse type tags for local variables.

Only unambiguous initializers and assignments are recorded; a variable that
is given two different tags is forgotten. The tags are used to keep the
taint analyzer from treating non-iterable objects as arrays.
"""

import logging
from typing import Dict, Any, Optional, Tuple

from .scope import ScopeModel, member_name

logger = logging.getLogger(__name__)

NON_ITERABLE = frozenset({
    "XMLHttpRequest", "XDomainRequest", "Element", "Image", "WebSocket",
    "EventSource", "Date", "RegExp", "Worker", "FileReader", "Promise",
})

ARRAY_RETURNING = {
    ("Object", "keys"): "Array",
    ("Object", "values"): "Array",
    ("Object", "entries"): "Array",
    ("Array", "from"): "Array",
    ("Array", "of"): "Array",
}

ARRAY_METHODS = frozenset({"split", "map", "filter", "slice", "concat", "querySelectorAll",
                           "getElementsByTagName", "getElementsByClassName", "getElementsByName"})
ELEMENT_METHODS = frozenset({"getElementById", "querySelector", "createElement", "closest"})

_CONFLICT = "<conflict>"


class TypeTracker:
    """Maps ``(scope uid, variable name)`` to a type tag."""

    def __init__(self, model: ScopeModel):
        self.model = model
        self.types: Dict[Tuple[int, str], str] = {}
        self._build()

    def _build(self) -> None:
        for scope in self.model.scopes:
            for name, binding in scope.bindings.items():
                if binding.init is not None and binding.kind in ("var", "let", "const"):
                    self._record((scope.uid, name), self.infer(binding.init))
                for writer in binding.violations:
                    if writer.get("type") == "AssignmentExpression" and writer.get("operator") == "=":
                        self._record((scope.uid, name), self.infer(writer.get("right") or {}))
                    elif writer.get("type") == "VariableDeclarator":
                        self._record((scope.uid, name), self.infer(writer.get("init") or {}))
        for key in [k for k, tag in self.types.items() if tag == _CONFLICT]:
            del self.types[key]
        logger.debug("type tracker: %d tagged variables", len(self.types))

    def _record(self, key: Tuple[int, str], tag: Optional[str]) -> None:
        if tag is None:
            return
        current = self.types.get(key)
        if current is None:
            self.types[key] = tag
        elif current != tag:
            self.types[key] = _CONFLICT

    def infer(self, node: Dict[str, Any]) -> Optional[str]:
        """Type tag of an expression, or None when it is not obvious."""
        ntype = node.get("type")
        if ntype == "ArrayExpression":
            return "Array"
        if ntype == "ObjectExpression":
            return "Object"
        if ntype == "Literal" and "regex" in node:
            return "RegExp"
        if ntype == "NewExpression":
            callee = node.get("callee") or {}
            if callee.get("type") == "Identifier" and self.model.is_unbound(callee):
                return callee["name"]
            return None
        if ntype == "CallExpression":
            callee = node.get("callee") or {}
            method = member_name(callee)
            if method is None:
                return None
            obj = callee.get("object") or {}
            if obj.get("type") == "Identifier" and self.model.is_unbound(obj):
                tag = ARRAY_RETURNING.get((obj["name"], method))
                if tag:
                    return tag
            if method in ARRAY_METHODS:
                return "Array"
            if method in ELEMENT_METHODS:
                return "Element"
        return None

    def type_of(self, ident: Dict[str, Any]) -> Optional[str]:
        """Tag of the variable an identifier refers to."""
        if ident.get("type") != "Identifier":
            return None
        binding = self.model.binding_for(ident) or self.model.lookup(ident["name"], ident)
        if binding is None:
            return None
        return self.types.get((binding.scope.uid, binding.name))

    def is_non_iterable(self, node: Dict[str, Any]) -> bool:
        """True when ``node`` is known to hold a non-iterable object."""
        tag = self.type_of(node) if node.get("type") == "Identifier" else self.infer(node)
        return tag in NON_ITERABLE
