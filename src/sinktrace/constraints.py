"""
Value constraint mining.

Collects the finite value sets a variable is compared against (``switch``
cases, ``[...].includes(x)``, ``x === "a" || x === "b"`` chains and
``key in OBJ`` tests) so the network extractor can report the values a
request parameter is allowed to take.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple

from .scope import ScopeModel, describe, literal_value, member_name, property_key

logger = logging.getLogger(__name__)

EQUALITY_OPERATORS = frozenset({"===", "==", "!==", "!="})


@dataclass
class ValueConstraint:
    """Values a variable was compared against within one scope."""
    variable: str
    scope_uid: int
    values: List[Any] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)

    def add(self, values: List[Any], source: str) -> None:
        for value in values:
            if value not in self.values:
                self.values.append(value)
        self.sources.append(source)


def _tested_name(node: Dict[str, Any]) -> Optional[str]:
    if node.get("type") == "Identifier":
        return node.get("name")
    if node.get("type") == "MemberExpression":
        return describe(node)
    return None


def literal_array(node: Dict[str, Any]) -> List[Any]:
    """String and number elements of an array literal."""
    values = []
    for element in node.get("elements") or []:
        if not element:
            continue
        value = literal_value(element)
        if value is not None:
            values.append(value)
    return values


class ConstraintIndex:
    """
    Per-scope table of mined value constraints.

    Built once per analysis before sink extraction. ``lookup`` walks the
    scope chain outward from the node asking, like a variable lookup.
    """

    def __init__(self, model: ScopeModel):
        self.model = model
        self.constraints: Dict[Tuple[int, str], ValueConstraint] = {}
        self._build()

    def _build(self) -> None:
        for node in self.model.nodes:
            ntype = node.get("type")
            if ntype == "SwitchStatement":
                self._collect_switch(node)
            elif ntype == "LogicalExpression":
                parent = self.model.parent(node) or {}
                if parent.get("type") != "LogicalExpression":
                    self._collect_equality(node)
            elif ntype == "BinaryExpression" and node.get("operator") == "in":
                self._collect_in(node)
            elif ntype == "CallExpression":
                self._collect_includes(node)
        logger.debug("constraints: %d variables", len(self.constraints))

    def add(self, at: Dict[str, Any], variable: Optional[str], values: List[Any], source: str) -> None:
        """Record ``values`` for ``variable`` in the scope containing ``at``."""
        if not variable:
            return
        meaningful = [v for v in values
                      if v is not None and not isinstance(v, bool) and not (isinstance(v, str) and v == "")]
        if not meaningful:
            return
        scope = self.model.scope_for(at)
        key = (scope.uid, variable)
        constraint = self.constraints.get(key)
        if constraint is None:
            constraint = self.constraints[key] = ValueConstraint(variable, scope.uid)
        constraint.add(meaningful, source)

    def _collect_switch(self, node: Dict[str, Any]) -> None:
        variable = _tested_name(node.get("discriminant") or {})
        if variable is None:
            return
        values = []
        for case in node.get("cases") or []:
            test = case.get("test")
            if not test:
                continue
            value = literal_value(test)
            if value is not None:
                values.append(value)
        if len(values) >= 2:
            self.add(node, variable, values, "switch")

    def _collect_includes(self, node: Dict[str, Any]) -> None:
        callee = node.get("callee") or {}
        args = node.get("arguments") or []
        if member_name(callee) != "includes" or not args:
            return
        variable = _tested_name(args[0])
        if variable is None:
            return
        obj = callee.get("object") or {}
        if obj.get("type") == "ArrayExpression":
            values = literal_array(obj)
            if len(values) >= 2:
                self.add(node, variable, values, "includes_inline")
            return
        if obj.get("type") == "Identifier":
            binding = self.model.binding_for(obj)
            init = binding.init if binding is not None else None
            if init is not None and init.get("type") == "ArrayExpression":
                values = literal_array(init)
                if len(values) >= 2:
                    self.add(node, variable, values, "includes_ref")

    def _collect_equality(self, node: Dict[str, Any]) -> None:
        by_variable: Dict[str, List[Any]] = {}
        stack = [node]
        while stack:
            current = stack.pop()
            ctype = current.get("type")
            if ctype == "LogicalExpression":
                stack.append(current.get("right") or {})
                stack.append(current.get("left") or {})
                continue
            if ctype != "BinaryExpression" or current.get("operator") not in EQUALITY_OPERATORS:
                continue
            left = current.get("left") or {}
            right = current.get("right") or {}
            for tested, literal in ((left, right), (right, left)):
                value = literal_value(literal)
                variable = _tested_name(tested)
                if value is not None and variable is not None:
                    by_variable.setdefault(variable, []).append(value)
                    break
        for variable, values in by_variable.items():
            if len(values) >= 2:
                self.add(node, variable, values, "equality_chain")

    def _collect_in(self, node: Dict[str, Any]) -> None:
        left = node.get("left") or {}
        right = node.get("right") or {}
        if left.get("type") != "Identifier" or right.get("type") != "Identifier":
            return
        binding = self.model.binding_for(right)
        init = binding.init if binding is not None else None
        if init is None or init.get("type") != "ObjectExpression":
            return
        keys = [key for key in (property_key(prop) for prop in init.get("properties") or []
                                if prop.get("type") == "Property") if key is not None]
        if len(keys) >= 2:
            self.add(node, left["name"], keys, "in_object")

    # ----------------------------------------------------------------- queries

    def lookup(self, variable: str, at: Dict[str, Any]) -> Optional[ValueConstraint]:
        """Nearest constraint on ``variable`` visible from ``at``."""
        for scope in self.model.scope_for(at).chain():
            constraint = self.constraints.get((scope.uid, variable))
            if constraint is not None:
                return constraint
        return None

    def export(self) -> List[Dict[str, Any]]:
        """Constraints grouped by variable name, as report entries."""
        grouped: Dict[str, ValueConstraint] = {}
        for constraint in self.constraints.values():
            merged = grouped.get(constraint.variable)
            if merged is None:
                merged = grouped[constraint.variable] = ValueConstraint(constraint.variable, constraint.scope_uid)
            merged.add(constraint.values, constraint.sources[0])
            merged.sources.extend(constraint.sources[1:])
        return [
            {"variable": name, "values": list(c.values), "sources": list(c.sources)}
            for name, c in grouped.items()
        ]
