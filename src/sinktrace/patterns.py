"""
Protobuf pattern recognizers and source map discovery.

Compiled protobuf runtimes leave recognizable shapes in bundles: enum objects
mapping names to ``0..N-1``, their reverse maps, and prototype accessors that
read a field by number (``f(this, 3)`` or ``this.array[3]``).
"""

import logging
from typing import Dict, List, Any, Optional

from .scope import FUNCTION_TYPES, member_name, walk

logger = logging.getLogger(__name__)

MIN_ENUM_SIZE = 2
MAX_ENUM_SIZE = 200
MAX_FIELD_NUMBER = 10000
SOURCE_MAP_MARKER = "sourceMappingURL="


def _integer(node: Dict[str, Any]) -> Optional[int]:
    """Integer value of ``N`` or ``-N`` literals."""
    if node.get("type") == "UnaryExpression" and node.get("operator") == "-":
        value = _integer(node.get("argument") or {})
        return -value if value is not None else None
    if node.get("type") != "Literal":
        return None
    value = node.get("value")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _is_sequence(numbers: List[int]) -> bool:
    return sorted(numbers) == list(range(len(numbers)))


def detect_enum(node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Recognize an enum object literal.

    Args:
        node: ObjectExpression node

    Returns:
        ``{"values": {name: number}}`` for name -> ``0..N-1`` objects,
        ``{"values": {name: number}, "isReverseMap": True}`` for
        number -> name objects, None otherwise.
    """
    props = node.get("properties") or []
    if not MIN_ENUM_SIZE <= len(props) <= MAX_ENUM_SIZE:
        return None

    forward: Dict[str, int] = {}
    reverse: Dict[str, int] = {}
    for prop in props:
        if prop.get("type") != "Property" or prop.get("computed") or prop.get("kind") != "init":
            return None
        key = prop.get("key") or {}
        value = prop.get("value") or {}
        number = _integer(value)
        if key.get("type") == "Identifier" or (key.get("type") == "Literal" and isinstance(key.get("value"), str)):
            name = key.get("name") if key.get("type") == "Identifier" else key["value"]
            if number is None:
                return None
            forward[name] = number
        else:
            index = _integer(key)
            text = value.get("value") if value.get("type") == "Literal" else None
            if index is None or not isinstance(text, str):
                return None
            reverse[text] = index

    if forward and not reverse and _is_sequence(list(forward.values())):
        return {"values": forward}
    if reverse and not forward and _is_sequence(list(reverse.values())):
        return {"values": reverse, "isReverseMap": True}
    return None


def _field_number(func: Dict[str, Any]) -> Optional[int]:
    """First ``f(this, N)``, ``o.f(this, N)`` or ``this.arr[N]`` inside a function."""
    for node in walk(func.get("body") or {}):
        ntype = node.get("type")
        if ntype == "CallExpression":
            callee = node.get("callee") or {}
            args = node.get("arguments") or []
            if callee.get("type") not in ("Identifier", "MemberExpression") or len(args) < 2:
                continue
            if (args[0] or {}).get("type") != "ThisExpression":
                continue
            number = _integer(args[1]) if args[1].get("type") == "Literal" else None
            if number is not None and 1 <= number <= MAX_FIELD_NUMBER:
                return number
        elif ntype == "MemberExpression" and node.get("computed"):
            obj = node.get("object") or {}
            if obj.get("type") != "MemberExpression" or (obj.get("object") or {}).get("type") != "ThisExpression":
                continue
            number = _integer(node.get("property") or {})
            if (node.get("property") or {}).get("type") == "Literal" and number is not None \
                    and 1 <= number <= MAX_FIELD_NUMBER:
                return number
    return None


def detect_field_map(node: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Recognize ``X.prototype.name = function () { ... }`` field accessors.

    Args:
        node: AssignmentExpression node
    """
    left = node.get("left") or {}
    right = node.get("right") or {}
    if right.get("type") not in FUNCTION_TYPES or left.get("type") != "MemberExpression":
        return None
    accessor = (left.get("property") or {}).get("name") if not left.get("computed") else None
    if not accessor:
        return None
    if member_name(left.get("object") or {}) != "prototype":
        return None
    number = _field_number(right)
    if number is None:
        return None
    logger.debug("proto field #%d -> %s", number, accessor)
    return {
        "fieldNumber": number,
        "fieldName": accessor,
        "accessorName": accessor,
        "minified": True,
    }


def find_proto_patterns(nodes: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """
    Scan a program's nodes for enums and field accessors.

    Returns:
        Dictionary with ``protoEnums`` and ``protoFieldMaps`` lists
    """
    enums = []
    field_maps = []
    for node in nodes:
        ntype = node.get("type")
        if ntype == "ObjectExpression":
            found = detect_enum(node)
            if found is not None:
                enums.append(found)
        elif ntype == "AssignmentExpression" and node.get("operator") == "=":
            found = detect_field_map(node)
            if found is not None:
                field_maps.append(found)
    return {"protoEnums": enums, "protoFieldMaps": field_maps}


def extract_source_map_url(code: str) -> Optional[str]:
    """Value of a ``sourceMappingURL=`` comment within the last 500 characters."""
    tail = code[-500:]
    idx = tail.find(SOURCE_MAP_MARKER)
    if idx == -1:
        return None
    rest = tail[idx + len(SOURCE_MAP_MARKER):].lstrip(" \t")
    end = 0
    while end < len(rest) and rest[end] > " ":
        end += 1
    return rest[:end] or None
