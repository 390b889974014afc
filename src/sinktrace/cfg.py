"""
Minimal control flow graph for sanitizer dominance checks.

One block per statement of a function body. ``if``/``else`` branches
diverge and join; loops, ``switch`` and ``try`` statements are single opaque
blocks; ``return`` and ``throw`` end their path.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Iterable, Optional, Set

OPAQUE_STATEMENTS = frozenset({
    "ForStatement", "ForInStatement", "ForOfStatement", "WhileStatement",
    "DoWhileStatement", "SwitchStatement", "TryStatement",
})


@dataclass
class CFGBlock:
    """A basic block in the control flow graph."""
    id: int
    statements: List[Dict[str, Any]] = field(default_factory=list)
    successors: List[int] = field(default_factory=list)
    predecessors: List[int] = field(default_factory=list)
    is_entry: bool = False
    is_exit: bool = False


class ControlFlowGraph:
    """
    CFG over one function body (or a whole program).

    Args:
        body: BlockStatement, Program, or an arrow function's expression body
        parents: ``id(node) -> parent`` map used to place arbitrary nodes
    """

    def __init__(self, body: Dict[str, Any], parents: Dict[int, Optional[Dict[str, Any]]]):
        self.parents = parents
        self.blocks: Dict[int, CFGBlock] = {}
        self._owner: Dict[int, int] = {}  # id(statement) -> block id
        self._counter = 0

        self.entry = self._new_block(is_entry=True)
        self.exit = self._new_block(is_exit=True)
        if body.get("type") in ("BlockStatement", "Program"):
            last = self._process(body.get("body") or [], self.entry)
        else:
            last = self._process([body], self.entry)
        if last is not None:
            self._link(last, self.exit)

    def _new_block(self, **kwargs) -> CFGBlock:
        block = CFGBlock(id=self._counter, **kwargs)
        self.blocks[block.id] = block
        self._counter += 1
        return block

    def _link(self, src: CFGBlock, dst: CFGBlock) -> None:
        if dst.id not in src.successors:
            src.successors.append(dst.id)
        if src.id not in dst.predecessors:
            dst.predecessors.append(src.id)

    def _place(self, node: Dict[str, Any], block: CFGBlock) -> None:
        block.statements.append(node)
        self._owner[id(node)] = block.id

    def _process(self, statements: Iterable[Dict[str, Any]], current: CFGBlock) -> Optional[CFGBlock]:
        """Chain statements after ``current``; None when every path has left."""
        for statement in statements:
            stype = statement.get("type")
            if stype == "IfStatement":
                current = self._handle_if(statement, current)
            elif stype == "BlockStatement":
                current = self._process(statement.get("body") or [], current)
            else:
                block = self._new_block()
                self._link(current, block)
                self._place(statement, block)
                current = block
                if stype in ("ReturnStatement", "ThrowStatement"):
                    self._link(block, self.exit)
                    return None
            if current is None:
                return None
        return current

    def _handle_if(self, node: Dict[str, Any], current: CFGBlock) -> Optional[CFGBlock]:
        """if (test) { then } else { else } -> test block, two branches, join"""
        test_block = self._new_block()
        self._link(current, test_block)
        if node.get("test"):
            self._place(node["test"], test_block)

        join = self._new_block()
        reaches_join = False

        then_start = self._new_block()
        self._link(test_block, then_start)
        then_end = self._process([node["consequent"]] if node.get("consequent") else [], then_start)
        if then_end is not None:
            self._link(then_end, join)
            reaches_join = True

        if node.get("alternate"):
            else_start = self._new_block()
            self._link(test_block, else_start)
            else_end = self._process([node["alternate"]], else_start)
            if else_end is not None:
                self._link(else_end, join)
                reaches_join = True
        else:
            self._link(test_block, join)
            reaches_join = True

        return join if reaches_join else None

    # ----------------------------------------------------------------- queries

    def block_of(self, node: Dict[str, Any]) -> Optional[CFGBlock]:
        """Block holding the statement (or ``if`` test) that contains ``node``."""
        current: Optional[Dict[str, Any]] = node
        while current is not None:
            block_id = self._owner.get(id(current))
            if block_id is not None:
                return self.blocks[block_id]
            current = self.parents.get(id(current))
        return None

    def reachable_avoiding(self, target: int, avoid: Set[int]) -> bool:
        """True when ``target`` is reachable from the entry without entering ``avoid``."""
        if self.entry.id in avoid:
            return False
        seen = {self.entry.id}
        work = [self.entry.id]
        while work:
            block_id = work.pop()
            if block_id == target:
                return True
            for succ in self.blocks[block_id].successors:
                if succ in seen or succ in avoid:
                    continue
                seen.add(succ)
                work.append(succ)
        return False


def is_sanitized(cfg: ControlFlowGraph, sink: Dict[str, Any],
                 sanitizers: List[Dict[str, Any]]) -> bool:
    """
    True when every path from the entry to the sink passes a sanitizer block.

    A sanitizer in the same block as the sink counts. With no sanitizer at
    all the answer is False without walking the graph.
    """
    if not sanitizers:
        return False
    sink_block = cfg.block_of(sink)
    if sink_block is None:
        return False
    blocks = {block.id for block in (cfg.block_of(node) for node in sanitizers) if block is not None}
    if not blocks:
        return False
    if sink_block.id in blocks:
        return True
    return not cfg.reachable_avoiding(sink_block.id, blocks)
