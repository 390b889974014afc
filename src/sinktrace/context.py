"""
Per-analysis state shared by the resolver, caller tracer and analyzers.

One AnalysisContext is built for every analyzed file and dropped when the
analysis returns, so nothing here outlives a single run.
"""

import logging
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Any, Iterator, Optional, Set, Tuple

from .config import Config, config as default_config
from .scope import Binding, ScopeModel

logger = logging.getLogger(__name__)


class ResolutionKind(Enum):
    """The kind of question being asked about a node."""
    VALUES = "values"
    OBJECT = "object"
    ARRAY = "array"
    FUNCTIONS = "functions"
    CALLERS = "callers"
    RECEIVERS = "receivers"
    TAINT = "taint"
    XHR = "xhr"


@dataclass(frozen=True)
class ResolutionKey:
    """Identifies an in-progress resolution: question kind plus node identity."""
    kind: ResolutionKind
    node_id: int
    detail: Optional[str] = None


@dataclass
class SoftError:
    """A recoverable failure recorded during analysis."""
    label: str
    error: str
    stack: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "error": self.error, "stack": self.stack}


@dataclass
class Frame:
    """Parameters of one function bound to the arguments of one call."""
    function: Dict[str, Any]
    call: Dict[str, Any]
    # id(binding) -> (argument expression, property to read from it)
    arguments: Dict[int, Tuple[Dict[str, Any], Optional[str]]] = field(default_factory=dict)


class AnalysisContext:
    """
    Mutable state for one analysis run.

    Holds the cycle guard, the capped soft-error log, the argument frames
    used for correlated per-caller resolution, and the run-wide caches.
    """

    def __init__(self, model: ScopeModel, source_url: str = "<inline>",
                 settings: Optional[Config] = None):
        self.model = model
        self.source_url = source_url
        self.config = settings or default_config

        self.visited: Set[ResolutionKey] = set()
        self.errors: List[SoftError] = []
        self.dropped_errors = 0

        # Incremented whenever a guard rejects re-entry or a depth cap cuts a
        # branch; results computed while these move are not memoized.
        self.rejections = 0
        self.truncations = 0

        self.frames: List[Frame] = []

        self.value_cache: Dict[Tuple[ResolutionKind, int, Optional[str]], Any] = {}
        self.caller_cache: Dict[Tuple[int, Optional[str]], List[str]] = {}
        self.call_site_cache: Dict[int, list] = {}
        self.alias_cache: Dict[int, list] = {}
        self.global_callers: Dict[Tuple[str, str], list] = {}
        self.taint_cache: Dict[int, Any] = {}
        self.stats: Dict[str, int] = {"resolved": 0, "interproc": 0, "wrappers": 0}

        # Filled in by the analyzer once the pre-passes have run
        self.index = None
        self.types = None
        self.constraints = None

    # ------------------------------------------------------------ cycle guard

    def enter(self, kind: ResolutionKind, node: Dict[str, Any],
              detail: Optional[str] = None) -> Optional[ResolutionKey]:
        """
        Mark a resolution as in progress.

        Returns:
            The key to pass to :meth:`leave`, or None when the same question
            about the same node is already being answered further up.
        """
        key = ResolutionKey(kind, id(node), detail)
        if key in self.visited:
            self.rejections += 1
            return None
        self.visited.add(key)
        return key

    def leave(self, key: ResolutionKey) -> None:
        self.visited.discard(key)

    @contextmanager
    def guard(self, kind: ResolutionKind, node: Dict[str, Any],
              detail: Optional[str] = None) -> Iterator[bool]:
        """Context-manager form of enter/leave; yields False on re-entry."""
        key = self.enter(kind, node, detail)
        if key is None:
            yield False
            return
        try:
            yield True
        finally:
            self.visited.discard(key)

    def snapshot(self) -> Tuple[int, int]:
        return self.rejections, self.truncations

    def cacheable(self, snapshot: Tuple[int, int], frames_matter: bool = True) -> bool:
        """True when nothing was cut short since ``snapshot`` and no frame is bound."""
        if frames_matter and self.frames:
            return False
        return snapshot == (self.rejections, self.truncations)

    # ------------------------------------------------------------ soft errors

    def record_error(self, label: str, exc: BaseException) -> None:
        """Record a recoverable failure, keeping at most ``max_errors`` entries."""
        if len(self.errors) >= self.config.max_errors:
            self.dropped_errors += 1
            return
        frames = traceback.extract_tb(exc.__traceback__)[-5:] if exc.__traceback__ else []
        stack = [f"{frame.name}:{frame.lineno}" for frame in frames]
        self.errors.append(SoftError(label=label, error=f"{type(exc).__name__}: {exc}", stack=stack))
        logger.debug("[%s] soft error in %s: %s", self.source_url, label, exc)

    def soft_errors(self) -> List[Dict[str, Any]]:
        return [err.to_dict() for err in self.errors]

    # ----------------------------------------------------------------- frames

    @contextmanager
    def bind_arguments(self, func: Dict[str, Any], call: Dict[str, Any],
                       offset: int = 0) -> Iterator[Frame]:
        """
        Bind ``func``'s parameters to the arguments of ``call`` while active.

        Args:
            func: Function whose parameters are bound
            call: Call or new expression supplying the arguments
            offset: Leading arguments to skip (1 for ``fn.call(thisArg, ...)``)
        """
        frame = Frame(function=func, call=call)
        args = call.get("arguments") or []
        for binding in self.model.params_of(func):
            if binding.param_index is None or binding.rest:
                continue
            position = binding.param_index + offset
            if position >= len(args):
                continue
            # A spread hides every later position
            if any(arg.get("type") == "SpreadElement" for arg in args[:position + 1]):
                continue
            frame.arguments[id(binding)] = (args[position], binding.param_key)
        self.frames.append(frame)
        try:
            yield frame
        finally:
            self.frames.pop()

    def bound_argument(self, binding: Binding) -> Optional[Tuple[int, Dict[str, Any], Optional[str]]]:
        """Innermost frame binding ``binding``, as ``(frame index, argument, key)``."""
        for index in range(len(self.frames) - 1, -1, -1):
            entry = self.frames[index].arguments.get(id(binding))
            if entry is not None:
                return index, entry[0], entry[1]
        return None

    def is_bound(self, func: Dict[str, Any]) -> bool:
        return any(frame.function is func for frame in self.frames)

    @contextmanager
    def outer_frames(self, index: int) -> Iterator[None]:
        """Temporarily drop the frames at ``index`` and above."""
        hidden = self.frames[index:]
        del self.frames[index:]
        try:
            yield
        finally:
            self.frames.extend(hidden)
