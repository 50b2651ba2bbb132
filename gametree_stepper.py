"""Alpha-beta search as an explicit, externally stepped state machine.

The recursion of ``gametree_solver`` is replaced by a deque of
``CallFrame`` values: index 0 is the innermost frame, the last element is
the root. Every call to :func:`step` performs one phase transition and only
touches the top frame, so a host can interleave a search with other work
and cancel it by dropping the ``SearchState``.

Phases cycle ``GENERATING -> COMPUTING -> SORTING -> DECIDING`` for each new
frame. ``DECIDING`` either descends into the next child (back to
``GENERATING``), folds a leaf value in place, ascends to the parent, or
finishes in ``ENDING``.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, List, Optional, Tuple
import time

from gametree_solver import (
    STEPPER,
    Board,
    Heuristic,
    Move,
    MoveApplier,
    MoveGenerator,
    SearchStats,
    TelemetryStats,
    rank_root_scores,
    start_telemetry,
    telemetry_emit_end,
    telemetry_emit_root_scores,
    telemetry_maybe_emit_batch,
)
from gametree_telemetry import TelemetrySink
from gametree_values import (
    DEFAULT_DOMAIN,
    NEGATIVE_INFINITY,
    POSITIVE_INFINITY,
    ExtendedValue,
    ValueDomain,
    coerce,
)

STEP_POLL_MASK = 0x3F


class Phase(Enum):
    GENERATING = "generating"
    COMPUTING = "computing"
    SORTING = "sorting"
    DECIDING = "deciding"
    ENDING = "ending"


class SearchInvariantError(RuntimeError):
    """Raised when the machine needs a frame but the call stack is empty."""

    def __init__(self, message: str, state: "SearchState") -> None:
        super().__init__(message)
        self.state = state


@dataclass
class Ply:
    move: Move
    index: int
    board: Optional[Board] = None
    estimate: Optional[ExtendedValue] = None
    value: Optional[ExtendedValue] = None


@dataclass
class CallFrame:
    alpha: ExtendedValue
    beta: ExtendedValue
    is_maximizing: bool
    board: Board
    plies: List[Ply] = field(default_factory=list)
    leaf_value: Optional[ExtendedValue] = None
    best: Optional[ExtendedValue] = None
    cursor: int = 0
    terminal: bool = False

    def __post_init__(self) -> None:
        if self.best is None:
            self.best = NEGATIVE_INFINITY if self.is_maximizing else POSITIVE_INFINITY


@dataclass
class SearchState:
    depth_remaining: int
    max_depth: int
    maximizing: bool
    domain: ValueDomain
    heuristic: Heuristic
    generator: MoveGenerator
    apply_move: MoveApplier
    call_stack: Deque[CallFrame] = field(default_factory=deque)
    phase: Phase = Phase.GENERATING
    result: Optional[Move] = None
    score: Optional[ExtendedValue] = None
    error: Optional[SearchInvariantError] = None
    root_scores: List[Tuple[Move, ExtendedValue]] = field(default_factory=list)
    stats: SearchStats = field(default_factory=SearchStats)
    telemetry: Optional[TelemetryStats] = None

    @property
    def positive_infinity(self) -> ExtendedValue:
        return self.domain.positive_infinity

    @property
    def negative_infinity(self) -> ExtendedValue:
        return self.domain.negative_infinity

    @property
    def done(self) -> bool:
        return self.phase is Phase.ENDING

    @property
    def steps(self) -> int:
        return self.stats.steps


def new_search(
    max_depth: int,
    heuristic: Heuristic,
    get_moves: MoveGenerator,
    apply_move: MoveApplier,
    board: Board,
    maximizing: bool = True,
    domain: ValueDomain = DEFAULT_DOMAIN,
    telemetry_sink: Optional[TelemetrySink] = None,
) -> SearchState:
    state = SearchState(
        depth_remaining=max_depth,
        max_depth=max_depth,
        maximizing=maximizing,
        domain=domain,
        heuristic=heuristic,
        generator=get_moves,
        apply_move=apply_move,
    )
    state.call_stack.appendleft(
        CallFrame(
            alpha=NEGATIVE_INFINITY,
            beta=POSITIVE_INFINITY,
            is_maximizing=maximizing,
            board=board,
        )
    )
    # Root moves are only generated by the first step, so the count is unknown here.
    state.telemetry = start_telemetry(telemetry_sink, STEPPER, max_depth, maximizing, None)
    return state


def _top(state: SearchState) -> CallFrame:
    if not state.call_stack:
        raise SearchInvariantError(f"empty call stack in phase {state.phase.value}", state)
    return state.call_stack[0]


def _generate(state: SearchState) -> Phase:
    frame = _top(state)
    frame.plies = [Ply(move, index) for index, move in enumerate(state.generator(frame.board))]
    frame.cursor = 0
    frame.terminal = not frame.plies
    ply_depth = len(state.call_stack) - 1
    state.stats.nodes += 1
    if ply_depth > state.stats.max_ply:
        state.stats.max_ply = ply_depth
    return Phase.COMPUTING


def _compute(state: SearchState) -> Phase:
    frame = _top(state)
    for ply in frame.plies:
        ply.board = state.apply_move(frame.board, ply.move)
        ply.estimate = coerce(state.heuristic(ply.board, ply.move))
    return Phase.SORTING


def _sort(state: SearchState) -> Phase:
    frame = _top(state)
    key = state.domain.sort_key()
    frame.plies.sort(key=lambda ply: key(ply.estimate), reverse=frame.is_maximizing)
    return Phase.DECIDING


def _fold(state: SearchState, frame: CallFrame, value: ExtendedValue, is_root: bool) -> None:
    ply = frame.plies[frame.cursor]
    ply.value = value
    frame.cursor += 1
    if is_root:
        # Every root child is searched with a full window so its score is exact.
        return

    domain = state.domain
    if frame.is_maximizing:
        frame.best = domain.max(frame.best, value)
        frame.alpha = domain.max(frame.alpha, frame.best)
    else:
        frame.best = domain.min(frame.best, value)
        frame.beta = domain.min(frame.beta, frame.best)
    if domain.at_least(frame.alpha, frame.beta):
        state.stats.cutoffs += 1
        del frame.plies[frame.cursor:]


def _ascend(state: SearchState) -> None:
    child = _top(state)
    state.call_stack.popleft()
    state.depth_remaining += 1
    if child.terminal:
        state.stats.leaves += 1
        value = child.leaf_value
    else:
        value = child.best
    parent = _top(state)
    _fold(state, parent, value, is_root=len(state.call_stack) == 1)


def _finish(state: SearchState, move: Optional[Move], score: Optional[ExtendedValue]) -> Phase:
    state.result = move
    state.score = score
    state.call_stack.clear()
    telemetry_emit_end(state.telemetry, state.stats, move, score, "complete" if move is not None else "terminal")
    return Phase.ENDING


def _decide(state: SearchState) -> Phase:
    frame = _top(state)
    is_root = len(state.call_stack) == 1

    if is_root:
        if not frame.plies:
            return _finish(state, None, None)
        if len(frame.plies) == 1:
            only = frame.plies[0]
            return _finish(state, only.move, only.value)
        if frame.cursor >= len(frame.plies):
            by_generation = sorted(frame.plies, key=lambda ply: ply.index)
            ranked = rank_root_scores(
                state.domain,
                [(ply, ply.value) for ply in by_generation],
                frame.is_maximizing,
            )
            state.root_scores = [(ply.move, value) for ply, value in ranked]
            telemetry_emit_root_scores(state.telemetry, state.max_depth, state.root_scores)
            # Keep only the winner; the next DECIDING step ends the search.
            frame.plies = [ranked[0][0]]
            return Phase.DECIDING
    elif frame.cursor >= len(frame.plies):
        _ascend(state)
        return Phase.DECIDING

    ply = frame.plies[frame.cursor]
    child_depth = state.depth_remaining - 1
    if child_depth <= 0:
        state.stats.leaves += 1
        _fold(state, frame, ply.estimate, is_root)
        return Phase.DECIDING

    if is_root:
        alpha, beta = NEGATIVE_INFINITY, POSITIVE_INFINITY
    else:
        alpha, beta = frame.alpha, frame.beta
    state.call_stack.appendleft(
        CallFrame(
            alpha=alpha,
            beta=beta,
            is_maximizing=not frame.is_maximizing,
            board=ply.board,
            leaf_value=ply.estimate,
        )
    )
    state.depth_remaining = child_depth
    return Phase.GENERATING


_HANDLERS: dict[Phase, Callable[[SearchState], Phase]] = {
    Phase.GENERATING: _generate,
    Phase.COMPUTING: _compute,
    Phase.SORTING: _sort,
    Phase.DECIDING: _decide,
}


def step(state: SearchState) -> Phase:
    """Advance ``state`` by exactly one transition and return the new phase."""
    if state.phase is Phase.ENDING:
        return state.phase
    state.stats.steps += 1
    try:
        state.phase = _HANDLERS[state.phase](state)
    except SearchInvariantError as exc:
        state.error = exc
        state.phase = Phase.ENDING
        telemetry_emit_end(state.telemetry, state.stats, None, None, "error")
        return state.phase
    if state.phase is not Phase.ENDING:
        telemetry_maybe_emit_batch(state.telemetry, state.stats)
    return state.phase


def run_steps(state: SearchState, max_steps: int) -> Phase:
    for _ in range(max(0, max_steps)):
        if step(state) is Phase.ENDING:
            break
    return state.phase


def run_for_ms(state: SearchState, budget_ms: int) -> Phase:
    """Step until ``ENDING`` or until roughly ``budget_ms`` has elapsed."""
    deadline = time.perf_counter() + max(0, budget_ms) / 1000.0
    while state.phase is not Phase.ENDING:
        step(state)
        if (state.stats.steps & STEP_POLL_MASK) == 0 and time.perf_counter() >= deadline:
            break
    return state.phase


def run_to_end(state: SearchState) -> Optional[Move]:
    while state.phase is not Phase.ENDING:
        step(state)
    if state.error is not None:
        raise state.error
    return state.result


def outcome(state: SearchState) -> Tuple[bool, Any]:
    """``(True, move)`` or ``(False, diagnostic)`` once the search has ended."""
    if state.phase is not Phase.ENDING:
        raise ValueError("search has not reached the ending phase")
    if state.error is not None:
        return False, state.error
    return True, state.result
