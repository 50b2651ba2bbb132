"""Recursive minimax and alpha-beta evaluators with a best-move driver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple
import time

from gametree_telemetry import (
    NodeBatchEvent,
    RootScoresEvent,
    SearchEndEvent,
    SearchStartEvent,
    TelemetrySink,
    emit_dataclass_event,
)
from gametree_values import (
    DEFAULT_DOMAIN,
    NEGATIVE_INFINITY,
    POSITIVE_INFINITY,
    ExtendedValue,
    ValueDomain,
    coerce,
    format_value,
)

Board = Any
Move = Any
Heuristic = Callable[[Board, Optional[Move]], Any]
MoveGenerator = Callable[[Board], Iterable[Move]]
MoveApplier = Callable[[Board, Move], Board]

MINIMAX = "minimax"
ALPHABETA = "alphabeta"
STEPPER = "stepper"
EVALUATORS = (MINIMAX, ALPHABETA, STEPPER)

TELEMETRY_NODE_MASK = 0x3FF
TELEMETRY_EMIT_INTERVAL_MS = 120


@dataclass
class SearchStats:
    nodes: int = 0
    leaves: int = 0
    cutoffs: int = 0
    max_ply: int = 0
    steps: int = 0


@dataclass(frozen=True)
class SearchResult:
    """Outcome of one best-move query.

    The stepper ends as soon as the root has a single legal move, so for
    such roots its result has ``score=None`` and empty ``root_scores`` while
    the recursive evaluators still score the move.
    """

    best_move: Optional[Move]
    score: Optional[ExtendedValue]
    root_scores: List[Tuple[Move, ExtendedValue]]
    depth: int
    evaluator: str
    nodes: int
    leaves: int
    cutoffs: int
    elapsed_ms: int


@dataclass
class TelemetryStats:
    sink: TelemetrySink
    solve_start: float
    last_emit: float


@dataclass
class _SearchContext:
    domain: ValueDomain
    heuristic: Heuristic
    get_moves: MoveGenerator
    apply_move: MoveApplier
    stats: SearchStats = field(default_factory=SearchStats)
    order_moves: bool = False
    telemetry: Optional[TelemetryStats] = None


def start_telemetry(
    sink: Optional[TelemetrySink],
    evaluator: str,
    max_depth: int,
    maximizing: bool,
    root_moves: Optional[int],
) -> Optional[TelemetryStats]:
    if sink is None:
        return None
    start = time.perf_counter()
    telemetry = TelemetryStats(sink=sink, solve_start=start, last_emit=start)
    emit_dataclass_event(
        sink,
        "search_start",
        SearchStartEvent(
            evaluator=evaluator,
            max_depth=max_depth,
            maximizing=maximizing,
            root_moves=root_moves,
        ),
    )
    return telemetry


def telemetry_maybe_emit_batch(
    telemetry: Optional[TelemetryStats],
    stats: SearchStats,
    force: bool = False,
) -> None:
    if telemetry is None:
        return
    if not force and (stats.nodes & TELEMETRY_NODE_MASK) != 0:
        return
    now = time.perf_counter()
    if not force and (now - telemetry.last_emit) * 1000 < TELEMETRY_EMIT_INTERVAL_MS:
        return

    elapsed_ms = max(1, int((now - telemetry.solve_start) * 1000))
    emit_dataclass_event(
        telemetry.sink,
        "node_batch",
        NodeBatchEvent(
            nodes_total=stats.nodes,
            leaves=stats.leaves,
            cutoffs=stats.cutoffs,
            max_ply=stats.max_ply,
            steps=stats.steps,
            nps_estimate=int(stats.nodes * 1000 / elapsed_ms),
            elapsed_ms=elapsed_ms,
        ),
    )
    telemetry.last_emit = now


def telemetry_emit_root_scores(
    telemetry: Optional[TelemetryStats],
    depth: int,
    root_scores: Sequence[Tuple[Move, ExtendedValue]],
) -> None:
    if telemetry is None:
        return
    emit_dataclass_event(
        telemetry.sink,
        "root_scores",
        RootScoresEvent(
            depth=depth,
            root_scores=[(repr(move), format_value(value)) for move, value in root_scores],
        ),
    )


def telemetry_emit_end(
    telemetry: Optional[TelemetryStats],
    stats: SearchStats,
    best_move: Optional[Move],
    score: Optional[ExtendedValue],
    reason: str,
) -> None:
    if telemetry is None:
        return
    # Force one final batch so consumers see the closing counters.
    telemetry_maybe_emit_batch(telemetry, stats, force=True)
    emit_dataclass_event(
        telemetry.sink,
        "search_end",
        SearchEndEvent(
            best_move=None if best_move is None else repr(best_move),
            score=None if score is None else format_value(score),
            nodes=stats.nodes,
            leaves=stats.leaves,
            cutoffs=stats.cutoffs,
            steps=stats.steps,
            elapsed_ms=int((time.perf_counter() - telemetry.solve_start) * 1000),
            reason=reason,
        ),
    )


def rank_root_scores(
    domain: ValueDomain,
    scored: Sequence[Tuple[Move, ExtendedValue]],
    maximizing: bool,
) -> List[Tuple[Move, ExtendedValue]]:
    """Best-first for the root player; equal scores keep generation order."""
    key = domain.sort_key()
    return sorted(scored, key=lambda item: key(item[1]), reverse=maximizing)


def _record_node(context: _SearchContext, ply: int) -> None:
    stats = context.stats
    stats.nodes += 1
    if ply > stats.max_ply:
        stats.max_ply = ply
    telemetry_maybe_emit_batch(context.telemetry, stats)


def _leaf_value(context: _SearchContext, board: Board, move: Optional[Move]) -> ExtendedValue:
    context.stats.leaves += 1
    return coerce(context.heuristic(board, move))


def _ordered_children(
    context: _SearchContext, board: Board, moves: List[Move], maximizing: bool
) -> List[Tuple[Move, Board]]:
    children = [(move, context.apply_move(board, move)) for move in moves]
    if not context.order_moves:
        return children
    key = context.domain.sort_key()
    estimates = [coerce(context.heuristic(child, move)) for move, child in children]
    order = sorted(range(len(children)), key=lambda i: key(estimates[i]), reverse=maximizing)
    return [children[i] for i in order]


def _minimax(
    context: _SearchContext,
    board: Board,
    move: Optional[Move],
    depth: int,
    maximizing: bool,
    ply: int,
) -> ExtendedValue:
    _record_node(context, ply)
    if depth <= 0:
        return _leaf_value(context, board, move)
    moves = list(context.get_moves(board))
    if not moves:
        return _leaf_value(context, board, move)

    domain = context.domain
    if maximizing:
        best = NEGATIVE_INFINITY
        for child_move in moves:
            child = context.apply_move(board, child_move)
            best = domain.max(best, _minimax(context, child, child_move, depth - 1, False, ply + 1))
    else:
        best = POSITIVE_INFINITY
        for child_move in moves:
            child = context.apply_move(board, child_move)
            best = domain.min(best, _minimax(context, child, child_move, depth - 1, True, ply + 1))
    return best


def _alphabeta(
    context: _SearchContext,
    board: Board,
    move: Optional[Move],
    depth: int,
    alpha: ExtendedValue,
    beta: ExtendedValue,
    maximizing: bool,
    ply: int,
) -> ExtendedValue:
    _record_node(context, ply)
    if depth <= 0:
        return _leaf_value(context, board, move)
    moves = list(context.get_moves(board))
    if not moves:
        return _leaf_value(context, board, move)

    domain = context.domain
    children = _ordered_children(context, board, moves, maximizing)
    if maximizing:
        value = NEGATIVE_INFINITY
        for child_move, child in children:
            value = domain.max(
                value, _alphabeta(context, child, child_move, depth - 1, alpha, beta, False, ply + 1)
            )
            alpha = domain.max(alpha, value)
            if domain.at_least(alpha, beta):
                context.stats.cutoffs += 1
                break
    else:
        value = POSITIVE_INFINITY
        for child_move, child in children:
            value = domain.min(
                value, _alphabeta(context, child, child_move, depth - 1, alpha, beta, True, ply + 1)
            )
            beta = domain.min(beta, value)
            if domain.at_least(alpha, beta):
                context.stats.cutoffs += 1
                break
    return value


def minimax_value(
    board: Board,
    depth: int,
    heuristic: Heuristic,
    get_moves: MoveGenerator,
    apply_move: MoveApplier,
    maximizing: bool = True,
    move: Optional[Move] = None,
    domain: ValueDomain = DEFAULT_DOMAIN,
    stats: Optional[SearchStats] = None,
) -> ExtendedValue:
    context = _SearchContext(
        domain=domain,
        heuristic=heuristic,
        get_moves=get_moves,
        apply_move=apply_move,
        stats=stats if stats is not None else SearchStats(),
    )
    return _minimax(context, board, move, depth, maximizing, 0)


def alphabeta_value(
    board: Board,
    depth: int,
    heuristic: Heuristic,
    get_moves: MoveGenerator,
    apply_move: MoveApplier,
    maximizing: bool = True,
    move: Optional[Move] = None,
    alpha: ExtendedValue = NEGATIVE_INFINITY,
    beta: ExtendedValue = POSITIVE_INFINITY,
    domain: ValueDomain = DEFAULT_DOMAIN,
    stats: Optional[SearchStats] = None,
    order_moves: bool = False,
) -> ExtendedValue:
    context = _SearchContext(
        domain=domain,
        heuristic=heuristic,
        get_moves=get_moves,
        apply_move=apply_move,
        stats=stats if stats is not None else SearchStats(),
        order_moves=order_moves,
    )
    return _alphabeta(context, board, move, depth, alpha, beta, maximizing, 0)


def _solve_with_stepper(
    max_depth: int,
    heuristic: Heuristic,
    get_moves: MoveGenerator,
    apply_move: MoveApplier,
    board: Board,
    maximizing: bool,
    domain: ValueDomain,
    telemetry_sink: Optional[TelemetrySink],
) -> SearchResult:
    from gametree_stepper import new_search, run_to_end

    start = time.perf_counter()
    state = new_search(
        max_depth,
        heuristic,
        get_moves,
        apply_move,
        board,
        maximizing=maximizing,
        domain=domain,
        telemetry_sink=telemetry_sink,
    )
    best = run_to_end(state)
    return SearchResult(
        best_move=best,
        score=state.score,
        root_scores=list(state.root_scores),
        depth=max_depth,
        evaluator=STEPPER,
        nodes=state.stats.nodes,
        leaves=state.stats.leaves,
        cutoffs=state.stats.cutoffs,
        elapsed_ms=int((time.perf_counter() - start) * 1000),
    )


def solve_best_move(
    max_depth: int,
    heuristic: Heuristic,
    get_moves: MoveGenerator,
    apply_move: MoveApplier,
    board: Board,
    maximizing: bool = True,
    evaluator: str = ALPHABETA,
    domain: ValueDomain = DEFAULT_DOMAIN,
    order_moves: bool = False,
    telemetry_sink: Optional[TelemetrySink] = None,
) -> SearchResult:
    """Score every root move and return the best one with its statistics.

    Each root child is evaluated at ``max_depth - 1`` (never below zero)
    with a full window, so alpha-beta scores equal minimax scores exactly.
    Root scores are sorted descending for a maximizing root and ascending
    otherwise; ties keep move-generation order.
    """
    if evaluator not in EVALUATORS:
        raise ValueError(f"unknown evaluator {evaluator!r}; expected one of {EVALUATORS}")
    if evaluator == STEPPER:
        return _solve_with_stepper(
            max_depth, heuristic, get_moves, apply_move, board, maximizing, domain, telemetry_sink
        )

    start = time.perf_counter()
    moves = list(get_moves(board))
    telemetry = start_telemetry(telemetry_sink, evaluator, max_depth, maximizing, len(moves))
    context = _SearchContext(
        domain=domain,
        heuristic=heuristic,
        get_moves=get_moves,
        apply_move=apply_move,
        order_moves=order_moves,
        telemetry=telemetry,
    )
    context.stats.nodes += 1

    if not moves:
        result = SearchResult(
            best_move=None,
            score=None,
            root_scores=[],
            depth=max_depth,
            evaluator=evaluator,
            nodes=context.stats.nodes,
            leaves=0,
            cutoffs=0,
            elapsed_ms=int((time.perf_counter() - start) * 1000),
        )
        telemetry_emit_end(telemetry, context.stats, None, None, "terminal")
        return result

    child_depth = max(0, max_depth - 1)
    scored: List[Tuple[Move, ExtendedValue]] = []
    for move in moves:
        child = apply_move(board, move)
        if evaluator == MINIMAX:
            value = _minimax(context, child, move, child_depth, not maximizing, 1)
        else:
            value = _alphabeta(
                context,
                child,
                move,
                child_depth,
                NEGATIVE_INFINITY,
                POSITIVE_INFINITY,
                not maximizing,
                1,
            )
        scored.append((move, value))

    ranked = rank_root_scores(domain, scored, maximizing)
    telemetry_emit_root_scores(telemetry, max_depth, ranked)
    best_move_found, best_score = ranked[0]
    result = SearchResult(
        best_move=best_move_found,
        score=best_score,
        root_scores=ranked,
        depth=max_depth,
        evaluator=evaluator,
        nodes=context.stats.nodes,
        leaves=context.stats.leaves,
        cutoffs=context.stats.cutoffs,
        elapsed_ms=int((time.perf_counter() - start) * 1000),
    )
    telemetry_emit_end(telemetry, context.stats, best_move_found, best_score, "complete")
    return result


def best_move(
    max_depth: int,
    heuristic: Heuristic,
    get_moves: MoveGenerator,
    apply_move: MoveApplier,
    board: Board,
    **kwargs: Any,
) -> Optional[Move]:
    return solve_best_move(max_depth, heuristic, get_moves, apply_move, board, **kwargs).best_move


def minimax(
    depth: int,
    heuristic: Heuristic,
    get_moves: MoveGenerator,
    apply_move: MoveApplier,
    board: Board,
    **kwargs: Any,
) -> Optional[Move]:
    kwargs["evaluator"] = MINIMAX
    return best_move(depth, heuristic, get_moves, apply_move, board, **kwargs)


def alphabeta(
    depth: int,
    heuristic: Heuristic,
    get_moves: MoveGenerator,
    apply_move: MoveApplier,
    board: Board,
    **kwargs: Any,
) -> Optional[Move]:
    kwargs["evaluator"] = ALPHABETA
    return best_move(depth, heuristic, get_moves, apply_move, board, **kwargs)
