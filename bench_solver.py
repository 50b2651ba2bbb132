"""Deterministic benchmark comparing the minimax, alpha-beta and stepper evaluators."""

from __future__ import annotations

import argparse
import gc
import math
import platform
import random
import statistics
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from gametree_solver import EVALUATORS, SearchResult, solve_best_move
from gametree_values import DEFAULT_DOMAIN, Order, format_value
from tictactoe_engine import (
    Board,
    apply_move,
    from_rows,
    heuristic,
    initial_board,
    is_maximizing,
    is_terminal,
    legal_moves,
)


def _generate_positions(*, positions: int, max_plies: int, seed: int) -> List[Board]:
    rng = random.Random(seed)
    out: List[Board] = []
    while len(out) < positions:
        board = initial_board(x_first=True)
        plies = rng.randint(0, max_plies)
        for _ in range(plies):
            if is_terminal(board):
                break
            board = apply_move(board, rng.choice(legal_moves(board)))
        if not is_terminal(board):
            out.append(board)
    return out


def _load_positions(path: Path, limit: int) -> List[Board]:
    boards: List[Board] = []
    with path.open("r", encoding="utf-8") as handle:
        for line_no, raw in enumerate(handle, start=1):
            key = raw.strip()
            if not key:
                continue
            try:
                board = from_rows(key)
            except ValueError as exc:
                raise ValueError(f"invalid board at line {line_no}: {key!r}") from exc
            if is_terminal(board):
                continue
            boards.append(board)
            if len(boards) >= limit:
                break
    return boards


def _save_positions(path: Path, positions: Sequence[Board]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        for board in positions:
            handle.write("".join(board.cells) + "\n")


def _percentile(values: Sequence[float], percentile: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return float(ordered[0])
    rank = (len(ordered) - 1) * percentile
    lo = math.floor(rank)
    hi = math.ceil(rank)
    if lo == hi:
        return float(ordered[lo])
    frac = rank - lo
    return float(ordered[lo] * (1.0 - frac) + ordered[hi] * frac)


def _outcome_label(result: SearchResult) -> str:
    if result.score is None:
        return "-"
    sign = DEFAULT_DOMAIN.sign(result.score)
    if sign == Order.GT:
        return "X+"
    if sign == Order.LT:
        return "O+"
    return "="


def _run_single(board: Board, depth: int, evaluator: str, order_moves: bool) -> SearchResult:
    return solve_best_move(
        depth,
        heuristic,
        legal_moves,
        apply_move,
        board,
        maximizing=is_maximizing(board),
        evaluator=evaluator,
        order_moves=order_moves,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Deterministic game-tree search benchmark")
    parser.add_argument("--positions", type=int, default=20, help="number of positions (default: 20)")
    parser.add_argument("--max-plies", type=int, default=4, help="max random plies from start (default: 4)")
    parser.add_argument("--seed", type=int, default=12345, help="random seed for position generation")
    parser.add_argument("--depth", type=int, default=4, help="search depth (default: 4)")
    parser.add_argument(
        "--evaluators",
        default=",".join(EVALUATORS),
        help=f"comma-separated evaluators to run (default: {','.join(EVALUATORS)})",
    )
    parser.add_argument("--order-moves", action="store_true", help="order alpha-beta children best-first")
    parser.add_argument("--repeat", type=int, default=1, help="benchmark repeats for p50/p95 summaries")
    parser.add_argument("--no-gc", action="store_true", help="disable GC during benchmark loop")
    parser.add_argument("--save-positions", type=Path, default=None, help="write sampled positions to file")
    parser.add_argument("--load-positions", type=Path, default=None, help="load positions from file")
    args = parser.parse_args(argv)

    if args.positions <= 0:
        print("--positions must be > 0")
        return 2
    if args.max_plies < 0:
        print("--max-plies must be >= 0")
        return 2
    if args.depth <= 0:
        print("--depth must be > 0")
        return 2
    if args.repeat <= 0:
        print("--repeat must be > 0")
        return 2
    evaluators = [name.strip() for name in args.evaluators.split(",") if name.strip()]
    unknown = [name for name in evaluators if name not in EVALUATORS]
    if not evaluators or unknown:
        print(f"--evaluators must be drawn from {','.join(EVALUATORS)}")
        return 2
    if args.load_positions is not None and not args.load_positions.exists():
        print(f"--load-positions not found: {args.load_positions}")
        return 2

    if args.load_positions is not None:
        try:
            positions = _load_positions(args.load_positions, args.positions)
        except ValueError as exc:
            print(f"failed to load positions: {exc}")
            return 2
        if not positions:
            print("--load-positions provided no usable non-terminal boards")
            return 2
    else:
        positions = _generate_positions(positions=args.positions, max_plies=args.max_plies, seed=args.seed)
    if args.save_positions is not None:
        _save_positions(args.save_positions, positions)

    print(
        f"python={sys.version.split()[0]} platform={platform.platform()} "
        f"depth={args.depth} repeats={args.repeat} order_moves={args.order_moves}"
    )
    print(f"rep idx evaluator nodes leaves cutoffs solver_ms best score outcome (positions={len(positions)})")

    gc_was_enabled = gc.isenabled()
    summaries: Dict[str, List[Dict[str, float]]] = {name: [] for name in evaluators}
    disagreements = 0
    if args.no_gc and gc_was_enabled:
        gc.disable()
    try:
        for rep in range(1, args.repeat + 1):
            totals = {name: {"nodes": 0, "leaves": 0, "cutoffs": 0, "wall_ms": 0} for name in evaluators}
            for idx, board in enumerate(positions, start=1):
                chosen = set()
                for name in evaluators:
                    start_ns = time.perf_counter_ns()
                    result = _run_single(board, args.depth, name, args.order_moves)
                    wall_ms = (time.perf_counter_ns() - start_ns) // 1_000_000
                    totals[name]["nodes"] += result.nodes
                    totals[name]["leaves"] += result.leaves
                    totals[name]["cutoffs"] += result.cutoffs
                    totals[name]["wall_ms"] += int(wall_ms)
                    chosen.add(result.best_move)
                    print(
                        f"{rep:>3d} {idx:03d} {name:>9} {result.nodes:>7d} {result.leaves:>7d} "
                        f"{result.cutoffs:>7d} {result.elapsed_ms:>9d} {str(result.best_move):>4} "
                        f"{format_value(result.score):>5} {_outcome_label(result)}"
                    )
                if len(chosen) > 1:
                    disagreements += 1
                    print(f"    disagreement at position {idx}: {sorted(str(m) for m in chosen)}")

            for name in evaluators:
                total = totals[name]
                summaries[name].append({key: float(value) for key, value in total.items()})
                print(
                    f"summary rep={rep} evaluator={name} nodes={total['nodes']} leaves={total['leaves']} "
                    f"cutoffs={total['cutoffs']} wall_ms={total['wall_ms']}"
                )
    finally:
        if args.no_gc and gc_was_enabled:
            gc.enable()

    if args.repeat > 1:
        for name in evaluators:
            values = [summary["wall_ms"] for summary in summaries[name]]
            print(
                f"dist {name} wall_ms min={min(values):.2f} p50={_percentile(values, 0.50):.2f} "
                f"p95={_percentile(values, 0.95):.2f} max={max(values):.2f} mean={statistics.fmean(values):.2f}"
            )

    if disagreements:
        print(f"evaluators disagreed on {disagreements} position(s)")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
