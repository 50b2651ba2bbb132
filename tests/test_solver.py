import random
import unittest

from gametree_solver import (
    ALPHABETA,
    MINIMAX,
    STEPPER,
    SearchStats,
    alphabeta,
    alphabeta_value,
    best_move,
    minimax,
    minimax_value,
    rank_root_scores,
    solve_best_move,
)
from gametree_values import (
    DEFAULT_DOMAIN,
    NEGATIVE_INFINITY,
    POSITIVE_INFINITY,
    Order,
    ValueDomain,
    natural_compare,
    number,
)
from game_fixtures import RandomGame, TreeGame, chain_game, textbook_game
from tictactoe_engine import (
    apply_move,
    from_rows,
    heuristic,
    initial_board,
    is_maximizing,
    is_terminal,
    legal_moves,
    outcome_heuristic,
)


def ttt_positions(count, seed, max_plies=5):
    rng = random.Random(seed)
    boards = []
    while len(boards) < count:
        board = initial_board()
        for _ in range(rng.randint(1, max_plies)):
            if is_terminal(board):
                break
            board = apply_move(board, rng.choice(legal_moves(board)))
        if not is_terminal(board):
            boards.append(board)
    return boards


def ttt_solve(board, depth, evaluator, **kwargs):
    return solve_best_move(
        depth,
        heuristic,
        legal_moves,
        apply_move,
        board,
        maximizing=is_maximizing(board),
        evaluator=evaluator,
        **kwargs,
    )


class TestRecursiveEvaluators(unittest.TestCase):
    def test_textbook_values(self):
        game = textbook_game()
        args = (game.heuristic, game.get_moves, game.apply_move)
        self.assertEqual(minimax_value("A", 2, *args), number(3))
        self.assertEqual(alphabeta_value("A", 2, *args), number(3))
        self.assertEqual(minimax_value("A", 2, *args, maximizing=False), number(6))
        self.assertEqual(alphabeta_value("A", 2, *args, maximizing=False), number(6))

    def test_textbook_pruning_counts(self):
        game = textbook_game()
        args = (game.heuristic, game.get_moves, game.apply_move)
        full = SearchStats()
        pruned = SearchStats()
        minimax_value("A", 2, *args, stats=full)
        alphabeta_value("A", 2, *args, stats=pruned)
        self.assertEqual(full.leaves, 9)
        self.assertEqual(pruned.leaves, 7)
        self.assertEqual(full.cutoffs, 0)
        self.assertGreaterEqual(pruned.cutoffs, 1)
        self.assertEqual(full.max_ply, 2)

    def test_depth_zero_returns_heuristic_without_generating(self):
        game = TreeGame({"A": ["B"]}, {"A": 42})

        def exploding_moves(board):
            raise AssertionError("move generator must not run at depth 0")

        self.assertEqual(minimax_value("A", 0, game.heuristic, exploding_moves, game.apply_move), number(42))
        self.assertEqual(alphabeta_value("A", 0, game.heuristic, exploding_moves, game.apply_move), number(42))

    def test_terminal_node_returns_heuristic(self):
        game = TreeGame({}, {"A": -3})
        self.assertEqual(minimax_value("A", 5, game.heuristic, game.get_moves, game.apply_move), number(-3))
        self.assertEqual(alphabeta_value("A", 5, game.heuristic, game.get_moves, game.apply_move), number(-3))

    def test_heuristic_receives_reached_board_and_move(self):
        calls = []

        def recording_heuristic(board, move):
            calls.append((board, move))
            return 0

        game = textbook_game()
        minimax_value("B", 1, recording_heuristic, game.get_moves, game.apply_move, maximizing=False, move="B")
        self.assertEqual(calls, [("B1", "B1"), ("B2", "B2"), ("B3", "B3")])

    def test_alphabeta_with_narrow_window_returns_bound(self):
        game = textbook_game()
        value = alphabeta_value(
            "A",
            2,
            game.heuristic,
            game.get_moves,
            game.apply_move,
            alpha=number(20),
            beta=POSITIVE_INFINITY,
        )
        # Every subtree fails low against alpha=20; the result is an upper bound.
        self.assertEqual(DEFAULT_DOMAIN.compare(value, number(20)), Order.LT)

    def test_alphabeta_matches_minimax_on_random_trees(self):
        for seed in range(30):
            game = RandomGame(seed)
            args = (game.heuristic, game.get_moves, game.apply_move)
            for depth in range(0, 5):
                for maximizing in (True, False):
                    expected = minimax_value((), depth, *args, maximizing=maximizing)
                    self.assertEqual(alphabeta_value((), depth, *args, maximizing=maximizing), expected)
                    self.assertEqual(
                        alphabeta_value((), depth, *args, maximizing=maximizing, order_moves=True),
                        expected,
                    )


class TestBestMove(unittest.TestCase):
    def test_textbook_best_move(self):
        game = textbook_game()
        args = (game.heuristic, game.get_moves, game.apply_move, "A")
        self.assertEqual(minimax(2, *args), "B")
        self.assertEqual(alphabeta(2, *args), "B")
        self.assertEqual(best_move(2, *args, evaluator=STEPPER), "B")

    def test_minimizing_root_sorts_ascending(self):
        game = textbook_game()
        result = solve_best_move(2, game.heuristic, game.get_moves, game.apply_move, "A", maximizing=False)
        self.assertEqual(result.best_move, "C")
        self.assertEqual([move for move, _ in result.root_scores], ["C", "B", "D"])
        self.assertEqual(result.score, number(6))

    def test_root_scores_descending_for_maximizing_root(self):
        game = textbook_game()
        result = solve_best_move(2, game.heuristic, game.get_moves, game.apply_move, "A")
        self.assertEqual(result.root_scores, [("B", number(3)), ("C", number(2)), ("D", number(2))])

    def test_ties_keep_generation_order(self):
        game = TreeGame({"R": ["a", "b", "c", "d"]}, {"a": 5, "b": 7, "c": 7, "d": 5})
        args = (game.heuristic, game.get_moves, game.apply_move, "R")
        for evaluator in (MINIMAX, ALPHABETA, STEPPER):
            self.assertEqual(best_move(1, *args, evaluator=evaluator), "b")
            self.assertEqual(best_move(1, *args, evaluator=evaluator, maximizing=False), "a")

    def test_all_equal_scores_pick_first_generated(self):
        game = TreeGame({"R": ["x", "y", "z"]}, {}, default=0)
        for evaluator in (MINIMAX, ALPHABETA, STEPPER):
            self.assertEqual(
                best_move(3, game.heuristic, game.get_moves, game.apply_move, "R", evaluator=evaluator),
                "x",
            )

    def test_terminal_board_yields_none(self):
        game = TreeGame({}, {"R": 1})
        for evaluator in (MINIMAX, ALPHABETA, STEPPER):
            result = solve_best_move(
                3, game.heuristic, game.get_moves, game.apply_move, "R", evaluator=evaluator
            )
            self.assertIsNone(result.best_move)
            self.assertIsNone(result.score)
            self.assertEqual(result.root_scores, [])

    def test_single_legal_move_at_any_depth(self):
        game = chain_game(6)
        for depth in range(1, 8):
            for evaluator in (MINIMAX, ALPHABETA, STEPPER):
                self.assertEqual(
                    best_move(depth, game.heuristic, game.get_moves, game.apply_move, "n0", evaluator=evaluator),
                    "n1",
                )

    def test_single_move_root_is_only_scored_by_recursive_evaluators(self):
        game = chain_game(6)
        args = (game.heuristic, game.get_moves, game.apply_move, "n0")
        for evaluator in (MINIMAX, ALPHABETA):
            result = solve_best_move(2, *args, evaluator=evaluator)
            self.assertEqual(result.score, number(2))
            self.assertEqual(result.root_scores, [("n1", number(2))])
        stepped = solve_best_move(2, *args, evaluator=STEPPER)
        self.assertEqual(stepped.best_move, "n1")
        self.assertIsNone(stepped.score)
        self.assertEqual(stepped.root_scores, [])

    def test_depth_below_one_scores_root_moves_by_heuristic(self):
        game = textbook_game()
        result = solve_best_move(0, game.heuristic, game.get_moves, game.apply_move, "A")
        self.assertEqual(result.best_move, "B")
        self.assertEqual(result.leaves, 3)

    def test_unknown_evaluator_is_rejected(self):
        game = textbook_game()
        with self.assertRaises(ValueError):
            solve_best_move(2, game.heuristic, game.get_moves, game.apply_move, "A", evaluator="negascout")

    def test_heuristic_may_return_infinities(self):
        def win_aware(board, move):
            if board == "C3":
                return POSITIVE_INFINITY
            return game.heuristic(board, move)

        tree = {"A": ["B", "C"], "B": ["B1"], "C": ["C3"]}
        game = TreeGame(tree, {"B1": 50})
        result = solve_best_move(2, win_aware, game.get_moves, game.apply_move, "A")
        self.assertEqual(result.best_move, "C")
        self.assertEqual(result.score, POSITIVE_INFINITY)

    def test_rank_root_scores_is_stable(self):
        scored = [("a", number(1)), ("b", NEGATIVE_INFINITY), ("c", number(1)), ("d", POSITIVE_INFINITY)]
        self.assertEqual(
            [m for m, _ in rank_root_scores(DEFAULT_DOMAIN, scored, maximizing=True)],
            ["d", "a", "c", "b"],
        )
        self.assertEqual(
            [m for m, _ in rank_root_scores(DEFAULT_DOMAIN, scored, maximizing=False)],
            ["b", "a", "c", "d"],
        )

    def test_reversed_comparator_mirrors_roles(self):
        reversed_domain = ValueDomain(compare_numbers=lambda a, b: natural_compare(b, a))
        for seed in range(20):
            game = RandomGame(seed)
            args = (game.heuristic, game.get_moves, game.apply_move, ())
            for depth in range(1, 4):
                self.assertEqual(
                    best_move(depth, *args, domain=reversed_domain, maximizing=True),
                    best_move(depth, *args, maximizing=False),
                )


class TestOracleEquivalence(unittest.TestCase):
    def test_random_trees_agree_across_evaluators(self):
        for seed in range(40):
            game = RandomGame(seed, max_branching=5)
            args = (game.heuristic, game.get_moves, game.apply_move, ())
            for depth in range(1, 5):
                for maximizing in (True, False):
                    oracle = solve_best_move(depth, *args, maximizing=maximizing, evaluator=MINIMAX)
                    pruned = solve_best_move(depth, *args, maximizing=maximizing, evaluator=ALPHABETA)
                    ordered = solve_best_move(
                        depth, *args, maximizing=maximizing, evaluator=ALPHABETA, order_moves=True
                    )
                    stepped = solve_best_move(depth, *args, maximizing=maximizing, evaluator=STEPPER)
                    self.assertEqual(pruned.best_move, oracle.best_move)
                    self.assertEqual(ordered.best_move, oracle.best_move)
                    self.assertEqual(stepped.best_move, oracle.best_move)
                    self.assertEqual(pruned.root_scores, oracle.root_scores)
                    self.assertLessEqual(pruned.leaves, oracle.leaves)

    def test_tictactoe_positions_agree(self):
        for board in ttt_positions(25, seed=3):
            for depth in range(1, 5):
                oracle = ttt_solve(board, depth, MINIMAX)
                pruned = ttt_solve(board, depth, ALPHABETA)
                stepped = ttt_solve(board, depth, STEPPER)
                self.assertEqual(pruned.best_move, oracle.best_move)
                self.assertEqual(stepped.best_move, oracle.best_move)
                self.assertEqual(pruned.root_scores, oracle.root_scores)
                self.assertLessEqual(pruned.leaves, oracle.leaves)

    def test_pruning_visits_fewer_leaves_from_empty_board(self):
        board = initial_board()
        oracle = ttt_solve(board, 4, MINIMAX)
        pruned = ttt_solve(board, 4, ALPHABETA)
        self.assertEqual(oracle.leaves, 9 * 8 * 7 * 6)
        self.assertLess(pruned.leaves, oracle.leaves)
        self.assertGreater(pruned.cutoffs, 0)
        self.assertEqual(pruned.best_move, oracle.best_move)


class TestTicTacToeScenarios(unittest.TestCase):
    def test_completes_open_line(self):
        board = from_rows("XX. OO. ...", to_move="X")
        for depth in range(1, 6):
            self.assertEqual(alphabeta(depth, heuristic, legal_moves, apply_move, board), 2)

    def test_completes_open_line_for_minimizing_player(self):
        board = from_rows("OO. XX. X..", to_move="O")
        for depth in range(1, 5):
            self.assertEqual(alphabeta(depth, heuristic, legal_moves, apply_move, board, maximizing=False), 2)

    def test_blocks_opponent_line(self):
        board = from_rows("OO. X.. ..X", to_move="X")
        self.assertEqual(alphabeta(2, heuristic, legal_moves, apply_move, board), 2)

    def test_full_depth_from_empty_board_returns_a_move(self):
        move = alphabeta(9, heuristic, legal_moves, apply_move, initial_board())
        self.assertIsNotNone(move)
        self.assertIn(move, range(9))

    def test_full_depth_perfect_play_is_a_draw(self):
        result = solve_best_move(9, outcome_heuristic, legal_moves, apply_move, initial_board())
        self.assertIsNotNone(result.best_move)
        self.assertEqual(result.score, number(0))


if __name__ == "__main__":
    unittest.main()
