import random
import unittest

from slots_be.utils.spin_handler import (
    PAYOUT_TABLE,
    SYMBOLS,
    evaluate_outcome,
    generate_outcome,
    line_key,
    outcome_from_grid,
    paytable_description,
)


def _grid_with_middle(symbol):
    # Off-line cells are chosen so neither diagonal can complete.
    return [["🍒", "🍋", "🍊"], [symbol, symbol, symbol], ["🍉", "🔔", "💎"]]


class TestPayoutTable(unittest.TestCase):

    def test_every_triple_pays_its_table_value_on_the_middle_line(self):
        expected = {"🍒": 4, "🍋": 6, "🍊": 10, "🍉": 16, "🔔": 30, "💎": 84, "⭐": 360}
        for symbol, credits in expected.items():
            with self.subTest(symbol=symbol):
                result = evaluate_outcome(outcome_from_grid(_grid_with_middle(symbol)))
                self.assertEqual(result.total_credits_won, credits)
                self.assertEqual([line["line_id"] for line in result.winning_lines], ["middle"])

    def test_three_stars_on_middle_pays_360(self):
        result = evaluate_outcome(outcome_from_grid(_grid_with_middle("⭐")))
        self.assertEqual(result.total_credits_won, 360)
        self.assertEqual(len(result.winning_lines), 1)
        line = result.winning_lines[0]
        self.assertEqual(line["key"], "⭐⭐⭐")
        self.assertEqual(line["credits"], 360)
        self.assertEqual(line["coords"], [[1, 0], [1, 1], [1, 2]])

    def test_losing_grid(self):
        grid = [["🍒", "🍋", "🍊"], ["🍉", "🔔", "💎"], ["⭐", "🍒", "🍋"]]
        result = evaluate_outcome(outcome_from_grid(grid))
        self.assertEqual(result.total_credits_won, 0)
        self.assertEqual(result.winning_lines, [])

    def test_two_of_a_kind_pays_nothing(self):
        grid = [["🍒", "🍋", "🍊"], ["💎", "💎", "🔔"], ["🍉", "🍒", "⭐"]]
        self.assertEqual(evaluate_outcome(outcome_from_grid(grid)).total_credits_won, 0)

    def test_diagonals_are_evaluated_independently(self):
        grid = [["🔔", "🍋", "🍒"], ["🍊", "🔔", "🍉"], ["🍒", "💎", "🔔"]]
        result = evaluate_outcome(outcome_from_grid(grid))
        self.assertEqual([line["line_id"] for line in result.winning_lines], ["diagonal_down"])
        self.assertEqual(result.total_credits_won, 30)

    def test_all_lines_can_pay_at_once(self):
        grid = [["🍒"] * 3, ["🍒"] * 3, ["🍒"] * 3]
        result = evaluate_outcome(outcome_from_grid(grid))
        self.assertEqual(len(result.winning_lines), 3)
        self.assertEqual(result.total_credits_won, 12)

    def test_custom_payout_table(self):
        result = evaluate_outcome(outcome_from_grid(_grid_with_middle("🍋")), payout_table={"🍋🍋🍋": 1})
        self.assertEqual(result.total_credits_won, 1)


class TestOutcome(unittest.TestCase):

    def test_line_key_preserves_order(self):
        self.assertEqual(line_key(["🍒", "🍋", "🍊"]), "🍒🍋🍊")
        self.assertNotEqual(line_key(["🍒", "🍋", "🍊"]), line_key(["🍊", "🍋", "🍒"]))

    def test_generated_grid_shape_and_alphabet(self):
        outcome = generate_outcome(random.Random(1234))
        self.assertEqual(len(outcome.grid), 3)
        for row in outcome.grid:
            self.assertEqual(len(row), 3)
            for symbol in row:
                self.assertIn(symbol, SYMBOLS)
        self.assertEqual([line["line_id"] for line in outcome.lines], ["middle", "diagonal_down", "diagonal_up"])

    def test_lines_read_the_grid(self):
        outcome = outcome_from_grid([["🍒", "🍋", "🍊"], ["🍉", "🔔", "💎"], ["⭐", "🍒", "🍋"]])
        lines = {line["line_id"]: line["symbols"] for line in outcome.lines}
        self.assertEqual(lines["middle"], ["🍉", "🔔", "💎"])
        self.assertEqual(lines["diagonal_down"], ["🍒", "🔔", "🍋"])
        self.assertEqual(lines["diagonal_up"], ["⭐", "🔔", "🍊"])

    def test_bad_grids_are_rejected(self):
        for grid in ([], [["🍒"] * 3] * 2, [["🍒"] * 2] * 3, [["🍒", "🍒", "X"]] + [["🍒"] * 3] * 2):
            with self.assertRaises(ValueError):
                outcome_from_grid(grid)

    def test_outcome_to_dict(self):
        data = outcome_from_grid(_grid_with_middle("⭐")).to_dict()
        self.assertEqual(data["grid"][1], ["⭐", "⭐", "⭐"])
        self.assertEqual(len(data["lines"]), 3)

    def test_paytable_description(self):
        description = paytable_description()
        self.assertEqual(description["payout_table"], PAYOUT_TABLE)
        self.assertEqual(description["rows"], 3)
        self.assertEqual(description["columns"], 3)
        self.assertEqual([p["id"] for p in description["paylines"]], ["middle", "diagonal_down", "diagonal_up"])


if __name__ == '__main__':
    unittest.main()
