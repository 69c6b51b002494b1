import unittest

from indicator_services.errors import EmptyPayload, InconsistentSequence
from indicator_services.grid.cells import Cell, GridRow
from indicator_services.grid.payload import build_payloads


class TestBuildPayloads(unittest.TestCase):
    def test_filters_sorts_and_groups(self):
        rows = [
            GridRow("2024-02", {"A": Cell(2.0, "x2"), "B": Cell()}),
            GridRow("2024-01", {"A": Cell(1.0, "x1"), "B": Cell(5.0)}),
            GridRow("", {"A": Cell(9.0)}),
            GridRow("2024-03", {"A": Cell(), "B": Cell()}),
        ]
        out = build_payloads(rows, {"A": "ind-a", "B": "ind-b"}, "monthly")
        self.assertEqual(out, [
            {
                "indicator_id": "ind-a",
                "code": "A",
                "data": [
                    {"period": "2024-01", "value": 1.0, "id": "x1"},
                    {"period": "2024-02", "value": 2.0, "id": "x2"},
                ],
            },
            {
                "indicator_id": "ind-b",
                "code": "B",
                "data": [{"period": "2024-01", "value": 5.0, "id": None}],
            },
        ])

    def test_indicator_without_values_is_left_out(self):
        rows = [GridRow("2024", {"A": Cell(1.0), "B": Cell()})]
        out = build_payloads(rows, {"A": "ia", "B": "ib"}, "annual")
        self.assertEqual([p["code"] for p in out], ["A"])

    def test_gap_is_rejected(self):
        rows = [GridRow("2024-01", {"A": Cell(1.0)}), GridRow("2024-03", {"A": Cell(3.0)})]
        with self.assertRaises(InconsistentSequence):
            build_payloads(rows, {"A": "ia"}, "monthly")

    def test_custom_skips_sequence_check(self):
        rows = [GridRow("b", {"A": Cell(1.0)}), GridRow("a", {"A": Cell(3.0)})]
        out = build_payloads(rows, {"A": "ia"}, "custom")
        self.assertEqual([d["period"] for d in out[0]["data"]], ["a", "b"])

    def test_nothing_to_post(self):
        rows = [GridRow("2024-01", {"A": Cell()}), GridRow("", {"A": Cell(1.0)})]
        with self.assertRaises(EmptyPayload):
            build_payloads(rows, {"A": "ia"}, "monthly")


if __name__ == "__main__":
    unittest.main()
