import unittest

from indicator_services.api.server import app
from indicator_services.api.sessions import REGISTRY


class TestPeriodAndFormulaEndpoints(unittest.TestCase):
    def setUp(self):
        app.testing = True
        self.client = app.test_client()

    def test_start_period(self):
        rv = self.client.get("/periods/start?frequency=annual")
        self.assertEqual(rv.status_code, 200)
        body = rv.get_json()
        self.assertEqual(body["frequency"], "annual")
        self.assertEqual(len(body["period"]), 4)
        self.assertTrue(body["period"].isdigit())

    def test_generate(self):
        rv = self.client.post("/periods/generate", json={"existing": ["2024-01"], "count": 2, "frequency": "monthly"})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()["periods"], ["2024-02", "2024-03"])

        rv = self.client.post("/periods/generate", json={"start": "2024-Q1", "count": 2, "frequency": "Quarterly"})
        self.assertEqual(rv.get_json()["periods"], ["2024-Q1", "2024-Q2"])

    def test_generate_rejects_bad_count(self):
        rv = self.client.post("/periods/generate", json={"existing": ["2024-01"], "count": "many"})
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()["error"], "invalid_request")

    def test_parse(self):
        rv = self.client.post("/periods/parse", json={"period": "2024-Q2", "frequency": "quarterly"})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()["instant"], "2024-04-01T00:00:00")
        self.assertEqual(rv.get_json()["detected_format"], "quarterly")

        rv = self.client.post("/periods/parse", json={"period": "2024-Q9", "frequency": "quarterly"})
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()["error"], "invalid_period_value")
        self.assertEqual(rv.get_json()["detected_format"], "unknown")

        rv = self.client.post("/periods/parse", json={"period": "Q2 2024", "frequency": "quarterly"})
        self.assertEqual(rv.get_json()["error"], "invalid_period_format")

        rv = self.client.post("/periods/parse", json={"period": "x", "frequency": "custom"})
        self.assertEqual(rv.get_json()["error"], "unsupported_frequency")

    def test_validate_formula(self):
        basis = {"A": "monthly", "B": "monthly"}
        rv = self.client.post("/formulas/validate", json={"formula": "@A / @B", "basis": basis})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()["codes"], ["A", "B"])

        rv = self.client.post("/formulas/validate", json={"formula": "@A / @Z", "basis": basis})
        self.assertEqual(rv.status_code, 400)
        body = rv.get_json()
        self.assertEqual(body["error"], "invalid_formula")
        self.assertEqual(body["reason"], "unknown_token")
        self.assertEqual(body["token"], "@Z")

    def test_evaluate_formula(self):
        rv = self.client.post("/formulas/evaluate", json={"formula": "@A * 2", "row": {"A": {"value": 3, "id": "z"}}})
        self.assertEqual(rv.get_json()["value"], 6.0)
        rv = self.client.post("/formulas/evaluate", json={"formula": "@A / @B", "row": {"A": 3, "B": 0}})
        self.assertIsNone(rv.get_json()["value"])


class TestSessionEndpoints(unittest.TestCase):
    def setUp(self):
        app.testing = True
        app.config['GRID_INITIAL_ROWS'] = 3
        app.config['MAX_SESSIONS'] = None
        REGISTRY.clear()
        self.client = app.test_client()

    def tearDown(self):
        REGISTRY.clear()
        app.config.pop('GRID_INITIAL_ROWS', None)
        app.config.pop('MAX_SESSIONS', None)

    def _create(self):
        rv = self.client.post("/sessions", json={
            "frequency": "monthly",
            "codes": ["A", "B"],
            "formula": "@A + @B",
            "target": "C",
            "rows": [{"period": "2024-01", "A": 1, "B": 2}],
        })
        self.assertEqual(rv.status_code, 200)
        return rv.get_json()

    def test_create_seeds_empty_session(self):
        rv = self.client.post("/sessions", json={"frequency": "annual", "codes": ["A"]})
        self.assertEqual(rv.status_code, 200)
        body = rv.get_json()
        self.assertEqual(len(body["rows"]), 3)
        self.assertEqual(body["cursor"], -1)
        self.assertFalse(body["can_undo"])

    def test_create_requires_target_with_formula(self):
        rv = self.client.post("/sessions", json={"codes": ["A"], "formula": "@A * 2"})
        self.assertEqual(rv.status_code, 400)

    def test_create_rejects_invalid_formula(self):
        rv = self.client.post("/sessions", json={"codes": ["A"], "formula": "@A *", "target": "C"})
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()["reason"], "operator_placement")

    def test_edit_undo_redo(self):
        sid = self._create()["session_id"]
        rv = self.client.post(f"/sessions/{sid}/edits", json={"changes": [{"row": 0, "field": "A", "value": "4"}]})
        self.assertEqual(rv.status_code, 200)
        body = rv.get_json()
        self.assertEqual(body["operation"]["type"], "cell_edit")
        self.assertEqual(body["rows"][0]["C"]["value"], 6.0)
        self.assertTrue(body["can_undo"])

        body = self.client.post(f"/sessions/{sid}/undo").get_json()
        self.assertEqual(body["rows"][0]["A"]["value"], 1.0)
        self.assertIsNone(body["rows"][0]["C"]["value"])
        self.assertTrue(body["can_redo"])

        body = self.client.post(f"/sessions/{sid}/redo").get_json()
        self.assertEqual(body["rows"][0]["C"]["value"], 6.0)

        body = self.client.post(f"/sessions/{sid}/redo").get_json()
        self.assertIsNone(body["operation"])

    def test_period_edit_of_the_wrong_shape_is_flagged(self):
        sid = self._create()["session_id"]
        rv = self.client.post(f"/sessions/{sid}/edits", json={"changes": [
            {"row": 0, "field": "period", "value": "2024-Q1"},
            {"row": 1, "field": "A", "value": 3},
        ]})
        self.assertEqual(rv.status_code, 200)
        body = rv.get_json()
        self.assertEqual(body["rows"][0]["period"], "2024-Q1")
        self.assertEqual(body["warnings"], [{"row": 0, "period": "2024-Q1", "detected_format": "quarterly"}])

        rv = self.client.post(f"/sessions/{sid}/edits", json={"changes": [{"row": 0, "field": "period", "value": "2023-12"}]})
        self.assertEqual(rv.get_json()["warnings"], [])

    def test_insert_rows_and_payload(self):
        body = self._create()
        self.assertEqual([r["period"] for r in body["rows"]], ["2024-01", "2024-02", "2024-03"])
        sid = body["session_id"]
        rv = self.client.post(f"/sessions/{sid}/rows", json={"at_index": 3, "count": 2})
        self.assertEqual(rv.status_code, 200)
        body = rv.get_json()
        self.assertEqual([r["period"] for r in body["rows"]], ["2024-01", "2024-02", "2024-03", "2024-04", "2024-05"])
        self.assertEqual(body["next_entry_index"], 1)

        rv = self.client.post(f"/sessions/{sid}/payload", json={"ids": {"A": "ia", "B": "ib"}})
        self.assertEqual(rv.status_code, 200)
        payloads = rv.get_json()["payloads"]
        self.assertEqual([p["indicator_id"] for p in payloads], ["ia", "ib"])
        self.assertEqual(payloads[0]["data"], [{"period": "2024-01", "value": 1.0, "id": None}])

    def test_invalid_insertion(self):
        sid = self._create()["session_id"]
        rv = self.client.post(f"/sessions/{sid}/rows", json={"at_index": 5, "count": 1})
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()["error"], "invalid_row_insertion")

    def test_empty_payload(self):
        rv = self.client.post("/sessions", json={"frequency": "monthly", "codes": ["A"]})
        sid = rv.get_json()["session_id"]
        rv = self.client.post(f"/sessions/{sid}/payload", json={"ids": {"A": "ia"}})
        self.assertEqual(rv.status_code, 400)
        self.assertEqual(rv.get_json()["error"], "empty_payload")

    def test_delete_and_unknown_session(self):
        sid = self._create()["session_id"]
        self.assertEqual(self.client.get(f"/sessions/{sid}").status_code, 200)
        self.assertEqual(self.client.delete(f"/sessions/{sid}").status_code, 200)
        self.assertEqual(self.client.get(f"/sessions/{sid}").status_code, 404)
        self.assertEqual(self.client.post(f"/sessions/{sid}/undo").status_code, 404)
        self.assertEqual(self.client.delete(f"/sessions/{sid}").status_code, 404)

    def test_session_limit(self):
        app.config['MAX_SESSIONS'] = 1
        self._create()
        rv = self.client.post("/sessions", json={"codes": ["A"]})
        self.assertEqual(rv.status_code, 429)
        self.assertEqual(rv.get_json()["error"], "too_many_sessions")


if __name__ == "__main__":
    unittest.main()
