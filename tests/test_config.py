import io
import json
import logging
import os
import unittest
from contextlib import redirect_stdout
from unittest import mock

from indicator_services.config.env import get_api_config, get_grid_config, get_log_config
from indicator_services.config.logs import configure_logging
from indicator_services.periods import cli


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            grid = get_grid_config()
            api = get_api_config()
            self.assertEqual(grid.initial_rows, 1000)
            self.assertEqual(grid.max_insert_rows, 1000)
            self.assertEqual(api.max_sessions, 100)
            self.assertEqual(api.port, 8000)
            self.assertEqual(get_log_config().level, "INFO")

    def test_env_overrides(self):
        env = {"GRID_INITIAL_ROWS": "12", "API_MAX_SESSIONS": "3", "API_PORT": "9001", "LOG_LEVEL": "debug"}
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(get_grid_config().initial_rows, 12)
            self.assertEqual(get_api_config().max_sessions, 3)
            self.assertEqual(get_api_config().port, 9001)
            self.assertEqual(get_log_config().level, "DEBUG")

    def test_configure_logging_does_not_raise(self):
        configure_logging("warning")
        self.assertIsNotNone(logging.getLogger("indicator_services"))


class TestPeriodsCLI(unittest.TestCase):
    def _run(self, argv):
        buf = io.StringIO()
        with redirect_stdout(buf):
            cli.main(argv)
        return json.loads(buf.getvalue())

    def test_forward_run(self):
        out = self._run(["monthly", "3", "2024-11"])
        self.assertEqual(out["periods"], ["2024-11", "2024-12", "2025-01"])
        self.assertTrue(out["forward"])

    def test_backward_run(self):
        out = self._run(["quarterly", "2", "2024-Q1", "--backward"])
        self.assertEqual(out["periods"], ["2023-Q4", "2024-Q1"])

    def test_usage(self):
        with redirect_stdout(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                cli.main(["monthly"])
        self.assertEqual(ctx.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
