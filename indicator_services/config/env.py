from __future__ import annotations
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class GridConfig:
    initial_rows: int = 1000  # rows seeded into a session that has no data yet
    max_insert_rows: int = 1000


def get_grid_config() -> GridConfig:
    return GridConfig(
        initial_rows=int(os.getenv("GRID_INITIAL_ROWS", "1000")),
        max_insert_rows=int(os.getenv("GRID_MAX_INSERT_ROWS", "1000")),
    )


@dataclass(frozen=True)
class APIConfig:
    max_sessions: int = 100
    host: str = "0.0.0.0"
    port: int = 8000


def get_api_config() -> APIConfig:
    return APIConfig(
        max_sessions=int(os.getenv("API_MAX_SESSIONS", "100")),
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
    )


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"


def get_log_config() -> LogConfig:
    return LogConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
