"""Runtime configuration read from ACRM_* environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


DEFAULT_DB_PATH = "./data/agentcrm.duckdb"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class AppConfig:
    """Settings shared by the API server and the CLI.

    LLM provider and model selection is not held here: the router reads
    ACRM_LLM_PROVIDER and the per-role model variables on every call so that
    tests and the CLI can switch providers without rebuilding the app.
    """

    db_path: Path = field(default_factory=lambda: Path(DEFAULT_DB_PATH))
    jwt_secret: str | None = None
    jwt_audience: str | None = "authenticated"
    request_budget_seconds: int = 60
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @classmethod
    def from_env(cls) -> "AppConfig":
        audience = os.environ.get("ACRM_JWT_AUDIENCE", "authenticated").strip()
        return cls(
            db_path=Path(os.environ.get("ACRM_DB_PATH", DEFAULT_DB_PATH)).expanduser(),
            jwt_secret=os.environ.get("ACRM_JWT_SECRET") or None,
            jwt_audience=audience or None,
            request_budget_seconds=int(os.environ.get("ACRM_REQUEST_BUDGET_SECONDS", "60")),
            log_level=os.environ.get("ACRM_LOG_LEVEL", "INFO").upper(),
            cors_origins=_env_list("ACRM_CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
        )
