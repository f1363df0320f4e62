"""
config.py – Load and validate environment configuration.

All configuration is read from environment variables (or a .env file at the
repo root or inside this package). Call ``get_config()`` once at startup to
obtain a validated Config object.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from cbam_calculator.constants import DEFAULT_AUTH_INIT_TIMEOUT, DEFAULT_STATE_DIR
from cbam_calculator.emission_factors import (
    DEFAULT_FACTORS,
    EmissionFactorTable,
    load_factor_table,
)

# Package root: cbam_calculator/
_PACKAGE_ROOT = Path(__file__).resolve().parent
# Repo root, so .env can live next to pyproject.toml
_PARENT_ROOT = _PACKAGE_ROOT.parent

# Repo-level .env first, then the package one (package overrides).
_env_parent = _PARENT_ROOT / ".env"
_env_package = _PACKAGE_ROOT / ".env"
if _env_parent.exists():
    load_dotenv(_env_parent)
if _env_package.exists():
    load_dotenv(_env_package, override=True)


@dataclass
class Config:
    """Validated runtime configuration."""

    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    database_url: str | None = None
    state_dir: Path = field(default_factory=lambda: Path(DEFAULT_STATE_DIR).expanduser())
    factors_file: Path | None = None
    auth_init_timeout: float = DEFAULT_AUTH_INIT_TIMEOUT

    def emission_factors(self) -> EmissionFactorTable:
        """Default table, or the defaults overlaid with ``factors_file``."""
        if self.factors_file is None:
            return DEFAULT_FACTORS
        return load_factor_table(self.factors_file)


# Needed by the web service (auth). The CLI passes required=[].
_REQUIRED_VARS = [
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
]


def get_config(required: list[str] | None = None) -> Config:
    """
    Read environment variables, validate presence, and return a Config.

    Parameters
    ----------
    required:
        Variables that must be set. Defaults to the Supabase credentials.

    Raises
    ------
    EnvironmentError
        If any required variable is missing, or CBAM_AUTH_TIMEOUT is not a number.
    """
    required = _REQUIRED_VARS if required is None else required
    missing = [v for v in required if not os.environ.get(v)]
    if missing:
        raise EnvironmentError(
            f"Missing required environment variable(s): {', '.join(missing)}\n"
            "Copy .env.example → .env and fill in the values."
        )

    cfg = Config(
        supabase_url=os.environ.get("SUPABASE_URL"),
        supabase_anon_key=os.environ.get("SUPABASE_ANON_KEY"),
        database_url=os.environ.get("DATABASE_URL"),
    )

    state_dir = os.environ.get("CBAM_STATE_DIR")
    if state_dir:
        cfg.state_dir = Path(state_dir).expanduser()

    factors_file = os.environ.get("CBAM_FACTORS_FILE")
    if factors_file:
        path = Path(factors_file).expanduser()
        # Relative paths resolve against the repo root.
        if not path.is_absolute():
            path = (_PARENT_ROOT / path).resolve()
        cfg.factors_file = path

    timeout = os.environ.get("CBAM_AUTH_TIMEOUT")
    if timeout:
        try:
            cfg.auth_init_timeout = float(timeout)
        except ValueError as exc:
            raise EnvironmentError(f"CBAM_AUTH_TIMEOUT must be a number, got {timeout!r}") from exc

    return cfg
