"""Civitas — Application configuration via environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class GovernanceSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Administration ─────────────────────────────────────────
    admin_address: str = "admin"

    # ── Default Governance Parameters ──────────────────────────
    voting_period_blocks: int = 17280
    quorum_basis_points: int = 2000
    approval_threshold_basis_points: int = 5100
    proposal_deposit: int = 100
    timelock_duration_blocks: int = 5760

    # Reject unknown parameter names when a parameter-change proposal is
    # created. Off by default: unknown names are a no-op at execution.
    strict_parameter_names: bool = False

    # ── Governance Event Ledger ────────────────────────────────
    ledger_database_url: str = "sqlite:///civitas_ledger.db"

    # ── Logging ────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


settings = GovernanceSettings()
