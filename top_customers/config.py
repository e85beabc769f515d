"""Run configuration for the top customers pipeline.

Values come from explicit arguments (typically CLI flags), then from the
environment, then from the defaults below.
"""

from __future__ import annotations

import os
from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

from top_customers.export.sink import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_TABLE_PREFIX,
    default_table_name,
    validate_table_name,
)

DEFAULT_QUANTILE = 0.025
DEFAULT_SINCE = date(2020, 4, 1)

# Event kind counted as a purchase and channel kind holding the email address
PURCHASE_EVENT_TYPE_ID = 6
EMAIL_CHANNEL_TYPE_ID = 1

ENV_VARS = {
    "quantile": "TOPQ_QUANTILE",
    "since": "TOPQ_SINCE",
    "batch_size": "TOPQ_BATCH_SIZE",
    "table_prefix": "TOPQ_TABLE_PREFIX",
    "verbose": "VERBOSE",
}


class PipelineConfig(BaseModel):
    """Parameters of one pipeline run."""

    quantile: float = Field(
        default=DEFAULT_QUANTILE,
        gt=0,
        le=1,
        description="Fraction of customers per bucket (e.g. 0.025 = top 2.5%)",
    )
    since: date = Field(
        default=DEFAULT_SINCE, description="Lower bound (inclusive) of event dates"
    )
    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE, gt=0, description="Rows per export batch"
    )
    event_type_id: int = Field(default=PURCHASE_EVENT_TYPE_ID)
    contact_channel_type_id: int = Field(default=EMAIL_CHANNEL_TYPE_ID)
    table_prefix: str = Field(default=DEFAULT_TABLE_PREFIX)
    table_name: str | None = Field(
        default=None, description="Sink table; date-stamped from the prefix if unset"
    )
    sample_size: int = Field(
        default=10, ge=0, description="Random revenue samples logged for diagnostics"
    )
    verbose: bool = False

    @field_validator("table_name")
    @classmethod
    def _check_table_name(cls, value: str | None) -> str | None:
        if value is not None:
            validate_table_name(value)
        return value

    @field_validator("table_prefix")
    @classmethod
    def _check_table_prefix(cls, value: str) -> str:
        return validate_table_name(value)

    def resolved_table_name(self, run_date: date | None = None) -> str:
        """Return ``table_name`` or ``<prefix>_<YYYYMMDD>`` for ``run_date``."""
        if self.table_name:
            return self.table_name
        return default_table_name(run_date or date.today(), self.table_prefix)

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineConfig":
        """Build a config from ``TOPQ_*`` environment variables.

        Keyword arguments whose value is not ``None`` take precedence over the
        environment.
        """
        values: dict[str, Any] = {}
        for field_name, env_var in ENV_VARS.items():
            raw = os.getenv(env_var)
            if raw is None or raw == "":
                continue
            if field_name == "verbose":
                values[field_name] = raw.strip().lower() == "true"
            else:
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
