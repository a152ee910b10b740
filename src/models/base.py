"""Shared Pydantic base models and utilities."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class HealthSyncBase(BaseModel):
    """Base model for every backend wire schema.

    The backend speaks camelCase JSON; Python code uses snake_case names.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys and JSON-safe values."""
        return self.model_dump(mode="json", by_alias=True)


# ---------- Generic response wrapper ----------


class ApiEnvelope(BaseModel):
    """``{success, data, error}`` wrapper around every backend response."""

    success: bool = False
    data: Any = None
    error: str | None = None
