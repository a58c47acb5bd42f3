"""API models for the Email Gateway."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UpdateUserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=1)
    time_zone: str | None = Field(default=None, min_length=1, alias="timeZone")


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float
