"""Pydantic schemas for health check responses."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response body for the health check endpoint."""

    status: Literal["OK"] = Field(default="OK", description="Service status")
    timestamp: str = Field(description="Current server time (ISO 8601, UTC)")
    uptime: float = Field(description="Seconds since the process started serving")
