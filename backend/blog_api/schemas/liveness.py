"""
Blog API Backend: Response Schemas
"""

from datetime import datetime

from pydantic import BaseModel, Field


class LivenessResponse(BaseModel):
    """
    What:  Static liveness payload.
    Who:   Returned by GET / and GET /api/v1/ for probes and smoke checks.

    It reports only that the process is serving HTTP; it does not probe the
    database.
    """
    message: str = Field(description="Human-readable status line")
    status: str = Field(description="Always 'ok' when the handler runs")
    version: str = Field(description="API version")
    timestamp: datetime = Field(description="Server time (UTC, ISO-8601)")


class ErrorResponse(BaseModel):
    """Shape of every JSON error body returned by the API."""
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable description")
    details: dict = Field(default_factory=dict)
    request_id: str = Field(default="")
