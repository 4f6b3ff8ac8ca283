"""Common DTOs for API responses and error handling."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response model."""
    detail: str = Field(..., description="Error message describing what went wrong")
    code: str = Field(..., description="Machine-readable error code", examples=["CONFLICT"])
    details: Optional[dict[str, Any]] = Field(
        None, description="Extra context, e.g. the failed step of a partial failure"
    )


class SuccessResponse(BaseModel):
    """Standard success response model."""
    ok: bool = Field(True, description="Indicates the operation was successful")
    message: Optional[str] = Field(None, description="Optional success message")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Health status", examples=["healthy"])


class RootResponse(BaseModel):
    """Root endpoint response model."""
    status: str = Field(..., description="API status", examples=["ok"])
    service: str = Field(..., description="Service name", examples=["planora-accounts"])
    version: str = Field(..., description="API version", examples=["0.1.0"])
