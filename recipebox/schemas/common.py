"""
Common schemas used across multiple endpoints.
"""
from datetime import datetime

from pydantic import BaseModel


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str

    class Config:
        json_schema_extra = {"example": {"message": "Operation successful"}}


class ErrorResponse(BaseModel):
    """Error response."""
    error: str

    class Config:
        json_schema_extra = {"example": {"error": "invalid email or password"}}


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str = "1.0.0"
    timestamp: datetime
