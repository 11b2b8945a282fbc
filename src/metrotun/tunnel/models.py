"""
Pydantic models for the control API responses.
"""

from typing import Optional

from pydantic import BaseModel


class SessionInfo(BaseModel):
    """Public view of the tunnel session."""

    id: Optional[str] = None
    url: Optional[str] = None
    platform: str
    status: str


class StartResponse(BaseModel):
    """POST /start response."""

    success: bool = True
    session: SessionInfo
    message: Optional[str] = None


class StopResponse(BaseModel):
    """POST /stop response."""

    success: bool = True
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class StatusResponse(BaseModel):
    """GET /status response."""

    active: bool
    session: SessionInfo


class LogEntryInfo(BaseModel):
    type: str
    message: str
    timestamp: str


class LogsResponse(BaseModel):
    """GET /logs response."""

    logs: list[LogEntryInfo]
