"""Health check schemas."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(description="Health status")
    version: str = Field(description="Server version")
    uptime_seconds: float = Field(description="Server uptime in seconds")
    active_streams: int = Field(default=0, description="Number of active streaming sessions")


class StatusResponse(BaseModel):
    """Server state summary."""

    version: str
    status: str = "running"
    uptime_seconds: float
    active_conversations: list[str] = Field(default_factory=list, description="Conversations with an active stream")
