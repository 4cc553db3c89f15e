"""Error response schema."""

from pydantic import BaseModel, Field


class ErrorResponseSchema(BaseModel):
    """Standard error response."""

    message: str = Field(..., description="User-facing error message")
