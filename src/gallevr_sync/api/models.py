"""Request models for the monitor API."""

from pydantic import BaseModel, Field


class ManualUploadRequest(BaseModel):
    """Ask for a photo to be uploaded on demand."""

    path: str = Field(min_length=1)
