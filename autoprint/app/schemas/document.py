"""
Document Pydantic schemas.

The upload subsystem stores the file; this service only records its
metadata and print settings.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from autoprint.app.models.print_job_enums import ColorMode, PaperSize, Orientation


class DocumentCreate(BaseModel):
    """Schema for registering an uploaded document."""
    original_name: str = Field(..., min_length=1, max_length=255, description="File name as uploaded")
    file_name: str = Field(..., min_length=1, max_length=255, description="Stored file name")
    mime_type: Optional[str] = Field(None, max_length=100)
    file_size: Optional[int] = Field(None, ge=0, description="Size in bytes")
    page_count: int = Field(..., gt=0, description="Number of pages")
    copies: int = Field(default=1, ge=1, le=100)
    color_mode: ColorMode = ColorMode.BLACK_AND_WHITE
    paper_size: PaperSize = PaperSize.A4
    orientation: Orientation = Orientation.PORTRAIT
    duplex: bool = False


class DocumentResponse(BaseModel):
    """Schema for document response."""
    id: int
    account_id: int
    original_name: str
    file_name: str
    mime_type: Optional[str]
    file_size: Optional[int]
    page_count: int
    copies: int
    color_mode: ColorMode
    paper_size: PaperSize
    orientation: Orientation
    duplex: bool
    created_at: datetime

    class Config:
        from_attributes = True
