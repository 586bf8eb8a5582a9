"""
Pydantic schemas for request/response validation
"""

from pydantic import BaseModel, Field, StrictStr
from typing import Optional


class ConversionRequest(BaseModel):
    """Request body shared by the convert, convert-flac and metadata endpoints"""
    url: StrictStr = Field(..., min_length=1, description="SoundCloud track URL")

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://soundcloud.com/artist/track"
            }
        }


class TrackMetadata(BaseModel):
    """Normalized track information extracted by yt-dlp"""
    artist: Optional[str] = Field(None, description="Uploader or artist name")
    title: Optional[str] = Field(None, description="Track title")
    duration: Optional[float] = Field(None, description="Duration in seconds")
    description: Optional[str] = Field(None, description="Track description")
    thumbnail: Optional[str] = Field(None, description="Artwork URL")
    uploader: Optional[str] = Field(None, description="Uploader account name")
    upload_date: Optional[str] = Field(None, description="Upload date (YYYYMMDD)")
    filename: str = Field(..., description="Sanitized download filename, without extension")

    class Config:
        json_schema_extra = {
            "example": {
                "artist": "DJ X",
                "title": "Song",
                "duration": 215.4,
                "description": "Original mix",
                "thumbnail": "https://i1.sndcdn.com/artworks-000-t500x500.jpg",
                "uploader": "DJ X",
                "upload_date": "20240105",
                "filename": "DJ X - Song"
            }
        }


class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str = Field(..., description="Human-readable error message")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid SoundCloud URL"
            }
        }
