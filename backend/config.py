"""
Configuration management for the FastAPI backend
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Settings:
    """Application settings"""

    # CORS
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # Application
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))

    # yt-dlp Configuration
    # Optional explicit path to the yt-dlp executable. Falls back to PATH lookup.
    YTDLP_PATH: Optional[str] = os.getenv("YTDLP_PATH", None)

    # Conversion limits
    # Upper bound on captured stdout/stderr of a single yt-dlp run (not the audio file)
    MAX_FILE_SIZE_MB: int = int(os.getenv("MAX_FILE_SIZE_MB", "100"))
    CONVERSION_TIMEOUT_MS: int = int(os.getenv("CONVERSION_TIMEOUT_MS", "300000"))  # 5 minutes
    METADATA_TIMEOUT_MS: int = int(os.getenv("METADATA_TIMEOUT_MS", "30000"))

    # Temporary files
    TEMP_FILE_PREFIX: str = os.getenv("TEMP_FILE_PREFIX", "soundcloud")
    STREAM_CHUNK_SIZE: int = int(os.getenv("STREAM_CHUNK_SIZE", str(64 * 1024)))
    # Leftovers from a crashed process older than this are swept on startup
    STALE_TEMP_FILE_MAX_AGE_SECONDS: int = int(os.getenv("STALE_TEMP_FILE_MAX_AGE_SECONDS", "3600"))

    @property
    def max_output_bytes(self) -> int:
        """Maximum captured subprocess output, in bytes."""
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

    @property
    def conversion_timeout_seconds(self) -> float:
        return self.CONVERSION_TIMEOUT_MS / 1000.0

    @property
    def metadata_timeout_seconds(self) -> float:
        return self.METADATA_TIMEOUT_MS / 1000.0

    def validate(self) -> None:
        """
        Validate conversion limits at startup.
        Raises ValueError if any limit is not a positive number.
        """
        if self.MAX_FILE_SIZE_MB <= 0:
            raise ValueError("MAX_FILE_SIZE_MB must be greater than 0")
        if self.CONVERSION_TIMEOUT_MS <= 0:
            raise ValueError("CONVERSION_TIMEOUT_MS must be greater than 0")
        if self.METADATA_TIMEOUT_MS <= 0:
            raise ValueError("METADATA_TIMEOUT_MS must be greater than 0")
        if self.STREAM_CHUNK_SIZE <= 0:
            raise ValueError("STREAM_CHUNK_SIZE must be greater than 0")

    @property
    def cors_origins_list(self) -> list:
        """Parse CORS origins into a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
