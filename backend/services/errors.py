"""
Error taxonomy for the conversion pipeline.

Every failure that reaches the HTTP boundary is one of the ConversionError
subclasses below. Each carries:
- An error code for categorization
- The HTTP status returned to the caller
- A user-facing message (the only text the caller ever sees)
- A detailed message and context for server-side logs
"""

from enum import Enum
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger()


class ErrorCode(Enum):
    """
    Enumeration of all possible error codes in the pipeline.

    Organized by category:
    - Client errors (4xx): malformed or unsupported input
    - Tool errors (5xx): yt-dlp missing or failing
    - System errors (5xx): anything unanticipated
    """

    # Client errors
    BAD_REQUEST = "BAD_REQUEST"

    # Tool errors
    TOOL_NOT_INSTALLED = "TOOL_NOT_INSTALLED"
    CONVERSION_FAILED = "CONVERSION_FAILED"
    OUTPUT_EMPTY = "OUTPUT_EMPTY"
    METADATA_FAILED = "METADATA_FAILED"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ConversionError(Exception):
    """
    Base exception for conversion pipeline errors.

    Example:
        >>> raise ConversionFailedError("yt-dlp exited with status 1")
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    default_user_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None
    ):
        """
        Initialize conversion error.

        Args:
            message: Detailed error message for logging
            details: Additional context (return codes, stage names, etc.)
            user_message: Optional override for the user-facing message
        """
        self.user_message = user_message or self.default_user_message
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to the JSON body returned to the caller.

        Internal details (stderr, tracebacks) are never included.

        Example:
            >>> BadRequestError(user_message="URL is required").to_dict()
            {'error': 'URL is required'}
        """
        return {"error": self.user_message}

    def log_error(self) -> None:
        """Log with WARNING for client errors and ERROR for everything else."""
        log_data = {
            "error_code": self.code.value,
            "status_code": self.status_code,
            "message": self.message,
            **self.details,
        }
        if self.status_code < 500:
            logger.warning("conversion_client_error", **log_data)
        else:
            logger.error("conversion_error", **log_data)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class BadRequestError(ConversionError):
    """Malformed body or unsupported URL. No subprocess is invoked."""

    code = ErrorCode.BAD_REQUEST
    status_code = 400
    default_user_message = "URL is required"


class ToolNotInstalledError(ConversionError):
    """yt-dlp could not be found or started."""

    code = ErrorCode.TOOL_NOT_INSTALLED
    default_user_message = "yt-dlp is not installed. Please install it using: pip install yt-dlp"


class ConversionFailedError(ConversionError):
    """yt-dlp ran but did not succeed (non-zero exit, timeout or output overflow)."""

    code = ErrorCode.CONVERSION_FAILED
    default_user_message = "Failed to download and convert audio"


class OutputEmptyError(ConversionError):
    """yt-dlp exited cleanly but the output file is missing or empty."""

    code = ErrorCode.OUTPUT_EMPTY
    default_user_message = "Failed to create audio file"


class MetadataFailedError(ConversionError):
    """Metadata probe failed (metadata endpoint only; conversions degrade instead)."""

    code = ErrorCode.METADATA_FAILED
    default_user_message = "Failed to get track metadata"


class InternalServerError(ConversionError):
    """Any unanticipated exception."""

    code = ErrorCode.INTERNAL_ERROR
    default_user_message = "Internal server error"
