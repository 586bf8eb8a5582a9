"""
Metadata Prober

Extracts track metadata with `yt-dlp --dump-json --no-download`.

Conversions use probe(), which never fails: metadata is only used to name
the downloaded file, so a failed probe falls back to a generic filename.
The metadata endpoint uses fetch(), which reports failures to the caller.
"""

import json
from typing import Any, Dict, Optional

import structlog

from config import Settings, settings as default_settings
from schemas import TrackMetadata
from services.errors import MetadataFailedError, ToolNotInstalledError
from services.filenames import FALLBACK_FILENAME, build_track_filename
from services.process_runner import (
    ProcessError,
    ProcessRunner,
    ToolNotFoundError,
    looks_like_missing_tool,
    resolve_executable,
)
from services.url_validation import describe_url

logger = structlog.get_logger()

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TITLE = "Unknown Title"


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _number_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    return value if isinstance(value, (int, float)) else None


def parse_track_metadata(info: Dict[str, Any]) -> TrackMetadata:
    """
    Map a yt-dlp info dict to TrackMetadata.

    artist falls back uploader -> artist -> "Unknown Artist";
    title falls back to "Unknown Title".
    """
    uploader = _str_or_none(info.get("uploader"))
    artist = uploader or _str_or_none(info.get("artist")) or UNKNOWN_ARTIST
    title = _str_or_none(info.get("title")) or UNKNOWN_TITLE

    return TrackMetadata(
        artist=artist,
        title=title,
        duration=_number_or_none(info.get("duration")),
        description=_str_or_none(info.get("description")),
        thumbnail=_str_or_none(info.get("thumbnail")),
        uploader=uploader,
        upload_date=_str_or_none(info.get("upload_date")),
        filename=build_track_filename(artist, title),
    )


def fallback_metadata() -> TrackMetadata:
    """Degraded record used when probing fails."""
    return TrackMetadata(filename=FALLBACK_FILENAME)


class MetadataProber:
    """
    Service for probing SoundCloud track metadata via yt-dlp.

    Example:
        >>> prober = MetadataProber(ProcessRunner())
        >>> metadata = await prober.probe("https://soundcloud.com/artist/track")
        >>> print(metadata.filename)
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        config: Optional[Settings] = None,
        executable: Optional[str] = None,
    ):
        self.runner = runner or ProcessRunner()
        self.config = config or default_settings
        self.executable = executable or resolve_executable("yt-dlp", self.config.YTDLP_PATH)

    def build_command(self, url: str) -> list:
        return [self.executable, "--dump-json", "--no-download", url]

    async def fetch(self, url: str) -> TrackMetadata:
        """
        Probe metadata, raising on failure.

        Args:
            url: Validated SoundCloud URL

        Returns:
            TrackMetadata

        Raises:
            ToolNotInstalledError: yt-dlp is missing
            MetadataFailedError: Probe failed, timed out or returned bad JSON
        """
        url_info = describe_url(url)
        logger.info("metadata_probe_started", **url_info)

        try:
            result = await self.runner.run(
                self.build_command(url),
                timeout=self.config.metadata_timeout_seconds,
                max_output_bytes=self.config.max_output_bytes,
            )
        except ToolNotFoundError as e:
            raise ToolNotInstalledError(str(e), details={"stage": "metadata"}) from e
        except ProcessError as e:
            if looks_like_missing_tool(f"{e} {e.stderr}", self.executable):
                raise ToolNotInstalledError(str(e), details={"stage": "metadata"}) from e
            raise MetadataFailedError(
                str(e),
                details={"stage": "metadata", "error_type": type(e).__name__, "stderr": e.stderr[-2000:]},
            ) from e

        try:
            info = json.loads(result.stdout_text)
        except ValueError as e:
            raise MetadataFailedError(f"Unparsable yt-dlp output: {e}", details={"stage": "metadata"}) from e

        if not isinstance(info, dict):
            raise MetadataFailedError(
                f"Unexpected yt-dlp output type: {type(info).__name__}",
                details={"stage": "metadata"},
            )

        metadata = parse_track_metadata(info)
        logger.info(
            "metadata_probe_completed",
            title=metadata.title,
            artist=metadata.artist,
            duration=metadata.duration,
            **url_info
        )
        return metadata

    async def probe(self, url: str) -> TrackMetadata:
        """
        Probe metadata, degrading to a fallback record on any failure.

        Args:
            url: Validated SoundCloud URL

        Returns:
            TrackMetadata (only filename populated if the probe failed)
        """
        try:
            return await self.fetch(url)
        except (ToolNotInstalledError, MetadataFailedError) as e:
            logger.warning(
                "metadata_probe_degraded",
                error_code=e.code.value,
                error=e.message,
                **describe_url(url)
            )
            return fallback_metadata()
        except Exception as e:
            logger.error(
                "metadata_probe_unexpected_error",
                error=str(e),
                exc_info=True,
                **describe_url(url)
            )
            return fallback_metadata()
