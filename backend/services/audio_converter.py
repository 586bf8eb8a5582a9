"""
Audio Conversion Service

Downloads a SoundCloud track with yt-dlp, converts it to WAV or FLAC in a
temporary file and hands the file to a FileStream for delivery.

Pipeline:
1. Validate the request body and URL
2. (FLAC only) probe metadata to name the download
3. Run yt-dlp into a fresh temp path
4. Verify the output file exists and is non-empty
5. Open the file for streaming

The temp file is deleted exactly once: by the stream when it reaches a
terminal state, or by this service if anything fails before hand-off.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import structlog
from pydantic import ValidationError

from config import Settings, settings as default_settings
from schemas import ConversionRequest, TrackMetadata
from services.errors import (
    BadRequestError,
    ConversionError,
    ConversionFailedError,
    InternalServerError,
    OutputEmptyError,
    ToolNotInstalledError,
)
from services.filenames import FALLBACK_FILENAME, content_disposition, sanitize_filename
from services.metadata_prober import MetadataProber
from services.process_runner import (
    ProcessError,
    ProcessRunner,
    ToolNotFoundError,
    looks_like_missing_tool,
    resolve_executable,
)
from services.stream_adapter import FileStream, StreamOutcome
from services.temp_files import TempAudioFile, new_temp_path
from services.url_validation import describe_url, is_supported_url

logger = structlog.get_logger()


class AudioFormat(str, Enum):
    """Supported output formats"""

    WAV = "wav"
    FLAC = "flac"

    @property
    def media_type(self) -> str:
        return f"audio/{self.value}"


class ConversionState(Enum):
    """States of a single conversion request"""

    IDLE = "idle"
    VALIDATING = "validating"
    PROBING_METADATA = "probing_metadata"
    INVOKING = "invoking"
    VERIFYING = "verifying"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ConversionResult:
    """A ready-to-send conversion: an open stream plus response metadata"""

    stream: FileStream
    filename: str
    media_type: str
    metadata: Optional[TrackMetadata] = None
    headers: Dict[str, str] = field(default_factory=dict)


def parse_conversion_request(body: bytes) -> ConversionRequest:
    """
    Parse and validate a raw JSON request body.

    Raises:
        BadRequestError: Malformed JSON, or url missing / empty / not a string
    """
    try:
        request = ConversionRequest.model_validate_json(body or b"")
    except ValidationError as e:
        raise BadRequestError(
            "Request body failed validation",
            details={"validation_errors": e.error_count()},
            user_message="URL is required",
        ) from e

    if not is_supported_url(request.url):
        raise BadRequestError(
            "Unsupported URL host",
            details=describe_url(request.url),
            user_message="Invalid SoundCloud URL",
        )

    return request


class AudioConverter:
    """
    Orchestrates SoundCloud -> WAV/FLAC conversions.

    Example:
        >>> converter = AudioConverter()
        >>> result = await converter.convert(b'{"url": "https://soundcloud.com/a/b"}', AudioFormat.WAV)
        >>> return StreamingResponse(result.stream, media_type=result.media_type, headers=result.headers)
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        config: Optional[Settings] = None,
        prober: Optional[MetadataProber] = None,
        executable: Optional[str] = None,
        temp_dir: Optional[str] = None,
    ):
        """
        Initialize the conversion service.

        Args:
            runner: Process runner used for every yt-dlp invocation
            config: Settings (timeouts, output limits, chunk size)
            prober: Metadata prober (defaults to one sharing runner and config)
            executable: yt-dlp executable (defaults to PATH / venv lookup)
            temp_dir: Directory for temp files (defaults to the system temp dir)
        """
        self.runner = runner or ProcessRunner()
        self.config = config or default_settings
        self.executable = executable or resolve_executable("yt-dlp", self.config.YTDLP_PATH)
        self.prober = prober or MetadataProber(self.runner, self.config, self.executable)
        self.temp_dir = temp_dir

    def build_command(self, url: str, audio_format: AudioFormat, output_path: str) -> List[str]:
        """Argument vector for a download + transcode run."""
        command = [
            self.executable,
            "-x",
            "--audio-format", audio_format.value,
            "-o", output_path,
        ]
        if audio_format is AudioFormat.FLAC:
            command += ["--add-metadata", "--embed-thumbnail"]
        command.append(url)
        return command

    async def probe_metadata(self, body: bytes) -> TrackMetadata:
        """
        Validate a request body and fetch its track metadata (metadata endpoint).

        Raises:
            BadRequestError, ToolNotInstalledError, MetadataFailedError,
            InternalServerError
        """
        try:
            request = parse_conversion_request(body)
            return await self.prober.fetch(request.url)
        except ConversionError as e:
            e.log_error()
            raise
        except Exception as e:
            logger.error("metadata_unexpected_error", error=str(e), exc_info=True)
            raise InternalServerError(str(e)) from e

    async def convert(self, body: bytes, audio_format: AudioFormat) -> ConversionResult:
        """
        Run the full conversion pipeline for one request.

        Args:
            body: Raw JSON request body ({"url": ...})
            audio_format: Target format

        Returns:
            ConversionResult with an open FileStream that owns temp file deletion

        Raises:
            BadRequestError: Invalid body or URL (no subprocess, no temp file)
            ToolNotInstalledError: yt-dlp missing
            ConversionFailedError: yt-dlp failed, timed out or overflowed its output
            OutputEmptyError: yt-dlp produced no usable file
            InternalServerError: Anything unanticipated
        """
        audio_format = AudioFormat(audio_format)
        state = ConversionState.IDLE
        temp_file: Optional[TempAudioFile] = None
        handed_off = False
        log = logger.bind(audio_format=audio_format.value)

        def transition(new_state: ConversionState) -> None:
            nonlocal state
            log.debug("conversion_state_changed", from_state=state.value, to_state=new_state.value)
            state = new_state

        try:
            transition(ConversionState.VALIDATING)
            request = parse_conversion_request(body)
            log = log.bind(**describe_url(request.url))
            log.info("conversion_request_received")

            metadata: Optional[TrackMetadata] = None
            if audio_format is AudioFormat.FLAC:
                transition(ConversionState.PROBING_METADATA)
                metadata = await self.prober.probe(request.url)

            transition(ConversionState.INVOKING)
            temp_file = TempAudioFile(
                path=new_temp_path(audio_format.value, temp_dir=self.temp_dir),
                format=audio_format.value,
            )
            await self._run_ytdlp(request.url, audio_format, temp_file)

            transition(ConversionState.VERIFYING)
            self._verify_output(temp_file)

            filename = self._response_filename(audio_format, metadata)
            headers = {"Content-Disposition": content_disposition(filename)}

            stream = FileStream(
                temp_file,
                chunk_size=self.config.STREAM_CHUNK_SIZE,
                on_close=self._on_stream_closed,
            )
            await stream.open()
            handed_off = True
            transition(ConversionState.STREAMING)

            log.info(
                "conversion_ready",
                filename=filename,
                file_size_bytes=temp_file.size_bytes,
            )
            return ConversionResult(
                stream=stream,
                filename=filename,
                media_type=audio_format.media_type,
                metadata=metadata,
                headers=headers,
            )

        except ConversionError as e:
            transition(ConversionState.FAILED)
            e.log_error()
            raise

        except Exception as e:
            transition(ConversionState.FAILED)
            log.error("conversion_unexpected_error", error=str(e), exc_info=True)
            raise InternalServerError(str(e)) from e

        finally:
            if temp_file is not None and not handed_off:
                temp_file.remove()
                temp_file.remove_side_files()

    async def _run_ytdlp(self, url: str, audio_format: AudioFormat, temp_file: TempAudioFile) -> None:
        """Invoke yt-dlp, mapping process failures to conversion errors."""
        command = self.build_command(url, audio_format, str(temp_file.path))
        details = {"stage": "download", **describe_url(url)}

        try:
            await self.runner.run(
                command,
                timeout=self.config.conversion_timeout_seconds,
                max_output_bytes=self.config.max_output_bytes,
            )
        except ToolNotFoundError as e:
            raise ToolNotInstalledError(str(e), details=details) from e
        except ProcessError as e:
            # Best-effort classification: yt-dlp's name plus a "not found" phrase
            if looks_like_missing_tool(f"{e} {e.stderr}", self.executable):
                raise ToolNotInstalledError(str(e), details=details) from e
            raise ConversionFailedError(
                str(e),
                details={**details, "error_type": type(e).__name__, "stderr": e.stderr[-2000:]},
            ) from e

    @staticmethod
    def _verify_output(temp_file: TempAudioFile) -> None:
        try:
            size = temp_file.stat_size()
        except FileNotFoundError as e:
            raise OutputEmptyError("yt-dlp did not create the output file", details={"stage": "verify"}) from e

        if size == 0:
            raise OutputEmptyError("Downloaded file is empty", details={"stage": "verify"})

    @staticmethod
    def _response_filename(audio_format: AudioFormat, metadata: Optional[TrackMetadata]) -> str:
        if audio_format is AudioFormat.FLAC and metadata is not None:
            base = sanitize_filename(metadata.filename) or FALLBACK_FILENAME
            return f"{base}.flac"
        return f"{FALLBACK_FILENAME}.{audio_format.value}"

    @staticmethod
    async def _on_stream_closed(stream: FileStream) -> None:
        stream.temp_file.remove()
        stream.temp_file.remove_side_files()
        logger.info(
            "conversion_finished",
            state=(ConversionState.COMPLETED if stream.outcome is StreamOutcome.COMPLETED else ConversionState.FAILED).value,
            outcome=stream.outcome.value,
            bytes_sent=stream.bytes_sent,
        )
