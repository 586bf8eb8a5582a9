"""
Audio converter endpoint router

Converts SoundCloud tracks to WAV or FLAC and streams the result back.
Temporary files are deleted as soon as the stream finishes, fails or the
client disconnects.
"""

from functools import lru_cache

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from config import settings
from schemas import ErrorResponse, TrackMetadata
from services.audio_converter import AudioConverter, AudioFormat, ConversionResult

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["Audio Converter"])

CORS_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "URL missing or not a SoundCloud URL"},
    500: {"model": ErrorResponse, "description": "yt-dlp missing, conversion failed or internal error"},
}


@lru_cache(maxsize=1)
def get_audio_converter() -> AudioConverter:
    """Shared AudioConverter built from the global settings"""
    return AudioConverter(config=settings)


def _stream_response(result: ConversionResult) -> StreamingResponse:
    logger.info("conversion_response_streaming", filename=result.filename, media_type=result.media_type)
    # aclose() as background task covers client disconnects; it is a no-op
    # when the stream already closed itself
    return StreamingResponse(
        result.stream,
        media_type=result.media_type,
        headers=result.headers,
        background=BackgroundTask(result.stream.aclose),
    )


def _preflight() -> Response:
    return Response(status_code=200, headers=CORS_PREFLIGHT_HEADERS)


@router.post(
    "/convert",
    responses={
        200: {"description": "WAV audio file", "content": {"audio/wav": {}}},
        **ERROR_RESPONSES,
    },
    summary="Convert SoundCloud to WAV",
    description="""
Download a SoundCloud track and stream it back as WAV.

This endpoint:
1. Validates the SoundCloud URL
2. Downloads and converts the audio with yt-dlp into a temporary file
3. Streams the file back as `soundcloud-audio.wav`
4. Deletes the temporary file once the stream ends

**IMPORTANT:** This is a synchronous endpoint that may take several minutes.

**Required Fields:**
- url: SoundCloud track URL (e.g., https://soundcloud.com/artist/track)
"""
)
async def convert_to_wav(
    request: Request,
    converter: AudioConverter = Depends(get_audio_converter),
):
    body = await request.body()
    result = await converter.convert(body, AudioFormat.WAV)
    return _stream_response(result)


@router.options("/convert", include_in_schema=False)
async def convert_to_wav_preflight():
    return _preflight()


@router.post(
    "/convert-flac",
    responses={
        200: {"description": "FLAC audio file", "content": {"audio/flac": {}}},
        **ERROR_RESPONSES,
    },
    summary="Convert SoundCloud to FLAC",
    description="""
Download a SoundCloud track and stream it back as FLAC.

Metadata tags and artwork are embedded, and the download is named
"{artist} - {title}.flac". If metadata cannot be fetched, the conversion
still proceeds as `soundcloud-audio.flac`.

**Required Fields:**
- url: SoundCloud track URL (e.g., https://soundcloud.com/artist/track)
"""
)
async def convert_to_flac(
    request: Request,
    converter: AudioConverter = Depends(get_audio_converter),
):
    body = await request.body()
    result = await converter.convert(body, AudioFormat.FLAC)
    return _stream_response(result)


@router.options("/convert-flac", include_in_schema=False)
async def convert_to_flac_preflight():
    return _preflight()


@router.post(
    "/metadata",
    response_model=TrackMetadata,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
    summary="Get SoundCloud Track Metadata",
    description="""
Fetch track information (artist, title, duration, artwork, ...) without
downloading any audio.

**Required Fields:**
- url: SoundCloud track URL (e.g., https://soundcloud.com/artist/track)
"""
)
async def get_track_metadata(
    request: Request,
    converter: AudioConverter = Depends(get_audio_converter),
):
    body = await request.body()
    metadata = await converter.probe_metadata(body)
    return metadata


@router.options("/metadata", include_in_schema=False)
async def get_track_metadata_preflight():
    return _preflight()
