"""
Tests for FileStream
"""

import pytest

from services.stream_adapter import FileStream, StreamOutcome
from services.temp_files import TempAudioFile
from tests.fakes import drain


def make_temp_file(temp_dir, data: bytes) -> TempAudioFile:
    path = temp_dir / "soundcloud-stream.wav"
    path.write_bytes(data)
    return TempAudioFile(path=path, format="wav", size_bytes=len(data))


class CloseRecorder:
    """Close hook that deletes the file and records each call"""

    def __init__(self):
        self.calls = []

    async def __call__(self, stream: FileStream) -> None:
        self.calls.append(stream.outcome)
        stream.temp_file.remove()


@pytest.mark.asyncio
async def test_streams_in_chunks_and_cleans_up(temp_dir):
    data = bytes(range(256)) * 10
    temp_file = make_temp_file(temp_dir, data)
    hook = CloseRecorder()
    stream = FileStream(temp_file, chunk_size=100, on_close=hook)

    chunks = [chunk async for chunk in stream]

    assert b"".join(chunks) == data
    assert max(len(chunk) for chunk in chunks) == 100
    assert len(chunks) == 26
    assert stream.outcome is StreamOutcome.COMPLETED
    assert stream.bytes_sent == len(data)
    assert hook.calls == [StreamOutcome.COMPLETED]
    assert not temp_file.path.exists()


@pytest.mark.asyncio
async def test_aclose_is_idempotent(temp_dir):
    temp_file = make_temp_file(temp_dir, b"abc")
    hook = CloseRecorder()
    stream = FileStream(temp_file, chunk_size=10, on_close=hook)

    await drain(stream)
    await stream.aclose()
    await stream.aclose()

    assert hook.calls == [StreamOutcome.COMPLETED]


@pytest.mark.asyncio
async def test_client_disconnect_closes_and_deletes(temp_dir):
    """Response background task calls aclose() while the iterator is suspended"""
    temp_file = make_temp_file(temp_dir, b"x" * 1000)
    hook = CloseRecorder()
    stream = FileStream(temp_file, chunk_size=100, on_close=hook)
    await stream.open()

    iterator = stream.__aiter__()
    first = await iterator.__anext__()
    assert first == b"x" * 100

    await stream.aclose()

    assert stream.closed
    assert stream.outcome is StreamOutcome.CANCELLED
    assert hook.calls == [StreamOutcome.CANCELLED]
    assert not temp_file.path.exists()

    # Finalizing the abandoned iterator does not fire the hook again
    await iterator.aclose()
    assert hook.calls == [StreamOutcome.CANCELLED]


@pytest.mark.asyncio
async def test_abandoned_iterator_closed_by_runtime(temp_dir):
    temp_file = make_temp_file(temp_dir, b"y" * 1000)
    hook = CloseRecorder()
    stream = FileStream(temp_file, chunk_size=100, on_close=hook)

    iterator = stream.__aiter__()
    await iterator.__anext__()
    await iterator.aclose()

    assert hook.calls == [StreamOutcome.CANCELLED]
    assert not temp_file.path.exists()


@pytest.mark.asyncio
async def test_read_error_fails_stream_and_cleans_up(temp_dir):
    temp_file = make_temp_file(temp_dir, b"z" * 1000)
    hook = CloseRecorder()
    stream = FileStream(temp_file, chunk_size=100, on_close=hook)
    await stream.open()

    async def broken_read(size):
        raise OSError("disk went away")

    stream._file.read = broken_read

    with pytest.raises(OSError, match="disk went away"):
        await drain(stream)

    assert stream.outcome is StreamOutcome.FAILED
    assert hook.calls == [StreamOutcome.FAILED]
    assert not temp_file.path.exists()


@pytest.mark.asyncio
async def test_failing_close_hook_is_swallowed(temp_dir):
    temp_file = make_temp_file(temp_dir, b"abc")

    async def bad_hook(stream):
        raise RuntimeError("cleanup exploded")

    stream = FileStream(temp_file, chunk_size=10, on_close=bad_hook)

    assert await drain(stream) == b"abc"
    assert stream.closed
