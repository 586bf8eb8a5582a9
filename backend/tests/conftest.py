"""
Shared fixtures for backend tests.
"""

import os
import sys
from pathlib import Path

import pytest

from config import Settings
from services.audio_converter import AudioConverter
from tests.fakes import FakeRunner


@pytest.fixture
def test_settings():
    """Settings with small, deterministic limits"""
    config = Settings()
    config.MAX_FILE_SIZE_MB = 100
    config.CONVERSION_TIMEOUT_MS = 300000
    config.METADATA_TIMEOUT_MS = 30000
    config.STREAM_CHUNK_SIZE = 256
    config.YTDLP_PATH = "yt-dlp"
    return config


@pytest.fixture
def temp_dir(tmp_path):
    directory = tmp_path / "conversions"
    directory.mkdir()
    return directory


@pytest.fixture
def make_converter(test_settings, temp_dir):
    """Factory for an AudioConverter wired to a FakeRunner"""

    def _make(handler=None):
        runner = FakeRunner(handler)
        converter = AudioConverter(
            runner=runner,
            config=test_settings,
            executable="yt-dlp",
            temp_dir=str(temp_dir),
        )
        return converter, runner

    return _make


@pytest.fixture
def remove_calls(monkeypatch):
    """Count delete attempts made through temp_files.remove_temp_file"""
    import services.temp_files as temp_files

    calls = []
    original = temp_files.remove_temp_file

    def counting_remove(path):
        calls.append(Path(path))
        return original(path)

    monkeypatch.setattr(temp_files, "remove_temp_file", counting_remove)
    return calls


SLOW_YTDLP_SCRIPT = """
import os, subprocess, sys, time
from pathlib import Path

args = sys.argv[1:]
output = args[args.index("-o") + 1]
Path(__file__).with_suffix(".pid").write_text(str(os.getpid()))
Path(output + ".part").write_bytes(b"partial download")
# Child that inherits stdout/stderr, like ffmpeg under yt-dlp
subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
time.sleep(30)
"""


@pytest.fixture
def slow_ytdlp(tmp_path):
    """
    Executable that behaves like a stalled yt-dlp download.

    It writes "<output>.part", spawns a child holding its pipes and sleeps.
    Its pid is written next to the script; returns (executable, pid_file).
    """
    if os.name != "posix":
        pytest.skip("requires a POSIX shell")

    tool_dir = tmp_path / "tools"
    tool_dir.mkdir()
    script = tool_dir / "slow_ytdlp.py"
    script.write_text(SLOW_YTDLP_SCRIPT)
    executable = tool_dir / "yt-dlp"
    executable.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
    executable.chmod(0o755)
    return str(executable), script.with_suffix(".pid")

