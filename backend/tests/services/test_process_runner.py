"""
Tests for ProcessRunner

Uses the running Python interpreter as a stand-in tool so the tests do not
depend on yt-dlp being installed.
"""

import asyncio
import sys
import time

import pytest

from services.process_runner import (
    ProcessFailedError,
    ProcessOutputLimitError,
    ProcessRunner,
    ProcessTimeoutError,
    ToolNotFoundError,
    looks_like_missing_tool,
    resolve_executable,
)
from tests.fakes import process_is_alive

PYTHON = sys.executable


@pytest.fixture
def runner():
    return ProcessRunner()


@pytest.mark.asyncio
async def test_run_captures_output(runner):
    result = await runner.run(
        [PYTHON, "-c", "import sys; print('hello'); print('warn', file=sys.stderr)"],
        timeout=30,
        max_output_bytes=1024,
    )

    assert result.returncode == 0
    assert result.stdout_text.strip() == "hello"
    assert result.stderr_text.strip() == "warn"


@pytest.mark.asyncio
async def test_arguments_are_not_shell_interpreted(runner):
    payload = "https://soundcloud.com/a/b\"; echo injected; \"$(whoami)"
    result = await runner.run(
        [PYTHON, "-c", "import sys; print(sys.argv[1])", payload],
        timeout=30,
        max_output_bytes=4096,
    )

    assert result.stdout_text.strip() == payload


@pytest.mark.asyncio
async def test_non_zero_exit_raises(runner):
    with pytest.raises(ProcessFailedError) as exc_info:
        await runner.run(
            [PYTHON, "-c", "import sys; sys.stderr.write('ERROR: boom'); sys.exit(3)"],
            timeout=30,
            max_output_bytes=1024,
        )

    assert exc_info.value.returncode == 3
    assert "ERROR: boom" in exc_info.value.stderr


@pytest.mark.asyncio
async def test_timeout_kills_process(runner):
    with pytest.raises(ProcessTimeoutError):
        await runner.run(
            [PYTHON, "-c", "import time; time.sleep(30)"],
            timeout=0.5,
            max_output_bytes=1024,
        )


@pytest.mark.asyncio
async def test_timeout_kills_children_holding_pipes(runner):
    """A grandchild inheriting stdout must not keep the run alive past the timeout"""
    started = time.monotonic()

    with pytest.raises(ProcessTimeoutError):
        await runner.run(
            [
                PYTHON,
                "-c",
                "import subprocess, sys, time\n"
                "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
                "time.sleep(30)",
            ],
            timeout=0.5,
            max_output_bytes=1024,
        )

    assert time.monotonic() - started < 10


@pytest.mark.asyncio
async def test_cancellation_kills_process(runner, tmp_path):
    pid_file = tmp_path / "pid"
    task = asyncio.create_task(runner.run(
        [PYTHON, "-c", "import os, sys, time; open(sys.argv[1], 'w').write(str(os.getpid())); time.sleep(30)", str(pid_file)],
        timeout=60,
        max_output_bytes=1024,
    ))

    for _ in range(200):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not process_is_alive(int(pid_file.read_text()))


@pytest.mark.asyncio
async def test_output_limit_kills_process(runner):
    with pytest.raises(ProcessOutputLimitError):
        await runner.run(
            [PYTHON, "-c", "import sys, time\nwhile True:\n    sys.stdout.write('x' * 4096)\n    sys.stdout.flush()"],
            timeout=30,
            max_output_bytes=16 * 1024,
        )


@pytest.mark.asyncio
async def test_missing_executable_raises_tool_not_found(runner):
    with pytest.raises(ToolNotFoundError) as exc_info:
        await runner.run(
            ["definitely-not-a-real-tool-4d1c", "--version"],
            timeout=5,
            max_output_bytes=1024,
        )

    assert "definitely-not-a-real-tool-4d1c" in str(exc_info.value)


class TestLooksLikeMissingTool:

    @pytest.mark.parametrize("text", [
        "/bin/sh: yt-dlp: command not found",
        "yt-dlp: No such file or directory",
        "'yt-dlp' is not recognized as an internal or external command",
        "/usr/local/bin/yt-dlp: command not found",
    ])
    def test_detects_missing_tool(self, text):
        assert looks_like_missing_tool(text, "yt-dlp") is True

    def test_uses_basename_of_configured_path(self):
        assert looks_like_missing_tool("yt-dlp: command not found", "/opt/tools/yt-dlp") is True

    @pytest.mark.parametrize("text", [
        "",
        "ERROR: [soundcloud] track: HTTP Error 404: Not Found",
        "ERROR: Unable to download webpage",
        "yt-dlp exited with status 1",
    ])
    def test_other_failures(self, text):
        assert looks_like_missing_tool(text, "yt-dlp") is False


class TestResolveExecutable:

    def test_configured_path_wins(self):
        assert resolve_executable("yt-dlp", "/opt/yt-dlp") == "/opt/yt-dlp"

    def test_found_on_path(self, monkeypatch):
        monkeypatch.setattr("services.process_runner.shutil.which", lambda name: f"/usr/bin/{name}")
        assert resolve_executable("yt-dlp") == "/usr/bin/yt-dlp"

    def test_falls_back_to_bare_name(self, monkeypatch):
        monkeypatch.setattr("services.process_runner.shutil.which", lambda name: None)
        assert resolve_executable("definitely-not-a-real-tool-4d1c") == "definitely-not-a-real-tool-4d1c"
