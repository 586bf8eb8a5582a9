"""
Process Runner

Runs external command-line tools (yt-dlp) as subprocesses.

Arguments are always passed as an argument vector to
asyncio.create_subprocess_exec; nothing goes through a shell, so
user-supplied URLs can never be interpreted as shell syntax.
"""

import asyncio
import os
import shutil
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

logger = structlog.get_logger()

_READ_CHUNK_SIZE = 64 * 1024


class ProcessError(Exception):
    """Base class for subprocess failures"""

    def __init__(self, message: str, stderr: str = ""):
        self.stderr = stderr
        super().__init__(message)


class ToolNotFoundError(ProcessError):
    """Raised when the executable cannot be started"""
    pass


class ProcessTimeoutError(ProcessError):
    """Raised when the process exceeds its wall-clock timeout"""
    pass


class ProcessOutputLimitError(ProcessError):
    """Raised when captured stdout or stderr exceeds the configured limit"""
    pass


class ProcessFailedError(ProcessError):
    """Raised when the process exits with a non-zero status"""

    def __init__(self, message: str, returncode: int, stderr: str = ""):
        self.returncode = returncode
        super().__init__(message, stderr)


@dataclass
class ProcessResult:
    """Outcome of a successful process run"""

    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


def resolve_executable(name: str, configured_path: Optional[str] = None) -> str:
    """
    Find an executable, preferring an explicit path, then PATH, then the venv.

    Falls back to the bare name so a missing tool surfaces as
    ToolNotFoundError when it is actually run.
    """
    if configured_path:
        return configured_path

    found = shutil.which(name)
    if found:
        return found

    # Check if running in venv (pip install yt-dlp puts it next to python)
    venv_bin = Path(sys.executable).parent
    for candidate in (venv_bin / f"{name}.exe", venv_bin / name):
        if candidate.exists():
            return str(candidate)

    return name


def looks_like_missing_tool(error_text: str, tool_name: str) -> bool:
    """
    Heuristic: does a failure message indicate the tool itself is missing?

    This is best-effort string matching on the tool's own name, not a
    structural signal, and may misclassify unusual stderr output.
    """
    if not error_text:
        return False
    text = error_text.lower()
    name = Path(tool_name).name.lower()
    if name not in text:
        return False
    markers = (
        "not found",
        "no such file",
        "not recognized",
        "not installed",
        "cannot find",
    )
    return any(marker in text for marker in markers)


class ProcessRunner:
    """
    Runs a command with a timeout and a cap on captured output.

    Example:
        >>> runner = ProcessRunner()
        >>> result = await runner.run(["yt-dlp", "--version"], timeout=10, max_output_bytes=1024)
        >>> print(result.stdout_text)
    """

    async def run(
        self,
        args: Sequence[str],
        timeout: float,
        max_output_bytes: int,
    ) -> ProcessResult:
        """
        Run a command to completion.

        Args:
            args: Argument vector; args[0] is the executable
            timeout: Wall-clock timeout in seconds
            max_output_bytes: Limit for each of stdout and stderr

        Returns:
            ProcessResult for a zero exit status

        Raises:
            ToolNotFoundError: Executable could not be started
            ProcessTimeoutError: Timeout exceeded (process killed)
            ProcessOutputLimitError: Output limit exceeded (process killed)
            ProcessFailedError: Non-zero exit status
        """
        argv: List[str] = [str(arg) for arg in args]
        executable = argv[0]

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                # Own process group so _kill also reaches anything the tool spawned
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolNotFoundError(f"{executable}: command not found ({e})", stderr=str(e)) from e

        stdout = bytearray()
        stderr = bytearray()

        async def _drain(stream: asyncio.StreamReader, sink: bytearray, label: str) -> None:
            while True:
                chunk = await stream.read(_READ_CHUNK_SIZE)
                if not chunk:
                    return
                sink.extend(chunk)
                if len(sink) > max_output_bytes:
                    raise ProcessOutputLimitError(
                        f"{label} exceeded {max_output_bytes} bytes",
                        stderr=bytes(stderr).decode("utf-8", errors="replace"),
                    )

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _drain(process.stdout, stdout, "stdout"),
                    _drain(process.stderr, stderr, "stderr"),
                    process.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            raise ProcessTimeoutError(
                f"{executable} timed out after {timeout}s",
                stderr=bytes(stderr).decode("utf-8", errors="replace"),
            )
        except ProcessOutputLimitError:
            await self._kill(process)
            raise
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        result = ProcessResult(
            returncode=process.returncode,
            stdout=bytes(stdout),
            stderr=bytes(stderr),
        )

        if result.returncode != 0:
            raise ProcessFailedError(
                f"{executable} exited with status {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr_text,
            )

        return result

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        """
        Kill the process and its whole process group, then reap it.

        Children left holding the stdout/stderr pipes would otherwise keep
        process.wait() blocked long after the timeout.
        """
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            elif process.returncode is None:
                process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        logger.warning("subprocess_killed", pid=process.pid, returncode=process.returncode)
