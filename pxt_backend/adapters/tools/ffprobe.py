"""
FFprobe adapter: returns the container/stream tag dictionary of a video file.
"""
import asyncio
import json
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, List, Optional, Protocol

from ...config import FFPROBE_BIN, FFPROBE_TIMEOUT
from ...shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)


class VideoProbe(Protocol):
    """Anything that can turn a video path into `{"format": {...}, "streams": [...]}`."""

    def is_available(self) -> bool: ...

    def read(self, path: str) -> Result[dict]: ...

    async def aread(self, path: str) -> Result[dict]: ...


class FFProbe:
    """
    FFprobe wrapper for container tag extraction.

    Never raises exceptions - always returns Result.
    """

    def __init__(self, bin_name: Optional[str] = None, timeout: Optional[float] = None):
        """
        Args:
            bin_name: FFprobe binary name or path (defaults to PXT_FFPROBE_BIN)
            timeout: Command timeout in seconds (defaults to PXT_FFPROBE_TIMEOUT)
        """
        self.bin = bin_name or FFPROBE_BIN
        self.timeout = float(timeout) if timeout is not None else float(FFPROBE_TIMEOUT)
        self._resolved_bin: Optional[str] = None
        self._available = self._check_available()

    def _resolve_executable(self, bin_name: str) -> Optional[str]:
        """Resolve the configured binary, refusing anything that is not an ffprobe executable."""
        raw = (bin_name or "").strip()
        if not self._is_safe_executable_token(raw):
            return None
        resolved = self._resolve_executable_path(raw)
        if not resolved:
            return None
        return resolved if self._is_ffprobe_name(resolved) else None

    @staticmethod
    def _is_safe_executable_token(raw: str) -> bool:
        if not raw:
            return False
        if "\x00" in raw or "\n" in raw or "\r" in raw:
            return False
        return not any(ch in raw for ch in ("&", "|", ";", ">", "<"))

    @staticmethod
    def _resolve_executable_path(raw: str) -> Optional[str]:
        resolved = shutil.which(raw)
        if resolved:
            return resolved
        try:
            candidate = Path(raw)
            if candidate.is_file():
                return str(candidate.resolve(strict=True))
        except (OSError, RuntimeError, ValueError):
            return None
        return None

    @staticmethod
    def _is_ffprobe_name(resolved: str) -> bool:
        return Path(resolved).name.lower().startswith("ffprobe")

    def _check_available(self) -> bool:
        resolved = self._resolve_executable(self.bin)
        if not resolved:
            logger.debug(f"ffprobe not resolved from {self.bin!r}")
            return False
        self._resolved_bin = resolved
        return True

    def is_available(self) -> bool:
        return self._available

    def _validate_probe_path(self, path: Any) -> Result[str]:
        """Reject paths that could be read as ffprobe options or break the argv."""
        text = str(path or "").strip()
        if not text:
            return Result.Err(ErrorCode.INVALID_INPUT, "Empty path")
        if text.startswith("-"):
            return Result.Err(ErrorCode.INVALID_INPUT, "Path must not start with '-'")
        if any(ch in text for ch in ("\x00", "\n", "\r")):
            return Result.Err(ErrorCode.INVALID_INPUT, "Path contains control characters")
        return Result.Ok(text)

    def _tool_missing(self) -> Result[dict]:
        return Result.Err(ErrorCode.TOOL_MISSING, "ffprobe not found in PATH")

    def read(self, path: str) -> Result[dict]:
        """
        Read container and stream tags using ffprobe.

        Returns:
            Result with {"format": {...}, "streams": [...]}
        """
        if not self._available:
            return self._tool_missing()
        checked = self._validate_probe_path(path)
        if not checked.ok:
            return Result.Err(checked.code, checked.error or "Invalid path")

        try:
            process = self._run_ffprobe_cmd(self._build_ffprobe_cmd(str(checked.data)))
            return self._parse_ffprobe_output(process.stdout, process.stderr, process.returncode, str(checked.data))
        except subprocess.TimeoutExpired:
            return self._ffprobe_timeout_error(str(checked.data))
        except json.JSONDecodeError as e:
            logger.error(f"ffprobe JSON parse error: {e}")
            return Result.Err(ErrorCode.PARSE_ERROR, f"Failed to parse ffprobe output: {e}")
        except Exception as e:
            logger.error(f"ffprobe unexpected error: {e}")
            return Result.Err(ErrorCode.FFPROBE_ERROR, str(e))

    def _run_ffprobe_cmd(self, cmd: List[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
            timeout=self.timeout,
            shell=False,
            close_fds=os.name != "nt",
        )

    def _ffprobe_timeout_error(self, path: str) -> Result[dict]:
        logger.error(f"ffprobe timeout for {path}")
        return Result.Err(ErrorCode.TIMEOUT, f"ffprobe timeout after {self.timeout}s")

    async def aread(self, path: str) -> Result[dict]:
        """Async variant of read() using asyncio subprocess execution."""
        if not self._available:
            return self._tool_missing()
        checked = self._validate_probe_path(path)
        if not checked.ok:
            return Result.Err(checked.code, checked.error or "Invalid path")
        target = str(checked.data)

        try:
            process = await self._spawn_ffprobe_process(self._build_ffprobe_cmd(target))
            communicated = await self._communicate_with_timeout(process, target)
            if not communicated.ok:
                return Result.Err(
                    communicated.code or ErrorCode.FFPROBE_ERROR,
                    communicated.error or "ffprobe communication failed",
                    **(communicated.meta or {}),
                )
            stdout, stderr = communicated.data or ("", "")
            return self._parse_ffprobe_output(stdout, stderr, process.returncode, target)
        except json.JSONDecodeError as e:
            logger.error(f"ffprobe JSON parse error: {e}")
            return Result.Err(ErrorCode.PARSE_ERROR, f"Failed to parse ffprobe output: {e}")
        except Exception as e:
            logger.error(f"ffprobe unexpected error: {e}")
            return Result.Err(ErrorCode.FFPROBE_ERROR, str(e))

    def _build_ffprobe_cmd(self, path: str) -> List[str]:
        return [
            self._resolved_bin or self.bin,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            path,
        ]

    async def _spawn_ffprobe_process(self, cmd: List[str]) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            close_fds=os.name != "nt",
        )

    async def _communicate_with_timeout(
        self,
        process: asyncio.subprocess.Process,
        path: str,
    ) -> Result[tuple[str, str]]:
        try:
            stdout_b, stderr_b = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            logger.error(f"ffprobe timeout for {path}")
            return Result.Err(ErrorCode.TIMEOUT, f"ffprobe timeout after {self.timeout}s")
        stdout = (stdout_b or b"").decode("utf-8", errors="replace")
        stderr = (stderr_b or b"").decode("utf-8", errors="replace")
        return Result.Ok((stdout, stderr))

    def _parse_ffprobe_output(
        self,
        stdout: str,
        stderr: str,
        returncode: Optional[int],
        path: str,
    ) -> Result[dict]:
        if returncode != 0:
            stderr_msg = (stderr or "").strip()
            logger.warning(f"ffprobe error for {path}: {stderr_msg}")
            return Result.Err(
                ErrorCode.FFPROBE_ERROR,
                stderr_msg or "ffprobe command failed",
                exit_code=returncode,
                stderr=stderr_msg,
            )
        if not (stdout or "").strip():
            logger.warning(f"ffprobe returned empty output for {path}")
            return Result.Err(ErrorCode.FFPROBE_ERROR, "No ffprobe output")
        data = json.loads(stdout)
        if not isinstance(data, dict):
            return Result.Err(ErrorCode.PARSE_ERROR, "Invalid ffprobe output format")
        fmt = data.get("format")
        streams = data.get("streams")
        return Result.Ok({
            "format": fmt if isinstance(fmt, dict) else {},
            "streams": streams if isinstance(streams, list) else [],
        })
