"""FFmpeg wrapper for sub-clip extraction.

Video sources are cut with stream copy and fall back to a re-encode;
audio-only sources get a waveform video track so every output is a
playable MP4.
"""
from __future__ import annotations

import logging
import shutil
import subprocess
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 600
WAVEFORM_FILTER = "[0:a]showwaves=s=1280x720:mode=line:colors=0x6366f1,format=yuv420p[v]"


class FFmpegError(Exception):
    """Raised when an ffmpeg invocation fails."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class FFmpegNotFoundError(FFmpegError):
    pass


class EncodingMode(str, Enum):
    COPY = "copy"          # stream copy, no re-encode
    REENCODE = "reencode"  # libx264 + aac
    WAVEFORM = "waveform"  # audio source rendered with a waveform video track


def _fmt(seconds: float) -> str:
    return f"{seconds:.3f}"


def build_extract_args(
    source: Path,
    output: Path,
    start: float,
    duration: float,
    mode: EncodingMode,
) -> list[str]:
    args = ["-y", "-ss", _fmt(start), "-i", str(source), "-t", _fmt(duration)]

    if mode is EncodingMode.COPY:
        args += ["-c", "copy", "-avoid_negative_ts", "make_zero"]
    elif mode is EncodingMode.REENCODE:
        args += ["-c:v", "libx264", "-c:a", "aac", "-preset", "fast", "-crf", "23"]
    else:
        args += [
            "-filter_complex", WAVEFORM_FILTER,
            "-map", "[v]",
            "-map", "0:a",
            "-c:v", "libx264",
            "-c:a", "aac",
            "-preset", "fast",
            "-crf", "23",
        ]

    args += ["-movflags", "+faststart", str(output)]
    return args


class ClipExtractor:
    def __init__(self, binary: str = "ffmpeg", timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS):
        self.binary = binary
        self.timeout_seconds = timeout_seconds

    def _resolve_binary(self) -> str:
        path = shutil.which(self.binary)
        if not path:
            raise FFmpegNotFoundError(f"ffmpeg executable not found: {self.binary}")
        return path

    def run(self, args: list[str]) -> None:
        command = [self._resolve_binary(), "-hide_banner", "-loglevel", "error", *args]
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as error:
            raise FFmpegError(f"ffmpeg timed out after {self.timeout_seconds}s") from error

        if result.returncode != 0:
            raise FFmpegError(f"ffmpeg exited with code {result.returncode}", stderr=result.stderr[-2000:])

    def extract(
        self,
        source: Path,
        output: Path,
        start: float,
        end: float,
        audio_only: bool,
    ) -> EncodingMode:
        """
        Cut ``[start, end)`` from ``source`` into ``output``.

        Returns:
            The encoding mode that produced the output
        """
        duration = end - start
        if audio_only:
            self.run(build_extract_args(source, output, start, duration, EncodingMode.WAVEFORM))
            return EncodingMode.WAVEFORM

        try:
            self.run(build_extract_args(source, output, start, duration, EncodingMode.COPY))
            return EncodingMode.COPY
        except FFmpegNotFoundError:
            raise
        except FFmpegError as error:
            logger.warning("render.copy_failed output=%s stderr=%s, retrying with re-encode", output, error.stderr)

        output.unlink(missing_ok=True)
        self.run(build_extract_args(source, output, start, duration, EncodingMode.REENCODE))
        return EncodingMode.REENCODE
