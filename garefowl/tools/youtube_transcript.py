"""
tools/youtube_transcript.py
===========================
Plain-text transcripts of YouTube videos via yt-dlp.

yt-dlp is asked for English auto-generated captions only, in WebVTT,
written to <tmp>/<video id>.en.vtt. The cue file is read, flattened to
prose, and always deleted afterwards.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
import tempfile
from pathlib import Path

from garefowl.errors import CaptionsUnavailableError, ExtractionFailedError, InvalidVideoUrlError

logger = logging.getLogger(__name__)

YT_DLP       = "yt-dlp"
TIMEOUT_SECS = 120

VIDEO_ID_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)([A-Za-z0-9_-]{11})"),
    re.compile(r"^([A-Za-z0-9_-]{11})$"),
)

HEADER_BLOCK_RE = re.compile(r"^(?:WEBVTT|NOTE|STYLE|REGION)(?:\s|$)")
HEADER_FIELD_RE = re.compile(r"^(?:Kind|Language):")
TAG_RE          = re.compile(r"<[^>]*>")
CUE_INDEX_RE    = re.compile(r"^\d+$")


def extract_video_id(url: str) -> str | None:
    """
    Returns the 11-character id from a watch/short/embed URL or a bare id.

    >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ")
    'dQw4w9WgXcQ'
    """
    url = (url or "").strip()
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def parse_vtt(content: str) -> str:
    """
    Drops timings, cue numbers and markup; collapses repeated lines.

    WEBVTT/NOTE/STYLE/REGION blocks are only recognised before the first
    cue timing, and run until the next blank line.
    """
    lines: list[str] = []
    in_header = True
    in_block  = False
    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            in_block = False
            continue
        if "-->" in line:
            in_header = in_block = False
            continue
        if in_header:
            if HEADER_BLOCK_RE.match(line):
                in_block = True
            if in_block or HEADER_FIELD_RE.match(line):
                continue
        if CUE_INDEX_RE.match(line):
            continue
        cleaned = html.unescape(TAG_RE.sub("", line)).strip()
        if cleaned and (not lines or lines[-1] != cleaned):
            lines.append(cleaned)
    return " ".join(lines)


async def _terminate(proc: asyncio.subprocess.Process):
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


def format_transcript(video_id: str, transcript: str) -> str:
    return (
        "[YOUTUBE VIDEO TRANSCRIPT]\n\n"
        f"Video: https://www.youtube.com/watch?v={video_id}\n\n"
        f"Transcript:\n{transcript}\n\n"
        "[END TRANSCRIPT]\n\n"
        "Please summarize the above video transcript."
    )


class YouTubeTranscriptFetcher:
    """
    Usage:
        fetcher = YouTubeTranscriptFetcher()
        block   = await fetcher.fetch_transcript("https://youtu.be/dQw4w9WgXcQ")
    """

    def __init__(
        self,
        output_dir: str | Path | None = None,
        timeout_seconds: float = TIMEOUT_SECS,
        executable: str = YT_DLP,
    ):
        self.output_dir      = Path(output_dir or tempfile.gettempdir())
        self.timeout_seconds = timeout_seconds
        self.executable      = executable

    def subtitle_path(self, video_id: str) -> Path:
        return self.output_dir / f"{video_id}.en.vtt"

    def command(self, video_id: str) -> list[str]:
        return [
            self.executable,
            "--skip-download",
            "--write-auto-sub",
            "--sub-lang", "en",
            "--sub-format", "vtt",
            "--output", str(self.output_dir / "%(id)s"),
            f"https://www.youtube.com/watch?v={video_id}",
        ]

    async def fetch_transcript(self, video_url: str) -> str:
        """
        Returns the transcript wrapped in a [YOUTUBE VIDEO TRANSCRIPT] block.

        Raises:
            InvalidVideoUrlError:     no video id in the input.
            ExtractionFailedError:    yt-dlp missing, timed out, or exited non-zero.
            CaptionsUnavailableError: yt-dlp succeeded but wrote no captions.
        """
        video_id = extract_video_id(video_url)
        if not video_id:
            raise InvalidVideoUrlError(f"Invalid YouTube URL: {video_url}")

        subtitle_file = self.subtitle_path(video_id)
        logger.info("Fetching captions for %s", video_id)
        try:
            await self._run_extractor(video_id)
            if not subtitle_file.exists():
                raise CaptionsUnavailableError("No subtitles available for this video")
            transcript = parse_vtt(subtitle_file.read_text(encoding="utf-8", errors="replace"))
        finally:
            subtitle_file.unlink(missing_ok=True)

        if not transcript:
            raise CaptionsUnavailableError("The subtitle track for this video is empty")
        logger.info("Transcript for %s: %d chars", video_id, len(transcript))
        return format_transcript(video_id, transcript)

    async def _run_extractor(self, video_id: str):
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command(video_id),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ExtractionFailedError(f"{self.executable} is not installed or not on PATH") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            await _terminate(proc)
            raise ExtractionFailedError(
                f"{self.executable} did not finish within {self.timeout_seconds:g}s"
            ) from e
        except asyncio.CancelledError:
            await _terminate(proc)
            raise

        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise ExtractionFailedError(f"{self.executable} failed: {message}")
