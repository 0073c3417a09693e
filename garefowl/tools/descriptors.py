"""
tools/descriptors.py
====================
The two tools the model may ask for, in a provider-neutral form.

Each adapter renders these into its own dialect (flat list, nested
"function" wrapper, or "function_declarations").
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolDescriptor:
    name:         str
    description:  str
    input_schema: dict[str, Any] = field(default_factory=dict)


WEB_SEARCH_TOOL = ToolDescriptor(
    name="web_search",
    description=(
        "Search the web for current, real-time information. "
        "ALWAYS use this tool when the user asks about: current weather, today's date/time, "
        "latest news, recent events, current stock prices, live sports scores, or anything "
        "containing words like 'today', 'now', 'current', 'latest', 'recent'. "
        "This tool provides up-to-date information that you don't have in your training data."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": (
                    "Search query with relevant keywords. Be specific and include temporal "
                    "terms like 'today', 'current', 'latest' when relevant."
                ),
            },
        },
        "required": ["query"],
    },
)

YOUTUBE_SUMMARY_TOOL = ToolDescriptor(
    name="youtube_summary",
    description=(
        "Get transcript and summary of a YouTube video. Use this when user provides a "
        "YouTube URL or asks to summarize a YouTube video. "
        "The video must have subtitles/captions available."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "video_url": {
                "type": "string",
                "description": (
                    "YouTube video URL (e.g., https://www.youtube.com/watch?v=VIDEO_ID "
                    "or https://youtu.be/VIDEO_ID)"
                ),
            },
        },
        "required": ["video_url"],
    },
)

ALL_TOOLS: tuple[ToolDescriptor, ...] = (WEB_SEARCH_TOOL, YOUTUBE_SUMMARY_TOOL)
