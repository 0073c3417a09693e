"""
agent/prompts.py
================
All model instructions and user-facing messages in one place.
"""

# ── Injected into the request when tools are on ──────────────────────────────

TOOL_CONTEXT_PROMPT = """You can call two tools:

1. web_search      : searches the web and returns the top results
2. youtube_summary : fetches the transcript of a YouTube video

## Rules:
- Use web_search for anything about today, the news, prices, weather or other live data.
- Use youtube_summary whenever the user shares a YouTube link or asks about a video.
- When a message contains a [WEB SEARCH RESULTS] or [YOUTUBE VIDEO TRANSCRIPT] block,
  answer from that block and prefer it over what you remember.
- If the block does not contain the answer, say so instead of guessing."""


# ── Status lines shown while a tool runs (not stored in history) ─────────────

SEARCHING_STATUS  = '🔍 Searching the web for: "{query}"...'
TRANSCRIPT_STATUS = "🎬 Fetching transcript for: {video_url}..."


# ── Errors shown to the user ─────────────────────────────────────────────────

ERROR_API_KEY = (
    "Hmm, an error occurred when trying to reach out to the assistant.\n"
    "Check your API key and model settings for {provider} and try again. "
    "It could also be your internet connection!"
)

ERROR_GENERIC = (
    "We are having trouble getting a response from the assistant. \n"
    "Here is the error - if it helps at all: \n\n{error} \n\n"
    "Some tips:\n\n"
    "- Check your internet connection\n"
    "- If you recently changed your provider, try deleting your history."
)

ERROR_EMPTY_RESPONSE = "The assistant sent back an empty response. Try asking again."

ERROR_TOOL_FAILED  = "{tool} failed: {error}"
ERROR_SEARCH_LIMIT = (
    "Search limit reached: the assistant asked for more than {max_depth} tool calls "
    "for one message. Try a more specific question."
)
ERROR_UNKNOWN_TOOL = "Unknown tool requested: {tool}"
