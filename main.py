"""
main.py
=======
Terminal front-end for the Garefowl chat core.

Run with:
    python main.py
"""

import asyncio
import sys

from garefowl.agent.agent_loop import ChatListener, ChatSession
from garefowl.agent.tool_registry import ToolRegistry
from garefowl.config import Settings, configure_logging
from garefowl.memory.conversation import Role
from garefowl.memory.store import JsonHistoryStore
from garefowl.providers.transport import HttpTransport
from garefowl.tools.web_search import WebSearch
from garefowl.tools.youtube_transcript import YouTubeTranscriptFetcher


# ── Pre-flight checks ─────────────────────────────────────────────────────────

def check_env(settings: Settings):
    if settings.needs_api_key and not settings.api_key():
        key = f"{settings.provider.name}_API_KEY"
        print(f"❌  Missing {key} for provider '{settings.provider.value}'.")
        print(f"    Add {key}=your-key-here to your .env file,")
        print("    or set LLM_PROVIDER=ollama to use a local model.")
        sys.exit(1)


# ── CLI ───────────────────────────────────────────────────────────────────────

BANNER = """
╔═══════════════════════════════════════════════════╗
║        🐧  Garefowl AI Chatbot                    ║
╠═══════════════════════════════════════════════════╣
║  Commands:                                        ║
║    'new'     : Start a fresh conversation         ║
║    'history' : Show the current conversation      ║
║    'quit'    : Exit                               ║
╚═══════════════════════════════════════════════════╝
"""


class TerminalListener(ChatListener):

    def message_displayed(self, role, text):
        if role is Role.USER:
            return
        print()
        print("─" * 53)
        print(text)
        print("─" * 53)
        print()

    def error_displayed(self, message, offer_settings_link):
        print(f"\n❌  {message}\n")
        if offer_settings_link:
            print("⚙️   Check your .env settings (provider, API key, model).\n")

    def thinking_changed(self, is_thinking):
        if is_thinking:
            print("🤖 Thinking...")


def print_history(session: ChatSession):
    if not session.history:
        print("  (empty conversation)\n")
        return
    for turn in session.history:
        label = "You" if turn.role is Role.USER else "Assistant"
        print(f"[{label}] {turn.content}\n")


def build_session(settings: Settings) -> ChatSession:
    transport = HttpTransport()
    registry  = ToolRegistry(
        searcher    = WebSearch(transport, settings.searxng_instance),
        transcripts = YouTubeTranscriptFetcher(),
    )
    return ChatSession(
        store     = JsonHistoryStore(settings.history_file),
        settings  = settings,
        listener  = TerminalListener(),
        transport = transport,
        registry  = registry,
    )


def main():
    configure_logging()
    settings = Settings.from_env()
    check_env(settings)
    print(BANNER)
    print(f"  Provider: {settings.provider.value} ({settings.model()}), "
          f"web search {'on' if settings.enable_web_search else 'off'}\n")

    session = build_session(settings)

    while True:
        try:
            user_input = input("💬 You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\n👋 Goodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("quit", "exit", "q"):
            print("👋 Goodbye!")
            break

        if user_input.lower() in ("new", "reset", "clear"):
            session.new_conversation()
            print("✅  New conversation started.\n")
            continue

        if user_input.lower() == "history":
            print_history(session)
            continue

        try:
            asyncio.run(session.send_message(user_input))
        except KeyboardInterrupt:
            print("\n⏹  Request cancelled.\n")

    print(f"  Tools used this session: {session.registry.summary()}")
    session.transport.close()


if __name__ == "__main__":
    main()
