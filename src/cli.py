"""Simple CLI REPL that chats with the configured AI backend through the engine.

Messages go through the same session tracking, context enrichment and thread
correlation as chat-platform messages, so this is a quick way to see what the
backend receives.

Usage:
    python -m src.cli
    python -m src.cli --show-context
"""

import asyncio
import logging
import sys
import uuid

from src.agent.backend import create_agent_backend
from src.agent.connector import AgentConnector
from src.config import get_settings
from src.conversation.sessions import SessionStore
from src.conversation.threads import ThreadCorrelator

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)


async def _ask(connector: AgentConnector, sessions: SessionStore, conversation_id: str, question: str) -> str:
    sessions.update(conversation_id, "cli-user", "CLI User", message_text=question)
    prompt = sessions.enhance(question, conversation_id)
    response = await connector.process_prompt(prompt, conversation_id)
    return response.message


def main() -> None:
    """Run the interactive CLI loop."""
    show_context = "--show-context" in sys.argv[1:]
    print("SOCBot (type 'quit' or Ctrl+C to exit)")
    print("=" * 50)

    try:
        settings = get_settings()
        backend = create_agent_backend(settings)
    except Exception as e:
        print(f"Failed to build AI backend: {e}")
        print("Check your .env file has the AGENT_BACKEND settings it needs.")
        sys.exit(1)

    sessions = SessionStore()
    threads = ThreadCorrelator(backend.create_thread, max_entries=settings.thread_cache_max_entries)
    connector = AgentConnector(backend, threads, sessions)

    conversation_id = f"cli-{uuid.uuid4().hex[:8]}"
    print(f"Conversation: {conversation_id}\n")

    loop = asyncio.new_event_loop()
    try:
        while True:
            try:
                question = input("You: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\nGoodbye!")
                break

            if not question:
                continue
            if question.lower() in ("quit", "exit", "q"):
                print("Goodbye!")
                break

            try:
                answer = loop.run_until_complete(_ask(connector, sessions, conversation_id, question))
                session = sessions.get(conversation_id)
                if show_context and session is not None:
                    print(f"  [urgency={session.inferred_urgency}, topic={session.inferred_topic}]")
                print(f"\nSOCBot: {answer}\n")
            except Exception as e:
                print(f"\nError: {e}\n")
    finally:
        loop.close()


if __name__ == "__main__":
    main()
