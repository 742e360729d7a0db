"""CLI entry point for the AMS Intake Assistant.

A terminal chat that runs the same pipeline as the HTTP server, keeping
the conversation history locally.  For production, use the FastAPI
server (ams_intake/server.py).

Usage:
    python -m ams_intake.main            # normal mode (quiet)
    python -m ams_intake.main --debug    # debug mode (shows hints and API calls)
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from ams_intake import config
from ams_intake.agent import create_intake_agent
from ams_intake.conversation import Turn
from ams_intake.directory.store import DirectoryStore
from ams_intake.prompts import load_instructions
from ams_intake.services.completion import CompletionClient, CompletionError
from ams_intake.services.retrieval import build_search_client

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("ams_intake").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="AMS Intake Assistant CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  AMS Intake Assistant - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' to clear the conversation.")
    print("=" * 60 + "\n")

    store = DirectoryStore(
        config.DATA_DIR / config.PROVIDERS_FILE,
        config.DATA_DIR / config.SCHEDULE_FILE,
        reload_each_request=config.RELOAD_DATA_EACH_REQUEST,
    )
    agent = create_intake_agent(
        store,
        completion=CompletionClient() if config.llm_configured() else None,
        retriever=build_search_client(),
        instructions=load_instructions(config.PROMPTS_DIR),
    )
    history: list[Turn] = []

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Take care.")
            break

        if user_input.lower() == "new":
            history = []
            print("\n>> Conversation cleared.\n")
            continue

        try:
            result = agent.invoke({"message": user_input, "history": history[-config.MAX_HISTORY_TURNS:]})
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except CompletionError as exc:
            logger.warning("Completion failed: %s (%s)", exc, exc.kind)
            print(f"\nAssistant: The model is unavailable right now ({exc.kind}). Please try again.\n")
            continue
        except Exception as e:
            logger.exception("Error processing message")
            print(f"\nAssistant: I'm sorry, something went wrong: {e}")
            print("     Please try again or type 'new' to start over.\n")
            continue

        reply = result["reply"]
        if args.debug:
            logger.debug("route=%s hints=%s", result.get("route"), result.get("hints"))
        print(f"\nAssistant: {reply}\n")
        history.append({"role": "user", "content": user_input})
        history.append({"role": "assistant", "content": reply})


if __name__ == "__main__":
    main()
