"""Interactive console prompt for a single conversation.

A blank line or end of input ends the session.
"""

import asyncio
from typing import Callable, Optional

from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging
from orchestrator.bootstrap import build_components
from orchestrator.engine import Orchestrator

logger = get_logger(__name__)


async def run_console(
    orchestrator: Orchestrator,
    read_line: Callable[[str], str] = input,
    write: Callable[[str], None] = print
) -> int:
    """
    Run the prompt loop until the user enters a blank line.

    Args:
        orchestrator: Orchestrator owning the conversation
        read_line: Prompt function (blocking, run in a worker thread)
        write: Output function

    Returns:
        Number of turns processed
    """
    turns = 0
    write("Agent is live! Press Enter on an empty line to quit.")

    while True:
        try:
            user_text = await asyncio.to_thread(read_line, "\nYou: ")
        except EOFError:
            break

        if not user_text or not user_text.strip():
            break

        result = await orchestrator.handle(user_text.strip())
        turns += 1
        write(f"\nAgent: {result.text}")

    return turns


async def _main(settings: Settings) -> None:
    components = build_components(settings)
    orchestrator = Orchestrator.from_settings(
        settings.orchestrator,
        gateway=components.gateway,
        registry=components.registry,
        dispatcher=components.dispatcher
    )

    try:
        turns = await run_console(orchestrator)
        logger.info("Session ended", turns=turns)
    finally:
        await components.close()


def main(settings: Optional[Settings] = None) -> None:
    """Run the console agent."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_output=settings.environment == "production")

    try:
        asyncio.run(_main(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
