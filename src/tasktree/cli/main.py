# src/tasktree/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, signs in the configured user, then runs the
console REPL. Pending sync work is flushed on the way out.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)
    try:
        await state.session.sign_in(settings.user_id)

        if settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled. Loaded user=%s; nothing else to do.", settings.user_id)
    finally:
        await shutdown(state)


def main() -> None:
    settings = get_settings()

    setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)
    logger.info("Starting %s...", settings.app_name)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
