# src/taskdash/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the task view model, then runs
the console until /exit, EOF or a signal.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import create_initial_state, shutdown
from ..config import get_settings
from ..connectors.console_connector import confirm_delete, run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def run() -> None:
    settings = get_settings()

    try:
        state = create_initial_state(settings=settings, confirm_delete=confirm_delete)
    except ValueError as e:
        # Missing backend URL/key and similar configuration problems.
        logger.error("Configuration error: %s", e)
        return

    stop_main = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_main.set)

    try:
        await state.view_model.start()
        if state.view_model.principal is None:
            logger.info("Not signed in. Use /login <email> <password>.")

        if settings.console_enabled:
            console = asyncio.create_task(run_console_loop(state))
            stopper = asyncio.create_task(stop_main.wait())
            await asyncio.wait({console, stopper}, return_when=asyncio.FIRST_COMPLETED)
            # A pending input() in the reader thread only returns on the next Enter/EOF.
            for t in (console, stopper):
                t.cancel()
        else:
            logger.info("Console disabled. Keeping the task view in sync. Press Ctrl+C to stop.")
            await stop_main.wait()
    finally:
        await shutdown(state)
        logger.info("Bye.")


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)
    logger.info("Starting %s...", settings.app_name)

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run())


if __name__ == "__main__":
    main()
