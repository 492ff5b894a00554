"""
mailsift Filtering Engine
=========================

Runs the dynamic filtering engine: opens the rule store, loads the pattern
cache, starts the maintenance schedulers and hands control to the
interactive console until the operator quits.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. MAILSIFT_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("MAILSIFT_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import signal

from dotenv import load_dotenv

from mailsift.configuration.app_configuration import AppConfig
from mailsift.console.control_panel import ConsoleControl, console_session
from mailsift.engine import MailsiftEngine
from mailsift.util.logger import get_logger, handle_exception

logger = get_logger("main")


def load_environment(base_dir: Path) -> None:
    """Load ``.env`` from the base directory; existing variables win."""
    load_dotenv(dotenv_path=base_dir / ".env")


async def wait_for_shutdown(control: ConsoleControl) -> None:
    """Block until the console or a signal requests shutdown."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, control.request_shutdown)
        except (NotImplementedError, RuntimeError):
            pass
    await control.shutdown_event.wait()


async def async_main() -> int:
    """Bootstrap the engine and console, returning an exit code."""
    app_config = AppConfig()

    try:
        engine = await MailsiftEngine.create(app_config)
    except Exception as exc:
        logger.critical("Failed to initialize the engine: %s", exc)
        return 1

    control = ConsoleControl(engine)
    try:
        await engine.start()
        if sys.stdin.isatty():
            async with console_session(control):
                await wait_for_shutdown(control)
        else:
            logger.info("No TTY attached, running without the console")
            await wait_for_shutdown(control)
    finally:
        control.set_engine(None)
        await engine.shutdown()

    return 0


def main() -> int:
    """Entrypoint that orchestrates the async runtime and returns the process code."""
    load_environment(BASE_DIR)
    sys.excepthook = handle_exception

    logger.info("Starting mailsift filtering engine…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the engine: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
