import asyncio
import signal
import sys
import logging
import os

import uvicorn

from curtain_controller.api.server import create_app
from curtain_controller.api.terminal import TerminalCommandReader
from curtain_controller.config import api_config, curtain_settings
from curtain_controller.core.errors import CurtainError
from curtain_controller.core.logging import setup_logging
from curtain_controller.hardware.curtain_controller import CurtainController

logger = logging.getLogger(__name__)


async def run_api(controller: CurtainController) -> None:
    """Serve the HTTP API until shutdown or until the controller dies."""
    app = create_app(lambda: controller, stdin_enabled=api_config.stdin_enabled)
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=api_config.host,
        port=api_config.port,
        log_config=None,
    ))
    serve_task = asyncio.create_task(server.serve())
    closed_task = asyncio.create_task(controller.wait_closed())

    done, _ = await asyncio.wait({serve_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
    if closed_task in done and not serve_task.done():
        logger.info("Controller stopped, shutting down HTTP server")
        server.should_exit = True
    await serve_task
    if not server.started:
        closed_task.cancel()
        raise CurtainError("HTTP server did not start, see the log for the controller startup error")
    if closed_task.done():
        closed_task.result()
    else:
        closed_task.cancel()


async def run_standalone(controller: CurtainController) -> None:
    """Run the controller without the HTTP API, optionally reading terminal commands."""
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, lambda: asyncio.ensure_future(controller.close()))
    logger.info("Signal handlers configured for graceful shutdown")

    try:
        await controller.start()
    except Exception:
        await controller.close()
        raise

    if api_config.stdin_enabled:
        TerminalCommandReader(controller).start()
    await controller.wait_closed()


async def app():
    setup_logging()
    logger.info("=== Starting Curtain Controller ===")
    logger.info(f"Process ID: {os.getpid()=}")
    logger.info(f"Python version: {sys.version}")
    logger.info(f"Configuration: {curtain_settings.model_dump()}")

    controller = CurtainController(curtain_settings)
    if api_config.enabled:
        await run_api(controller)
    else:
        await run_standalone(controller)
    logger.info("=== Curtain Controller stopped ===")


def main():
    """Entry point for the CLI command"""
    try:
        asyncio.run(app())
    except CurtainError as e:
        logger.critical(f"Fatal error, terminating: {type(e).__name__}: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
