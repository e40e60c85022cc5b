"""HTTP API for moving the curtain."""
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from curtain_controller.api.terminal import TerminalCommandReader
from curtain_controller.config import api_config, curtain_settings
from curtain_controller.core.errors import ControllerClosedError
from curtain_controller.hardware.curtain_controller import CurtainController

logger = logging.getLogger(__name__)


class MoveRequest(BaseModel):
    position: float = Field(ge=0.0, le=1.0, description="Target position, 0 = closed, 1 = open")


class MoveResponse(BaseModel):
    position: float


class StatusResponse(BaseModel):
    position: float
    state: str
    motor: str


def create_app(controller_factory: Callable[[], CurtainController] | None = None, stdin_enabled: bool | None = None) -> FastAPI:
    """Build the API around a controller that lives as long as the application."""
    if controller_factory is None:
        controller_factory = lambda: CurtainController(curtain_settings)
    if stdin_enabled is None:
        stdin_enabled = api_config.stdin_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for startup and shutdown events"""
        controller = controller_factory()
        try:
            await controller.start()
        except Exception as e:
            logger.error(f"Failed to start curtain controller: {e}")
            await controller.close()
            raise
        app.state.controller = controller

        reader = None
        if stdin_enabled:
            reader = TerminalCommandReader(controller)
            reader.start()

        yield

        if reader is not None:
            reader.stop()
        await controller.close()

    app = FastAPI(
        title="Curtain Controller",
        description="Open and close a motorized curtain",
        version="1.0.0",
        lifespan=lifespan,
    )

    async def _move(request: Request, position: float) -> MoveResponse:
        controller: CurtainController = request.app.state.controller
        try:
            reached = await controller.move_to(position)
        except ControllerClosedError as e:
            logger.warning(f"Rejected move to {position=}: {e}")
            raise HTTPException(status_code=503, detail="Curtain controller is not running")
        return MoveResponse(position=reached)

    @app.post("/curtain/open", response_model=MoveResponse)
    async def open_curtain(request: Request):
        """Move the curtain to the fully open position"""
        return await _move(request, 1.0)

    @app.post("/curtain/close", response_model=MoveResponse)
    async def close_curtain(request: Request):
        """Move the curtain to the fully closed position"""
        return await _move(request, 0.0)

    @app.post("/curtain/move", response_model=MoveResponse)
    async def move_curtain(body: MoveRequest, request: Request):
        return await _move(request, body.position)

    @app.get("/curtain/status", response_model=StatusResponse)
    async def status(request: Request):
        controller: CurtainController = request.app.state.controller
        return StatusResponse(
            position=controller.position,
            state=controller.state.value,
            motor=controller.motor_direction.value,
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
