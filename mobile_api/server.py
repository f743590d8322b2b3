#!/usr/bin/env python3
"""
SIFIS-Home Mobile API Server

HTTP API for the mobile application. Every endpoint except /device/info
requires the device authorization key in the x-api-key header.

Usage:
  mobile_api_server                         # Serve on 0.0.0.0:8000
  mobile_api_server --port 8080 --verbose
  SIFIS_HOME_PATH=/tmp/home mobile_api_server

Endpoints (under /api/v1):
  GET /device/info
  GET /device/configuration
  PUT /device/configuration
  GET /command/factory_reset?confirm=...
  GET /command/restart
  GET /command/shutdown
"""

import argparse
import sys
from http import HTTPStatus
from typing import Any, Callable, Dict, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, BackgroundTasks, Body, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__, commands
from .config import API_PREFIX, DEFAULT_SERVER_HOST, DEFAULT_SERVER_PORT
from .configs import DeviceConfig
from .errors import (
    AlreadyBusyError, ApiKeyError, CommandError, ConfirmationError,
    DeviceInfoError, PersistenceError
)
from .home import SifisHome
from .logger import Logger
from .state import DeviceState

NOT_CONFIGURED = "This device has not been configured yet."


def error_body(code: int, description: str) -> Dict[str, Any]:
    """Build the error JSON shared by every failing endpoint"""
    return {
        "error": {
            "code": code,
            "reason": HTTPStatus(code).phrase,
            "description": description,
        }
    }


def error_response(code: int, description: str) -> JSONResponse:
    return JSONResponse(status_code=code, content=error_body(code, description))


def ok_body(message: str) -> Dict[str, Any]:
    return {"code": 200, "message": message}


def create_app(state: DeviceState, on_shutdown: Optional[Callable[[], None]] = None) -> FastAPI:
    """
    Create the API application for the given device state.

    Args:
        state: Managed device state, shared by all requests
        on_shutdown: Called after a successful restart or shutdown command
            has been answered. The server uses this to stop itself.
    """
    app = FastAPI(title="SIFIS-Home Mobile API", version=__version__)
    app.state.device = state

    # ========================================================================
    # Error mapping
    # ========================================================================

    @app.exception_handler(ApiKeyError)
    async def api_key_error_handler(request: Request, exc: ApiKeyError):
        Logger.warning(f"Rejected {request.method} {request.url.path}: {exc.description}")
        return error_response(exc.status_code, exc.description)

    @app.exception_handler(AlreadyBusyError)
    async def busy_error_handler(request: Request, exc: AlreadyBusyError):
        return error_response(503, exc.reason)

    @app.exception_handler(ConfirmationError)
    async def confirmation_error_handler(request: Request, exc: ConfirmationError):
        return error_response(400, str(exc))

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        Logger.error(f"Persistence failed: {exc}")
        return error_response(500, str(exc))

    @app.exception_handler(CommandError)
    async def command_error_handler(request: Request, exc: CommandError):
        Logger.error(f"Command failed: {exc}")
        return error_response(500, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        message = first_error.get("msg", "Validation error")
        return error_response(400, f"{field}: {message}" if field else message)

    # ========================================================================
    # Authorization
    # ========================================================================

    def require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
        state.authorization.check(x_api_key)

    router = APIRouter(prefix=API_PREFIX)
    protected = [Depends(require_api_key)]

    # ========================================================================
    # Device
    # ========================================================================

    @router.get("/device/info", tags=["Device"])
    def device_info():
        """Public identity of the device"""
        info = state.device_info
        return {"product_name": info.product_name, "uuid": str(info.uuid)}

    @router.get("/device/configuration", tags=["Device"], dependencies=protected)
    def get_configuration():
        """Device settings, or 404 if the device is not configured yet"""
        config = state.get_config()
        if config is None:
            return error_response(404, NOT_CONFIGURED)
        return config.to_dict()

    @router.put("/device/configuration", tags=["Device"], dependencies=protected)
    def put_configuration(body: Dict[str, Any] = Body(...)):
        """Store device settings. The device must be restarted afterwards."""
        try:
            config = DeviceConfig.from_dict(body)
        except ValueError as e:
            return error_response(400, str(e))
        return ok_body(commands.save_configuration(state, config))

    # ========================================================================
    # Commands
    # ========================================================================

    @router.get("/command/factory_reset", tags=["Commands"], dependencies=protected)
    def factory_reset(confirm: Optional[str] = None):
        """
        Reset the device back to factory settings.

        The confirm parameter must be "I really want to perform a factory
        reset". Call /command/restart afterwards.
        """
        return ok_body(commands.factory_reset(state, confirm))

    @router.get("/command/restart", tags=["Commands"], dependencies=protected)
    def restart(background_tasks: BackgroundTasks):
        message = commands.restart(state)
        if on_shutdown is not None:
            background_tasks.add_task(on_shutdown)
        return ok_body(message)

    @router.get("/command/shutdown", tags=["Commands"], dependencies=protected)
    def shutdown(background_tasks: BackgroundTasks):
        message = commands.shutdown(state)
        if on_shutdown is not None:
            background_tasks.add_task(on_shutdown)
        return ok_body(message)

    app.include_router(router)
    return app


def main() -> int:
    """Main entry point"""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="SIFIS-Home Mobile API Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--host', default=DEFAULT_SERVER_HOST, help=f'Bind address (default: {DEFAULT_SERVER_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_SERVER_PORT, help=f'Bind port (default: {DEFAULT_SERVER_PORT})')
    parser.add_argument('--home', metavar='PATH', help='SIFIS-Home path (default: $SIFIS_HOME_PATH or /opt/sifis-home/)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Show debug output')
    args = parser.parse_args()

    Logger.verbose = args.verbose
    Logger.header("SIFIS-Home Mobile API Server")

    try:
        state = DeviceState.load(SifisHome(args.home))
    except DeviceInfoError as e:
        Logger.error(str(e))
        return 1

    server: Optional[uvicorn.Server] = None

    def request_exit() -> None:
        Logger.info("Stopping server")
        if server is not None:
            server.should_exit = True

    app = create_app(state, on_shutdown=request_exit)
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info"
    ))
    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
