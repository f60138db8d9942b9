"""
Worker Gateway - Main Entry Point

OpenAI-compatible API server for an on-device language model served by a
local Ollama daemon.

Usage:
    worker-gateway [--host HOST] [--port PORT] [--memory-mode] [--no-load]
    python -m worker_gateway.main

Environment Variables:
    GATEWAY_HOST              - Listen host (default: 0.0.0.0)
    GATEWAY_PORT              - Listen port, must be > 1024 (default: 8080)
    GATEWAY_MEMORY_MODE       - Multi-turn prompt budgeting (default: false)
    GATEWAY_CONTEXT_LIMIT     - Model context window (default: 4096)
    GATEWAY_RESPONSE_RESERVE  - Tokens kept free for the answer (default: 1536)
    OLLAMA_URL                - Ollama API URL (default: http://localhost:11434)
    OLLAMA_MODEL              - Generation model (default: llama3.2)
    EMBEDDING_MODEL           - Embedding model (default: nomic-embed-text)
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .config import Config
from .errors import GatewayError
from .logstore import LogStore
from .monitor import SystemMonitor
from .server import GatewayServer
from .session import ModelSession

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


async def _gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    body = GatewayError(f"Internal server error: {exc}").to_dict()
    return JSONResponse(body, status_code=500)


def create_app(
    session: ModelSession,
    log: LogStore,
    gateway: Optional[GatewayServer] = None,
    monitor: Optional[SystemMonitor] = None,
) -> FastAPI:
    """Build the FastAPI app around an existing model session."""
    app = FastAPI(
        title="Worker Gateway",
        description="OpenAI-compatible API for an on-device language model.",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)

    app.state.session = session
    app.state.log = log
    app.state.gateway = gateway
    app.state.monitor = monitor or SystemMonitor()

    app.include_router(api_router)
    return app


async def run(config: Config, autoload: bool = True) -> int:
    """Load the model, serve until SIGINT/SIGTERM, then shut down."""
    log = LogStore(config.log_buffer_size)
    session = ModelSession(config, log)
    app = create_app(session, log)
    gateway = GatewayServer(app, config, log)
    app.state.gateway = gateway

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    logger.info("=" * 60)
    logger.info("Worker Gateway Starting")
    logger.info("=" * 60)
    logger.info(f"Ollama URL: {config.ollama_url}")
    logger.info(f"Ollama Model: {config.ollama_model}")
    logger.info(f"Memory mode: {session.memory_mode}")

    if autoload:
        session.load()

    state = await gateway.start()
    if state.is_error:
        await session.aclose()
        return 1

    logger.info("-" * 60)
    logger.info(f"Server ready at {gateway.address}")
    logger.info(f"OpenAI endpoint: {gateway.address}/v1/chat/completions")
    logger.info("=" * 60)

    stopper = asyncio.create_task(stop_event.wait())
    serving = asyncio.create_task(gateway.wait_closed())
    await asyncio.wait({stopper, serving}, return_when=asyncio.FIRST_COMPLETED)
    stopper.cancel()

    logger.info("Shutting down...")
    await gateway.stop()
    await session.aclose()
    logger.info("Shutdown complete")
    return 1 if gateway.state.is_error else 0


def main(argv=None) -> int:
    """Run the gateway server."""
    parser = argparse.ArgumentParser(description="OpenAI-compatible gateway for an on-device model")
    parser.add_argument("--host", help="Listen host")
    parser.add_argument("--port", type=int, help="Listen port (> 1024)")
    parser.add_argument("--memory-mode", action="store_true", help="Include conversation history in prompts")
    parser.add_argument("--no-load", action="store_true", help="Do not load the model on startup")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.debug else logging.INFO)

    config = Config()
    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.memory_mode:
        config.memory_mode = True

    return asyncio.run(run(config, autoload=not args.no_load))


if __name__ == "__main__":
    sys.exit(main())
