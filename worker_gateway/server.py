"""
Gateway server lifecycle.

Runs the FastAPI app under a programmatically driven uvicorn server so the
gateway can be started and stopped independently of the model session:

    STOPPED -> STARTING -> RUNNING -> STOPPED
    STARTING/RUNNING -> ERROR

ERROR is sticky: ``stop`` leaves it in place and only a new ``start``
leaves it.
"""

import asyncio
import contextlib
import logging
import socket
from typing import Optional

import uvicorn

from .config import Config
from .errors import GatewayError, ServerBindFailure
from .logstore import LogStore
from .monitor import reachable_address
from .state import ServerState, ServerStatus

logger = logging.getLogger(__name__)

INACTIVE_ADDRESS = "Inactive"


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to its owner."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a TCP socket, raising ServerBindFailure on any OS error."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.set_inheritable(True)
    except OSError as e:
        sock.close()
        raise ServerBindFailure(f"Server start failed: cannot bind {host}:{port} ({e})") from e
    return sock


class GatewayServer:
    """
    Owns the HTTP listener and its state.

    Args:
        app: ASGI application to serve
        config: Gateway configuration (host, port)
        log: Operator log sink
    """

    def __init__(self, app, config: Config, log: LogStore):
        self.app = app
        self.config = config
        self.log = log
        self.address = INACTIVE_ADDRESS
        self.port: Optional[int] = None
        self._state = ServerState.stopped()
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ServerState:
        return self._state

    def _set_state(self, state: ServerState, message: str, level: int = logging.INFO) -> None:
        self._state = state
        self.log.add(message, level)

    def _fail(self, error: GatewayError) -> None:
        self.address = INACTIVE_ADDRESS
        self._set_state(ServerState.failed(error), error.message, logging.ERROR)

    async def start(self) -> ServerState:
        """Bind and serve; returns once RUNNING or ERROR."""
        if self._state.is_starting_or_running:
            return self._state

        self._set_state(ServerState.starting(), "Server start sequence initiated.")

        try:
            port = self.config.resolved_port()
            sock = bind_socket(self.config.host, port)
        except GatewayError as e:
            self._fail(e)
            return self._state

        server = _EmbeddedServer(
            uvicorn.Config(
                self.app,
                host=self.config.host,
                port=port,
                log_level="warning",
            )
        )
        self._server = server
        self.port = port
        self._task = asyncio.create_task(self._serve(server, sock))

        while not server.started and not self._task.done():
            await asyncio.sleep(0.01)

        if server.started and self._state.status == ServerStatus.STARTING:
            self.address = reachable_address(port)
            self._set_state(ServerState.running(), f"Server is now running at {self.address}")

        return self._state

    async def _serve(self, server: uvicorn.Server, sock: socket.socket) -> None:
        try:
            await server.serve(sockets=[sock])
            if not server.started and not server.should_exit:
                raise ServerBindFailure("Server start failed: listener did not start")
        except asyncio.CancelledError:
            raise
        except GatewayError as e:
            self._fail(e)
        except (Exception, SystemExit) as e:
            self._fail(ServerBindFailure(f"Server start/run failed: {e}"))
        finally:
            sock.close()
            if self._server is server:
                self._server = None

        if self._state.is_starting_or_running:
            self.address = INACTIVE_ADDRESS
            self._set_state(ServerState.stopped(), "Server has stopped.")

    async def stop(self) -> ServerState:
        """Shut the listener down; no-op unless STARTING or RUNNING."""
        if not self._state.is_starting_or_running:
            return self._state

        self.log.add("Server stop sequence initiated.")
        server, task = self._server, self._task
        if server is not None:
            server.should_exit = True

        if not self._state.is_error:
            self.address = INACTIVE_ADDRESS
            self._set_state(ServerState.stopped(), "Server has stopped.")

        if task is not None and task is not asyncio.current_task():
            await task
        return self._state

    async def wait_closed(self) -> None:
        """Wait for the serve task to finish."""
        if self._task is not None:
            await self._task
