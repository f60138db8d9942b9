"""Model and server lifecycle states."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import GatewayError


class ModelStatus(str, Enum):
    """Model session lifecycle."""
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class ServerStatus(str, Enum):
    """Gateway server lifecycle."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


@dataclass(frozen=True)
class ModelState:
    """
    Tagged model state.

    Only the ERROR case carries ``error``; it holds the structured
    exception so callers can match on its type rather than on text.
    """
    status: ModelStatus = ModelStatus.NOT_LOADED
    error: Optional[GatewayError] = None

    @classmethod
    def not_loaded(cls) -> "ModelState":
        return cls(ModelStatus.NOT_LOADED)

    @classmethod
    def loading(cls) -> "ModelState":
        return cls(ModelStatus.LOADING)

    @classmethod
    def loaded(cls) -> "ModelState":
        return cls(ModelStatus.LOADED)

    @classmethod
    def failed(cls, error: GatewayError) -> "ModelState":
        return cls(ModelStatus.ERROR, error)

    @property
    def is_loaded(self) -> bool:
        return self.status == ModelStatus.LOADED

    @property
    def is_loading(self) -> bool:
        return self.status == ModelStatus.LOADING

    @property
    def is_error(self) -> bool:
        return self.status == ModelStatus.ERROR

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


@dataclass(frozen=True)
class ServerState:
    """Tagged server state; see ``ModelState``."""
    status: ServerStatus = ServerStatus.STOPPED
    error: Optional[GatewayError] = None

    @classmethod
    def stopped(cls) -> "ServerState":
        return cls(ServerStatus.STOPPED)

    @classmethod
    def starting(cls) -> "ServerState":
        return cls(ServerStatus.STARTING)

    @classmethod
    def running(cls) -> "ServerState":
        return cls(ServerStatus.RUNNING)

    @classmethod
    def failed(cls, error: GatewayError) -> "ServerState":
        return cls(ServerStatus.ERROR, error)

    @property
    def is_starting_or_running(self) -> bool:
        return self.status in (ServerStatus.STARTING, ServerStatus.RUNNING)

    @property
    def is_running(self) -> bool:
        return self.status == ServerStatus.RUNNING

    @property
    def is_error(self) -> bool:
        return self.status == ServerStatus.ERROR

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None
