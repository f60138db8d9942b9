"""Gateway configuration."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .budget import PromptBudget
from .errors import InvalidConfiguration

load_dotenv()

DEFAULT_PORT = 8080
MIN_PORT = 1024


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class Config:
    """Configuration loaded from environment variables."""

    # Server
    host: str = field(default_factory=lambda: os.getenv("GATEWAY_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("GATEWAY_PORT", DEFAULT_PORT))

    # Prompt budgeting
    memory_mode: bool = field(default_factory=lambda: _env_bool("GATEWAY_MEMORY_MODE"))
    context_limit: int = field(default_factory=lambda: _env_int("GATEWAY_CONTEXT_LIMIT", 4096))
    response_reserve: int = field(default_factory=lambda: _env_int("GATEWAY_RESPONSE_RESERVE", 1536))

    # Ollama
    ollama_url: str = field(default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"))
    ollama_model: str = field(default_factory=lambda: os.getenv("OLLAMA_MODEL", "llama3.2"))
    embedding_model: str = field(default_factory=lambda: os.getenv("EMBEDDING_MODEL", "nomic-embed-text"))
    request_timeout: float = field(default_factory=lambda: float(os.getenv("OLLAMA_TIMEOUT", "300")))

    # Advertised model
    model_id: str = field(default_factory=lambda: os.getenv("GATEWAY_MODEL_ID", "ondevice-foundation-model"))
    owned_by: str = field(default_factory=lambda: os.getenv("GATEWAY_MODEL_OWNER", "local"))

    # Log sink
    log_buffer_size: int = field(default_factory=lambda: _env_int("GATEWAY_LOG_BUFFER", 200))

    def resolved_port(self) -> int:
        """Listen port, substituting the default for privileged or unset values."""
        return self.port if self.port > MIN_PORT else DEFAULT_PORT

    def prompt_budget(self) -> PromptBudget:
        """Derive the prompt budget; recomputed per request."""
        if self.context_limit <= 0 or self.response_reserve < 0:
            raise InvalidConfiguration(
                f"context_limit ({self.context_limit}) must be positive and "
                f"response_reserve ({self.response_reserve}) non-negative"
            )
        if self.response_reserve >= self.context_limit:
            raise InvalidConfiguration(
                f"response_reserve ({self.response_reserve}) must be smaller than "
                f"context_limit ({self.context_limit})"
            )
        return PromptBudget(
            context_limit=self.context_limit,
            response_reserve=self.response_reserve,
        )
