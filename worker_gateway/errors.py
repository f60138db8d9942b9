"""
Gateway error taxonomy.

Every error carries a human-readable ``message``, a snake_case machine
``code`` and the HTTP status it maps to, so the API layer can turn any of
them into an OpenAI-style error body without inspecting the type.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    default_message = "Gateway error."
    code = "gateway_error"
    status_code = 500

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """OpenAI-style error body."""
        return {
            "error": {
                "message": self.message,
                "type": self.code,
                "code": self.status_code,
            }
        }


class ModelNotLoaded(GatewayError):
    default_message = "AI model is not loaded."
    code = "model_not_loaded"
    status_code = 503


class FeatureProviderError(GatewayError):
    default_message = "Failed to create model input features."
    code = "feature_provider_error"


class OutputProcessingError(GatewayError):
    default_message = "Failed to process model output."
    code = "output_processing_error"


class EmbeddingModelUnavailable(GatewayError):
    default_message = "The sentence embedding model is unavailable."
    code = "embedding_model_unavailable"
    status_code = 503


class EmbeddingGenerationFailed(GatewayError):
    default_message = "Failed to generate embedding for the input text."
    code = "embedding_generation_failed"


class UnsupportedForCustomModel(GatewayError):
    default_message = "This feature is not supported for custom models."
    code = "unsupported_for_custom_model"
    status_code = 400


class InvalidConfiguration(GatewayError):
    default_message = "Invalid configuration."
    code = "invalid_configuration"


class ServerBindFailure(GatewayError):
    default_message = "Failed to bind server socket."
    code = "server_bind_failure"


class BadRequest(GatewayError):
    default_message = "Malformed request."
    code = "invalid_request_error"
    status_code = 400
