"""Structured errors that cross the session boundary as `error` events."""


class GenerationError(Exception):
    """Base class for failures that terminate a generation session."""

    code = "GENERATION_ERROR"
    recoverable = False
    suggestion = "Please try again with a different prompt."

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: str | None = None,
        recoverable: bool | None = None,
        suggestion: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable
        if suggestion is not None:
            self.suggestion = suggestion
        self.details = details

    def to_payload(self) -> dict:
        """Return the `error` event payload for this failure."""
        payload = {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestion": self.suggestion,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigurationError(GenerationError):
    code = "CONFIG_ERROR"
    suggestion = "Check storygen/config.yaml and your .env file."


class DiscoveryError(GenerationError):
    code = "DISCOVERY_FAILED"
    suggestion = "Check that the component library is configured and reachable."


class ModelCallError(GenerationError):
    code = "LLM_CALL_FAILED"
    suggestion = "Check your network connection and API key, then try again."


class PersistenceError(GenerationError):
    code = "SAVE_FAILED"
    suggestion = "Check that output_path exists and is writable."


class SessionCancelled(Exception):
    """Raised at a suspension point once the caller has gone away."""
