"""Error taxonomy and exceptions for ollama-bench.

Trial-level failures are classified into a closed set of ``ErrorKind`` values
and carried as data on trial records. Exceptions are only raised for
run-level problems (bad configuration, unreachable backend at pre-flight,
export failures) and inside the generation client before classification.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Classified failure of a single generation request"""

    # Connection refused, DNS failure or connect timeout
    BACKEND_UNREACHABLE = "backend_unreachable"

    # Backend answered 404 for the model
    MODEL_NOT_FOUND = "model_not_found"

    # Request exceeded the per-request timeout
    TIMEOUT = "timeout"

    # Unparseable, incomplete or token-count-less response body
    INVALID_RESPONSE = "invalid_response"

    # Any other HTTP status or transport failure
    TRANSPORT_ERROR = "transport_error"

    @property
    def is_transient(self) -> bool:
        """Whether retrying the same request can change the outcome"""
        return self in (
            ErrorKind.BACKEND_UNREACHABLE,
            ErrorKind.TIMEOUT,
            ErrorKind.TRANSPORT_ERROR,
        )

    def hint(self, model: str | None = None, timeout: float | None = None) -> str:
        """Corrective action to show next to a failure of this kind"""
        if self is ErrorKind.BACKEND_UNREACHABLE:
            return "Start the backend with: ollama serve"
        if self is ErrorKind.MODEL_NOT_FOUND:
            if model:
                return f"Install with: ollama pull {model}"
            return "Install the model with: ollama pull <model>"
        if self is ErrorKind.TIMEOUT:
            if timeout:
                return f"Try increasing --timeout (currently {timeout:g}s)"
            return "Try increasing --timeout"
        if self is ErrorKind.INVALID_RESPONSE:
            return "This might be a compatibility issue with your Ollama version"
        return "Check the backend logs and network connectivity"


class OllamaBenchError(Exception):
    """Base exception for all ollama-bench errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "internal_error",
        hint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.hint = hint
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\n{self.hint}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable error payload."""
        error: dict[str, Any] = {
            "message": self.message,
            "type": self.error_type,
            **self.details,
        }
        if self.hint:
            error["hint"] = self.hint
        return {"error": error}


class ConfigurationError(OllamaBenchError):
    """Run configuration is invalid; no trial is started."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            error_type="configuration_error",
            hint="Fix the option above and run again",
            details=details,
        )


class BackendUnavailableError(OllamaBenchError):
    """Backend could not be reached during the pre-flight check."""

    def __init__(self, base_url: str, reason: Optional[str] = None):
        message = f"Ollama is not running at {base_url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message=message,
            error_type=ErrorKind.BACKEND_UNREACHABLE.value,
            hint=ErrorKind.BACKEND_UNREACHABLE.hint(),
            details={"base_url": base_url},
        )


class GenerationError(OllamaBenchError):
    """Classified failure of one generation request."""

    def __init__(self, kind: ErrorKind, message: str):
        self.kind = kind
        super().__init__(message=message, error_type=kind.value)


class ExportError(OllamaBenchError):
    """Writing an exported report failed."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Failed to export results to {path}: {reason}",
            error_type="export_error",
            hint="Check file permissions and disk space",
            details={"path": path},
        )
