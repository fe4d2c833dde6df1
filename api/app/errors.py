from __future__ import annotations

from typing import Optional


class TryOnError(Exception):
    """Base class for failures that are reported back to the caller."""

    error_kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TryOnError):
    """Missing, malformed or oversized input. The user can fix it."""

    error_kind = "validation_error"
    status_code = 400


class ConfigurationError(TryOnError):
    error_kind = "configuration_error"
    status_code = 500


class UpstreamError(TryOnError):
    """The remote service could not be reached or rejected the call."""

    error_kind = "upstream_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        details: Optional[str] = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message, details=details)
        self.attempts = attempts


class NoImageProducedError(TryOnError):
    """The remote model answered but returned no inline image."""

    error_kind = "no_image_produced"
    status_code = 502

    def __init__(self, message: str, *, model_text: Optional[str] = None) -> None:
        super().__init__(message, details=model_text)
        self.model_text = model_text
