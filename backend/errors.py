# backend/errors.py


class GenerationError(Exception):
    """Base error for a generation attempt. Carries the HTTP status to report."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(GenerationError):
    status_code = 400


class FetchError(GenerationError):
    """Reference image could not be downloaded."""

    status_code = 502


class ProviderError(GenerationError):
    """Non-success HTTP status from the provider (submit or poll)."""

    status_code = 502


class ProtocolError(GenerationError):
    status_code = 500


class GenerationFailure(GenerationError):
    """Terminal poll status other than Ready-with-sample."""

    status_code = 500


class PollingTimeout(GenerationError):
    status_code = 504
