from .types import FatalError


class ApiExecError(Exception):
    """Base class for errors raised by apiexec."""


class ConfigurationError(ApiExecError):
    pass


class AuthenticationError(ApiExecError):
    """Token acquisition for an audience failed. Never retried."""

    def __init__(self, audience: str, cause: BaseException | None = None):
        super().__init__(f"Failed to acquire authentication token for audience: '{audience}'")
        self.audience = audience
        self.cause = cause
        self.__cause__ = cause


class TransportError(ApiExecError):
    """Network-level failure reported by a transport (no HTTP response)."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause
        self.__cause__ = cause


class RequestCanceledError(ApiExecError):
    pass


class FatalRequestError(ApiExecError):
    """A call ended in a FatalError outcome: terminal status or retries exhausted."""

    def __init__(self, outcome: FatalError, resource: str, method: str):
        status = outcome.status_code if outcome.status_code is not None else "no response"
        super().__init__(f"Failed {method} to '{resource}' with status code {status}: {outcome.message}")
        self.outcome = outcome
        self.resource = resource
        self.method = method
        if outcome.cause is not None:
            self.__cause__ = outcome.cause

    @property
    def status_code(self) -> int | None:
        return self.outcome.status_code

    @property
    def message(self) -> str:
        return self.outcome.message
