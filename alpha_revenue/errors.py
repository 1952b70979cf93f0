#!/usr/bin/env python3
"""
Error taxonomy shared by the API layer, services and orchestrator.
"""


class RevenueError(Exception):
    """Base class for every error raised by alpha_revenue"""


class TransientNetworkError(RevenueError):
    """Timeout, connection failure or throttling; safe to retry"""


class DataShapeError(RevenueError):
    """Upstream answered with a body we could not interpret; retried like a transient error"""


class UpstreamResponseError(RevenueError):
    """Non-retryable upstream rejection (e.g. HTTP 400/404)"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnhealthy(RevenueError):
    """A credential crossed the consecutive-failure threshold"""

    def __init__(self, key_name: str, error_count: int):
        super().__init__(f"credential '{key_name}' demoted after {error_count} consecutive failures")
        self.key_name = key_name
        self.error_count = error_count


class ConfigurationError(RevenueError):
    """Missing or contradictory configuration; aborts the whole batch"""


class ValidationError(RevenueError):
    """Malformed user input (wallet address or date)"""


class TransferFetchError(RevenueError):
    """Hard failure listing transfers for one token"""

    def __init__(self, token: str, message: str):
        super().__init__(f"{token}: {message}")
        self.token = token


class CredentialRejected(RevenueError):
    """An add/remove/toggle operation on the key pool was refused"""


RETRYABLE_ERRORS = (TransientNetworkError, DataShapeError)
