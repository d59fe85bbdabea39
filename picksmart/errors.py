"""
Domain exceptions for the catalog sync service.
Each failure class maps to one handling policy.
"""


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


class InputMalformedError(Exception):
    """Raised when a tabular export cannot be read. Fatal for the whole run."""
    pass


class EntityReconcileError(Exception):
    """Raised when a single product, order or customer cannot be upserted."""

    def __init__(self, key: str, message: str):
        super().__init__(f"{key}: {message}")
        self.key = key


class SignatureError(Exception):
    """Raised when a webhook signature does not match its body."""
    pass


class StoreError(Exception):
    """Raised when the persisted store is unreachable or rejects an operation."""
    pass


class ExternalServiceError(Exception):
    """Raised when a third-party service (payment gateway, platform API) fails."""
    pass


class RetryExhaustedError(ExternalServiceError):
    """Raised when all retry attempts for an outbound call are exhausted."""
    pass
