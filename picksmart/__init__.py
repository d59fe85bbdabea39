"""
Picksmart Stores catalog sync - export migration and webhook reconciliation.
"""

__version__ = "1.0.0"
__author__ = "Engineering Team"

# Export main components for easy import
from picksmart.config import config
from picksmart.logger import logger
from picksmart.errors import (
    ConfigError,
    InputMalformedError,
    EntityReconcileError,
    SignatureError,
    StoreError,
    ExternalServiceError,
    RetryExhaustedError
)

__all__ = [
    'config',
    'logger',
    'ConfigError',
    'InputMalformedError',
    'EntityReconcileError',
    'SignatureError',
    'StoreError',
    'ExternalServiceError',
    'RetryExhaustedError'
]
