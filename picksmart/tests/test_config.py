import json
import logging
import os
from unittest.mock import patch

import pytest

from picksmart.config import Config
from picksmart.errors import ConfigError
from picksmart.logger import StructuredFormatter
from picksmart.store import create_store
from picksmart.store.memory import MemoryStore


def test_config_defaults():
    """Defaults apply when the environment is empty"""
    with patch.dict(os.environ, {}, clear=True):
        config = Config()

    assert config.STORE_BACKEND == "postgres"
    assert config.RETRY_BACKOFF == 1.5
    assert config.MAX_RETRIES == 3
    assert config.LOG_LEVEL == "INFO"
    assert config.WEBHOOK_FAILURE_THRESHOLD == 5
    assert config.WEBHOOK_MONITORING_ENABLED is False
    assert config.SHOPIFY_API_VERSION == "2024-01"
    assert config.has_sentry is False
    assert config.has_webhook_secret is False


def test_config_environment():
    env = {
        "STORE_BACKEND": "Memory",
        "SHOPIFY_WEBHOOK_SECRET": "s3cret",
        "WEBHOOK_MONITORING_ENABLED": "TRUE",
        "MAX_RETRIES": "0",
    }
    with patch.dict(os.environ, env, clear=True):
        config = Config()

    assert config.STORE_BACKEND == "memory"
    assert config.has_webhook_secret is True
    assert config.WEBHOOK_MONITORING_ENABLED is True
    assert config.MAX_RETRIES == 0


def test_create_store_by_backend():
    assert isinstance(create_store("memory"), MemoryStore)

    with pytest.raises(ConfigError):
        create_store("sqlite")


def test_structured_formatter_merges_extra():
    record = logging.LogRecord("picksmart", logging.WARNING, __file__, 10, "Webhook %s failed", ("orders/paid",), None)
    record.extra = {"component": "webhooks", "attempts": 2}

    log_data = json.loads(StructuredFormatter().format(record))

    assert log_data["message"] == "Webhook orders/paid failed"
    assert log_data["level"] == "WARNING"
    assert log_data["service"] == "picksmart-stores"
    assert log_data["component"] == "webhooks"
    assert log_data["attempts"] == 2
