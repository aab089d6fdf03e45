"""Tests for environment based configuration."""

import os
from unittest.mock import patch

import pytest

from cdisc_library_client.cache import MemoryResponseCache
from cdisc_library_client.config import ClientConfig
from cdisc_library_client.transport import DEFAULT_BASE_URL, DEFAULT_NCI_SITE_URL


def test_defaults():
    config = ClientConfig()
    assert config.api_key is None
    assert config.base_url == DEFAULT_BASE_URL
    assert config.nci_site_url == DEFAULT_NCI_SITE_URL
    assert config.use_nci_site_for_ct is False
    assert config.cache_type == "none"
    assert config.build_cache() is None


@patch.dict(os.environ, {}, clear=True)
def test_from_empty_environment():
    config = ClientConfig.from_env()
    assert config == ClientConfig()


@patch.dict(
    os.environ,
    {
        "CDISC_LIBRARY_API_KEY": "secret",
        "CDISC_LIBRARY_BASE_URL": "https://example.org/api",
        "CDISC_LIBRARY_TIMEOUT": "5",
        "CDISC_LIBRARY_USE_NCI_SITE": "TRUE",
        "CDISC_LIBRARY_CONTENT_ENCODING": "gzip",
        "CDISC_CACHE_TYPE": "memory",
        "CDISC_CACHE_TTL": "60",
        "CDISC_LIBRARY_LOG_LEVEL": "DEBUG",
    },
    clear=True,
)
def test_from_environment():
    config = ClientConfig.from_env()
    assert config.api_key == "secret"
    assert config.base_url == "https://example.org/api"
    assert config.timeout == 5.0
    assert config.use_nci_site_for_ct is True
    assert config.content_encoding == "gzip"
    assert config.log_level == "DEBUG"

    cache = config.build_cache()
    assert isinstance(cache, MemoryResponseCache)
    assert cache.default_ttl == 60.0


@pytest.mark.parametrize("value", ["false", "1", "yes", ""])
def test_nci_toggle_requires_true(value):
    with patch.dict(os.environ, {"CDISC_LIBRARY_USE_NCI_SITE": value}, clear=True):
        assert ClientConfig.from_env().use_nci_site_for_ct is False


def test_unknown_cache_type():
    with pytest.raises(ValueError):
        ClientConfig(cache_type="disk").build_cache()
