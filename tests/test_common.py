"""Tests for common utilities."""

from relay_search.common.config import BaseConfig, SearchConfig, get_config
from relay_search.common.logging import configure_logging
from relay_search.common.metrics import MetricsCollector


def test_config_loading():
    """Test configuration defaults."""
    config = BaseConfig()
    assert config.relay_env == "local"
    assert config.relay_log_level == "INFO"
    assert config.relay_index_backend == "memory"


def test_search_config_defaults():
    config = SearchConfig()
    assert config.relay_search_rrf_k == 60
    assert config.relay_search_semantic_boost == 1.5
    assert config.relay_search_default_limit == 50
    assert config.relay_semantic_service_url is None


def test_search_config_reads_environment(monkeypatch):
    monkeypatch.setenv("RELAY_SEARCH_RRF_K", "30")
    monkeypatch.setenv("RELAY_INDEX_BACKEND", "postgres")
    config = SearchConfig()
    assert config.relay_search_rrf_k == 30
    assert config.relay_index_backend == "postgres"


def test_search_config_accepts_field_names():
    config = SearchConfig(relay_search_max_concurrency=2)
    assert config.relay_search_max_concurrency == 2


def test_get_config():
    assert isinstance(get_config("search"), SearchConfig)
    unknown = get_config("does-not-exist")
    assert type(unknown) is BaseConfig


def test_logging_configuration():
    """Configuring logging in either format should not raise."""
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "debug", "console", region="eu")


def test_metrics_collector():
    collector = MetricsCollector("test-service")
    assert collector.service_name == "test-service"

    collector.record_http_request("POST", "/api/v1/search", 200, 0.1)
    collector.record_search("unified", 0.05, 12)
    collector.record_subsearch_failure("video", "timeout")
    collector.record_fusion("rrf")

    metrics = collector.get_metrics()
    assert "http_requests_total" in metrics
    assert "relay_search_requests_total" in metrics
    assert 'relay_subsearch_failures_total{entity_type="video",reason="timeout"} 1.0' in metrics
    assert "relay_fusion_operations_total" in metrics
