"""Test configuration and shared fixtures."""

import pytest
import yaml

from trailcache.runtime.io.rate_limiter import reset_shared_limiters
from trailcache.runtime.sdk import configuration as sdk_configuration
from trailcache.runtime.sdk import metrics as sdk_metrics


@pytest.fixture(autouse=True)
def _reset_runtime_state():
    sdk_metrics.reset_metrics()
    sdk_configuration.reset_runtime_config_cache()
    reset_shared_limiters()
    yield
    sdk_configuration.reset_runtime_config_cache()
    reset_shared_limiters()


@pytest.fixture
def configure_sdk(tmp_path, monkeypatch):
    def _apply(data: dict, *, filename: str = "trailcache.yml") -> str:
        cfg_path = tmp_path / filename
        cfg_path.write_text(yaml.safe_dump(data))
        monkeypatch.chdir(tmp_path)
        sdk_configuration.reset_runtime_config_cache()
        return str(cfg_path)

    try:
        yield _apply
    finally:
        sdk_configuration.reset_runtime_config_cache()
