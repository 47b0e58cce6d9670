"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from flowcraft.config import WorkerConfig, load_config
from flowcraft.utils import compute_backoff, parse_duration


def test_defaults_without_config_file():
    config = load_config()
    assert config.queue.backend == "inmemory"
    assert config.worker.workers == 1
    assert config.worker.queue == "workflow_tasks"
    assert config.worker.poll_interval == 5.0
    assert config.worker.execution_timeout == 1800.0
    assert config.worker.shutdown_grace == 10.0
    assert config.database_url is None


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
queue:
  backend: redis
  redis:
    host: testhost
    port: 1234
worker:
  workers: 4
  queue: priority
  poll_interval: 2s
  execution_timeout: 1m30s
database_url: sqlite:///tmp/flowcraft.db
"""
    )
    monkeypatch.setenv("FLOWCRAFT_CONFIG", str(config_path))

    config = load_config()
    assert config.queue.backend == "redis"
    assert config.queue.redis.host == "testhost"
    assert config.queue.redis.port == 1234
    assert config.worker.workers == 4
    assert config.worker.queue == "priority"
    assert config.worker.poll_interval == 2.0
    assert config.worker.execution_timeout == 90.0
    assert config.database_url == "sqlite:///tmp/flowcraft.db"


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/flowcraft")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")

    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.database_url == "postgresql://db/flowcraft"
    assert config.queue.redis.url == "redis://cache:6379/1"


def test_worker_config_validation():
    with pytest.raises(ValidationError):
        WorkerConfig(workers=0)
    with pytest.raises(ValidationError):
        WorkerConfig(poll_interval="soon")


@pytest.mark.parametrize(
    "value, expected",
    [
        (3, 3.0),
        ("2.5", 2.5),
        ("500ms", 0.5),
        ("5s", 5.0),
        ("30m", 1800.0),
        ("1h", 3600.0),
        ("1m30s", 90.0),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "5x", "s5", "-1", "1m 30s"])
def test_parse_duration_rejects(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_compute_backoff_is_capped():
    for attempt in range(1, 20):
        delay = compute_backoff(attempt, base=2.0, jitter=0.5, cap=10.0)
        assert 0 < delay <= 10.5
    assert compute_backoff(1, base=2.0, jitter=0.0) == 2.0
