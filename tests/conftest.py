import time
from pathlib import Path
from typing import Callable

import pytest
from loguru import logger as loguru_logger

from strata.config.rwlock import ReadWriteLock
from strata.config.store import SettingsStore
from strata.core.logging import AsyncLogger


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a config file under tmp_path and return its path."""

    def _write(content: str, name: str = "config.yaml") -> Path:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""

    def _wait(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait


@pytest.fixture
def log_records():
    """Records of strata log calls made during the test."""
    records = []
    handler_id = loguru_logger.add(
        lambda message: records.append(message.record),
        level="DEBUG",
        filter=lambda record: "component" in record["extra"],
    )
    yield records
    loguru_logger.remove(handler_id)


@pytest.fixture
def test_logger() -> AsyncLogger:
    return AsyncLogger("strata.test")


@pytest.fixture
def store() -> SettingsStore:
    return SettingsStore()


@pytest.fixture
def lock() -> ReadWriteLock:
    return ReadWriteLock()
