"""Tests for JSON logging of store diagnostics."""

import json
import logging
from io import StringIO

import pytest

from ttl_disk_cache.core.cache import CacheStore
from ttl_disk_cache.core.errors import CacheStoreError
from ttl_disk_cache.core.filesystem import MemoryFileSystem
from ttl_disk_cache.core.logging import StoreLogger, _JsonFormatter, get_store_logger, setup_logging


@pytest.fixture
def captured():
    """Capture the cache logger as JSON lines."""
    logger = logging.getLogger("ttl_disk_cache.core.cache")
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(_JsonFormatter())
    logger.addHandler(handler)
    previous = logger.level
    logger.setLevel(logging.INFO)
    yield stream
    logger.removeHandler(handler)
    logger.setLevel(previous)


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_setup_logging_is_idempotent():
    """Test that repeated setup does not stack handlers."""
    setup_logging()
    count = len(logging.getLogger().handlers)
    setup_logging()
    assert len(logging.getLogger().handlers) == count


def test_store_logger_prefixes_and_tags(captured):
    """Test that store messages carry the prefix and a store field."""
    log = get_store_logger("ttl_disk_cache.core.cache", "weather")
    assert isinstance(log, StoreLogger)
    log.info("hello")

    [line] = _lines(captured)
    assert line == {
        "level": "INFO",
        "logger": "ttl_disk_cache.core.cache",
        "msg": "CACHE [weather] hello",
        "store": "weather",
    }


def test_store_logger_store_field_wins(captured):
    """Test that a caller cannot relabel the store field."""
    log = get_store_logger("ttl_disk_cache.core.cache", "weather")
    log.info("hello", extra={"store": "ignored"})
    assert _lines(captured)[0]["store"] == "weather"


def test_silent_store_logger_drops_everything(captured):
    """Test that silent loggers emit nothing at any level."""
    log = get_store_logger("ttl_disk_cache.core.cache", "quiet", silent=True)
    log.info("info")
    log.warning("warning")
    log.error("error")
    assert captured.getvalue() == ""


def test_formatter_includes_exc_info(captured):
    """Test that tracebacks are kept in the JSON payload."""
    log = get_store_logger("ttl_disk_cache.core.cache", "weather")
    try:
        1 / 0
    except ZeroDivisionError:
        log.exception("boom")
    [line] = _lines(captured)
    assert line["level"] == "ERROR"
    assert "ZeroDivisionError" in line["exc_info"]


@pytest.mark.asyncio
async def test_store_logs_are_tagged(captured):
    """Test that store diagnostics carry the store name."""
    store = CacheStore("weather", max_age=60, fs=MemoryFileSystem(), cache_dir="/c")
    await store.poll(lambda: 72)

    lines = _lines(captured)
    assert lines
    assert all(line["store"] == "weather" for line in lines)
    assert lines[0]["msg"] == "CACHE [weather] Reading most recent cache value."
    assert any("No caches found." in line["msg"] for line in lines)
    assert any(line["msg"].startswith("CACHE [weather] Finished in ") for line in lines)


@pytest.mark.asyncio
async def test_failed_poll_logs_error_with_traceback(captured):
    """Test that poll failures are logged before being raised."""
    store = CacheStore("broken", max_age=60, fs=MemoryFileSystem(), cache_dir="/c")
    with pytest.raises(CacheStoreError):
        await store.poll(lambda: 1 / 0)

    errors = [line for line in _lines(captured) if line["level"] == "ERROR"]
    assert len(errors) == 1
    assert "Unrecoverable error" in errors[0]["msg"]
    assert "ZeroDivisionError" in errors[0]["exc_info"]


@pytest.mark.asyncio
async def test_silent_store_logs_nothing_even_on_failure(captured):
    """Test that a silent store stays quiet through hits, misses and failures."""
    store = CacheStore("quiet", max_age=60, silent=True, fs=MemoryFileSystem(), cache_dir="/c")
    await store.poll(lambda: 1)
    await store.poll(lambda: 1)

    await store.clear()
    with pytest.raises(CacheStoreError):
        await store.poll(lambda: 1 / 0)

    assert captured.getvalue() == ""
