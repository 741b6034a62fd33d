"""Tests for structured sync event logging."""

import json
import logging

import pytest

from catalog_sync.logging_config import JSONLFileHandler, get_logger, log_sync_event


@pytest.fixture
def event_logger(tmp_path):
    logger = logging.getLogger("test.sync_events")
    logger.setLevel(logging.DEBUG)
    handler = JSONLFileHandler(tmp_path)
    logger.addHandler(handler)
    yield logger
    logger.removeHandler(handler)


def read_entries(log_dir):
    (log_file,) = log_dir.glob("catalog_sync_*.jsonl")
    return [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]


class TestLogSyncEvent:
    def test_event_is_written_as_json_line(self, tmp_path, event_logger):
        log_sync_event("download_error", {
            "message": "Download failed",
            "catalog_item_id": "42",
            "error": "HTTP Error 404",
        }, level=logging.ERROR, logger=event_logger)

        (entry,) = read_entries(tmp_path)
        assert entry["event_type"] == "download_error"
        assert entry["message"] == "Download failed"
        assert entry["level"] == "ERROR"
        assert entry["catalog_item_id"] == "42"

    def test_event_type_is_default_message(self, tmp_path, event_logger):
        log_sync_event("batch_complete", {"ok": 3}, logger=event_logger)

        (entry,) = read_entries(tmp_path)
        assert entry["message"] == "batch_complete"
        assert entry["ok"] == 3

    def test_disabled_level_writes_nothing(self, tmp_path, event_logger):
        event_logger.setLevel(logging.WARNING)

        log_sync_event("index_complete", {"imported": 1}, logger=event_logger)

        assert list(tmp_path.glob("*.jsonl")) == []


def test_component_loggers_sit_below_package_logger():
    assert get_logger("fetcher").name == "catalog_sync.fetcher"
    assert get_logger().name == "catalog_sync"
