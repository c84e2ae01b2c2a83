"""Tests for logging configuration and timing helpers."""
import logging

import pytest

from dpchain.utils.logging_config import (
    PostTimings,
    get_log_file,
    get_log_level,
    perf_logger,
    timed_section,
)


class TestLogSettings:
    """Tests for level and file resolution."""

    def test_level_override(self):
        assert get_log_level("debug") == logging.DEBUG

    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv("DPCHAIN_LOG_LEVEL", "WARNING")
        assert get_log_level() == logging.WARNING

    def test_unknown_level_defaults_to_info(self):
        assert get_log_level("chatty") == logging.INFO

    def test_log_file_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DPCHAIN_LOG_FILE", str(tmp_path / "x.log"))
        assert get_log_file() == tmp_path / "x.log"


class TestTimedSection:
    """Tests for timed_section."""

    @pytest.mark.asyncio
    async def test_logs_success(self, caplog):
        with caplog.at_level(logging.DEBUG, logger=perf_logger.name):
            async with timed_section("SaveConfig", host="dp1", endpoint="/service/mgmt/current"):
                pass
        assert "OK" in caplog.text
        assert "SaveConfig" in caplog.text
        assert "endpoint=/service/mgmt/current" in caplog.text

    @pytest.mark.asyncio
    async def test_logs_failure_and_reraises(self, caplog):
        with caplog.at_level(logging.DEBUG, logger=perf_logger.name):
            with pytest.raises(RuntimeError):
                async with timed_section("post", host="dp1"):
                    raise RuntimeError("boom")
        assert "FAIL: boom" in caplog.text


class TestPostTimings:
    """Tests for PostTimings."""

    def test_counts_and_totals(self):
        timings = PostTimings()
        timings.record("SaveConfig", 100.0)
        timings.record("SaveConfig", 300.0)
        timings.record("get-status", 50.0)

        assert timings.count("SaveConfig") == 2
        assert timings.count("set-file") == 0
        assert timings.total_ms == 450.0

    def test_summary_slowest_first(self):
        timings = PostTimings()
        timings.record("get-status", 50.0)
        timings.record("SaveConfig", 100.0)
        timings.record("SaveConfig", 300.0)

        lines = timings.summary().splitlines()
        assert lines[0] == "Post timings (2 operation(s))"
        assert lines[1].split()[0] == "SaveConfig"
        assert "avg=  200.00ms" in lines[1]
        assert "slowest=  300.00ms" in lines[1]
        assert lines[-1].split() == ["total", "450.00ms"]

    def test_clear(self):
        timings = PostTimings()
        timings.record("SaveConfig", 1.0)
        timings.clear()
        assert timings.count("SaveConfig") == 0
