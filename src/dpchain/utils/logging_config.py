"""Logging configuration for dpchain.

Provides:
- Console output at the configured level
- Rotating file log capturing everything
- A separate performance logger timing every management post

Environment Variables:
    DPCHAIN_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    DPCHAIN_LOG_FILE: Path to log file (default: ~/.dpchain/dpchain.log)
    DPCHAIN_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    DPCHAIN_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from dpchain.utils.logging_config import setup_logging, timed_section

    setup_logging()  # Call once at startup

    async with timed_section("SaveConfig", host="dp-dev-01", endpoint="/service/mgmt/current"):
        ...
"""
import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("dpchain.perf")
main_logger = logging.getLogger("dpchain")

_configured_handlers: list[logging.Handler] = []


def get_log_level(override: Optional[str] = None) -> int:
    """Get log level from the override or the environment."""
    level_str = (override or os.environ.get("DPCHAIN_LOG_LEVEL", "INFO")).upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file(override: Optional[str] = None) -> Path:
    """Get log file path from the override or the environment."""
    default_path = Path.home() / ".dpchain" / "dpchain.log"
    path_str = override or os.environ.get("DPCHAIN_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    file_logging: bool = True,
) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects DPCHAIN_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger for timing metrics

    Calling again replaces the handlers installed by the previous call.
    """
    log_level = get_log_level(level)
    max_size_mb = int(os.environ.get("DPCHAIN_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("DPCHAIN_LOG_BACKUPS", "5"))

    for handler in _configured_handlers:
        main_logger.removeHandler(handler)
        perf_logger.removeHandler(handler)
        handler.close()
    _configured_handlers.clear()

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-25s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)
    main_logger.addHandler(console_handler)
    _configured_handlers.append(console_handler)

    main_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    perf_logger.setLevel(logging.DEBUG)
    # perf records reach the console through dpchain; file goes separately
    perf_logger.propagate = True

    if file_logging:
        path = get_log_file(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(main_format)
        main_logger.addHandler(file_handler)
        _configured_handlers.append(file_handler)

        perf_log_file = path.parent / "dpchain-perf.log"
        perf_handler = RotatingFileHandler(
            perf_log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
        perf_handler.setLevel(logging.DEBUG)
        perf_handler.setFormatter(perf_format)
        perf_logger.addHandler(perf_handler)
        _configured_handlers.append(perf_handler)

        main_logger.debug(f"Logging initialized: level={logging.getLevelName(log_level)}, file={path}")


@asynccontextmanager
async def timed_section(operation: str, host: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Args:
        operation: Name of the operation
        host: Appliance host
        **extra: Additional context to log

    Usage:
        async with timed_section("SaveConfig", host="dp-dev-01", endpoint="/service/mgmt/current"):
            response = await client.post(...)
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        elapsed = (time.perf_counter() - start) * 1000
        msg = f"{operation:20s} | {host or 'N/A':15s} | {elapsed:8.2f}ms | OK"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.debug(msg)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = f"{operation:20s} | {host or 'N/A':15s} | {elapsed:8.2f}ms | FAIL: {e}"
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise


@dataclass
class OperationTiming:
    """Post durations for one operation name, in milliseconds."""
    count: int = 0
    total_ms: float = 0.0
    fastest_ms: float = float("inf")
    slowest_ms: float = 0.0

    def add(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.fastest_ms = min(self.fastest_ms, duration_ms)
        self.slowest_ms = max(self.slowest_ms, duration_ms)

    @property
    def average_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0


class PostTimings:
    """Per-operation timings of the posts made during one session.

    Usage:
        timings = PostTimings()
        timings.record("SaveConfig", 150.5)
        logger.debug(timings.summary())
    """

    def __init__(self):
        self._by_operation: dict[str, OperationTiming] = {}

    def record(self, operation: str, duration_ms: float) -> None:
        self._by_operation.setdefault(operation, OperationTiming()).add(duration_ms)

    def count(self, operation: str) -> int:
        timing = self._by_operation.get(operation)
        return timing.count if timing else 0

    @property
    def total_ms(self) -> float:
        return sum(t.total_ms for t in self._by_operation.values())

    def summary(self) -> str:
        """One line per operation, slowest total first, then the session total."""
        lines = [f"Post timings ({len(self._by_operation)} operation(s))"]
        ranked = sorted(self._by_operation.items(), key=lambda item: -item[1].total_ms)
        for name, timing in ranked:
            lines.append(
                f"  {name:24s} x{timing.count:<3d} "
                f"avg={timing.average_ms:8.2f}ms "
                f"fastest={timing.fastest_ms:8.2f}ms slowest={timing.slowest_ms:8.2f}ms"
            )
        lines.append(f"  {'total':24s}      {self.total_ms:8.2f}ms")
        return "\n".join(lines)

    def clear(self) -> None:
        self._by_operation.clear()
