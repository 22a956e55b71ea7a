"""Tests for the CipherBridge logging system."""

import io
import json

import pytest

from cipherbridge.logging import (
    ConsoleHandler,
    JSONFormatter,
    LogConfig,
    LogContext,
    LogEntry,
    LogLevel,
    LogManager,
    MemoryHandler,
    TextFormatter,
)


def make_entry(level=LogLevel.INFO, message="hello", context=None, exception=None):
    return LogEntry(
        timestamp=0.5,
        level=level,
        message=message,
        logger_name="cipherbridge.test",
        context=context or LogContext(),
        exception=exception,
    )


@pytest.fixture
def manager():
    manager = LogManager(LogConfig(level=LogLevel.DEBUG, stream=io.StringIO()))
    memory = MemoryHandler()
    manager.add_handler("memory", memory)
    yield manager
    manager.shutdown()


class TestLogContext:
    """Test LogContext functionality."""

    def test_merge_prefers_other(self):
        base = LogContext(chain="solana-devnet", wallet="W1", metadata={"a": 1})
        merged = base.merged_with(LogContext(operation="wrap", metadata={"b": 2}))

        assert merged.chain == "solana-devnet"
        assert merged.operation == "wrap"
        assert merged.wallet == "W1"
        assert merged.metadata == {"a": 1, "b": 2}

    def test_to_dict(self):
        data = LogContext(transaction_id="sig1").to_dict()
        assert data["transaction_id"] == "sig1"
        assert data["chain"] is None


class TestLogEntry:
    """Test LogEntry functionality."""

    def test_fills_thread_and_process(self):
        entry = make_entry()
        assert entry.thread_id is not None
        assert entry.process_id is not None

    def test_to_json(self):
        data = json.loads(make_entry(exception=ValueError("bad")).to_json())
        assert data["level"] == "info"
        assert data["exception"] == "bad"


class TestLogConfig:
    """Test LogConfig functionality."""

    def test_defaults(self):
        config = LogConfig()
        assert config.name == "cipherbridge"
        assert config.level == LogLevel.INFO
        assert config.handlers == ["console"]

    def test_from_dict(self):
        config = LogConfig.from_dict({"level": "debug", "format_type": "json"})
        assert config.level == LogLevel.DEBUG
        assert config.format_type == "json"


class TestFormatters:
    """Test text and JSON formatters."""

    def test_text_includes_tags(self):
        entry = make_entry(
            context=LogContext(chain="base-sepolia", operation="bridge", transaction_id="0xab")
        )
        line = TextFormatter().format(entry)
        assert "[INFO] cipherbridge.test: hello" in line
        assert "chain=base-sepolia op=bridge tx=0xab" in line

    def test_text_exception(self):
        line = TextFormatter().format(make_entry(exception=RuntimeError("boom")))
        assert line.endswith("| RuntimeError: boom")

    def test_json(self):
        formatter = JSONFormatter(timestamp_format="unix", include_thread=True)
        data = json.loads(formatter.format(make_entry(context=LogContext(wallet="W"))))
        assert data["timestamp"] == "0.5"
        assert data["context"] == {"wallet": "W"}
        assert data["message"] == "hello"
        assert "thread_id" in data

    def test_json_iso_timestamp(self):
        data = json.loads(JSONFormatter().format(make_entry()))
        assert data["timestamp"] == "1970-01-01T00:00:00.500000Z"
        assert "context" not in data


class TestHandlers:
    """Test console and memory handlers."""

    def test_console_writes_to_stream(self):
        stream = io.StringIO()
        handler = ConsoleHandler(stream=stream)
        handler.set_formatter(TextFormatter())
        handler.handle(make_entry())
        assert "hello" in stream.getvalue()
        handler.close()
        assert not stream.closed

    def test_level_filter(self):
        handler = MemoryHandler()
        handler.set_level(LogLevel.WARNING)
        handler.handle(make_entry(LogLevel.INFO, "quiet"))
        handler.handle(make_entry(LogLevel.ERROR, "loud"))
        assert handler.messages() == ["loud"]

    def test_memory_bounded(self):
        handler = MemoryHandler(max_size=2)
        for i in range(3):
            handler.handle(make_entry(message=f"m{i}"))
        assert handler.messages() == ["m1", "m2"]
        assert handler.get_logs("info")[0]["message"] == "m1"


class TestLogManager:
    """Test LogManager functionality."""

    def test_routes_to_handlers(self, manager):
        logger = manager.get_logger("cipherbridge.bridge")
        logger.info("Bridge submitted")

        memory = manager.handlers["memory"]
        assert memory.messages() == ["Bridge submitted"]
        assert "Bridge submitted" in manager.config.stream.getvalue()

    def test_same_logger_returned(self, manager):
        assert manager.get_logger("a") is manager.get_logger("a")

    def test_logger_level(self, manager):
        logger = manager.get_logger("cipherbridge.quiet")
        logger.set_level(LogLevel.ERROR)
        logger.warning("dropped")
        logger.error("kept")
        assert manager.handlers["memory"].messages() == ["kept"]

    def test_global_context_merged(self, manager):
        manager.set_context(LogContext(session_id="s1"))
        manager.get_logger("x").info("m", context=LogContext(chain="solana-devnet"))

        context = manager.handlers["memory"].get_logs()[0]["context"]
        assert context["session_id"] == "s1"
        assert context["chain"] == "solana-devnet"

    def test_exception_attached(self, manager):
        logger = manager.get_logger("x")
        try:
            raise ValueError("bad input")
        except ValueError:
            logger.exception("Operation failed")
        assert "ValueError: bad input" in manager.config.stream.getvalue()

    def test_remove_handler(self, manager):
        manager.remove_handler("memory")
        manager.get_logger("x").info("after")
        assert "memory" not in manager.handlers
        assert "memory" not in manager.config.handlers
