"""
Tests for logging setup and contextual tagging.

Tests cover:
1. Component names derived from module paths
2. Conversation and document tags scoped to their block
3. Console and file sinks configured from LoggingConfig
"""

import asyncio
import json
import sys

import pytest
from loguru import logger

from ragchat.config import LoggingConfig
from ragchat.utils.logger import (
    component_name,
    document_context,
    get_logger,
    setup_logging,
    turn_context,
)


@pytest.fixture
def records():
    """Collect emitted records through a temporary sink."""
    captured = []
    sink_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    yield captured
    logger.remove(sink_id)


@pytest.fixture
def restore_logging():
    yield
    logger.remove()
    logger.configure(extra={})
    logger.add(sys.stderr)


@pytest.mark.unit
class TestComponentName:
    """Tests for module to component mapping."""

    @pytest.mark.parametrize(
        "module,component",
        [
            ("ragchat.services.chat", "services.chat"),
            ("ragchat.core.parsers.code", "core.parsers.code"),
            ("app", "app"),
            ("ragchatx.other", "ragchatx.other"),
        ],
    )
    def test_component_name(self, module, component):
        """Test the package prefix is stripped."""
        assert component_name(module) == component

    def test_get_logger_binds_component(self, records):
        """Test records carry the component of their module."""
        get_logger("ragchat.services.retrieval").info("hello")

        assert records[-1]["extra"]["component"] == "services.retrieval"


@pytest.mark.unit
class TestContexts:
    """Tests for conversation and document tagging."""

    def test_turn_context_scoped(self, records):
        """Test the conversation tag applies only inside the block."""
        log = get_logger("ragchat.services.chat")

        with turn_context("conv_1"):
            log.info("inside")
        log.info("outside")

        assert records[0]["extra"]["conversation_id"] == "conv_1"
        assert records[1]["extra"].get("conversation_id", "-") == "-"

    def test_document_context_extra_fields(self, records):
        """Test extra fields are attached next to the document tag."""
        with document_context("doc_1", source="watcher"):
            get_logger("ragchat.services.ingestion").info("indexing")

        assert records[0]["extra"]["document_id"] == "doc_1"
        assert records[0]["extra"]["source"] == "watcher"

    def test_concurrent_turns_do_not_mix(self, records):
        """Test tags follow their own task across awaits."""
        log = get_logger("ragchat.services.chat")

        async def turn(conversation_id: str) -> None:
            with turn_context(conversation_id):
                await asyncio.sleep(0)
                log.info(conversation_id)

        async def main() -> None:
            await asyncio.gather(turn("conv_a"), turn("conv_b"))

        asyncio.run(main())

        assert {r["message"]: r["extra"]["conversation_id"] for r in records} == {
            "conv_a": "conv_a",
            "conv_b": "conv_b",
        }


@pytest.mark.unit
class TestSetupLogging:
    """Tests for sink configuration."""

    def test_console_line_has_defaults(self, capsys, restore_logging):
        """Test records outside any context still format."""
        setup_logging(LoggingConfig(log_to_file=False))

        get_logger("ragchat.services.watcher").info("scan done")

        err = capsys.readouterr().err
        assert "services.watcher" in err
        assert "scan done" in err

    def test_file_sink_serializes_context(self, tmp_path, restore_logging):
        """Test the file sink writes JSON records with the conversation tag.

        Compression is off so closing the sink leaves the plain log file.
        """
        setup_logging(LoggingConfig(log_dir=str(tmp_path), compression="", level="DEBUG"))

        with turn_context("conv_9"):
            get_logger("ragchat.services.chat").info("turn done")
        logger.remove()

        files = list(tmp_path.glob("ragchat_*.log"))
        assert len(files) == 1
        lines = [json.loads(line) for line in files[0].read_text().splitlines()]
        extra = lines[-1]["record"]["extra"]
        assert extra["conversation_id"] == "conv_9"
        assert extra["component"] == "services.chat"
