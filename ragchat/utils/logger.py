"""
Logging for ragchat using Loguru.

Every record carries a ``component`` (the module path without the package
prefix) and, inside a turn or an ingestion job, the ``conversation_id`` or
``document_id`` it belongs to. Both appear in the console line and in the
serialized file records, so one turn can be followed across services.
"""

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from ragchat.config import LoggingConfig

PACKAGE_PREFIX = "ragchat."

# Keys always present in record["extra"] so format strings never fail
CONTEXT_DEFAULTS = {"component": "-", "conversation_id": "-", "document_id": "-"}

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<magenta>{extra[conversation_id]}</magenta> <magenta>{extra[document_id]}</magenta> - "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[component]}:{function}:{line} | "
    "{extra[conversation_id]} {extra[document_id]} - {message}"
)


def component_name(module: str) -> str:
    """``ragchat.services.chat`` -> ``services.chat``; other names are kept."""
    if module.startswith(PACKAGE_PREFIX):
        return module[len(PACKAGE_PREFIX) :]
    return module


def setup_logging(config: LoggingConfig | None = None) -> None:
    """
    Configure console and rotating file sinks from the logging section.

    Args:
        config: Logging settings (defaults when omitted)
    """
    config = config or LoggingConfig()

    logger.remove()
    logger.configure(extra=CONTEXT_DEFAULTS)

    logger.add(
        sys.stderr,
        level=config.level,
        format=CONSOLE_FORMAT,
        colorize=True,
        serialize=False,
    )

    if config.log_to_file:
        log_path = Path(config.log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "ragchat_{time:YYYY-MM-DD}.log",
            level=config.level,
            format=FILE_FORMAT,
            rotation=config.file_rotation,
            retention=config.file_retention,
            compression=config.compression or None,
            serialize=config.serialize,
            enqueue=True,
        )


def get_logger(name: str):
    """Get a logger bound to a module's component name."""
    return logger.bind(component=component_name(name))


@contextmanager
def turn_context(conversation_id: str, **fields) -> Iterator[None]:
    """
    Tag every record emitted inside the block with the conversation.

    Uses ``logger.contextualize`` so the tag follows the running task across
    awaits and does not leak into concurrent turns.
    """
    with logger.contextualize(conversation_id=conversation_id, **fields):
        yield


@contextmanager
def document_context(document_id: str, **fields) -> Iterator[None]:
    """Tag every record emitted inside the block with the document being ingested."""
    with logger.contextualize(document_id=document_id, **fields):
        yield
