"""
Logger Configuration
Unified logging setup
"""
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Set

from rich.logging import RichHandler
from rich.console import Console


# Shared console; stdout carries command output
console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_FORMAT_SIMPLE = "%(message)s"

LOG_DIR = Path(__file__).parent.parent / "logs"

ROOT_LOGGER_NAME = "comfyui_client"


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Configure a logger

    Args:
        name: Logger name
        level: Log level
        log_file: Optional log file name, created under logs/
        use_rich: Render console output through Rich

    Returns:
        Configured Logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # avoid stacking handlers on repeated setup
    if logger.handlers:
        return logger

    if use_rich:
        console_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
        )
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_path = LOG_DIR / log_file

        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Return a logger, configuring it on first use

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        return setup_logger(name)

    return logger


def safe_serialize(value: Any, max_depth: int = 6, max_len: int = 2000) -> str:
    """
    Render an arbitrary value for a log line

    Cyclic containers print as "[Circular]". The visited set lives only for
    the duration of one call.
    """
    visited: Set[int] = set()
    text = _render(value, visited, 0, max_depth)
    if len(text) > max_len:
        return text[: max_len - 3] + "..."
    return text


def _render(value: Any, visited: Set[int], depth: int, max_depth: int) -> str:
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    if not isinstance(value, (dict, list, tuple, set)):
        return repr(value)

    marker = id(value)
    if marker in visited:
        return "[Circular]"
    if depth >= max_depth:
        return "[...]"

    visited.add(marker)
    try:
        if isinstance(value, dict):
            inner = ", ".join(
                f"{k!r}: {_render(v, visited, depth + 1, max_depth)}" for k, v in value.items()
            )
            return "{" + inner + "}"
        inner = ", ".join(_render(v, visited, depth + 1, max_depth) for v in value)
        if isinstance(value, tuple):
            return "(" + inner + ")"
        if isinstance(value, set):
            return "{" + inner + "}"
        return "[" + inner + "]"
    finally:
        visited.discard(marker)
