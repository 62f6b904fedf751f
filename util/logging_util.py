import logging
import os
import sys
from pathlib import Path
from typing import Optional

# Configure logging format
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

LOG_LEVEL_ENV = "ONCOLOGY_FEED_LOG_LEVEL"

# Longest parameter or response text written to the log
MAX_LOGGED_TEXT = 200


def _default_level() -> int:
    level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def _truncate(text: str) -> str:
    return f"{text[:MAX_LOGGED_TEXT]}{'...' if len(text) > MAX_LOGGED_TEXT else ''}"


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Sets up a stdout logger with the pipeline's format.

    Args:
        name: Name of the logger (typically __name__ from the calling module)
        level: Logging level. Defaults to $ONCOLOGY_FEED_LOG_LEVEL, else INFO.

    Returns:
        Configured logger instance
    """
    if level is None:
        level = _default_level()

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding handlers multiple times
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(console_handler)

    return logger


def log_llm_interaction(logger: logging.Logger, template_path: str, params: dict,
                        response: str, model_name: str, duration_ms: Optional[float] = None):
    """
    Logs a summarization call. Long inputs are logged by size only.

    Args:
        logger: Logger instance to use
        template_path: Path to the prompt template
        params: Parameters passed to the template
        response: Text returned by the model
        model_name: Name of the model used
        duration_ms: Optional duration of the call in milliseconds
    """
    duration_str = f" ({duration_ms:.2f}ms)" if duration_ms else ""
    logger.info(f"LLM Request{duration_str} - Model: {model_name}, prompt: {Path(template_path).name}")
    for key, value in params.items():
        logger.debug(f"  {key}: {len(str(value))} chars, {_truncate(str(value))!r}")
    logger.info(f"  Response: {_truncate(response)}")


def log_ingestion_result(logger: logging.Logger, source: str, result) -> None:
    """
    Logs the outcome of an ingestion run.

    Args:
        logger: Logger instance to use
        source: Name of the ingested source (rss, clinicaltrials, ...)
        result: The IngestionResult returned by the orchestrator
    """
    logger.info(
        f"{source} ingestion complete: {result.ingested} ingested "
        f"({result.created} created, {result.updated} updated, "
        f"{result.skipped} skipped, {result.discarded} discarded), "
        f"{len(result.errors)} errors"
    )
    for error in result.errors:
        logger.debug(f"  {type(error).__name__}: {error}")
