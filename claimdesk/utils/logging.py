"""Logging setup shared by the API, the turn graph and the CLI."""

import logging
import os
import sys

from pydantic import BaseModel, Field, field_validator

LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    # Raised to WARNING so request chatter does not bury turn logs
    quiet_loggers: list[str] = Field(
        default_factory=lambda: ["anthropic", "httpx", "httpcore", "uvicorn.access"]
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LEVEL_NAMES:
            raise ValueError(f"Unknown log level {v!r}, expected one of {', '.join(LEVEL_NAMES)}")
        return level


def setup_logging(config: LogConfig | None = None) -> None:
    """Route service logs to stdout at the configured level."""
    if config is None:
        config = LogConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    logging.basicConfig(
        level=config.level,
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get the logger for a module, honouring LOG_LEVEL.

    Args:
        name: Module name (typically __name__)
    """
    logger = logging.getLogger(name)
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    return logger
