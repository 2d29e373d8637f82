"""Loguru sinks for migration runs.

Every record carries a ``component`` extra (``engine``, ``orchestrator``,
``git``...) so a long replay log can be filtered per stage.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

DEFAULT_COMPONENT = 'vault-migrate'

CONSOLE_FORMAT = (
    '<green>{time:HH:mm:ss}</green> '
    '<level>{level: <8}</level> '
    '<cyan>[{extra[component]}]</cyan> '
    '<level>{message}</level>'
)

# Replays run for hours; the file keeps full timestamps and call sites
FILE_FORMAT = (
    '{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | '
    '{extra[component]} | {name}:{function}:{line} | {message}'
)


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """Route migration logs to stderr and, optionally, a rotating file.

    Args:
        level: Minimum level for both sinks
        log_file: File to append to; parent folders are created
        log_format: Console format replacing ``CONSOLE_FORMAT``
    """
    logger.remove()
    logger.configure(extra={'component': DEFAULT_COMPONENT})

    # diagnose stays off: frame variables would include the Vault password
    logger.add(
        sys.stderr,
        level=level,
        format=log_format or CONSOLE_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if not log_file:
        logger.debug(f'Console logging at {level}')
        return

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        level=level,
        format=FILE_FORMAT,
        rotation='10 MB',
        retention='30 days',
        compression='gz',
        backtrace=True,
        diagnose=False,
    )
    logger.debug(f'Logging at {level} to console and {log_file}')


def get_logger(component: str):
    """Return the shared logger tagged with ``component``."""
    return logger.bind(component=component)
