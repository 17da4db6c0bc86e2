import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(
    root: str,
    level: str = "INFO",
    name: str = "labtrack",
    retention_days: int = 14,
    console: bool = True,
):
    """Daily folder `<root>/YYYY/MM/DD/<name>.log`, rotated at midnight.

    The console sink writes to stderr so CLI output on stdout stays parseable.
    """
    level = level.upper()
    logdir = Path(root) / f"{datetime.now():%Y/%m/%d}"
    logdir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        logdir / f"{name}.log",
        format=LOG_FORMAT,
        rotation="00:00",
        retention=f"{retention_days} days",
        level=level,
        encoding="utf-8",
        enqueue=True,
        backtrace=True,
        # request bodies and tokens must not end up in tracebacks
        diagnose=False,
    )
    if console:
        logger.add(sys.stderr, format=LOG_FORMAT, level=level, colorize=True)
    logger.debug(f"Logging to {logdir} at {level}")
    return logger
