# Logging_Config.py
# Description: Configuration for logging
#
# Imports
import inspect
import logging
import sys
from pathlib import Path
from typing import Optional, Union
#
# 3rd-Party Imports
from loguru import logger
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} [{level:<8}] {name}:{line:<4} : {message}"


class InterceptHandler(logging.Handler):
    """Forwards stdlib logging records (uvicorn, httpx, ...) to loguru."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller from where the logged message originated.
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str = "INFO", log_file: Optional[Union[str, Path]] = None):
    """Sets up loguru sinks (stderr and an optional rotating file) and routes stdlib logging into them."""
    level = level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_file:
        log_path = Path(log_file).expanduser()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(log_path, level=level, format=LOG_FORMAT, rotation="10 MB", retention=5)
        except OSError as e:
            logger.error(f"Could not set up log file {log_path}: {e}")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False
    # httpx logs every request at INFO; our client already logs them at DEBUG.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logger.debug(f"Logging configured (level={level}, file={log_file})")

#
# End of Logging_Config.py
########################################################################################################################
