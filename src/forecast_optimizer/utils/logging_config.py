"""
Centralized logging configuration using Loguru.

Library modules log through the standard ``logging`` module. Process entry
points (the CLI, a worker loop) call ``setup_logging`` once: it installs
Loguru console and rotating file sinks and routes standard logging records
into them.

Usage:
    from forecast_optimizer.utils.logging_config import setup_logging

    logger = setup_logging(component_name="grid_search")
    logger.info("Search started for {sku}", sku="SKU-1")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from loguru import logger


class InterceptHandler(logging.Handler):
    """Forwards standard logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the logging call
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    component_name: Optional[str] = None,
    log_level: str = "INFO",
    log_dir: Union[str, Path] = "logs",
    enable_console: bool = True,
    enable_file: bool = True,
    json_format: bool = False,
    rotation: str = "10 MB",
    retention: str = "30 days",
    compression: str = "zip",
    use_timestamp: bool = True,
    intercept_stdlib: bool = True
) -> "logger":
    """
    Configure Loguru sinks for an optimizer process.

    Parameters:
    ----------
    component_name : str, optional
        Name of the component (creates a component-specific log file)
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_dir : str or Path
        Directory to store log files
    enable_console : bool
        Enable console output on stderr
    enable_file : bool
        Enable file logging
    json_format : bool
        Write the file sink as JSON records
    rotation : str
        Log file rotation size/time (e.g., "10 MB", "1 day")
    retention : str
        How long to keep log files (e.g., "30 days", "1 week")
    compression : str
        Compression format for rotated logs ("zip", "gz", etc.)
    use_timestamp : bool
        Add a timestamp to log filenames to prevent overwriting
    intercept_stdlib : bool
        Route records from the standard ``logging`` module into Loguru

    Returns:
    -------
    logger
        Loguru logger bound to the component name
    """
    component_name = component_name or "optimizer"

    logger.remove()
    logger.configure(extra={"component": component_name})

    if enable_console:
        logger.add(
            sys.stderr,
            level=log_level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{extra[component]}</cyan> | "
                "<level>{message}</level>"
            ),
            colorize=True,
            backtrace=True,
            diagnose=False
        )

    log_file = None
    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        if use_timestamp:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = log_path / f"{component_name}_{timestamp}.log"
        else:
            log_file = log_path / f"{component_name}.log"

        logger.add(
            log_file,
            level=log_level,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss} | "
                "{level: <8} | "
                "{extra[component]} | "
                "{name}:{function}:{line} | "
                "{message}"
            ),
            serialize=json_format,
            rotation=rotation,
            retention=retention,
            compression=compression,
            backtrace=True,
            diagnose=False,
            enqueue=True
        )

    if intercept_stdlib:
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    bound = logger.bind(component=component_name)
    bound.debug("Logging initialized for component: {component}", component=component_name)
    if log_file is not None:
        bound.debug("Log file: {log_file}", log_file=log_file.absolute())

    return bound
