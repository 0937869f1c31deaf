# Copyright (c) Meta Platforms, Inc. and affiliates.
# All rights reserved.
"""Logging setup shared by the command line entry points."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional, Tuple

DIAGNOSTIC_FORMAT = "minimount: %(message)s"
FILE_FORMAT = "[%(asctime)s] - [%(levelname)s] - [%(name)s] - %(message)s"


def init_logger(
    logger_name: str,
    log_dir: Optional[str] = None,
    log_name: str = "minimount.log",
    log_level: int = logging.INFO,
    max_bytes: int = 1024 * 1024,
    backup_count: int = 2,
) -> Tuple[logging.Logger, List[logging.Handler]]:
    """Send diagnostics for `logger_name` to stderr.

    If `log_dir` is given, records are also kept at {log_dir}/{log_name}.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(DIAGNOSTIC_FORMAT))
    handlers: List[logging.Handler] = [stderr_handler]

    if log_dir is not None:
        file_path = os.path.join(log_dir, log_name)
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        file_handler = RotatingFileHandler(
            file_path, mode="a", maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        logger.addHandler(handler)

    return logger, handlers
