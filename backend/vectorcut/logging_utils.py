"""
日志初始化 - 控制台 + 滚动文件（storage/logs/vectorcut.log）

各模块统一使用 logger = logging.getLogger(__name__)，这里只负责挂载处理器。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import RuntimeConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "vectorcut.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3

_HANDLER_MARK = "_vectorcut_handler"


def setup_logging(config: RuntimeConfig, level: str | None = None) -> logging.Logger:
    """挂载处理器到包根 logger（重复调用会替换旧处理器）"""
    logger = logging.getLogger("vectorcut")
    logger.setLevel((level or config.logging.log_level).upper())

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    setattr(console, _HANDLER_MARK, True)
    logger.addHandler(console)

    if config.logging.log_to_file:
        log_dir = config.storage_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARK, True)
        logger.addHandler(file_handler)

    return logger
