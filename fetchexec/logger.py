"""
日志模块

使用 loguru 输出到 stderr，stdout 留给 --json 事件流。
"""

import os
import sys
from typing import Optional

from loguru import logger

DEBUG_ENV = "FETCHEXEC_DEBUG"
LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"


def resolve_level(debug: bool = False) -> str:
    """命令行 --debug 或环境变量 FETCHEXEC_DEBUG=1 时使用 DEBUG 级别"""
    if debug or os.environ.get(DEBUG_ENV, "0") == "1":
        return "DEBUG"
    return "INFO"


def setup_logger(
    level: Optional[str] = None,
    sink=sys.stderr,
    colorize: Optional[bool] = None,
) -> None:
    """
    设置日志记录器

    Args:
        level: 日志级别，默认由 resolve_level() 决定
        sink: 输出目标
        colorize: 是否启用颜色，默认仅在终端上启用
    """
    if level is None:
        level = resolve_level()
    if colorize is None:
        colorize = hasattr(sink, "isatty") and sink.isatty()

    logger.remove()
    logger.add(
        sink=sink,
        format=LOG_FORMAT,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if level == "DEBUG":
        logger.debug("DEBUG 模式已启用")


__all__ = ["logger", "setup_logger", "resolve_level"]
