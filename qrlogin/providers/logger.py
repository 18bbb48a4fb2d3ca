# -*- coding: utf-8 -*-
"""
日志模块

全局只有一个 loguru logger，init_logger() 按配置重建输出端；
未初始化时 get_logger() 使用默认配置（仅控制台、INFO）。
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


class Logger:
    """日志输出端配置"""

    def __init__(self,
                 name: str = "qrlogin",
                 level: str = "INFO",
                 log_file: Optional[str] = None,
                 enable_file: bool = False,
                 enable_console: bool = True,
                 max_file_size: str = "10 MB",
                 retention_days: int = 7):
        self.name = name
        self.level = level
        self.log_file = log_file if enable_file else None

        logger.remove()
        if enable_console:
            logger.add(sys.stdout, format=LOG_FORMAT, level=level, colorize=True)

        # 文件输出仅在启用且配置了路径时生效
        if self.log_file:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                self.log_file,
                format=LOG_FORMAT,
                level=level,
                rotation=max_file_size,
                retention=f"{retention_days} days",
                compression="zip",
                encoding="utf-8",
            )

    def get_logger(self):
        return logger


_logger_instance: Optional[Logger] = None


def init_logger(name: str = "qrlogin",
                level: str = "INFO",
                log_file: Optional[str] = None,
                enable_file: bool = False,
                enable_console: bool = True,
                max_file_size: str = "10 MB",
                retention_days: int = 7) -> Logger:
    """按配置初始化全局日志器，可重复调用"""
    global _logger_instance
    _logger_instance = Logger(
        name=name,
        level=level,
        log_file=log_file,
        enable_file=enable_file,
        enable_console=enable_console,
        max_file_size=max_file_size,
        retention_days=retention_days,
    )
    return _logger_instance


def get_logger():
    """获取 loguru logger，首次调用时使用默认配置"""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = Logger()
    return logger


def mask_credential(credential: Optional[str], keep: int = 6) -> str:
    """登录凭证只输出首尾几个字符"""
    if not credential:
        return "<empty>"
    if len(credential) <= keep * 2:
        return "*" * len(credential)
    return f"{credential[:keep]}...{credential[-keep:]}({len(credential)})"
