#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Module Description:
    用于实现点跟踪系统的日志功能
"""

import os
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Logger:
    """日志记录类，为根日志器配置控制台和文件输出"""

    def __init__(self, log_dir: str = None, debug: bool = None) -> None:
        """构造函数"""
        if log_dir is None:
            current_dir = os.path.dirname(os.path.abspath(__file__))
            log_dir = os.path.join(current_dir, "..", "..", "database", "log")
        if debug is None:
            debug = os.environ.get('TRACKING_DEBUG', '0') == '1'

        # 确保日志目录存在
        if not os.path.exists(log_dir):
            os.makedirs(log_dir)

        self.log_path = os.path.join(log_dir, "Tracking.log")
        self.logger = logging.getLogger()
        self._previous_level = self.logger.level
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)

        # 创建文件处理器和控制台处理器
        self.file_handler = logging.FileHandler(self.log_path, encoding="utf-8")
        self.console_handler = logging.StreamHandler()

        formatter = logging.Formatter(LOG_FORMAT)
        self.console_handler.setFormatter(formatter)
        self.file_handler.setFormatter(formatter)

        self.logger.addHandler(self.console_handler)
        self.logger.addHandler(self.file_handler)

    def close(self) -> None:
        """移除并关闭处理器，恢复原日志级别"""
        for handler in (self.console_handler, self.file_handler):
            self.logger.removeHandler(handler)
            handler.close()
        self.logger.setLevel(self._previous_level)

    def log(self, log: str) -> None:
        """记录日志信息"""
        self.logger.info(log)

    def error(self, log: str) -> None:
        """记录错误日志信息"""
        self.logger.error(log)
