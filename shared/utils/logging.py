"""
轻量日志封装。

Notes
-----
`setup_logger` 会避免重复添加 handler，否则策略/broker 多次构建时会出现重复日志。
`set_log_level` 设定全局默认级别，并同步到已经创建过的组件 logger。
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

_default_level = logging.INFO
_loggers: set[str] = set()


def set_log_level(level: int) -> None:
    """设置组件 logger 的默认级别（配置里的 log_level）。"""
    global _default_level
    _default_level = level
    for name in _loggers:
        logging.getLogger(name).setLevel(level)


def setup_logger(name: str = "kline", level: int | None = None) -> logging.Logger:
    """
    创建或获取命名 logger。

    Parameters
    ----------
    name:
        Logger 名称。
    level:
        日志级别；为空时使用 `set_log_level` 设定的默认级别（初始为 INFO）。

    Returns
    -------
    logging.Logger
        已配置的 logger。
    """
    logger = logging.getLogger(name)
    logger.setLevel(_default_level if level is None else level)
    _loggers.add(name)

    has_stream = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    if not has_stream:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)

    return logger
