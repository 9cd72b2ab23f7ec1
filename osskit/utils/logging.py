"""Настройка логирования"""

import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def parse_level(level: Optional[str], default: int = logging.INFO) -> int:
    """Уровень логирования по имени; неизвестное имя дает ``default``"""
    if not level:
        return default
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else default


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    http_log_level: Optional[str] = None,
) -> logging.Logger:
    """
    Настраивает логирование для приложения

    Args:
        level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Формат строки логирования (опционально)
        http_log_level: Уровень для логгера транспорта (дампы запросов и ответов).
            Если None — используется level.

    Returns:
        Логгер пакета osskit, который можно передать в OssClient
    """
    if format_string is None:
        format_string = DEFAULT_FORMAT

    logging.basicConfig(
        level=parse_level(level),
        format=format_string,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if http_log_level is not None:
        logging.getLogger("osskit.oss.transport").setLevel(parse_level(http_log_level))

    package_logger = logging.getLogger("osskit")
    package_logger.setLevel(parse_level(level))
    return package_logger
