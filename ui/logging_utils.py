"""Утилиты для настройки логирования приложения."""
from __future__ import annotations

import logging
import os
from pathlib import Path

_NOISY_LOGGERS = ("httpx", "openai", "urllib3")


def setup_logging() -> None:
    """Настроить логирование в консоль и, при необходимости, в файл."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    level_name = os.getenv("CONTEXTCHAT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = os.getenv("CONTEXTCHAT_LOG_FILE", "")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(level)
    # HTTP-клиенты провайдеров слишком многословны на уровне INFO.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
