"""
Управление конфигурацией рендерера.

Хранит данные в файле в домашней директории пользователя.
"""

import json
import os
import logging
from pathlib import Path
from typing import Optional, Any

from pydantic import ValidationError

from aimarkup.models import RendererConfig

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "AIMARKUP_CONFIG_DIR"


class ConfigManager:
    """Менеджер конфигурации рендерера."""

    # Директория для хранения конфигурации
    CONFIG_DIR_NAME = ".aimarkup"
    CONFIG_FILE_NAME = "config.json"

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Инициализация менеджера конфигурации.

        Args:
            config_dir: Путь к директории конфигурации.
                        По умолчанию $AIMARKUP_CONFIG_DIR или ~/.aimarkup/
        """
        if config_dir is None:
            env_dir = os.environ.get(CONFIG_DIR_ENV)
            if env_dir:
                self.config_dir = Path(env_dir)
            else:
                self.config_dir = Path.home() / self.CONFIG_DIR_NAME
        else:
            self.config_dir = Path(config_dir)

        self.config_file = self.config_dir / self.CONFIG_FILE_NAME
        self._config: Optional[RendererConfig] = None

    def _ensure_config_dir(self) -> None:
        """Создать директорию конфигурации если не существует."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> RendererConfig:
        """
        Загрузить конфигурацию из файла.

        Returns:
            Конфигурация рендерера
        """
        if self._config is not None:
            return self._config

        if not self.config_file.exists():
            self._config = RendererConfig()
            return self._config

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._config = RendererConfig(**data)
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            # Поврежденный файл - используем значения по умолчанию
            logger.warning(f"Config file {self.config_file} is invalid, using defaults: {e}")
            self._config = RendererConfig()

        return self._config

    def save(self, config: Optional[RendererConfig] = None) -> None:
        """
        Сохранить конфигурацию в файл.

        Args:
            config: Конфигурация для сохранения.
                   Если не указана, сохраняет текущую.
        """
        if config is not None:
            self._config = config

        if self._config is None:
            return

        self._ensure_config_dir()

        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self._config.model_dump(), f, indent=2, ensure_ascii=False)

    def get_config(self) -> RendererConfig:
        """Получить текущую конфигурацию."""
        if self._config is None:
            return self.load()
        return self._config

    def set_value(self, key: str, value: Any) -> RendererConfig:
        """
        Установить одно значение конфигурации.

        Args:
            key: Имя поля RendererConfig
            value: Новое значение (строки из CLI приводятся pydantic)

        Returns:
            Обновлённая конфигурация

        Raises:
            KeyError: неизвестный ключ
            ValidationError: значение не проходит валидацию
        """
        current = self.get_config()
        if key not in RendererConfig.model_fields:
            raise KeyError(key)

        data = current.model_dump()
        data[key] = value
        updated = RendererConfig(**data)
        self.save(updated)
        logger.info(f"Config value updated: {key}")
        return updated

    def reset(self) -> RendererConfig:
        """Сбросить конфигурацию к значениям по умолчанию."""
        self._config = RendererConfig()
        self.save()
        return self._config


# Глобальный экземпляр менеджера конфигурации
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_dir: Optional[Path] = None) -> ConfigManager:
    """
    Получить глобальный экземпляр менеджера конфигурации.

    Args:
        config_dir: Путь к директории конфигурации

    Returns:
        ConfigManager
    """
    global _config_manager

    if _config_manager is None or config_dir is not None:
        _config_manager = ConfigManager(config_dir)

    return _config_manager
