"""
Исключения для aimarkup.

Все они поднимаются и перехватываются внутри пакета: конвейер рендеринга
никогда не пробрасывает их вызывающему коду.
"""

from typing import Optional, Dict, Any


class AIMarkupError(Exception):
    """Базовое исключение aimarkup."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ParseFailure(AIMarkupError):
    """Конвертер Markdown вернул не строку."""

    def __init__(self, message: str = "Converter returned a non-string value", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ResponseParseError(AIMarkupError):
    """Ответ модели не удалось разобрать."""
    pass


class SanitizationError(AIMarkupError):
    """Санитайзер HTML завершился с ошибкой."""
    pass


class TypesetUnavailable(AIMarkupError):
    """Движок вёрстки формул так и не появился за отведённое время."""

    def __init__(self, message: str = "Typesetting engine unavailable", timeout_ms: int = 0):
        self.timeout_ms = timeout_ms
        super().__init__(message, {"timeout_ms": timeout_ms})


class TypesetExpressionError(AIMarkupError):
    """Ошибка вёрстки одной формулы."""

    def __init__(self, message: str, source: str = ""):
        self.source = source
        super().__init__(message, {"source": source})


class ClipboardWriteError(AIMarkupError):
    """Не удалось записать текст в буфер обмена."""
    pass
