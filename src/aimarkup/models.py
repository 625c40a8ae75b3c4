"""
Pydantic модели aimarkup.

Реестр формул, параметры вёрстки, результат рендеринга и конфигурация.
"""

from enum import Enum
from typing import List, Dict
from pydantic import BaseModel, Field


# ===== MATH REGISTRY MODELS =====

class DelimiterClass(str, Enum):
    """Класс разделителей формулы."""
    BLOCK_DOLLAR = "block_dollar"      # $$...$$
    INLINE_DOLLAR = "inline_dollar"    # $...$
    BLOCK_BRACKET = "block_bracket"    # \[...\]
    INLINE_BRACKET = "inline_bracket"  # \(...\)

    @property
    def tag(self) -> str:
        """Двухбуквенный тег класса внутри плейсхолдера."""
        return _DELIMITER_TAGS[self]


_DELIMITER_TAGS = {
    DelimiterClass.BLOCK_DOLLAR: "BD",
    DelimiterClass.INLINE_DOLLAR: "ID",
    DelimiterClass.BLOCK_BRACKET: "BB",
    DelimiterClass.INLINE_BRACKET: "IB",
}


class MathSegment(BaseModel):
    """Извлечённая формула (исходник вместе с разделителями)."""
    index: int
    delimiter: DelimiterClass
    source: str


class MathRegistry(BaseModel):
    """Упорядоченный реестр формул одного прогона."""
    nonce: str
    segments: List[MathSegment] = Field(default_factory=list)

    @property
    def marker(self) -> str:
        """Префикс всех плейсхолдеров этого реестра."""
        return f"MATHPH{self.nonce}"

    def add(self, delimiter: DelimiterClass, source: str) -> MathSegment:
        segment = MathSegment(index=len(self.segments), delimiter=delimiter, source=source)
        self.segments.append(segment)
        return segment

    def placeholder_for(self, segment: MathSegment) -> str:
        return f"{self.marker}{segment.delimiter.tag}{segment.index}Z"

    def __len__(self) -> int:
        return len(self.segments)


# ===== TYPESETTING MODELS =====

class TypesetState(str, Enum):
    """Состояние ожидания движка вёрстки."""
    IDLE = "idle"
    POLLING = "polling"
    READY = "ready"
    TIMED_OUT = "timed_out"


class MathDelimiter(BaseModel):
    """Пара разделителей, которую распознаёт движок вёрстки."""
    left: str
    right: str
    display: bool


DEFAULT_DELIMITERS = [
    MathDelimiter(left="$$", right="$$", display=True),
    MathDelimiter(left="$", right="$", display=False),
    MathDelimiter(left="\\(", right="\\)", display=False),
    MathDelimiter(left="\\[", right="\\]", display=True),
]


class TypesetOptions(BaseModel):
    """Параметры вызова движка вёрстки."""
    delimiters: List[MathDelimiter] = Field(default_factory=lambda: list(DEFAULT_DELIMITERS))
    throw_on_error: bool = Field(default=False, description="Падать ли на первой ошибочной формуле")


# ===== RENDER MODELS =====

class RenderResult(BaseModel):
    """Результат конвейера: единственное значение, которое попадает в документ."""
    content: str
    html: str
    math_count: int = 0
    degraded: bool = False
    errors: List[str] = Field(default_factory=list)


# ===== LOCAL CONFIG MODELS =====

class RendererConfig(BaseModel):
    """Конфигурация рендерера."""
    poll_interval_ms: int = Field(default=200, description="Период опроса движка вёрстки")
    timeout_ms: int = Field(default=10000, description="Предельное время ожидания движка")
    settle_delay_ms: int = Field(default=50, description="Пауза перед вызовом движка")
    copy_label: str = "Копировать"
    copied_label: str = "Скопировано!"
    copy_revert_ms: int = Field(default=2000, description="Через сколько вернуть подпись кнопки")
    table_styles: Dict[str, str] = Field(default_factory=dict, description="Переопределения стилей таблиц по тегу")
    log_level: str = "INFO"
