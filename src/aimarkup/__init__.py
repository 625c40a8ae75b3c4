"""
aimarkup.

Безопасный рендеринг ответов LLM: Markdown с LaTeX-формулами → HTML.
"""

from aimarkup.normalizer import normalize_markup, canonicalize_math
from aimarkup.math_protect import protect, restore
from aimarkup.converter import convert, style_tables
from aimarkup.sanitizer import sanitize
from aimarkup.pipeline import render_markup, RenderSession
from aimarkup.enhancer import DomEnhancer, HtmlContainer
from aimarkup.typeset import Capability, MathMLTypesetter, TypesetWaiter
from aimarkup.models import (
    DelimiterClass,
    MathRegistry,
    MathSegment,
    RenderResult,
    RendererConfig,
    TypesetOptions,
    TypesetState,
)
from aimarkup.exceptions import (
    AIMarkupError,
    ParseFailure,
    ResponseParseError,
    SanitizationError,
    TypesetUnavailable,
    TypesetExpressionError,
    ClipboardWriteError,
)

__version__ = "1.0.0"

__all__ = [
    # Pipeline
    "normalize_markup",
    "canonicalize_math",
    "protect",
    "restore",
    "convert",
    "style_tables",
    "sanitize",
    "render_markup",
    "RenderSession",
    # Display
    "DomEnhancer",
    "HtmlContainer",
    "Capability",
    "MathMLTypesetter",
    "TypesetWaiter",
    # Models
    "DelimiterClass",
    "MathRegistry",
    "MathSegment",
    "RenderResult",
    "RendererConfig",
    "TypesetOptions",
    "TypesetState",
    # Exceptions
    "AIMarkupError",
    "ParseFailure",
    "ResponseParseError",
    "SanitizationError",
    "TypesetUnavailable",
    "TypesetExpressionError",
    "ClipboardWriteError",
]
